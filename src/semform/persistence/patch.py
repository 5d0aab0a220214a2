# Copyright 2026 Semform Contributors
# SPDX-License-Identifier: Apache-2.0

"""Value patches recording unsaved edits of a form.

A value patch is a JSON compatible dictionary holding the subject of the
edited resource and the complete values of every field that differs from the
initially loaded model. RDF nodes are stored in their N3 form. Patches are
kept in a ``LocalPatchStore`` keyed by form id and edited resource, and are
applied to a freshly loaded model to recover the edits.
"""

from __future__ import annotations

import hashlib
import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from rdflib import URIRef
from rdflib.util import from_n3

from semform.model.values import (
    EMPTY,
    EMPTY_STATE,
    PLACEHOLDER_SUBJECT,
    AtomicValue,
    CompositeValue,
    EmptyValue,
    FieldState,
    FieldValue,
    is_placeholder,
    set_field,
    set_state,
)

logger = logging.getLogger(__name__)

# ###############
# Public Interface
# ###############

ValuePatch = dict[str, Any]

PATCH_FORMAT_VERSION = 1


class PatchStoreError(Exception):
    """Raised when a stored patch cannot be read, written, or is invalid."""


def compute_value_patch(
    initial: CompositeValue | EmptyValue,
    current: CompositeValue | EmptyValue,
) -> ValuePatch | None:
    """Record the fields of ``current`` that differ from ``initial``.

    Returns:
        The patch, or None if ``current`` has no changes worth recording.
    """
    if not isinstance(current, CompositeValue):
        return None
    initial_fields = initial.fields if isinstance(initial, CompositeValue) else {}
    fields: dict[str, list[dict[str, Any]]] = {}
    for field_id, state in current.fields.items():
        encoded = [_encode_value(value) for value in state.values]
        base = initial_fields.get(field_id)
        if base is None or [_encode_value(value) for value in base.values] != encoded:
            fields[field_id] = encoded
    initial_subject = initial.subject if isinstance(initial, CompositeValue) else PLACEHOLDER_SUBJECT
    if not fields and current.subject == initial_subject:
        return None
    return {"subject": _encode_subject(current.subject), "fields": fields}


def apply_value_patch(model: CompositeValue, patch: ValuePatch) -> CompositeValue:
    """Restore recorded field values onto a loaded model.

    Only fields defined on ``model`` are restored. Nested composites are
    restored without definitions and have to be loaded again. The subject is
    restored only if ``model`` has none yet.

    Returns:
        The patched model, or ``model`` itself if the patch does not apply.

    Raises:
        ValueError: If the patch is malformed.
    """
    updated = model
    subject = _decode_subject(patch.get("subject", ""))
    if is_placeholder(model.subject) and not is_placeholder(subject):
        updated = updated.model_copy(update={"subject": subject})
    for field_id, values in _patched_fields(patch).items():
        if field_id not in model.definitions:
            logger.debug("Ignoring patched values of unknown field '%s'", field_id)
            continue
        state = updated.fields.get(field_id, EMPTY_STATE)
        updated = set_field(updated, field_id, set_state(state, values=[_decode_value(value) for value in values]))
    return updated


class StoredPatch(BaseModel):
    """On-disk format of a stored value patch."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    version: int = PATCH_FORMAT_VERSION
    form_id: str = Field(alias="form-id")
    resource: str
    value_patch: ValuePatch = Field(alias="value-patch")


class LocalPatchStore:
    """Stores value patches as JSON files in a directory.

    Args:
        directory: Directory holding the patch files; created on first write.
    """

    def __init__(self, directory: Path) -> None:
        self._directory = directory

    def path_for(self, form_id: str, resource: str) -> Path:
        """Return the file storing the patch of ``resource`` edited with ``form_id``."""
        digest = hashlib.sha256(f"{form_id}\0{resource}".encode()).hexdigest()
        return self._directory / f"{digest}.json"

    def get(self, form_id: str, resource: str) -> ValuePatch | None:
        """Return the stored patch or None if there is none.

        Raises:
            PatchStoreError: If the stored patch cannot be read or is invalid.
        """
        path = self.path_for(form_id, resource)
        if not path.exists():
            return None
        try:
            raw = path.read_text(encoding="utf-8")
        except OSError as exc:
            raise PatchStoreError(f"Cannot read patch '{path}': {exc}") from exc
        try:
            stored = StoredPatch.model_validate_json(raw)
        except ValidationError as exc:
            raise PatchStoreError(f"Invalid patch '{path}': {exc}") from exc
        if stored.version != PATCH_FORMAT_VERSION:
            raise PatchStoreError(f"Unsupported patch format version {stored.version} in '{path}'")
        if stored.form_id != form_id or stored.resource != resource:
            raise PatchStoreError(f"Patch '{path}' belongs to another form or resource")
        return stored.value_patch

    def set(self, form_id: str, resource: str, patch: ValuePatch) -> None:
        """Store ``patch``, replacing any previously stored one.

        Raises:
            PatchStoreError: If the patch cannot be written.
        """
        path = self.path_for(form_id, resource)
        stored = StoredPatch(form_id=form_id, resource=resource, value_patch=patch)
        try:
            self._directory.mkdir(parents=True, exist_ok=True)
            path.write_text(stored.model_dump_json(by_alias=True, indent=2), encoding="utf-8")
        except OSError as exc:
            raise PatchStoreError(f"Cannot write patch '{path}': {exc}") from exc

    def remove(self, form_id: str, resource: str) -> None:
        """Remove the stored patch if there is one."""
        path = self.path_for(form_id, resource)
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            raise PatchStoreError(f"Cannot remove patch '{path}': {exc}") from exc


# ################
# Implementation
# ################


def _encode_subject(subject: URIRef) -> str:
    return "" if is_placeholder(subject) else subject.n3()


def _decode_subject(encoded: Any) -> URIRef:
    if not isinstance(encoded, str):
        raise ValueError(f"Patched subject must be a string: {encoded!r}")
    if not encoded:
        return PLACEHOLDER_SUBJECT
    node = from_n3(encoded)
    if not isinstance(node, URIRef):
        raise ValueError(f"Patched subject is not an IRI: {encoded}")
    return node


def _encode_value(value: FieldValue) -> dict[str, Any]:
    if isinstance(value, AtomicValue):
        encoded: dict[str, Any] = {"type": "atomic", "value": value.value.n3()}
        if value.label is not None:
            encoded["label"] = value.label
        return encoded
    if isinstance(value, CompositeValue):
        return {
            "type": "composite",
            "subject": _encode_subject(value.subject),
            "fields": {
                field_id: [_encode_value(item) for item in state.values] for field_id, state in value.fields.items()
            },
        }
    return {"type": "empty"}


def _patched_fields(encoded: Mapping[str, Any]) -> dict[str, list[Any]]:
    fields = encoded.get("fields", {})
    if not isinstance(fields, Mapping) or not all(isinstance(values, list) for values in fields.values()):
        raise ValueError("Patched fields must map field ids to lists of values")
    return dict(fields)


def _decode_value(encoded: Any) -> FieldValue:
    if not isinstance(encoded, Mapping):
        raise ValueError(f"Patched value must be an object: {encoded!r}")
    kind = encoded.get("type")
    if kind == "empty":
        return EMPTY
    if kind == "atomic":
        text = encoded.get("value")
        if not isinstance(text, str):
            raise ValueError(f"Patched atomic value has no N3 text: {encoded!r}")
        node = from_n3(text)
        if node is None:
            raise ValueError(f"Invalid patched value: {text!r}")
        return AtomicValue(value=node, label=encoded.get("label"))
    if kind == "composite":
        return CompositeValue(
            subject=_decode_subject(encoded.get("subject", "")),
            fields={
                field_id: FieldState(values=tuple(_decode_value(item) for item in values))
                for field_id, values in _patched_fields(encoded).items()
            },
        )
    raise ValueError(f"Unknown patched value type: {kind!r}")
