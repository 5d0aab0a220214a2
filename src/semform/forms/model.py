# Copyright 2026 Semform Contributors
# SPDX-License-Identifier: Apache-2.0

"""Loading, subject generation and finalization of composite values.

A composite starts as a raw composite with empty value slots. Loading fills
its fields either with the values stored for an existing subject or with the
configured defaults for a new one. On submit, every new composite gets a
subject generated from the subject template of its schema.
"""

from __future__ import annotations

import asyncio
import logging
import posixpath
import re
import uuid
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from urllib.parse import urlsplit, urlunsplit

from rdflib import BNode, URIRef
from rdflib import Literal as RdfLiteral
from rdflib.namespace import XSD
from rdflib.term import Node

from semform.forms.mapping import InputMapping, is_input_group
from semform.forms.schema import CompositeSchema, PlaceholderSettings, SubjectTemplateSettings
from semform.model.definitions import FieldDefinition
from semform.model.values import (
    EMPTY,
    EMPTY_STATE,
    PLACEHOLDER_SUBJECT,
    AtomicValue,
    CompositeChange,
    CompositeValue,
    ErrorKind,
    FieldError,
    FieldState,
    FieldValue,
    as_rdf_node,
    get_single,
    is_placeholder,
    is_prevent_submit,
    map_fields,
    set_state,
)
from semform.sparql.services import LabelService, QueryService

logger = logging.getLogger(__name__)

# ###############
# Public Interface
# ###############

DEFAULT_SUBJECT_TEMPLATE = "{{UUID}}"
DEFAULT_DISALLOW_REGEX = r"[\u0000-\u0020<>:?*\"|/\\&$@=+,#\u007f-\u00ff%\s]"
DEFAULT_REPLACE_CHARACTER = "_"


@dataclass(frozen=True)
class UuidPlaceholder:
    """The ``{{UUID}}`` placeholder."""


@dataclass(frozen=True)
class FieldValuePlaceholder:
    """A ``{{fieldId}}`` placeholder expanded from the value of a field."""

    id: str
    settings: PlaceholderSettings


SubjectPlaceholder = UuidPlaceholder | FieldValuePlaceholder
SubjectReplacer = Callable[[SubjectPlaceholder, CompositeValue | None], str]
BlockingPredicate = Callable[[FieldError, bool], bool]


def make_default_subject_replacer() -> SubjectReplacer:
    """Return the replacer expanding UUIDs and field values of subject templates."""

    def replace(placeholder: SubjectPlaceholder, composite: CompositeValue | None) -> str:
        if isinstance(placeholder, UuidPlaceholder):
            return str(uuid.uuid4())
        state = composite.fields.get(placeholder.id) if composite is not None else None
        selected = get_single(state.values) if state is not None else EMPTY
        if isinstance(selected, AtomicValue):
            content = str(selected.value)
        else:
            content = placeholder.settings.default
        return transform_placeholder_value(content, placeholder.settings)

    return replace


def transform_placeholder_value(value: str, settings: PlaceholderSettings) -> str:
    """Apply the configured transform of a placeholder to its expanded value."""
    if settings.transform == "none":
        return value
    return sanitize(value, settings.disallow_regex, settings.replace_character)


def sanitize(value: str, disallow_regex: str | None = None, replace_character: str | None = None) -> str:
    """Replace disallowed characters and collapse runs of the replacement.

    Args:
        value: The text to sanitize.
        disallow_regex: Character class of disallowed characters.
        replace_character: Replacement text; an empty replacement removes the
            disallowed characters and disables collapsing.

    Returns:
        The sanitized text.
    """
    pattern = re.compile(disallow_regex or DEFAULT_DISALLOW_REGEX, re.IGNORECASE)
    replacement = DEFAULT_REPLACE_CHARACTER if replace_character is None else replace_character
    result = pattern.sub(lambda _: replacement, value)
    if replacement:
        result = re.sub(f"(?:{re.escape(replacement)})+", lambda _: replacement, result)
    return result


def generate_subject_by_template(
    template: str | None,
    owner_subject: URIRef | None,
    composite: CompositeValue | None = None,
    settings: SubjectTemplateSettings | None = None,
    replacer: SubjectReplacer | None = None,
) -> URIRef:
    """Generate a subject IRI for a composite from a template.

    A composite that already has a subject keeps it. Otherwise every
    ``{{placeholder}}`` of the template is expanded. Absolute results are
    used as is, ``.`` resolves to the owner subject and any other relative
    result is joined as a path under the owner subject.

    Args:
        template: Subject template, ``{{UUID}}`` if not set.
        owner_subject: Subject of the composite owning this one, if any.
        composite: The composite to generate the subject for.
        settings: Placeholder settings of the template.
        replacer: Expands a single placeholder.

    Returns:
        The subject IRI.
    """
    if composite is not None and not is_placeholder(composite.subject):
        return composite.subject

    replacer = replacer or make_default_subject_replacer()
    placeholders = (settings or SubjectTemplateSettings()).placeholders

    def expand(match: re.Match[str]) -> str:
        name = match.group(1)
        if name == "UUID":
            placeholder: SubjectPlaceholder = UuidPlaceholder()
        else:
            placeholder = FieldValuePlaceholder(id=name, settings=placeholders.get(name, PlaceholderSettings()))
        return replacer(placeholder, composite)

    subject = _TEMPLATE_TOKEN.sub(expand, template or DEFAULT_SUBJECT_TEMPLATE)
    if urlsplit(subject).scheme or owner_subject is None:
        return URIRef(subject)
    if subject == ".":
        return owner_subject
    return URIRef(_join_path(owner_subject, subject))


def was_subject_generated_by_template(
    generated: str,
    template: str | None,
    settings: SubjectTemplateSettings | None,
    owner_subject: URIRef | None,
    composite: CompositeValue,
) -> bool:
    """Return True if ``generated`` could have been produced from ``template``.

    UUID placeholders match any UUID; field placeholders must match the
    current field values of ``composite``.
    """
    marker = uuid.uuid4().hex
    default_replacer = make_default_subject_replacer()

    def replacer(placeholder: SubjectPlaceholder, target: CompositeValue | None) -> str:
        if isinstance(placeholder, UuidPlaceholder):
            return marker
        return default_replacer(placeholder, target)

    expected = generate_subject_by_template(
        template,
        owner_subject,
        composite.model_copy(update={"subject": PLACEHOLDER_SUBJECT}),
        settings,
        replacer,
    )
    pattern = re.escape(str(expected)).replace(marker, _UUID_PATTERN)
    return re.fullmatch(pattern, generated, re.IGNORECASE) is not None


def compute_if_subject_was_suggested(
    composite: CompositeValue,
    template: str | None,
    settings: SubjectTemplateSettings | None,
) -> CompositeValue:
    """Make the subject editable and keep suggesting it if it was generated."""
    return composite.model_copy(
        update={
            "editable_subject": True,
            "suggest_subject": was_subject_generated_by_template(
                str(composite.subject), template, settings, None, composite
            ),
        }
    )


def set_suggested_subject(
    composite: CompositeValue,
    template: str | None,
    settings: SubjectTemplateSettings | None,
    owner_subject: URIRef | None = None,
) -> CompositeValue:
    """Regenerate the subject from the current field values if it is suggested."""
    if not composite.suggest_subject:
        return composite
    suggested = generate_subject_by_template(
        template,
        owner_subject,
        composite.model_copy(update={"subject": PLACEHOLDER_SUBJECT}),
        settings,
    )
    if suggested == composite.subject:
        return composite
    return composite.model_copy(update={"subject": suggested})


def field_initial_state(definition: FieldDefinition) -> FieldState:
    """Return the state of a field before loading: ``minOccurs`` empty slots."""
    count = int(min(definition.min_occurs, definition.max_occurs))
    return FieldState(values=(EMPTY,) * count)


def create_raw_composite(source: FieldValue, schema: CompositeSchema) -> CompositeValue:
    """Create an unloaded composite for ``source`` following ``schema``.

    The subject is taken from a composite or IRI source, a placeholder is used
    otherwise. Configuration errors of the schema are attached to the result.
    """
    if isinstance(source, CompositeValue):
        subject = source.subject
    elif isinstance(source, AtomicValue) and isinstance(source.value, URIRef):
        subject = source.value
    else:
        subject = PLACEHOLDER_SUBJECT
    placeholder = is_placeholder(subject)
    return CompositeValue(
        subject=subject,
        editable_subject=placeholder and schema.default_edit_subject,
        suggest_subject=placeholder and schema.default_suggest_subject,
        definitions=schema.definitions,
        constraints=schema.constraints,
        discriminator=source.discriminator if isinstance(source, CompositeValue) else None,
        fields={field_id: field_initial_state(definition) for field_id, definition in schema.definitions.items()},
        errors=schema.errors,
    )


def is_restored_composite(value: FieldValue) -> bool:
    """Return True for composites carrying values but no definitions yet."""
    return isinstance(value, CompositeValue) and not value.definitions and bool(value.fields)


def merge_initial_values(loaded: CompositeValue, restored: CompositeValue) -> CompositeValue:
    """Override loaded field states with restored ones for every defined field."""
    fields = dict(loaded.fields)
    for field_id, state in restored.fields.items():
        if field_id in loaded.definitions:
            fields[field_id] = state
    update: dict[str, object] = {"fields": fields}
    if is_placeholder(loaded.subject) and not is_placeholder(restored.subject):
        update["subject"] = restored.subject
    return loaded.model_copy(update=update)


def create_default_value(value: str, definition: FieldDefinition) -> AtomicValue:
    """Parse a configured default value according to the field datatype.

    Values of ill-typed literals are kept but carry a loading error.
    """
    datatype = definition.xsd_datatype
    if datatype is None:
        return AtomicValue(value=RdfLiteral(value))
    if datatype == XSD.anyURI:
        return AtomicValue(value=URIRef(value))
    literal = RdfLiteral(value, datatype=datatype)
    if literal.ill_typed:
        error = FieldError(
            kind=ErrorKind.LOADING,
            message=f"Default value '{value}' does not match datatype <{datatype}>",
        )
        return AtomicValue(value=literal, errors=(error,))
    return AtomicValue(value=literal)


def format_error(error: BaseException | str) -> str:
    """Return a short human-readable description of an error."""
    if isinstance(error, str):
        return error
    message = str(error)
    return message if message else type(error).__name__


async def fetch_initial_values(
    definition: FieldDefinition,
    subject: URIRef,
    query_service: QueryService,
) -> list[AtomicValue]:
    """Query the stored values of a field for an existing subject.

    The select pattern is evaluated with ``subject`` bound and must project
    ``value`` and optionally ``label`` and ``index``. Ordered fields are
    sorted by their index.

    Raises:
        ValueError: If the field has no select pattern.
    """
    if definition.select_pattern is None:
        raise ValueError(f"Field '{definition.id}' has no select pattern")
    rows = await query_service.select(definition.select_pattern, {"subject": subject})
    indexed: list[tuple[float, AtomicValue]] = []
    for row in rows:
        node = row.get("value")
        if node is None:
            continue
        label = row.get("label")
        value = AtomicValue(value=node, label=str(label) if label is not None else None)
        indexed.append((_index_of(row.get("index")), value))
    if definition.ordered_with is not None:
        indexed.sort(key=lambda item: item[0])
    return [value for _, value in indexed]


async def load_defaults(
    composite: CompositeValue,
    inputs: Mapping[str, Sequence[InputMapping]],
    query_service: QueryService,
) -> CompositeChange:
    """Load initial or default values of every field of a composite.

    Fields of an existing subject with a select pattern get their stored
    values, fields of a new subject get the defaults of their input mapping
    or definition. Every field is padded with empty values to at least
    ``minOccurs`` entries, and to one entry unless it is edited by an input
    group. Fields are loaded concurrently; a failing field gets a loading
    error and never prevents the other fields from loading.

    Args:
        composite: The raw composite to load.
        inputs: Input mappings keyed by field id.
        query_service: Service evaluating the select patterns.

    Returns:
        A change merging the loaded values into a composite snapshot.
    """

    async def load(definition: FieldDefinition) -> _FetchedValues:
        mappings = inputs.get(definition.id) or ()
        mapping = mappings[0] if mappings else None
        try:
            values = await _load_initial_or_default_values(composite.subject, definition, mapping, query_service)
        except Exception as exc:
            logger.warning("Failed to load values of field '%s': %s", definition.id, format_error(exc))
            return _FetchedValues(definition=definition, error=exc)
        return _FetchedValues(definition=definition, values=tuple(values))

    results = await asyncio.gather(*(load(definition) for definition in composite.definitions.values()))

    def change(model: CompositeValue) -> CompositeValue:
        return _merge_fetched_values(model, results)

    return change


async def resolve_labels(composite: CompositeValue, label_service: LabelService) -> CompositeChange:
    """Look up labels of IRI values that were loaded without one.

    Lookups are best effort: failures are logged and the value stays
    unlabeled.
    """
    iris = {
        value.value
        for state in composite.fields.values()
        for value in state.values
        if isinstance(value, AtomicValue) and value.label is None and isinstance(value.value, URIRef)
    }

    async def resolve(iri: URIRef) -> tuple[URIRef, str | None]:
        try:
            return iri, await label_service.resolve_label(iri)
        except Exception as exc:
            logger.debug("Failed to resolve label of <%s>: %s", iri, format_error(exc))
            return iri, None

    resolved = await asyncio.gather(*(resolve(iri) for iri in iris))
    labels = {iri: label for iri, label in resolved if label is not None}

    def change(model: CompositeValue) -> CompositeValue:
        if not labels:
            return model

        def label_values(_: str, state: FieldState) -> FieldState:
            values = tuple(_with_label(value, labels) for value in state.values)
            if all(new is old for new, old in zip(values, state.values, strict=True)):
                return state
            return set_state(state, values=values)

        return map_fields(model, label_values)

    return change


def ready_to_submit(composite: CompositeValue, is_blocking: BlockingPredicate = is_prevent_submit) -> bool:
    """Return True if no blocking error exists anywhere in the composite tree.

    Args:
        composite: The composite to check.
        is_blocking: Decides whether an error blocks; receives the error and
            whether it belongs to a required field.
    """
    if any(is_blocking(error, False) for error in composite.errors):
        return False
    for field_id, state in composite.fields.items():
        definition = composite.definitions.get(field_id)
        required = definition is not None and definition.min_occurs > 0
        if any(is_blocking(error, required) for error in state.errors):
            return False
        for value in state.values:
            if any(is_blocking(error, required) for error in value.errors):
                return False
            if isinstance(value, CompositeValue) and not ready_to_submit(value, is_blocking):
                return False
    return True


def check_cardinality_and_duplicates(
    values: Sequence[FieldValue],
    definition: FieldDefinition,
) -> list[FieldError]:
    """Check the number of distinct values of a field and report duplicates.

    Empty values are not counted. Composites without a subject are always
    distinct from each other.
    """
    errors: list[FieldError] = []
    distinct: set[Node] = set()
    for value in values:
        if isinstance(value, CompositeValue) and is_placeholder(value.subject):
            distinct.add(BNode())
            continue
        node = as_rdf_node(value)
        if node is None:
            continue
        if node in distinct:
            if isinstance(value, CompositeValue):
                message = f"The new subject identifier (IRI) is not unique: {node.n3()}"
            else:
                message = f'Value "{node}" is appears more than once'
            errors.append(FieldError(kind=ErrorKind.INPUT, message=message))
            continue
        distinct.add(node)

    if len(distinct) < definition.min_occurs:
        errors.append(
            FieldError(
                kind=ErrorKind.INPUT,
                message=f"Required a minimum of {definition.min_occurs} values but {len(distinct)} provided",
            )
        )
    if len(distinct) > definition.max_occurs:
        errors.append(
            FieldError(
                kind=ErrorKind.INPUT,
                message=f"Required a maximum of {definition.max_occurs} values but {len(distinct)} provided",
            )
        )
    return errors


def validate_field_state(state: FieldState, definition: FieldDefinition, validate_values: bool = True) -> FieldState:
    """Replace the input errors of a field with freshly computed ones.

    Args:
        state: The field state to check.
        definition: Definition of the field.
        validate_values: Also check the datatype of every atomic value.

    Returns:
        The field state with up-to-date input errors.
    """
    values = state.values
    if validate_values:
        values = tuple(_validate_datatype(value, definition) for value in state.values)
    other_errors = [error for error in state.errors if error.kind is not ErrorKind.INPUT]
    errors = other_errors + check_cardinality_and_duplicates(values, definition)
    if tuple(errors) == state.errors and all(new is old for new, old in zip(values, state.values, strict=True)):
        return state
    return set_state(state, values=values, errors=errors)


def validate_composite(composite: CompositeValue) -> CompositeValue:
    """Check input errors of every field of a composite tree."""

    def validate_field(field_id: str, state: FieldState) -> FieldState:
        definition = composite.definitions.get(field_id)
        values = tuple(validate_composite(v) if isinstance(v, CompositeValue) else v for v in state.values)
        if any(new is not old for new, old in zip(values, state.values, strict=True)):
            state = set_state(state, values=values)
        if definition is None:
            return state
        return validate_field_state(state, definition)

    return map_fields(composite, validate_field)


def finalize_composite(
    composite: CompositeValue,
    owner_subject: URIRef | None,
    schema: CompositeSchema,
) -> CompositeValue:
    """Assign subjects to a composite and all nested composites.

    Field-level errors are dropped; a finalized composite is ready to be
    compared against its initial state and persisted.
    """
    subject = generate_subject_by_template(
        schema.subject_template, owner_subject, composite, schema.subject_template_settings
    )
    fields: dict[str, FieldState] = {}
    for field_id, state in composite.fields.items():
        nested = schema.nested.get(field_id)
        values = state.values
        if nested is not None:
            values = tuple(
                finalize_composite(value, subject, nested) if isinstance(value, CompositeValue) else value
                for value in state.values
            )
        fields[field_id] = FieldState(values=values)
    return composite.model_copy(update={"subject": subject, "fields": fields})


# ################
# Implementation
# ################

_TEMPLATE_TOKEN = re.compile(r"{{([^{}]+)}}")
_UUID_PATTERN = "[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}"


@dataclass(frozen=True)
class _FetchedValues:
    definition: FieldDefinition
    values: tuple[FieldValue, ...] = ()
    error: BaseException | None = None


async def _load_initial_or_default_values(
    subject: URIRef,
    definition: FieldDefinition,
    mapping: InputMapping | None,
    query_service: QueryService,
) -> list[FieldValue]:
    placeholder = is_placeholder(subject)
    values: list[FieldValue] = []
    if not placeholder and definition.select_pattern:
        values.extend(await fetch_initial_values(definition, subject, query_service))
    elif placeholder and mapping is not None:
        if mapping.default_values is not None:
            defaults = list(mapping.default_values)
        elif mapping.default_value is not None:
            defaults = [mapping.default_value]
        else:
            defaults = list(definition.default_values)
        values.extend(create_default_value(value, definition) for value in defaults)

    required = max(len(values), definition.min_occurs, 0 if is_input_group(mapping) else 1)
    return values + [EMPTY] * (required - len(values))


def _merge_fetched_values(model: CompositeValue, results: Sequence[_FetchedValues]) -> CompositeValue:
    fields = dict(model.fields)
    for result in results:
        field_id = result.definition.id
        state = fields.get(field_id, EMPTY_STATE)
        if result.values:
            state = set_state(state, values=result.values)
        elif result.error is not None:
            error = FieldError(
                kind=ErrorKind.LOADING,
                message=f"Failed to load initial values: {format_error(result.error)}",
            )
            state = set_state(state, errors=[*state.errors, error])
        fields[field_id] = state
    return model.model_copy(update={"fields": fields})


def _index_of(node: Node | None) -> float:
    if node is None:
        return float("inf")
    try:
        return int(str(node))
    except ValueError:
        return float("inf")


def _with_label(value: FieldValue, labels: Mapping[URIRef, str]) -> FieldValue:
    if isinstance(value, AtomicValue) and value.label is None and value.value in labels:
        return value.model_copy(update={"label": labels[value.value]})
    return value


def _validate_datatype(value: FieldValue, definition: FieldDefinition) -> FieldValue:
    if not isinstance(value, AtomicValue):
        return value
    errors = [error for error in value.errors if error.kind is not ErrorKind.INPUT]
    node = value.value
    if isinstance(node, RdfLiteral) and node.ill_typed:
        errors.append(
            FieldError(kind=ErrorKind.INPUT, message=f'Value "{node}" does not match datatype <{node.datatype}>')
        )
    elif definition.xsd_datatype == XSD.anyURI and isinstance(node, RdfLiteral):
        errors.append(FieldError(kind=ErrorKind.INPUT, message=f'Value "{node}" is expected to be an IRI'))
    if tuple(errors) == value.errors:
        return value
    return value.model_copy(update={"errors": tuple(errors)})


def _join_path(owner_subject: URIRef, relative: str) -> str:
    parts = urlsplit(str(owner_subject))
    path = posixpath.normpath(posixpath.join(parts.path or "/", relative.lstrip("/")))
    return urlunsplit(parts._replace(path=path))