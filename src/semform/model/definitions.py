# Copyright 2026 Semform Contributors
# SPDX-License-Identifier: Apache-2.0

"""Field definitions, constraints and dependencies of semantic forms.

Raw field configuration is written by hand (YAML or JSON) and allows a number
of shorthands. ``normalize_field_definition`` converts it into the canonical
``FieldDefinition`` used by the rest of the engine.
"""

from __future__ import annotations

import copy
import math
from collections.abc import Iterable, Mapping
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from rdflib import URIRef
from rdflib import Literal as RdfLiteral
from rdflib.namespace import XSD

# ###############
# Public Interface
# ###############

ASK_PATTERN_MESSAGE = "Value does not pass the SPARQL ASK test."


class SingleFieldConstraint(BaseModel):
    """A boolean query validating each value of one field.

    The query is evaluated with ``subject`` bound to the edited resource and
    ``value`` bound to the checked value.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    validate_pattern: str = Field(alias="validatePattern")
    message: str


class MultipleFieldConstraint(BaseModel):
    """A boolean query over several fields of the same resource.

    Attributes:
        fields: Maps field ids to the query variable their value is bound to.
        validate_pattern: The boolean (ASK) query.
        message: Error message shown on every referenced field on failure.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    fields: dict[str, str]
    validate_pattern: str = Field(alias="validatePattern")
    message: str


class FieldDependency(BaseModel):
    """Declares that the queries of ``field`` depend on values of other fields.

    Attributes:
        field: Id of the dependent field.
        dependencies: Maps field ids to the query variable their value binds.
        value_set_pattern: Overrides the value set query of the field.
        autosuggestion_pattern: Overrides the autosuggestion query of the field.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    field: str
    dependencies: dict[str, str]
    value_set_pattern: str | None = Field(default=None, alias="valueSetPattern")
    autosuggestion_pattern: str | None = Field(default=None, alias="autosuggestionPattern")


class FieldDefinition(BaseModel):
    """Normalized configuration of a single form field."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, arbitrary_types_allowed=True)

    id: str
    iri: URIRef | None = None
    label: str | None = None
    description: str | None = None
    categories: tuple[URIRef, ...] = ()
    domain: tuple[URIRef, ...] = ()
    range: tuple[URIRef, ...] = ()
    xsd_datatype: URIRef | None = Field(default=None, alias="xsdDatatype")
    min_occurs: int = Field(default=0, alias="minOccurs")
    max_occurs: int | float = Field(default=math.inf, alias="maxOccurs")
    order: int = 0
    default_values: tuple[str, ...] = Field(default=(), alias="defaultValues")
    select_pattern: str | None = Field(default=None, alias="selectPattern")
    delete_pattern: str | None = Field(default=None, alias="deletePattern")
    insert_pattern: str | None = Field(default=None, alias="insertPattern")
    value_set_pattern: str | None = Field(default=None, alias="valueSetPattern")
    autosuggestion_pattern: str | None = Field(default=None, alias="autosuggestionPattern")
    tree_patterns: dict[str, Any] | None = Field(default=None, alias="treePatterns")
    test_subject: URIRef | None = Field(default=None, alias="testSubject")
    ordered_with: Literal["index-property"] | None = Field(default=None, alias="orderedWith")
    constraints: tuple[SingleFieldConstraint, ...] = ()


def normalize_field_definition(raw: Mapping[str, Any] | FieldDefinition) -> FieldDefinition:
    """Convert raw field configuration into a canonical field definition.

    The conversion never modifies ``raw``. It is idempotent: normalizing an
    already normalized definition yields an equal definition, because the
    ``askPattern`` shorthand is consumed on the first run.

    Args:
        raw: Field configuration with camelCase keys, or a definition.

    Returns:
        The normalized field definition.
    """
    if isinstance(raw, FieldDefinition):
        data = raw.model_dump(by_alias=True)
    else:
        data = copy.deepcopy(dict(raw))

    if "label" in data:
        data["label"] = _preferred_label(data["label"])
    data["categories"] = _to_iris(data.get("categories"))
    data["domain"] = _to_iris(data.get("domain"))
    data["range"] = _to_iris(data.get("range"))
    data["minOccurs"] = _parse_occurs(data.get("minOccurs"), unbound=0)
    data["maxOccurs"] = _parse_occurs(data.get("maxOccurs"), unbound=math.inf)
    data["order"] = int(data.get("order") or 0)

    datatype = data.get("xsdDatatype")
    if datatype:
        data["xsdDatatype"] = expand_datatype(datatype)
    elif data["range"]:
        data["xsdDatatype"] = XSD.anyURI
    else:
        data["xsdDatatype"] = None

    defaults = data.get("defaultValues")
    data["defaultValues"] = [defaults] if isinstance(defaults, str) else list(defaults or [])

    if data.get("iri"):
        data["iri"] = URIRef(data["iri"])
    if data.get("testSubject"):
        data["testSubject"] = URIRef(data["testSubject"])

    constraints = list(data.get("constraints") or [])
    ask_pattern = data.pop("askPattern", None)
    if ask_pattern:
        constraints.append({"validatePattern": ask_pattern, "message": ASK_PATTERN_MESSAGE})
    data["constraints"] = constraints

    return FieldDefinition.model_validate(data)


def normalize_definitions(raw_fields: Iterable[Mapping[str, Any] | FieldDefinition]) -> dict[str, FieldDefinition]:
    """Normalize a list of raw definitions into a mapping keyed by field id.

    When two definitions share an id, the first one wins.
    """
    definitions: dict[str, FieldDefinition] = {}
    for raw in raw_fields:
        definition = normalize_field_definition(raw)
        definitions.setdefault(definition.id, definition)
    return definitions


def expand_datatype(datatype: str) -> URIRef:
    """Expand ``xsd:`` prefixed datatype names into full IRIs."""
    if datatype.startswith("xsd:"):
        return URIRef(str(XSD) + datatype[len("xsd:") :])
    return URIRef(datatype)


# ################
# Implementation
# ################


def _preferred_label(label: Any) -> str | None:
    if label is None or isinstance(label, str):
        return label
    candidates = [item for item in label if item is not None]
    for language in ("", "en"):
        for item in candidates:
            item_language = item.language if isinstance(item, RdfLiteral) else ""
            if (item_language or "") == language:
                return str(item)
    return str(candidates[0]) if candidates else None


def _to_iris(value: Any) -> list[URIRef]:
    if value is None:
        return []
    if isinstance(value, str):
        return [URIRef(value)]
    return [URIRef(item) for item in value]


def _parse_occurs(value: Any, unbound: int | float) -> int | float:
    if value is None or value == "unbound":
        return unbound
    if isinstance(value, str):
        return int(value)
    if isinstance(value, float) and math.isinf(value):
        return value
    return int(value)
