# Copyright 2026 Semform Contributors
# SPDX-License-Identifier: Apache-2.0

"""Input mappings of a form and eager checks of its field configuration.

A form layout is a tree of mappings. Input mappings edit a field, static
mappings only display something about a field, and element mappings group
other mappings. All configuration problems are collected at once so that a
form author sees every mistake in a single pass.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from semform.model.definitions import FieldDefinition, FieldDependency, MultipleFieldConstraint
from semform.model.values import ErrorKind, FieldError
from semform.sparql.queries import QuerySyntaxError, query_form, update_operations

# ###############
# Public Interface
# ###############


class CompositeConfig(BaseModel):
    """Configuration of a composite resource: its fields and how they are edited.

    Raw field definitions, constraints and dependencies are kept as written;
    they are checked and normalized when the composite schema is built.
    """

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    fields: list[dict[str, Any]] = Field(default_factory=list)
    field_constraints: list[dict[str, Any]] = Field(alias="field-constraints", default_factory=list)
    field_dependencies: list[dict[str, Any]] = Field(alias="field-dependencies", default_factory=list)
    inputs: list[FieldMapping] | None = None
    new_subject_template: str | None = Field(alias="new-subject-template", default=None)
    new_subject_template_settings: dict[str, Any] = Field(
        alias="new-subject-template-settings", default_factory=dict
    )
    default_edit_subject: bool = Field(alias="default-edit-subject", default=False)
    default_suggest_subject: bool = Field(alias="default-suggest-subject", default=False)


class InputMapping(BaseModel):
    """Maps an input to the field it edits.

    Attributes:
        for_field: Id of the edited field.
        default_value: Single default value overriding the field defaults.
        default_values: Default values overriding the field defaults.
        group: ``composite`` or ``switch`` if the input edits nested resources.
        composite: Configuration of the nested resources of a composite group.
    """

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    kind: Literal["input"] = "input"
    for_field: str | None = Field(alias="for", default=None)
    default_value: str | None = Field(alias="default-value", default=None)
    default_values: list[str] | None = Field(alias="default-values", default=None)
    group: Literal["composite", "switch"] | None = None
    composite: CompositeConfig | None = None

    @property
    def is_input_group(self) -> bool:
        return self.group is not None


class StaticMapping(BaseModel):
    """A display-only element that refers to a field."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    kind: Literal["static"] = "static"
    for_field: str | None = Field(alias="for", default=None)


class ElementMapping(BaseModel):
    """A layout element grouping other mappings."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    kind: Literal["element"] = "element"
    children: list[FieldMapping] = Field(default_factory=list)


FieldMapping = Annotated[
    InputMapping | StaticMapping | ElementMapping,
    Field(discriminator="kind"),
]

CompositeConfig.model_rebuild()
InputMapping.model_rebuild()
ElementMapping.model_rebuild()


@dataclass
class FieldConfiguration:
    """Result of checking the field configuration of a composite.

    Attributes:
        inputs: Input mappings keyed by the id of the field they edit.
        constraints: Well-formed multi-field constraints.
        dependencies: Well-formed field dependencies.
        errors: Configuration errors found in any part of the configuration.
    """

    inputs: dict[str, list[InputMapping]] = field(default_factory=dict)
    constraints: list[MultipleFieldConstraint] = field(default_factory=list)
    dependencies: list[FieldDependency] = field(default_factory=list)
    errors: list[FieldError] = field(default_factory=list)


def default_mappings(definitions: Iterable[FieldDefinition]) -> list[FieldMapping]:
    """Return one plain input per field definition."""
    return [InputMapping(for_field=definition.id) for definition in definitions]


def is_input_group(mapping: InputMapping | None) -> bool:
    return mapping is not None and mapping.is_input_group


def validate_field_configuration(
    definitions: Mapping[str, FieldDefinition],
    constraints: Sequence[Mapping[str, Any] | MultipleFieldConstraint],
    dependencies: Sequence[Mapping[str, Any] | FieldDependency],
    mappings: Sequence[FieldMapping],
) -> FieldConfiguration:
    """Check the configuration of a composite and collect every error.

    Checks performed:

    1. Every input and static mapping refers to an existing field definition
       and every input names its field.
    2. Query patterns of edited fields have the expected form: read patterns
       are SELECT queries, the delete pattern contains only DELETE
       operations, the insert pattern only INSERT operations, and
       single-field constraints are ASK queries.
    3. Multi-field constraints are ASK queries with a message that reference
       existing fields only.
    4. Dependencies name their field, reference existing fields only and are
       declared at most once per field.

    Args:
        definitions: Normalized field definitions keyed by id.
        constraints: Raw or parsed multi-field constraints.
        dependencies: Raw or parsed field dependencies.
        mappings: The input mappings of the composite.

    Returns:
        The inputs, the well-formed constraints and dependencies, and all
        configuration errors.
    """
    configuration = FieldConfiguration()
    _collect_mappings(definitions, mappings, configuration)
    for field_id in configuration.inputs:
        definition = definitions.get(field_id)
        if definition is not None:
            configuration.errors.extend(collect_definition_errors(definition))
    _collect_constraints(definitions, constraints, configuration)
    _collect_dependencies(definitions, dependencies, configuration)
    return configuration


def collect_definition_errors(definition: FieldDefinition) -> list[FieldError]:
    """Check the query patterns of one field definition."""
    errors: list[FieldError] = []

    def store(member: str, message: str | None) -> None:
        if message is not None:
            errors.append(_configuration_error(f"Invalid {member} of field '{definition.id}': {message}"))

    if definition.select_pattern:
        store("selectPattern", _check_query_pattern(definition.select_pattern, "SELECT"))
    if definition.value_set_pattern:
        store("valueSetPattern", _check_query_pattern(definition.value_set_pattern, "SELECT"))
    if definition.delete_pattern:
        store("deletePattern", _check_update_pattern(definition.delete_pattern, "DELETE"))
    if definition.insert_pattern:
        store("insertPattern", _check_update_pattern(definition.insert_pattern, "INSERT"))
    if definition.autosuggestion_pattern:
        store("autosuggestionPattern", _check_query_pattern(definition.autosuggestion_pattern, "SELECT"))
    for constraint in definition.constraints:
        store("askPattern", _check_query_pattern(constraint.validate_pattern, "ASK"))
    return errors


# ################
# Implementation
# ################


def _configuration_error(message: str) -> FieldError:
    return FieldError(kind=ErrorKind.CONFIGURATION, message=message)


def _collect_mappings(
    definitions: Mapping[str, FieldDefinition],
    mappings: Sequence[FieldMapping],
    configuration: FieldConfiguration,
) -> None:
    for mapping in mappings:
        if isinstance(mapping, InputMapping):
            if mapping.for_field is None:
                configuration.errors.append(_configuration_error("Missing 'for' attribute on input mapping"))
                continue
            if mapping.for_field not in definitions:
                configuration.errors.append(_configuration_error(f"Field definition '{mapping.for_field}' not found"))
            configuration.inputs.setdefault(mapping.for_field, []).append(mapping)
        elif isinstance(mapping, StaticMapping):
            if mapping.for_field is not None and mapping.for_field not in definitions:
                configuration.errors.append(_configuration_error(f"Field definition '{mapping.for_field}' not found"))
        elif isinstance(mapping, ElementMapping):
            _collect_mappings(definitions, mapping.children, configuration)
        else:
            raise TypeError(f"Unknown field mapping: {mapping!r}")


def _collect_constraints(
    definitions: Mapping[str, FieldDefinition],
    constraints: Sequence[Mapping[str, Any] | MultipleFieldConstraint],
    configuration: FieldConfiguration,
) -> None:
    for index, raw in enumerate(constraints):
        data = raw.model_dump(by_alias=True) if isinstance(raw, MultipleFieldConstraint) else dict(raw)
        has_errors = False

        pattern = data.get("validatePattern")
        pattern_error = (
            _check_query_pattern(pattern, "ASK") if isinstance(pattern, str) else "missing query pattern"
        )
        if pattern_error is not None:
            configuration.errors.append(
                _configuration_error(f'Invalid "validatePattern" for field constraint #{index}: {pattern_error}')
            )
            has_errors = True

        if not isinstance(data.get("message"), str):
            configuration.errors.append(
                _configuration_error(f'Missing or non-string "message" for field constraint #{index}')
            )
            has_errors = True

        fields_error = _check_field_bindings(definitions, data.get("fields"))
        if fields_error is not None:
            configuration.errors.append(
                _configuration_error(f"Invalid field constraint #{index}: {fields_error}")
            )
            has_errors = True

        if has_errors:
            continue
        if isinstance(raw, MultipleFieldConstraint):
            configuration.constraints.append(raw)
        else:
            configuration.constraints.append(MultipleFieldConstraint.model_validate(data))


def _collect_dependencies(
    definitions: Mapping[str, FieldDefinition],
    dependencies: Sequence[Mapping[str, Any] | FieldDependency],
    configuration: FieldConfiguration,
) -> None:
    dependent_field_ids: set[str] = set()
    for index, raw in enumerate(dependencies):
        data = raw.model_dump(by_alias=True) if isinstance(raw, FieldDependency) else dict(raw)
        field_id = data.get("field")
        if not isinstance(field_id, str):
            configuration.errors.append(
                _configuration_error(f'Missing or non-string "field" property for field dependency #{index}')
            )
            continue

        has_errors = False
        if field_id in dependent_field_ids:
            configuration.errors.append(
                _configuration_error(f'Duplicate dependency #{index} for field "{field_id}"')
            )
            has_errors = True
        dependent_field_ids.add(field_id)

        if field_id not in definitions:
            configuration.errors.append(
                _configuration_error(f'Invalid field dependency for field "{field_id}": unknown dependent field')
            )
            has_errors = True

        fields_error = _check_field_bindings(definitions, data.get("dependencies"))
        if fields_error is not None:
            configuration.errors.append(
                _configuration_error(f'Invalid field dependency for field "{field_id}": {fields_error}')
            )
            has_errors = True

        if has_errors:
            continue
        try:
            dependency = raw if isinstance(raw, FieldDependency) else FieldDependency.model_validate(data)
        except PydanticValidationError as exc:
            configuration.errors.append(
                _configuration_error(f'Invalid field dependency for field "{field_id}": {exc}')
            )
            continue
        configuration.dependencies.append(dependency)


def _check_field_bindings(definitions: Mapping[str, FieldDefinition], fields: Any) -> str | None:
    if not isinstance(fields, Mapping):
        return 'invalid (non-object) "fields" property'
    for field_id, binding_name in fields.items():
        if field_id not in definitions:
            return f'missing referenced field "{field_id}"'
        if not isinstance(binding_name, str):
            return f'invalid (non-string) binding name for field "{field_id}"'
    return None


def _check_query_pattern(pattern: str, expected: str) -> str | None:
    try:
        form = query_form(pattern)
    except QuerySyntaxError as exc:
        return str(exc)
    if form != expected:
        return f"should be {expected} query but was: '{form}'"
    return None


def _check_update_pattern(pattern: str, expected: str) -> str | None:
    try:
        operations = update_operations(pattern)
    except QuerySyntaxError as exc:
        return f"should be {expected} query: {exc}"
    for operation in operations:
        if expected == "INSERT":
            valid = operation.name == "Modify" and operation.has_insert and not operation.has_delete
        else:
            valid = operation.name == "Modify" and operation.has_delete and not operation.has_insert
        if not valid:
            return f"query should include only {expected} WHERE operations"
    return None
