# Copyright 2026 Semform Contributors
# SPDX-License-Identifier: Apache-2.0

"""Checked and normalized configuration of a composite and its nested composites."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from semform.forms.mapping import (
    CompositeConfig,
    InputMapping,
    default_mappings,
    validate_field_configuration,
)
from semform.model.definitions import (
    FieldDefinition,
    FieldDependency,
    MultipleFieldConstraint,
    normalize_field_definition,
)
from semform.model.values import ErrorKind, FieldError

# ###############
# Public Interface
# ###############


class PlaceholderSettings(BaseModel):
    """How one ``{{fieldId}}`` placeholder of a subject template is expanded.

    Attributes:
        default: Text used when the field has no atomic value.
        transform: ``sanitize`` replaces disallowed characters, ``none``
            keeps the value as is.
        disallow_regex: Characters to replace when sanitizing.
        replace_character: Replacement of every disallowed character.
    """

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    default: str = ""
    transform: Literal["none", "sanitize"] = "sanitize"
    disallow_regex: str | None = Field(alias="disallowRegex", default=None)
    replace_character: str | None = Field(alias="replaceCharacter", default=None)


class SubjectTemplateSettings(BaseModel):
    """Per-placeholder settings of a subject template."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    placeholders: dict[str, PlaceholderSettings] = Field(default_factory=dict)


@dataclass(frozen=True)
class CompositeSchema:
    """Everything needed to load, validate and finalize one kind of composite.

    Attributes:
        definitions: Definitions of the fields edited by an input.
        constraints: Well-formed multi-field constraints.
        dependencies: Well-formed field dependencies.
        inputs: Input mappings keyed by field id.
        errors: Configuration errors, attached to every created composite.
        subject_template: Template for new subjects.
        subject_template_settings: Placeholder settings of the template.
        default_edit_subject: Whether new composites have an editable subject.
        default_suggest_subject: Whether new composites regenerate their
            subject on every edit.
        nested: Schemas of nested composites keyed by field id.
    """

    definitions: dict[str, FieldDefinition] = field(default_factory=dict)
    constraints: tuple[MultipleFieldConstraint, ...] = ()
    dependencies: tuple[FieldDependency, ...] = ()
    inputs: dict[str, list[InputMapping]] = field(default_factory=dict)
    errors: tuple[FieldError, ...] = ()
    subject_template: str | None = None
    subject_template_settings: SubjectTemplateSettings = field(default_factory=SubjectTemplateSettings)
    default_edit_subject: bool = False
    default_suggest_subject: bool = False
    nested: dict[str, CompositeSchema] = field(default_factory=dict)

    @property
    def has_errors(self) -> bool:
        """Return True if this schema or any nested schema has configuration errors."""
        return bool(self.errors) or any(schema.has_errors for schema in self.nested.values())

    def all_errors(self) -> list[FieldError]:
        """Return the configuration errors of this schema and all nested schemas."""
        errors = list(self.errors)
        for schema in self.nested.values():
            errors.extend(schema.all_errors())
        return errors


def build_composite_schema(config: CompositeConfig) -> CompositeSchema:
    """Normalize and check a composite configuration.

    Configuration problems never raise; they are collected into the
    ``errors`` of the returned schema (and of its nested schemas).

    Args:
        config: The composite configuration.

    Returns:
        The schema of the composite.
    """
    errors: list[FieldError] = []

    all_definitions: dict[str, FieldDefinition] = {}
    for index, raw in enumerate(config.fields):
        try:
            definition = normalize_field_definition(raw)
        except (PydanticValidationError, ValueError, TypeError) as exc:
            errors.append(_configuration_error(f"Invalid field definition #{index}: {exc}"))
            continue
        all_definitions.setdefault(definition.id, definition)

    mappings = config.inputs if config.inputs is not None else default_mappings(all_definitions.values())
    configuration = validate_field_configuration(
        all_definitions, config.field_constraints, config.field_dependencies, mappings
    )
    errors.extend(configuration.errors)

    try:
        settings = SubjectTemplateSettings.model_validate(config.new_subject_template_settings)
    except PydanticValidationError as exc:
        errors.append(_configuration_error(f"Invalid subject template settings: {exc}"))
        settings = SubjectTemplateSettings()

    nested: dict[str, CompositeSchema] = {}
    for field_id, inputs in configuration.inputs.items():
        for mapping in inputs:
            if mapping.group == "composite" and mapping.composite is not None:
                nested.setdefault(field_id, build_composite_schema(mapping.composite))

    return CompositeSchema(
        definitions={
            field_id: definition
            for field_id, definition in all_definitions.items()
            if field_id in configuration.inputs
        },
        constraints=tuple(configuration.constraints),
        dependencies=tuple(configuration.dependencies),
        inputs=configuration.inputs,
        errors=tuple(errors),
        subject_template=config.new_subject_template,
        subject_template_settings=settings,
        default_edit_subject=config.default_edit_subject,
        default_suggest_subject=config.default_suggest_subject,
        nested=nested,
    )


# ################
# Implementation
# ################


def _configuration_error(message: str) -> FieldError:
    return FieldError(kind=ErrorKind.CONFIGURATION, message=message)
