# Copyright 2026 Semform Contributors
# SPDX-License-Identifier: Apache-2.0

"""Form configuration, composite loading, validation and editing sessions."""

from semform.forms.cancellation import Cancellation, CancelledSessionError
from semform.forms.dependencies import DependencyContext, make_dependency_context, try_make_bindings
from semform.forms.mapping import (
    CompositeConfig,
    ElementMapping,
    FieldConfiguration,
    FieldMapping,
    InputMapping,
    StaticMapping,
    collect_definition_errors,
    default_mappings,
    is_input_group,
    validate_field_configuration,
)
from semform.forms.model import (
    DEFAULT_DISALLOW_REGEX,
    DEFAULT_REPLACE_CHARACTER,
    DEFAULT_SUBJECT_TEMPLATE,
    BlockingPredicate,
    FieldValuePlaceholder,
    SubjectPlaceholder,
    SubjectReplacer,
    UuidPlaceholder,
    check_cardinality_and_duplicates,
    compute_if_subject_was_suggested,
    create_default_value,
    create_raw_composite,
    fetch_initial_values,
    field_initial_state,
    finalize_composite,
    format_error,
    generate_subject_by_template,
    is_restored_composite,
    load_defaults,
    make_default_subject_replacer,
    merge_initial_values,
    ready_to_submit,
    resolve_labels,
    sanitize,
    set_suggested_subject,
    transform_placeholder_value,
    validate_composite,
    validate_field_state,
    was_subject_generated_by_template,
)
from semform.forms.schema import (
    CompositeSchema,
    PlaceholderSettings,
    SubjectTemplateSettings,
    build_composite_schema,
)
from semform.forms.session import VALIDATION_DEBOUNCE_DELAY, FieldReducer, FormSession, Path, ValueReducer
from semform.forms.validation import (
    SUBJECT_EXISTS_MESSAGE,
    SUBJECT_VALIDATION_SOURCE,
    ConstraintResult,
    FieldConstraint,
    ValidationResult,
    apply_model_constraints,
    clear_constraint_errors,
    clear_subject_errors,
    evaluate_constraint,
    find_changed_values,
    merge_constraint_result,
    set_subject_error,
    try_validate_multiple_fields,
    try_validate_single_field,
    update_sub_value,
    validate_model_constraints,
    validate_subject_by_query,
)

__all__ = [
    "Cancellation",
    "CancelledSessionError",
    "DependencyContext",
    "make_dependency_context",
    "try_make_bindings",
    "CompositeConfig",
    "ElementMapping",
    "FieldConfiguration",
    "FieldMapping",
    "InputMapping",
    "StaticMapping",
    "collect_definition_errors",
    "default_mappings",
    "is_input_group",
    "validate_field_configuration",
    "DEFAULT_DISALLOW_REGEX",
    "DEFAULT_REPLACE_CHARACTER",
    "DEFAULT_SUBJECT_TEMPLATE",
    "BlockingPredicate",
    "FieldValuePlaceholder",
    "SubjectPlaceholder",
    "SubjectReplacer",
    "UuidPlaceholder",
    "check_cardinality_and_duplicates",
    "compute_if_subject_was_suggested",
    "create_default_value",
    "create_raw_composite",
    "fetch_initial_values",
    "field_initial_state",
    "finalize_composite",
    "format_error",
    "generate_subject_by_template",
    "is_restored_composite",
    "load_defaults",
    "make_default_subject_replacer",
    "merge_initial_values",
    "ready_to_submit",
    "resolve_labels",
    "sanitize",
    "set_suggested_subject",
    "transform_placeholder_value",
    "validate_composite",
    "validate_field_state",
    "was_subject_generated_by_template",
    "CompositeSchema",
    "PlaceholderSettings",
    "SubjectTemplateSettings",
    "build_composite_schema",
    "VALIDATION_DEBOUNCE_DELAY",
    "FieldReducer",
    "FormSession",
    "Path",
    "ValueReducer",
    "SUBJECT_EXISTS_MESSAGE",
    "SUBJECT_VALIDATION_SOURCE",
    "ConstraintResult",
    "FieldConstraint",
    "ValidationResult",
    "apply_model_constraints",
    "clear_constraint_errors",
    "clear_subject_errors",
    "evaluate_constraint",
    "find_changed_values",
    "merge_constraint_result",
    "set_subject_error",
    "try_validate_multiple_fields",
    "try_validate_single_field",
    "update_sub_value",
    "validate_model_constraints",
    "validate_subject_by_query",
]
