# Copyright 2026 Semform Contributors
# SPDX-License-Identifier: Apache-2.0

"""Value model and field definitions of semantic forms."""

from semform.model.definitions import (
    ASK_PATTERN_MESSAGE,
    FieldDefinition,
    FieldDependency,
    MultipleFieldConstraint,
    SingleFieldConstraint,
    expand_datatype,
    normalize_definitions,
    normalize_field_definition,
)
from semform.model.values import (
    EMPTY,
    EMPTY_STATE,
    PLACEHOLDER_SUBJECT,
    AtomicValue,
    CompositeChange,
    CompositeValue,
    DataState,
    EmptyValue,
    ErrorKind,
    FieldError,
    FieldState,
    FieldValue,
    as_rdf_node,
    delete_value_at_index,
    from_labeled,
    get_errors,
    get_single,
    ignore_loading_errors,
    is_atomic,
    is_composite,
    is_empty,
    is_placeholder,
    is_prevent_submit,
    map_fields,
    merge_data_state,
    replace_error,
    set_errors,
    set_field,
    set_state,
    set_value_at_index,
)

__all__ = [
    # Definitions
    "ASK_PATTERN_MESSAGE",
    "FieldDefinition",
    "FieldDependency",
    "MultipleFieldConstraint",
    "SingleFieldConstraint",
    "expand_datatype",
    "normalize_definitions",
    "normalize_field_definition",
    # Values
    "EMPTY",
    "EMPTY_STATE",
    "PLACEHOLDER_SUBJECT",
    "AtomicValue",
    "CompositeChange",
    "CompositeValue",
    "DataState",
    "EmptyValue",
    "ErrorKind",
    "FieldError",
    "FieldState",
    "FieldValue",
    "as_rdf_node",
    "delete_value_at_index",
    "from_labeled",
    "get_errors",
    "get_single",
    "ignore_loading_errors",
    "is_atomic",
    "is_composite",
    "is_empty",
    "is_placeholder",
    "is_prevent_submit",
    "map_fields",
    "merge_data_state",
    "replace_error",
    "set_errors",
    "set_field",
    "set_state",
    "set_value_at_index",
]
