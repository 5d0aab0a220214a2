# Copyright 2026 Semform Contributors
# SPDX-License-Identifier: Apache-2.0

"""Asynchronous constraint validation of composite values.

Constraints are boolean (ASK) queries evaluated by the query service. Every
validation produces a ``CompositeChange`` which is applied to the latest
model snapshot when the result arrives, so edits made while a query was in
flight are never lost. Errors produced by a constraint carry the constraint
itself as their source; a new result for the same constraint replaces them.
"""

from __future__ import annotations

import asyncio
import logging
from collections import Counter
from collections.abc import AsyncIterator, Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Final

from rdflib import URIRef
from rdflib.term import Node

from semform.forms.dependencies import try_make_bindings
from semform.forms.model import format_error
from semform.model.definitions import MultipleFieldConstraint, SingleFieldConstraint
from semform.model.values import (
    EMPTY_STATE,
    AtomicValue,
    CompositeChange,
    CompositeValue,
    ErrorKind,
    FieldError,
    FieldState,
    FieldValue,
    set_field,
    set_state,
    set_value_at_index,
)
from semform.sparql.queries import QuerySyntaxError, query_form
from semform.sparql.services import QueryService

logger = logging.getLogger(__name__)

# ###############
# Public Interface
# ###############

FieldConstraint = SingleFieldConstraint | MultipleFieldConstraint

SUBJECT_VALIDATION_SOURCE: Final = object()
"""Source of errors produced by subject uniqueness validation."""

SUBJECT_EXISTS_MESSAGE = "Entity with the same IRI does already exist"


@dataclass(frozen=True)
class ConstraintResult:
    """Outcome of evaluating a constraint for one value.

    Attributes:
        valid: Whether the constraint holds.
        error: The failure that prevented evaluation, if any.
    """

    valid: bool
    error: BaseException | str | None = None


@dataclass(frozen=True)
class ValidationResult:
    """A finished validation of one constraint.

    Attributes:
        constraint: The evaluated constraint.
        change: Merges the results into the latest model snapshot.
    """

    constraint: FieldConstraint
    change: CompositeChange


def find_changed_values(old_state: FieldState, new_state: FieldState) -> list[Node]:
    """Return the atomic values of ``new_state`` whose multiplicity changed.

    Values are compared by RDF node, so relabeling a value or moving it to
    another position does not count as a change.
    """
    old_counts = _count_values_by_node(old_state.values)
    new_counts = _count_values_by_node(new_state.values)
    return [node for node, count in new_counts.items() if old_counts.get(node, 0) != count]


def clear_constraint_errors(composite: CompositeValue, field_id: str) -> CompositeValue:
    """Remove errors of every multi-field constraint referencing ``field_id``.

    The errors are removed from every field the constraint references, not
    only from ``field_id``.
    """
    result = composite
    for constraint in composite.constraints:
        if field_id not in constraint.fields:
            continue
        for target_id in constraint.fields:
            state = result.fields.get(target_id)
            if state is None:
                continue
            values = tuple(_remove_errors_from(value, constraint) for value in state.values)
            if any(new is not old for new, old in zip(values, state.values, strict=True)):
                result = set_field(result, target_id, set_state(state, values=values))
    return result


def merge_constraint_result(value: FieldValue, constraint: FieldConstraint, result: ConstraintResult) -> FieldValue:
    """Replace the errors of ``constraint`` on ``value`` with the new result."""
    errors = [
        error
        for error in value.errors
        if not (error.kind is ErrorKind.VALIDATION and error.source is constraint)
    ]
    if not result.valid:
        if result.error is not None:
            message = f"Failed to validate due to unexpected error: {format_error(result.error)}"
        else:
            message = constraint.message
        errors.append(FieldError(kind=ErrorKind.VALIDATION, source=constraint, message=message))
    if tuple(errors) == value.errors:
        return value
    return value.model_copy(update={"errors": tuple(errors)})


async def evaluate_constraint(
    constraint: FieldConstraint,
    bindings: Mapping[str, Node],
    query_service: QueryService,
) -> ConstraintResult:
    """Evaluate a constraint query; failures produce an invalid result."""
    try:
        if query_form(constraint.validate_pattern) != "ASK":
            return ConstraintResult(valid=False, error="validatePattern is not an ASK query")
        return ConstraintResult(valid=await query_service.ask(constraint.validate_pattern, bindings))
    except Exception as exc:
        logger.error("Failed to evaluate constraint '%s': %s", constraint.message, exc)
        return ConstraintResult(valid=False, error=exc)


def try_validate_single_field(
    constraint: SingleFieldConstraint,
    composite: CompositeValue,
    field_id: str,
    changed_values: Sequence[Node],
    query_service: QueryService,
) -> Awaitable[ValidationResult] | None:
    """Prepare the evaluation of a single-field constraint for changed values.

    Returns:
        An awaitable producing the validation result, or None if no value
        changed.
    """
    if not changed_values:
        return None
    subject = composite.subject
    nodes = list(changed_values)

    async def validate() -> ValidationResult:
        results = await asyncio.gather(
            *(evaluate_constraint(constraint, {"subject": subject, "value": node}, query_service) for node in nodes)
        )
        by_node = dict(zip(nodes, results, strict=True))

        def change(model: CompositeValue) -> CompositeValue:
            state = model.fields.get(field_id)
            if state is None:
                return model
            return set_field(model, field_id, _apply_results_by_node(state, constraint, by_node))

        return ValidationResult(constraint=constraint, change=change)

    return validate()


def try_validate_multiple_fields(
    constraint: MultipleFieldConstraint,
    composite: CompositeValue,
    query_service: QueryService,
) -> Awaitable[ValidationResult] | None:
    """Prepare the evaluation of a multi-field constraint.

    Returns:
        An awaitable producing the validation result, or None if some
        referenced field has no concrete value.
    """
    bindings = try_make_bindings(composite, constraint.fields)
    if bindings is None:
        return None
    bindings.setdefault("subject", composite.subject)

    async def validate() -> ValidationResult:
        result = await evaluate_constraint(constraint, bindings, query_service)

        def change(model: CompositeValue) -> CompositeValue:
            updated = model
            for field_id in constraint.fields:
                state = updated.fields.get(field_id)
                if state is None:
                    continue
                values = tuple(
                    merge_constraint_result(value, constraint, result) if isinstance(value, AtomicValue) else value
                    for value in state.values
                )
                if any(new is not old for new, old in zip(values, state.values, strict=True)):
                    updated = set_field(updated, field_id, set_state(state, values=values))
            return updated

        return ValidationResult(constraint=constraint, change=change)

    return validate()


def update_sub_value(
    model: CompositeValue,
    field_id: str,
    index: int,
    change: CompositeChange,
) -> CompositeValue:
    """Apply ``change`` to the nested composite at ``field_id[index]``.

    The model is returned unchanged if that position no longer holds a
    composite.
    """
    state = model.fields.get(field_id)
    if state is None or index >= len(state.values):
        return model
    value = state.values[index]
    if not isinstance(value, CompositeValue):
        return model
    changed = change(value)
    if changed is value:
        return model
    return set_field(model, field_id, set_value_at_index(state, index, changed))


async def validate_model_constraints(
    composite: CompositeValue,
    query_service: QueryService,
) -> AsyncIterator[CompositeChange]:
    """Validate every constraint of a composite tree.

    All values count as changed. Changes are yielded as soon as each
    evaluation finishes; the caller folds them onto its latest snapshot.
    Nothing is yielded if there is nothing to validate.
    """
    awaitables = _collect_model_tasks(composite, query_service, _identity)
    tasks = [asyncio.ensure_future(awaitable) for awaitable in awaitables]
    try:
        for next_done in asyncio.as_completed(tasks):
            yield await next_done
    finally:
        for task in tasks:
            task.cancel()


async def apply_model_constraints(composite: CompositeValue, query_service: QueryService) -> CompositeValue:
    """Validate every constraint of a composite tree and return the result."""
    result = composite
    async for change in validate_model_constraints(composite, query_service):
        result = change(result)
    return result


def clear_subject_errors(composite: CompositeValue) -> CompositeValue:
    """Remove errors produced by subject validation."""
    errors = tuple(error for error in composite.errors if error.source is not SUBJECT_VALIDATION_SOURCE)
    if errors == composite.errors:
        return composite
    return composite.model_copy(update={"errors": errors})


def set_subject_error(composite: CompositeValue, message: str | None) -> CompositeValue:
    """Replace the subject validation error of a composite."""
    cleared = clear_subject_errors(composite)
    if message is None:
        return cleared
    error = FieldError(kind=ErrorKind.VALIDATION, source=SUBJECT_VALIDATION_SOURCE, message=message)
    return cleared.model_copy(update={"errors": (*cleared.errors, error)})


async def validate_subject_by_query(
    subject: URIRef,
    ask_query: str,
    query_service: QueryService,
    message: str = SUBJECT_EXISTS_MESSAGE,
) -> CompositeChange:
    """Check that no entity with ``subject`` exists yet.

    The ASK query is evaluated with ``subject`` bound and must be true when
    the subject is valid. The returned change does nothing if the composite
    meanwhile has another subject.
    """
    try:
        form = query_form(ask_query)
    except QuerySyntaxError as exc:
        error_message: str | None = f"Failed to parse query to validate subject IRI: {exc}"
    else:
        if form != "ASK":
            error_message = "Expected ASK query to validate subject IRI"
        else:
            try:
                valid = await query_service.ask(ask_query, {"subject": subject})
            except Exception as exc:
                logger.error("Failed to validate subject <%s>: %s", subject, exc)
                error_message = f"Failed to validate due to unexpected error: {format_error(exc)}"
            else:
                error_message = None if valid else message

    def change(model: CompositeValue) -> CompositeValue:
        if model.subject != subject:
            return model
        return set_subject_error(model, error_message)

    return change


# ################
# Implementation
# ################


def _identity(change: CompositeChange) -> CompositeChange:
    return change


def _count_values_by_node(values: Sequence[FieldValue]) -> Counter[Node]:
    return Counter(value.value for value in values if isinstance(value, AtomicValue))


def _remove_errors_from(value: FieldValue, constraint: FieldConstraint) -> FieldValue:
    errors = tuple(error for error in value.errors if error.source is not constraint)
    if errors == value.errors:
        return value
    return value.model_copy(update={"errors": errors})


def _apply_results_by_node(
    state: FieldState,
    constraint: FieldConstraint,
    results: Mapping[Node, ConstraintResult],
) -> FieldState:
    values = tuple(
        merge_constraint_result(value, constraint, results[value.value])
        if isinstance(value, AtomicValue) and value.value in results
        else value
        for value in state.values
    )
    if all(new is old for new, old in zip(values, state.values, strict=True)):
        return state
    return set_state(state, values=values)


def _collect_model_tasks(
    composite: CompositeValue,
    query_service: QueryService,
    lift: Callable[[CompositeChange], CompositeChange],
) -> list[Awaitable[CompositeChange]]:
    awaitables: list[Awaitable[CompositeChange]] = []

    def lifted(validation: Awaitable[ValidationResult]) -> Awaitable[CompositeChange]:
        async def run() -> CompositeChange:
            result = await validation
            return lift(result.change)

        return run()

    for field_id, definition in composite.definitions.items():
        state = composite.fields.get(field_id, EMPTY_STATE)
        changed = find_changed_values(EMPTY_STATE, state)
        for constraint in definition.constraints:
            validation = try_validate_single_field(constraint, composite, field_id, changed, query_service)
            if validation is not None:
                awaitables.append(lifted(validation))

    for constraint in composite.constraints:
        validation = try_validate_multiple_fields(constraint, composite, query_service)
        if validation is not None:
            awaitables.append(lifted(validation))

    for field_id, state in composite.fields.items():
        for index, value in enumerate(state.values):
            if isinstance(value, CompositeValue):
                awaitables.extend(
                    _collect_model_tasks(value, query_service, _nested_lift(lift, field_id, index))
                )
    return awaitables


def _nested_lift(
    lift: Callable[[CompositeChange], CompositeChange],
    field_id: str,
    index: int,
) -> Callable[[CompositeChange], CompositeChange]:
    def nested(change: CompositeChange) -> CompositeChange:
        return lift(lambda model: update_sub_value(model, field_id, index, change))

    return nested
