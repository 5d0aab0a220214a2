# Copyright 2026 Semform Contributors
# SPDX-License-Identifier: Apache-2.0

"""Editing session of a semantic form.

A ``FormSession`` owns the current model of a form and every asynchronous
operation working on it: loading of the root composite and of nested
composites, label lookup, debounced constraint validation and subject
validation. Edits are expressed as reducers and applied synchronously;
results of asynchronous operations are applied to the latest snapshot when
they arrive.

Nested composites are addressed by a path of ``(field id, value index)``
pairs starting at the root composite. Pending operations of a nested composite
follow it when values of the owning field are removed or reordered.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field

from rdflib import URIRef
from rdflib.term import Node

from semform.forms.cancellation import Cancellation
from semform.forms.dependencies import DependencyContext, make_dependency_context
from semform.forms.model import (
    create_raw_composite,
    finalize_composite,
    is_restored_composite,
    load_defaults,
    merge_initial_values,
    ready_to_submit,
    resolve_labels,
    set_suggested_subject,
    validate_composite,
    validate_field_state,
)
from semform.forms.schema import CompositeSchema
from semform.forms.validation import (
    FieldConstraint,
    clear_constraint_errors,
    clear_subject_errors,
    find_changed_values,
    try_validate_multiple_fields,
    try_validate_single_field,
    update_sub_value,
    validate_model_constraints,
    validate_subject_by_query,
)
from semform.model.definitions import MultipleFieldConstraint
from semform.model.values import (
    EMPTY,
    EMPTY_STATE,
    AtomicValue,
    CompositeChange,
    CompositeValue,
    DataState,
    FieldState,
    FieldValue,
    as_rdf_node,
    is_placeholder,
    merge_data_state,
    set_field,
    set_value_at_index,
)
from semform.persistence.base import TriplestorePersistence
from semform.persistence.patch import ValuePatch, apply_value_patch
from semform.sparql.services import LabelService, QueryService

logger = logging.getLogger(__name__)

# ###############
# Public Interface
# ###############

VALIDATION_DEBOUNCE_DELAY = 0.5
"""Seconds an edited field stays quiet before its constraints are evaluated."""

Path = tuple[tuple[str, int], ...]
FieldReducer = Callable[[FieldState], FieldState]
ValueReducer = Callable[[FieldValue], FieldValue]


class FormSession:
    """Loads, edits, validates and submits the model of one form.

    All methods must be called from within a running event loop. Example::

        async with FormSession(schema, query_service) as session:
            await session.load("http://example.com/person/1")
            session.update_value("name", 0, lambda _: AtomicValue(value=Literal("Ada")))
            await session.submit(persistence)

    Args:
        schema: Schema of the root composite.
        query_service: Evaluates select and ask queries.
        label_service: Resolves labels of loaded IRIs, optional.
        debounce: Validation debounce window in seconds.
        subject_validation_query: ASK query that must hold for a changed
            root subject, optional.
        on_change: Called with every new model snapshot.
    """

    def __init__(
        self,
        schema: CompositeSchema,
        query_service: QueryService,
        label_service: LabelService | None = None,
        *,
        debounce: float = VALIDATION_DEBOUNCE_DELAY,
        subject_validation_query: str | None = None,
        on_change: Callable[[CompositeValue], None] | None = None,
    ) -> None:
        self._schema = schema
        self._query_service = query_service
        self._label_service = label_service
        self._debounce = debounce
        self._subject_validation_query = subject_validation_query
        self._on_change = on_change

        self._root = Cancellation()
        self._session = self._root.derive()
        self._model: CompositeValue | None = None
        self._initial_model: CompositeValue | None = None
        self._patch: ValuePatch | None = None
        self._recovered = False
        self._loading: dict[Path, _PendingTask] = {}
        self._label_lookups: set[_PendingTask] = set()
        self._validations: dict[tuple[Path, int], _PendingValidation] = {}
        self._subject_validation: asyncio.Task[None] | None = None
        self._dependency_contexts: dict[tuple[Path, str], DependencyContext] = {}

    async def __aenter__(self) -> FormSession:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self.close()

    @property
    def schema(self) -> CompositeSchema:
        return self._schema

    @property
    def model(self) -> CompositeValue | None:
        """The latest model snapshot, None before the first load."""
        return self._model

    @property
    def initial_model(self) -> CompositeValue | None:
        """The model as it was when loading finished, before any edit."""
        return self._initial_model

    @property
    def recovered(self) -> bool:
        """Whether unsaved edits were restored from a value patch."""
        return self._recovered

    def data_state(self, path: Path = ()) -> DataState:
        """Return the state of the composite at ``path`` and its descendants."""
        if self._model is None:
            return DataState.LOADING
        state = DataState.READY
        if any(_is_within(loading, path) for loading in self._loading):
            state = merge_data_state(state, DataState.LOADING)
        if any(_is_within(key[0], path) for key in self._validations):
            state = merge_data_state(state, DataState.VERIFYING)
        if path == () and self._subject_validation is not None and not self._subject_validation.done():
            state = merge_data_state(state, DataState.VERIFYING)
        return state

    def start_load(self, subject: str | URIRef | None = None, patch: ValuePatch | None = None) -> None:
        """Start loading the form for ``subject``, or a new resource if None.

        Every operation of the previous load is cancelled. The model is a raw
        composite right after this call. ``patch`` holds unsaved edits to
        restore once loading has finished.
        """
        self._session.cancel()
        self._session = self._root.derive()
        self._loading.clear()
        self._label_lookups.clear()
        self._validations.clear()
        self._dependency_contexts.clear()
        self._subject_validation = None
        self._model = None
        self._initial_model = None
        self._patch = patch
        self._recovered = False

        source: FieldValue = AtomicValue(value=URIRef(subject)) if subject else EMPTY
        self._start_composite_load((), source, self._schema)

    async def load(
        self,
        subject: str | URIRef | None = None,
        patch: ValuePatch | None = None,
        validate: bool = False,
    ) -> CompositeValue:
        """Load the form and wait until it and all nested composites are loaded.

        Args:
            subject: IRI of the edited resource, None for a new resource.
            patch: Unsaved edits to restore after loading.
            validate: Check input errors and every constraint after loading.

        Returns:
            The loaded model.
        """
        self.start_load(subject, patch)
        await self.wait_loaded()
        if validate:
            self.validate()
            await self.validate_constraints()
        return self._require_composite(())

    async def wait_loaded(self) -> None:
        """Wait until no composite is loading."""
        while tasks := [pending.task for pending in self._loading.values() if pending.task is not None]:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def wait_idle(self) -> None:
        """Wait until loading, label lookups and all validations have finished."""
        while tasks := self._session.pending():
            await asyncio.gather(*tasks, return_exceptions=True)

    def composite_at(self, path: Path = ()) -> CompositeValue | None:
        """Return the composite at ``path`` or None if there is none."""
        current = self._model
        for field_id, index in path:
            if current is None:
                return None
            state = current.fields.get(field_id)
            if state is None or index >= len(state.values):
                return None
            value = state.values[index]
            current = value if isinstance(value, CompositeValue) else None
        return current

    def update_field(self, field_id: str, reducer: FieldReducer, path: Path = ()) -> None:
        """Apply an edit to the state of one field.

        Input errors of the field are recomputed, errors of multi-field
        constraints involving the field are cleared, a suggested subject is
        regenerated and validation of the field is restarted after the
        debounce window.

        Raises:
            LookupError: If there is no composite at ``path``.
        """
        composite = self._require_composite(path)
        schema = self._schema_at(path)
        old_state = composite.fields.get(field_id, EMPTY_STATE)
        new_state = reducer(old_state)
        definition = composite.definitions.get(field_id)
        if definition is not None:
            new_state = validate_field_state(new_state, definition, validate_values=False)

        updated = set_field(composite, field_id, new_state)
        updated = clear_constraint_errors(updated, field_id)
        updated = set_suggested_subject(
            updated, schema.subject_template, schema.subject_template_settings, self._owner_subject(path)
        )
        subject_changed = updated.subject != composite.subject
        if subject_changed and path == ():
            updated = clear_subject_errors(updated)
        self._apply(path, lambda _: updated)
        if field_id in schema.nested:
            self._relocate_nested(path, field_id, old_state.values, updated.fields[field_id].values)

        if subject_changed and path == ():
            self._start_subject_validation(updated.subject)
        self._restart_field_validation(path, field_id, find_changed_values(old_state, new_state))
        if field_id in schema.nested:
            self._spawn_nested_loads(path, schema, [field_id])

    def update_value(self, field_id: str, index: int, reducer: ValueReducer, path: Path = ()) -> None:
        """Apply an edit to a single value of a field.

        Raises:
            IndexError: If the field has no value at ``index``.
        """

        def reduce_state(state: FieldState) -> FieldState:
            if not 0 <= index < len(state.values):
                raise IndexError(f"Field '{field_id}' has no value at index {index}")
            return set_value_at_index(state, index, reducer(state.values[index]))

        self.update_field(field_id, reduce_state, path)

    def update_subject(self, subject: str | URIRef, path: Path = ()) -> None:
        """Set the subject of the composite at ``path`` explicitly.

        The subject is no longer suggested afterwards. A changed root subject
        is validated after the debounce window.
        """
        composite = self._require_composite(path)
        subject = URIRef(subject)
        updated = composite.model_copy(update={"subject": subject, "suggest_subject": False})
        if path == ():
            updated = clear_subject_errors(updated)
        self._apply(path, lambda _: updated)
        if path == () and subject != composite.subject:
            self._start_subject_validation(subject)

    def set_suggest_subject(self, suggest: bool, path: Path = ()) -> None:
        """Enable or disable generating the subject from field values."""
        composite = self._require_composite(path)
        schema = self._schema_at(path)
        updated = composite.model_copy(update={"suggest_subject": suggest})
        updated = set_suggested_subject(
            updated, schema.subject_template, schema.subject_template_settings, self._owner_subject(path)
        )
        self._apply(path, lambda _: updated)
        if path == () and updated.subject != composite.subject:
            self._start_subject_validation(updated.subject)

    def dependency_context(self, field_id: str, path: Path = ()) -> DependencyContext | None:
        """Return the bound queries of a dependent field.

        The same context object is returned as long as the values the field
        depends on do not change.
        """
        composite = self.composite_at(path)
        if composite is None:
            return None
        dependency = next((d for d in self._schema_at(path).dependencies if d.field == field_id), None)
        if dependency is None:
            return None
        key = (path, field_id)
        context = make_dependency_context(dependency, composite, self._dependency_contexts.get(key))
        if context is None:
            self._dependency_contexts.pop(key, None)
        else:
            self._dependency_contexts[key] = context
        return context

    def validate(self) -> CompositeValue:
        """Recompute the input errors of the whole model and return it."""
        self._apply((), validate_composite)
        return self._require_composite(())

    async def validate_constraints(self) -> CompositeValue:
        """Evaluate every constraint of the whole model and return it."""
        async for change in validate_model_constraints(self._require_composite(()), self._query_service):
            self._apply((), change)
        return self._require_composite(())

    def can_submit(self) -> bool:
        """Return True if the form is ready and has no blocking errors."""
        return self._model is not None and self.data_state() is DataState.READY and ready_to_submit(self._model)

    def finalize(self) -> CompositeValue:
        """Return the model with subjects generated for every new composite."""
        return finalize_composite(self._require_composite(()), None, self._schema)

    async def submit(self, persistence: TriplestorePersistence) -> CompositeValue | None:
        """Validate, finalize and persist the model.

        Waits for pending operations first. Persistence errors propagate to
        the caller and leave the session unchanged.

        Returns:
            The persisted model, or None if blocking errors prevent
            submission.
        """
        await self.wait_idle()
        self.validate()
        if not self.can_submit():
            logger.info("Form has blocking errors, submission skipped")
            return None
        final = self.finalize()
        initial = self._initial_model if self._initial_model is not None else EMPTY
        await persistence.persist(initial, final)
        self._set_model(final)
        self._initial_model = final
        return final

    def close(self) -> None:
        """Cancel every outstanding operation of the session."""
        self._root.cancel()
        self._loading.clear()
        self._label_lookups.clear()
        self._validations.clear()
        self._subject_validation = None

    # ----- loading -----

    def _start_composite_load(self, path: Path, source: FieldValue, schema: CompositeSchema) -> None:
        raw = create_raw_composite(source, schema)
        if path:
            field_id, index = path[-1]

            def replace_source(model: CompositeValue) -> CompositeValue:
                state = model.fields.get(field_id)
                if state is None or index >= len(state.values) or state.values[index] is not source:
                    return model
                return set_field(model, field_id, set_value_at_index(state, index, raw))

            self._apply(path[:-1], replace_source)
        else:
            self._set_model(raw)
        pending = _PendingTask(path)
        self._loading[path] = pending
        pending.task = self._session.spawn(self._load_composite(pending, raw, source, schema))

    async def _load_composite(
        self, pending: _PendingTask, raw: CompositeValue, source: FieldValue, schema: CompositeSchema
    ) -> None:
        try:
            change = await load_defaults(raw, schema.inputs, self._query_service)

            def merge(model: CompositeValue) -> CompositeValue:
                loaded = change(model)
                if isinstance(source, CompositeValue) and is_restored_composite(source):
                    loaded = merge_initial_values(loaded, source)
                return loaded

            self._apply(pending.path, merge)
            loaded = self.composite_at(pending.path)
            if loaded is not None:
                if self._label_service is not None:
                    lookup = _PendingTask(pending.path)
                    self._label_lookups.add(lookup)
                    lookup.task = self._session.spawn(self._resolve_labels(lookup, loaded, self._label_service))
                self._spawn_nested_loads(pending.path, schema, list(schema.nested))
        finally:
            if self._loading.get(pending.path) is pending:
                del self._loading[pending.path]
        if not self._loading:
            self._on_loads_settled()

    async def _resolve_labels(
        self, lookup: _PendingTask, composite: CompositeValue, label_service: LabelService
    ) -> None:
        try:
            change = await resolve_labels(composite, label_service)
            self._apply(lookup.path, change)
        finally:
            self._label_lookups.discard(lookup)

    def _spawn_nested_loads(self, path: Path, schema: CompositeSchema, field_ids: Iterable[str]) -> None:
        composite = self.composite_at(path)
        if composite is None:
            return
        for field_id in field_ids:
            nested_schema = schema.nested.get(field_id)
            state = composite.fields.get(field_id)
            if nested_schema is None or state is None:
                continue
            for index, value in enumerate(state.values):
                child = (*path, (field_id, index))
                if child in self._loading:
                    continue
                if isinstance(value, CompositeValue) and value.definitions:
                    self._spawn_nested_loads(child, nested_schema, list(nested_schema.nested))
                else:
                    self._start_composite_load(child, value, nested_schema)

    def _on_loads_settled(self) -> None:
        if self._model is None or self._initial_model is not None:
            return
        self._initial_model = self._model
        logger.debug("Loaded form for <%s>", self._model.subject)
        if self._patch is None:
            return
        patched = apply_value_patch(self._model, self._patch)
        self._patch = None
        if patched is not self._model:
            self._recovered = True
            self._set_model(patched)
            self._spawn_nested_loads((), self._schema, list(self._schema.nested))

    def _relocate_nested(
        self, path: Path, field_id: str, old_values: Sequence[FieldValue], new_values: Sequence[FieldValue]
    ) -> None:
        """Move pending work of nested composites of ``field_id`` to their new positions.

        Work of composites that were removed is cancelled.
        """
        positions = _match_positions(old_values, new_values)
        if all(old == new for old, new in positions.items()) and len(positions) == len(old_values):
            return
        depth = len(path)

        def relocate(target: Path) -> Path | None:
            if len(target) <= depth or target[:depth] != path or target[depth][0] != field_id:
                return target
            index = positions.get(target[depth][1])
            if index is None:
                return None
            return (*path, (field_id, index), *target[depth + 1 :])

        loading: dict[Path, _PendingTask] = {}
        for pending in self._loading.values():
            target = relocate(pending.path)
            if target is None:
                pending.cancel()
                continue
            pending.path = target
            loading[target] = pending
        settled = bool(self._loading) and not loading
        self._loading = loading

        for lookup in list(self._label_lookups):
            target = relocate(lookup.path)
            if target is None:
                lookup.cancel()
                self._label_lookups.discard(lookup)
            else:
                lookup.path = target

        validations: dict[tuple[Path, int], _PendingValidation] = {}
        for validation in self._validations.values():
            target = relocate(validation.path)
            if target is None:
                validation.cancel()
                continue
            validation.path = target
            validations[validation.key] = validation
        self._validations = validations

        contexts: dict[tuple[Path, str], DependencyContext] = {}
        for (context_path, context_field), context in self._dependency_contexts.items():
            target = relocate(context_path)
            if target is not None:
                contexts[(target, context_field)] = context
        self._dependency_contexts = contexts

        if settled:
            self._on_loads_settled()

    # ----- validation -----

    def _restart_field_validation(self, path: Path, field_id: str, changed: Iterable[Node]) -> None:
        composite = self.composite_at(path)
        if composite is None or path in self._loading:
            return
        definition = composite.definitions.get(field_id)
        if definition is not None:
            for constraint in definition.constraints:
                previous = self._cancel_validation((path, id(constraint)))
                nodes = set(changed) | (previous.nodes if previous is not None else set())
                if nodes:
                    self._schedule_validation(_PendingValidation(path, constraint, field_id, nodes))
        for constraint in composite.constraints:
            if field_id in constraint.fields:
                self._cancel_validation((path, id(constraint)))
                self._schedule_validation(_PendingValidation(path, constraint, field_id))

    def _cancel_validation(self, key: tuple[Path, int]) -> _PendingValidation | None:
        pending = self._validations.pop(key, None)
        if pending is not None:
            pending.cancel()
        return pending

    def _schedule_validation(self, pending: _PendingValidation) -> None:
        self._validations[pending.key] = pending
        pending.task = self._session.spawn(self._run_validation(pending))

    async def _run_validation(self, pending: _PendingValidation) -> None:
        try:
            await asyncio.sleep(self._debounce)
            composite = self.composite_at(pending.path)
            if composite is None:
                return
            constraint = pending.constraint
            if isinstance(constraint, MultipleFieldConstraint):
                awaitable = try_validate_multiple_fields(constraint, composite, self._query_service)
            else:
                state = composite.fields.get(pending.field_id, EMPTY_STATE)
                present = {as_rdf_node(value) for value in state.values}
                nodes = [node for node in pending.nodes if node in present]
                awaitable = try_validate_single_field(
                    constraint, composite, pending.field_id, nodes, self._query_service
                )
            if awaitable is None:
                return
            result = await awaitable
            self._apply(pending.path, result.change)
        finally:
            if self._validations.get(pending.key) is pending:
                del self._validations[pending.key]

    def _start_subject_validation(self, subject: URIRef) -> None:
        if self._subject_validation is not None:
            self._subject_validation.cancel()
            self._subject_validation = None
        if self._subject_validation_query is None or is_placeholder(subject):
            return
        self._subject_validation = self._session.spawn(
            self._validate_subject(subject, self._subject_validation_query)
        )

    async def _validate_subject(self, subject: URIRef, query: str) -> None:
        await asyncio.sleep(self._debounce)
        self._apply((), await validate_subject_by_query(subject, query, self._query_service))

    # ----- model access -----

    def _require_composite(self, path: Path) -> CompositeValue:
        composite = self.composite_at(path)
        if composite is None:
            raise LookupError(f"No composite value at path {path!r}")
        return composite

    def _schema_at(self, path: Path) -> CompositeSchema:
        schema = self._schema
        for field_id, _ in path:
            schema = schema.nested[field_id]
        return schema

    def _owner_subject(self, path: Path) -> URIRef | None:
        if not path:
            return None
        owner = self.composite_at(path[:-1])
        return owner.subject if owner is not None else None

    def _set_model(self, model: CompositeValue) -> None:
        if model is self._model:
            return
        self._model = model
        if self._on_change is not None:
            self._on_change(model)

    def _apply(self, path: Path, change: CompositeChange) -> None:
        if self._model is not None:
            self._set_model(_update_at_path(self._model, path, change))


# ################
# Implementation
# ################


@dataclass(eq=False)
class _PendingTask:
    path: Path
    task: asyncio.Task[None] | None = None

    def cancel(self) -> None:
        if self.task is not None:
            self.task.cancel()


@dataclass(eq=False)
class _PendingValidation:
    path: Path
    constraint: FieldConstraint
    field_id: str
    nodes: set[Node] = field(default_factory=set)
    task: asyncio.Task[None] | None = None

    @property
    def key(self) -> tuple[Path, int]:
        return (self.path, id(self.constraint))

    def cancel(self) -> None:
        if self.task is not None:
            self.task.cancel()


def _match_positions(old_values: Sequence[FieldValue], new_values: Sequence[FieldValue]) -> dict[int, int]:
    """Map old value positions to new ones.

    Values are matched by identity first. A composite replaced in place keeps
    its position.
    """
    unmatched = list(range(len(new_values)))
    positions: dict[int, int] = {}
    for old_index, value in enumerate(old_values):
        new_index = next((i for i in unmatched if new_values[i] is value), None)
        if new_index is not None:
            positions[old_index] = new_index
            unmatched.remove(new_index)
    for old_index in range(len(old_values)):
        if old_index not in positions and old_index in unmatched and isinstance(new_values[old_index], CompositeValue):
            positions[old_index] = old_index
            unmatched.remove(old_index)
    return positions


def _is_within(path: Path, ancestor: Path) -> bool:
    return path[: len(ancestor)] == ancestor


def _update_at_path(model: CompositeValue, path: Path, change: CompositeChange) -> CompositeValue:
    if not path:
        return change(model)
    (field_id, index), rest = path[0], path[1:]
    return update_sub_value(model, field_id, index, lambda sub: _update_at_path(sub, rest, change))
