# Copyright 2026 Semform Contributors
# SPDX-License-Identifier: Apache-2.0

"""Direct persistence through SPARQL update requests."""

from __future__ import annotations

import logging
from collections.abc import Mapping

from rdflib import URIRef
from rdflib.term import Node

from semform.model.values import CompositeValue, EmptyValue
from semform.persistence.diff import InsertedValue, ModelDiffEntry, compute_model_diff
from semform.sparql.queries import parametrize, set_default_graph
from semform.sparql.services import DEFAULT_REPOSITORY, QueryService, RepositoryQueryService

logger = logging.getLogger(__name__)

# ###############
# Public Interface
# ###############


class SparqlPersistence:
    """Writes model changes with the insert and delete patterns of each field.

    Only fields declaring both patterns are persisted. For every changed
    field one delete request is issued per removed value, followed by one
    insert request per added value. Requests are issued sequentially in
    that order; the first failure aborts the submission.

    Args:
        query_service: Service executing the update requests.
        repository: Repository to update. Any repository but the default one
            requires a ``RepositoryQueryService``.
        insert_graph: Named graph receiving the statements written by insert
            patterns, optional.
        delete_graph: Named graph losing the statements removed by delete
            patterns, optional.

    Raises:
        ValueError: If ``repository`` cannot be addressed through
            ``query_service``.
    """

    def __init__(
        self,
        query_service: QueryService,
        repository: str = DEFAULT_REPOSITORY,
        insert_graph: str | None = None,
        delete_graph: str | None = None,
    ) -> None:
        if repository != DEFAULT_REPOSITORY:
            if not isinstance(query_service, RepositoryQueryService):
                raise ValueError(f"Query service cannot address repository '{repository}'")
            query_service = query_service.for_repository(repository)
        self._query_service = query_service
        self._repository = repository
        self._insert_graph = insert_graph
        self._delete_graph = delete_graph

    @property
    def repository(self) -> str:
        return self._repository

    @property
    def insert_graph(self) -> str | None:
        return self._insert_graph

    @property
    def delete_graph(self) -> str | None:
        return self._delete_graph

    async def persist(
        self,
        initial_model: CompositeValue | EmptyValue,
        current_model: CompositeValue | EmptyValue,
    ) -> None:
        updates = create_form_update_queries(initial_model, current_model)
        if not updates:
            logger.debug("Nothing to persist")
            return
        for update in updates:
            request = set_default_graph(update, self._insert_graph, self._delete_graph)
            logger.debug("Executing update in repository '%s':\n%s", self._repository, request)
            await self._query_service.update(request, {})


def create_form_update_queries(
    initial_model: CompositeValue | EmptyValue,
    current_model: CompositeValue | EmptyValue,
) -> list[str]:
    """Return the bound update requests turning ``initial_model`` into ``current_model``."""
    queries: list[str] = []
    for entry in compute_model_diff(initial_model, current_model):
        insert_pattern = entry.definition.insert_pattern
        delete_pattern = entry.definition.delete_pattern
        if insert_pattern and delete_pattern:
            queries.extend(_create_field_update_queries(entry, insert_pattern, delete_pattern))
    return queries


def value_bindings(subject: URIRef, inserted: InsertedValue) -> Mapping[str, Node]:
    """Bindings of an insert pattern for one inserted value."""
    bindings: dict[str, Node] = {"subject": subject, "value": inserted.value}
    if inserted.index is not None:
        bindings["index"] = inserted.index
    return bindings


# ################
# Implementation
# ################


def _create_field_update_queries(entry: ModelDiffEntry, insert_pattern: str, delete_pattern: str) -> list[str]:
    queries = [parametrize(delete_pattern, {"subject": entry.subject, "value": node}) for node in entry.deleted]
    queries.extend(parametrize(insert_pattern, value_bindings(entry.subject, inserted)) for inserted in entry.inserted)
    return queries
