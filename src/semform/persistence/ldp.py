# Copyright 2026 Semform Contributors
# SPDX-License-Identifier: Apache-2.0

"""Persistence of whole resources into Linked Data Platform containers.

Unlike ``SparqlPersistence`` the LDP backend does not write deltas: the
complete current state of the resource is sent to its container, which
replaces the previously stored state. Fields declaring only an insert
pattern are therefore supported as well.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Protocol, runtime_checkable

from rdflib import Dataset, URIRef

from semform.model.values import EMPTY, CompositeValue, EmptyValue, is_placeholder
from semform.persistence.diff import ModelDiffEntry, compute_model_diff
from semform.persistence.sparql import value_bindings
from semform.sparql.queries import QuerySyntaxError, parametrize, update_operations
from semform.sparql.services import DEFAULT_REPOSITORY

logger = logging.getLogger(__name__)

# ###############
# Public Interface
# ###############


@runtime_checkable
class LdpClient(Protocol):
    """Transport to the LDP endpoint of the store."""

    async def post_updates(self, resource: str, repository: str, updates: Sequence[str]) -> None:
        """Replace the content of ``resource`` with the result of ``updates``."""
        ...

    async def delete_resource(self, resource: str, repository: str) -> None:
        """Delete ``resource`` and its content."""
        ...


class LdpPersistence:
    """Stores each edited resource as a whole in an LDP container.

    Args:
        client: Transport to the LDP endpoint.
        container_iri: Container receiving every resource. Defaults to
            ``<subject>/container`` of the edited resource.
        repository: Repository to write to.
    """

    def __init__(
        self,
        client: LdpClient,
        container_iri: str | None = None,
        repository: str = DEFAULT_REPOSITORY,
    ) -> None:
        self._client = client
        self._container_iri = container_iri
        self._repository = repository

    async def persist(
        self,
        initial_model: CompositeValue | EmptyValue,
        current_model: CompositeValue | EmptyValue,
    ) -> None:
        if isinstance(current_model, EmptyValue):
            if isinstance(initial_model, EmptyValue) or is_placeholder(initial_model.subject):
                return
            logger.debug("Deleting resource <%s>", initial_model.subject)
            await self._client.delete_resource(self.target_resource(initial_model.subject), self._repository)
            return
        updates = create_form_insert_queries(compute_model_diff(EMPTY, current_model))
        logger.debug("Sending %d insert requests for <%s>", len(updates), current_model.subject)
        await self._client.post_updates(self.target_resource(current_model.subject), self._repository, updates)

    def target_resource(self, subject: URIRef) -> str:
        """Return the LDP resource storing ``subject``."""
        return self._container_iri if self._container_iri else f"{subject}/container"


def create_form_insert_queries(entries: Sequence[ModelDiffEntry]) -> list[str]:
    """Bind the insert pattern of each entry to each of its inserted values.

    Insert patterns consisting of more than one update operation are skipped
    with a warning.
    """
    queries: list[str] = []
    for entry in entries:
        pattern = entry.definition.insert_pattern
        if not pattern or not _is_single_operation(pattern, entry.definition.id):
            continue
        queries.extend(parametrize(pattern, value_bindings(entry.subject, inserted)) for inserted in entry.inserted)
    return queries


class GraphLdpClient:
    """LDP client storing every resource as a named graph of a local dataset."""

    def __init__(self, dataset: Dataset | None = None) -> None:
        self._dataset = dataset if dataset is not None else Dataset()

    @property
    def dataset(self) -> Dataset:
        return self._dataset

    async def post_updates(self, resource: str, repository: str, updates: Sequence[str]) -> None:
        identifier = URIRef(resource)
        self._dataset.remove_graph(identifier)
        graph = self._dataset.graph(identifier)
        for update in updates:
            graph.update(update)

    async def delete_resource(self, resource: str, repository: str) -> None:
        self._dataset.remove_graph(URIRef(resource))


# ################
# Implementation
# ################


def _is_single_operation(pattern: str, field_id: str) -> bool:
    try:
        operations = update_operations(pattern)
    except QuerySyntaxError as exc:
        logger.warning("Skipping insert pattern of field '%s': %s", field_id, exc)
        return False
    if len(operations) != 1:
        logger.warning(
            "Skipping insert pattern of field '%s': expected a single update operation but got %d",
            field_id,
            len(operations),
        )
        return False
    return True
