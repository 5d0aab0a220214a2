# Copyright 2026 Semform Contributors
# SPDX-License-Identifier: Apache-2.0

"""Creation of persistence backends from form configuration."""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from typing import Any

from semform.persistence.base import TriplestorePersistence
from semform.persistence.ldp import GraphLdpClient, LdpClient, LdpPersistence
from semform.persistence.sparql import SparqlPersistence
from semform.sparql.services import DEFAULT_REPOSITORY, QueryService

logger = logging.getLogger(__name__)

# ###############
# Public Interface
# ###############

PersistenceFactory = Callable[[Mapping[str, Any], QueryService, LdpClient], TriplestorePersistence]


def register_persistence(persistence_type: str, factory: PersistenceFactory) -> None:
    """Make a custom persistence backend available under ``persistence_type``."""
    _REGISTRY[persistence_type] = factory


def make_persistence(
    config: Mapping[str, Any] | None,
    query_service: QueryService,
    ldp_client: LdpClient | None = None,
) -> TriplestorePersistence:
    """Create the persistence backend described by ``config``.

    ``config["type"]`` selects the backend: ``sparql`` (alias
    ``client-side-sparql``), ``ldp`` or a registered custom type. SPARQL
    persistence reads ``repository``, ``insertGraph`` and ``deleteGraph``,
    LDP persistence reads ``containerIri`` and ``repository``. A missing
    configuration selects LDP; an unknown type falls back to LDP with a
    warning.

    Args:
        config: The ``persistence`` section of a form configuration.
        query_service: Service executing update requests.
        ldp_client: Transport to the LDP endpoint; a local in-memory client
            is used if None.
    """
    config = config or {}
    client = ldp_client if ldp_client is not None else GraphLdpClient()
    persistence_type = config.get("type", "ldp")
    factory = _REGISTRY.get(persistence_type)
    if factory is None:
        logger.warning("Unknown persistence type '%s', falling back to LDP persistence", persistence_type)
        factory = _make_ldp
    return factory(config, query_service, client)


# ################
# Implementation
# ################


def _make_ldp(config: Mapping[str, Any], query_service: QueryService, client: LdpClient) -> TriplestorePersistence:
    return LdpPersistence(
        client,
        container_iri=config.get("containerIri"),
        repository=config.get("repository", DEFAULT_REPOSITORY),
    )


def _make_sparql(config: Mapping[str, Any], query_service: QueryService, client: LdpClient) -> TriplestorePersistence:
    return SparqlPersistence(
        query_service,
        repository=config.get("repository", DEFAULT_REPOSITORY),
        insert_graph=config.get("insertGraph"),
        delete_graph=config.get("deleteGraph"),
    )


_REGISTRY: dict[str, PersistenceFactory] = {
    "ldp": _make_ldp,
    "sparql": _make_sparql,
    "client-side-sparql": _make_sparql,
}
