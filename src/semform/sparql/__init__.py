# Copyright 2026 Semform Contributors
# SPDX-License-Identifier: Apache-2.0

"""SPARQL query helpers and the services the form engine queries."""

from semform.sparql.queries import (
    QuerySyntaxError,
    UpdateOperation,
    parametrize,
    query_form,
    set_default_graph,
    update_operations,
)
from semform.sparql.services import (
    DEFAULT_REPOSITORY,
    Binding,
    LabelService,
    QueryService,
    RdflibLabelService,
    RdflibQueryService,
    RepositoryQueryService,
)

__all__ = [
    "QuerySyntaxError",
    "UpdateOperation",
    "parametrize",
    "query_form",
    "set_default_graph",
    "update_operations",
    "DEFAULT_REPOSITORY",
    "Binding",
    "LabelService",
    "QueryService",
    "RdflibLabelService",
    "RdflibQueryService",
    "RepositoryQueryService",
]
