# Copyright 2026 Semform Contributors
# SPDX-License-Identifier: Apache-2.0

"""Model diff and persistence backends of semantic forms."""

from semform.persistence.base import TriplestorePersistence, is_triplestore_persistence
from semform.persistence.diff import InsertedValue, ModelDiffEntry, compute_model_diff
from semform.persistence.factory import PersistenceFactory, make_persistence, register_persistence
from semform.persistence.ldp import (
    GraphLdpClient,
    LdpClient,
    LdpPersistence,
    create_form_insert_queries,
)
from semform.persistence.patch import (
    PATCH_FORMAT_VERSION,
    LocalPatchStore,
    PatchStoreError,
    StoredPatch,
    ValuePatch,
    apply_value_patch,
    compute_value_patch,
)
from semform.persistence.sparql import SparqlPersistence, create_form_update_queries, value_bindings
from semform.sparql.services import DEFAULT_REPOSITORY

__all__ = [
    "TriplestorePersistence",
    "is_triplestore_persistence",
    "InsertedValue",
    "ModelDiffEntry",
    "compute_model_diff",
    "PersistenceFactory",
    "make_persistence",
    "register_persistence",
    "DEFAULT_REPOSITORY",
    "GraphLdpClient",
    "LdpClient",
    "LdpPersistence",
    "create_form_insert_queries",
    "PATCH_FORMAT_VERSION",
    "LocalPatchStore",
    "PatchStoreError",
    "StoredPatch",
    "ValuePatch",
    "apply_value_patch",
    "compute_value_patch",
    "SparqlPersistence",
    "create_form_update_queries",
    "value_bindings",
]
