# Copyright 2026 Semform Contributors
# SPDX-License-Identifier: Apache-2.0

"""Interface of persistence backends."""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from semform.model.values import CompositeValue, EmptyValue

# ###############
# Public Interface
# ###############


@runtime_checkable
class TriplestorePersistence(Protocol):
    """Writes the changes between two versions of a form model to a store."""

    async def persist(
        self,
        initial_model: CompositeValue | EmptyValue,
        current_model: CompositeValue | EmptyValue,
    ) -> None:
        """Persist ``current_model`` given that the store holds ``initial_model``.

        Failures are raised to the caller; nothing is retried.
        """
        ...


def is_triplestore_persistence(obj: Any) -> bool:
    return isinstance(obj, TriplestorePersistence)
