# Copyright 2026 Semform Contributors
# SPDX-License-Identifier: Apache-2.0

"""Cancellation handles owning the asyncio tasks of a form session."""

from __future__ import annotations

import asyncio
from collections.abc import Coroutine
from typing import Any, TypeVar

T = TypeVar("T")

# ###############
# Public Interface
# ###############


class CancelledSessionError(RuntimeError):
    """Raised when spawning a task on an already cancelled handle."""


class Cancellation:
    """Owns tasks and child handles; cancelling it cancels all of them.

    Handles form a tree: a form owns a root handle, every load session
    derives a child from it. Reloading cancels the child, tearing the form
    down cancels the root.
    """

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task[Any]] = set()
        self._children: list[Cancellation] = []
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def spawn(self, coroutine: Coroutine[Any, Any, T]) -> asyncio.Task[T]:
        """Schedule ``coroutine`` as a task owned by this handle.

        Raises:
            CancelledSessionError: If the handle is already cancelled.
        """
        if self._cancelled:
            coroutine.close()
            raise CancelledSessionError("Cannot start an operation on a cancelled session")
        task = asyncio.get_running_loop().create_task(coroutine)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def derive(self) -> Cancellation:
        """Create a child handle that is cancelled together with this one."""
        child = Cancellation()
        if self._cancelled:
            child.cancel()
        self._children = [c for c in self._children if not c.cancelled]
        self._children.append(child)
        return child

    def cancel(self) -> None:
        """Cancel every owned task and every child handle."""
        self._cancelled = True
        for task in list(self._tasks):
            task.cancel()
        for child in self._children:
            child.cancel()
        self._children.clear()

    def pending(self) -> list[asyncio.Task[Any]]:
        """Return the unfinished tasks of this handle and its children."""
        tasks = [task for task in self._tasks if not task.done()]
        for child in self._children:
            tasks.extend(child.pending())
        return tasks
