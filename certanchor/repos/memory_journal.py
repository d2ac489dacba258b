"""Undo journal for the in-memory repos.

In-memory repo writes land immediately, so InMemoryStore.rollback()
needs a record of what to put back.  Each write made from inside an
asyncio task is recorded against that task until the task commits or
rolls back, so one unit of work never undoes another's writes.
"""

from __future__ import annotations

import asyncio
import weakref
from collections.abc import Callable, MutableMapping
from typing import Any

_MISSING = object()


class MemoryJournal:
    def __init__(self) -> None:
        self._pending: weakref.WeakKeyDictionary[asyncio.Task, list[Callable[[], None]]] = (
            weakref.WeakKeyDictionary()
        )

    def put(self, mapping: MutableMapping[Any, Any], key: Any, value: Any) -> None:
        previous = mapping.get(key, _MISSING)
        mapping[key] = value

        def undo() -> None:
            if previous is _MISSING:
                mapping.pop(key, None)
            else:
                mapping[key] = previous

        task = asyncio.current_task()
        if task is not None:
            self._pending.setdefault(task, []).append(undo)

    def commit(self) -> None:
        task = asyncio.current_task()
        if task is not None:
            self._pending.pop(task, None)

    def rollback(self) -> int:
        """Undo the current task's uncommitted writes, newest first."""
        task = asyncio.current_task()
        undos = self._pending.pop(task, []) if task is not None else []
        for undo in reversed(undos):
            undo()
        return len(undos)

    def clear(self) -> None:
        self._pending.clear()
