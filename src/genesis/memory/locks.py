"""Per-subject write serialization."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from contextvars import ContextVar
from typing import AsyncIterator


class SubjectLocks:
    """One asyncio.Lock per subject.

    Writers to the same subject queue behind each other; writers to
    different subjects never contend. `hold` is re-entrant within one task
    context, so a batch holding the lock can call the same locked methods
    the interactive path uses.
    """

    def __init__(self):
        self._locks: dict[str, asyncio.Lock] = {}
        self._held: ContextVar[frozenset[str]] = ContextVar(
            f"genesis_held_subjects_{id(self)}", default=frozenset()
        )

    def get(self, subject_id: str) -> asyncio.Lock:
        lock = self._locks.get(subject_id)
        if lock is None:
            lock = self._locks[subject_id] = asyncio.Lock()
        return lock

    @asynccontextmanager
    async def hold(self, subject_id: str) -> AsyncIterator[None]:
        held = self._held.get()
        if subject_id in held:
            yield
            return

        async with self.get(subject_id):
            token = self._held.set(held | {subject_id})
            try:
                yield
            finally:
                self._held.reset(token)

    def is_locked(self, subject_id: str) -> bool:
        lock = self._locks.get(subject_id)
        return lock is not None and lock.locked()

    def __len__(self) -> int:
        return len(self._locks)
