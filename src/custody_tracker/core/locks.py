"""Per-asset locks serializing validate-then-append within one process."""

import asyncio
import threading
import weakref
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Dict, Iterable, List
from uuid import UUID


@dataclass
class _Entry:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    users: int = 0


class AssetLockRegistry:
    """
    Hands out one asyncio.Lock per asset id.

    Locks are kept per event loop and only while someone holds or waits for
    them; the last user out drops the lock.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._by_loop: "weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, Dict[UUID, _Entry]]" = (
            weakref.WeakKeyDictionary()
        )

    def _checkout(self, asset_id: UUID) -> asyncio.Lock:
        loop = asyncio.get_running_loop()
        with self._guard:
            entries = self._by_loop.setdefault(loop, {})
            entry = entries.get(asset_id)
            if entry is None:
                entry = entries[asset_id] = _Entry()
            entry.users += 1
            return entry.lock

    def _checkin(self, asset_id: UUID) -> None:
        loop = asyncio.get_running_loop()
        with self._guard:
            entries = self._by_loop[loop]
            entry = entries[asset_id]
            entry.users -= 1
            if entry.users == 0:
                del entries[asset_id]

    def tracked(self) -> int:
        """Number of assets with a live lock on the running loop."""
        with self._guard:
            return len(self._by_loop.get(asyncio.get_running_loop(), {}))

    def is_held(self, asset_id: UUID) -> bool:
        """Whether the asset's lock is currently held on the running loop."""
        with self._guard:
            entry = self._by_loop.get(asyncio.get_running_loop(), {}).get(asset_id)
            return entry is not None and entry.lock.locked()

    @asynccontextmanager
    async def hold(self, asset_id: UUID):
        """Hold the lock for one asset."""
        lock = self._checkout(asset_id)
        try:
            async with lock:
                yield
        finally:
            self._checkin(asset_id)

    @asynccontextmanager
    async def hold_many(self, asset_ids: Iterable[UUID]):
        """Hold the locks for several assets, acquired in id order."""
        ordered = sorted(set(asset_ids))
        locks = [self._checkout(asset_id) for asset_id in ordered]
        acquired: List[asyncio.Lock] = []
        try:
            for lock in locks:
                await lock.acquire()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()
            for asset_id in ordered:
                self._checkin(asset_id)


# Shared by every request handled by this process
asset_locks = AssetLockRegistry()
