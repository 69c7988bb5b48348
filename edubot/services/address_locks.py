import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator


class AddressLocks:
    """One asyncio.Lock per channel address, dropped once nobody holds or waits on it.

    Events for the same address run one at a time; different addresses never
    wait on each other.
    """

    def __init__(self):
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, address: str) -> AsyncIterator[None]:
        lock = self._locks.get(address)
        if lock is None:
            lock = self._locks[address] = asyncio.Lock()
        self._users[address] = self._users.get(address, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[address] -= 1
            if self._users[address] == 0:
                del self._users[address]
                del self._locks[address]

    def __len__(self) -> int:
        return len(self._locks)

    def is_held(self, address: str) -> bool:
        lock = self._locks.get(address)
        return lock is not None and lock.locked()
