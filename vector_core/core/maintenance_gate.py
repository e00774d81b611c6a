"""
Readers/writer gate separating maintenance from ordinary store traffic.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator


class MaintenanceGate:
    """
    Async gate with a shared mode and an exclusive mode.

    Any number of shared holders may run together. An exclusive holder runs alone.
    A waiting exclusive request blocks new shared entries so maintenance cannot be
    starved by a steady stream of queries.
    """

    def __init__(self):
        self._condition = asyncio.Condition()
        self._shared = 0
        self._exclusive = False
        self._exclusive_waiting = 0

    @property
    def shared_holders(self) -> int:
        return self._shared

    @property
    def is_exclusive(self) -> bool:
        return self._exclusive

    @asynccontextmanager
    async def shared(self) -> AsyncIterator[None]:
        async with self._condition:
            await self._condition.wait_for(
                lambda: not self._exclusive and self._exclusive_waiting == 0
            )
            self._shared += 1
        try:
            yield
        finally:
            async with self._condition:
                self._shared -= 1
                self._condition.notify_all()

    @asynccontextmanager
    async def exclusive(self) -> AsyncIterator[None]:
        async with self._condition:
            self._exclusive_waiting += 1
            try:
                await self._condition.wait_for(lambda: not self._exclusive and self._shared == 0)
            finally:
                self._exclusive_waiting -= 1
                # A cancelled waiter must release the shared entries it was holding back
                self._condition.notify_all()
            self._exclusive = True
        try:
            yield
        finally:
            async with self._condition:
                self._exclusive = False
                self._condition.notify_all()
