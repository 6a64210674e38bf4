"""Per-store advisory locks shared by export and restore."""

import asyncio
from contextlib import asynccontextmanager


class StoreLocks:
    """One lock per store.

    Export takes both locks, always document store first, so it never
    interleaves with a restore phase writing to the same store.
    """

    def __init__(self):
        self.document = asyncio.Lock()
        self.tree = asyncio.Lock()

    @asynccontextmanager
    async def both(self):
        async with self.document:
            async with self.tree:
                yield

    def locked(self) -> bool:
        return self.document.locked() or self.tree.locked()
