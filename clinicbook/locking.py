"""Per-doctor serialization of check-then-write sequences."""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager


class DoctorLocks:
    """One asyncio.Lock per doctor.

    Booking and rescheduling hold the doctor's lock from the conflict
    check until the write commits, so two requests in this process can
    never both pass the check for the same calendar. Stores still
    enforce uniqueness for writers outside the process.
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}

    def lock_for(self, doctor_id: str) -> asyncio.Lock:
        lock = self._locks.get(doctor_id)
        if lock is None:
            lock = self._locks[doctor_id] = asyncio.Lock()
        return lock

    @asynccontextmanager
    async def hold(self, doctor_id: str) -> AsyncIterator[None]:
        async with self.lock_for(doctor_id):
            yield

    def __len__(self) -> int:
        return len(self._locks)
