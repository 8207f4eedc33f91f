# leadengine/service_layer/locks.py
from __future__ import annotations

import asyncio
import weakref

# One distribution batch at a time per process. Cross-process safety comes from
# the partial unique index on ACTIVE assignments.
BATCH_LOCK = asyncio.Lock()

_LEAD_LOCKS: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()


def lead_lock(lead_id: str) -> asyncio.Lock:
    """
    Per-lead lock so two events for the same lead re-score one after the other.
    Entries vanish once no coroutine holds a reference.
    """
    lock = _LEAD_LOCKS.get(lead_id)
    if lock is None:
        lock = asyncio.Lock()
        _LEAD_LOCKS[lead_id] = lock
    return lock
