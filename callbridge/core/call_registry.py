"""Concurrent mapping from call id to CallState."""

from __future__ import annotations

import asyncio
from typing import Callable, Dict, List, Optional, TypeVar

from prometheus_client import Gauge

from callbridge.core.models import CallState
from callbridge.logging_config import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

_ACTIVE_CALLS = Gauge(
    "callbridge_active_calls",
    "Number of calls currently held in the call registry",
)


class CallRegistry:
    """
    Registry of active calls.

    Every operation runs under one asyncio lock, so an update observes and
    mutates a CallState with no interleaving from other tasks. Callbacks
    passed to ``update`` must not await.
    """

    def __init__(self) -> None:
        self._calls: Dict[str, CallState] = {}
        self._lock = asyncio.Lock()

    async def put(self, call_id: str, state: CallState) -> None:
        async with self._lock:
            if call_id in self._calls:
                logger.warning("Replacing existing call entry", call_id=call_id)
            self._calls[call_id] = state
            _ACTIVE_CALLS.set(len(self._calls))

    async def get(self, call_id: str) -> Optional[CallState]:
        async with self._lock:
            return self._calls.get(call_id)

    async def remove(self, call_id: str, expected: Optional[CallState] = None) -> Optional[CallState]:
        """Remove the entry; with ``expected``, only if it is still that exact state."""
        async with self._lock:
            state = self._calls.get(call_id)
            if state is None or (expected is not None and state is not expected):
                return None
            del self._calls[call_id]
            _ACTIVE_CALLS.set(len(self._calls))
            return state

    async def update(self, call_id: str, fn: Callable[[CallState], T]) -> Optional[T]:
        """
        Apply ``fn`` to the call's state atomically.

        Returns whatever ``fn`` returns, or None when the call is absent.
        """
        async with self._lock:
            state = self._calls.get(call_id)
            if state is None:
                return None
            return fn(state)

    async def call_ids(self) -> List[str]:
        async with self._lock:
            return list(self._calls)

    def __len__(self) -> int:
        return len(self._calls)

    def __contains__(self, call_id: object) -> bool:
        return call_id in self._calls
