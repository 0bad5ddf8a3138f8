"""
In-memory delivery stream implementation for testing.

This module provides a simple in-memory backend for:
- Unit tests
- Integration tests
- Local development without AWS

Failures can be scripted per call, so retry behavior can be exercised
without a real service.

Invariants:
    - All data is lost on process exit
    - Every call is recorded in ``calls``, successful or not
    - Scripted failures are consumed in FIFO order, one per call

How to change safely:
    - This is test-only code, changes don't affect production
    - Keep interface compatible with DeliveryStream protocol
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import time
from collections import defaultdict, deque
from typing import Deque, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from ..errors import CallFailure
from .base import RecordOutcome

logger = logging.getLogger(__name__)

_ALL = "all"

# A scripted call: raise the exception, or reject (positions, error code)
_Script = Union[Exception, Tuple[Union[frozenset, str], str]]

_REJECTION_MESSAGES = {
    "ServiceUnavailableException": "Slow down.",
    "InternalFailure": "Internal service failure.",
}


class InMemoryDeliveryStream:
    """In-memory implementation of DeliveryStream for testing.

    Attributes:
        latency: Seconds each call takes (0 still yields to the event loop)
        calls: Every batch submitted, in call order

    Example:
        >>> stream = InMemoryDeliveryStream()
        >>> await stream.connect()
        >>> stream.reject_next([1])
        >>> outcomes = await stream.put_record_batch("test", [b"a", b"b"])
        >>> [o.failed for o in outcomes]
        [False, True]
    """

    def __init__(self, latency: float = 0.0) -> None:
        self.latency = latency
        self.calls: List[List[bytes]] = []
        self._delivered: Dict[str, List[bytes]] = defaultdict(list)
        self._scripts: Deque[_Script] = deque()
        self._ids = itertools.count(1)
        self._connected = False

    @property
    def is_connected(self) -> bool:
        """Whether connected (always true after connect())."""
        return self._connected

    async def connect(self) -> None:
        """Connect (no-op for in-memory)."""
        self._connected = True
        logger.debug("InMemoryDeliveryStream connected")

    async def close(self) -> None:
        """Close the stream; delivered records stay readable."""
        self._connected = False
        logger.debug("InMemoryDeliveryStream closed")

    async def put_record_batch(
        self,
        stream_id: str,
        records: Sequence[bytes],
    ) -> List[RecordOutcome]:
        """Store records, applying the next scripted failure if any.

        Raises:
            CallFailure: If not connected
        """
        if not self._connected:
            raise CallFailure("Not connected", retryable=False)

        batch = list(records)
        self.calls.append(batch)
        await asyncio.sleep(self.latency)

        script = self._scripts.popleft() if self._scripts else None
        if isinstance(script, Exception):
            raise script

        rejected, error_code = script if script is not None else (frozenset(), "")

        outcomes = []
        for index, record in enumerate(batch):
            if rejected == _ALL or index in rejected:
                outcomes.append(
                    RecordOutcome(
                        error_code=error_code,
                        error_message=_REJECTION_MESSAGES.get(error_code, "Record rejected"),
                    )
                )
            else:
                self._delivered[stream_id].append(record)
                outcomes.append(RecordOutcome(record_id=f"record-{next(self._ids)}"))

        logger.debug(
            "Batch stored in memory",
            extra={"stream": stream_id, "records": len(batch)},
        )
        return outcomes

    # Testing helpers

    def fail_next_call(self, exception: Exception, times: int = 1) -> None:
        """Raise ``exception`` from the next ``times`` calls."""
        self._scripts.extend([exception] * times)

    def reject_next(
        self,
        indices: Optional[Iterable[int]] = None,
        error_code: str = "ServiceUnavailableException",
        times: int = 1,
    ) -> None:
        """Reject records in the next ``times`` calls.

        Args:
            indices: Positions to reject (all records if None)
            error_code: Per-record error code reported for each rejection
            times: Number of calls the rejection applies to
        """
        if not error_code:
            raise ValueError("error_code must be non-empty")
        positions = _ALL if indices is None else frozenset(indices)
        script: _Script = (positions, error_code)
        self._scripts.extend([script] * times)

    def get_delivered(self, stream_id: str) -> List[bytes]:
        """All records accepted for a stream, in acceptance order."""
        return list(self._delivered.get(stream_id, []))

    def get_record_count(self, stream_id: str) -> int:
        """Number of records accepted for a stream."""
        return len(self._delivered.get(stream_id, []))

    async def wait_for_records(
        self,
        stream_id: str,
        count: int,
        timeout: float = 5.0,
    ) -> bool:
        """Wait for a specific number of accepted records.

        Returns:
            True if count reached, False if timeout
        """
        start = time.monotonic()
        while time.monotonic() - start < timeout:
            if self.get_record_count(stream_id) >= count:
                return True
            await asyncio.sleep(0.01)
        return False
