"""
In-memory record buffer with flush thresholds.

Invariants:
    - size always equals the sum of the buffered payload lengths
    - take() swaps in a fresh list; the returned list is never touched again
    - append() and take() never suspend, so on a single event loop they are
      atomic with respect to each other

How to change safely:
    - Do not add awaits to append() or take()
    - If the buffer is ever shared across threads, guard both with one lock
"""

from __future__ import annotations

import logging
from typing import List, Tuple

logger = logging.getLogger(__name__)


class Accumulator:
    """Append-only buffer of encoded payloads.

    Attributes:
        max_bytes: Byte threshold that makes the buffer ready to flush
        max_records: Record-count threshold that makes the buffer ready to flush

    Example:
        >>> acc = Accumulator(max_bytes=1000, max_records=100)
        >>> acc.append(b'{"a":1}')
        >>> records, size = acc.take()
    """

    def __init__(self, max_bytes: int, max_records: int) -> None:
        self.max_bytes = max_bytes
        self.max_records = max_records
        self._records: List[bytes] = []
        self._size = 0

    def __len__(self) -> int:
        return len(self._records)

    @property
    def size(self) -> int:
        """Total buffered bytes."""
        return self._size

    def append(self, payload: bytes) -> None:
        """Append one encoded payload."""
        self._records.append(payload)
        self._size += len(payload)

    def thresholds_reached(self) -> bool:
        """Whether either the byte or the record threshold is met."""
        return self._size >= self.max_bytes or len(self._records) >= self.max_records

    def take(self) -> Tuple[List[bytes], int]:
        """Return the buffered payloads and their size, leaving the buffer empty."""
        records, size = self._records, self._size
        self._records = []
        self._size = 0
        if records:
            logger.debug("Buffer drained", extra={"records": len(records), "bytes": size})
        return records, size
