"""
Base protocol and types for delivery stream backends.

This module defines the DeliveryStream protocol that the delivery engine
talks to, along with the per-record outcome type.

Invariants:
    - put_record_batch() returns exactly one RecordOutcome per submitted
      record, positionally aligned with the request
    - Call-level failures are raised as CallFailure with a retryable flag
    - A stream instance is safe to share between concurrent deliveries

How to change safely:
    - Protocol changes require updating all implementations
    - Add new methods as optional with default implementations
"""

from __future__ import annotations

from abc import abstractmethod
from dataclasses import dataclass
from typing import (
    List,
    Optional,
    Protocol,
    Sequence,
    runtime_checkable,
    TYPE_CHECKING,
)
import logging

if TYPE_CHECKING:
    from ..config import WriterConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RecordOutcome:
    """Result of one record within a batch-write call.

    Attributes:
        record_id: Identifier assigned by the service (None on failure)
        error_code: Error indicator; non-empty means the record was rejected
        error_message: Human-readable reason for the rejection
    """

    record_id: Optional[str] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    @property
    def failed(self) -> bool:
        """Whether the service rejected this record."""
        return bool(self.error_code)


@runtime_checkable
class DeliveryStream(Protocol):
    """Protocol for remote append-only stream backends.

    Concurrency contract:
        - put_record_batch() may be called concurrently from many chunk
          deliveries; implementations must not hold per-call state

    Example:
        >>> stream = FirehoseDeliveryStream(config)
        >>> await stream.connect()
        >>> outcomes = await stream.put_record_batch("events", [b'{"a":1}'])
        >>> failed = [o for o in outcomes if o.failed]
    """

    @abstractmethod
    async def connect(self) -> None:
        """Connect to the backend.

        Raises:
            CallFailure: If the connection cannot be established
        """
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release the backend connection."""
        ...

    @abstractmethod
    async def put_record_batch(
        self,
        stream_id: str,
        records: Sequence[bytes],
    ) -> List[RecordOutcome]:
        """Submit records as one batch-write call.

        Args:
            stream_id: Target stream name
            records: Payloads in delivery order

        Returns:
            One RecordOutcome per record, in request order

        Raises:
            CallFailure: If the call itself failed
        """
        ...

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        """Whether currently connected to the backend."""
        ...


def create_delivery_stream(config: "WriterConfig") -> DeliveryStream:
    """Factory for the default delivery stream.

    Args:
        config: Writer configuration (region, endpoint, call timeout)

    Returns:
        An unconnected FirehoseDeliveryStream
    """
    from .firehose import FirehoseDeliveryStream

    return FirehoseDeliveryStream(
        region=config.region,
        endpoint_url=config.endpoint_url,
        call_timeout_s=config.call_timeout_s,
    )
