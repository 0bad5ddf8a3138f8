"""
Delivery stream abstraction for the Firehose writer.

This module provides the remote-write collaborator interface supporting:
- AWS Kinesis Data Firehose (default)
- In-memory (for testing)

The delivery engine only ever calls put_record_batch(); clients are built
by create_delivery_stream() or injected by the caller.
"""

from .base import (
    DeliveryStream,
    RecordOutcome,
    create_delivery_stream,
)
from .firehose import FirehoseDeliveryStream
from .memory import InMemoryDeliveryStream

__all__ = [
    # Protocol and types
    "DeliveryStream",
    "RecordOutcome",
    # Factory
    "create_delivery_stream",
    # Implementations
    "FirehoseDeliveryStream",
    "InMemoryDeliveryStream",
]
