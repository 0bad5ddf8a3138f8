"""
Firehose writer - buffered batch delivery to an append-only stream.

Records are accumulated in memory, split into chunks that respect the
service's per-call limits, and delivered concurrently with bounded retry.

Example:
    >>> from firehose_writer import FirehoseWriter, WriterConfig
    >>> async with FirehoseWriter(WriterConfig(stream_id="events")) as writer:
    ...     writer.put({"type": "click"})
"""

from .config import MAX_BATCH_BYTES, MAX_BATCH_RECORDS, ObservabilityConfig, WriterConfig
from .delivery import DeliveryEngine, is_retryable
from .errors import (
    CallFailure,
    DeliveryExhausted,
    InvalidArgument,
    PartialDeliveryFailure,
    RecordTooLarge,
    WriterError,
)
from .observability import LogSink, default_log_sink, setup_logging
from .stream import (
    DeliveryStream,
    FirehoseDeliveryStream,
    InMemoryDeliveryStream,
    RecordOutcome,
    create_delivery_stream,
)
from .writer import FirehoseWriter

__version__ = "1.0.0"

__all__ = [
    # Writer
    "FirehoseWriter",
    "DeliveryEngine",
    "is_retryable",
    # Config
    "WriterConfig",
    "ObservabilityConfig",
    "MAX_BATCH_BYTES",
    "MAX_BATCH_RECORDS",
    # Errors
    "WriterError",
    "InvalidArgument",
    "RecordTooLarge",
    "CallFailure",
    "PartialDeliveryFailure",
    "DeliveryExhausted",
    # Logging
    "LogSink",
    "default_log_sink",
    "setup_logging",
    # Streams
    "DeliveryStream",
    "RecordOutcome",
    "create_delivery_stream",
    "FirehoseDeliveryStream",
    "InMemoryDeliveryStream",
]
