"""
Configuration for the Firehose writer.

Configuration can be built in code or loaded from environment variables.
This module provides typed configuration classes with validation.

Invariants:
    - Configuration is immutable after construction
    - Per-call limits never exceed the remote service's hard ceilings
    - Invalid configuration fails at construction, never at first flush

How to change safely:
    - Add new settings with defaults that maintain backward compatibility
    - Keep MAX_BATCH_RECORDS / MAX_BATCH_BYTES in line with the service quotas
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass

from .errors import InvalidArgument

logger = logging.getLogger(__name__)

# Hard limits of a single PutRecordBatch call
MAX_BATCH_RECORDS = 500
MAX_BATCH_BYTES = 4 * 1000000


def _check(argument: str, condition: bool, message: str) -> None:
    if not condition:
        raise InvalidArgument(f"{argument}: {message}", argument=argument)


@dataclass(frozen=True)
class WriterConfig:
    """Buffering, chunking and retry configuration.

    Attributes:
        stream_id: Target delivery stream name (required)
        max_buffer_bytes: Flush when buffered bytes reach this; also the
            largest single record accepted by put()
        max_buffer_records: Flush when buffered record count reaches this
        flush_interval_ms: Period of the background flush
        max_retries: Re-delivery attempts per chunk before giving up
        retry_delay_ms: Delay before re-delivering after a throttling signal
        max_chunk_records: Records per delivery call
        max_chunk_bytes: Bytes per delivery call
        region: AWS region for the default Firehose client
        endpoint_url: Custom endpoint URL (for LocalStack testing)
        call_timeout_s: Timeout of a single PutRecordBatch call
    """

    stream_id: str = ""
    max_buffer_bytes: int = MAX_BATCH_BYTES
    max_buffer_records: int = 500
    flush_interval_ms: int = 10000
    max_retries: int = 10
    retry_delay_ms: int = 5000
    max_chunk_records: int = MAX_BATCH_RECORDS
    max_chunk_bytes: int = MAX_BATCH_BYTES
    region: str = "eu-west-1"
    endpoint_url: str | None = None
    call_timeout_s: float = 30.0

    def __post_init__(self) -> None:
        self.validate()

    @property
    def max_record_bytes(self) -> int:
        """Largest encoded record put() accepts."""
        return self.max_buffer_bytes

    @classmethod
    def from_env(cls, **overrides) -> WriterConfig:
        """Load configuration from environment variables.

        Keyword arguments take precedence over the environment.

        Raises:
            InvalidArgument: If a value is missing or out of range.
        """
        try:
            values = dict(
                stream_id=os.getenv("FIREHOSE_STREAM_NAME", ""),
                max_buffer_bytes=int(os.getenv("FIREHOSE_MAX_BUFFER_BYTES", str(MAX_BATCH_BYTES))),
                max_buffer_records=int(os.getenv("FIREHOSE_MAX_BUFFER_RECORDS", "500")),
                flush_interval_ms=int(os.getenv("FIREHOSE_FLUSH_INTERVAL_MS", "10000")),
                max_retries=int(os.getenv("FIREHOSE_MAX_RETRIES", "10")),
                retry_delay_ms=int(os.getenv("FIREHOSE_RETRY_DELAY_MS", "5000")),
                max_chunk_records=int(
                    os.getenv("FIREHOSE_MAX_CHUNK_RECORDS", str(MAX_BATCH_RECORDS))
                ),
                max_chunk_bytes=int(os.getenv("FIREHOSE_MAX_CHUNK_BYTES", str(MAX_BATCH_BYTES))),
                region=os.getenv("AWS_REGION", os.getenv("AWS_DEFAULT_REGION", "eu-west-1")),
                endpoint_url=os.getenv("FIREHOSE_ENDPOINT_URL"),
                call_timeout_s=float(os.getenv("FIREHOSE_CALL_TIMEOUT_S", "30")),
            )
        except ValueError as e:
            raise InvalidArgument(f"Invalid numeric setting in environment: {e}") from e

        values.update(overrides)
        return cls(**values)

    def validate(self) -> None:
        """Validate configuration consistency.

        Raises:
            InvalidArgument: If configuration is invalid.
        """
        _check("stream_id", bool(self.stream_id), "should be specified")

        for name in (
            "max_buffer_bytes",
            "max_buffer_records",
            "flush_interval_ms",
            "max_chunk_records",
            "max_chunk_bytes",
        ):
            _check(name, getattr(self, name) > 0, "should be positive")

        _check("max_retries", self.max_retries >= 0, "should not be negative")
        _check("retry_delay_ms", self.retry_delay_ms >= 0, "should not be negative")
        _check("call_timeout_s", self.call_timeout_s > 0, "should be positive")

        _check(
            "max_buffer_bytes",
            self.max_buffer_bytes <= MAX_BATCH_BYTES,
            f"should be at most {MAX_BATCH_BYTES}",
        )
        _check(
            "max_buffer_records",
            self.max_buffer_records <= MAX_BATCH_RECORDS,
            f"should be at most {MAX_BATCH_RECORDS}",
        )
        _check(
            "max_chunk_bytes",
            self.max_chunk_bytes <= MAX_BATCH_BYTES,
            f"should be at most {MAX_BATCH_BYTES}",
        )
        _check(
            "max_chunk_records",
            self.max_chunk_records <= MAX_BATCH_RECORDS,
            f"should be at most {MAX_BATCH_RECORDS}",
        )

    def log_config(self) -> None:
        """Log the effective configuration."""
        logger.info(
            "Writer configuration loaded",
            extra={
                "stream_id": self.stream_id,
                "max_buffer_bytes": self.max_buffer_bytes,
                "max_buffer_records": self.max_buffer_records,
                "flush_interval_ms": self.flush_interval_ms,
                "max_retries": self.max_retries,
                "retry_delay_ms": self.retry_delay_ms,
                "max_chunk_records": self.max_chunk_records,
                "max_chunk_bytes": self.max_chunk_bytes,
                "region": self.region,
                "endpoint": self.endpoint_url or "AWS",
            },
        )


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging configuration.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format (json, text)
    """

    log_level: str = "INFO"
    log_format: str = "json"

    @classmethod
    def from_env(cls) -> ObservabilityConfig:
        """Load configuration from environment variables."""
        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "json"),
        )
