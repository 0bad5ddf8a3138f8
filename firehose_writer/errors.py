"""
Error types for the Firehose writer.

This module defines every exception the writer raises or attaches:
- WriterError: Base exception
- InvalidArgument: Bad configuration or put() input
- RecordTooLarge: A single record exceeds the per-record ceiling
- CallFailure: Call-level failure reported by a delivery stream
- PartialDeliveryFailure: Some records of a batch were rejected
- DeliveryExhausted: A chunk could not be delivered

Invariants:
    - All errors inherit from WriterError
    - InvalidArgument and RecordTooLarge are raised synchronously and never retried
    - PartialDeliveryFailure is never raised to callers; it only appears as the
      __cause__ of a DeliveryExhausted
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional


class WriterError(Exception):
    """Base exception for all writer errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "WRITER_ERROR"
        self.details = details or {}


class InvalidArgument(WriterError, ValueError):
    """Missing or malformed configuration or put() input.

    Subclasses ValueError so configuration validation reads like any other
    config loader.
    """

    def __init__(self, message: str, argument: Optional[str] = None) -> None:
        super().__init__(
            message,
            code="INVALID_ARGUMENT",
            details={"argument": argument},
        )
        self.argument = argument


class RecordTooLarge(WriterError):
    """Encoded record is larger than the single-record ceiling.

    The record is never buffered.
    """

    def __init__(self, size: int, limit: int) -> None:
        super().__init__(
            f"Record bigger than max size ({limit})",
            code="RECORD_TOO_LARGE",
            details={"size": size, "limit": limit},
        )
        self.size = size
        self.limit = limit


class CallFailure(WriterError):
    """The batch-write call itself failed (network, throttling, auth...).

    Raised by delivery streams. ``retryable`` tells the delivery engine whether
    the whole batch may be sent again after the retry delay.
    """

    def __init__(
        self,
        message: str,
        retryable: bool = False,
        error_code: Optional[str] = None,
    ) -> None:
        super().__init__(
            message,
            code="CALL_FAILURE",
            details={"retryable": retryable, "error_code": error_code},
        )
        self.retryable = retryable
        self.error_code = error_code


class PartialDeliveryFailure(WriterError):
    """Some records in an otherwise successful call were rejected."""

    def __init__(self, failed_count: int, total: int, error_codes: List[str]) -> None:
        super().__init__(
            f"{failed_count} of {total} records rejected",
            code="PARTIAL_DELIVERY_FAILURE",
            details={"failed_count": failed_count, "total": total},
        )
        self.failed_count = failed_count
        self.total = total
        self.error_codes = error_codes


class DeliveryExhausted(WriterError):
    """A chunk could not be delivered.

    Raised when the retry budget is consumed or a non-retryable call failure
    occurs. The underlying failure is chained as ``__cause__``.
    """

    def __init__(self, stream_id: str, record_count: int, max_retries: int) -> None:
        super().__init__(
            f"Failed to deliver a batch of {record_count} records to stream "
            f"{stream_id} ({max_retries} retries)",
            code="DELIVERY_EXHAUSTED",
            details={
                "stream_id": stream_id,
                "record_count": record_count,
                "max_retries": max_retries,
            },
        )
        self.stream_id = stream_id
        self.record_count = record_count
        self.max_retries = max_retries
