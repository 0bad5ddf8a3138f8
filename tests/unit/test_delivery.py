"""
Unit tests for the delivery engine.

Tests cover:
- Successful delivery
- Partial failures (immediate retry of the failed subset)
- Full-batch rejection (retry after delay)
- Retryable and non-retryable call failures
- Retry budget exhaustion
"""

import asyncio
import time

import pytest

from firehose_writer.delivery import DeliveryEngine, is_retryable
from firehose_writer.errors import (
    CallFailure,
    DeliveryExhausted,
    PartialDeliveryFailure,
)
from firehose_writer.stream.memory import InMemoryDeliveryStream

SMALL_RECORD = b"a"
MEDIUM_RECORD = b"a" * 500
RECORDS = [SMALL_RECORD, MEDIUM_RECORD]


class SinkRecorder:
    """Log sink collecting (level, message, context) calls."""

    def __init__(self):
        self.calls = []

    def __call__(self, level, message, context):
        self.calls.append((level, message, context))

    def levels(self):
        return [level for level, _, _ in self.calls]


class TestDeliveryEngine:
    """Tests for DeliveryEngine."""

    @pytest.fixture
    async def stream(self):
        stream = InMemoryDeliveryStream()
        await stream.connect()
        return stream

    @pytest.fixture
    def sink(self):
        return SinkRecorder()

    def engine(self, stream, sink, max_retries=10, retry_delay_ms=20):
        return DeliveryEngine(
            stream,
            "test",
            max_retries=max_retries,
            retry_delay_ms=retry_delay_ms,
            log_sink=sink,
        )

    @pytest.mark.asyncio
    async def test_delivers_batch(self, stream, sink):
        """All records are sent in one call."""
        delivered = await self.engine(stream, sink).deliver(RECORDS)

        assert delivered == 2
        assert stream.calls == [RECORDS]
        assert stream.get_delivered("test") == RECORDS
        assert sink.calls == []

    @pytest.mark.asyncio
    async def test_redelivers_failed_records_without_delay(self, stream, sink):
        """Only the rejected record is retried, and right away."""
        stream.reject_next([1])
        engine = self.engine(stream, sink, retry_delay_ms=10000)

        start = time.monotonic()
        await engine.deliver(RECORDS)
        elapsed = time.monotonic() - start

        assert elapsed < 5, "Partial failure should not wait retry_delay_ms"
        assert stream.calls == [RECORDS, [MEDIUM_RECORD]]
        assert stream.get_delivered("test") == [SMALL_RECORD, MEDIUM_RECORD]
        assert sink.levels() == ["warn"]
        assert sink.calls[0][2]["count"] == 1

    @pytest.mark.asyncio
    async def test_full_rejection_waits_before_retry(self, stream, sink, monkeypatch):
        """When every record is rejected the engine backs off first."""
        delays = []
        real_sleep = asyncio.sleep

        async def recording_sleep(delay, *args, **kwargs):
            delays.append(delay)
            await real_sleep(0)

        monkeypatch.setattr(asyncio, "sleep", recording_sleep)
        stream.reject_next()

        await self.engine(stream, sink, retry_delay_ms=250).deliver(RECORDS)

        assert stream.calls == [RECORDS, RECORDS]
        assert 0.25 in delays

    @pytest.mark.asyncio
    async def test_redelivers_batch_on_general_failure(self, stream, sink):
        """Retryable call failures resend the whole batch until the budget runs out."""
        stream.fail_next_call(CallFailure("Delivery error", retryable=True), times=100)
        engine = self.engine(stream, sink, max_retries=10, retry_delay_ms=20)

        start = time.monotonic()
        with pytest.raises(
            DeliveryExhausted,
            match=r"Failed to deliver a batch of 2 records to stream test \(10 retries\)",
        ) as exc_info:
            await engine.deliver(RECORDS)
        elapsed = time.monotonic() - start

        assert len(stream.calls) == 11
        assert all(len(call) == 2 for call in stream.calls)
        assert elapsed >= 0.02 * 10 * 0.9, "General failure should wait retry_delay_ms"
        assert exc_info.value.record_count == 2
        assert exc_info.value.max_retries == 10
        assert isinstance(exc_info.value.__cause__, CallFailure)
        assert sink.levels() == ["error"] * 11

    @pytest.mark.asyncio
    async def test_recovers_after_transient_failure(self, stream, sink):
        """A retryable failure followed by success delivers everything."""
        stream.fail_next_call(CallFailure("throttled", retryable=True), times=2)

        delivered = await self.engine(stream, sink, retry_delay_ms=1).deliver(RECORDS)

        assert delivered == 2
        assert len(stream.calls) == 3
        assert stream.get_delivered("test") == RECORDS

    @pytest.mark.asyncio
    async def test_non_retryable_failures_are_fatal(self, stream, sink):
        """A non-retryable failure stops after one call and surfaces."""
        failure = CallFailure("access denied", retryable=False)
        stream.fail_next_call(failure)

        with pytest.raises(DeliveryExhausted) as exc_info:
            await self.engine(stream, sink).deliver(RECORDS)

        assert len(stream.calls) == 1
        assert exc_info.value.__cause__ is failure
        assert sink.calls[0][2]["retryable"] is False

    @pytest.mark.asyncio
    async def test_unflagged_errors_are_not_retried(self, stream, sink):
        """Errors without a retryable flag count as non-retryable."""
        stream.fail_next_call(RuntimeError("boom"))

        with pytest.raises(DeliveryExhausted):
            await self.engine(stream, sink).deliver(RECORDS)

        assert len(stream.calls) == 1

    @pytest.mark.asyncio
    async def test_partial_failures_exhaust_budget(self, stream, sink):
        """Records rejected on every attempt end in DeliveryExhausted."""
        stream.reject_next([0], times=10)
        engine = self.engine(stream, sink, max_retries=2, retry_delay_ms=0)

        with pytest.raises(DeliveryExhausted) as exc_info:
            await engine.deliver(RECORDS)

        assert len(stream.calls) == 3
        assert stream.calls[1] == [SMALL_RECORD]
        assert exc_info.value.record_count == 1
        assert isinstance(exc_info.value.__cause__, PartialDeliveryFailure)

    @pytest.mark.asyncio
    async def test_zero_retries_means_one_attempt(self, stream, sink):
        """With max_retries=0 a single failure is final."""
        stream.fail_next_call(CallFailure("throttled", retryable=True))

        with pytest.raises(DeliveryExhausted, match=r"\(0 retries\)"):
            await self.engine(stream, sink, max_retries=0).deliver(RECORDS)

        assert len(stream.calls) == 1

    @pytest.mark.asyncio
    async def test_does_not_modify_input(self, stream, sink):
        """The caller's records are left untouched by retries."""
        stream.reject_next([0])
        records = list(RECORDS)

        await self.engine(stream, sink, retry_delay_ms=0).deliver(records)

        assert records == RECORDS

    @pytest.mark.asyncio
    async def test_custom_classifier(self, stream, sink):
        """A custom classifier decides what is retried."""
        stream.fail_next_call(RuntimeError("connection reset"))
        engine = DeliveryEngine(
            stream,
            "test",
            max_retries=3,
            retry_delay_ms=0,
            log_sink=sink,
            classify_retryable=lambda e: "connection" in str(e),
        )

        assert await engine.deliver(RECORDS) == 2
        assert len(stream.calls) == 2


def test_default_classifier():
    """is_retryable reads the error's retryable flag."""
    assert is_retryable(CallFailure("x", retryable=True))
    assert not is_retryable(CallFailure("x", retryable=False))
    assert not is_retryable(ValueError("x"))
