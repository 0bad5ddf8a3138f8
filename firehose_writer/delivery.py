"""
Chunk delivery with bounded retry.

The DeliveryEngine sends one chunk to the delivery stream and keeps
re-sending whatever was not accepted until everything is confirmed or the
retry budget runs out.

Retry policy:
    - Some records rejected: retry just those, immediately
    - All records rejected: wait retry_delay_ms, then retry them
    - Call-level failure, retryable: wait retry_delay_ms, resend the whole set
    - Call-level failure, non-retryable: give up immediately
    - More than max_retries retries needed: give up

Giving up always raises DeliveryExhausted with the last failure chained,
so no record is ever dropped silently.

Invariants:
    - The caller's record sequence is never modified
    - At most max_retries + 1 calls per chunk
    - Suspends only in the stream call and in the retry delay

How to change safely:
    - Delivery is at-least-once: a retried batch may already have been
      stored by the service
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, List, Optional, Sequence, TYPE_CHECKING

from .errors import CallFailure, DeliveryExhausted, PartialDeliveryFailure
from .observability import LogSink, default_log_sink
from .stream.base import DeliveryStream

if TYPE_CHECKING:
    from .config import WriterConfig

logger = logging.getLogger(__name__)


def is_retryable(error: BaseException) -> bool:
    """Default classifier: trust the error's ``retryable`` flag, if any."""
    return bool(getattr(error, "retryable", False))


class DeliveryEngine:
    """Delivers chunks to one stream.

    Attributes:
        stream: Delivery stream backend (shared, safe for concurrent calls)
        stream_id: Target stream name
        max_retries: Retries allowed beyond the first call
        retry_delay_ms: Delay before a throttled or failed retry

    Example:
        >>> engine = DeliveryEngine(stream, "events", max_retries=3, retry_delay_ms=100)
        >>> await engine.deliver([b'{"a":1}', b'{"b":2}'])
        2
    """

    def __init__(
        self,
        stream: DeliveryStream,
        stream_id: str,
        max_retries: int,
        retry_delay_ms: int,
        log_sink: LogSink = default_log_sink,
        classify_retryable: Callable[[BaseException], bool] = is_retryable,
    ) -> None:
        self.stream = stream
        self.stream_id = stream_id
        self.max_retries = max_retries
        self.retry_delay_ms = retry_delay_ms
        self.log_sink = log_sink
        self.classify_retryable = classify_retryable

    @classmethod
    def from_config(
        cls,
        config: "WriterConfig",
        stream: DeliveryStream,
        log_sink: LogSink = default_log_sink,
    ) -> DeliveryEngine:
        """Build an engine from writer configuration."""
        return cls(
            stream=stream,
            stream_id=config.stream_id,
            max_retries=config.max_retries,
            retry_delay_ms=config.retry_delay_ms,
            log_sink=log_sink,
        )

    async def deliver(self, records: Sequence[bytes]) -> int:
        """Deliver records, retrying failures.

        Args:
            records: Payloads of one chunk

        Returns:
            Number of records delivered (always len(records))

        Raises:
            DeliveryExhausted: If the retry budget is consumed or a
                non-retryable call failure occurs
        """
        outstanding: List[bytes] = list(records)
        attempt = 0

        while True:
            try:
                outcomes = await self.stream.put_record_batch(self.stream_id, outstanding)
                if len(outcomes) != len(outstanding):
                    raise CallFailure(
                        f"Got {len(outcomes)} outcomes for {len(outstanding)} records",
                        retryable=True,
                    )
            except Exception as e:
                retryable = self.classify_retryable(e)
                self.log_sink(
                    "error",
                    "General failure in sending to firehose",
                    {
                        "stream": self.stream_id,
                        "error": str(e),
                        "retryable": retryable,
                        "attempt": attempt,
                        "count": len(outstanding),
                    },
                )
                if not retryable:
                    raise self._exhausted(outstanding) from e

                attempt = self._next_attempt(attempt, outstanding, e)
                await self._backoff()
                continue

            failed = [record for record, outcome in zip(outstanding, outcomes) if outcome.failed]
            if not failed:
                logger.debug(
                    "Chunk delivered",
                    extra={"stream": self.stream_id, "records": len(records), "attempts": attempt + 1},
                )
                return len(records)

            self.log_sink(
                "warn",
                "Retrying failed records",
                {"stream": self.stream_id, "count": len(failed), "attempt": attempt},
            )
            failure = PartialDeliveryFailure(
                failed_count=len(failed),
                total=len(outstanding),
                error_codes=[o.error_code for o in outcomes if o.failed],
            )
            attempt = self._next_attempt(attempt, failed, failure)

            # Everything rejected looks like throttling: back off
            if len(failed) == len(outstanding):
                await self._backoff()

            outstanding = failed

    def _next_attempt(
        self,
        attempt: int,
        records: Sequence[bytes],
        failure: Optional[BaseException],
    ) -> int:
        attempt += 1
        if attempt > self.max_retries:
            raise self._exhausted(records) from failure
        return attempt

    def _exhausted(self, records: Sequence[bytes]) -> DeliveryExhausted:
        return DeliveryExhausted(
            stream_id=self.stream_id,
            record_count=len(records),
            max_retries=self.max_retries,
        )

    async def _backoff(self) -> None:
        if self.retry_delay_ms:
            await asyncio.sleep(self.retry_delay_ms / 1000)
