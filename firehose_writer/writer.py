"""
Buffered Firehose writer.

The FirehoseWriter accumulates records in memory and delivers them to a
delivery stream in batches. A flush happens when:
1. The buffered bytes reach max_buffer_bytes
2. The buffered record count reaches max_buffer_records
3. The periodic flush timer fires
4. The writer is closed (once, best effort)

Each flush drains the whole buffer, splits it into chunks and delivers all
chunks concurrently, each with its own retry budget.

Invariants:
    - Draining the buffer (read + reset) never suspends, so a put() racing a
      flush can neither be lost nor sent twice by the writer itself
    - One chunk's failure never cancels its sibling chunks
    - Failures of background flushes are logged, never raised from put()

Limitations:
    - Delivery is at-least-once; retried batches may be stored twice
    - Records are only in memory: a crash loses unflushed records, and so
      does process exit while retries are still backing off
    - Records put after close() are only sent by a threshold or explicit flush(),
      and only through an injected stream: a stream the writer created is
      closed for good and such records stay buffered
"""

from __future__ import annotations

import asyncio
import logging
import signal
from typing import Any, List, Optional, Set

from .buffer import Accumulator, Chunk, encode_record, split_into_chunks
from .config import WriterConfig
from .delivery import DeliveryEngine
from .errors import DeliveryExhausted, RecordTooLarge, WriterError
from .observability import LogSink, default_log_sink
from .stream.base import DeliveryStream, create_delivery_stream

logger = logging.getLogger(__name__)


class FirehoseWriter:
    """Batches records for delivery to one stream.

    Attributes:
        config: Writer configuration
        stream: Delivery stream backend
        engine: Per-chunk delivery engine
        log_sink: Receives delivery warnings and errors

    Example:
        >>> config = WriterConfig(stream_id="events")
        >>> async with FirehoseWriter(config) as writer:
        ...     writer.put({"type": "click", "user": 42})
        ...     await writer.flush()
    """

    def __init__(
        self,
        config: WriterConfig,
        *,
        stream: Optional[DeliveryStream] = None,
        log_sink: Optional[LogSink] = None,
    ) -> None:
        """Initialize the writer.

        Args:
            config: Writer configuration
            stream: Delivery stream to use (a Firehose stream is created
                from config when not provided, and closed with the writer)
            log_sink: Callback for delivery warnings/errors
                (logs through the standard logging module if not provided)
        """
        self.config = config
        self.log_sink: LogSink = log_sink or default_log_sink
        self._owns_stream = stream is None
        self.stream: DeliveryStream = stream if stream is not None else create_delivery_stream(config)
        self.engine = DeliveryEngine.from_config(config, self.stream, self.log_sink)

        self._buffer = Accumulator(config.max_buffer_bytes, config.max_buffer_records)
        self._connect_lock = asyncio.Lock()
        self._flush_task: Optional[asyncio.Task] = None
        self._shutdown_task: Optional[asyncio.Task] = None
        self._pending: Set[asyncio.Task] = set()
        self._running = False
        self._closed = False
        self._stream_released = False

        self._delivered_count = 0
        self._failed_chunks = 0

    async def __aenter__(self) -> FirehoseWriter:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def start(self) -> None:
        """Connect the stream and start the periodic flush."""
        if self._running:
            logger.warning("Writer already running")
            return
        if self._closed:
            raise WriterError("Writer is closed", code="WRITER_CLOSED")

        await self._ensure_connected()

        self._running = True
        self._flush_task = asyncio.create_task(self._flush_loop())
        logger.info(
            "Writer started",
            extra={
                "stream_id": self.config.stream_id,
                "flush_interval_ms": self.config.flush_interval_ms,
            },
        )

    def put(self, record: Any) -> None:
        """Buffer a record, flushing if a threshold is reached.

        Args:
            record: bytes-like payload, or a JSON-serializable value

        Raises:
            InvalidArgument: If the record is None, a str, or not serializable
            RecordTooLarge: If the encoded record exceeds max_record_bytes
        """
        payload = encode_record(record)
        if len(payload) > self.config.max_record_bytes:
            raise RecordTooLarge(len(payload), self.config.max_record_bytes)

        if self._closed:
            self.log_sink(
                "warn",
                "Record buffered after close, periodic and final flushes no longer run",
                {"stream": self.config.stream_id},
            )

        self._buffer.append(payload)

        if self._buffer.thresholds_reached():
            self._flush_in_background()

    async def flush(self) -> None:
        """Deliver everything buffered so far.

        Returns once every chunk is delivered or has failed. Does nothing if
        the buffer is empty.

        Raises:
            DeliveryExhausted: If any chunk could not be delivered (the other
                chunks still ran to completion)
            WriterError: If close() already closed the stream the writer
                created (records stay buffered)
        """
        if self._stream_released:
            raise WriterError("Writer is closed", code="WRITER_CLOSED")

        chunks = self._drain()
        if not chunks:
            return
        await self._deliver_chunks(chunks)

    async def close(self) -> None:
        """Stop the timer and flush the remaining records once.

        Waits for in-flight background flushes, then closes the stream if
        the writer created it.

        Raises:
            DeliveryExhausted: If the final flush could not deliver a chunk
        """
        if self._closed:
            return

        self._closed = True
        self._running = False
        logger.info("Closing writer", extra={"stream_id": self.config.stream_id})

        if self._flush_task:
            self._flush_task.cancel()
            await asyncio.gather(self._flush_task, return_exceptions=True)
            self._flush_task = None

        try:
            await self.flush()
        finally:
            if self._pending:
                await asyncio.gather(*list(self._pending), return_exceptions=True)
            if self._owns_stream:
                await self.stream.close()
                self._stream_released = True
            logger.info("Writer closed", extra=self.stats)

    def install_signal_handlers(
        self,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ) -> None:
        """Close the writer on SIGTERM/SIGINT.

        The final flush runs once no matter how many signals arrive.
        """
        loop = loop or asyncio.get_running_loop()

        def handle_signal(sig: int) -> None:
            logger.info(f"Received signal {sig}, flushing writer before shutdown")
            if self._shutdown_task is None:
                self._shutdown_task = loop.create_task(self.close())
                self._shutdown_task.add_done_callback(self._log_task_failure)

        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, handle_signal, sig)

    @property
    def stats(self) -> dict[str, Any]:
        """Get writer statistics."""
        return {
            "running": self._running,
            "buffered_records": len(self._buffer),
            "buffered_bytes": self._buffer.size,
            "delivered_count": self._delivered_count,
            "failed_chunks": self._failed_chunks,
            "flushes_in_flight": len(self._pending),
        }

    def _drain(self) -> List[Chunk]:
        records, _ = self._buffer.take()
        if not records:
            return []
        return split_into_chunks(
            records,
            max_chunk_bytes=self.config.max_chunk_bytes,
            max_chunk_records=self.config.max_chunk_records,
        )

    def _flush_in_background(self) -> None:
        """Drain now, deliver in a tracked task nobody awaits."""
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            logger.warning(
                "No running event loop, flush deferred",
                extra={"buffered_records": len(self._buffer)},
            )
            return
        if self._stream_released:
            logger.warning(
                "Writer closed, records stay buffered",
                extra={"buffered_records": len(self._buffer)},
            )
            return

        chunks = self._drain()
        if not chunks:
            return

        task = asyncio.create_task(self._deliver_chunks(chunks))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        task.add_done_callback(self._log_task_failure)

    async def _deliver_chunks(self, chunks: List[Chunk]) -> None:
        try:
            await self._ensure_connected()
        except Exception as e:
            for chunk in chunks:
                self._report_failed_chunk(chunk, e)
            raise DeliveryExhausted(
                stream_id=self.config.stream_id,
                record_count=sum(len(chunk) for chunk in chunks),
                max_retries=self.config.max_retries,
            ) from e

        results = await asyncio.gather(
            *(self.engine.deliver(chunk.records) for chunk in chunks),
            return_exceptions=True,
        )

        failures: List[BaseException] = []
        for chunk, result in zip(chunks, results):
            if isinstance(result, BaseException):
                failures.append(result)
                self._report_failed_chunk(chunk, result)
            else:
                self._delivered_count += result

        if failures:
            raise failures[0]

    def _report_failed_chunk(self, chunk: Chunk, error: BaseException) -> None:
        self._failed_chunks += 1
        self.log_sink(
            "error",
            "Failed to deliver chunk",
            {
                "stream": self.config.stream_id,
                "count": len(chunk),
                "size": chunk.size,
                "error": str(error),
            },
        )

    async def _ensure_connected(self) -> None:
        async with self._connect_lock:
            if not self.stream.is_connected:
                await self.stream.connect()

    async def _flush_loop(self) -> None:
        """Background loop for periodic flushes."""
        interval = self.config.flush_interval_ms / 1000
        while self._running:
            await asyncio.sleep(interval)
            self._flush_in_background()

    @staticmethod
    def _log_task_failure(task: asyncio.Task) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Background flush failed: {error}")
