"""
AWS Firehose delivery stream implementation.

This module provides the default backend of the writer: a Kinesis Data
Firehose client calling PutRecordBatch through aiobotocore.

Invariants:
    - One PutRecordBatch call per put_record_batch()
    - Outcomes are returned in request order, one per record
    - Throttling, 5xx responses, connection errors and timeouts are
      reported as retryable CallFailure; everything else is non-retryable

How to change safely:
    - Test with LocalStack before deploying to AWS
    - Keep the retryable code list in line with the Firehose API reference
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, List, Sequence

from aiobotocore.session import get_session
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectionClosedError,
    EndpointConnectionError,
    ReadTimeoutError,
)

from ..errors import CallFailure
from .base import RecordOutcome

logger = logging.getLogger(__name__)

RETRYABLE_ERROR_CODES = frozenset(
    {
        "ServiceUnavailableException",
        "ThrottlingException",
        "LimitExceededException",
        "InternalFailure",
        "InternalServerError",
        "RequestTimeout",
    }
)


def classify_client_error(error: ClientError) -> CallFailure:
    """Map a botocore ClientError to a CallFailure."""
    error_code = error.response.get("Error", {}).get("Code", "")
    status = error.response.get("ResponseMetadata", {}).get("HTTPStatusCode", 0)
    retryable = error_code in RETRYABLE_ERROR_CODES or status >= 500
    return CallFailure(
        f"Firehose PutRecordBatch failed: {error}",
        retryable=retryable,
        error_code=error_code or None,
    )


class FirehoseDeliveryStream:
    """Kinesis Data Firehose implementation of DeliveryStream protocol.

    Uses aiobotocore for async operations with AWS Firehose.

    Attributes:
        region: AWS region
        endpoint_url: Custom endpoint URL (LocalStack)
        call_timeout_s: Timeout of one PutRecordBatch call

    Example:
        >>> stream = FirehoseDeliveryStream(region="eu-west-1")
        >>> await stream.connect()
        >>> outcomes = await stream.put_record_batch("events", [b'{"op": "create"}'])
    """

    def __init__(
        self,
        region: str = "eu-west-1",
        endpoint_url: str | None = None,
        call_timeout_s: float = 30.0,
    ) -> None:
        self.region = region
        self.endpoint_url = endpoint_url
        self.call_timeout_s = call_timeout_s
        self._session = None
        self._client_ctx = None
        self._client: Any = None
        self._connected = False

    @property
    def is_connected(self) -> bool:
        """Whether a Firehose client is open."""
        return self._connected

    async def connect(self) -> None:
        """Create the Firehose client.

        Raises:
            CallFailure: If the client cannot be created
        """
        if self._connected:
            return

        try:
            self._session = get_session()

            client_config = {
                "region_name": self.region,
            }
            if self.endpoint_url:
                client_config["endpoint_url"] = self.endpoint_url

            self._client_ctx = self._session.create_client("firehose", **client_config)
            self._client = await self._client_ctx.__aenter__()

            self._connected = True
            logger.info(
                "Connected to Firehose",
                extra={
                    "region": self.region,
                    "endpoint": self.endpoint_url or "AWS",
                },
            )

        except BotoCoreError as e:
            raise CallFailure(f"Failed to create Firehose client: {e}", retryable=False) from e

    async def close(self) -> None:
        """Close the Firehose client."""
        if self._client_ctx is not None:
            try:
                await self._client_ctx.__aexit__(None, None, None)
            except (BotoCoreError, OSError) as e:
                logger.warning(f"Error closing Firehose client: {e}")

        self._client = None
        self._client_ctx = None
        self._session = None
        self._connected = False
        logger.info("Firehose connection closed")

    async def put_record_batch(
        self,
        stream_id: str,
        records: Sequence[bytes],
    ) -> List[RecordOutcome]:
        """Send records with one PutRecordBatch call.

        Args:
            stream_id: Delivery stream name
            records: Payloads (botocore base64-encodes them)

        Returns:
            RecordOutcome per record, in request order

        Raises:
            CallFailure: If not connected or the call failed
        """
        if self._client is None:
            raise CallFailure("Not connected to Firehose", retryable=False)

        try:
            response = await asyncio.wait_for(
                self._client.put_record_batch(
                    DeliveryStreamName=stream_id,
                    Records=[{"Data": record} for record in records],
                ),
                timeout=self.call_timeout_s,
            )
        except asyncio.TimeoutError as e:
            raise CallFailure("Firehose PutRecordBatch timed out", retryable=True) from e
        except ClientError as e:
            raise classify_client_error(e) from e
        except (EndpointConnectionError, ConnectionClosedError, ReadTimeoutError) as e:
            raise CallFailure(f"Firehose connection error: {e}", retryable=True) from e
        except BotoCoreError as e:
            raise CallFailure(f"Firehose PutRecordBatch failed: {e}", retryable=False) from e

        responses = response.get("RequestResponses", [])
        if len(responses) != len(records):
            raise CallFailure(
                f"Firehose returned {len(responses)} results for {len(records)} records",
                retryable=True,
            )

        logger.debug(
            "PutRecordBatch completed",
            extra={
                "stream": stream_id,
                "records": len(records),
                "failed": response.get("FailedPutCount", 0),
            },
        )

        return [
            RecordOutcome(
                record_id=item.get("RecordId"),
                error_code=item.get("ErrorCode"),
                error_message=item.get("ErrorMessage"),
            )
            for item in responses
        ]
