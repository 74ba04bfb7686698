"""
Publication adapter: uploads assembled feeds to S3 and announces them on
EventBridge.
"""

import json
import logging
import uuid
from typing import Optional

import boto3
from botocore.config import Config

from feedsync.exceptions import ConfigurationError, EventBridgeError, S3Error
from feedsync.logging_config import get_correlation_id
from feedsync.models import FeedDocument, utc_now
from feedsync.retry import retry_with_backoff
from feedsync.settings import EngineSettings

logger = logging.getLogger(__name__)

EVENT_SOURCE = "com.catalog.feedsync"
EVENT_DETAIL_TYPE = "FeedPublished"

boto_config = Config(
    retries={"max_attempts": 3, "mode": "adaptive"},
    connect_timeout=10,
    read_timeout=60,
)


class AWSClientFactory:
    """Factory for creating AWS clients with proper configuration."""

    _s3_client = None
    _eventbridge_client = None
    region_name = "us-east-1"
    endpoint_url: Optional[str] = None

    @classmethod
    def configure(cls, settings: EngineSettings) -> None:
        """Point the factory at the configured region and endpoint."""
        cls.region_name = settings.aws_region
        cls.endpoint_url = settings.localstack_endpoint
        cls.reset()

    @classmethod
    def _client_kwargs(cls) -> dict:
        kwargs = {"config": boto_config, "region_name": cls.region_name}
        if cls.endpoint_url:
            kwargs["endpoint_url"] = cls.endpoint_url
        return kwargs

    @classmethod
    def get_s3_client(cls):
        """Get or create S3 client."""
        if cls._s3_client is None:
            cls._s3_client = boto3.client("s3", **cls._client_kwargs())
        return cls._s3_client

    @classmethod
    def get_eventbridge_client(cls):
        """Get or create EventBridge client."""
        if cls._eventbridge_client is None:
            cls._eventbridge_client = boto3.client("events", **cls._client_kwargs())
        return cls._eventbridge_client

    @classmethod
    def reset(cls):
        """Reset clients (useful for testing)."""
        cls._s3_client = None
        cls._eventbridge_client = None


def feed_key(tenant_id: str) -> str:
    return f"{tenant_id}/feed.json"


@retry_with_backoff(
    max_attempts=3,
    base_delay=1.0,
    retryable_exceptions=(S3Error,),
)
def upload_feed_to_s3(bucket: str, key: str, body: str) -> None:
    """
    Upload a serialized feed with retry logic.

    Raises:
        S3Error: If the upload fails after retries
    """
    try:
        s3 = AWSClientFactory.get_s3_client()
        s3.put_object(
            Bucket=bucket,
            Key=key,
            Body=body.encode("utf-8"),
            ContentType="application/json",
        )
        logger.info(
            f"Uploaded {len(body)} bytes to S3",
            extra={"s3_bucket": bucket, "s3_key": key},
        )
    except Exception as e:
        raise S3Error(
            message=f"Failed to upload feed to S3: {e}",
            bucket=bucket,
            key=key,
            original_exception=e,
        ) from e


class FeedPublisher:
    """Delivers feed documents and emits a FeedPublished event."""

    def __init__(self, bucket: Optional[str], event_bus_name: Optional[str] = None):
        if not bucket:
            raise ConfigurationError(
                message="FEED_BUCKET is required to publish feeds",
                config_key="FEED_BUCKET",
            )
        self.bucket = bucket
        self.event_bus_name = event_bus_name

    @classmethod
    def from_settings(cls, settings: EngineSettings) -> "FeedPublisher":
        AWSClientFactory.configure(settings)
        return cls(bucket=settings.feed_bucket, event_bus_name=settings.event_bus_name)

    def publish(self, feed: FeedDocument) -> str:
        """Upload ``feed`` and return its S3 URL."""
        key = feed_key(feed.tenant_id)
        upload_feed_to_s3(self.bucket, key, feed.to_json())
        url = f"s3://{self.bucket}/{key}"

        if self.event_bus_name:
            self._announce(feed, url)

        logger.info(
            f"Published feed for tenant {feed.tenant_id}",
            extra={"metrics": feed.stats.model_dump(), "s3_bucket": self.bucket, "s3_key": key},
        )
        return url

    @retry_with_backoff(
        max_attempts=3,
        base_delay=0.5,
        max_delay=10.0,
    )
    def _put_events(self, entries: list[dict]) -> dict:
        """Put events to EventBridge with retry."""
        return AWSClientFactory.get_eventbridge_client().put_events(Entries=entries)

    def _announce(self, feed: FeedDocument, url: str) -> None:
        detail = {
            "eventId": str(uuid.uuid4()),
            "timestamp": utc_now().isoformat(),
            "correlationId": get_correlation_id(),
            "tenantId": feed.tenant_id,
            "feedUrl": url,
            "stats": feed.stats.model_dump(),
        }
        entry = {
            "Source": EVENT_SOURCE,
            "DetailType": EVENT_DETAIL_TYPE,
            "Detail": json.dumps(detail, default=str),
            "EventBusName": self.event_bus_name,
        }

        try:
            response = self._put_events([entry])
        except Exception as e:
            logger.error(f"FeedPublished event failed: {e}")
            raise EventBridgeError(
                message=f"Failed to publish FeedPublished event: {e}",
                event_bus=self.event_bus_name,
                failed_count=1,
                original_exception=e,
            ) from e

        failed = response.get("FailedEntryCount", 0)
        if failed > 0:
            logger.warning(
                "FeedPublished event rejected",
                extra={
                    "failed_entries": [
                        e for e in response.get("Entries", [])
                        if e.get("ErrorCode")
                    ]
                },
            )
            raise EventBridgeError(
                message="EventBridge rejected the FeedPublished event",
                event_bus=self.event_bus_name,
                failed_count=failed,
            )
