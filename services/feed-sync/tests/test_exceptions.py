"""Tests for custom exceptions."""

from feedsync.exceptions import (
    ConfigurationError,
    ErrorCategory,
    ErrorContext,
    ErrorSeverity,
    EventBridgeError,
    FeedSyncError,
    S3Error,
    SourcePlatformError,
    SyncInProgressError,
    TransformationError,
    ValidationError,
    classify_error,
    get_status_code,
    is_retryable_error,
)


class TestErrorContext:
    """Tests for ErrorContext."""

    def test_error_context_defaults(self):
        """Test ErrorContext has sensible defaults."""
        ctx = ErrorContext()
        assert ctx.correlation_id is None
        assert ctx.record_id is None
        assert ctx.timestamp is not None

    def test_error_context_to_dict(self):
        """Test ErrorContext serialization."""
        ctx = ErrorContext(
            correlation_id="test-123",
            tenant_id="shop-1",
            record_id="101",
            field_name="price",
        )
        result = ctx.to_dict()

        assert result["correlation_id"] == "test-123"
        assert result["tenant_id"] == "shop-1"
        assert result["record_id"] == "101"
        assert result["field_name"] == "price"


class TestFeedSyncError:
    """Tests for FeedSyncError base class."""

    def test_creation(self):
        error = FeedSyncError(
            message="Test error",
            severity=ErrorSeverity.HIGH,
            category=ErrorCategory.TRANSFORMATION,
            retryable=True,
        )

        assert str(error) == "Test error"
        assert error.severity == ErrorSeverity.HIGH
        assert error.retryable is True

    def test_to_dict(self):
        error = FeedSyncError(
            message="Test error",
            category=ErrorCategory.VALIDATION,
        )
        result = error.to_dict()

        assert result["error_type"] == "FeedSyncError"
        assert result["severity"] == "medium"
        assert result["category"] == "validation"


class TestSubclasses:
    """Tests for the specialised errors."""

    def test_validation_error_fields(self):
        error = ValidationError(
            message="Invalid field",
            field_name="price",
            expected="number",
            actual="string",
        )

        assert error.field_name == "price"
        assert error.category == ErrorCategory.VALIDATION
        assert error.retryable is False

    def test_transformation_error(self):
        error = TransformationError(
            message="Transform failed",
            record_id="101",
            field_name="dimensions",
            transform_name="format_dimensions",
        )

        assert error.context.record_id == "101"
        assert error.context.additional_data["transform"] == "format_dimensions"

    def test_source_platform_error_retryable_by_status(self):
        assert SourcePlatformError("Bad gateway", status_code=502).retryable
        assert SourcePlatformError("Rate limited", status_code=429).retryable
        assert SourcePlatformError("No status").retryable
        assert not SourcePlatformError("Unauthorized", status_code=401).retryable

    def test_sync_in_progress(self):
        error = SyncInProgressError("shop-1", "b-1")
        assert error.running_batch_id == "b-1"
        assert error.context.tenant_id == "shop-1"
        assert error.category == ErrorCategory.CONCURRENCY

    def test_s3_error(self):
        error = S3Error(message="Failed to upload", bucket="feeds", key="shop-1/feed.json")

        assert error.context.s3_bucket == "feeds"
        assert error.context.s3_key == "shop-1/feed.json"
        assert error.retryable is True

    def test_eventbridge_error(self):
        error = EventBridgeError(message="Failed to publish", event_bus="feed-events", failed_count=2)

        assert error.context.additional_data["event_bus"] == "feed-events"
        assert error.context.additional_data["failed_count"] == 2

    def test_configuration_error(self):
        error = ConfigurationError(message="missing", config_key="FEED_BUCKET")
        assert error.severity == ErrorSeverity.CRITICAL
        assert error.retryable is False


class TestErrorClassification:
    """Tests for is_retryable_error and classify_error."""

    def test_status_code_shapes(self):
        response_error = Exception("boom")
        response_error.response = {"status": 503}
        assert get_status_code(response_error) == 503
        assert get_status_code(ValueError("plain")) is None

    def test_plain_errors(self):
        assert is_retryable_error(ConnectionError("reset"))
        assert is_retryable_error(TimeoutError("timed out"))
        assert not is_retryable_error(Exception("woocommerce_rest_cannot_view"))

        auth = Exception("denied")
        auth.status_code = 403
        assert not is_retryable_error(auth)

    def test_classify(self):
        assert classify_error(TimeoutError("ETIMEDOUT"))["error_type"] == "timeout"
        assert classify_error(ConnectionError("refused"))["error_type"] == "network"

        result = classify_error(SourcePlatformError("Unauthorized", status_code=401))
        assert result == {"is_retryable": False, "status_code": 401, "error_type": "auth"}
        assert classify_error(SourcePlatformError("Down", status_code=503))["error_type"] == "server_error"
