"""
Custom exceptions for the feed sync engine.
Provides structured error handling with rich context for debugging and monitoring.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional
from enum import Enum


class ErrorSeverity(Enum):
    """Severity levels for errors."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCategory(Enum):
    """Categories of errors for routing and handling."""
    VALIDATION = "validation"
    TRANSFORMATION = "transformation"
    NETWORK = "network"
    SOURCE_PLATFORM = "source_platform"
    STORAGE = "storage"
    AWS_SERVICE = "aws_service"
    CONFIGURATION = "configuration"
    CONCURRENCY = "concurrency"


@dataclass
class ErrorContext:
    """Rich context for error tracking and debugging."""
    correlation_id: Optional[str] = None
    tenant_id: Optional[str] = None
    record_id: Optional[str] = None
    field_name: Optional[str] = None
    expected_type: Optional[str] = None
    actual_value: Optional[Any] = None
    batch_id: Optional[str] = None
    s3_bucket: Optional[str] = None
    s3_key: Optional[str] = None
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    additional_data: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        """Convert context to dictionary for logging."""
        return {
            "correlation_id": self.correlation_id,
            "tenant_id": self.tenant_id,
            "record_id": self.record_id,
            "field_name": self.field_name,
            "expected_type": self.expected_type,
            "actual_value": str(self.actual_value) if self.actual_value else None,
            "batch_id": self.batch_id,
            "s3_bucket": self.s3_bucket,
            "s3_key": self.s3_key,
            "timestamp": self.timestamp,
            **self.additional_data,
        }


class FeedSyncError(Exception):
    """Base exception for all feed sync engine errors."""

    def __init__(
        self,
        message: str,
        context: Optional[ErrorContext] = None,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        category: ErrorCategory = ErrorCategory.TRANSFORMATION,
        retryable: bool = False,
        original_exception: Optional[Exception] = None,
    ):
        super().__init__(message)
        self.message = message
        self.context = context or ErrorContext()
        self.severity = severity
        self.category = category
        self.retryable = retryable
        self.original_exception = original_exception

    def to_dict(self) -> dict:
        """Serialize exception for logging and monitoring."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "severity": self.severity.value,
            "category": self.category.value,
            "retryable": self.retryable,
            "context": self.context.to_dict(),
            "original_exception": str(self.original_exception) if self.original_exception else None,
        }


class ValidationError(FeedSyncError):
    """Raised when input data fails validation at a collaborator boundary."""

    def __init__(
        self,
        message: str,
        field_name: str,
        expected: str,
        actual: Any,
        context: Optional[ErrorContext] = None,
    ):
        ctx = context or ErrorContext()
        ctx.field_name = field_name
        ctx.expected_type = expected
        ctx.actual_value = actual

        super().__init__(
            message=message,
            context=ctx,
            severity=ErrorSeverity.LOW,
            category=ErrorCategory.VALIDATION,
            retryable=False,
        )
        self.field_name = field_name
        self.expected = expected
        self.actual = actual


class TransformationError(FeedSyncError):
    """Raised (and caught at the resolver boundary) when a transform misbehaves."""

    def __init__(
        self,
        message: str,
        record_id: str,
        field_name: Optional[str] = None,
        transform_name: Optional[str] = None,
        context: Optional[ErrorContext] = None,
        original_exception: Optional[Exception] = None,
    ):
        ctx = context or ErrorContext()
        ctx.record_id = record_id
        ctx.field_name = field_name
        if transform_name:
            ctx.additional_data["transform"] = transform_name

        super().__init__(
            message=message,
            context=ctx,
            severity=ErrorSeverity.HIGH,
            category=ErrorCategory.TRANSFORMATION,
            retryable=False,
            original_exception=original_exception,
        )
        self.transform_name = transform_name


class SourcePlatformError(FeedSyncError):
    """Raised when the source platform client fails to deliver records."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        context: Optional[ErrorContext] = None,
        original_exception: Optional[Exception] = None,
    ):
        ctx = context or ErrorContext()
        if status_code is not None:
            ctx.additional_data["status_code"] = status_code

        super().__init__(
            message=message,
            context=ctx,
            severity=ErrorSeverity.HIGH,
            category=ErrorCategory.SOURCE_PLATFORM,
            retryable=status_code not in NON_RETRYABLE_STATUS_CODES,
            original_exception=original_exception,
        )
        self.status_code = status_code


class StorageError(FeedSyncError):
    """Raised when the storage collaborator is unavailable."""

    def __init__(
        self,
        message: str,
        operation: str,
        context: Optional[ErrorContext] = None,
        original_exception: Optional[Exception] = None,
    ):
        ctx = context or ErrorContext()
        ctx.additional_data["operation"] = operation

        super().__init__(
            message=message,
            context=ctx,
            severity=ErrorSeverity.HIGH,
            category=ErrorCategory.STORAGE,
            retryable=True,
            original_exception=original_exception,
        )
        self.operation = operation


class SyncInProgressError(FeedSyncError):
    """Raised when a tenant already has a running sync batch."""

    def __init__(
        self,
        tenant_id: str,
        running_batch_id: Optional[str] = None,
        context: Optional[ErrorContext] = None,
    ):
        ctx = context or ErrorContext()
        ctx.tenant_id = tenant_id
        ctx.batch_id = running_batch_id

        super().__init__(
            message=f"Sync already running for tenant {tenant_id}",
            context=ctx,
            severity=ErrorSeverity.LOW,
            category=ErrorCategory.CONCURRENCY,
            retryable=True,
        )
        self.tenant_id = tenant_id
        self.running_batch_id = running_batch_id


class AWSServiceError(FeedSyncError):
    """Raised when AWS service calls fail."""

    def __init__(
        self,
        message: str,
        service_name: str,
        operation: str,
        context: Optional[ErrorContext] = None,
        original_exception: Optional[Exception] = None,
    ):
        ctx = context or ErrorContext()
        ctx.additional_data["aws_service"] = service_name
        ctx.additional_data["operation"] = operation

        super().__init__(
            message=message,
            context=ctx,
            severity=ErrorSeverity.HIGH,
            category=ErrorCategory.AWS_SERVICE,
            retryable=True,
            original_exception=original_exception,
        )
        self.service_name = service_name
        self.operation = operation


class S3Error(AWSServiceError):
    """Raised when S3 operations fail."""

    def __init__(
        self,
        message: str,
        bucket: str,
        key: str,
        operation: str = "PutObject",
        context: Optional[ErrorContext] = None,
        original_exception: Optional[Exception] = None,
    ):
        ctx = context or ErrorContext()
        ctx.s3_bucket = bucket
        ctx.s3_key = key

        super().__init__(
            message=message,
            service_name="S3",
            operation=operation,
            context=ctx,
            original_exception=original_exception,
        )


class EventBridgeError(AWSServiceError):
    """Raised when EventBridge operations fail."""

    def __init__(
        self,
        message: str,
        event_bus: str,
        failed_count: int = 0,
        context: Optional[ErrorContext] = None,
        original_exception: Optional[Exception] = None,
    ):
        ctx = context or ErrorContext()
        ctx.additional_data["event_bus"] = event_bus
        ctx.additional_data["failed_count"] = failed_count

        super().__init__(
            message=message,
            service_name="EventBridge",
            operation="PutEvents",
            context=ctx,
            original_exception=original_exception,
        )


class ConfigurationError(FeedSyncError):
    """Raised when configuration is invalid or missing."""

    def __init__(
        self,
        message: str,
        config_key: str,
        context: Optional[ErrorContext] = None,
    ):
        ctx = context or ErrorContext()
        ctx.additional_data["config_key"] = config_key

        super().__init__(
            message=message,
            context=ctx,
            severity=ErrorSeverity.CRITICAL,
            category=ErrorCategory.CONFIGURATION,
            retryable=False,
        )
        self.config_key = config_key


# HTTP statuses that will not resolve themselves on retry.
NON_RETRYABLE_STATUS_CODES = frozenset({400, 401, 403, 404, 410, 422})

NON_RETRYABLE_MESSAGES = (
    "consumer_key",
    "consumer_secret",
    "invalid signature",
    "rest_forbidden",
    "woocommerce_rest_cannot_view",
)


def get_status_code(error: BaseException) -> Optional[int]:
    """Extract an HTTP status code from the common error shapes."""
    status = getattr(error, "status_code", None)
    if isinstance(status, int):
        return status

    response = getattr(error, "response", None)
    if response is not None:
        status = getattr(response, "status_code", None)
        if isinstance(status, int):
            return status
        if isinstance(response, dict):
            status = response.get("status")
            if isinstance(status, int):
                return status

    status = getattr(error, "status", None)
    if isinstance(status, int):
        return status
    return None


def is_retryable_error(error: BaseException) -> bool:
    """
    Decide whether a failed work unit should be retried.

    Engine errors carry their own ``retryable`` flag. For anything else the
    HTTP status and message are inspected; timeouts, network failures, rate
    limits and server errors are all treated as transient.
    """
    if isinstance(error, FeedSyncError):
        return error.retryable

    status = get_status_code(error)
    if status is not None and status in NON_RETRYABLE_STATUS_CODES:
        return False

    message = str(error).lower()
    if any(keyword in message for keyword in NON_RETRYABLE_MESSAGES):
        return False

    return True


def classify_error(error: BaseException) -> dict:
    """Classify an error for logging and monitoring purposes."""
    status = get_status_code(error)
    error_type = "unknown"

    if status is not None:
        if status in (401, 403):
            error_type = "auth"
        elif status in (404, 410):
            error_type = "not_found"
        elif 400 <= status < 500:
            error_type = "client_error"
        elif status >= 500:
            error_type = "server_error"
    else:
        message = str(error)
        if isinstance(error, TimeoutError) or "timeout" in message.lower() or "ETIMEDOUT" in message:
            error_type = "timeout"
        elif isinstance(error, ConnectionError) or "ECONNREFUSED" in message or "network" in message.lower():
            error_type = "network"

    return {
        "is_retryable": is_retryable_error(error),
        "status_code": status,
        "error_type": error_type,
    }
