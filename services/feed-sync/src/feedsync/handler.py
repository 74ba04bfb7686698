"""
AWS Lambda handler for sync triggers.
Accepts webhook, operator and scheduler events and enqueues sync work on the
configured engine.

Supported events:
    {"tenantId": "...", "syncType": "incremental", "trigger": "webhook", "recordId": "42"}
    {"action": "cancel", "batchId": "..."}
    EventBridge "Scheduled Event" payloads, which schedule a full sync for
    every enabled tenant.
API Gateway proxy events carrying one of the above as a JSON body are
unwrapped first.
"""

import json
import time
from typing import Any, Optional

import pydantic

from feedsync.exceptions import ConfigurationError, ErrorCategory, FeedSyncError, ValidationError
from feedsync.logging_config import configure_logging, set_correlation_id, set_tenant_id
from feedsync.models import SyncRequest
from feedsync.orchestrator import SyncOrchestrator
from feedsync.settings import EngineSettings

_settings = EngineSettings.from_env()

logger = configure_logging(
    level=_settings.log_level,
    service_name="feed-sync",
)

_engine: Optional[SyncOrchestrator] = None


def configure_engine(engine: Optional[SyncOrchestrator]) -> None:
    """Install the orchestrator used by the handler (None to clear)."""
    global _engine
    _engine = engine


def get_engine() -> SyncOrchestrator:
    if _engine is None:
        raise ConfigurationError(
            message="Sync engine is not configured; call configure_engine() at startup",
            config_key="engine",
        )
    return _engine


def parse_event(event: dict) -> dict:
    """Unwrap API Gateway proxy bodies; other events pass through."""
    body = event.get("body")
    if body is None:
        return event
    if isinstance(body, str):
        try:
            body = json.loads(body)
        except json.JSONDecodeError as e:
            raise ValidationError(
                message=f"Invalid JSON in request body: {e}",
                field_name="body",
                expected="JSON object",
                actual=body,
            ) from e
    if not isinstance(body, dict):
        raise ValidationError(
            message="Request body must be a JSON object",
            field_name="body",
            expected="JSON object",
            actual=body,
        )
    return body


def is_scheduled_event(event: dict) -> bool:
    return event.get("source") == "aws.events" and event.get("detail-type") == "Scheduled Event"


def handler(event: dict, context: Any) -> dict:
    """
    Main Lambda handler for sync triggers.

    Args:
        event: Trigger payload (see module docstring)
        context: Lambda context

    Returns:
        Response with the queued work, or an error description
    """
    start_time = time.perf_counter()
    correlation_id = set_correlation_id()

    logger.info(
        "Lambda invocation started",
        extra={
            "event_type": "lambda_start",
            "aws_request_id": getattr(context, "aws_request_id", None) if context else None,
        },
    )

    try:
        engine = get_engine()

        if is_scheduled_event(event):
            units = engine.schedule_all()
            return build_response(
                202,
                {
                    "message": f"Scheduled {len(units)} syncs",
                    "correlationId": correlation_id,
                    "units": [
                        {"unitId": u.id, "tenantId": u.tenant_id, "batchId": u.batch_id}
                        for u in units
                    ],
                },
                start_time,
            )

        payload = parse_event(event)

        if payload.get("action") == "cancel":
            batch_id = payload.get("batchId")
            if not batch_id:
                raise ValidationError(
                    message="Cancel request missing batchId",
                    field_name="batchId",
                    expected="batch id",
                    actual=None,
                )
            batch = engine.cancel(batch_id)
            if batch is None:
                return build_response(
                    404,
                    {"message": f"Unknown batch {batch_id}", "correlationId": correlation_id},
                    start_time,
                )
            return build_response(
                202,
                {
                    "message": "Cancellation requested",
                    "correlationId": correlation_id,
                    "batch": batch.model_dump(mode="json"),
                },
                start_time,
            )

        request = SyncRequest.model_validate(payload)
        set_tenant_id(request.tenant_id)

        unit = engine.request_sync(
            request.tenant_id,
            sync_type=request.sync_type,
            trigger=request.trigger,
            record_id=request.record_id,
        )

        return build_response(
            202,
            {
                "message": "Sync queued",
                "correlationId": correlation_id,
                "unitId": unit.id,
                "batchId": unit.batch_id,
                "tenantId": unit.tenant_id,
                "syncType": unit.sync_type.value,
                "priority": int(unit.priority),
            },
            start_time,
        )

    except pydantic.ValidationError as e:
        logger.warning(f"Invalid sync request: {e.error_count()} errors")
        return build_response(
            400,
            {
                "error": {
                    "type": "ValidationError",
                    "message": "Invalid sync request",
                    "details": e.errors(include_url=False, include_input=False),
                },
                "correlationId": correlation_id,
            },
            start_time,
        )

    except FeedSyncError as e:
        logger.error(
            f"Sync trigger error: {e.message}",
            extra={"error": e.to_dict()},
        )
        return build_response(
            500 if e.retryable or e.category == ErrorCategory.CONFIGURATION else 400,
            {
                "error": e.to_dict(),
                "correlationId": correlation_id,
            },
            start_time,
        )

    except Exception as e:
        logger.error(f"Unexpected error: {e}", exc_info=True)
        return build_response(
            500,
            {
                "error": {"type": type(e).__name__, "message": str(e)},
                "correlationId": correlation_id,
            },
            start_time,
        )


def build_response(status_code: int, body: dict, start_time: float) -> dict:
    """Build Lambda response with timing metadata."""
    duration_ms = (time.perf_counter() - start_time) * 1000

    body["durationMs"] = round(duration_ms, 2)

    logger.info(
        "Lambda invocation complete",
        extra={
            "event_type": "lambda_complete",
            "status_code": status_code,
            "duration_ms": round(duration_ms, 2),
        },
    )

    return {
        "statusCode": status_code,
        "body": body,
    }
