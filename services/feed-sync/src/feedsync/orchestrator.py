"""
Sync orchestration: per-tenant batch lifecycle, retries and feed publication.

Each sync unit is admitted through a compare-and-set on the tenant's sync
state, fetches records from the source collaborator, filters them through
the change detector, resolves and validates changed records on a bounded
thread pool and persists the results. A successful batch chains a
feed-publication unit; a batch that keeps failing is marked failed once and
its unit is parked.
"""

import contextvars
import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime, timedelta
from typing import Callable, Optional, Protocol

from feedsync.assembler import FeedAssembler
from feedsync.change_detector import ChangeDetector
from feedsync.exceptions import (
    SyncInProgressError,
    ValidationError,
    classify_error,
    is_retryable_error,
)
from feedsync.field_catalog import check_catalog_version
from feedsync.logging_config import LogContext
from feedsync.models import (
    FeedDocument,
    FieldOverrides,
    ResolvedRecord,
    SourceRecord,
    SyncBatch,
    SyncStatus,
    SyncType,
    TenantConfig,
    TriggerSource,
    WorkUnit,
    utc_now,
)
from feedsync.publisher import FeedPublisher
from feedsync.resolver import FieldResolver
from feedsync.retry import RetryConfig
from feedsync.scheduler import WorkQueue
from feedsync.settings import EngineSettings
from feedsync.storage import StorageBackend
from feedsync.validator import FeedValidator

logger = logging.getLogger(__name__)

FORCED_SYNC_TYPES = frozenset({SyncType.REPROCESS, SyncType.SINGLE_RECORD})


class SourceClient(Protocol):
    """Ingestion collaborator delivering raw records for a tenant."""

    def fetch_records(self, tenant: TenantConfig, since: Optional[datetime]) -> list[SourceRecord]:
        ...

    def fetch_record(self, tenant: TenantConfig, record_id: str) -> Optional[SourceRecord]:
        ...


def build_resolved_record(
    record: SourceRecord,
    tenant: TenantConfig,
    overrides: FieldOverrides,
    resolver: FieldResolver,
    validator: FeedValidator,
    fingerprint: Optional[str] = None,
    resolved_at: Optional[datetime] = None,
) -> ResolvedRecord:
    """Resolve and validate one record. Pure apart from ``resolved_at``."""
    resolution = resolver.resolve_record(record, tenant, overrides)
    outcome = validator.validate(resolution.values)
    values = resolution.values

    return ResolvedRecord(
        tenant_id=tenant.id,
        external_id=record.external_id,
        parent_id=record.parent_id,
        values=values,
        errors=outcome.errors,
        warnings=resolution.warnings + outcome.warnings,
        is_valid=outcome.is_valid,
        fingerprint=fingerprint,
        resolved_at=resolved_at or utc_now(),
        enable_search=values.get("enable_search") == "true",
        enable_checkout=values.get("enable_checkout") == "true",
        is_selected=record.is_selected,
    )


class SyncOrchestrator:
    """
    Drives sync units from the work queue through the batch lifecycle.

    Collaborators are injected; anything omitted gets the default engine
    component built from ``settings``.
    """

    def __init__(
        self,
        storage: StorageBackend,
        source: SourceClient,
        settings: Optional[EngineSettings] = None,
        resolver: Optional[FieldResolver] = None,
        validator: Optional[FeedValidator] = None,
        detector: Optional[ChangeDetector] = None,
        assembler: Optional[FeedAssembler] = None,
        publisher: Optional[FeedPublisher] = None,
        queue: Optional[WorkQueue] = None,
        clock: Callable[[], datetime] = utc_now,
        sleep: Optional[Callable[[float], None]] = None,
    ):
        self.settings = settings or EngineSettings()
        check_catalog_version(self.settings.field_catalog_version)

        self.storage = storage
        self.source = source
        self.resolver = resolver or FieldResolver()
        self.validator = validator or FeedValidator(
            title_max_length=self.settings.title_max_length,
            description_max_length=self.settings.description_max_length,
        )
        self.detector = detector or ChangeDetector()
        self.assembler = assembler or FeedAssembler(page_size=self.settings.preview_page_size)
        self.publisher = publisher
        self.queue = queue or WorkQueue()
        self.clock = clock
        self._sleep = sleep
        self.retry_config = RetryConfig(
            max_attempts=self.settings.max_attempts,
            base_delay=self.settings.backoff_base_seconds,
            max_delay=self.settings.backoff_base_seconds * 2 ** self.settings.max_attempts,
            jitter=False,
        )
        self.feeds: dict[str, FeedDocument] = {}

    # Requests

    def request_sync(
        self,
        tenant_id: str,
        sync_type: SyncType = SyncType.INCREMENTAL,
        trigger: TriggerSource = TriggerSource.MANUAL,
        record_id: Optional[str] = None,
    ) -> WorkUnit:
        """Create a pending batch for the request and enqueue its unit."""
        tenant = self._require_tenant(tenant_id)
        if sync_type == SyncType.SINGLE_RECORD and not record_id:
            raise ValidationError(
                message="single_record sync requires a record id",
                field_name="record_id",
                expected="non-empty record id",
                actual=record_id,
            )

        batch_id = None
        if sync_type != SyncType.FEED_PUBLICATION:
            batch = SyncBatch(tenant_id=tenant.id, sync_type=sync_type, trigger=trigger)
            self.storage.save_batch(batch)
            batch_id = batch.id

        unit = WorkUnit(
            tenant_id=tenant.id,
            sync_type=sync_type,
            trigger=trigger,
            record_id=record_id,
            batch_id=batch_id,
        )
        self.queue.enqueue(unit)

        logger.info(
            f"Queued {sync_type.value} sync for tenant {tenant.id}",
            extra={"unit_id": unit.id, "trigger": trigger.value, "batch_id": batch_id},
        )
        return unit

    def schedule_all(self, tenants: Optional[list[TenantConfig]] = None) -> list[WorkUnit]:
        """Enqueue a scheduled full sync for every enabled tenant."""
        tenants = self.storage.list_tenants() if tenants is None else tenants
        units = [
            self.request_sync(tenant.id, SyncType.FULL, TriggerSource.SCHEDULE)
            for tenant in tenants
            if tenant.sync_enabled and tenant.feed_enabled
        ]
        logger.info(
            f"Scheduled {len(units)} full syncs",
            extra={"metrics": {"scheduled": len(units), "tenants": len(tenants)}},
        )
        return units

    def cancel(self, batch_id: str) -> Optional[SyncBatch]:
        """
        Request cancellation of a batch.

        A pending batch is cancelled at once; a running batch stops at the
        next record checkpoint.
        """
        batch = self.storage.get_batch(batch_id)
        if batch is None or batch.is_terminal:
            return batch

        self.storage.request_cancel(batch_id)
        if batch.status == SyncStatus.PENDING:
            batch.status = SyncStatus.CANCELLED
            batch.completed_at = self.clock()
            self.storage.save_batch(batch)
        logger.info(f"Cancellation requested for batch {batch_id}", extra={"batch_id": batch_id})
        return batch

    # Batch lifecycle

    def start_batch(self, batch: SyncBatch) -> SyncBatch:
        """
        Admit ``batch`` as the tenant's running batch.

        Raises:
            SyncInProgressError: another batch is running with a fresh heartbeat
        """
        now = self.clock()
        stale_before = now - timedelta(seconds=self.settings.heartbeat_timeout_seconds)
        admission = self.storage.try_begin_sync(batch.tenant_id, batch.id, now, stale_before)

        if not admission.admitted:
            raise SyncInProgressError(batch.tenant_id, admission.running_batch_id)

        if admission.taken_over_batch_id:
            self._fail_stale_batch(admission.taken_over_batch_id, batch.id)

        batch.status = SyncStatus.RUNNING
        batch.attempts += 1
        batch.started_at = batch.started_at or now
        batch.heartbeat_at = now
        batch.succeeded = batch.failed = batch.skipped = 0
        self.storage.save_batch(batch)
        return batch

    def execute_batch(
        self,
        batch: SyncBatch,
        tenant: TenantConfig,
        record_id: Optional[str] = None,
    ) -> Optional[SyncStatus]:
        """
        Resolve the batch's records.

        Returns COMPLETED, or CANCELLED when a cancel request was seen at a
        record checkpoint, or None when another worker took the tenant over.
        Source and storage errors propagate.
        """
        records = self._fetch_records(batch, tenant, record_id)
        batch.total = len(records)
        force = batch.sync_type in FORCED_SYNC_TYPES

        pending: list[tuple[SourceRecord, str]] = []
        for record in records:
            fingerprint = self.detector.fingerprint(record)
            if not force:
                previous = self.storage.get_resolved(tenant.id, record.external_id)
                decision = self.detector.detect(
                    record,
                    self.storage.get_fingerprint(tenant.id, record.external_id),
                    resolved_at=previous.resolved_at if previous else None,
                    tenant=tenant,
                )
                if not decision.changed:
                    batch.skipped += 1
                    continue
            pending.append((record, fingerprint))

        return self._resolve_records(batch, tenant, pending)

    def finish_batch(self, batch: SyncBatch, status: SyncStatus, error: Optional[str] = None) -> SyncBatch:
        """Record the terminal (or pending-retry) status and release the tenant."""
        batch.status = status
        if error:
            batch.error_log.append(error)
        if batch.is_terminal:
            batch.completed_at = self.clock()
        self.storage.save_batch(batch)
        self.storage.finish_sync(batch.tenant_id, batch.id)
        return batch

    # Work units

    def process_unit(self, unit: WorkUnit) -> Optional[SyncBatch]:
        """Run one dequeued unit to completion, retry or parking."""
        with LogContext(tenant_id=unit.tenant_id, batch_id=unit.batch_id):
            if self.storage.get_tenant(unit.tenant_id) is None:
                return self._park_orphan(unit)
            if unit.sync_type == SyncType.FEED_PUBLICATION:
                return self._process_publication(unit)
            return self._process_sync(unit)

    def run_pending(self, max_units: Optional[int] = None) -> int:
        """
        Process queued units on the calling thread until the queue drains.

        Delayed units are waited for with the injected ``sleep``.
        """
        processed = 0
        while max_units is None or processed < max_units:
            unit = self.queue.dequeue(timeout=0)
            if unit is None:
                wait = self.queue.next_available_in()
                if wait is None:
                    break
                (self._sleep or time.sleep)(wait)
                continue
            self.process_unit(unit)
            processed += 1
        return processed

    def _process_sync(self, unit: WorkUnit) -> Optional[SyncBatch]:
        tenant = self._require_tenant(unit.tenant_id)
        batch = self._batch_for(unit)

        if batch.is_terminal:
            self.queue.cancel(unit)
            logger.info(f"Skipping {batch.status.value} batch {batch.id}")
            return batch

        try:
            self.start_batch(batch)
        except SyncInProgressError as e:
            logger.info(
                f"Tenant {unit.tenant_id} busy with batch {e.running_batch_id}; deferring",
                extra={"unit_id": unit.id},
            )
            self.queue.retry(unit, self.settings.requeue_delay_seconds)
            return None

        try:
            status = self.execute_batch(batch, tenant, unit.record_id)
        except Exception as e:
            return self._handle_failure(unit, batch, e)

        if status is None:
            logger.warning(f"Batch {batch.id} lost ownership of tenant {tenant.id}")
            self.queue.cancel(unit)
            return batch

        self.finish_batch(batch, status)
        if status == SyncStatus.CANCELLED:
            self.queue.cancel(unit)
        else:
            if tenant.feed_enabled:
                self.queue.enqueue_after(unit, WorkUnit(
                    tenant_id=tenant.id,
                    sync_type=SyncType.FEED_PUBLICATION,
                    trigger=unit.trigger,
                    batch_id=batch.id,
                ))
            self.queue.complete(unit)

        logger.info(
            f"Batch {batch.id} {status.value}",
            extra={"metrics": {
                "total": batch.total,
                "succeeded": batch.succeeded,
                "failed": batch.failed,
                "skipped": batch.skipped,
                "attempts": batch.attempts,
            }},
        )
        return batch

    def _process_publication(self, unit: WorkUnit) -> Optional[SyncBatch]:
        tenant = self._require_tenant(unit.tenant_id)
        batch = self.storage.get_batch(unit.batch_id) if unit.batch_id else None

        try:
            feed = self.assembler.assemble(tenant, self.storage.list_resolved(tenant.id))
            self.feeds[tenant.id] = feed
            url = self.publisher.publish(feed) if self.publisher else None
        except Exception as e:
            attempt = unit.attempt + 1
            message = f"publication attempt {attempt}: {e}"
            if batch is not None:
                batch.error_log.append(message)
                self.storage.save_batch(batch)
            self._retry_or_park(unit.model_copy(update={"attempt": attempt, "last_error": str(e)}), e)
            return batch

        if batch is not None and url:
            batch.feed_url = url
            self.storage.save_batch(batch)
        self.queue.complete(unit)
        return batch

    def _handle_failure(self, unit: WorkUnit, batch: SyncBatch, error: Exception) -> SyncBatch:
        attempt = unit.attempt + 1
        unit = unit.model_copy(update={"attempt": attempt, "last_error": str(error)})
        message = f"attempt {attempt}: {error}"

        if self._retry_or_park(unit, error):
            self.finish_batch(batch, SyncStatus.PENDING, message)
        else:
            self.finish_batch(batch, SyncStatus.FAILED, message)
            logger.error(
                f"Batch {batch.id} failed after {attempt} attempts: {error}",
                extra={"error": classify_error(error), "batch_id": batch.id},
            )
        return batch

    def _retry_or_park(self, unit: WorkUnit, error: Exception) -> bool:
        """Requeue with backoff when the error allows it; park otherwise."""
        if self.retry_config.should_retry(error, unit.attempt) and is_retryable_error(error):
            delay = self.retry_config.calculate_delay(unit.attempt - 1)
            logger.warning(
                f"Attempt {unit.attempt}/{self.retry_config.max_attempts} failed for "
                f"{unit.sync_type.value} unit: {error}. Retrying in {delay:.2f}s",
                extra={"unit_id": unit.id},
            )
            self.queue.retry(unit, delay)
            return True

        self.queue.fail(unit, str(error))
        return False

    # Internals

    def _fetch_records(
        self,
        batch: SyncBatch,
        tenant: TenantConfig,
        record_id: Optional[str],
    ) -> list[SourceRecord]:
        if batch.sync_type == SyncType.SINGLE_RECORD:
            record = self.source.fetch_record(tenant, record_id)
            if record is None:
                logger.warning(f"Record {record_id} not found at source", extra={"record_id": record_id})
                return []
            return [record]

        since = self._last_completed_at(tenant.id) if batch.sync_type == SyncType.INCREMENTAL else None
        return list(self.source.fetch_records(tenant, since))

    def _last_completed_at(self, tenant_id: str) -> Optional[datetime]:
        started = [
            batch.started_at
            for batch in self.storage.list_batches(tenant_id)
            if batch.status == SyncStatus.COMPLETED and batch.started_at
        ]
        return max(started) if started else None

    def _resolve_records(
        self,
        batch: SyncBatch,
        tenant: TenantConfig,
        pending: list[tuple[SourceRecord, str]],
    ) -> Optional[SyncStatus]:
        with ThreadPoolExecutor(max_workers=self.settings.resolve_concurrency) as executor:
            futures: list[Future] = []
            for record, fingerprint in pending:
                overrides = self.storage.get_overrides(tenant.id, record.external_id)
                futures.append(executor.submit(
                    contextvars.copy_context().run,
                    build_resolved_record,
                    record,
                    tenant,
                    overrides,
                    self.resolver,
                    self.validator,
                    fingerprint,
                    self.clock(),
                ))

            for future in futures:
                resolved: ResolvedRecord = future.result()
                self.storage.save_resolved(resolved)
                if resolved.is_valid:
                    batch.succeeded += 1
                else:
                    batch.failed += 1

                now = self.clock()
                batch.heartbeat_at = now
                if not self.storage.heartbeat(tenant.id, batch.id, now):
                    self._cancel_futures(futures)
                    return None
                if self.storage.is_cancel_requested(batch.id):
                    self._cancel_futures(futures)
                    logger.info(f"Batch {batch.id} cancelled at record {resolved.external_id}")
                    return SyncStatus.CANCELLED
                self.storage.save_batch(batch)

        return SyncStatus.COMPLETED

    @staticmethod
    def _cancel_futures(futures: list[Future]) -> None:
        for future in futures:
            future.cancel()

    def _fail_stale_batch(self, stale_batch_id: str, new_batch_id: str) -> None:
        stale = self.storage.get_batch(stale_batch_id)
        if stale is None or stale.is_terminal:
            return
        stale.status = SyncStatus.FAILED
        stale.completed_at = self.clock()
        stale.error_log.append(f"heartbeat timed out; taken over by batch {new_batch_id}")
        self.storage.save_batch(stale)
        logger.warning(
            f"Took over stale batch {stale_batch_id}",
            extra={"batch_id": new_batch_id},
        )

    def _park_orphan(self, unit: WorkUnit) -> Optional[SyncBatch]:
        """Park a unit whose tenant was removed after it was queued."""
        message = f"Unknown tenant {unit.tenant_id}"
        logger.error(f"{message}; parking unit {unit.id}", extra={"unit_id": unit.id})
        self.queue.fail(unit, message)

        batch = self.storage.get_batch(unit.batch_id) if unit.batch_id else None
        if batch is None or unit.sync_type == SyncType.FEED_PUBLICATION or batch.is_terminal:
            return batch
        batch.status = SyncStatus.FAILED
        batch.error_log.append(message)
        batch.completed_at = self.clock()
        self.storage.save_batch(batch)
        return batch

    def _batch_for(self, unit: WorkUnit) -> SyncBatch:
        batch = self.storage.get_batch(unit.batch_id) if unit.batch_id else None
        if batch is None:
            batch = SyncBatch(tenant_id=unit.tenant_id, sync_type=unit.sync_type, trigger=unit.trigger)
            self.storage.save_batch(batch)
            unit.batch_id = batch.id
        return batch

    def _require_tenant(self, tenant_id: str) -> TenantConfig:
        tenant = self.storage.get_tenant(tenant_id)
        if tenant is None:
            raise ValidationError(
                message=f"Unknown tenant {tenant_id}",
                field_name="tenant_id",
                expected="registered tenant id",
                actual=tenant_id,
            )
        return tenant


class SyncWorkerPool:
    """Worker threads consuming the orchestrator's queue."""

    def __init__(self, orchestrator: SyncOrchestrator, worker_count: Optional[int] = None, poll_interval: float = 0.5):
        self.orchestrator = orchestrator
        self.worker_count = worker_count or orchestrator.settings.worker_count
        self.poll_interval = poll_interval
        self._stopping = threading.Event()
        self._threads: list[threading.Thread] = []

    def start(self) -> None:
        if self._threads:
            return
        self._stopping.clear()
        for index in range(self.worker_count):
            thread = threading.Thread(
                target=self._work,
                name=f"feedsync-worker-{index}",
                daemon=True,
            )
            thread.start()
            self._threads.append(thread)
        logger.info(f"Started {self.worker_count} sync workers")

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stopping.set()
        for thread in self._threads:
            thread.join(timeout)
        self._threads.clear()
        logger.info("Sync workers stopped")

    @property
    def running(self) -> bool:
        return any(thread.is_alive() for thread in self._threads)

    def _work(self) -> None:
        while not self._stopping.is_set():
            unit = self.orchestrator.queue.dequeue(timeout=self.poll_interval)
            if unit is None:
                continue
            try:
                self.orchestrator.process_unit(unit)
            except Exception as e:
                logger.error(f"Worker failed on unit {unit.id}: {e}", exc_info=True)
                self.orchestrator.queue.fail(unit, str(e))
