"""
Storage collaborator interface and an in-memory implementation.

The engine only talks to storage through StorageBackend. InMemoryStorage is
thread-safe and is used by tests and local tooling; production deployments
provide their own backend over a real store.
"""

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from feedsync.models import (
    FieldOverrides,
    ResolvedRecord,
    SyncBatch,
    TenantConfig,
    TenantStatus,
    TenantSyncState,
)


@dataclass(frozen=True)
class Admission:
    """Outcome of a compare-and-set on a tenant's sync state."""
    admitted: bool
    running_batch_id: Optional[str] = None
    taken_over_batch_id: Optional[str] = None


class StorageBackend(ABC):
    """Persistence contract consumed by the sync engine."""

    # Tenants and overrides

    @abstractmethod
    def get_tenant(self, tenant_id: str) -> Optional[TenantConfig]:
        ...

    @abstractmethod
    def list_tenants(self) -> list[TenantConfig]:
        ...

    @abstractmethod
    def get_overrides(self, tenant_id: str, record_id: str) -> FieldOverrides:
        ...

    # Resolution results

    @abstractmethod
    def get_fingerprint(self, tenant_id: str, record_id: str) -> Optional[str]:
        ...

    @abstractmethod
    def get_resolved(self, tenant_id: str, record_id: str) -> Optional[ResolvedRecord]:
        ...

    @abstractmethod
    def save_resolved(self, record: ResolvedRecord) -> None:
        """Persist a ResolvedRecord together with its fingerprint."""

    @abstractmethod
    def list_resolved(self, tenant_id: str) -> list[ResolvedRecord]:
        ...

    # Batches

    @abstractmethod
    def save_batch(self, batch: SyncBatch) -> None:
        ...

    @abstractmethod
    def get_batch(self, batch_id: str) -> Optional[SyncBatch]:
        ...

    @abstractmethod
    def list_batches(self, tenant_id: str) -> list[SyncBatch]:
        ...

    @abstractmethod
    def request_cancel(self, batch_id: str) -> None:
        ...

    @abstractmethod
    def is_cancel_requested(self, batch_id: str) -> bool:
        ...

    # Tenant sync state

    @abstractmethod
    def get_sync_state(self, tenant_id: str) -> TenantSyncState:
        ...

    @abstractmethod
    def try_begin_sync(
        self,
        tenant_id: str,
        batch_id: str,
        now: datetime,
        stale_before: datetime,
    ) -> Admission:
        """
        Atomically move the tenant from idle to running for ``batch_id``.

        A running state whose heartbeat is older than ``stale_before`` may be
        taken over; the previous batch id is reported so it can be failed.
        """

    @abstractmethod
    def heartbeat(self, tenant_id: str, batch_id: str, now: datetime) -> bool:
        """Refresh the heartbeat; False when ``batch_id`` no longer owns the tenant."""

    @abstractmethod
    def finish_sync(self, tenant_id: str, batch_id: str) -> bool:
        """Return the tenant to idle if ``batch_id`` still owns it."""


class InMemoryStorage(StorageBackend):
    """Thread-safe in-memory backend."""

    def __init__(self):
        self._lock = threading.RLock()
        self._tenants: dict[str, TenantConfig] = {}
        self._overrides: dict[tuple[str, str], FieldOverrides] = {}
        self._resolved: dict[tuple[str, str], ResolvedRecord] = {}
        self._fingerprints: dict[tuple[str, str], str] = {}
        self._batches: dict[str, SyncBatch] = {}
        self._cancelled: set[str] = set()
        self._states: dict[str, TenantSyncState] = {}

    def put_tenant(self, tenant: TenantConfig) -> None:
        with self._lock:
            self._tenants[tenant.id] = tenant

    def remove_tenant(self, tenant_id: str) -> None:
        with self._lock:
            self._tenants.pop(tenant_id, None)

    def put_overrides(self, tenant_id: str, record_id: str, overrides: FieldOverrides) -> None:
        with self._lock:
            self._overrides[(tenant_id, str(record_id))] = dict(overrides)

    def get_tenant(self, tenant_id: str) -> Optional[TenantConfig]:
        with self._lock:
            return self._tenants.get(tenant_id)

    def list_tenants(self) -> list[TenantConfig]:
        with self._lock:
            return list(self._tenants.values())

    def get_overrides(self, tenant_id: str, record_id: str) -> FieldOverrides:
        with self._lock:
            return dict(self._overrides.get((tenant_id, str(record_id)), {}))

    def get_fingerprint(self, tenant_id: str, record_id: str) -> Optional[str]:
        with self._lock:
            return self._fingerprints.get((tenant_id, str(record_id)))

    def get_resolved(self, tenant_id: str, record_id: str) -> Optional[ResolvedRecord]:
        with self._lock:
            record = self._resolved.get((tenant_id, str(record_id)))
            return record.model_copy(deep=True) if record else None

    def save_resolved(self, record: ResolvedRecord) -> None:
        key = (record.tenant_id, record.external_id)
        with self._lock:
            self._resolved[key] = record.model_copy(deep=True)
            if record.fingerprint:
                self._fingerprints[key] = record.fingerprint

    def list_resolved(self, tenant_id: str) -> list[ResolvedRecord]:
        with self._lock:
            return [
                record.model_copy(deep=True)
                for (owner, _), record in self._resolved.items()
                if owner == tenant_id
            ]

    def save_batch(self, batch: SyncBatch) -> None:
        with self._lock:
            self._batches[batch.id] = batch.model_copy(deep=True)

    def get_batch(self, batch_id: str) -> Optional[SyncBatch]:
        with self._lock:
            batch = self._batches.get(batch_id)
            return batch.model_copy(deep=True) if batch else None

    def list_batches(self, tenant_id: str) -> list[SyncBatch]:
        with self._lock:
            return [
                batch.model_copy(deep=True)
                for batch in self._batches.values()
                if batch.tenant_id == tenant_id
            ]

    def request_cancel(self, batch_id: str) -> None:
        with self._lock:
            self._cancelled.add(batch_id)

    def is_cancel_requested(self, batch_id: str) -> bool:
        with self._lock:
            return batch_id in self._cancelled

    def get_sync_state(self, tenant_id: str) -> TenantSyncState:
        with self._lock:
            state = self._states.get(tenant_id)
            if state is None:
                return TenantSyncState(tenant_id=tenant_id)
            return state.model_copy()

    def try_begin_sync(
        self,
        tenant_id: str,
        batch_id: str,
        now: datetime,
        stale_before: datetime,
    ) -> Admission:
        with self._lock:
            state = self._states.get(tenant_id)
            taken_over = None

            if state is not None and state.status == TenantStatus.RUNNING:
                if state.batch_id == batch_id:
                    return Admission(admitted=False, running_batch_id=state.batch_id)
                heartbeat = state.heartbeat_at
                if heartbeat is not None and heartbeat >= stale_before:
                    return Admission(admitted=False, running_batch_id=state.batch_id)
                taken_over = state.batch_id

            self._states[tenant_id] = TenantSyncState(
                tenant_id=tenant_id,
                status=TenantStatus.RUNNING,
                batch_id=batch_id,
                heartbeat_at=now,
            )
            return Admission(admitted=True, taken_over_batch_id=taken_over)

    def heartbeat(self, tenant_id: str, batch_id: str, now: datetime) -> bool:
        with self._lock:
            state = self._states.get(tenant_id)
            if state is None or state.batch_id != batch_id or state.status != TenantStatus.RUNNING:
                return False
            state.heartbeat_at = now
            return True

    def finish_sync(self, tenant_id: str, batch_id: str) -> bool:
        with self._lock:
            state = self._states.get(tenant_id)
            if state is None or state.batch_id != batch_id:
                return False
            self._states[tenant_id] = TenantSyncState(tenant_id=tenant_id)
            return True
