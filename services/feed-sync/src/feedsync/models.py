"""
Data models for the feed sync engine.
These models describe tenants, raw catalog records, overrides, resolution
results and sync bookkeeping exchanged with the engine's collaborators.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum, IntEnum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


class SyncType(str, Enum):
    """Kinds of sync work a unit can carry."""
    FULL = "full"
    INCREMENTAL = "incremental"
    SINGLE_RECORD = "single_record"
    REPROCESS = "reprocess"
    FEED_PUBLICATION = "feed_publication"


class TriggerSource(str, Enum):
    """Who asked for the work."""
    WEBHOOK = "webhook"
    MANUAL = "manual"
    SCHEDULE = "schedule"
    REPROCESS = "reprocess"

    @property
    def priority(self) -> "Priority":
        return Priority[self.name]


class Priority(IntEnum):
    """Dequeue order; lower values are served first."""
    WEBHOOK = 1
    MANUAL = 2
    SCHEDULE = 3
    REPROCESS = 4


class SyncStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class TenantStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"


class ChangeStatus(str, Enum):
    CHANGED = "changed"
    UNCHANGED = "unchanged"


class TenantConfig(BaseModel):
    """
    Per-merchant configuration. Read-only to the engine.

    ``field_mappings`` maps attribute ids to source paths and is layered over
    the catalog defaults; a ``None`` entry unmaps a field.
    """
    id: str
    shop_name: Optional[str] = Field(None, alias="shopName")
    shop_currency: Optional[str] = Field(None, alias="shopCurrency")
    dimension_unit: Optional[str] = Field(None, alias="dimensionUnit")
    weight_unit: Optional[str] = Field(None, alias="weightUnit")
    seller_name: Optional[str] = Field(None, alias="sellerName")
    seller_url: Optional[str] = Field(None, alias="sellerUrl")
    seller_privacy_policy: Optional[str] = Field(None, alias="sellerPrivacyPolicy")
    seller_tos: Optional[str] = Field(None, alias="sellerTos")
    return_policy: Optional[str] = Field(None, alias="returnPolicy")
    return_window: Optional[int] = Field(None, alias="returnWindow")
    store_url: Optional[str] = Field(None, alias="storeUrl")
    field_mappings: dict[str, Optional[str]] = Field(default_factory=dict, alias="fieldMappings")
    feed_enabled: bool = Field(True, alias="feedEnabled")
    sync_enabled: bool = Field(True, alias="syncEnabled")
    default_enable_search: bool = Field(True, alias="defaultEnableSearch")
    default_enable_checkout: bool = Field(False, alias="defaultEnableCheckout")
    mappings_updated_at: Optional[datetime] = Field(None, alias="mappingsUpdatedAt")
    settings_updated_at: Optional[datetime] = Field(None, alias="settingsUpdatedAt")

    class Config:
        populate_by_name = True
        frozen = True


class SourceRecord(BaseModel):
    """One catalog item (simple item or variant) as delivered by ingestion."""
    tenant_id: str
    external_id: str
    parent_id: Optional[str] = None
    date_modified: Optional[datetime] = None
    payload: dict[str, Any] = Field(default_factory=dict)
    enable_search: Optional[bool] = None
    enable_checkout: Optional[bool] = None
    is_selected: bool = True

    @field_validator("external_id", mode="before")
    @classmethod
    def _coerce_external_id(cls, value):
        return str(value)

    @field_validator("parent_id", mode="before")
    @classmethod
    def _normalize_parent_id(cls, value):
        if value in (None, "", 0, "0"):
            return None
        return str(value)

    @property
    def is_variant(self) -> bool:
        return self.parent_id is not None


class MappingOverride(BaseModel):
    kind: Literal["mapping"] = "mapping"
    source_path: str


class StaticOverride(BaseModel):
    kind: Literal["static"] = "static"
    value: Any


FieldOverride = Annotated[Union[MappingOverride, StaticOverride], Field(discriminator="kind")]
FieldOverrides = dict[str, FieldOverride]


class FieldError(BaseModel):
    field: str
    message: str
    severity: Severity = Severity.ERROR


class ResolvedRecord(BaseModel):
    """Output of one resolution pass over a SourceRecord."""
    tenant_id: str
    external_id: str
    parent_id: Optional[str] = None
    values: dict[str, Any] = Field(default_factory=dict)
    errors: list[FieldError] = Field(default_factory=list)
    warnings: list[FieldError] = Field(default_factory=list)
    is_valid: bool = False
    fingerprint: Optional[str] = None
    resolved_at: datetime = Field(default_factory=utc_now)
    enable_search: bool = True
    enable_checkout: bool = False
    is_selected: bool = True


class SyncBatch(BaseModel):
    """The record of one orchestrator run and its outcome."""
    id: str = Field(default_factory=_new_id)
    tenant_id: str
    sync_type: SyncType
    trigger: TriggerSource
    status: SyncStatus = SyncStatus.PENDING
    total: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    attempts: int = 0
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    heartbeat_at: Optional[datetime] = None
    error_log: list[str] = Field(default_factory=list)
    feed_url: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in (SyncStatus.COMPLETED, SyncStatus.FAILED, SyncStatus.CANCELLED)


class TenantSyncState(BaseModel):
    """Per-tenant admission state guarded by compare-and-set."""
    tenant_id: str
    status: TenantStatus = TenantStatus.IDLE
    batch_id: Optional[str] = None
    heartbeat_at: Optional[datetime] = None


class ChangeDecision(BaseModel):
    status: ChangeStatus
    reason: str

    @property
    def changed(self) -> bool:
        return self.status == ChangeStatus.CHANGED


class WorkUnit(BaseModel):
    """One schedulable item of sync work."""
    id: str = Field(default_factory=_new_id)
    tenant_id: str
    sync_type: SyncType
    trigger: TriggerSource
    record_id: Optional[str] = None
    batch_id: Optional[str] = None
    attempt: int = 0
    last_error: Optional[str] = None

    @property
    def priority(self) -> Priority:
        return self.trigger.priority


class SyncRequest(BaseModel):
    """Trigger event accepted by the handler."""
    tenant_id: str = Field(..., alias="tenantId")
    sync_type: SyncType = Field(SyncType.INCREMENTAL, alias="syncType")
    trigger: TriggerSource = TriggerSource.MANUAL
    record_id: Optional[str] = Field(None, alias="recordId")

    class Config:
        populate_by_name = True

    @field_validator("record_id", mode="before")
    @classmethod
    def _coerce_record_id(cls, value):
        return None if value is None else str(value)


class SellerInfo(BaseModel):
    id: str
    name: Optional[str] = None
    url: Optional[str] = None
    privacy_policy: Optional[str] = None
    terms_of_service: Optional[str] = None


class AssemblyError(BaseModel):
    """A record dropped from the feed because it could not be serialized."""
    record_id: str
    message: str


class FeedStats(BaseModel):
    total: int = 0
    eligible: int = 0
    excluded: int = 0
    invalid: int = 0
    assembly_errors: int = 0


class FeedDocument(BaseModel):
    """Assembled feed for one tenant, or one preview page of it."""
    tenant_id: str
    seller: SellerInfo
    generated_at: datetime = Field(default_factory=utc_now)
    items: list[dict[str, Any]] = Field(default_factory=list)
    stats: FeedStats = Field(default_factory=FeedStats)
    errors: list[AssemblyError] = Field(default_factory=list)
    page: Optional[int] = None
    page_size: Optional[int] = None
    total_pages: Optional[int] = None

    def to_json(self) -> str:
        return self.model_dump_json(exclude_none=False)
