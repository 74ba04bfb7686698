"""
Change detection based on content fingerprints of raw payloads.
"""

import hashlib
import json
import logging
from datetime import datetime, timezone
from typing import Any, Optional

from feedsync.models import ChangeDecision, ChangeStatus, SourceRecord, TenantConfig

logger = logging.getLogger(__name__)


def canonical_json(payload: Any) -> str:
    return json.dumps(
        payload,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=True,
        default=str,
    )


def compute_fingerprint(payload: Any) -> str:
    """SHA-256 hex digest of the payload's canonical JSON form."""
    return hashlib.sha256(canonical_json(payload).encode("utf-8")).hexdigest()


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _updated_since(updated_at: Optional[datetime], resolved_at: Optional[datetime]) -> bool:
    if updated_at is None or resolved_at is None:
        return False
    return _as_utc(updated_at) > _as_utc(resolved_at)


class ChangeDetector:
    """
    Decides whether a record needs re-resolution.

    A record is changed when it has no stored fingerprint, when its payload
    fingerprint differs from the stored one, or when the tenant's mappings
    or settings were updated after the record was last resolved.
    """

    def fingerprint(self, record: SourceRecord) -> str:
        """Covers the raw payload plus the operator flags carried beside it."""
        return compute_fingerprint(
            {
                "payload": record.payload,
                "enable_search": record.enable_search,
                "enable_checkout": record.enable_checkout,
                "is_selected": record.is_selected,
            }
        )

    def detect(
        self,
        record: SourceRecord,
        previous_fingerprint: Optional[str],
        resolved_at: Optional[datetime] = None,
        tenant: Optional[TenantConfig] = None,
    ) -> ChangeDecision:
        if previous_fingerprint is None:
            return ChangeDecision(status=ChangeStatus.CHANGED, reason="new record")

        if tenant is not None:
            if _updated_since(tenant.mappings_updated_at, resolved_at):
                return ChangeDecision(status=ChangeStatus.CHANGED, reason="mappings changed")
            if _updated_since(tenant.settings_updated_at, resolved_at):
                return ChangeDecision(status=ChangeStatus.CHANGED, reason="settings changed")

        current = self.fingerprint(record)
        if current != previous_fingerprint:
            logger.debug(
                "Fingerprint changed",
                extra={"record_id": record.external_id},
            )
            return ChangeDecision(status=ChangeStatus.CHANGED, reason="fingerprint changed")

        return ChangeDecision(status=ChangeStatus.UNCHANGED, reason="fingerprint unchanged")
