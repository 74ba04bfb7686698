"""
Feed assembly from a tenant's resolved records.
Filters ineligible records, serializes attribute maps in catalog order and
reports per-record failures without aborting the pass.
"""

import json
import logging
import math
from dataclasses import dataclass, field
from typing import Iterable, Optional

from feedsync.exceptions import ValidationError
from feedsync.field_catalog import FEED_ATTRIBUTES
from feedsync.logging_config import log_execution_time
from feedsync.models import (
    AssemblyError,
    FeedDocument,
    FeedStats,
    ResolvedRecord,
    SellerInfo,
    TenantConfig,
)

logger = logging.getLogger(__name__)


@dataclass
class EligibilityResult:
    """Partition of a record set by feed eligibility."""
    eligible: list[ResolvedRecord] = field(default_factory=list)
    excluded: list[ResolvedRecord] = field(default_factory=list)
    invalid: list[ResolvedRecord] = field(default_factory=list)


def parent_container_ids(records: Iterable[ResolvedRecord]) -> set[str]:
    """Ids of records that are the parent of some other record in the set."""
    return {record.parent_id for record in records if record.parent_id}


def partition_records(records: list[ResolvedRecord]) -> EligibilityResult:
    """
    Split records into eligible, excluded and invalid.

    A record is eligible when it is valid, searchable, selected by the
    merchant and not a parent container of variants.
    """
    parents = parent_container_ids(records)
    result = EligibilityResult()
    for record in records:
        if not record.is_valid:
            result.invalid.append(record)
        elif not record.enable_search or not record.is_selected:
            result.excluded.append(record)
        elif record.external_id in parents:
            result.excluded.append(record)
        else:
            result.eligible.append(record)
    return result


def build_seller_info(tenant: TenantConfig) -> SellerInfo:
    return SellerInfo(
        id=tenant.id,
        name=tenant.seller_name or tenant.shop_name,
        url=tenant.seller_url or tenant.store_url,
        privacy_policy=tenant.seller_privacy_policy,
        terms_of_service=tenant.seller_tos,
    )


def serialize_item(record: ResolvedRecord, attributes: tuple[str, ...] = FEED_ATTRIBUTES) -> dict:
    """
    Feed item carrying every attribute in catalog order, None when absent.

    Raises TypeError or ValueError when a value is not JSON serializable
    or cannot be encoded as UTF-8.
    """
    item = {attribute: record.values.get(attribute) for attribute in attributes}
    json.dumps(item, allow_nan=False, ensure_ascii=False).encode("utf-8")
    return item


class FeedAssembler:
    """Builds FeedDocuments and preview pages for a tenant."""

    def __init__(self, attributes: tuple[str, ...] = FEED_ATTRIBUTES, page_size: int = 20):
        self.attributes = attributes
        self.page_size = page_size

    @log_execution_time(logger)
    def assemble(self, tenant: TenantConfig, records: list[ResolvedRecord]) -> FeedDocument:
        partition = partition_records(records)
        items, errors = self._serialize(tenant, partition.eligible)

        stats = FeedStats(
            total=len(records),
            eligible=len(items),
            excluded=len(partition.excluded),
            invalid=len(partition.invalid),
            assembly_errors=len(errors),
        )

        logger.info(
            f"Assembled feed with {stats.eligible} items for tenant {tenant.id}",
            extra={"metrics": stats.model_dump()},
        )

        return FeedDocument(
            tenant_id=tenant.id,
            seller=build_seller_info(tenant),
            items=items,
            stats=stats,
            errors=errors,
        )

    def preview(
        self,
        tenant: TenantConfig,
        records: list[ResolvedRecord],
        page: int = 1,
        page_size: Optional[int] = None,
    ) -> FeedDocument:
        """
        One page of the feed, 1-based.

        Stats describe the whole feed; a page past the end has no items.
        """
        page_size = page_size or self.page_size
        if page < 1:
            raise ValidationError(
                message=f"Preview page must be at least 1, got {page}",
                field_name="page",
                expected="integer >= 1",
                actual=page,
            )
        if page_size < 1:
            raise ValidationError(
                message=f"Preview page size must be at least 1, got {page_size}",
                field_name="page_size",
                expected="integer >= 1",
                actual=page_size,
            )

        feed = self.assemble(tenant, records)
        total_pages = max(1, math.ceil(len(feed.items) / page_size))
        start = (page - 1) * page_size

        return feed.model_copy(update={
            "items": feed.items[start:start + page_size],
            "page": page,
            "page_size": page_size,
            "total_pages": total_pages,
        })

    def _serialize(
        self,
        tenant: TenantConfig,
        records: list[ResolvedRecord],
    ) -> tuple[list[dict], list[AssemblyError]]:
        items: list[dict] = []
        errors: list[AssemblyError] = []

        for record in records:
            try:
                items.append(serialize_item(record, self.attributes))
            except (TypeError, ValueError) as e:
                logger.error(
                    f"Failed to serialize record {record.external_id}: {e}",
                    extra={"record_id": record.external_id, "tenant_id": tenant.id},
                )
                errors.append(AssemblyError(record_id=record.external_id, message=str(e)))

        return items, errors
