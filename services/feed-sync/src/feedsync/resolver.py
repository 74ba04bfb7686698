"""
Field resolution: one effective value per catalog attribute, per record.

Precedence, highest first:
    1. a static override that validates against the field's data type
    2. a mapping override (unlocked fields only)
    3. the field's locked mapping
    4. the tenant default mapping (layered over the catalog default)
    5. the bound transform applied to None
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from feedsync.exceptions import ErrorContext, TransformationError
from feedsync.extractor import extract
from feedsync.field_catalog import FIELD_CATALOG, FieldSpec
from feedsync.logging_config import get_correlation_id
from feedsync.models import (
    FieldError,
    FieldOverrides,
    MappingOverride,
    Severity,
    SourceRecord,
    StaticOverride,
    TenantConfig,
)
from feedsync.static_values import validate_static_value
from feedsync.transforms import TRANSFORMS, TransformFunction

logger = logging.getLogger(__name__)


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, (str, list, dict)):
        return len(value) == 0
    return False


@dataclass
class RecordResolution:
    """Attribute values for one record plus resolution-time warnings."""
    values: dict[str, Any] = field(default_factory=dict)
    warnings: list[FieldError] = field(default_factory=list)


class FieldResolver:
    """
    Resolves catalog attributes for source records.

    Stateless apart from its catalog and transform registry, so a single
    instance is shared across worker threads.
    """

    def __init__(
        self,
        catalog: tuple[FieldSpec, ...] = FIELD_CATALOG,
        transforms: Optional[dict[str, TransformFunction]] = None,
    ):
        self.catalog = catalog
        self.transforms = TRANSFORMS if transforms is None else transforms

    def resolve_field(
        self,
        record: SourceRecord,
        tenant: TenantConfig,
        spec: FieldSpec,
        overrides: Optional[FieldOverrides] = None,
    ) -> Any:
        return self._resolve(record, tenant, spec, overrides or {}, [])

    def resolve_record(
        self,
        record: SourceRecord,
        tenant: TenantConfig,
        overrides: Optional[FieldOverrides] = None,
    ) -> RecordResolution:
        """Resolve every FieldSpec independently; None values are omitted."""
        overrides = overrides or {}
        resolution = RecordResolution()
        for spec in self.catalog:
            value = self._resolve(record, tenant, spec, overrides, resolution.warnings)
            if value is not None:
                resolution.values[spec.attribute] = value
        return resolution

    def _resolve(
        self,
        record: SourceRecord,
        tenant: TenantConfig,
        spec: FieldSpec,
        overrides: FieldOverrides,
        warnings: list[FieldError],
    ) -> Any:
        override = overrides.get(spec.attribute)

        if isinstance(override, StaticOverride):
            if spec.allows_static_override:
                result = validate_static_value(spec, override.value)
                if result.is_valid:
                    return result.value
                warnings.append(FieldError(
                    field=spec.attribute,
                    message=f"Static override ignored: {result.error}",
                    severity=Severity.WARNING,
                ))
            else:
                self._stale_override(record, spec, override, warnings)
            override = None

        if isinstance(override, MappingOverride) and not spec.allows_mapping_override:
            self._stale_override(record, spec, override, warnings)
            override = None

        path, fallback = self._select_path(tenant, spec, override)

        value = extract(record, tenant, path) if path else None
        if fallback and _is_empty(value):
            value = extract(record, tenant, fallback)

        return self._apply_transform(record, tenant, spec, value, warnings)

    def _select_path(
        self,
        tenant: TenantConfig,
        spec: FieldSpec,
        override: Optional[MappingOverride],
    ) -> tuple[Optional[str], Optional[str]]:
        if override is not None:
            return override.source_path, None
        if spec.is_locked:
            return spec.source_path, spec.fallback_path
        if spec.attribute in tenant.field_mappings:
            path = tenant.field_mappings[spec.attribute]
            fallback = spec.fallback_path if path == spec.source_path else None
            return path, fallback
        return spec.source_path, spec.fallback_path

    def _apply_transform(
        self,
        record: SourceRecord,
        tenant: TenantConfig,
        spec: FieldSpec,
        value: Any,
        warnings: list[FieldError],
    ) -> Any:
        if not spec.transform:
            return value

        transform = self.transforms.get(spec.transform)
        if transform is None:
            logger.error(
                f"Unknown transform {spec.transform} bound to {spec.attribute}",
                extra={"record_id": record.external_id, "field_name": spec.attribute},
            )
            return value

        try:
            return transform(value, record, tenant)
        except Exception as e:
            error = TransformationError(
                message=f"Transform {spec.transform} failed: {e}",
                record_id=record.external_id,
                field_name=spec.attribute,
                transform_name=spec.transform,
                context=ErrorContext(
                    correlation_id=get_correlation_id(),
                    tenant_id=tenant.id,
                    actual_value=value,
                ),
                original_exception=e,
            )
            logger.error(
                error.message,
                extra={
                    "record_id": record.external_id,
                    "field_name": spec.attribute,
                    "error": error.to_dict(),
                },
            )
            warnings.append(FieldError(
                field=spec.attribute,
                message=error.message,
                severity=Severity.WARNING,
            ))
            return None

    def _stale_override(self, record, spec, override, warnings) -> None:
        message = (
            f"Ignoring {override.kind} override on {spec.lock.value} field {spec.attribute}"
        )
        logger.warning(
            message,
            extra={"record_id": record.external_id, "field_name": spec.attribute},
        )
        warnings.append(FieldError(
            field=spec.attribute,
            message=message,
            severity=Severity.WARNING,
        ))
