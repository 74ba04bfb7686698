"""
Path extraction against raw catalog payloads.

Paths are dotted expressions: ``name``, ``dimensions.length``,
``images[0].src``, ``meta_data.<key>``, ``attributes.<name>`` and
``shop.<field>`` for tenant-level values. Extraction is pure and never
raises; anything unreachable resolves to None.
"""

import re
from typing import Any, Optional

from feedsync.models import SourceRecord, TenantConfig

SHOP_PREFIX = "shop."
META_PREFIX = "meta_data."
ATTRIBUTE_PREFIX = "attributes."

_INDEXED_SEGMENT = re.compile(r"^([^\[\]]+)((?:\[\d+\])+)$")
_INDEX = re.compile(r"\[(\d+)\]")


def extract(record: SourceRecord, tenant: TenantConfig, path: Optional[str]) -> Any:
    """Resolve ``path`` against the record payload or the tenant config."""
    if not path or not isinstance(path, str):
        return None

    if path.startswith(SHOP_PREFIX):
        return extract_shop_value(tenant, path[len(SHOP_PREFIX):])
    if path.startswith(META_PREFIX):
        return extract_meta_value(record.payload, path[len(META_PREFIX):])
    if path.startswith(ATTRIBUTE_PREFIX):
        return extract_attribute_value(record.payload, path[len(ATTRIBUTE_PREFIX):])
    return extract_nested_value(record.payload, path)


def extract_nested_value(obj: Any, path: str) -> Any:
    """
    Walk a dotted path with optional list indexing.

    Example:
        extract_nested_value(payload, "images[0].src")
    """
    current = obj
    for segment in path.split("."):
        if current is None or segment == "":
            return None

        match = _INDEXED_SEGMENT.match(segment)
        if match:
            current = _get_key(current, match.group(1))
            for index in _INDEX.findall(match.group(2)):
                current = _get_index(current, int(index))
        else:
            current = _get_key(current, segment)

    return current


def extract_meta_value(payload: Any, key: str) -> Any:
    """First ``meta_data`` entry whose key matches exactly."""
    entries = _get_key(payload, "meta_data")
    if not isinstance(entries, list):
        return None
    for entry in entries:
        if isinstance(entry, dict) and entry.get("key") == key:
            return _empty_to_none(entry.get("value"))
    return None


def extract_attribute_value(payload: Any, name: str) -> Any:
    """
    First named attribute matching exactly.

    Variants carry a single ``option``; parent items carry an ``options``
    list, in which case the first option is returned.
    """
    entries = _get_key(payload, "attributes")
    if not isinstance(entries, list):
        return None
    for entry in entries:
        if not isinstance(entry, dict) or entry.get("name") != name:
            continue
        option = entry.get("option")
        if option is not None and option != "":
            return option
        options = entry.get("options")
        if isinstance(options, list) and options:
            return _empty_to_none(options[0])
        return None
    return None


def extract_shop_value(tenant: Optional[TenantConfig], field_name: str) -> Any:
    if tenant is None or not field_name:
        return None
    name = _TENANT_ALIASES.get(field_name, field_name)
    if name not in TenantConfig.model_fields:
        return None
    return _empty_to_none(getattr(tenant, name, None))


def _get_key(obj: Any, key: str) -> Any:
    if isinstance(obj, dict):
        return obj.get(key)
    return None


def _get_index(obj: Any, index: int) -> Any:
    if isinstance(obj, (list, tuple)) and 0 <= index < len(obj):
        return obj[index]
    return None


def _empty_to_none(value: Any) -> Any:
    return None if value == "" else value


# camelCase names accepted for mappings written against the source platform.
_TENANT_ALIASES = {
    info.alias: name
    for name, info in TenantConfig.model_fields.items()
    if info.alias
}
