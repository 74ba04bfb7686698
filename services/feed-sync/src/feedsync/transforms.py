"""
Transform function library.

Every transform has the signature ``(value, record, tenant) -> value`` where
``value`` is what the path extractor produced, ``record`` is the SourceRecord
being resolved and ``tenant`` its TenantConfig. Transforms are pure, do no
I/O and return None for "no value" instead of raising.
"""

import html
import math
import re
from datetime import date, datetime
from typing import Any, Callable, Optional

from feedsync.extractor import extract_nested_value
from feedsync.models import SourceRecord, TenantConfig

TransformFunction = Callable[[Any, SourceRecord, TenantConfig], Any]

CATEGORY_SEPARATOR = " > "
MAX_CATEGORY_DEPTH = 10

DEFAULT_DIMENSION_UNIT = "in"

GTIN_KEYS = ("_gtin", "gtin", "_upc", "upc", "_ean", "ean", "_isbn", "isbn")

STOCK_STATUS_MAP = {
    "instock": "in_stock",
    "outofstock": "out_of_stock",
    "onbackorder": "preorder",
}

_HTML_TAG = re.compile(r"<[^>]*>")
_ISO_DATE_PREFIX = re.compile(r"^(\d{4}-\d{2}-\d{2})")


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value.strip() == "")


def _to_number(value: Any) -> Optional[float]:
    """Coerce str/int/float to a finite float, or None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def _parent_id(record: SourceRecord) -> Optional[str]:
    if record.is_variant:
        return record.parent_id
    raw = record.payload.get("parent_id")
    if raw in (None, "", 0, "0"):
        return None
    return str(raw)


def _own_id(record: SourceRecord) -> str:
    raw = record.payload.get("id")
    return str(raw) if raw not in (None, "") else record.external_id


def _named_attribute(record: SourceRecord, name: str) -> Optional[str]:
    """Case-insensitive lookup used by the id generators, not by path extraction."""
    attributes = record.payload.get("attributes")
    if not isinstance(attributes, list):
        return None
    wanted = {name.lower(), f"pa_{name.lower()}"}
    for attribute in attributes:
        if not isinstance(attribute, dict):
            continue
        attr_name = attribute.get("name")
        if not isinstance(attr_name, str) or attr_name.lower() not in wanted:
            continue
        if attribute.get("option"):
            return str(attribute["option"])
        options = attribute.get("options")
        if isinstance(options, list) and options:
            return str(options[0])
        return None
    return None


def _dimension_present(value: Any) -> bool:
    return value not in (None, "", "0", 0)


def _dimension_unit(record: SourceRecord, tenant: TenantConfig) -> str:
    if tenant is not None and tenant.dimension_unit:
        return tenant.dimension_unit
    unit = extract_nested_value(record.payload, "dimensions.unit")
    return unit or DEFAULT_DIMENSION_UNIT


def _to_iso_date(value: Any) -> Optional[str]:
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if not isinstance(value, str):
        return None
    match = _ISO_DATE_PREFIX.match(value.strip())
    if not match:
        return None
    try:
        return date.fromisoformat(match.group(1)).isoformat()
    except ValueError:
        return None


# Text


def strip_html(value, record, tenant):
    if _is_blank(value) or not isinstance(value, str):
        return ""
    return html.unescape(_HTML_TAG.sub("", value)).strip()


def clean_variation_title(value, record, tenant):
    """
    Collapse a repeated parent name in variant titles.

    "Hoodie - Hoodie - Red, M" becomes "Hoodie - Red, M". Simple items and
    titles without the exact repetition pass through unchanged.
    """
    if not isinstance(value, str) or _parent_id(record) is None:
        return value
    parts = value.split(" - ")
    if len(parts) >= 3 and parts[0] == parts[1]:
        return " - ".join(parts[1:])
    return value


# Categories


def build_category_path(value, record, tenant):
    """
    Build the most specific root-to-leaf category label path.

    Each node is ``{id, name, parent}``; ``parentId``/``parent_id`` are
    accepted as well. Walks are capped at MAX_CATEGORY_DEPTH so cyclic or
    malformed trees still terminate.
    """
    if not isinstance(value, list) or not value:
        return ""

    nodes = {}
    for node in value:
        if isinstance(node, dict) and node.get("id") is not None:
            nodes.setdefault(str(node["id"]), node)

    best: list[str] = []
    for node in value:
        if not isinstance(node, dict):
            continue
        names: list[str] = []
        seen = set()
        current = node
        while current is not None and len(names) < MAX_CATEGORY_DEPTH:
            node_id = str(current.get("id"))
            if node_id in seen:
                break
            seen.add(node_id)
            name = current.get("name")
            if isinstance(name, str) and name.strip():
                names.append(html.unescape(name.strip()))
            parent = current.get("parent", current.get("parentId", current.get("parent_id")))
            if parent in (None, "", 0, "0"):
                break
            current = nodes.get(str(parent))
        if len(names) > len(best):
            best = names

    return CATEGORY_SEPARATOR.join(reversed(best))


# Prices


def format_price_with_currency(value, record, tenant):
    if _is_blank(value):
        return None
    number = _to_number(value)
    if number is None:
        return None
    currency = tenant.shop_currency if tenant is not None else None
    if currency:
        return f"{number:.2f} {currency}"
    return f"{number:.2f}"


def format_sale_date_range(value, record, tenant):
    payload = record.payload
    if _is_blank(payload.get("sale_price")):
        return None
    start = _to_iso_date(payload.get("date_on_sale_from") or value)
    end = _to_iso_date(payload.get("date_on_sale_to"))
    if not start or not end:
        return None
    return f"{start} / {end}"


# Dimensions and weight


def add_unit(value, record, tenant):
    """
    Append the dimension unit to one of length/width/height.

    All three dimensions must be present; a partial set yields None for
    every dimension field. The unit comes from the tenant, then the payload,
    then falls back to inches.
    """
    if not _dimension_present(value):
        return None
    dimensions = record.payload.get("dimensions")
    if not isinstance(dimensions, dict):
        return None
    present = [
        _dimension_present(dimensions.get(axis))
        for axis in ("length", "width", "height")
    ]
    if not all(present):
        return None
    unit = _dimension_unit(record, tenant)
    return f"{value} {unit}"


def format_dimensions(value, record, tenant):
    if not isinstance(value, dict):
        return None
    length, width, height = (value.get(axis) for axis in ("length", "width", "height"))
    if not all(_dimension_present(d) for d in (length, width, height)):
        return None
    unit = _dimension_unit(record, tenant)
    return f"{length}x{width}x{height} {unit}"


def add_weight_unit(value, record, tenant):
    if value in (None, "", 0):
        return None
    unit = tenant.weight_unit if tenant is not None else None
    if not unit:
        return None
    return f"{value} {unit}"


# Identifiers


def extract_gtin(value, record, tenant):
    """
    Return a direct GTIN-class code, or scan a meta_data-shaped list for the
    first entry under a known alias key. Formats are not checked here.
    """
    if value is None:
        return None
    if isinstance(value, list):
        for entry in value:
            if isinstance(entry, dict) and entry.get("key") in GTIN_KEYS:
                found = entry.get("value")
                if _is_blank(found):
                    continue
                return str(found).strip()
        return None
    if isinstance(value, (str, int)) and not isinstance(value, bool):
        text = str(value).strip()
        return text or None
    return None


def generate_stable_id(value, record, tenant):
    sku = record.payload.get("sku") or ""
    stable_id = f"{tenant.id}-{_own_id(record)}"
    return f"{stable_id}-{sku}" if sku else stable_id


def generate_group_id(value, record, tenant):
    parent = value if value not in (None, "", 0, "0") else _parent_id(record)
    if parent not in (None, "", 0, "0"):
        return f"{tenant.id}-{parent}"
    return f"{tenant.id}-{_own_id(record)}"


def generate_offer_id(value, record, tenant):
    base = str(value) if not _is_blank(value) else f"prod-{_own_id(record)}"
    offer_id = base
    color = _named_attribute(record, "color")
    size = _named_attribute(record, "size")
    if color:
        offer_id += f"-{color}"
    if size:
        offer_id += f"-{size}"
    return offer_id


def format_related_ids(value, record, tenant):
    if not isinstance(value, list) or not value:
        return None
    ids = [str(related) for related in value if related not in (None, "")]
    if not ids:
        return None
    return ",".join(f"{tenant.id}-{related}" for related in ids)


# Media and attributes


def extract_additional_images(value, record, tenant):
    if not isinstance(value, list) or len(value) <= 1:
        return []
    return [
        image["src"]
        for image in value[1:]
        if isinstance(image, dict) and image.get("src")
    ]


def extract_brand(value, record, tenant):
    if isinstance(value, list) and value and isinstance(value[0], dict):
        name = value[0].get("name")
        if name:
            return name
    return _named_attribute(record, "brand")


def extract_custom_variant(value, record, tenant):
    if not isinstance(value, list) or not value or not isinstance(value[0], dict):
        return None
    return value[0].get("name") or None


def extract_custom_variant_option(value, record, tenant):
    if not isinstance(value, list) or not value or not isinstance(value[0], dict):
        return None
    first = value[0]
    if first.get("option"):
        return first["option"]
    options = first.get("options")
    if isinstance(options, list) and options:
        return options[0] or None
    return None


# Availability and defaults


def map_stock_status(value, record, tenant):
    return STOCK_STATUS_MAP.get(value, "in_stock") if isinstance(value, str) else "in_stock"


def default_to_new(value, record, tenant):
    return value or "new"


def default_to_zero(value, record, tenant):
    return 0 if value is None else value


# Signals


def calculate_popularity_score(value, record, tenant):
    """Compress total sales onto 0-5; zero or unknown sales yield None."""
    count = _to_number(value)
    if count is None or count <= 0:
        return None
    return round(min(5.0, math.log10(count + 1)), 1)


def format_q_and_a(value, record, tenant):
    if isinstance(value, str):
        return value or None
    if isinstance(value, list):
        pairs = [
            f"Q: {item.get('q')}\nA: {item.get('a')}"
            for item in value
            if isinstance(item, dict)
        ]
        return "\n\n".join(pairs) or None
    return None


# Flags


def _flag(value: Any, fallback: bool) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, str) and value.strip().lower() in ("true", "false"):
        return value.strip().lower()
    return "true" if fallback else "false"


def search_flag(value, record, tenant):
    default = record.enable_search
    if default is None:
        default = tenant.default_enable_search
    return _flag(value, default)


def checkout_flag(value, record, tenant):
    default = record.enable_checkout
    if default is None:
        default = tenant.default_enable_checkout
    return _flag(value, default)


TRANSFORMS: dict[str, TransformFunction] = {
    "strip_html": strip_html,
    "clean_variation_title": clean_variation_title,
    "build_category_path": build_category_path,
    "format_price_with_currency": format_price_with_currency,
    "format_sale_date_range": format_sale_date_range,
    "add_unit": add_unit,
    "format_dimensions": format_dimensions,
    "add_weight_unit": add_weight_unit,
    "extract_gtin": extract_gtin,
    "generate_stable_id": generate_stable_id,
    "generate_group_id": generate_group_id,
    "generate_offer_id": generate_offer_id,
    "format_related_ids": format_related_ids,
    "extract_additional_images": extract_additional_images,
    "extract_brand": extract_brand,
    "extract_custom_variant": extract_custom_variant,
    "extract_custom_variant_option": extract_custom_variant_option,
    "map_stock_status": map_stock_status,
    "default_to_new": default_to_new,
    "default_to_zero": default_to_zero,
    "calculate_popularity_score": calculate_popularity_score,
    "format_q_and_a": format_q_and_a,
    "search_flag": search_flag,
    "checkout_flag": checkout_flag,
}


def get_transform(name: Optional[str]) -> Optional[TransformFunction]:
    if not name:
        return None
    return TRANSFORMS.get(name)
