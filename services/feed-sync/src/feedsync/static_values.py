"""
Type validation for static override values.

A static override is only honoured when it validates against the declared
data type of its field; anything else is treated as an absent override.
"""

import math
import re
from dataclasses import dataclass
from datetime import date
from typing import Any, Optional
from urllib.parse import urlparse

from feedsync.field_catalog import DataType, FieldSpec

DATE_REGEX = re.compile(r"^\d{4}-\d{2}-\d{2}$")
PRICE_REGEX = re.compile(r"^\d+(\.\d{1,2})?\s+[A-Z]{3}$")
INTEGER_REGEX = re.compile(r"^-?(0|[1-9]\d*)$")
NUMBER_WITH_UNIT_REGEX = re.compile(r"^\d+(\.\d+)?\s+\w+$")
ALPHANUMERIC_REGEX = re.compile(r"^[a-zA-Z0-9\-_\s]+$")


@dataclass(frozen=True)
class StaticValueResult:
    is_valid: bool
    value: Any = None
    error: Optional[str] = None


def _invalid(error: str) -> StaticValueResult:
    return StaticValueResult(is_valid=False, error=error)


def is_valid_url(value: str) -> bool:
    parsed = urlparse(value)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def parse_iso_date(value: str) -> Optional[date]:
    if not DATE_REGEX.match(value):
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        return None


def validate_static_value(spec: FieldSpec, value: Any) -> StaticValueResult:
    """Validate ``value`` against ``spec.data_type``; returns the normalized value."""
    if value is None:
        return _invalid("Static value is empty")

    if spec.data_type == DataType.URL_ARRAY:
        return _validate_url_array(value)

    if isinstance(value, bool):
        text = "true" if value else "false"
    elif isinstance(value, (int, float)):
        text = str(value)
    elif isinstance(value, str):
        text = value.strip()
    else:
        return _invalid(f"Unsupported static value type {type(value).__name__}")

    if text == "":
        return _invalid("Static value is empty")

    validator = _VALIDATORS.get(spec.data_type, _validate_string)
    result = validator(spec, text)
    if result.is_valid and result.value is None:
        return StaticValueResult(is_valid=True, value=text)
    return result


def _validate_enum(spec: FieldSpec, text: str) -> StaticValueResult:
    if not spec.supported_values:
        return StaticValueResult(is_valid=True, value=text)
    lowered = text.lower()
    for allowed in spec.supported_values:
        if allowed.lower() == lowered:
            return StaticValueResult(is_valid=True, value=allowed)
    return _invalid(f"Must be one of: {', '.join(spec.supported_values)}")


def _validate_url(spec: FieldSpec, text: str) -> StaticValueResult:
    if not is_valid_url(text):
        return _invalid("URL must be absolute and use http or https")
    return StaticValueResult(is_valid=True)


def _validate_url_array(value: Any) -> StaticValueResult:
    if isinstance(value, str):
        urls = [part.strip() for part in value.split(",") if part.strip()]
    elif isinstance(value, list):
        urls = [str(part).strip() for part in value if str(part).strip()]
    else:
        return _invalid("Must be a list of URLs")
    if not urls:
        return _invalid("Static value is empty")
    for url in urls:
        if not is_valid_url(url):
            return _invalid(f"Invalid URL in list: {url}")
    return StaticValueResult(is_valid=True, value=urls)


def _validate_price(spec: FieldSpec, text: str) -> StaticValueResult:
    if not PRICE_REGEX.match(text):
        return _invalid('Must be in format "79.99 USD" (number + ISO 4217 currency code)')
    return StaticValueResult(is_valid=True)


def _validate_integer(spec: FieldSpec, text: str) -> StaticValueResult:
    if not INTEGER_REGEX.match(text):
        return _invalid("Must be a whole number")
    return StaticValueResult(is_valid=True, value=int(text))


def _validate_number(spec: FieldSpec, text: str) -> StaticValueResult:
    try:
        number = float(text)
    except ValueError:
        return _invalid("Must be a valid number")
    if math.isnan(number) or math.isinf(number):
        return _invalid("Must be a valid number")
    return StaticValueResult(is_valid=True, value=number)


def _validate_date(spec: FieldSpec, text: str) -> StaticValueResult:
    if parse_iso_date(text) is None:
        return _invalid("Must be in ISO 8601 format (YYYY-MM-DD)")
    return StaticValueResult(is_valid=True)


def _validate_date_range(spec: FieldSpec, text: str) -> StaticValueResult:
    parts = [part.strip() for part in text.split("/")]
    if len(parts) != 2:
        return _invalid('Must be in format "YYYY-MM-DD / YYYY-MM-DD"')
    start, end = (parse_iso_date(part) for part in parts)
    if start is None:
        return _invalid("Start date must be in ISO 8601 format (YYYY-MM-DD)")
    if end is None:
        return _invalid("End date must be in ISO 8601 format (YYYY-MM-DD)")
    if start > end:
        return _invalid("Start date must be before end date")
    return StaticValueResult(is_valid=True, value=f"{parts[0]} / {parts[1]}")


def _validate_number_with_unit(spec: FieldSpec, text: str) -> StaticValueResult:
    if not NUMBER_WITH_UNIT_REGEX.match(text):
        return _invalid('Must be in format "10 mm" (number + unit)')
    return StaticValueResult(is_valid=True)


def _validate_alphanumeric(spec: FieldSpec, text: str) -> StaticValueResult:
    result = _validate_string(spec, text)
    if not result.is_valid:
        return result
    if not ALPHANUMERIC_REGEX.match(text):
        return _invalid("Must be alphanumeric (letters, numbers, dashes, underscores only)")
    return StaticValueResult(is_valid=True)


def _validate_numeric_string(spec: FieldSpec, text: str) -> StaticValueResult:
    digits = re.sub(r"\D", "", text)
    if not 8 <= len(digits) <= 14:
        return _invalid("GTIN must be 8-14 digits")
    return _validate_string(spec, text)


def _validate_string(spec: FieldSpec, text: str) -> StaticValueResult:
    if spec.max_length is not None and len(text) > spec.max_length:
        return _invalid(f"Maximum {spec.max_length} characters allowed")
    return StaticValueResult(is_valid=True)


_VALIDATORS = {
    DataType.ENUM: _validate_enum,
    DataType.URL: _validate_url,
    DataType.NUMBER_CURRENCY: _validate_price,
    DataType.INTEGER: _validate_integer,
    DataType.NUMBER: _validate_number,
    DataType.DATE: _validate_date,
    DataType.DATE_RANGE: _validate_date_range,
    DataType.NUMBER_UNIT: _validate_number_with_unit,
    DataType.STRING_ALPHANUMERIC: _validate_alphanumeric,
    DataType.STRING_NUMERIC: _validate_numeric_string,
}
