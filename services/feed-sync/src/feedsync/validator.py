"""
Validation of resolved attribute sets against the feed's structural rules.

Validation never raises for bad data. It returns structured FieldErrors:
failures on Required fields (and on Conditional fields whose condition is
triggered) are errors, everything else is surfaced as a warning. A record
is valid iff it has no errors.
"""

import re
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Optional, Union

from feedsync.field_catalog import FIELD_CATALOG, FieldSpec, RequirementLevel
from feedsync.models import FieldError, ResolvedRecord, Severity
from feedsync.static_values import is_valid_url, parse_iso_date

VALID_CURRENCIES = frozenset({
    "USD", "EUR", "GBP", "CAD", "AUD", "JPY", "CNY", "INR", "BRL", "MXN",
    "CHF", "SEK", "NOK", "DKK", "PLN", "CZK", "HUF", "RON", "BGN", "HRK",
    "RUB", "TRY", "ZAR", "NZD", "SGD", "HKD", "KRW", "THB", "MYR", "IDR",
    "PHP", "VND", "AED", "SAR", "EGP", "NGN", "KES", "GHS", "MAD", "TND",
})

PRICE_REGEX = re.compile(r"^\d+(\.\d{2})?\s[A-Z]{3}$")
GTIN_REGEX = re.compile(r"^\d{8,14}$")
DIMENSIONS_REGEX = re.compile(r"^\d+\.?\d*x\d+\.?\d*x\d+\.?\d*\s\w+$")
WEIGHT_REGEX = re.compile(r"^\d+\.?\d*\s\w+$")

CHECKOUT_REQUIRED_FIELDS = ("seller_privacy_policy", "seller_tos")


@dataclass(frozen=True)
class Check:
    """Outcome of one format rule; ``message`` on a valid check is a warning."""
    valid: bool
    message: Optional[str] = None


OK = Check(True)


def _fail(message: str) -> Check:
    return Check(False, message)


def check_price(value: Any, attribute: str) -> Check:
    if not isinstance(value, str):
        return _fail(f"{attribute} must be a string")
    if not PRICE_REGEX.match(value):
        return _fail(
            f'Invalid price format: "{value}". Expected format: "XX.XX CCC" (e.g., "79.99 USD")'
        )
    currency = value.split(" ")[1]
    if currency not in VALID_CURRENCIES:
        return _fail(f'Invalid currency code: "{currency}". Must be valid ISO 4217 code')
    return OK


def check_gtin(value: Any, attribute: str) -> Check:
    if not isinstance(value, str):
        return _fail("GTIN must be a string")
    if not GTIN_REGEX.match(value.strip()):
        return _fail(f'Invalid GTIN: "{value}". Must be 8-14 digits with no dashes or spaces')
    return OK


def check_url(value: Any, attribute: str) -> Check:
    if not isinstance(value, str):
        return _fail(f"{attribute} must be a string")
    if not is_valid_url(value):
        return _fail(f'Invalid URL format for {attribute}: "{value}"')
    if value.lower().startswith("http://"):
        return Check(True, f"{attribute} uses HTTP. HTTPS is preferred")
    return OK


def check_category_path(value: Any, attribute: str) -> Check:
    if not isinstance(value, str):
        return _fail("Category path must be a string")
    if " > " not in value:
        return _fail(
            f'Invalid category format: "{value}". Must use " > " separator '
            f'(e.g., "Apparel > Shoes > Sneakers")'
        )
    if " / " in value or " | " in value or "," in value:
        return _fail(f'Invalid separator in category: "{value}". Use " > " not " / ", " | " or ","')
    return OK


def check_enum(allowed: tuple[str, ...]) -> Callable[[Any, str], Check]:
    def check(value: Any, attribute: str) -> Check:
        if not isinstance(value, str):
            return _fail(f"{attribute} must be a string")
        if value not in allowed:
            return _fail(f'Invalid {attribute}: "{value}". Must be one of: {", ".join(allowed)}')
        return OK
    return check


def check_boolean_string(value: Any, attribute: str) -> Check:
    if isinstance(value, bool):
        return _fail(f'{attribute} must be string "true" or "false", not boolean')
    if value not in ("true", "false"):
        return _fail(f'{attribute} must be lowercase string "true" or "false"')
    return OK


def check_dimensions(value: Any, attribute: str) -> Check:
    if not isinstance(value, str) or not DIMENSIONS_REGEX.match(value):
        return _fail(
            f'Invalid dimensions format: "{value}". Expected format: "LxWxH unit" (e.g., "12x8x5 in")'
        )
    return OK


def check_dimension_with_unit(value: Any, attribute: str) -> Check:
    if not isinstance(value, str) or not re.search(r"\s", value):
        return _fail(f'{attribute} must include unit (e.g., "10 mm")')
    return OK


def check_weight(value: Any, attribute: str) -> Check:
    if not isinstance(value, str) or not WEIGHT_REGEX.match(value):
        return _fail(f'Invalid weight format: "{value}". Expected format: "XX unit" (e.g., "1.5 lb")')
    return OK


def check_date(value: Any, attribute: str) -> Check:
    if not isinstance(value, str) or parse_iso_date(value) is None:
        return _fail(f'Invalid date format for {attribute}: "{value}". Expected format: YYYY-MM-DD')
    return OK


def check_date_range(value: Any, attribute: str) -> Check:
    if not isinstance(value, str):
        return _fail(f"{attribute} must be a string")
    parts = value.split(" / ")
    if len(parts) != 2:
        return _fail(
            f'Invalid date range format for {attribute}: "{value}". '
            f'Expected format: "YYYY-MM-DD / YYYY-MM-DD"'
        )
    start, end = (parse_iso_date(part) for part in parts)
    if start is None or end is None:
        return _fail(f'Invalid date in {attribute}: "{value}". Expected format: YYYY-MM-DD')
    if start >= end:
        return _fail(f"{attribute} start date must be before end date")
    return OK


def check_max_length(max_length: int) -> Callable[[Any, str], Check]:
    def check(value: Any, attribute: str) -> Check:
        text = str(value) if isinstance(value, (int, float)) and not isinstance(value, bool) else value
        if not isinstance(text, str):
            return _fail(f"{attribute} must be a string or number")
        if len(text) > max_length:
            return _fail(
                f"{attribute} exceeds maximum length of {max_length} characters "
                f"(current: {len(text)})"
            )
        return OK
    return check


def _as_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def check_non_negative(value: Any, attribute: str) -> Check:
    number = _as_number(value)
    if number is None:
        return _fail(f"{attribute} must be a valid number")
    if number < 0:
        return _fail(f"{attribute} must be a positive number")
    return OK


def check_rating(value: Any, attribute: str) -> Check:
    result = check_non_negative(value, attribute)
    if not result.valid:
        return result
    number = _as_number(value)
    if number > 5:
        return _fail(f"{attribute} must be between 0 and 5 (current: {number:g})")
    return OK


def check_list(value: Any, attribute: str) -> Check:
    if not isinstance(value, list):
        return _fail(f"{attribute} must be an array")
    return OK


def _is_missing(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, (list, dict)):
        return len(value) == 0
    return False


@dataclass
class ValidationOutcome:
    errors: list[FieldError] = field(default_factory=list)
    warnings: list[FieldError] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors


@dataclass
class ValidationSummary:
    total: int = 0
    invalid: int = 0
    with_warnings: int = 0
    total_errors: int = 0
    total_warnings: int = 0
    common_errors: list[tuple[str, int]] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "invalid": self.invalid,
            "with_warnings": self.with_warnings,
            "total_errors": self.total_errors,
            "total_warnings": self.total_warnings,
            "common_errors": [
                {"error": message, "count": count} for message, count in self.common_errors
            ],
        }


class FeedValidator:
    """Runs per-field format rules and cross-field rules over resolved values."""

    def __init__(
        self,
        catalog: tuple[FieldSpec, ...] = FIELD_CATALOG,
        title_max_length: int = 150,
        description_max_length: int = 5000,
    ):
        self.catalog = catalog
        self.rules = self._build_rules(title_max_length, description_max_length)

    def _build_rules(self, title_max: int, description_max: int) -> dict:
        rules: dict[str, Callable[[Any, str], Check]] = {
            "enable_search": check_boolean_string,
            "enable_checkout": check_boolean_string,
            "price": check_price,
            "sale_price": check_price,
            "geo_price": check_price,
            "gtin": check_gtin,
            "product_category": check_category_path,
            "dimensions": check_dimensions,
            "length": check_dimension_with_unit,
            "width": check_dimension_with_unit,
            "height": check_dimension_with_unit,
            "weight": check_weight,
            "sale_price_effective_date": check_date_range,
            "title": check_max_length(title_max),
            "description": check_max_length(description_max),
            "popularity_score": check_rating,
            "product_review_rating": check_rating,
            "store_review_rating": check_rating,
            "additional_image_link": check_list,
        }
        for attribute in (
            "link", "seller_url", "seller_privacy_policy", "seller_tos", "return_policy",
            "image_link", "video_link", "model_3d_link", "warning_url",
        ):
            rules[attribute] = check_url
        for attribute in ("availability_date", "expiration_date", "delivery_estimate"):
            rules[attribute] = check_date
        for attribute in (
            "inventory_quantity", "return_window", "product_review_count",
            "store_review_count", "age_restriction",
        ):
            rules[attribute] = check_non_negative
        for spec in self.catalog:
            if spec.attribute in ("availability", "condition") and spec.supported_values:
                rules[spec.attribute] = check_enum(spec.supported_values)
            elif spec.attribute not in rules and spec.max_length:
                rules[spec.attribute] = check_max_length(spec.max_length)
        return rules

    def validate(
        self,
        values: dict[str, Any],
        specs: Optional[Iterable[FieldSpec]] = None,
    ) -> ValidationOutcome:
        outcome = ValidationOutcome()
        checkout_enabled = values.get("enable_checkout") == "true"

        for spec in specs if specs is not None else self.catalog:
            self._validate_field(spec, values.get(spec.attribute), checkout_enabled, outcome)

        if checkout_enabled and values.get("enable_search") != "true":
            outcome.errors.append(FieldError(
                field="enable_checkout",
                message="enable_checkout requires enable_search to be true",
                severity=Severity.ERROR,
            ))

        return outcome

    def validate_record(self, record: ResolvedRecord) -> ValidationOutcome:
        return self.validate(record.values)

    def _validate_field(
        self,
        spec: FieldSpec,
        value: Any,
        checkout_enabled: bool,
        outcome: ValidationOutcome,
    ) -> None:
        attribute = spec.attribute
        mandatory = spec.requirement == RequirementLevel.REQUIRED or (
            checkout_enabled and attribute in CHECKOUT_REQUIRED_FIELDS
        )

        if _is_missing(value):
            if mandatory:
                reason = " when checkout is enabled" if spec.requirement != RequirementLevel.REQUIRED else ""
                outcome.errors.append(FieldError(
                    field=attribute,
                    message=f'Required field "{attribute}" is missing{reason}',
                    severity=Severity.ERROR,
                ))
            elif spec.requirement == RequirementLevel.RECOMMENDED:
                outcome.warnings.append(FieldError(
                    field=attribute,
                    message=f'Recommended field "{attribute}" is missing',
                    severity=Severity.WARNING,
                ))
            return

        rule = self.rules.get(attribute)
        if rule is None:
            return

        result = rule(value, attribute)
        if not result.valid:
            severity = Severity.ERROR if mandatory else Severity.WARNING
            target = outcome.errors if mandatory else outcome.warnings
            target.append(FieldError(field=attribute, message=result.message, severity=severity))
        elif result.message:
            outcome.warnings.append(FieldError(
                field=attribute,
                message=result.message,
                severity=Severity.WARNING,
            ))


def summarize_validation(
    results: Iterable[Union[ResolvedRecord, ValidationOutcome]],
    top: int = 10,
) -> ValidationSummary:
    """Aggregate validation results, counting the most common error messages."""
    summary = ValidationSummary()
    counts: Counter = Counter()

    for result in results:
        summary.total += 1
        if not result.is_valid:
            summary.invalid += 1
        if result.warnings:
            summary.with_warnings += 1
        summary.total_errors += len(result.errors)
        summary.total_warnings += len(result.warnings)
        counts.update(error.message for error in result.errors)

    summary.common_errors = counts.most_common(top)
    return summary
