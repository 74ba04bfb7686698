"""
Static catalog of target feed attributes.

Each FieldSpec declares the attribute's requirement level, data type, lock
policy and, where the source platform has an obvious home for it, the default
source path and bound transform. The catalog is versioned and never mutated
at runtime.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from feedsync.exceptions import ConfigurationError

CATALOG_VERSION = "1.4.0"


class RequirementLevel(str, Enum):
    REQUIRED = "Required"
    RECOMMENDED = "Recommended"
    OPTIONAL = "Optional"
    CONDITIONAL = "Conditional"


class LockPolicy(str, Enum):
    UNLOCKED = "unlocked"
    LOCKED_NO_OVERRIDE = "locked-no-override"
    LOCKED_STATIC_OVERRIDE_ALLOWED = "locked-static-override-allowed"


class DataType(str, Enum):
    ENUM = "Enum"
    STRING = "String"
    STRING_TEXT = "String (UTF-8 text)"
    STRING_ALPHANUMERIC = "String (alphanumeric)"
    STRING_NUMERIC = "String (numeric)"
    URL = "URL"
    URL_ARRAY = "URL array"
    NUMBER = "Number"
    INTEGER = "Integer"
    NUMBER_CURRENCY = "Number + currency"
    NUMBER_UNIT = "Number + unit"
    NUMBER_DURATION = "Number + duration"
    DATE = "Date"
    DATE_RANGE = "Date range"
    COUNTRY_CODE = "Country code"


class FieldCategory(str, Enum):
    FLAGS = "flags"
    BASIC_PRODUCT_DATA = "basic_product_data"
    ITEM_INFORMATION = "item_information"
    MEDIA = "media"
    PRICE_PROMOTIONS = "price_promotions"
    AVAILABILITY_INVENTORY = "availability_inventory"
    VARIANTS = "variants"
    FULFILLMENT = "fulfillment"
    MERCHANT_INFO = "merchant_info"
    RETURNS = "returns"
    PERFORMANCE_SIGNALS = "performance_signals"
    COMPLIANCE = "compliance"
    REVIEWS_QANDA = "reviews_qanda"
    RELATED_PRODUCTS = "related_products"
    GEO_TAGGING = "geo_tagging"


@dataclass(frozen=True)
class FieldSpec:
    """Declaration of one target feed attribute."""
    attribute: str
    category: FieldCategory
    requirement: RequirementLevel
    data_type: DataType
    source_path: Optional[str] = None
    fallback_path: Optional[str] = None
    transform: Optional[str] = None
    lock: LockPolicy = LockPolicy.UNLOCKED
    supported_values: tuple[str, ...] = ()
    max_length: Optional[int] = None

    @property
    def is_locked(self) -> bool:
        return self.lock != LockPolicy.UNLOCKED

    @property
    def allows_static_override(self) -> bool:
        return self.lock != LockPolicy.LOCKED_NO_OVERRIDE

    @property
    def allows_mapping_override(self) -> bool:
        return self.lock == LockPolicy.UNLOCKED


R = RequirementLevel
T = DataType
C = FieldCategory
NO_OVERRIDE = LockPolicy.LOCKED_NO_OVERRIDE
STATIC_ONLY = LockPolicy.LOCKED_STATIC_OVERRIDE_ALLOWED

FIELD_CATALOG: tuple[FieldSpec, ...] = (
    # Flags
    FieldSpec("enable_search", C.FLAGS, R.REQUIRED, T.ENUM,
              transform="search_flag", supported_values=("true", "false")),
    FieldSpec("enable_checkout", C.FLAGS, R.REQUIRED, T.ENUM,
              transform="checkout_flag", supported_values=("true", "false")),

    # Basic product data
    FieldSpec("id", C.BASIC_PRODUCT_DATA, R.REQUIRED, T.STRING_ALPHANUMERIC,
              source_path="id", lock=NO_OVERRIDE, max_length=100),
    FieldSpec("gtin", C.BASIC_PRODUCT_DATA, R.RECOMMENDED, T.STRING_NUMERIC,
              source_path="global_unique_id", fallback_path="meta_data",
              transform="extract_gtin", lock=NO_OVERRIDE),
    FieldSpec("mpn", C.BASIC_PRODUCT_DATA, R.CONDITIONAL, T.STRING_ALPHANUMERIC, max_length=70),
    FieldSpec("title", C.BASIC_PRODUCT_DATA, R.REQUIRED, T.STRING_TEXT,
              source_path="name", transform="clean_variation_title",
              lock=STATIC_ONLY, max_length=150),
    FieldSpec("description", C.BASIC_PRODUCT_DATA, R.REQUIRED, T.STRING_TEXT,
              source_path="description", fallback_path="short_description",
              transform="strip_html", lock=STATIC_ONLY, max_length=5000),
    FieldSpec("link", C.BASIC_PRODUCT_DATA, R.REQUIRED, T.URL,
              source_path="permalink", lock=NO_OVERRIDE),

    # Item information
    FieldSpec("condition", C.ITEM_INFORMATION, R.CONDITIONAL, T.ENUM,
              transform="default_to_new", supported_values=("new", "refurbished", "used")),
    FieldSpec("product_category", C.ITEM_INFORMATION, R.REQUIRED, T.STRING,
              source_path="categories", transform="build_category_path", lock=STATIC_ONLY),
    FieldSpec("brand", C.ITEM_INFORMATION, R.CONDITIONAL, T.STRING,
              source_path="brands[0].name", fallback_path="attributes.brand",
              lock=NO_OVERRIDE, max_length=70),
    FieldSpec("material", C.ITEM_INFORMATION, R.REQUIRED, T.STRING, max_length=100),
    FieldSpec("dimensions", C.ITEM_INFORMATION, R.OPTIONAL, T.STRING,
              source_path="dimensions", transform="format_dimensions"),
    FieldSpec("length", C.ITEM_INFORMATION, R.OPTIONAL, T.NUMBER_UNIT,
              source_path="dimensions.length", transform="add_unit"),
    FieldSpec("width", C.ITEM_INFORMATION, R.OPTIONAL, T.NUMBER_UNIT,
              source_path="dimensions.width", transform="add_unit"),
    FieldSpec("height", C.ITEM_INFORMATION, R.OPTIONAL, T.NUMBER_UNIT,
              source_path="dimensions.height", transform="add_unit"),
    FieldSpec("weight", C.ITEM_INFORMATION, R.REQUIRED, T.NUMBER_UNIT,
              source_path="weight", transform="add_weight_unit"),
    FieldSpec("age_group", C.ITEM_INFORMATION, R.OPTIONAL, T.ENUM,
              supported_values=("newborn", "infant", "toddler", "kids", "adult")),

    # Media
    FieldSpec("image_link", C.MEDIA, R.REQUIRED, T.URL,
              source_path="images[0].src", lock=NO_OVERRIDE),
    FieldSpec("additional_image_link", C.MEDIA, R.OPTIONAL, T.URL_ARRAY,
              source_path="images", transform="extract_additional_images"),
    FieldSpec("video_link", C.MEDIA, R.OPTIONAL, T.URL),
    FieldSpec("model_3d_link", C.MEDIA, R.OPTIONAL, T.URL),

    # Price & promotions
    FieldSpec("price", C.PRICE_PROMOTIONS, R.REQUIRED, T.NUMBER_CURRENCY,
              source_path="regular_price", fallback_path="price",
              transform="format_price_with_currency"),
    FieldSpec("sale_price", C.PRICE_PROMOTIONS, R.OPTIONAL, T.NUMBER_CURRENCY,
              source_path="sale_price", transform="format_price_with_currency"),
    FieldSpec("sale_price_effective_date", C.PRICE_PROMOTIONS, R.OPTIONAL, T.DATE_RANGE,
              source_path="date_on_sale_from", transform="format_sale_date_range"),
    FieldSpec("unit_pricing_measure", C.PRICE_PROMOTIONS, R.OPTIONAL, T.NUMBER_UNIT),
    FieldSpec("unit_pricing_base_measure", C.PRICE_PROMOTIONS, R.OPTIONAL, T.NUMBER_UNIT),
    FieldSpec("pricing_trend", C.PRICE_PROMOTIONS, R.OPTIONAL, T.STRING),

    # Availability & inventory
    FieldSpec("availability", C.AVAILABILITY_INVENTORY, R.REQUIRED, T.ENUM,
              source_path="stock_status", transform="map_stock_status", lock=NO_OVERRIDE,
              supported_values=("in_stock", "out_of_stock", "preorder")),
    FieldSpec("availability_date", C.AVAILABILITY_INVENTORY, R.CONDITIONAL, T.DATE),
    FieldSpec("inventory_quantity", C.AVAILABILITY_INVENTORY, R.REQUIRED, T.INTEGER,
              source_path="stock_quantity", transform="default_to_zero", lock=NO_OVERRIDE),
    FieldSpec("expiration_date", C.AVAILABILITY_INVENTORY, R.OPTIONAL, T.DATE),
    FieldSpec("pickup_method", C.AVAILABILITY_INVENTORY, R.OPTIONAL, T.ENUM,
              supported_values=("in_store", "reserve", "not_supported")),
    FieldSpec("pickup_sla", C.AVAILABILITY_INVENTORY, R.OPTIONAL, T.NUMBER_DURATION),

    # Variants
    FieldSpec("item_group_id", C.VARIANTS, R.CONDITIONAL, T.STRING,
              source_path="parent_id", transform="generate_group_id",
              lock=NO_OVERRIDE, max_length=70),
    FieldSpec("item_group_title", C.VARIANTS, R.OPTIONAL, T.STRING_TEXT),
    FieldSpec("color", C.VARIANTS, R.RECOMMENDED, T.STRING, max_length=40),
    FieldSpec("size", C.VARIANTS, R.RECOMMENDED, T.STRING, max_length=20),
    FieldSpec("size_system", C.VARIANTS, R.RECOMMENDED, T.COUNTRY_CODE),
    FieldSpec("gender", C.VARIANTS, R.RECOMMENDED, T.ENUM,
              supported_values=("male", "female", "unisex")),
    FieldSpec("offer_id", C.VARIANTS, R.RECOMMENDED, T.STRING,
              source_path="sku", transform="generate_offer_id"),
    FieldSpec("custom_variant1_category", C.VARIANTS, R.OPTIONAL, T.STRING,
              transform="extract_custom_variant"),
    FieldSpec("custom_variant1_option", C.VARIANTS, R.OPTIONAL, T.STRING,
              transform="extract_custom_variant_option"),
    FieldSpec("custom_variant2_category", C.VARIANTS, R.OPTIONAL, T.STRING),
    FieldSpec("custom_variant2_option", C.VARIANTS, R.OPTIONAL, T.STRING),
    FieldSpec("custom_variant3_category", C.VARIANTS, R.OPTIONAL, T.STRING),
    FieldSpec("custom_variant3_option", C.VARIANTS, R.OPTIONAL, T.STRING),

    # Fulfillment
    FieldSpec("shipping", C.FULFILLMENT, R.CONDITIONAL, T.STRING),
    FieldSpec("delivery_estimate", C.FULFILLMENT, R.OPTIONAL, T.DATE),

    # Merchant info
    FieldSpec("seller_name", C.MERCHANT_INFO, R.REQUIRED, T.STRING,
              source_path="shop.seller_name", fallback_path="shop.shop_name", max_length=70),
    FieldSpec("seller_url", C.MERCHANT_INFO, R.REQUIRED, T.URL,
              source_path="shop.seller_url", fallback_path="shop.store_url"),
    FieldSpec("seller_privacy_policy", C.MERCHANT_INFO, R.CONDITIONAL, T.URL,
              source_path="shop.seller_privacy_policy"),
    FieldSpec("seller_tos", C.MERCHANT_INFO, R.CONDITIONAL, T.URL,
              source_path="shop.seller_tos"),

    # Returns
    FieldSpec("return_policy", C.RETURNS, R.REQUIRED, T.URL,
              source_path="shop.return_policy"),
    FieldSpec("return_window", C.RETURNS, R.REQUIRED, T.INTEGER,
              source_path="shop.return_window"),

    # Performance signals
    FieldSpec("popularity_score", C.PERFORMANCE_SIGNALS, R.RECOMMENDED, T.NUMBER,
              source_path="total_sales", transform="calculate_popularity_score"),
    FieldSpec("return_rate", C.PERFORMANCE_SIGNALS, R.RECOMMENDED, T.NUMBER),

    # Compliance
    FieldSpec("warning", C.COMPLIANCE, R.RECOMMENDED, T.STRING),
    FieldSpec("warning_url", C.COMPLIANCE, R.OPTIONAL, T.URL),
    FieldSpec("age_restriction", C.COMPLIANCE, R.RECOMMENDED, T.NUMBER),

    # Reviews and Q&A
    FieldSpec("product_review_count", C.REVIEWS_QANDA, R.RECOMMENDED, T.INTEGER,
              source_path="rating_count"),
    FieldSpec("product_review_rating", C.REVIEWS_QANDA, R.RECOMMENDED, T.NUMBER,
              source_path="average_rating"),
    FieldSpec("store_review_count", C.REVIEWS_QANDA, R.OPTIONAL, T.INTEGER),
    FieldSpec("store_review_rating", C.REVIEWS_QANDA, R.OPTIONAL, T.NUMBER),
    FieldSpec("q_and_a", C.REVIEWS_QANDA, R.RECOMMENDED, T.STRING,
              transform="format_q_and_a"),
    FieldSpec("raw_review_data", C.REVIEWS_QANDA, R.RECOMMENDED, T.STRING),

    # Related products
    FieldSpec("related_product_id", C.RELATED_PRODUCTS, R.RECOMMENDED, T.STRING,
              source_path="related_ids", fallback_path="upsell_ids",
              transform="format_related_ids"),
    FieldSpec("relationship_type", C.RELATED_PRODUCTS, R.RECOMMENDED, T.ENUM,
              supported_values=("part_of_set", "required_part", "often_bought_with",
                                "substitute", "different_brand", "accessory")),

    # Geo tagging
    FieldSpec("geo_price", C.GEO_TAGGING, R.RECOMMENDED, T.NUMBER_CURRENCY),
    FieldSpec("geo_availability", C.GEO_TAGGING, R.RECOMMENDED, T.STRING),
)

_BY_ATTRIBUTE = {spec.attribute: spec for spec in FIELD_CATALOG}

if len(_BY_ATTRIBUTE) != len(FIELD_CATALOG):
    raise RuntimeError("Duplicate attribute in FIELD_CATALOG")

FEED_ATTRIBUTES: tuple[str, ...] = tuple(spec.attribute for spec in FIELD_CATALOG)

LOCKED_FIELD_MAPPINGS: dict[str, str] = {
    spec.attribute: spec.source_path
    for spec in FIELD_CATALOG
    if spec.is_locked and spec.source_path
}


def get_field_spec(attribute: str) -> Optional[FieldSpec]:
    return _BY_ATTRIBUTE.get(attribute)


def fields_by_requirement(requirement: RequirementLevel) -> list[FieldSpec]:
    return [spec for spec in FIELD_CATALOG if spec.requirement == requirement]


def default_field_mappings() -> dict[str, Optional[str]]:
    """
    Suggested attribute -> source path table for a tenant with no custom
    mappings. Unmapped attributes map to None.
    """
    return {spec.attribute: spec.source_path for spec in FIELD_CATALOG}


def check_catalog_version(expected: Optional[str]) -> None:
    """Fail fast when the deployment expects a different catalog version."""
    if expected and expected != CATALOG_VERSION:
        raise ConfigurationError(
            message=(
                f"Field catalog version mismatch: configured {expected}, "
                f"engine ships {CATALOG_VERSION}"
            ),
            config_key="FIELD_CATALOG_VERSION",
        )
