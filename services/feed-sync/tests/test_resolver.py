"""Tests for field resolution."""

import pytest

from feedsync.field_catalog import get_field_spec
from feedsync.models import MappingOverride, Severity, StaticOverride, TenantConfig
from feedsync.resolver import FieldResolver


@pytest.fixture
def mpn_tenant(tenant):
    return tenant.model_copy(update={"field_mappings": {**tenant.field_mappings, "mpn": "sku"}})


@pytest.fixture
def mpn_record(make_record):
    return make_record(payload={"meta_data": [{"key": "_mpn", "value": "MPN-9"}]})


class TestResolveRecord:
    """Tests for resolving whole records."""

    def test_resolves_core_fields(self, resolver, source_record, tenant):
        values = resolver.resolve_record(source_record, tenant).values

        assert values["id"] == 101
        assert values["title"] == "Classic Tee"
        assert values["description"] == "Soft cotton tee & more"
        assert values["product_category"] == "Clothing > Shirts"
        assert values["price"] == "19.99 USD"
        assert values["availability"] == "in_stock"
        assert values["inventory_quantity"] == 10
        assert values["material"] == "Cotton"
        assert values["weight"] == "0.5 kg"
        assert values["gtin"] == "012345678905"
        assert values["seller_name"] == "Example Seller"
        assert values["return_window"] == 30
        assert values["item_group_id"] == "shop-1-101"
        assert values["enable_search"] == "true"
        assert values["enable_checkout"] == "false"

    def test_none_values_omitted(self, resolver, source_record, tenant):
        values = resolver.resolve_record(source_record, tenant).values
        assert "sale_price" not in values
        assert "video_link" not in values

    def test_deterministic(self, resolver, source_record, tenant):
        first = resolver.resolve_record(source_record, tenant)
        second = resolver.resolve_record(source_record, tenant)
        assert first.values == second.values
        assert first.warnings == second.warnings

    def test_description_fallback(self, resolver, make_record, tenant):
        record = make_record(payload={"description": ""})
        assert resolver.resolve_record(record, tenant).values["description"] == "Soft tee"

    def test_dimension_all_or_nothing(self, resolver, make_record, tenant):
        partial = make_record(payload={"dimensions": {"length": "10", "width": "5", "height": ""}})
        values = resolver.resolve_record(partial, tenant).values
        for attribute in ("length", "width", "height", "dimensions"):
            assert attribute not in values

        full = make_record()
        values = resolver.resolve_record(full, tenant).values
        assert (values["length"], values["width"], values["height"]) == ("10 cm", "5 cm", "2 cm")
        assert values["dimensions"] == "10x5x2 cm"

    def test_tenant_mapping_can_unmap(self, resolver, source_record, tenant):
        unmapped = tenant.model_copy(update={"field_mappings": {"material": None}})
        assert "material" not in resolver.resolve_record(source_record, unmapped).values


class TestPrecedence:
    """Static override > mapping override > tenant default mapping."""

    def test_static_wins(self, resolver, mpn_record, mpn_tenant):
        overrides = {
            "mpn": StaticOverride(value="STATIC-1"),
        }
        spec = get_field_spec("mpn")
        assert resolver.resolve_field(mpn_record, mpn_tenant, spec, overrides) == "STATIC-1"

    def test_falls_through_to_mapping_override(self, resolver, mpn_record, mpn_tenant):
        overrides = {"mpn": MappingOverride(source_path="meta_data._mpn")}
        spec = get_field_spec("mpn")
        assert resolver.resolve_field(mpn_record, mpn_tenant, spec, overrides) == "MPN-9"

    def test_falls_through_to_tenant_default(self, resolver, mpn_record, mpn_tenant):
        spec = get_field_spec("mpn")
        assert resolver.resolve_field(mpn_record, mpn_tenant, spec, {}) == "TEE-101"

    def test_invalid_static_falls_through(self, resolver, mpn_record, mpn_tenant):
        overrides = {"mpn": StaticOverride(value="bad#value")}
        resolution = resolver.resolve_record(mpn_record, mpn_tenant, overrides)
        assert resolution.values["mpn"] == "TEE-101"
        assert any(w.field == "mpn" and w.severity == Severity.WARNING for w in resolution.warnings)

    def test_blank_static_is_absent(self, resolver, mpn_record, mpn_tenant):
        overrides = {"mpn": StaticOverride(value="   ")}
        spec = get_field_spec("mpn")
        assert resolver.resolve_field(mpn_record, mpn_tenant, spec, overrides) == "TEE-101"

    def test_static_override_is_not_transformed(self, resolver, source_record, tenant):
        overrides = {"price": StaticOverride(value="5.00 EUR")}
        assert resolver.resolve_record(source_record, tenant, overrides).values["price"] == "5.00 EUR"


class TestLockEnforcement:
    """Overrides on locked fields."""

    def test_no_override_field_ignores_everything(self, resolver, source_record, tenant):
        overrides = {
            "link": StaticOverride(value="https://elsewhere.example.com"),
            "availability": MappingOverride(source_path="name"),
        }
        resolution = resolver.resolve_record(source_record, tenant, overrides)

        assert resolution.values["link"] == "https://shop.example.com/p/classic-tee"
        assert resolution.values["availability"] == "in_stock"
        stale = {w.field for w in resolution.warnings if w.message.startswith("Ignoring")}
        assert stale == {"link", "availability"}

    def test_locked_field_ignores_tenant_mapping(self, resolver, source_record, tenant):
        remapped = tenant.model_copy(update={"field_mappings": {"link": "name"}})
        values = resolver.resolve_record(source_record, remapped).values
        assert values["link"] == "https://shop.example.com/p/classic-tee"

    def test_static_allowed_field(self, resolver, source_record, tenant):
        overrides = {"title": StaticOverride(value="Merchant Title")}
        assert resolver.resolve_record(source_record, tenant, overrides).values["title"] == "Merchant Title"

    def test_static_allowed_field_ignores_mapping(self, resolver, source_record, tenant):
        overrides = {"title": MappingOverride(source_path="sku")}
        resolution = resolver.resolve_record(source_record, tenant, overrides)
        assert resolution.values["title"] == "Classic Tee"
        assert any(w.field == "title" for w in resolution.warnings)


class TestTransformFailures:
    """A transform raising must not break resolution."""

    def test_failing_transform_resolves_to_none(self, source_record, tenant):
        def explode(value, record, tenant):
            raise RuntimeError("boom")

        from feedsync.transforms import TRANSFORMS

        resolver = FieldResolver(transforms={**TRANSFORMS, "strip_html": explode})
        resolution = resolver.resolve_record(source_record, tenant)

        assert "description" not in resolution.values
        assert resolution.values["title"] == "Classic Tee"
        assert any("boom" in w.message for w in resolution.warnings if w.field == "description")

    def test_shop_value_without_tenant_field(self, resolver, source_record):
        bare = TenantConfig(id="shop-9")
        values = resolver.resolve_record(source_record, bare).values
        assert "seller_name" not in values
        assert values["price"] == "19.99"
