"""Tests for path extraction."""

from feedsync.extractor import extract, extract_nested_value


class TestExtract:
    """Tests for extract against records and tenants."""

    def test_top_level(self, source_record, tenant):
        assert extract(source_record, tenant, "name") == "Classic Tee"

    def test_nested(self, source_record, tenant):
        assert extract(source_record, tenant, "dimensions.length") == "10"

    def test_indexed(self, source_record, tenant):
        assert extract(source_record, tenant, "images[1].src") == "https://cdn.example.com/tee-back.jpg"

    def test_index_out_of_range(self, source_record, tenant):
        assert extract(source_record, tenant, "images[9].src") is None

    def test_missing_path(self, source_record, tenant):
        assert extract(source_record, tenant, "brands[0].name") is None
        assert extract(source_record, tenant, "name.first") is None

    def test_empty_path(self, source_record, tenant):
        assert extract(source_record, tenant, "") is None
        assert extract(source_record, tenant, None) is None

    def test_meta_data(self, source_record, tenant):
        assert extract(source_record, tenant, "meta_data._gtin") == "012345678905"
        assert extract(source_record, tenant, "meta_data._missing") is None

    def test_attributes(self, source_record, tenant):
        assert extract(source_record, tenant, "attributes.material") == "Cotton"
        assert extract(source_record, tenant, "attributes.Material") is None

    def test_attribute_options_list(self, make_record, tenant):
        record = make_record(payload={"attributes": [{"name": "size", "options": ["S", "M"]}]})
        assert extract(record, tenant, "attributes.size") == "S"

    def test_shop_values(self, source_record, tenant):
        assert extract(source_record, tenant, "shop.seller_name") == "Example Seller"
        assert extract(source_record, tenant, "shop.returnWindow") == 30
        assert extract(source_record, tenant, "shop.unknown") is None

    def test_non_dict_payload_segments(self):
        assert extract_nested_value({"a": [1, 2]}, "a.b") is None
        assert extract_nested_value({"a": {"b": [{"c": 1}]}}, "a.b[0].c") == 1
