"""Pytest fixtures and configuration."""

import copy
import os
from datetime import datetime, timedelta, timezone

import pytest

os.environ["AWS_DEFAULT_REGION"] = "us-east-1"
os.environ["AWS_ACCESS_KEY_ID"] = "testing"
os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
os.environ.setdefault("LOG_LEVEL", "WARNING")

from feedsync.models import SourceRecord, TenantConfig  # noqa: E402
from feedsync.resolver import FieldResolver  # noqa: E402
from feedsync.storage import InMemoryStorage  # noqa: E402
from feedsync.validator import FeedValidator  # noqa: E402

T0 = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Wall and monotonic time that only move when told to."""

    def __init__(self, start: datetime = T0):
        self.current = start
        self.elapsed = 0.0
        self.sleeps: list[float] = []

    def now(self) -> datetime:
        return self.current

    def monotonic(self) -> float:
        return self.elapsed

    def advance(self, seconds: float) -> None:
        self.current += timedelta(seconds=seconds)
        self.elapsed += seconds

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.advance(seconds)


class FakeSource:
    """In-memory ingestion collaborator."""

    def __init__(self, records=None):
        self.records = {record.external_id: record for record in records or []}
        self.calls: list[tuple] = []
        self.error = None
        self.fail_times = 0

    def put(self, record: SourceRecord) -> None:
        self.records[record.external_id] = record

    def _maybe_fail(self):
        if self.error is not None and self.fail_times != 0:
            self.fail_times -= 1
            raise self.error

    def fetch_records(self, tenant, since):
        self.calls.append(("fetch_records", tenant.id, since))
        self._maybe_fail()
        return [r for r in self.records.values() if r.tenant_id == tenant.id]

    def fetch_record(self, tenant, record_id):
        self.calls.append(("fetch_record", tenant.id, record_id))
        self._maybe_fail()
        return self.records.get(str(record_id))


@pytest.fixture
def tenant():
    """A fully configured merchant."""
    return TenantConfig(
        id="shop-1",
        shop_name="Example Shop",
        shop_currency="USD",
        dimension_unit="cm",
        weight_unit="kg",
        seller_name="Example Seller",
        seller_url="https://shop.example.com",
        seller_privacy_policy="https://shop.example.com/privacy",
        seller_tos="https://shop.example.com/terms",
        return_policy="https://shop.example.com/returns",
        return_window=30,
        store_url="https://shop.example.com",
        field_mappings={"material": "attributes.material"},
    )


@pytest.fixture
def sample_payload():
    """A simple catalog item as delivered by the source platform."""
    return {
        "id": 101,
        "name": "Classic Tee",
        "sku": "TEE-101",
        "permalink": "https://shop.example.com/p/classic-tee",
        "description": "<p>Soft <strong>cotton</strong> tee &amp; more</p>",
        "short_description": "Soft tee",
        "regular_price": "19.99",
        "price": "19.99",
        "sale_price": "",
        "stock_status": "instock",
        "stock_quantity": 10,
        "weight": "0.5",
        "dimensions": {"length": "10", "width": "5", "height": "2"},
        "categories": [
            {"id": 1, "name": "Clothing", "parent": 0},
            {"id": 2, "name": "Shirts", "parent": 1},
        ],
        "images": [
            {"src": "https://cdn.example.com/tee-front.jpg"},
            {"src": "https://cdn.example.com/tee-back.jpg"},
        ],
        "attributes": [
            {"name": "material", "option": "Cotton"},
            {"name": "Color", "option": "Red"},
        ],
        "meta_data": [{"key": "_gtin", "value": "012345678905"}],
        "total_sales": 99,
        "rating_count": 4,
        "average_rating": "4.50",
    }


@pytest.fixture
def make_record(sample_payload):
    def _make(external_id="101", tenant_id="shop-1", **changes):
        payload = copy.deepcopy(sample_payload)
        payload["id"] = int(external_id) if str(external_id).isdigit() else external_id
        payload.update(changes.pop("payload", {}))
        return SourceRecord(
            tenant_id=tenant_id,
            external_id=external_id,
            payload=payload,
            **changes,
        )
    return _make


@pytest.fixture
def source_record(make_record):
    return make_record()


@pytest.fixture
def resolver():
    return FieldResolver()


@pytest.fixture
def validator():
    return FeedValidator()


@pytest.fixture
def storage(tenant):
    backend = InMemoryStorage()
    backend.put_tenant(tenant)
    return backend


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_source(source_record):
    return FakeSource([source_record])
