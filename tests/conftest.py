import io

import fakeredis
import pytest
import pytest_asyncio
from PIL import Image
from sqlalchemy import create_engine

from shelfsync.db.migrate import run_migrations
from shelfsync.index import SkuIndex
from shelfsync.models import Item
from shelfsync.product_types import ProductType, ProductTypes
from shelfsync.utils.throttle import DistributedThrottle

SHOP = "test-shop"
ADMIN = "https://test-shop.myshopify.com/admin/api/2024-04"
CDN = "https://cdn.example.com"


@pytest.fixture()
def engine(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'index.db'}", future=True)
    run_migrations(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def sku_index(engine):
    return SkuIndex(engine)


@pytest.fixture()
def redis():
    return fakeredis.FakeAsyncRedis(server=fakeredis.FakeServer())


@pytest_asyncio.fixture()
async def throttle(redis):
    throttle = DistributedThrottle(redis, bucket_id="test", reservoir=100, increase_maximum=100, poll_interval=0.01)
    await throttle.ready()
    yield throttle
    await throttle.close()


@pytest.fixture()
def product_types():
    return ProductTypes(
        {
            "JACKETS": ProductType("JACKETS", "Jackets", 2),
            "SOCKS": ProductType("SOCKS", "Socks", 0),
            "SKIS": ProductType("SKIS", "Skis", -2),
        }
    )


def make_item(**overrides) -> Item:
    custom = {
        "sub_class": "JACKETS",
        "gender": "Womens",
        "brand": "Arc",
        "color": "Red",
        "size": "M",
        "tax_category": "Taxable",
        "map": "Not Enforced",
        "upc_gtin": "0001",
    }
    custom.update(overrides.pop("custom", {}))
    payload = {
        "id": 158026,
        "public_id": "100200",
        "active?": True,
        "price": 80.0,
        "original_price": 120.0,
        "description": "Beta Jacket Red M",
        "long_description": "<p style='color:red'>Warm.</p>",
        "primary_vendor_id": 77,
        "primary_vendor": {"id": 77, "name": "Arcteryx Supply"},
        "grid": {"description": "Beta Jacket"},
        "custom": custom,
    }
    payload.update(overrides)
    return Item.model_validate(payload)


def png_bytes(color=(200, 10, 10), size=(40, 20)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", size, color).save(buffer, format="PNG")
    return buffer.getvalue()


def product_json(product_id, handle, variants, images=(), options=("size", "color")):
    return {
        "id": product_id,
        "handle": handle,
        "title": "Beta Jacket",
        "variants": [{"id": vid, "sku": sku, "product_id": product_id} for vid, sku in variants],
        "images": [
            {"id": iid, "src": src, "variant_ids": list(vids)} for iid, src, vids in images
        ],
        "options": [{"name": name} for name in options],
    }
