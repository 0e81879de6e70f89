import asyncio
from types import SimpleNamespace

import httpx
import pytest
import respx
from fastapi.testclient import TestClient

from conftest import ADMIN, SHOP, make_item, product_json
from shelfsync.api import main as api
from shelfsync.config import Settings
from shelfsync.jobs import items


@pytest.fixture()
def wired(monkeypatch, redis, engine, product_types):
    monkeypatch.setattr(items, "Redis", SimpleNamespace(from_url=lambda url: redis))
    monkeypatch.setattr(items, "create_engine_from_env", lambda: engine)
    monkeypatch.setattr(items, "load_product_types", lambda: product_types)
    return Settings(shop=SHOP, reservoir=10, increase_maximum=10)


@pytest.mark.asyncio
async def test_run_item_batch_e2e(wired, engine):
    active = make_item().model_dump(by_alias=True)
    inactive = make_item(public_id="100201", **{"active?": False}).model_dump(by_alias=True)
    async with respx.mock() as router:
        router.get(f"{ADMIN}/products.json").mock(return_value=httpx.Response(200, json={"products": []}))
        router.post(f"{ADMIN}/products.json").mock(
            return_value=httpx.Response(201, json={"product": product_json(1, "h", [(10, "100200")])})
        )
        results = await items.run_item_batch([active, inactive], settings=wired)

    assert [(r.sku, r.status) for r in results] == [("100200", "published"), ("100201", "removed")]


@pytest.mark.asyncio
async def test_run_item_batch_rejects_bad_payload(wired):
    with pytest.raises(ValueError):
        await items.run_item_batch([{"id": 1}], settings=wired)


def test_webhook_enqueues_valid_items(monkeypatch):
    queued = []
    monkeypatch.setattr(api.process_item_events, "delay", lambda payloads: queued.append(payloads))
    payload = make_item().model_dump(by_alias=True)

    response = TestClient(api.app).post("/webhooks/items", json=payload)

    assert response.status_code == 202
    assert response.json() == {"status": "queued", "sku": "100200"}
    assert queued[0][0]["public_id"] == "100200"


def test_webhook_rejects_invalid_items(monkeypatch):
    monkeypatch.setattr(api.process_item_events, "delay", lambda payloads: pytest.fail("enqueued"))

    response = TestClient(api.app).post("/webhooks/items", json={"id": "not-a-number"})

    assert response.status_code == 422


def test_webhook_reports_queue_outage(monkeypatch):
    def broken(payloads):
        raise ConnectionError("broker down")

    monkeypatch.setattr(api.process_item_events, "delay", broken)

    response = TestClient(api.app).post("/webhooks/items", json=make_item().model_dump(by_alias=True))

    assert response.status_code == 503


def test_webhook_enqueues_off_the_event_loop(monkeypatch):
    on_loop = []

    def delay(payloads):
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            on_loop.append(False)
        else:
            on_loop.append(True)

    monkeypatch.setattr(api.process_item_events, "delay", delay)

    response = TestClient(api.app).post("/webhooks/items", json=make_item().model_dump(by_alias=True))

    assert response.status_code == 202
    assert on_loop == [False]
