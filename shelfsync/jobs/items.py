"""Worker entry point: publish one batch of item-update events."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Iterable

from dotenv import load_dotenv
from redis.asyncio import Redis

from shelfsync.config import Settings, task_time_limit
from shelfsync.db.session import create_engine_from_env
from shelfsync.images import ImageFetcher
from shelfsync.index import SkuIndex
from shelfsync.jobs.celery_app import celery_app
from shelfsync.models import Item
from shelfsync.product_types import load_product_types
from shelfsync.storefront.client import StorefrontClient
from shelfsync.sync.processor import ItemProcessor, ItemResult
from shelfsync.utils.throttle import DistributedThrottle

logger = logging.getLogger(__name__)

# Permits must lapse before the worker is killed.
DEADLINE_MARGIN = 10.0


async def run_item_batch(
    payloads: Iterable[dict[str, Any]],
    *,
    deadline: float | None = None,
    settings: Settings | None = None,
) -> list[ItemResult]:
    load_dotenv()
    settings = settings or Settings.from_env()
    items = [Item.model_validate(payload) for payload in payloads]

    redis = Redis.from_url(settings.redis_url)
    throttle = DistributedThrottle(
        redis,
        bucket_id=settings.bucket_id,
        reservoir=settings.reservoir,
        increase_amount=settings.increase_amount,
        increase_interval=settings.increase_interval,
        increase_maximum=settings.increase_maximum,
        lease_seconds=settings.lease_seconds,
        deadline=deadline,
    )
    images = ImageFetcher()
    client = StorefrontClient(
        shop=settings.shop,
        access_token=settings.access_token,
        api_version=settings.api_version,
        throttle=throttle,
        sku_index=SkuIndex(create_engine_from_env()),
        images=images,
    )
    processor = ItemProcessor(client, load_product_types(), images, locks=redis, deadline=deadline)

    try:
        await throttle.ready()
        results = await processor.process_batch(items)
    finally:
        await throttle.close()
        await client.close()
        await images.close()
        await redis.aclose()

    published = sum(1 for result in results if result.status == "published")
    logger.info("Batch done: %s items, %s published", len(results), published)
    return results


@celery_app.task(name="shelfsync.jobs.items.process_item_events", time_limit=task_time_limit())
def process_item_events(payloads: list[dict[str, Any]]) -> list[dict[str, Any]]:  # pragma: no cover - executed by worker
    deadline = time.time() + task_time_limit() - DEADLINE_MARGIN
    results = asyncio.run(run_item_batch(payloads, deadline=deadline))
    return [
        {"sku": r.sku, "status": r.status, "product_id": r.product_id, "variant_id": r.variant_id, "reason": r.reason}
        for r in results
    ]
