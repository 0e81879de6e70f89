"""Per-item publishing: drop the stale variant, then merge or create."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Iterable, Literal

import httpx
from redis.asyncio import Redis
from redis.exceptions import LockError, LockNotOwnedError

from shelfsync.images import ImageFetcher
from shelfsync.models import Item
from shelfsync.product_types import ProductTypes
from shelfsync.storefront.client import HandleConflictError, StorefrontClient
from shelfsync.storefront.models import Product
from shelfsync.translate import (
    UnpublishableItemError,
    compute_handle,
    compute_options,
    translate_product,
    translate_variant,
)

logger = logging.getLogger(__name__)

DEFAULT_OPTION = "Title"


@dataclass(slots=True)
class ItemResult:
    sku: str
    status: Literal["published", "removed", "unpublishable"]
    product_id: int | None = None
    variant_id: int | None = None
    reason: str | None = None


class ItemProcessor:
    def __init__(
        self,
        client: StorefrontClient,
        product_types: ProductTypes,
        images: ImageFetcher,
        *,
        locks: Redis | None = None,
        lock_timeout: float = 60.0,
        deadline: float | None = None,
    ) -> None:
        self.client = client
        self.product_types = product_types
        self.images = images
        self._locks = locks
        self.lock_timeout = lock_timeout
        self.deadline = deadline

    def _lock_ttl(self) -> float:
        # The lock has to outlive every request this worker may still make.
        if self.deadline is None:
            return self.lock_timeout
        return max(self.lock_timeout, self.deadline - time.time())

    async def process(self, item: Item) -> ItemResult:
        """Bring the storefront in line with one item snapshot.

        Safe to repeat: a re-delivered event deletes and republishes the same
        variant. Events for one SKU are serialised when a Redis client is set.
        """
        if self._locks is None:
            return await self._process(item)
        lock = self._locks.lock(
            f"shelfsync:sku-lock:{item.sku}",
            timeout=self._lock_ttl(),
            blocking_timeout=self.lock_timeout,
        )
        if not await lock.acquire():
            raise LockError(f"Item #{item.sku} is still locked by another worker")
        try:
            return await self._process(item)
        finally:
            try:
                await lock.release()
            except LockNotOwnedError:
                logger.warning("Lock on item #%s expired before the item finished", item.sku)

    async def _process(self, item: Item) -> ItemResult:
        logger.debug("Processing item #%s", item.sku)
        await self.delete_stale(item)
        if not item.active:
            logger.info("Item #%s is inactive; left unpublished", item.sku)
            return ItemResult(sku=item.sku, status="removed")
        try:
            return await self.publish(item)
        except UnpublishableItemError as exc:
            logger.warning("%s", exc)
            return ItemResult(sku=item.sku, status="unpublishable", reason=exc.reason)

    async def delete_stale(self, item: Item) -> bool:
        product = await self.client.find_product_by_sku(item.sku)
        if product is None:
            return False
        await self.client.delete_variant(product, item.sku)
        logger.debug("Deleted stale variant for item #%s", item.sku)
        return True

    def _check_options(self, item: Item, product: Product, handle: str) -> None:
        expected = [option.name.lower() for option in compute_options(item)] or [DEFAULT_OPTION.lower()]
        actual = [name.lower() for name in product.options]
        if actual and actual != expected:
            raise HandleConflictError(
                handle,
                [product.id],
                f"item #{item.sku} has options {expected} but the product has {actual}",
            )

    async def publish(self, item: Item) -> ItemResult:
        handle = compute_handle(item)
        logger.debug("Looking for siblings of item #%s under handle %s", item.sku, handle)
        product = await self.client.find_product_by_handle(handle)

        if product is not None:
            self._check_options(item, product, handle)
            variant_payload = translate_variant(item, self.product_types)
            image = await self._primary_image(item)
            variant = await self.client.create_variant(product, variant_payload)
        else:
            product_payload = translate_product(item, self.product_types)
            image = await self._primary_image(item)
            product = await self.client.create_product(product_payload)
            variant = product.variant_by_sku(item.sku) or product.variants[0]

        if image is not None:
            await self.client.attach_image(product, variant.id, image)
        logger.info("Published item #%s as variant %s of product %s", item.sku, variant.id, product.id)
        return ItemResult(sku=item.sku, status="published", product_id=product.id, variant_id=variant.id)

    async def _primary_image(self, item: Item):
        if item.primary_image is None:
            return None
        return await self.images.download_square(item.primary_image.url)

    async def process_batch(self, items: Iterable[Item]) -> list[ItemResult]:
        """Process items in order. Unpublishable items are reported; anything else aborts."""
        results = []
        for item in items:
            try:
                results.append(await self.process(item))
            except httpx.HTTPStatusError as exc:
                logger.error("Item #%s failed: %r; response body: %s", item.sku, exc, exc.response.text)
                raise
            except Exception as exc:
                logger.error("Item #%s failed: %r", item.sku, exc)
                raise
        return results
