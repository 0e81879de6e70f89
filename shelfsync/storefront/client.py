"""Throttled storefront Admin API client that keeps the SKU index honest."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from typing import Any

import httpx
from PIL.Image import Image as PILImage

from shelfsync.images import ImageFetcher, content_hash, encode_attachment
from shelfsync.index import SkuIndex
from shelfsync.storefront.models import Image, Product, Variant
from shelfsync.utils.retry import retry_async
from shelfsync.utils.throttle import DistributedThrottle

logger = logging.getLogger(__name__)

API_VERSION = os.environ.get("STOREFRONT_API_VERSION", "2024-04")


class HandleConflictError(RuntimeError):
    """More than one product claims a handle; the storefront guarantees uniqueness."""

    def __init__(self, handle: str, product_ids: list[int], detail: str | None = None) -> None:
        message = f"Handle {handle!r} is claimed by products {product_ids}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
        self.handle = handle
        self.product_ids = product_ids


class VariantNotFoundError(LookupError):
    """The product has no variant with the requested SKU."""


@dataclass(slots=True, frozen=True)
class NotIndexed:
    sku: str


@dataclass(slots=True, frozen=True)
class Found:
    product: Product
    variant: Variant


@dataclass(slots=True, frozen=True)
class GoneRemotely:
    sku: str
    product_id: int
    variant_id: int


SkuLookup = NotIndexed | Found | GoneRemotely


class StorefrontClient:
    """One instance per worker lifetime; every Admin API call takes a throttle permit."""

    def __init__(
        self,
        *,
        shop: str,
        throttle: DistributedThrottle,
        sku_index: SkuIndex,
        images: ImageFetcher,
        access_token: str | None = None,
        api_version: str = API_VERSION,
        session: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = f"https://{shop}.myshopify.com/admin/api/{api_version}"
        self._throttle = throttle
        self._sku_index = sku_index
        self._images = images
        self._session = session or httpx.AsyncClient(timeout=30.0)
        self._headers = {"Content-Type": "application/json"}
        if access_token:
            self._headers["X-Shopify-Access-Token"] = access_token
        self._image_hashes: dict[int, str] = {}

    async def close(self) -> None:
        await self._session.aclose()

    async def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        async with self._throttle.permit():
            return await self._session.request(method, url, headers=self._headers, **kwargs)

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        payload: dict[str, Any] | None = None,
    ) -> httpx.Response:
        url = f"{self.base_url}/{path.lstrip('/')}"
        send = retry_async(self._send) if method == "GET" else self._send
        response = await send(method, url, params=params, json=payload)
        if response.is_error and response.status_code != 404:
            logger.error("%s %s failed with %s: %s", method, path, response.status_code, response.text)
        return response

    async def _get_product(self, product_id: int) -> Product | None:
        response = await self._request("GET", f"products/{product_id}.json")
        if response.status_code == 404:
            return None
        response.raise_for_status()
        return Product.from_api(response.json()["product"])

    async def _delete(self, path: str) -> bool:
        response = await self._request("DELETE", path)
        if response.status_code == 404:
            logger.info("DELETE %s: already gone", path)
            return False
        response.raise_for_status()
        return True

    async def reconcile_sku(self, sku: str) -> SkuLookup:
        """Check an indexed SKU against the storefront, dropping the entry if it drifted."""
        entry = await self._sku_index.get(sku)
        if entry is None:
            return NotIndexed(sku)

        product = await self._get_product(entry.product_id)
        variant = product.variant_by_id(entry.variant_id) if product else None
        if product is None or variant is None:
            await self._sku_index.delete(sku)
            logger.info(
                "SKU %s no longer exists remotely (product %s, variant %s); dropped index entry",
                sku,
                entry.product_id,
                entry.variant_id,
            )
            return GoneRemotely(sku=sku, product_id=entry.product_id, variant_id=entry.variant_id)
        return Found(product=product, variant=variant)

    async def find_product_by_sku(self, sku: str) -> Product | None:
        lookup = await self.reconcile_sku(sku)
        return lookup.product if isinstance(lookup, Found) else None

    async def find_product_by_handle(self, handle: str) -> Product | None:
        response = await self._request("GET", "products.json", params={"handle": handle})
        response.raise_for_status()
        products = [Product.from_api(p) for p in response.json().get("products", [])]
        if len(products) > 1:
            raise HandleConflictError(handle, [p.id for p in products])
        return products[0] if products else None

    async def create_product(self, payload: dict[str, Any]) -> Product:
        try:
            response = await self._request("POST", "products.json", payload={"product": payload})
            response.raise_for_status()
        except Exception:
            # The exact payload is the most useful thing to have when a create is rejected.
            logger.error("Product create failed; payload was %s", json.dumps(payload, default=str))
            raise

        product = Product.from_api(response.json()["product"])
        sku = payload["variants"][0]["sku"]
        variant = product.variant_by_sku(sku) or product.variants[0]
        await self._sku_index.put(sku, product.id, variant.id)
        logger.info("Created product %s (%s) with variant %s", product.id, product.handle, variant.id)
        return product

    async def create_variant(self, product: Product, payload: dict[str, Any]) -> Variant:
        response = await self._request(
            "POST", f"products/{product.id}/variants.json", payload={"variant": payload}
        )
        response.raise_for_status()
        variant = Variant.from_api(response.json()["variant"])
        product.variants.append(variant)
        await self._sku_index.put(payload["sku"], product.id, variant.id)
        logger.info("Added variant %s (%s) to product %s", variant.id, payload["sku"], product.id)
        return variant

    async def delete_variant(self, product: Product, sku: str) -> None:
        """Remove the variant with ``sku``; the last variant takes its product with it.

        An image linked only to the removed variant is deleted as well.
        """
        variant = product.variant_by_sku(sku)
        if variant is None:
            raise VariantNotFoundError(f"Product {product.id} has no variant with SKU {sku}")

        if len(product.variants) == 1:
            await self._delete(f"products/{product.id}.json")
            logger.info("Deleted product %s with its last variant %s", product.id, sku)
            await self._sku_index.delete(sku)
            return

        await self._delete(f"products/{product.id}/variants/{variant.id}.json")
        product.variants.remove(variant)
        try:
            image = product.image_for_variant(variant.id)
            if image is not None and image.variant_ids == [variant.id]:
                await self._delete(f"products/{product.id}/images/{image.id}.json")
                product.images.remove(image)
                self._image_hashes.pop(image.id, None)
        finally:
            await self._sku_index.delete(sku)
        logger.info("Deleted variant %s (%s) from product %s", variant.id, sku, product.id)

    async def _image_hash(self, image: Image) -> str | None:
        if image.id not in self._image_hashes:
            try:
                downloaded = await self._images.download(image.src)
            except httpx.HTTPStatusError as exc:
                if exc.response.status_code != 404:
                    raise
                logger.warning("Image %s of %s is missing from the CDN", image.id, image.src)
                return None
            self._image_hashes[image.id] = content_hash(downloaded)
        return self._image_hashes[image.id]

    async def attach_image(self, product: Product, variant_id: int, image: PILImage) -> Image:
        """Attach ``image`` to a variant, reusing an identical image already on the product."""
        digest = content_hash(image)
        for existing in product.images:
            if await self._image_hash(existing) != digest:
                continue
            response = await self._request(
                "PUT",
                f"products/{product.id}/variants/{variant_id}.json",
                payload={"variant": {"id": variant_id, "image_id": existing.id}},
            )
            response.raise_for_status()
            if variant_id not in existing.variant_ids:
                existing.variant_ids.append(variant_id)
            logger.debug("Linked existing image %s to variant %s", existing.id, variant_id)
            return existing

        response = await self._request(
            "POST",
            f"products/{product.id}/images.json",
            payload={"image": {"attachment": encode_attachment(image), "variant_ids": [variant_id]}},
        )
        response.raise_for_status()
        created = Image.from_api(response.json()["image"])
        if variant_id not in created.variant_ids:
            created.variant_ids.append(variant_id)
        product.images.append(created)
        self._image_hashes[created.id] = digest
        logger.debug("Uploaded image %s for variant %s", created.id, variant_id)
        return created
