"""Durable SKU -> storefront product/variant index."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy.engine import Engine
from sqlalchemy.sql import text

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class SkuEntry:
    sku: str
    product_id: int
    variant_id: int


class SkuIndex:
    """The only local link between a Source item and its storefront variant.

    The storefront has no field that can hold the Source identifier, so a SKU
    missing from this table is treated as never published.
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    async def get(self, sku: str) -> SkuEntry | None:
        return await asyncio.get_running_loop().run_in_executor(None, self._get, sku)

    async def put(self, sku: str, product_id: int, variant_id: int) -> None:
        await asyncio.get_running_loop().run_in_executor(None, self._put, sku, product_id, variant_id)

    async def delete(self, sku: str) -> bool:
        return await asyncio.get_running_loop().run_in_executor(None, self._delete, sku)

    def _get(self, sku: str) -> SkuEntry | None:
        with self.engine.connect() as conn:
            row = conn.execute(
                text("SELECT sku, product_id, variant_id FROM sku_index WHERE sku = :sku"),
                {"sku": sku},
            ).one_or_none()
        if row is None:
            return None
        return SkuEntry(sku=row.sku, product_id=int(row.product_id), variant_id=int(row.variant_id))

    def _put(self, sku: str, product_id: int, variant_id: int) -> None:
        with self.engine.begin() as conn:
            conn.execute(
                text(
                    """
                    INSERT INTO sku_index (sku, product_id, variant_id, updated_at)
                    VALUES (:sku, :product_id, :variant_id, :updated_at)
                    ON CONFLICT (sku) DO UPDATE SET
                      product_id = EXCLUDED.product_id,
                      variant_id = EXCLUDED.variant_id,
                      updated_at = EXCLUDED.updated_at
                    """
                ),
                {
                    "sku": sku,
                    "product_id": product_id,
                    "variant_id": variant_id,
                    "updated_at": datetime.now(timezone.utc),
                },
            )
        logger.debug("Indexed SKU %s -> product %s variant %s", sku, product_id, variant_id)

    def _delete(self, sku: str) -> bool:
        with self.engine.begin() as conn:
            result = conn.execute(text("DELETE FROM sku_index WHERE sku = :sku"), {"sku": sku})
        return result.rowcount > 0
