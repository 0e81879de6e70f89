"""Environment-driven settings."""

from __future__ import annotations

import os
from dataclasses import dataclass

DEFAULT_REDIS_URL = "redis://redis:6379/0"


@dataclass(slots=True)
class Settings:
    shop: str
    access_token: str | None = None
    api_version: str = "2024-04"
    redis_url: str = DEFAULT_REDIS_URL
    bucket_id: str = "storefront-admin-api"
    # Shopify's REST bucket: 40 requests, leaking 2 per second.
    reservoir: int = 40
    increase_amount: int = 2
    increase_interval: float = 1.0
    increase_maximum: int = 40
    lease_seconds: float = 30.0

    @classmethod
    def from_env(cls) -> "Settings":
        shop = os.environ.get("STOREFRONT_SHOP")
        if not shop:
            raise KeyError("STOREFRONT_SHOP")
        return cls(
            shop=shop,
            access_token=os.environ.get("STOREFRONT_ACCESS_TOKEN"),
            api_version=os.environ.get("STOREFRONT_API_VERSION", "2024-04"),
            redis_url=os.environ.get("REDIS_URL", DEFAULT_REDIS_URL),
            bucket_id=os.environ.get("THROTTLE_BUCKET_ID", "storefront-admin-api"),
            reservoir=int(os.environ.get("THROTTLE_RESERVOIR", 40)),
            increase_amount=int(os.environ.get("THROTTLE_INCREASE_AMOUNT", 2)),
            increase_interval=float(os.environ.get("THROTTLE_INCREASE_INTERVAL", 1.0)),
            increase_maximum=int(os.environ.get("THROTTLE_INCREASE_MAXIMUM", 40)),
            lease_seconds=float(os.environ.get("THROTTLE_LEASE_SECONDS", 30.0)),
        )


def task_time_limit() -> int:
    return int(os.environ.get("ITEM_TASK_TIME_LIMIT", 300))
