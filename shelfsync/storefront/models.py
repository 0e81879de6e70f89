"""Storefront (Shopify Admin REST) entities."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(slots=True)
class Image:
    id: int
    src: str
    variant_ids: list[int] = field(default_factory=list)

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "Image":
        return cls(
            id=int(data["id"]),
            src=data.get("src") or "",
            variant_ids=[int(v) for v in data.get("variant_ids") or []],
        )


@dataclass(slots=True)
class Variant:
    id: int
    sku: str | None
    product_id: int | None = None
    image_id: int | None = None

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "Variant":
        return cls(
            id=int(data["id"]),
            sku=data.get("sku"),
            product_id=int(data["product_id"]) if data.get("product_id") else None,
            image_id=int(data["image_id"]) if data.get("image_id") else None,
        )


@dataclass(slots=True)
class Product:
    id: int
    handle: str | None
    title: str | None = None
    variants: list[Variant] = field(default_factory=list)
    images: list[Image] = field(default_factory=list)
    options: list[str] = field(default_factory=list)

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "Product":
        return cls(
            id=int(data["id"]),
            handle=data.get("handle"),
            title=data.get("title"),
            variants=[Variant.from_api(v) for v in data.get("variants") or []],
            images=[Image.from_api(i) for i in data.get("images") or []],
            options=[o.get("name") for o in data.get("options") or [] if o.get("name")],
        )

    def variant_by_id(self, variant_id: int) -> Variant | None:
        return next((v for v in self.variants if v.id == variant_id), None)

    def variant_by_sku(self, sku: str) -> Variant | None:
        return next((v for v in self.variants if v.sku == sku), None)

    def image_for_variant(self, variant_id: int) -> Image | None:
        return next((i for i in self.images if variant_id in i.variant_ids), None)
