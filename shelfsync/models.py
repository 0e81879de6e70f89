"""Source item records as delivered by item-update events."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class CustomFields(BaseModel):
    """Recognized item custom fields. Anything else is kept but never read."""

    model_config = ConfigDict(extra="allow", populate_by_name=True, coerce_numbers_to_str=True)

    size: str | None = None
    color: str | None = None
    length: str | None = None
    gender: str | None = None
    brand: str | None = None
    sub_class: str | None = None
    tax_category: str | None = None
    upc_gtin: str | None = None
    oosp_policy: str | None = None
    shipping_level: str | None = None
    map: str | None = None
    # The Source spells this key "advertrised".
    minimum_advertised_price: str | None = Field(default=None, alias="minimum_advertrised_price")
    web_price: str | None = None

    @field_validator("*", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value


class Vendor(BaseModel):
    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    id: str | None = None
    name: str | None = None


class ImageRef(BaseModel):
    model_config = ConfigDict(extra="ignore")

    url: str


class Grid(BaseModel):
    model_config = ConfigDict(extra="ignore")

    description: str | None = None


class Item(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True, coerce_numbers_to_str=True)

    id: str | None = None
    public_id: str
    active: bool = Field(default=False, alias="active?")
    price: float | None = None
    original_price: float | None = None
    description: str | None = None
    long_description: str | None = None
    primary_vendor_id: str | None = None
    primary_vendor: Vendor | None = None
    primary_image: ImageRef | None = None
    grid: Grid | None = None
    updated_at: str | None = None
    custom: CustomFields = Field(default_factory=CustomFields)

    @field_validator("custom", mode="before")
    @classmethod
    def _null_custom(cls, value: Any) -> Any:
        return value or {}

    @property
    def sku(self) -> str:
        return self.public_id

    @property
    def group_description(self) -> str | None:
        if self.grid is not None:
            return self.grid.description
        return self.description

    @property
    def vendor_name(self) -> str | None:
        return self.primary_vendor.name if self.primary_vendor else None
