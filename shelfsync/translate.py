"""Translate Source items into storefront product and variant payloads."""

from __future__ import annotations

import hashlib
import logging
import os
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any

from shelfsync.html import remove_styling
from shelfsync.models import Item
from shelfsync.product_types import ProductTypes

logger = logging.getLogger(__name__)

NAMESPACE_TAG = os.environ.get("SHELFSYNC_TAG", "shelfsync")
FULFILLMENT_SERVICE = os.environ.get("FULFILLMENT_SERVICE", "manual")

EMERGENCY_SHIPPING_LEVEL = 1
UNPUBLISHABLE_SHIPPING_LEVEL = -1
PICKUP_ONLY_SHIPPING_LEVEL = -2

# Custom field -> option label, in option1..option3 order.
OPTION_FIELDS = (("size", "size"), ("color", "color"), ("length", "2nd Dimension"))

GENDER_TAGS = {
    "Unisex": ("Gender_Mens", "Gender_Womens"),
    "Kids": ("Gender_Boys", "Gender_Girls"),
}


class UnpublishableItemError(Exception):
    """The item breaks a publishing rule and must not reach the storefront."""

    def __init__(self, item: Item, reason: str) -> None:
        super().__init__(f"Refusing to publish Item #{item.sku} because {reason}.")
        self.sku = item.sku
        self.reason = reason


@dataclass(slots=True, frozen=True)
class ProductOption:
    name: str
    value: str


def _component(value: object) -> str:
    return "" if value is None else str(value)


def compute_handle(item: Item) -> str:
    """Items that hash to the same handle become variants of one product."""
    custom = item.custom
    components = [
        NAMESPACE_TAG,
        custom.gender,
        custom.brand or item.primary_vendor_id,
        # Every variant of a product has to carry the same option kinds.
        f"{'color' if custom.color else ''}{'size' if custom.size else ''}",
        item.group_description,
    ]
    joined = ",".join(_component(part) for part in components)
    return hashlib.md5(joined.encode("utf-8")).hexdigest()


def compute_options(item: Item) -> list[ProductOption]:
    options = []
    for field, label in OPTION_FIELDS:
        value = getattr(item.custom, field)
        if value:
            options.append(ProductOption(name=label, value=value))
    return options


def _parse_int(value: str | None) -> int | None:
    if value is None:
        return None
    try:
        return int(value.strip())
    except ValueError:
        return None


def _parse_decimal(value: object) -> Decimal | None:
    if value is None:
        return None
    try:
        parsed = Decimal(str(value).strip().lstrip("$"))
    except InvalidOperation:
        return None
    return parsed if parsed.is_finite() else None


def resolve_shipping_level(item: Item, product_types: ProductTypes) -> int:
    level: int | None = None
    product_type = product_types.get(item.custom.sub_class) if item.custom.sub_class else None
    if product_type is not None:
        level = product_type.shipping_level
    else:
        logger.warning("No default shipping level set for sub class %r", item.custom.sub_class)

    inline = item.custom.shipping_level
    if inline is not None:
        inline_level = _parse_int(inline)
        if inline_level is None:
            logger.warning(
                "Item #%s has an illegal inline shipping level %r; falling back to %s",
                item.sku,
                inline,
                level,
            )
        else:
            level = inline_level

    if level is None:
        logger.warning(
            "Item #%s has no default or inline shipping level; using emergency level %s",
            item.sku,
            EMERGENCY_SHIPPING_LEVEL,
        )
        level = EMERGENCY_SHIPPING_LEVEL
    if level == UNPUBLISHABLE_SHIPPING_LEVEL:
        raise UnpublishableItemError(item, "shipping level is set to -1")
    if level < PICKUP_ONLY_SHIPPING_LEVEL:
        logger.warning(
            "Item #%s has illegal shipping level %s; assigning %s instead",
            item.sku,
            level,
            PICKUP_ONLY_SHIPPING_LEVEL,
        )
        level = PICKUP_ONLY_SHIPPING_LEVEL
    return level


def resolve_price(item: Item) -> Decimal:
    custom = item.custom
    base_price = _parse_decimal(item.price)
    web_price = _parse_decimal(custom.web_price)

    if custom.map == "Not Enforced":
        price = web_price if web_price is not None else base_price
        if price is None:
            raise UnpublishableItemError(item, "it has no price")
        return price

    threshold = _parse_decimal(custom.minimum_advertised_price)
    if threshold is None:
        threshold = _parse_decimal(item.original_price)
    if not threshold:
        raise UnpublishableItemError(item, "no MAP threshold is defined")
    if web_price is not None:
        if web_price < threshold:
            raise UnpublishableItemError(item, "its web price is set below the MAP threshold")
        return web_price
    if base_price is None or base_price < threshold:
        return threshold
    return base_price


def _money(value: Decimal | float | None) -> str | None:
    if value is None:
        return None
    return f"{Decimal(str(value)):.2f}"


def translate_variant(item: Item, product_types: ProductTypes) -> dict[str, Any]:
    custom = item.custom
    values = [option.value for option in compute_options(item)]
    values += [None] * (3 - len(values))
    level = resolve_shipping_level(item, product_types)
    return {
        "sku": item.sku,
        "price": _money(resolve_price(item)),
        "compare_at_price": _money(item.original_price),
        "taxable": custom.tax_category == "Taxable",
        "option1": values[0],
        "option2": values[1],
        "option3": values[2],
        "barcode": custom.upc_gtin,
        "fulfillment_service": FULFILLMENT_SERVICE,
        "inventory_management": "shopify",
        # Online out-of-stock purchase policy.
        "inventory_policy": "continue" if custom.oosp_policy == "Allow" else "deny",
        "weight": 0 if level < 0 else level,
        "weight_unit": "kg",
        # -2 is in-store pickup only.
        "requires_shipping": level > UNPUBLISHABLE_SHIPPING_LEVEL,
    }


def product_tags(item: Item, product_types: ProductTypes) -> list[str]:
    custom = item.custom
    tags = [NAMESPACE_TAG]

    product_type = product_types.get(custom.sub_class) if custom.sub_class else None
    if product_type is not None:
        tags.append(f"Type_{product_type.name}")
    else:
        logger.warning("Could not find a product type for sub class %r", custom.sub_class)

    if custom.gender:
        tags.extend(
            GENDER_TAGS.get(custom.gender, (f"Gender_{custom.gender}", f"GenderPrefix: {custom.gender}"))
        )

    brand = custom.brand or item.vendor_name
    if brand:
        tags.append(f"Brand_{brand}")
    return tags


def translate_product(item: Item, product_types: ProductTypes) -> dict[str, Any]:
    options = compute_options(item)
    return {
        "product_type": item.custom.sub_class,
        "title": item.group_description,
        "body_html": remove_styling(item.long_description),
        "handle": compute_handle(item),
        "vendor": item.vendor_name or "",
        "variants": [translate_variant(item, product_types)],
        "options": [{"name": option.name} for option in options],
        "tags": ",".join(product_tags(item, product_types)),
    }
