"""Sub class -> product type lookup table."""

from __future__ import annotations

import functools
import logging
import os
import pathlib
from dataclasses import dataclass
from typing import Iterator, Mapping

import yaml

logger = logging.getLogger(__name__)

DEFAULT_PATH = pathlib.Path(__file__).with_name("product_types.yml")


@dataclass(slots=True, frozen=True)
class ProductType:
    sub_class: str
    name: str
    shipping_level: int


class ProductTypes(Mapping[str, ProductType]):
    def __init__(self, types: Mapping[str, ProductType] | None = None) -> None:
        self._types = dict(types or {})

    def __getitem__(self, sub_class: str) -> ProductType:
        return self._types[sub_class]

    def __iter__(self) -> Iterator[str]:
        return iter(self._types)

    def __len__(self) -> int:
        return len(self._types)

    @classmethod
    def from_rows(cls, rows: object) -> "ProductTypes":
        types: dict[str, ProductType] = {}
        if not isinstance(rows, list):
            logger.warning("Product type table is not a list; ignoring it")
            return cls()
        for lineno, row in enumerate(rows, start=1):
            try:
                product_type = ProductType(
                    sub_class=str(row["sub_class"]).strip(),
                    name=str(row["name"]).strip(),
                    shipping_level=int(row["shipping_level"]),
                )
            except (KeyError, TypeError, ValueError) as exc:
                logger.warning("Skipping product type row #%s (%r): %s", lineno, row, exc)
                continue
            types[product_type.sub_class] = product_type
        return cls(types)


def product_types_path() -> pathlib.Path:
    return pathlib.Path(os.environ.get("PRODUCT_TYPES_PATH", DEFAULT_PATH))


def read_product_types(path: pathlib.Path) -> ProductTypes:
    try:
        rows = yaml.safe_load(path.read_text())
    except (OSError, yaml.YAMLError) as exc:
        logger.warning("Could not read product types from %s: %s", path, exc)
        logger.warning("Items will fall back to the emergency shipping level and get no type tag")
        return ProductTypes()
    return ProductTypes.from_rows(rows or [])


@functools.lru_cache(maxsize=None)
def load_product_types(path: pathlib.Path | None = None) -> ProductTypes:
    """Load the table once per process."""
    return read_product_types(path or product_types_path())
