from __future__ import annotations

import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Mapping

from jsonschema import Draft202012Validator

from okupsell.store.types import Feature, Product, ProductConfig


class ConfigError(RuntimeError):
    pass


def _load_json(path: Path) -> object:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as e:
        raise ConfigError(f"Missing config file: {path}") from e
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in {path}: {e}") from e


def validate_json(instance: object, schema: object, *, context: str) -> None:
    validator = Draft202012Validator(schema)
    errors = sorted(validator.iter_errors(instance), key=lambda e: list(e.absolute_path))
    if errors:
        lines = [f"Schema validation failed for {context}:"]
        for err in errors[:10]:
            loc = "/".join(str(p) for p in err.absolute_path)
            lines.append(f"- {loc}: {err.message}")
        raise ConfigError("\n".join(lines))


def _require_str(obj: Mapping[str, object], key: str) -> str:
    v = obj.get(key)
    if not isinstance(v, str):
        raise ConfigError(f"Expected string for {key}")
    return v


def _require_price(obj: Mapping[str, object], key: str) -> Decimal:
    raw = _require_str(obj, key)
    try:
        price = Decimal(raw)
    except InvalidOperation as e:
        raise ConfigError(f"Invalid price for {key}: {raw}") from e
    if not price.is_finite() or price < 0:
        raise ConfigError(f"Invalid price for {key}: {raw}")
    return price


class CatalogService:
    """Loads the product configuration and the local storefront listing."""

    def __init__(self, data_dir: Path, schema_dir: Path) -> None:
        self._data_dir = data_dir
        self._schema_dir = schema_dir

    def _load_validated(self, name: str) -> dict[str, object]:
        path = self._data_dir / f"{name}.json"
        schema = _load_json(self._schema_dir / f"{name}.schema.json")
        raw = _load_json(path)
        validate_json(raw, schema, context=str(path))
        if not isinstance(raw, dict):
            raise ConfigError(f"{path.name} must be an object")
        return raw

    def load_product_config(self) -> ProductConfig:
        raw = self._load_validated("products")
        bundle_id = _require_str(raw, "bundle_id")
        individuals_raw = raw.get("individual_ids")
        if not isinstance(individuals_raw, list):
            raise ConfigError("products.json.individual_ids must be a list")
        individual_ids = tuple(i for i in individuals_raw if isinstance(i, str))

        features: list[Feature] = []
        features_raw = raw.get("features", [])
        if isinstance(features_raw, list):
            for f in features_raw:
                if not isinstance(f, dict):
                    continue
                features.append(
                    Feature(
                        id=_require_str(f, "id"),
                        title=_require_str(f, "title"),
                        subtitle=_require_str(f, "subtitle"),
                    )
                )
        try:
            return ProductConfig(bundle_id=bundle_id, individual_ids=individual_ids, features=tuple(features))
        except ValueError as e:
            raise ConfigError(f"Invalid product configuration: {e}") from e

    def load_storefront(self) -> dict[str, Product]:
        raw = self._load_validated("storefront")
        raw_products = raw.get("products")
        if not isinstance(raw_products, list):
            raise ConfigError("storefront.json.products must be a list")

        products: dict[str, Product] = {}
        for p in raw_products:
            if not isinstance(p, dict):
                continue
            pid = _require_str(p, "id")
            if pid in products:
                raise ConfigError(f"Duplicate storefront product: {pid}")
            products[pid] = Product(
                id=pid,
                display_name=_require_str(p, "display_name"),
                display_price=_require_str(p, "display_price"),
                price=_require_price(p, "price"),
                price_format=_require_str(p, "price_format"),
            )
        return products

    def validate_all(self) -> None:
        config = self.load_product_config()
        storefront = self.load_storefront()
        missing = [pid for pid in config.all_ids if pid not in storefront]
        if missing:
            raise ConfigError(f"Storefront does not list configured products: {', '.join(missing)}")
