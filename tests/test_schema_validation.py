from __future__ import annotations

import json
import shutil
from decimal import Decimal
from pathlib import Path

import pytest

from okupsell.paths import get_paths
from okupsell.services.catalog import CatalogService, ConfigError


def _copy_data(tmp_path: Path) -> tuple[Path, Path]:
    paths = get_paths()
    data_dir = tmp_path / "data"
    shutil.copytree(paths.data_dir, data_dir)
    return data_dir, data_dir / "schemas"


def _rewrite(path: Path, mutate) -> None:
    raw = json.loads(path.read_text(encoding="utf-8"))
    mutate(raw)
    path.write_text(json.dumps(raw), encoding="utf-8")


def test_packaged_config_validates() -> None:
    paths = get_paths()
    catalog = CatalogService(paths.data_dir, paths.schema_dir)
    catalog.validate_all()

    config = catalog.load_product_config()
    assert config.bundle_id == "com.okvideo.pro"
    assert list(config.all_ids) == [
        "com.okvideo.pro",
        "com.okvideo.projects",
        "com.okvideo.watermark",
        "com.okvideo.editor",
    ]
    assert [f.title for f in config.features] == ["Unlimited Projects", "Remove Watermark", "Timeline Editor"]

    storefront = catalog.load_storefront()
    assert storefront["com.okvideo.editor"].price == Decimal("3.99")
    assert storefront["com.okvideo.pro"].format_price(Decimal("8.97")) == "€8.97"


def test_schema_violation_raises(tmp_path: Path) -> None:
    data_dir, schema_dir = _copy_data(tmp_path)
    _rewrite(data_dir / "storefront.json", lambda raw: raw["products"][0].update(price="six"))
    with pytest.raises(ConfigError) as exc:
        CatalogService(data_dir, schema_dir).load_storefront()
    assert "Schema validation failed" in str(exc.value)
    assert "products/0/price" in str(exc.value)


def test_bundle_listed_as_individual_raises(tmp_path: Path) -> None:
    data_dir, schema_dir = _copy_data(tmp_path)
    _rewrite(data_dir / "products.json", lambda raw: raw["individual_ids"].append("com.okvideo.pro"))
    with pytest.raises(ConfigError) as exc:
        CatalogService(data_dir, schema_dir).load_product_config()
    assert "com.okvideo.pro" in str(exc.value)


def test_storefront_must_list_configured_products(tmp_path: Path) -> None:
    data_dir, schema_dir = _copy_data(tmp_path)
    _rewrite(data_dir / "storefront.json", lambda raw: raw["products"].pop())
    with pytest.raises(ConfigError) as exc:
        CatalogService(data_dir, schema_dir).validate_all()
    assert "com.okvideo.editor" in str(exc.value)


def test_missing_and_invalid_files(tmp_path: Path) -> None:
    data_dir, schema_dir = _copy_data(tmp_path)
    (data_dir / "products.json").write_text("{not json", encoding="utf-8")
    (data_dir / "storefront.json").unlink()
    catalog = CatalogService(data_dir, schema_dir)
    with pytest.raises(ConfigError, match="Invalid JSON"):
        catalog.load_product_config()
    with pytest.raises(ConfigError, match="Missing config file"):
        catalog.load_storefront()
