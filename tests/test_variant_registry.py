from pathlib import Path

import pytest

from cardtestgen.settings import Settings
from cardtestgen.variant_registry import VariantRegistry, detect_surface, discover_variant_names


def _write(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


def test_builtin_table_and_surface_rules() -> None:
    assert detect_surface("fries") == "commerce"
    assert detect_surface("suggested") == "ccd"
    assert detect_surface("try-buy-widget") == "adobe-home"
    assert detect_surface("ccd-new-thing") == "ccd"
    assert detect_surface("ah-promo") == "adobe-home"
    assert detect_surface("mini-fries") == "commerce"
    assert detect_surface("express-pricing") == "express"
    assert detect_surface("unheard-of") == "acom"


def test_register_and_unregister_runtime_variants() -> None:
    registry = VariantRegistry()
    assert not registry.is_known("image")
    info = registry.register("image", "ccd")
    assert info.source == "runtime"
    assert registry.surface_for("image") == "ccd"
    assert registry.unregister("image")
    assert not registry.unregister("image")
    assert registry.surface_for("image") == "acom"


def test_ensure_registers_unknown_card_type_dynamically(caplog: pytest.LogCaptureFixture) -> None:
    registry = VariantRegistry()
    with caplog.at_level("WARNING", logger="cardtestgen.variants"):
        info = registry.ensure("ccd-slice-wide")
    assert info.source == "dynamic"
    assert info.surface == "ccd"
    assert "Registered unknown variant" in caplog.text
    assert registry.ensure("ccd-slice-wide") is info


def test_discovery_skips_base_variant_files(tmp_path: Path) -> None:
    variants_dir = tmp_path / "web-components" / "src" / "variants"
    for name in ("variants.js", "variant-layout.js", "mini-compare-chart.js", "fries.js", "README.md"):
        _write(variants_dir / name, "export default {};\n")
    assert discover_variant_names(tmp_path) == ["fries", "mini-compare-chart"]
    assert discover_variant_names(tmp_path / "missing") == []


def test_refresh_merges_discovered_config_and_runtime_entries(tmp_path: Path) -> None:
    _write(tmp_path / "web-components" / "src" / "variants" / "segment.js", "")
    settings = Settings(project_root=tmp_path, variants={"plans": "commerce"})
    now = [100.0]
    registry = VariantRegistry(settings, clock=lambda: now[0])
    registry.register("image", "ccd")

    assert registry.get("segment").source == "discovered"
    assert registry.surface_for("plans") == "commerce"
    assert registry.refresh() == 0

    now[0] = 130.0
    assert registry.refresh() == 0
    now[0] = 161.0
    assert registry.refresh() == 2
    assert registry.get("image").source == "runtime"
    assert registry.refresh(force=True) == 2
