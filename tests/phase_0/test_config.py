from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from backend.app.config import AppConfig, ConfigError, load_config


@pytest.fixture(autouse=True)
def fixture_clear_config_cache(monkeypatch):
    monkeypatch.setenv("RELMAP_ENV_FILE", "/nonexistent/relmap.env")
    monkeypatch.setenv("RELMAP_LAYOUT_MODE", "")
    monkeypatch.setenv("RELMAP_CACHE_SIZE", "")
    load_config.cache_clear()
    yield
    load_config.cache_clear()


def test_config_loads_expected_structure() -> None:
    config = load_config()
    assert isinstance(config, AppConfig)
    assert config.pipeline.version == "1.0.0"
    assert config.canonicalization.node_width == 170
    assert config.canonicalization.node_height == 60
    assert config.canonicalization.center_node_width == 190
    assert config.canonicalization.center_node_height == 70
    assert config.filters.depth == 2
    assert config.filters.simplify_connections is False
    assert config.filters.act_focus_filter == "All"
    assert set(config.filters.node_filters) == {"Character", "Element", "Puzzle", "Timeline"}
    assert config.layout.default_type == "radial"
    assert config.layout.default_mode == "panel"
    assert set(config.layout.presets) == {"panel", "fullscreen"}
    panel = config.layout.presets["panel"]
    assert panel.hierarchical.rankdir == "LR"
    assert panel.radial.max_nodes_per_layer == [4, 12, 20]
    fullscreen = config.layout.presets["fullscreen"]
    assert fullscreen.hierarchical.rankdir == "TB"
    assert fullscreen.force_directed.width == 1200
    assert config.explorer.cache_size == 32
    assert config.api.allowed_origins == ["http://localhost:3000"]


def test_config_strict_fields_match_yaml() -> None:
    config_path = AppConfig.default_path()
    with config_path.open("r", encoding="utf-8") as handle:
        raw = yaml.safe_load(handle)
    config = load_config()
    assert raw["pipeline"]["version"] == config.pipeline.version
    assert raw["filters"]["depth"] == config.filters.depth
    assert raw["layout"]["default_type"] == config.layout.default_type
    assert (
        raw["layout"]["presets"]["panel"]["radial"]["base_radius"]
        == config.layout.presets["panel"].radial.base_radius
    )
    assert (
        raw["layout"]["presets"]["fullscreen"]["force_directed"]["iterations"]
        == config.layout.presets["fullscreen"].force_directed.iterations
    )


def test_layout_preset_lookup_by_type_and_mode() -> None:
    config = load_config()
    force = config.layout.preset("force-directed")
    assert force["width"] == config.layout.presets["panel"].force_directed.width
    hierarchical = config.layout.preset("hierarchical", "fullscreen")
    assert hierarchical["rankdir"] == "TB"
    with pytest.raises(ValueError):
        config.layout.preset("spiral")


def test_unknown_layout_mode_falls_back_with_warning(caplog) -> None:
    config = load_config()
    with caplog.at_level("WARNING"):
        preset = config.layout.preset("radial", "theatre")
    assert preset == config.layout.presets["panel"].radial.model_dump()
    assert "Unknown layout mode" in caplog.text


def test_environment_overrides_apply(monkeypatch) -> None:
    monkeypatch.setenv("RELMAP_LAYOUT_MODE", "fullscreen")
    monkeypatch.setenv("RELMAP_CACHE_SIZE", "4")
    config = load_config()
    assert config.layout.default_mode == "fullscreen"
    assert config.explorer.cache_size == 4


def test_env_file_values_are_loaded(tmp_path: Path, monkeypatch) -> None:
    env_file = tmp_path / "relmap.env"
    env_file.write_text(
        "# local overrides\nexport RELMAP_CACHE_SIZE=7  # small cache\n", encoding="utf-8"
    )
    monkeypatch.setenv("RELMAP_ENV_FILE", str(env_file))
    config = load_config()
    assert config.explorer.cache_size == 7


def test_missing_config_file_raises(tmp_path: Path) -> None:
    with pytest.raises(ConfigError):
        load_config(tmp_path / "missing.yaml")


def test_invalid_yaml_raises(tmp_path: Path) -> None:
    path = tmp_path / "broken.yaml"
    path.write_text("pipeline: [unclosed", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_config(path)


def test_non_mapping_root_raises(tmp_path: Path) -> None:
    path = tmp_path / "list.yaml"
    path.write_text("- one\n- two\n", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_config(path)


def test_missing_default_mode_preset_fails_validation(tmp_path: Path) -> None:
    path = tmp_path / "config.yaml"
    path.write_text(
        yaml.safe_dump(
            {
                "pipeline": {"version": "1.0.0"},
                "layout": {"default_mode": "fullscreen", "presets": {"panel": {}}},
            }
        ),
        encoding="utf-8",
    )
    with pytest.raises(ConfigError):
        load_config(path)


def test_radial_capacities_must_be_positive(tmp_path: Path) -> None:
    path = tmp_path / "config.yaml"
    path.write_text(
        yaml.safe_dump(
            {
                "pipeline": {"version": "1.0.0"},
                "layout": {"presets": {"panel": {"radial": {"max_nodes_per_layer": [4, 0]}}}},
            }
        ),
        encoding="utf-8",
    )
    with pytest.raises(ConfigError):
        load_config(path)
