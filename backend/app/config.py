"""Configuration loader for the relationship explorer backend."""
from __future__ import annotations

import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from typing_extensions import Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

LOGGER = logging.getLogger(__name__)

REPO_ROOT = Path(__file__).resolve().parents[2]
DEFAULT_ENV_FILE = REPO_ROOT / ".env"

LayoutType = Literal["hierarchical", "radial", "force-directed"]
LayoutMode = Literal["panel", "fullscreen"]


class ConfigError(RuntimeError):
    """Raised when configuration cannot be loaded."""


class _FrozenModel(BaseModel):
    """Base model enforcing immutability for config sections."""

    model_config = ConfigDict(frozen=True)


class PipelineConfig(_FrozenModel):
    """Pipeline-level configuration."""

    version: str = Field(..., min_length=1)


class CanonicalizationConfig(_FrozenModel):
    """Default node footprints assigned during canonicalization."""

    node_width: float = Field(170.0, gt=0)
    node_height: float = Field(60.0, gt=0)
    center_node_width: float = Field(190.0, gt=0)
    center_node_height: float = Field(70.0, gt=0)


class FilterDefaultsConfig(_FrozenModel):
    """Default filter settings applied when a request omits them."""

    depth: int = Field(2, ge=0)
    node_filters: Dict[str, bool] = Field(default_factory=dict)
    edge_filters: Dict[str, bool] = Field(default_factory=dict)
    act_focus_filter: str = "All"
    theme_filters: Dict[str, bool] = Field(default_factory=dict)
    memory_set_filter: str = "All"
    simplify_connections: bool = False


class HierarchicalPresetConfig(_FrozenModel):
    """Hierarchical layout preset."""

    rankdir: Literal["TB", "BT", "LR", "RL"] = "TB"
    nodesep: float = Field(70.0, ge=0)
    ranksep: float = Field(80.0, ge=0)
    orbit_radius: float = Field(110.0, ge=0)
    orbit_strength: float = Field(0.75, ge=0.0, le=1.0)


class RadialPresetConfig(_FrozenModel):
    """Radial layout preset."""

    base_radius: float = Field(290.0, gt=0)
    layer_separation: float = Field(115.0, gt=0)
    node_separation: float = Field(20.0, ge=0)
    max_nodes_per_layer: List[int] = Field(default_factory=lambda: [8, 16, 24])

    @field_validator("max_nodes_per_layer")
    @classmethod
    def _validate_capacities(cls, value: List[int]) -> List[int]:
        if not value:
            raise ValueError("max_nodes_per_layer must list at least one capacity")
        if any(capacity < 1 for capacity in value):
            raise ValueError("max_nodes_per_layer capacities must be positive")
        return value


class ForceDirectedPresetConfig(_FrozenModel):
    """Force-directed layout preset."""

    width: float = Field(1000.0, gt=0)
    height: float = Field(800.0, gt=0)
    iterations: int = Field(150, ge=0)
    charge_strength: float = -180.0
    link_distance: float = Field(130.0, gt=0)
    link_strength: float = Field(0.7, ge=0.0)
    center_strength: float = Field(0.05, ge=0.0)
    initial_placement: Literal["grid", "circle"] = "grid"


class LayoutPresetSet(_FrozenModel):
    """Presets for every layout strategy in one display mode."""

    hierarchical: HierarchicalPresetConfig = Field(default_factory=HierarchicalPresetConfig)
    radial: RadialPresetConfig = Field(default_factory=RadialPresetConfig)
    force_directed: ForceDirectedPresetConfig = Field(default_factory=ForceDirectedPresetConfig)

    def for_type(self, layout_type: str) -> Dict[str, Any]:
        """Return the preset for ``layout_type`` as a plain mapping."""

        if layout_type == "hierarchical":
            return self.hierarchical.model_dump()
        if layout_type == "radial":
            return self.radial.model_dump()
        if layout_type == "force-directed":
            return self.force_directed.model_dump()
        msg = f"Unknown layout type: {layout_type}"
        raise ValueError(msg)


class LayoutConfig(_FrozenModel):
    """Layout selection defaults and presets."""

    default_type: LayoutType = "radial"
    default_mode: LayoutMode = "panel"
    presets: Dict[LayoutMode, LayoutPresetSet] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _ensure_default_mode_preset(self) -> "LayoutConfig":
        if self.default_mode not in self.presets:
            msg = f"layout.presets is missing the default mode '{self.default_mode}'"
            raise ValueError(msg)
        return self

    def preset(self, layout_type: str, mode: Optional[str] = None) -> Dict[str, Any]:
        """Return the options preset for a layout type and display mode."""

        resolved_mode = mode or self.default_mode
        preset_set = self.presets.get(resolved_mode)  # type: ignore[call-overload]
        if preset_set is None:
            LOGGER.warning(
                "Unknown layout mode '%s'; using default mode '%s'", resolved_mode, self.default_mode
            )
            preset_set = self.presets[self.default_mode]
        return preset_set.for_type(layout_type)


class ExplorerConfig(_FrozenModel):
    """Orchestrator settings."""

    cache_size: int = Field(32, ge=1)


class APIConfig(_FrozenModel):
    """HTTP surface settings."""

    allowed_origins: List[str] = Field(default_factory=list)


class AppConfig(_FrozenModel):
    """Top-level application configuration composed from config.yaml."""

    pipeline: PipelineConfig
    canonicalization: CanonicalizationConfig = Field(default_factory=CanonicalizationConfig)
    filters: FilterDefaultsConfig = Field(default_factory=FilterDefaultsConfig)
    layout: LayoutConfig
    explorer: ExplorerConfig = Field(default_factory=ExplorerConfig)
    api: APIConfig = Field(default_factory=APIConfig)

    @staticmethod
    def default_path() -> Path:
        """Return the default location of the configuration file.

        Returns:
            Path: Absolute path to config.yaml at the repository root.
        """
        return Path(__file__).resolve().parents[2] / "config.yaml"


def _determine_env_file_path() -> Optional[Path]:
    """Return the path to the environment file if one should be loaded."""

    override = os.getenv("RELMAP_ENV_FILE")
    if override:
        candidate = Path(override).expanduser()
        if candidate.exists():
            return candidate
        LOGGER.warning("Configured environment file override does not exist: %s", candidate)
        return None
    if DEFAULT_ENV_FILE.exists():
        return DEFAULT_ENV_FILE
    return None


def _strip_inline_comment(value: str) -> str:
    """Remove inline comments from an environment value when unquoted."""

    comment_index = value.find("#")
    if comment_index == -1:
        return value
    return value[:comment_index].rstrip()


def _load_env_file(path: Path) -> None:
    """Populate ``os.environ`` with values read from a ``.env`` file."""

    try:
        with path.open("r", encoding="utf-8") as handle:
            for raw_line in handle:
                line = raw_line.strip()
                if not line or line.startswith("#"):
                    continue
                if line.lower().startswith("export "):
                    line = line[7:].lstrip()
                if "=" not in line:
                    continue
                key, raw_value = line.split("=", 1)
                key = key.strip()
                if not key:
                    continue
                existing_value = os.environ.get(key)
                if existing_value is not None and existing_value.strip() != "":
                    continue
                value = raw_value.strip()
                if not value:
                    os.environ[key] = ""
                    continue
                if value[0] in {'"', "'"} and value[-1] == value[0]:
                    os.environ[key] = value[1:-1]
                    continue
                os.environ[key] = _strip_inline_comment(value)
    except OSError:
        LOGGER.warning("Unable to read environment file at %s", path)


_ENV_OVERRIDES: Tuple[Tuple[str, Tuple[str, str]], ...] = (
    ("RELMAP_LAYOUT_MODE", ("layout", "default_mode")),
    ("RELMAP_CACHE_SIZE", ("explorer", "cache_size")),
)


def _apply_environment_overrides(raw_content: Dict[str, Any]) -> Dict[str, Any]:
    """Merge environment-based overrides into the raw configuration mapping.

    Args:
        raw_content: Parsed YAML configuration prior to Pydantic validation.

    Returns:
        Dict[str, Any]: Configuration mapping with environment overrides applied.
    """

    env_file_path = _determine_env_file_path()
    if env_file_path is not None:
        _load_env_file(env_file_path)

    for env_key, (section, field_name) in _ENV_OVERRIDES:
        raw = os.getenv(env_key)
        if raw is None or not raw.strip():
            continue
        section_content = raw_content.setdefault(section, {})
        if not isinstance(section_content, dict):
            continue
        section_content[field_name] = raw.strip()
        LOGGER.info("Config value %s.%s overridden from %s", section, field_name, env_key)
    return raw_content


def _read_yaml(path: Path) -> Dict[str, Any]:
    """Read YAML content from disk.

    Args:
        path: Location of the YAML file.

    Returns:
        Dict[str, Any]: Parsed YAML content.

    Raises:
        ConfigError: If the file cannot be read or parsed.
    """
    try:
        with path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle)
    except FileNotFoundError as exc:
        LOGGER.error("Configuration file missing at %s", path)
        raise ConfigError("Configuration file not found") from exc
    except yaml.YAMLError as exc:
        LOGGER.error("Invalid YAML syntax in %s", path)
        raise ConfigError("Invalid YAML syntax") from exc
    if not isinstance(data, dict):
        LOGGER.error("Configuration root must be a mapping: %s", path)
        raise ConfigError("Configuration root must be a mapping")
    return data


@lru_cache(maxsize=1)
def load_config(path: Optional[Path] = None) -> AppConfig:
    """Load application configuration from YAML.

    Args:
        path: Optional override path to the YAML file.

    Returns:
        AppConfig: Parsed configuration object.

    Raises:
        ConfigError: If the configuration cannot be loaded or validated.
    """
    config_path = path or AppConfig.default_path()
    raw_content = _read_yaml(config_path)
    raw_content = _apply_environment_overrides(raw_content)
    try:
        return AppConfig(**raw_content)
    except ValidationError as exc:
        LOGGER.error("Invalid configuration values: %s", exc)
        raise ConfigError("Configuration validation failed") from exc
