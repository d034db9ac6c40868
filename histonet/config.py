"""Configuration loader for the HistoNet layout engine."""
from __future__ import annotations

import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from typing_extensions import Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from histonet.contracts import EntityCategory, RelationshipCategory

LOGGER = logging.getLogger(__name__)

REPO_ROOT = Path(__file__).resolve().parents[1]
DEFAULT_ENV_FILE = REPO_ROOT / ".env"

_TRUTHY = {"1", "true", "yes", "on"}


class ConfigError(RuntimeError):
    """Raised when configuration cannot be loaded."""


class _FrozenModel(BaseModel):
    """Base model enforcing immutability for config sections."""

    model_config = ConfigDict(frozen=True)


class EngineConfig(_FrozenModel):
    """Engine-wide settings."""

    version: str = Field(..., min_length=1)
    random_seed: int = Field(0, ge=0)
    frame_rate: int = Field(60, ge=1, le=240)


class FilteringConfig(_FrozenModel):
    """Subgraph derivation settings."""

    link_policy: Literal["all_between_visible", "enabled_relationships"] = "all_between_visible"
    default_time_range: Tuple[int, int] = (1400, 2025)

    @field_validator("default_time_range")
    @classmethod
    def _ordered_range(cls, value: Tuple[int, int]) -> Tuple[int, int]:
        if value[0] > value[1]:
            raise ValueError("filtering.default_time_range must be ordered")
        return value


class ForceProfileConfig(_FrozenModel):
    """Tuning constants of the force set for one dimensionality."""

    link_distance: float = Field(..., gt=0)
    link_strength: Optional[float] = Field(default=None, gt=0, le=1.0)
    charge_strength: float = Field(..., lt=0)
    charge_distance_min: float = Field(1.0, gt=0)
    charge_distance_max: float = Field(..., gt=0)
    theta: float = Field(0.9, gt=0)
    exact_charge_limit: int = Field(400, ge=0)
    center_strength: float = Field(1.0, ge=0.0, le=1.0)
    collision_strength: float = Field(0.8, ge=0.0, le=1.0)
    collision_padding: float = Field(0.0, ge=0.0)
    velocity_decay: float = Field(..., gt=0.0, lt=1.0)
    alpha_decay: float = Field(..., gt=0.0, lt=1.0)
    alpha_min: float = Field(..., gt=0.0, lt=1.0)
    initial_alpha: float = Field(0.3, gt=0.0, le=1.0)
    bounds_padding: float = Field(0.0, ge=0.0)
    initial_spread: float = Field(100.0, gt=0)
    half_extent: float = Field(600.0, gt=0)

    @model_validator(mode="after")
    def _validate_distances(self) -> "ForceProfileConfig":
        if self.charge_distance_min >= self.charge_distance_max:
            msg = "charge_distance_min must be smaller than charge_distance_max"
            raise ValueError(msg)
        if self.alpha_min >= self.initial_alpha:
            raise ValueError("alpha_min must be smaller than initial_alpha")
        return self


class PlacementConfig(_FrozenModel):
    """Constants of the radial and layered placement forces."""

    radial_charge_strength: float = Field(-100.0, lt=0)
    radial_strength: float = Field(0.8, ge=0.0, le=1.0)
    radial_radius_fraction: float = Field(0.25, gt=0.0, le=1.0)
    layered_charge_strength: float = Field(-100.0, lt=0)
    layered_axis_strength: float = Field(0.2, ge=0.0, le=1.0)
    layered_band_strength: float = Field(0.3, ge=0.0, le=1.0)
    layered_bands: Dict[EntityCategory, float] = Field(default_factory=dict)

    @field_validator("layered_bands")
    @classmethod
    def _validate_bands(cls, value: Dict[EntityCategory, float]) -> Dict[EntityCategory, float]:
        for category, fraction in value.items():
            if not 0.0 <= fraction <= 1.0:
                msg = f"layered band for '{category.value}' must lie within [0, 1]"
                raise ValueError(msg)
        return value

    def band(self, category: EntityCategory) -> float:
        """Return the vertical band fraction for a category (0.5 when unset)."""

        return self.layered_bands.get(category, 0.5)


class SimulationConfig(_FrozenModel):
    """Force profiles for 2D and 3D views plus placement constants."""

    two_d: ForceProfileConfig
    three_d: ForceProfileConfig
    placement: PlacementConfig = Field(default_factory=PlacementConfig)

    def profile(self, dimensions: int) -> ForceProfileConfig:
        """Return the force profile for the requested dimensionality."""

        if dimensions == 2:
            return self.two_d
        if dimensions == 3:
            return self.three_d
        raise ValueError(f"Unsupported dimensionality: {dimensions}")


class CoolingStepConfig(_FrozenModel):
    """One alpha-target step of a cooling schedule."""

    after_seconds: float = Field(..., gt=0)
    enter: Literal["cooling", "settling", "finished"]
    alpha_target: float = Field(..., ge=0.0, le=1.0)
    alpha_cap: Optional[float] = Field(default=None, ge=0.0, le=1.0)


class LayoutTransitionConfig(_FrozenModel):
    """Reheat applied when the placement mode changes."""

    reheat_alpha: float = Field(0.3, gt=0.0, le=1.0)
    steps: List[CoolingStepConfig] = Field(default_factory=list)


class CoolingConfig(_FrozenModel):
    """Cooling schedules applied after structural resets."""

    structural: List[CoolingStepConfig] = Field(default_factory=list)
    layout_transition: LayoutTransitionConfig = Field(default_factory=LayoutTransitionConfig)
    filter_reheat_alpha: float = Field(0.1, gt=0.0, le=1.0)

    @field_validator("structural")
    @classmethod
    def _targets_descend(cls, value: List[CoolingStepConfig]) -> List[CoolingStepConfig]:
        targets = [step.alpha_target for step in value]
        if any(later > earlier for earlier, later in zip(targets, targets[1:])):
            raise ValueError("cooling.structural alpha targets must not increase")
        return value


class InteractionConfig(_FrozenModel):
    """Pointer interaction thresholds."""

    drag_alpha_target: float = Field(0.1, gt=0.0, le=1.0)
    click_threshold: float = Field(4.0, ge=0.0)


class VisibilityConfig(_FrozenModel):
    """Opacity levels and dash patterns used by the visibility resolver."""

    full_opacity: float = Field(1.0, ge=0.0, le=1.0)
    faded_link_opacity: float = Field(0.1, ge=0.0, le=1.0)
    faded_node_opacity: float = Field(0.2, ge=0.0, le=1.0)
    filtered_link_opacity: float = Field(0.3, ge=0.0, le=1.0)
    default_link_opacity: float = Field(0.7, ge=0.0, le=1.0)
    default_node_opacity: float = Field(0.9, ge=0.0, le=1.0)
    filtered_dash: Tuple[float, ...] = (2.0, 2.0)
    category_dashes: Dict[RelationshipCategory, Tuple[float, ...]] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _validate_levels(self) -> "VisibilityConfig":
        if not (
            self.faded_link_opacity
            < self.filtered_link_opacity
            < self.default_link_opacity
            <= self.full_opacity
        ):
            msg = "visibility link opacities must satisfy faded < filtered < default <= full"
            raise ValueError(msg)
        if self.faded_node_opacity >= self.default_node_opacity:
            raise ValueError("visibility.faded_node_opacity must be below the default")
        return self


class SizingProfileConfig(_FrozenModel):
    """Node size mapping for one dimensionality."""

    equal_size: float = Field(..., gt=0)
    base_size: float = Field(..., ge=0)
    per_connection: float = Field(..., ge=0)
    min_size: float = Field(..., gt=0)
    max_size: float = Field(..., gt=0)

    @model_validator(mode="after")
    def _validate_bounds(self) -> "SizingProfileConfig":
        if self.min_size > self.max_size:
            raise ValueError("node size min_size cannot exceed max_size")
        return self


class NodeSizingConfig(_FrozenModel):
    """Node sizing profiles for 2D and 3D views."""

    two_d: SizingProfileConfig
    three_d: SizingProfileConfig

    def profile(self, dimensions: int) -> SizingProfileConfig:
        """Return the sizing profile for the requested dimensionality."""

        return self.two_d if dimensions == 2 else self.three_d


class RenderingConfig(_FrozenModel):
    """Render backend and palette settings."""

    enable_3d: bool = True
    color_mode: Literal["light", "dark"] = "light"
    size_quantum: float = Field(0.5, gt=0)
    label_offset: float = Field(5.0, ge=0)
    highlight_color: str = Field("#F6E05E", min_length=1)
    entity_colors: Dict[EntityCategory, str] = Field(default_factory=dict)
    relationship_colors: Dict[RelationshipCategory, str] = Field(default_factory=dict)

    def entity_color(self, category: EntityCategory) -> str:
        return self.entity_colors.get(category, "#A0AEC0")

    def relationship_color(self, category: RelationshipCategory) -> str:
        return self.relationship_colors.get(category, "#A0AEC0")


class ServiceConfig(_FrozenModel):
    """Headless layout service limits."""

    default_width: int = Field(800, ge=1)
    default_height: int = Field(600, ge=1)
    max_nodes: int = Field(5000, ge=1)
    max_ticks: int = Field(5000, ge=1)
    allowed_origins: List[str] = Field(default_factory=list)


class AppConfig(_FrozenModel):
    """Top-level configuration composed from config.yaml."""

    engine: EngineConfig
    filtering: FilteringConfig = Field(default_factory=FilteringConfig)
    simulation: SimulationConfig
    cooling: CoolingConfig = Field(default_factory=CoolingConfig)
    interaction: InteractionConfig = Field(default_factory=InteractionConfig)
    visibility: VisibilityConfig = Field(default_factory=VisibilityConfig)
    node_sizing: NodeSizingConfig
    rendering: RenderingConfig = Field(default_factory=RenderingConfig)
    service: ServiceConfig = Field(default_factory=ServiceConfig)

    @staticmethod
    def default_path() -> Path:
        """Return the default location of the configuration file.

        Returns:
            Path: Absolute path to config.yaml at the repository root.
        """
        return REPO_ROOT / "config.yaml"


def _determine_env_file_path() -> Optional[Path]:
    """Return the path to the environment file if one should be loaded."""

    override = os.getenv("HISTONET_ENV_FILE")
    if override:
        candidate = Path(override).expanduser()
        if candidate.exists():
            return candidate
        LOGGER.warning("Configured environment file override does not exist: %s", candidate)
        return None
    if DEFAULT_ENV_FILE.exists():
        return DEFAULT_ENV_FILE
    return None


def _load_env_file(path: Path) -> None:
    """Populate ``os.environ`` with values read from a ``.env`` file."""

    try:
        with path.open("r", encoding="utf-8") as handle:
            for raw_line in handle:
                line = raw_line.strip()
                if not line or line.startswith("#") or "=" not in line:
                    continue
                if line.lower().startswith("export "):
                    line = line[7:].lstrip()
                key, raw_value = line.split("=", 1)
                key = key.strip()
                if not key or os.environ.get(key, "").strip():
                    continue
                value = raw_value.strip()
                if value and value[0] in {'"', "'"} and value[-1] == value[0]:
                    value = value[1:-1]
                os.environ[key] = value
    except OSError:
        LOGGER.warning("Unable to read environment file at %s", path)


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

    disable_3d = os.getenv("HISTONET_DISABLE_3D")
    if disable_3d and disable_3d.strip().lower() in _TRUTHY:
        rendering = raw_content.setdefault("rendering", {})
        rendering["enable_3d"] = False
        LOGGER.info("3D rendering disabled from environment")

    seed = os.getenv("HISTONET_RANDOM_SEED")
    if seed:
        try:
            seed_value = int(seed)
        except ValueError:
            LOGGER.warning("Ignoring non-integer HISTONET_RANDOM_SEED=%r", seed)
        else:
            engine = raw_content.setdefault("engine", {})
            engine["random_seed"] = seed_value
            LOGGER.info("Layout random seed overridden from environment (seed=%d)", seed_value)
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
