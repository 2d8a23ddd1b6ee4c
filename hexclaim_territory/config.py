"""
Configuration schema for the territory engine.

Grid resolution, trace filtering, run validation policy and region
grouping options. Loaded from YAML and validated at construction.
"""

from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict
import yaml

from hexclaim_territory.geometry.hexgrid import DEFAULT_RESOLUTION, validate_resolution

BOUNDARY_MODES = {"bbox", "outline"}


@dataclass(frozen=True)
class GridConfig:
    """Hex grid configuration. Resolution is global, not per claim."""

    resolution: int = DEFAULT_RESOLUTION

    def __post_init__(self):
        validate_resolution(self.resolution)


@dataclass(frozen=True)
class PathConfig:
    """GPS trace filtering and simplification thresholds."""

    simplification_tolerance_m: float = 10.0
    max_accuracy_m: float = 50.0
    max_speed_mps: float = 12.0  # ~43 km/h, sprint plus GPS drift
    max_teleport_m: float = 200.0
    teleport_min_gap_s: float = 10.0

    def __post_init__(self):
        """Validate path configuration."""
        if self.simplification_tolerance_m < 0:
            raise ValueError(
                f"simplification_tolerance_m must be >= 0, got {self.simplification_tolerance_m}"
            )
        if self.max_accuracy_m <= 0:
            raise ValueError(f"max_accuracy_m must be > 0, got {self.max_accuracy_m}")
        if self.max_speed_mps <= 0:
            raise ValueError(f"max_speed_mps must be > 0, got {self.max_speed_mps}")
        if self.max_teleport_m <= 0:
            raise ValueError(f"max_teleport_m must be > 0, got {self.max_teleport_m}")
        if self.teleport_min_gap_s < 0:
            raise ValueError(
                f"teleport_min_gap_s must be >= 0, got {self.teleport_min_gap_s}"
            )


@dataclass(frozen=True)
class ValidationConfig:
    """
    Run acceptance policy.

    Loop closure was required in early product versions and later
    dropped, so it is an explicit switch rather than a fixed rule.
    """

    min_distance_m: float = 100.0
    min_duration_s: float = 30.0
    min_points: int = 10
    max_speed_mps: float = 12.0
    speed_margin: float = 1.5  # residual GPS noise allowance
    require_loop_closure: bool = False
    loop_closure_threshold_m: float = 50.0

    def __post_init__(self):
        """Validate policy thresholds."""
        if self.min_distance_m < 0:
            raise ValueError(f"min_distance_m must be >= 0, got {self.min_distance_m}")
        if self.min_duration_s < 0:
            raise ValueError(f"min_duration_s must be >= 0, got {self.min_duration_s}")
        if self.min_points < 2:
            raise ValueError(f"min_points must be >= 2, got {self.min_points}")
        if self.max_speed_mps <= 0:
            raise ValueError(f"max_speed_mps must be > 0, got {self.max_speed_mps}")
        if self.speed_margin < 1.0:
            raise ValueError(f"speed_margin must be >= 1.0, got {self.speed_margin}")
        if not isinstance(self.require_loop_closure, bool):
            raise ValueError(
                f"require_loop_closure must be a boolean, got {self.require_loop_closure!r}"
            )
        if self.loop_closure_threshold_m <= 0:
            raise ValueError(
                f"loop_closure_threshold_m must be > 0, got {self.loop_closure_threshold_m}"
            )

    @property
    def speed_ceiling_mps(self) -> float:
        return self.max_speed_mps * self.speed_margin


@dataclass(frozen=True)
class GroupingConfig:
    """Region boundary derivation."""

    boundary_mode: str = "bbox"  # "bbox" or "outline"

    def __post_init__(self):
        if self.boundary_mode not in BOUNDARY_MODES:
            raise ValueError(
                f"Invalid boundary_mode: {self.boundary_mode}. "
                f"Must be one of {sorted(BOUNDARY_MODES)}"
            )


@dataclass(frozen=True)
class EngineConfig:
    """
    Main configuration for the territory engine.

    Immutable after construction (frozen dataclass).
    """

    grid: GridConfig = field(default_factory=GridConfig)
    path: PathConfig = field(default_factory=PathConfig)
    validation: ValidationConfig = field(default_factory=ValidationConfig)
    grouping: GroupingConfig = field(default_factory=GroupingConfig)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EngineConfig":
        """
        Build from a nested dict (sections are optional).

        Raises:
            ValueError: On unknown sections or options, or invalid values
        """
        data = data or {}
        sections = {
            "grid": GridConfig,
            "path": PathConfig,
            "validation": ValidationConfig,
            "grouping": GroupingConfig,
        }
        unknown = set(data) - set(sections)
        if unknown:
            raise ValueError(
                f"Unknown config sections: {sorted(unknown)}. "
                f"Expected any of {sorted(sections)}"
            )

        kwargs = {}
        for name, section_cls in sections.items():
            section_data = data.get(name) or {}
            try:
                kwargs[name] = section_cls(**section_data)
            except TypeError as e:
                raise ValueError(f"Invalid '{name}' config: {e}") from e
        return cls(**kwargs)

    @classmethod
    def from_yaml(cls, yaml_path: Path) -> "EngineConfig":
        """
        Load configuration from YAML file.

        Example YAML:
            grid:
              resolution: 9

            path:
              simplification_tolerance_m: 10
              max_accuracy_m: 50
              max_speed_mps: 12
              max_teleport_m: 200

            validation:
              min_distance_m: 100
              min_duration_s: 30
              min_points: 10
              require_loop_closure: false

            grouping:
              boundary_mode: "bbox"
        """
        path = Path(yaml_path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {yaml_path}")

        with open(path) as f:
            try:
                data = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ValueError(f"Invalid YAML in {yaml_path}: {e}") from e

        if data is not None and not isinstance(data, dict):
            raise ValueError(f"Config root must be a mapping, got {type(data).__name__}")
        return cls.from_dict(data or {})

    def with_resolution(self, resolution: int) -> "EngineConfig":
        """Copy with a different grid resolution."""
        return replace(self, grid=replace(self.grid, resolution=resolution))
