"""
Traverse Tool Configuration Settings
"""
from dataclasses import dataclass, field
from typing import Optional
from enum import Enum


class AdjustmentMode(Enum):
    """How closure error is handled for a run."""
    NONE = "none"        # Report raw closure only
    LOCAL = "local"      # Distribute closure along the run
    NETWORK = "network"  # Network adjustment (closure reported, not distributed)


class ToleranceMode(Enum):
    """Tolerance formula selector."""
    BY_STATION_COUNT = "by_station_count"  # k * sqrt(n)
    BY_LENGTH = "by_length"                # k * sqrt(L_km)


@dataclass
class EngineConfig:
    """Numeric parameters of the adjustment engine."""
    # Corrections are rounded to this step (meters)
    correction_rounding_step: float = 0.0001

    # Upper bound on intra-run propagation passes
    max_propagation_passes: int = 20

    # Tolerance argument clamps
    min_station_count: int = 1
    min_length_km: float = 1e-6

    # Height seeded at the first point of a run with no anchor at all
    unanchored_reference_height: float = 0.0

    # Residual below this is treated as zero when summing corrections
    sum_epsilon: float = 1e-9


@dataclass
class SystemConfig:
    """Traverse system identities."""
    default_system_id: str = "system-default"
    default_system_name: str = "Main"
    auto_system_prefix: str = "system-auto-"
    auto_system_name_template: str = "System {number}"


@dataclass
class Settings:
    """Main settings container."""
    engine: EngineConfig = field(default_factory=EngineConfig)
    systems: SystemConfig = field(default_factory=SystemConfig)

    # Leveling method / class codes selected when none are given
    default_method: Optional[str] = "BF"
    default_class: Optional[str] = "IV"

    # Output formatting
    decimal_places: int = 4
    height_unit: str = 'm'


# Global settings instance
settings = Settings()


def get_settings() -> Settings:
    """Get the global settings instance."""
    return settings


def normalize_code(code: Optional[str]) -> Optional[str]:
    """
    Normalize a point code for case-insensitive comparison.

    Returns None for missing or blank codes.
    """
    if code is None:
        return None
    code = str(code).strip()
    if not code:
        return None
    return code.upper()


def point_code_for_run(point_code: str, run_name: str) -> str:
    """Code of the per-run copy of a disconnected shared point."""
    return f"{point_code} ({run_name})"
