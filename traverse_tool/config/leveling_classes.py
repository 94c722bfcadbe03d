"""
Leveling Methods and Accuracy Classes

Tolerance options used to judge traverse closures.

Method tolerances (double run) follow the station-count formula:
    Tolerance = coefficient × √n
Class tolerances follow the length formula:
    Tolerance = coefficient × √L_km

All coefficients are stored in meters so that tolerances compare directly with
closures computed by the engine.
"""

from dataclasses import dataclass
from typing import Optional, Dict, Any, List

from .settings import ToleranceMode, get_settings


@dataclass(frozen=True)
class ToleranceOption:
    """A named tolerance formula."""
    code: str
    mode: ToleranceMode
    coefficient: float  # m/√n or m/√km
    description: str = ""

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for export/display."""
        return {
            'code': self.code,
            'mode': self.mode.value,
            'coefficient_m': self.coefficient,
            'description': self.description,
        }


@dataclass(frozen=True)
class LevelingMethodOption(ToleranceOption):
    """
    Double-run leveling method.

    The orientation sign flips the sign convention of the closure for the
    direction of travel (BF = +1, FB = -1).
    """
    orientation_sign: float = 1.0


@dataclass(frozen=True)
class LevelingClassOption(ToleranceOption):
    """
    Leveling accuracy class.

    Besides the closure tolerance, a class limits the difference between back
    and fore sight distances on a single station and accumulated over a run.
    """
    arm_difference_station: float = 10.0       # meters
    arm_difference_accumulation: float = 20.0  # meters

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data['arm_difference_station_m'] = self.arm_difference_station
        data['arm_difference_accumulation_m'] = self.arm_difference_accumulation
        return data


# ============================================================================
# DOUBLE-RUN METHODS: 4 mm · √n
# ============================================================================

BF_METHOD = LevelingMethodOption(
    code="BF",
    mode=ToleranceMode.BY_STATION_COUNT,
    coefficient=0.004,
    description="Double run (Back → Forward)",
    orientation_sign=1.0,
)

FB_METHOD = LevelingMethodOption(
    code="FB",
    mode=ToleranceMode.BY_STATION_COUNT,
    coefficient=0.004,
    description="Double run (Forward → Back)",
    orientation_sign=-1.0,
)

# ============================================================================
# ACCURACY CLASSES: coefficient · √L (L in km, one way)
# ============================================================================

CLASS_I = LevelingClassOption(
    code="I",
    mode=ToleranceMode.BY_LENGTH,
    coefficient=0.004,
    description="Class I: 4 mm · √L",
    arm_difference_station=0.5,
    arm_difference_accumulation=1.0,
)

CLASS_II = LevelingClassOption(
    code="II",
    mode=ToleranceMode.BY_LENGTH,
    coefficient=0.008,
    description="Class II: 8 mm · √L",
    arm_difference_station=1.0,
    arm_difference_accumulation=2.0,
)

CLASS_III = LevelingClassOption(
    code="III",
    mode=ToleranceMode.BY_LENGTH,
    coefficient=0.010,
    description="Class III: 10 mm · √L",
    arm_difference_station=2.0,
    arm_difference_accumulation=5.0,
)

CLASS_IV = LevelingClassOption(
    code="IV",
    mode=ToleranceMode.BY_LENGTH,
    coefficient=0.020,
    description="Class IV: 20 mm · √L",
    arm_difference_station=5.0,
    arm_difference_accumulation=10.0,
)

CLASS_TECHNICAL = LevelingClassOption(
    code="TECHNICAL",
    mode=ToleranceMode.BY_LENGTH,
    coefficient=0.050,
    description="Technical: 50 mm · √L",
    arm_difference_station=10.0,
    arm_difference_accumulation=20.0,
)


METHOD_REGISTRY: Dict[str, LevelingMethodOption] = {
    option.code: option for option in (BF_METHOD, FB_METHOD)
}

CLASS_REGISTRY: Dict[str, LevelingClassOption] = {
    option.code: option
    for option in (CLASS_I, CLASS_II, CLASS_III, CLASS_IV, CLASS_TECHNICAL)
}


def get_method_option(code: Optional[str]) -> Optional[LevelingMethodOption]:
    """
    Look up a leveling method by code (case-insensitive).

    Returns None when code is None.

    Raises:
        ValueError: If the code is unknown
    """
    if code is None:
        return None
    key = code.strip().upper()
    if key not in METHOD_REGISTRY:
        raise ValueError(
            f"Unknown leveling method: {code}. "
            f"Valid methods: {', '.join(METHOD_REGISTRY)}"
        )
    return METHOD_REGISTRY[key]


def get_class_option(code: Optional[str]) -> Optional[LevelingClassOption]:
    """
    Look up a leveling class by code (case-insensitive).

    Returns None when code is None.

    Raises:
        ValueError: If the code is unknown
    """
    if code is None:
        return None
    key = code.strip().upper()
    if key not in CLASS_REGISTRY:
        raise ValueError(
            f"Unknown leveling class: {code}. "
            f"Valid classes: {', '.join(CLASS_REGISTRY)}"
        )
    return CLASS_REGISTRY[key]


def get_default_method() -> Optional[LevelingMethodOption]:
    """Method configured as default in settings."""
    return get_method_option(get_settings().default_method)


def get_default_class() -> Optional[LevelingClassOption]:
    """Class configured as default in settings."""
    return get_class_option(get_settings().default_class)


def list_options() -> List[ToleranceOption]:
    """All methods followed by all classes."""
    return list(METHOD_REGISTRY.values()) + list(CLASS_REGISTRY.values())
