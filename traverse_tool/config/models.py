"""
Data Models for Leveling Traverses

Core data structures used throughout the traverse tool.
All heights and distances are in meters.
"""
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import List, Optional, Dict, Mapping, Iterable
from enum import Enum
import pandas as pd

from .settings import (
    AdjustmentMode, get_settings, normalize_code, point_code_for_run
)
from .leveling_classes import ToleranceOption, LevelingClassOption


class ClosureMode(Enum):
    """How a run's closure is treated."""
    OPEN = "open"      # No closure condition, raw closure only
    SIMPLE = "simple"  # Closed by a loop or by a single benchmark
    LOCAL = "local"    # Split into sections between anchors


class CorrectionDisplayMode(Enum):
    """Origin of a station correction."""
    NONE = "none"
    SINGLE = "single"  # Whole-run correction
    LOCAL = "local"    # Section correction between anchors


class VerdictStatus(Enum):
    """Outcome of a tolerance check."""
    NO_DATA = "no_data"
    SELECT_PARAMETERS = "select_parameters"
    WITHIN_TOLERANCE = "within_tolerance"
    EXCEEDED = "exceeded"


@dataclass
class Station:
    """Single station (back sight + fore sight) of a leveling run."""
    run_index: int
    index: int
    back_code: Optional[str] = None
    fore_code: Optional[str] = None
    back_reading: Optional[float] = None   # Rb in meters
    fore_reading: Optional[float] = None   # Rf in meters
    back_distance: Optional[float] = None  # HD to backsight in meters
    fore_distance: Optional[float] = None  # HD to foresight in meters
    delta_h: Optional[float] = None        # dH = Rb - Rf

    # Adjustment results
    correction: Optional[float] = None
    baseline_correction: Optional[float] = None
    correction_mode: CorrectionDisplayMode = CorrectionDisplayMode.NONE

    # Height results
    back_height: Optional[float] = None
    fore_height: Optional[float] = None
    back_height_raw: Optional[float] = None  # Z0, without corrections
    fore_height_raw: Optional[float] = None  # Z0, without corrections
    is_back_height_known: bool = False
    is_fore_height_known: bool = False
    is_arm_difference_exceeded: bool = False

    def __post_init__(self):
        """Calculate height difference if not provided."""
        if (self.delta_h is None and self.back_reading is not None
                and self.fore_reading is not None):
            self.delta_h = self.back_reading - self.fore_reading

    @property
    def back_point(self) -> Optional[str]:
        """Normalized back point code."""
        return normalize_code(self.back_code)

    @property
    def fore_point(self) -> Optional[str]:
        """Normalized fore point code."""
        return normalize_code(self.fore_code)

    @property
    def has_measurement(self) -> bool:
        return self.delta_h is not None

    @property
    def station_length(self) -> float:
        """Average of both sight distances, or the single one present."""
        if self.back_distance is not None and self.fore_distance is not None:
            return (self.back_distance + self.fore_distance) / 2.0
        if self.back_distance is not None:
            return self.back_distance
        if self.fore_distance is not None:
            return self.fore_distance
        return 0.0

    @property
    def arm_difference(self) -> Optional[float]:
        """Back minus fore sight distance."""
        if self.back_distance is None or self.fore_distance is None:
            return None
        return self.back_distance - self.fore_distance

    @property
    def adjusted_delta_h(self) -> Optional[float]:
        if self.delta_h is not None and self.correction is not None:
            return self.delta_h + self.correction
        return self.delta_h

    @property
    def is_virtual(self) -> bool:
        """A station that only marks the run's starting point."""
        return self.fore_point is None and self.delta_h is None

    def reset_results(self):
        """Clear corrections and heights before a recomputation."""
        self.reset_corrections()
        self.reset_heights()
        self.is_arm_difference_exceeded = False

    def reset_corrections(self):
        self.correction = None
        self.baseline_correction = None
        self.correction_mode = CorrectionDisplayMode.NONE

    def reset_heights(self):
        self.back_height = None
        self.fore_height = None
        self.back_height_raw = None
        self.fore_height_raw = None
        self.is_back_height_known = False
        self.is_fore_height_known = False


@dataclass
class ClosureResult:
    """Closure of a set of stations judged against tolerances."""
    closure: Optional[float] = None
    method_tolerance: Optional[float] = None
    class_tolerance: Optional[float] = None
    allowable_closure: Optional[float] = None
    status: VerdictStatus = VerdictStatus.NO_DATA
    verdict: str = ""

    @property
    def is_within_tolerance(self) -> Optional[bool]:
        """True/False once judged, None when no verdict is possible."""
        if self.status == VerdictStatus.WITHIN_TOLERANCE:
            return True
        if self.status == VerdictStatus.EXCEEDED:
            return False
        return None


@dataclass
class Run:
    """Leveling run (traverse): ordered stations sharing a line name."""
    index: int
    original_line_number: Optional[str] = None
    is_active: bool = True
    system_id: Optional[str] = None

    # Computed values
    closures: List[float] = field(default_factory=list)
    closure_mode: ClosureMode = ClosureMode.OPEN
    closure_result: Optional[ClosureResult] = None
    known_points_count: int = 0
    station_count: int = 0
    total_distance_back: Optional[float] = None
    total_distance_fore: Optional[float] = None
    arm_difference_accumulation: Optional[float] = None
    is_arm_difference_accumulation_exceeded: bool = False
    shared_point_codes: List[str] = field(default_factory=list)
    is_relative_only: bool = False
    propagation_passes: int = 0
    propagation_converged: bool = True

    @property
    def name(self) -> str:
        """Display name used to label per-run point copies."""
        if self.original_line_number:
            return f"Run {self.original_line_number}"
        return f"Run {self.index:02d}"

    @property
    def closure(self) -> Optional[float]:
        """First closure (whole run, or first section)."""
        return self.closures[0] if self.closures else None

    @property
    def total_length(self) -> Optional[float]:
        if self.total_distance_back is None or self.total_distance_fore is None:
            return None
        return self.total_distance_back + self.total_distance_fore

    def reset_results(self):
        self.closures = []
        self.closure_mode = ClosureMode.OPEN
        self.closure_result = None
        self.known_points_count = 0
        self.station_count = 0
        self.total_distance_back = None
        self.total_distance_fore = None
        self.arm_difference_accumulation = None
        self.is_arm_difference_accumulation_exceeded = False
        self.shared_point_codes = []
        self.is_relative_only = False
        self.propagation_passes = 0
        self.propagation_converged = True


@dataclass
class SharedPoint:
    """Point code referenced by more than one run."""
    code: str
    run_indexes: List[int] = field(default_factory=list)
    is_enabled: bool = True

    def is_used_in_run(self, run_index: int) -> bool:
        return run_index in self.run_indexes


@dataclass
class TraverseSystem:
    """Group of runs sharing one height space."""
    id: str
    name: str
    order: int = 0
    run_indexes: List[int] = field(default_factory=list)

    @property
    def is_auto(self) -> bool:
        return self.id.startswith(get_settings().systems.auto_system_prefix)


def _normalized_mapping(values: Optional[Mapping]) -> Mapping:
    result = {}
    for code, value in (values or {}).items():
        key = normalize_code(code)
        if key is not None:
            result[key] = value
    return MappingProxyType(result)


@dataclass(frozen=True)
class CalculationContext:
    """
    Snapshot of the externally owned lookup state used by one computation.

    known_heights: point code -> known height (m)
    shared_point_states: point code -> enabled flag (enabled when absent)
    benchmark_systems: point code -> system id the benchmark belongs to
    """
    known_heights: Mapping[str, float] = field(default_factory=dict)
    shared_point_states: Mapping[str, bool] = field(default_factory=dict)
    benchmark_systems: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, 'known_heights', _normalized_mapping(self.known_heights))
        object.__setattr__(self, 'shared_point_states', _normalized_mapping(self.shared_point_states))
        object.__setattr__(self, 'benchmark_systems', _normalized_mapping(self.benchmark_systems))

    def known_height(self, code: Optional[str]) -> Optional[float]:
        key = normalize_code(code)
        if key is None:
            return None
        return self.known_heights.get(key)

    def has_known_height(self, code: Optional[str]) -> bool:
        return self.known_height(code) is not None

    def is_shared_point_enabled(self, code: Optional[str]) -> bool:
        key = normalize_code(code)
        if key is None:
            return True
        return self.shared_point_states.get(key, True)

    def allows_propagation(self, code: Optional[str]) -> bool:
        """Whether a height for this code may cross run boundaries."""
        return self.has_known_height(code) or self.is_shared_point_enabled(code)

    def benchmark_system(self, code: Optional[str]) -> Optional[str]:
        key = normalize_code(code)
        if key is None:
            return None
        return self.benchmark_systems.get(key)

    def known_height_for_run(self, code: Optional[str], run_name: Optional[str]) -> Optional[float]:
        """
        Known height of a point as seen from a run.

        A disabled shared point uses its per-run copy when one exists.
        """
        key = normalize_code(code)
        if key is None:
            return None
        if run_name and not self.is_shared_point_enabled(key):
            height = self.known_height(point_code_for_run(key, run_name))
            if height is not None:
                return height
        return self.known_height(key)

    def with_known_height(self, code: str, height: Optional[float]) -> 'CalculationContext':
        """Copy with a known height set (or removed when height is None)."""
        key = normalize_code(code)
        heights = dict(self.known_heights)
        if height is None:
            heights.pop(key, None)
        else:
            heights[key] = height
        return replace(self, known_heights=heights)

    def with_shared_point_disabled(self, code: str, run_names: Iterable[str]) -> 'CalculationContext':
        """
        Copy with a shared point disconnected.

        When the point has a known height, it is copied to the per-run code of
        the first run (by name) that has no copy yet, so that run keeps it.
        """
        key = normalize_code(code)
        was_enabled = self.is_shared_point_enabled(key)
        states = dict(self.shared_point_states)
        states[key] = False
        heights = dict(self.known_heights)

        existing = self.known_height(key)
        if was_enabled and existing is not None:
            for run_name in sorted(set(run_names)):
                copy_key = normalize_code(point_code_for_run(key, run_name))
                if copy_key not in heights:
                    heights[copy_key] = existing
                    break

        return replace(self, known_heights=heights, shared_point_states=states)

    def with_shared_point_enabled(self, code: str) -> 'CalculationContext':
        states = dict(self.shared_point_states)
        states[normalize_code(code)] = True
        return replace(self, shared_point_states=states)


@dataclass
class HeightPool:
    """Heights available to the runs of one system (keyed by point code)."""
    adjusted: Dict[str, float] = field(default_factory=dict)
    raw: Dict[str, float] = field(default_factory=dict)

    def seed(self, code: str, height: float):
        self.adjusted[code] = height
        self.raw[code] = height

    def __contains__(self, code: str) -> bool:
        return code in self.adjusted


@dataclass
class StationCorrection:
    """Correction computed for one station (by position in the run)."""
    position: int
    correction: Optional[float] = None
    baseline_correction: Optional[float] = None
    mode: CorrectionDisplayMode = CorrectionDisplayMode.NONE


@dataclass
class CorrectionResult:
    """Output of the correction distributor for one run."""
    corrections: List[StationCorrection] = field(default_factory=list)
    closures: List[float] = field(default_factory=list)
    closure_mode: ClosureMode = ClosureMode.OPEN
    distinct_anchor_count: int = 0

    @property
    def total_correction(self) -> float:
        return sum(c.correction for c in self.corrections if c.correction is not None)


@dataclass
class PropagationResult:
    """Outcome of height propagation through one run."""
    passes: int = 0
    converged: bool = True
    unresolved_aliases: List[str] = field(default_factory=list)
    exported_codes: List[str] = field(default_factory=list)

    @property
    def is_complete(self) -> bool:
        return self.converged and not self.unresolved_aliases


@dataclass
class ConnectivityResult:
    """Partition of runs into traverse systems."""
    run_to_system: Dict[int, str] = field(default_factory=dict)
    new_systems: List[TraverseSystem] = field(default_factory=list)
    systems_to_remove: List[str] = field(default_factory=list)

    @property
    def system_ids(self) -> List[str]:
        """Distinct system ids in order of first appearance."""
        return list(dict.fromkeys(self.run_to_system.values()))


@dataclass
class TraverseCalculationRequest:
    """Everything a full recomputation needs."""
    stations: List[Station]
    runs: List[Run]
    context: CalculationContext = field(default_factory=CalculationContext)
    systems: List[TraverseSystem] = field(default_factory=list)
    method_option: Optional[ToleranceOption] = None
    class_option: Optional[LevelingClassOption] = None
    adjustment_mode: AdjustmentMode = AdjustmentMode.LOCAL
    orientation_sign: Optional[float] = None  # From the method when None
    auto_partition: bool = True


@dataclass
class TraverseCalculationResult:
    """Results of a full recomputation."""
    stations: List[Station] = field(default_factory=list)
    runs: List[Run] = field(default_factory=list)
    systems: List[TraverseSystem] = field(default_factory=list)
    shared_points: List[SharedPoint] = field(default_factory=list)
    closure: ClosureResult = field(default_factory=ClosureResult)
    connectivity: Optional[ConnectivityResult] = None
    stations_count: int = 0
    total_back_distance: float = 0.0
    total_fore_distance: float = 0.0
    total_average_distance: float = 0.0

    def get_run(self, run_index: int) -> Optional[Run]:
        for run in self.runs:
            if run.index == run_index:
                return run
        return None

    def get_run_stations(self, run_index: int) -> List[Station]:
        return [s for s in self.stations if s.run_index == run_index]

    def stations_to_dataframe(self) -> pd.DataFrame:
        """Convert station results to a pandas DataFrame."""
        data = []
        for station in self.stations:
            data.append({
                'Run': station.run_index,
                'Index': station.index,
                'BackCode': station.back_code,
                'ForeCode': station.fore_code,
                'BackDistance': station.back_distance,
                'ForeDistance': station.fore_distance,
                'DeltaH': station.delta_h,
                'Correction': station.correction,
                'BaselineCorrection': station.baseline_correction,
                'AdjustedDeltaH': station.adjusted_delta_h,
                'BackHeight': station.back_height,
                'ForeHeight': station.fore_height,
                'BackHeightZ0': station.back_height_raw,
                'ForeHeightZ0': station.fore_height_raw,
                'BackKnown': station.is_back_height_known,
                'ForeKnown': station.is_fore_height_known,
                'ArmDiffExceeded': station.is_arm_difference_exceeded,
            })
        return pd.DataFrame(data)

    def runs_to_dataframe(self) -> pd.DataFrame:
        """Convert run summaries to a pandas DataFrame."""
        data = []
        for run in self.runs:
            result = run.closure_result
            data.append({
                'Run': run.index,
                'Name': run.name,
                'System': run.system_id,
                'Active': run.is_active,
                'Stations': run.station_count,
                'ClosureMode': run.closure_mode.value,
                'Closure': run.closure,
                'Allowable': result.allowable_closure if result else None,
                'Verdict': result.verdict if result else "",
                'KnownPoints': run.known_points_count,
                'ArmDiffAccumulation': run.arm_difference_accumulation,
                'RelativeOnly': run.is_relative_only,
            })
        return pd.DataFrame(data)
