"""
Closure Calculator Module

Closure of a set of stations and its verdict against method and class tolerances.

    Closure = orientation_sign × Σ dH

The allowable closure is the smaller of the method and class tolerances.
"""
from typing import Iterable, List, Optional
import logging

from ..config.models import Station, ClosureResult, VerdictStatus
from ..config.leveling_classes import ToleranceOption
from .tolerance import ToleranceCalculator


logger = logging.getLogger(__name__)

NO_DATA_TEXT = "No data for calculation."
SELECT_PARAMETERS_TEXT = "Select a leveling method or class to evaluate the tolerance."
WITHIN_TEXT = "Overall: within tolerance."
EXCEEDED_TEXT = "Overall: tolerance exceeded!"


class ClosureCalculator:
    """Computes closures and tolerance verdicts."""

    def __init__(self, tolerance_calculator: ToleranceCalculator = None):
        self.tolerance_calculator = tolerance_calculator or ToleranceCalculator()

    def closure(self, stations: Iterable[Station], orientation_sign: float = 1.0) -> Optional[float]:
        """
        Signed sum of measured height differences.

        Returns:
            Closure in meters, or None if no station has a measurement
        """
        deltas = [s.delta_h for s in stations if s.delta_h is not None]
        if not deltas:
            return None
        return sum(deltas) * orientation_sign

    def tolerance(
        self,
        option: Optional[ToleranceOption],
        station_count: int,
        length_km: float
    ) -> Optional[float]:
        """Tolerance for an option, dispatched on its mode."""
        return self.tolerance_calculator.for_option(option, station_count, length_km)

    def evaluate(
        self,
        stations: List[Station],
        orientation_sign: float,
        station_count: int,
        length_km: float,
        method_option: Optional[ToleranceOption] = None,
        class_option: Optional[ToleranceOption] = None
    ) -> ClosureResult:
        """
        Compute the closure and judge it against the selected tolerances.

        Args:
            stations: Stations whose dH are summed
            orientation_sign: +1 or -1 (direction of travel)
            station_count: n used by station-count tolerances
            length_km: L used by length tolerances
            method_option: Leveling method tolerance (optional)
            class_option: Leveling class tolerance (optional)

        Returns:
            ClosureResult with tolerances, allowable closure and verdict
        """
        result = ClosureResult()
        result.closure = self.closure(stations, orientation_sign)

        if result.closure is None or station_count == 0:
            result.status = VerdictStatus.NO_DATA
            result.verdict = NO_DATA_TEXT
            return result

        result.method_tolerance = self.tolerance(method_option, station_count, length_km)
        result.class_tolerance = self.tolerance(class_option, station_count, length_km)

        candidates = [
            t for t in (result.method_tolerance, result.class_tolerance) if t is not None
        ]
        result.allowable_closure = min(candidates) if candidates else None

        result.status = self.classify(result.closure, result.allowable_closure)
        result.verdict = self.generate_verdict(
            result.closure,
            result.allowable_closure,
            result.method_tolerance,
            result.class_tolerance,
            method_option.code if method_option else None,
            class_option.code if class_option else None,
        )

        logger.debug(
            f"Closure {result.closure * 1000:.2f}mm, allowable "
            f"{result.allowable_closure}: {result.status.value}"
        )
        return result

    @staticmethod
    def classify(closure: Optional[float], allowable: Optional[float]) -> VerdictStatus:
        if closure is None:
            return VerdictStatus.NO_DATA
        if allowable is None:
            return VerdictStatus.SELECT_PARAMETERS
        if abs(closure) <= allowable:
            return VerdictStatus.WITHIN_TOLERANCE
        return VerdictStatus.EXCEEDED

    @staticmethod
    def generate_verdict(
        closure: Optional[float],
        allowable_closure: Optional[float],
        method_tolerance: Optional[float] = None,
        class_tolerance: Optional[float] = None,
        method_code: Optional[str] = None,
        class_code: Optional[str] = None
    ) -> str:
        """
        Verdict text: overall result followed by each criterion.

        Example:
            "Overall: within tolerance. Method BF: ok. Class IV: ok."
        """
        if closure is None:
            return NO_DATA_TEXT

        if allowable_closure is None:
            return SELECT_PARAMETERS_TEXT

        abs_closure = abs(closure)
        parts = [WITHIN_TEXT if abs_closure <= allowable_closure else EXCEEDED_TEXT]

        if method_tolerance is not None and method_code:
            status = "ok" if abs_closure <= method_tolerance else "exceeded"
            parts.append(f"Method {method_code}: {status}.")

        if class_tolerance is not None and class_code:
            status = "ok" if abs_closure <= class_tolerance else "exceeded"
            parts.append(f"Class {class_code}: {status}.")

        return " ".join(parts)
