"""
Correction Distributor Module

Distributes the closure of a leveling run across its stations.

A run is classified as:
    - Open:   no closure condition, the raw closure is only reported
    - Simple: closed loop or single benchmark, required sum of dH = 0
    - Local:  split into sections between consecutive anchors, each with
              required sum = H(end anchor) - H(start anchor)

Within a section the required correction (required sum - measured sum) is
allocated proportionally to station length, rounded to 0.0001 m, and the
rounding residual is handed out in 0.0001 m ticks to the longest stations first
so that the corrections add up to the required correction exactly.
"""
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence, Tuple
import logging

import numpy as np

from ..config.models import (
    Station, ClosureMode, CorrectionDisplayMode, CorrectionResult, StationCorrection
)
from ..config.settings import AdjustmentMode, get_settings, normalize_code


logger = logging.getLogger(__name__)

KnownHeightLookup = Callable[[Optional[str]], Optional[float]]
ApplyCorrection = Callable[[int, float], None]


@dataclass
class AnchorPoint:
    """A point of known height and the station position where it becomes available."""
    index: int
    code: str


class CorrectionDistributor:
    """Computes per-station corrections for one run."""

    def __init__(self, config=None):
        self.config = config or get_settings().engine

    def calculate(
        self,
        stations: Sequence[Station],
        known_height: KnownHeightLookup,
        orientation_sign: float = 1.0,
        adjustment_mode: AdjustmentMode = AdjustmentMode.LOCAL
    ) -> CorrectionResult:
        """
        Compute corrections and closures for the ordered stations of a run.

        Args:
            stations: Stations of one run, in ordinal order
            known_height: Lookup code -> known height (None if unknown)
            orientation_sign: +1 or -1
            adjustment_mode: NONE and NETWORK only report the closure

        Returns:
            CorrectionResult (corrections are indexed by station position)
        """
        result = CorrectionResult()
        if not stations:
            return result

        anchors = self.collect_anchor_points(stations, known_height)
        distinct_anchor_count = len({a.code for a in anchors})
        closure_mode = self.determine_closure_mode(
            stations, known_height, distinct_anchor_count, adjustment_mode
        )

        corrections: Dict[int, StationCorrection] = {
            position: StationCorrection(position=position)
            for position in range(len(stations))
        }
        indexed = list(enumerate(stations))

        def apply_single(position: int, value: float):
            entry = corrections[position]
            entry.correction = value
            entry.baseline_correction = value
            entry.mode = CorrectionDisplayMode.SINGLE

        def apply_baseline(position: int, value: float):
            corrections[position].baseline_correction = value

        def apply_local(position: int, value: float):
            entry = corrections[position]
            entry.correction = value
            entry.mode = CorrectionDisplayMode.LOCAL

        if closure_mode == ClosureMode.OPEN:
            result.closures.append(self.oriented_closure(stations, orientation_sign))

        elif closure_mode == ClosureMode.SIMPLE:
            closure = self.correct_section(indexed, orientation_sign, 0.0, apply_single)
            if closure is not None:
                result.closures.append(closure)

        elif closure_mode == ClosureMode.LOCAL:
            self.correct_section(indexed, orientation_sign, 0.0, apply_baseline)
            self._correct_sections(
                indexed, anchors, known_height, orientation_sign,
                result.closures, apply_local
            )

        if not result.closures:
            result.closures.append(self.oriented_closure(stations, orientation_sign))

        result.corrections = [corrections[p] for p in range(len(stations))]
        result.closure_mode = closure_mode
        result.distinct_anchor_count = distinct_anchor_count

        logger.debug(
            f"Corrections: mode={closure_mode.value}, anchors={distinct_anchor_count}, "
            f"closures={[round(c, 5) for c in result.closures]}"
        )
        return result

    @staticmethod
    def apply(stations: Sequence[Station], result: CorrectionResult):
        """Write a CorrectionResult onto the stations it was computed for."""
        for station in stations:
            station.reset_corrections()

        for entry in result.corrections:
            if 0 <= entry.position < len(stations):
                station = stations[entry.position]
                station.correction = entry.correction
                station.baseline_correction = entry.baseline_correction
                station.correction_mode = entry.mode

    @staticmethod
    def oriented_closure(stations: Sequence[Station], orientation_sign: float) -> float:
        return sum(s.delta_h * orientation_sign for s in stations if s.delta_h is not None)

    @staticmethod
    def collect_anchor_points(
        stations: Sequence[Station],
        known_height: KnownHeightLookup
    ) -> List[AnchorPoint]:
        """
        Collect anchors in station order.

        A back anchor is available at its own station, a fore anchor at the next
        position. Only one anchor is kept per position.
        """
        anchors: Dict[int, AnchorPoint] = {}
        count = len(stations)

        for i, station in enumerate(stations):
            back = station.back_point
            if back and known_height(back) is not None and i not in anchors:
                anchors[i] = AnchorPoint(index=i, code=back)

            fore = station.fore_point
            if fore and known_height(fore) is not None:
                anchor_index = min(i + 1, count)
                if anchor_index not in anchors:
                    anchors[anchor_index] = AnchorPoint(index=anchor_index, code=fore)

        return [anchors[i] for i in sorted(anchors)]

    @staticmethod
    def run_endpoints(stations: Sequence[Station]) -> Tuple[Optional[str], Optional[str]]:
        """Start and end codes of a run."""
        if not stations:
            return None, None
        first, last = stations[0], stations[-1]
        start = first.back_point or first.fore_point
        end = last.fore_point or last.back_point
        return start, end

    def determine_closure_mode(
        self,
        stations: Sequence[Station],
        known_height: KnownHeightLookup,
        distinct_anchor_count: int,
        adjustment_mode: AdjustmentMode
    ) -> ClosureMode:
        if adjustment_mode in (AdjustmentMode.NONE, AdjustmentMode.NETWORK):
            return ClosureMode.OPEN

        start, end = self.run_endpoints(stations)
        start_known = start is not None and known_height(start) is not None
        end_known = end is not None and known_height(end) is not None
        closes_by_loop = start is not None and start == end
        is_closed = closes_by_loop or (start_known and end_known)

        if not is_closed:
            return ClosureMode.LOCAL if distinct_anchor_count >= 2 else ClosureMode.OPEN

        return ClosureMode.LOCAL if distinct_anchor_count > 1 else ClosureMode.SIMPLE

    def _correct_sections(
        self,
        indexed: List[Tuple[int, Station]],
        anchors: List[AnchorPoint],
        known_height: KnownHeightLookup,
        orientation_sign: float,
        closures: List[float],
        apply_correction: ApplyCorrection
    ):
        if not indexed:
            return

        if len(anchors) < 2:
            closure = self.correct_section(indexed, orientation_sign, 0.0, apply_correction)
            if closure is not None:
                closures.append(closure)
            return

        for start, end in zip(anchors, anchors[1:]):
            section = indexed[start.index:end.index]
            if not section:
                continue

            start_height = known_height(start.code)
            end_height = known_height(end.code)
            if start_height is None or end_height is None:
                logger.warning(
                    f"Section {start.code}-{end.code} skipped: boundary height missing"
                )
                continue

            required_sum = end_height - start_height
            closure = self.correct_section(section, orientation_sign, required_sum, apply_correction)
            if closure is not None:
                closures.append(closure)

    def correct_section(
        self,
        section: List[Tuple[int, Station]],
        orientation_sign: float,
        required_sum: float,
        apply_correction: Optional[ApplyCorrection]
    ) -> Optional[float]:
        """
        Correct one section so that its dH sum equals required_sum.

        Args:
            section: (position, station) pairs
            orientation_sign: +1 or -1
            required_sum: Theoretical sum of dH over the section
            apply_correction: Receives (position, correction); None to skip

        Returns:
            Section closure (sign × (measured - required)), None without measurements
        """
        measured = [(p, s) for p, s in section if s.delta_h is not None]
        if not measured:
            return None

        measured_sum = sum(s.delta_h for _, s in measured)
        closure = orientation_sign * (measured_sum - required_sum)
        required_correction = required_sum - measured_sum

        total_length = sum(s.station_length for _, s in measured)
        positions = [p for p, _ in measured]

        if total_length <= 0:
            raw = np.full(len(measured), required_correction / len(measured))
            lengths = np.ones(len(measured))
        else:
            lengths = np.array([s.station_length for _, s in measured], dtype=float)
            raw = lengths * (required_correction / total_length)

        if apply_correction is not None:
            rounded = self.round_corrections(raw, lengths, required_correction)
            for position, value in zip(positions, rounded):
                apply_correction(position, value)

        return closure

    def round_corrections(
        self,
        raw: np.ndarray,
        lengths: np.ndarray,
        required_sum: float
    ) -> List[float]:
        """
        Round allocations to the correction step keeping their exact sum.

        Whole ticks of the residual go to stations by descending length
        (stable), cycling through the list. A sub-tick remainder, present when
        required_sum is not a multiple of the step, goes to the longest station.

        Returns:
            Rounded corrections in the order of raw
        """
        step = self.config.correction_rounding_step
        raw = np.asarray(raw, dtype=float)
        if raw.size == 0:
            return []

        rounded = np.round(raw / step) * step
        residual = required_sum - rounded.sum()
        ticks = int(np.round(residual / step))

        order = np.argsort(-np.asarray(lengths, dtype=float), kind="stable")

        if ticks != 0:
            direction = 1.0 if ticks > 0 else -1.0
            full_cycles, extra = divmod(abs(ticks), order.size)
            rounded += direction * step * full_cycles
            rounded[order[:extra]] += direction * step

        remainder = required_sum - rounded.sum()
        if abs(remainder) > self.config.sum_epsilon:
            rounded[order[0]] += remainder

        return [float(v) for v in rounded]


def distribute_closure(
    stations: Sequence[Station],
    known_heights: Dict[str, float],
    orientation_sign: float = 1.0,
    adjustment_mode: AdjustmentMode = AdjustmentMode.LOCAL
) -> CorrectionResult:
    """
    Convenience function: compute and apply corrections to a run.

    Args:
        stations: Ordered stations of one run (modified in place)
        known_heights: Point code -> known height
        orientation_sign: +1 or -1
        adjustment_mode: Adjustment mode

    Returns:
        CorrectionResult
    """
    heights = {normalize_code(k): v for k, v in known_heights.items()}

    def lookup(code: Optional[str]) -> Optional[float]:
        key = normalize_code(code)
        return heights.get(key) if key else None

    distributor = CorrectionDistributor()
    result = distributor.calculate(stations, lookup, orientation_sign, adjustment_mode)
    distributor.apply(stations, result)
    return result
