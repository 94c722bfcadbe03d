"""
Height Propagator Module

Fills station heights of a run from the heights already available in its system.

Two height maps are kept per run, keyed by alias:
    - adjusted: propagated with corrected dH (dH + correction)
    - raw (Z0): propagated with measured dH

Propagation is a bounded fixed-point iteration: every pass sweeps the stations
forward and backward and computes a missing end from a known one

    H_fore = H_back + dH        H_back = H_fore - dH

until a pass changes nothing. Heights of canonical codes that may cross run
boundaries are then exported back to the system pool.
"""
from typing import Dict, List, Optional, Sequence, Tuple
import logging

from ..config.models import (
    Station, Run, CalculationContext, HeightPool, PropagationResult
)
from ..config.settings import get_settings, normalize_code, point_code_for_run
from .alias_manager import AliasManager, RunHeightTracker


logger = logging.getLogger(__name__)


class HeightPropagator:
    """Propagates heights through the stations of one run."""

    def __init__(self, context: CalculationContext = None, config=None):
        self.context = context or CalculationContext()
        self.config = config or get_settings().engine

    def is_anchor_allowed(self, code: Optional[str], pool: HeightPool) -> bool:
        """
        A code anchors a run when the pool has its height and the height may be
        shared (known benchmark, or shared point not disabled).
        """
        if not code:
            return False
        return code in pool and self.context.allows_propagation(code)

    def propagate_run(self, run: Run, stations: Sequence[Station], pool: HeightPool) -> PropagationResult:
        """
        Compute adjusted and Z0 heights for every station of a run.

        Args:
            run: Run the stations belong to
            stations: Ordered stations (corrections already applied)
            pool: System height pool; receives the exported heights

        Returns:
            PropagationResult
        """
        result = PropagationResult()
        if not stations:
            return result

        for station in stations:
            station.reset_heights()

        aliases = AliasManager(lambda code: self.is_anchor_allowed(code, pool))
        aliases.initialize(stations)

        adjusted = dict(pool.adjusted)
        raw = dict(pool.raw)
        self._apply_disconnected_points(stations, run.name, pool, adjusted, raw)

        indexed = list(enumerate(stations))
        result.passes, result.converged = self._propagate_iteratively(indexed, adjusted, raw, aliases)

        self._assign_adjusted_heights(indexed, adjusted, pool, aliases)

        tracker = RunHeightTracker(raw, pool.raw)
        self._raw_forward_pass(indexed, tracker, aliases)
        self._raw_backward_pass(indexed, adjusted, tracker, aliases)
        self._update_virtual_stations(indexed, adjusted, raw, aliases)

        result.exported_codes = self._export_heights(adjusted, pool, aliases)
        result.unresolved_aliases = sorted(
            record.alias for record in aliases.records if record.alias not in adjusted
        )

        if not result.converged:
            logger.warning(
                f"{run.name}: propagation stopped after {result.passes} passes without converging"
            )
        logger.debug(
            f"{run.name}: {result.passes} passes, {len(result.exported_codes)} heights exported, "
            f"{len(result.unresolved_aliases)} unresolved"
        )
        return result

    def _apply_disconnected_points(
        self,
        stations: Sequence[Station],
        run_name: str,
        pool: HeightPool,
        adjusted: Dict[str, float],
        raw: Dict[str, float]
    ):
        """Disabled shared points take the height of their per-run copy."""
        codes = []
        for station in stations:
            for code in (station.back_point, station.fore_point):
                if code and code not in codes:
                    codes.append(code)

        for code in codes:
            if self.context.is_shared_point_enabled(code):
                continue

            copy_code = normalize_code(point_code_for_run(code, run_name))
            if copy_code in pool.adjusted:
                adjusted[code] = pool.adjusted[copy_code]
            if copy_code in pool.raw:
                raw[code] = pool.raw[copy_code]

    def _propagate_iteratively(
        self,
        indexed: List[Tuple[int, Station]],
        adjusted: Dict[str, float],
        raw: Dict[str, float],
        aliases: AliasManager
    ) -> Tuple[int, bool]:
        """
        Returns:
            (number of passes that changed something, converged flag)
        """
        backward = indexed[::-1]
        passes = 0

        for _ in range(self.config.max_propagation_passes):
            changed = False
            for ordered in (indexed, backward):
                changed |= self._sweep(ordered, raw, False, aliases)
                changed |= self._sweep(ordered, adjusted, True, aliases)

            if not changed:
                return passes, True
            passes += 1

        return passes, False

    @staticmethod
    def _sweep(
        ordered: Sequence[Tuple[int, Station]],
        heights: Dict[str, float],
        use_adjusted: bool,
        aliases: AliasManager
    ) -> bool:
        changed = False

        for position, station in ordered:
            delta = station.adjusted_delta_h if use_adjusted else station.delta_h
            if delta is None:
                continue

            back = aliases.get_alias(position, True)
            fore = aliases.get_alias(position, False)
            if not back or not fore:
                continue

            if back in heights and fore not in heights:
                heights[fore] = heights[back] + delta
                changed = True
            elif fore in heights and back not in heights:
                heights[back] = heights[fore] - delta
                changed = True

        return changed

    def _assign_adjusted_heights(
        self,
        indexed: List[Tuple[int, Station]],
        adjusted: Dict[str, float],
        pool: HeightPool,
        aliases: AliasManager
    ):
        for position, station in indexed:
            back = aliases.get_alias(position, True)
            if back and back in adjusted:
                station.back_height = adjusted[back]
                station.is_back_height_known = self.is_anchor_allowed(station.back_point, pool)

            fore = aliases.get_alias(position, False)
            if fore and fore in adjusted:
                station.fore_height = adjusted[fore]
                station.is_fore_height_known = self.is_anchor_allowed(station.fore_point, pool)

    @staticmethod
    def _raw_forward_pass(
        indexed: List[Tuple[int, Station]],
        tracker: RunHeightTracker,
        aliases: AliasManager
    ):
        """Z0 heights in station order; repeated aliases use their latest value."""
        for position, station in indexed:
            back_alias = aliases.get_alias(position, True)
            fore_alias = aliases.get_alias(position, False)

            if station.back_height_raw is None:
                existing = tracker.get_height(back_alias)
                if existing is not None:
                    station.back_height_raw = existing
                    tracker.record_height(back_alias, existing)

            if station.fore_height_raw is None:
                existing = tracker.get_height(fore_alias)
                if existing is not None:
                    station.fore_height_raw = existing
                    tracker.record_height(fore_alias, existing)

            delta = station.delta_h
            if delta is None:
                continue

            back_height = station.back_height_raw
            if back_height is None:
                back_height = tracker.get_height(back_alias)
            fore_height = station.fore_height_raw
            if fore_height is None:
                fore_height = tracker.get_height(fore_alias)

            if back_height is not None:
                station.fore_height_raw = back_height + delta
                tracker.record_height(fore_alias, station.fore_height_raw)
            elif fore_height is not None:
                station.back_height_raw = fore_height - delta
                tracker.record_height(back_alias, station.back_height_raw)

            if back_height is not None and not tracker.has_history(back_alias):
                tracker.record_height(back_alias, back_height)
            if fore_height is not None and not tracker.has_history(fore_alias):
                tracker.record_height(fore_alias, fore_height)

    @staticmethod
    def _raw_backward_pass(
        indexed: List[Tuple[int, Station]],
        adjusted: Dict[str, float],
        tracker: RunHeightTracker,
        aliases: AliasManager
    ):
        """Fill remaining Z0 gaps from the tail, back-filling adjusted heights."""
        for position, station in reversed(indexed):
            delta = station.delta_h
            if delta is None:
                continue
            adjusted_delta = station.adjusted_delta_h

            back_alias = aliases.get_alias(position, True)
            fore_alias = aliases.get_alias(position, False)

            if station.fore_height_raw is not None and station.back_height_raw is None:
                station.back_height_raw = station.fore_height_raw - delta
                tracker.record_height(back_alias, station.back_height_raw)

                if back_alias and back_alias not in adjusted:
                    fore_adjusted = station.fore_height
                    if fore_adjusted is None:
                        fore_adjusted = station.fore_height_raw
                    back_adjusted = fore_adjusted - adjusted_delta
                    adjusted[back_alias] = back_adjusted
                    if station.back_height is None:
                        station.back_height = back_adjusted

            elif station.back_height_raw is not None and station.fore_height_raw is None:
                station.fore_height_raw = station.back_height_raw + delta
                tracker.record_height(fore_alias, station.fore_height_raw)

                if fore_alias and fore_alias not in adjusted:
                    back_adjusted = station.back_height
                    if back_adjusted is None:
                        back_adjusted = station.back_height_raw
                    fore_adjusted = back_adjusted + adjusted_delta
                    adjusted[fore_alias] = fore_adjusted
                    if station.fore_height is None:
                        station.fore_height = fore_adjusted

    @staticmethod
    def _update_virtual_stations(
        indexed: List[Tuple[int, Station]],
        adjusted: Dict[str, float],
        raw: Dict[str, float],
        aliases: AliasManager
    ):
        """Stations without dH only carry the height of their back point."""
        for position, station in indexed:
            if station.delta_h is not None or not station.back_point:
                continue

            alias = aliases.get_alias(position, True)
            if not alias or alias not in adjusted:
                continue

            height = adjusted[alias]
            if station.back_height is None:
                station.back_height = height
            if station.back_height_raw is None:
                station.back_height_raw = raw.get(alias, height)

    def _export_heights(self, adjusted: Dict[str, float], pool: HeightPool, aliases: AliasManager) -> List[str]:
        """Publish canonical heights that may cross run boundaries."""
        exported = []
        for alias, height in adjusted.items():
            if aliases.is_copy_alias(alias):
                continue
            if not self.context.allows_propagation(alias):
                continue
            if pool.adjusted.get(alias) != height:
                exported.append(alias)
            pool.seed(alias, height)
        return exported


def propagate_heights(
    stations: Sequence[Station],
    known_heights: Dict[str, float],
    run: Run = None
) -> PropagationResult:
    """
    Convenience function: heights for a single run from known benchmarks.

    Args:
        stations: Ordered stations of one run (modified in place)
        known_heights: Point code -> known height
        run: Run metadata (a run with index 1 when None)

    Returns:
        PropagationResult
    """
    context = CalculationContext(known_heights=known_heights)
    pool = HeightPool()
    for code, height in context.known_heights.items():
        pool.seed(code, height)

    propagator = HeightPropagator(context)
    return propagator.propagate_run(run or Run(index=1), stations, pool)
