"""
Traverse Calculation Workflow

Full recomputation of a leveling project:

    1. Partition runs into systems (shared-point connectivity)
    2. Per system: correct and propagate every run, anchored runs first
    3. Per-run summaries and closure verdicts
    4. Arm-difference checks against the selected class
    5. Overall closure of all active stations
"""
from typing import Dict, List, Optional
from collections import OrderedDict
import copy
import logging

from ..config.models import (
    Station, Run, TraverseSystem, SharedPoint, CalculationContext, HeightPool,
    ConnectivityResult, TraverseCalculationRequest, TraverseCalculationResult
)
from ..config.leveling_classes import LevelingClassOption
from ..config.settings import get_settings
from .errors import InvalidRequestError
from .closure import ClosureCalculator
from .correction import CorrectionDistributor
from .height_propagator import HeightPropagator
from .connectivity import SystemConnectivityAnalyzer, find_shared_points


logger = logging.getLogger(__name__)


class TraverseCalculationWorkflow:
    """Orchestrates corrections, propagation and closure checks for all runs."""

    def __init__(self, config=None):
        self.settings = config or get_settings()
        self.closure_calculator = ClosureCalculator()
        self.correction_distributor = CorrectionDistributor(self.settings.engine)
        self.connectivity_analyzer = SystemConnectivityAnalyzer(self.settings.systems)

    def calculate(self, request: TraverseCalculationRequest) -> TraverseCalculationResult:
        """
        Recompute corrections, heights and verdicts.

        The request is not modified; results are returned on copies of its
        stations, runs and systems.

        Raises:
            InvalidRequestError: For an orientation sign other than +1/-1 or
                stations referencing unknown runs
        """
        orientation_sign = self._orientation_sign(request)
        context = request.context

        stations = copy.deepcopy(request.stations)
        runs = copy.deepcopy(request.runs)
        systems = copy.deepcopy(request.systems)

        run_lookup = {run.index: run for run in runs}
        unknown = sorted({s.run_index for s in stations if s.run_index not in run_lookup})
        if unknown:
            raise InvalidRequestError(f"Stations reference unknown runs: {unknown}")

        for station in stations:
            station.reset_results()
        for run in runs:
            run.reset_results()

        groups = self._group_by_run(stations, runs)
        shared_points = find_shared_points(stations, context)

        result = TraverseCalculationResult(stations=stations, runs=runs, shared_points=shared_points)

        if request.auto_partition:
            result.connectivity = self._partition(runs, systems, shared_points)
            systems = self._apply_partition(systems, runs, result.connectivity)
        else:
            systems = self._ensure_default_system(systems, runs)

        result.systems = sorted(systems, key=lambda s: s.order)

        for system in result.systems:
            system.run_indexes = [run.index for run in runs if run.system_id == system.id]
            system_groups = OrderedDict(
                (run.index, groups[run.index])
                for run in runs
                if run.system_id == system.id and run.is_active
            )
            if not system_groups:
                continue

            pool = self._seed_pool(system, context)
            propagator = HeightPropagator(context, self.settings.engine)
            self._process_system(system, system_groups, run_lookup, pool, propagator, request, orientation_sign)
            self._update_run_summaries(system_groups, run_lookup, pool, propagator, shared_points)
            self._evaluate_runs(system_groups, run_lookup, request, orientation_sign)

        active_stations = [s for s in stations if run_lookup[s.run_index].is_active]

        if request.class_option is not None:
            self.apply_arm_difference_tolerances(active_stations, runs, request.class_option)

        result.stations_count = len(active_stations)
        result.total_back_distance = sum(s.back_distance or 0.0 for s in active_stations)
        result.total_fore_distance = sum(s.fore_distance or 0.0 for s in active_stations)
        if result.stations_count > 0:
            result.total_average_distance = (result.total_back_distance + result.total_fore_distance) / 2.0

        result.closure = self.closure_calculator.evaluate(
            active_stations,
            orientation_sign,
            result.stations_count,
            result.total_back_distance / 1000.0,
            request.method_option,
            request.class_option,
        )

        logger.info(
            f"Calculated {len(runs)} runs in {len(result.systems)} systems: {result.closure.verdict}"
        )
        return result

    @staticmethod
    def _orientation_sign(request: TraverseCalculationRequest) -> float:
        sign = request.orientation_sign
        if sign is None:
            method = request.method_option
            sign = getattr(method, 'orientation_sign', 1.0) if method is not None else 1.0

        if sign not in (1, -1):
            raise InvalidRequestError(f"Orientation sign must be +1 or -1, got {sign}")
        return float(sign)

    @staticmethod
    def _group_by_run(stations: List[Station], runs: List[Run]) -> Dict[int, List[Station]]:
        """Stations of each run, in ordinal order."""
        groups: Dict[int, List[Station]] = {run.index: [] for run in runs}
        for station in stations:
            groups[station.run_index].append(station)
        for group in groups.values():
            group.sort(key=lambda s: s.index)
        return groups

    def _partition(
        self,
        runs: List[Run],
        systems: List[TraverseSystem],
        shared_points: List[SharedPoint]
    ) -> ConnectivityResult:
        existing_auto = [s.id for s in systems if s.is_auto]
        return self.connectivity_analyzer.analyze(
            [run.index for run in runs],
            shared_points,
            existing_auto,
            self.settings.systems.default_system_id,
        )

    def _apply_partition(
        self,
        systems: List[TraverseSystem],
        runs: List[Run],
        connectivity: ConnectivityResult
    ) -> List[TraverseSystem]:
        for run in runs:
            run.system_id = connectivity.run_to_system.get(run.index, run.system_id)

        removed = set(connectivity.systems_to_remove)
        systems = [s for s in systems if s.id not in removed]
        systems.extend(connectivity.new_systems)
        return self._ensure_default_system(systems, runs)

    def _ensure_default_system(self, systems: List[TraverseSystem], runs: List[Run]) -> List[TraverseSystem]:
        """Runs without a (known) system go to the default system."""
        config = self.settings.systems
        systems = list(systems)
        known_ids = {s.id for s in systems} | {config.default_system_id}

        for run in runs:
            if run.system_id is None or run.system_id not in known_ids:
                if run.system_id is not None:
                    logger.warning(f"{run.name}: unknown system '{run.system_id}', using default")
                run.system_id = config.default_system_id

        if not any(s.id == config.default_system_id for s in systems):
            systems.insert(0, TraverseSystem(
                id=config.default_system_id,
                name=config.default_system_name,
                order=0,
            ))
        return systems

    @staticmethod
    def _seed_pool(system: TraverseSystem, context: CalculationContext) -> HeightPool:
        """Known heights attributed to the system, plus unattributed ones."""
        pool = HeightPool()
        for code, height in context.known_heights.items():
            owner = context.benchmark_system(code)
            if owner is None or owner == system.id:
                pool.seed(code, height)
        return pool

    def _process_system(
        self,
        system: TraverseSystem,
        groups: Dict[int, List[Station]],
        run_lookup: Dict[int, Run],
        pool: HeightPool,
        propagator: HeightPropagator,
        request: TraverseCalculationRequest,
        orientation_sign: float
    ):
        """
        Correct and propagate the runs of one system.

        Runs touching an anchor go first; heights they export may anchor
        further runs on the next scan. When a scan makes no progress, the first
        unprocessed run is computed relative to a reference height at its
        start and the scans continue from the heights it exports.
        """
        processed = set()

        def is_anchor(code: Optional[str]) -> bool:
            return propagator.is_anchor_allowed(code, pool)

        def known_height(code: Optional[str]) -> Optional[float]:
            return pool.adjusted[code] if is_anchor(code) else None

        def process_run(run_index: int):
            run = run_lookup[run_index]
            stations = groups[run_index]

            corrections = self.correction_distributor.calculate(
                stations, known_height, orientation_sign, request.adjustment_mode
            )
            self.correction_distributor.apply(stations, corrections)
            run.closures = corrections.closures
            run.closure_mode = corrections.closure_mode

            propagation = propagator.propagate_run(run, stations, pool)
            run.propagation_passes = propagation.passes
            run.propagation_converged = propagation.converged

            processed.add(run_index)

        while len(processed) < len(groups):
            progress = False

            for run_index, stations in groups.items():
                if run_index in processed:
                    continue
                if any(is_anchor(s.back_point) or is_anchor(s.fore_point) for s in stations):
                    process_run(run_index)
                    progress = True

            if progress:
                continue

            run_index = next(index for index in groups if index not in processed)
            self._seed_reference_height(run_lookup[run_index], groups[run_index], pool)
            process_run(run_index)

        logger.debug(f"System {system.id}: {len(processed)} of {len(groups)} runs processed")

    def _seed_reference_height(self, run: Run, stations: List[Station], pool: HeightPool):
        first_code = next(
            (code for code in (s.back_point or s.fore_point for s in stations) if code),
            None
        )
        if first_code is None:
            return

        reference = self.settings.engine.unanchored_reference_height
        pool.seed(first_code, reference)
        run.is_relative_only = True
        logger.warning(
            f"{run.name}: no known heights reachable, {first_code} set to {reference} as reference"
        )

    @staticmethod
    def _update_run_summaries(
        groups: Dict[int, List[Station]],
        run_lookup: Dict[int, Run],
        pool: HeightPool,
        propagator: HeightPropagator,
        shared_points: List[SharedPoint]
    ):
        for run_index, stations in groups.items():
            run = run_lookup[run_index]

            accumulation = None
            total_back = None
            total_fore = None
            anchors = set()

            for station in stations:
                if station.arm_difference is not None:
                    accumulation = (accumulation or 0.0) + station.arm_difference
                if station.back_distance is not None:
                    total_back = (total_back or 0.0) + station.back_distance
                if station.fore_distance is not None:
                    total_fore = (total_fore or 0.0) + station.fore_distance

                for code in (station.back_point, station.fore_point):
                    if propagator.is_anchor_allowed(code, pool):
                        anchors.add(code)

            run.station_count = sum(1 for s in stations if s.has_measurement)
            run.total_distance_back = total_back
            run.total_distance_fore = total_fore
            run.arm_difference_accumulation = accumulation
            run.known_points_count = len(anchors)
            run.shared_point_codes = [p.code for p in shared_points if p.is_used_in_run(run_index)]

    def _evaluate_runs(
        self,
        groups: Dict[int, List[Station]],
        run_lookup: Dict[int, Run],
        request: TraverseCalculationRequest,
        orientation_sign: float
    ):
        for run_index, stations in groups.items():
            run = run_lookup[run_index]
            length_km = (run.total_distance_back or 0.0) / 1000.0
            run.closure_result = self.closure_calculator.evaluate(
                stations,
                orientation_sign,
                run.station_count,
                length_km,
                request.method_option,
                request.class_option,
            )
            logger.info(f"{run.name}: {run.closure_mode.value}, {run.closure_result.verdict}")

    @staticmethod
    def apply_arm_difference_tolerances(
        stations: List[Station],
        runs: List[Run],
        class_option: LevelingClassOption
    ):
        """Flag stations and runs whose arm differences exceed the class limits."""
        station_limit = class_option.arm_difference_station
        accumulation_limit = class_option.arm_difference_accumulation

        for station in stations:
            arm_difference = station.arm_difference
            station.is_arm_difference_exceeded = (
                arm_difference is not None and abs(arm_difference) > station_limit
            )

        active_runs = {s.run_index for s in stations}
        for run in runs:
            if run.index in active_runs and run.arm_difference_accumulation is not None:
                run.is_arm_difference_accumulation_exceeded = (
                    abs(run.arm_difference_accumulation) > accumulation_limit
                )


def calculate_traverse(
    stations: List[Station],
    runs: List[Run] = None,
    known_heights: Dict[str, float] = None,
    **kwargs
) -> TraverseCalculationResult:
    """
    Convenience function for a one-off computation.

    Args:
        stations: Stations of all runs
        runs: Run metadata (derived from the stations when None)
        known_heights: Point code -> known height
        **kwargs: Other TraverseCalculationRequest fields

    Returns:
        TraverseCalculationResult
    """
    if runs is None:
        runs = [Run(index=i) for i in sorted({s.run_index for s in stations})]

    context = kwargs.pop('context', None) or CalculationContext(known_heights=known_heights or {})
    request = TraverseCalculationRequest(stations=stations, runs=runs, context=context, **kwargs)
    return TraverseCalculationWorkflow().calculate(request)
