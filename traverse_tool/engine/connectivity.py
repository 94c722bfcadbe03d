"""
System Connectivity Module

Partitions leveling runs into independent traverse systems.

Runs are the vertices of an undirected graph; every enabled shared point
connects each pair of runs that use it. Each connected component is one system:
heights can only propagate between runs of the same component.
"""
from typing import Dict, Iterable, List, Optional, Sequence, Set
from collections import defaultdict, deque
import logging

from ..config.models import (
    Station, SharedPoint, TraverseSystem, CalculationContext, ConnectivityResult
)
from ..config.settings import get_settings


logger = logging.getLogger(__name__)


def find_shared_points(
    stations: Iterable[Station],
    context: CalculationContext = None
) -> List[SharedPoint]:
    """
    Point codes referenced by more than one run.

    Args:
        stations: Stations of all runs
        context: Supplies the enabled state of each point

    Returns:
        SharedPoint list sorted by code
    """
    context = context or CalculationContext()
    runs_by_code: Dict[str, Set[int]] = defaultdict(set)

    for station in stations:
        for code in (station.back_point, station.fore_point):
            if code:
                runs_by_code[code].add(station.run_index)

    shared = []
    for code in sorted(runs_by_code):
        run_indexes = sorted(runs_by_code[code])
        if len(run_indexes) < 2:
            continue
        shared.append(SharedPoint(
            code=code,
            run_indexes=run_indexes,
            is_enabled=context.is_shared_point_enabled(code)
        ))

    return shared


class RunGraph:
    """Undirected graph of runs linked by enabled shared points."""

    def __init__(self, run_indexes: Iterable[int]):
        self.run_indexes: List[int] = list(dict.fromkeys(run_indexes))
        self.adjacency: Dict[int, Set[int]] = {index: set() for index in self.run_indexes}

    def add_shared_point(self, point: SharedPoint):
        """Connect every pair of known runs using the point (if enabled)."""
        if not point.is_enabled:
            return

        runs = [index for index in point.run_indexes if index in self.adjacency]
        for i, first in enumerate(runs):
            for second in runs[i + 1:]:
                if first == second:
                    continue
                self.adjacency[first].add(second)
                self.adjacency[second].add(first)

    def add_shared_points(self, points: Iterable[SharedPoint]):
        for point in points:
            self.add_shared_point(point)

    def get_neighbors(self, run_index: int) -> List[int]:
        return sorted(self.adjacency.get(run_index, ()))

    def connected_components(self) -> List[List[int]]:
        """Components by BFS, each listed in visiting order."""
        visited: Set[int] = set()
        components = []

        for start in self.run_indexes:
            if start in visited:
                continue

            component = []
            queue = deque([start])
            visited.add(start)

            while queue:
                current = queue.popleft()
                component.append(current)
                for neighbor in self.get_neighbors(current):
                    if neighbor not in visited:
                        visited.add(neighbor)
                        queue.append(neighbor)

            components.append(component)

        return components


class SystemConnectivityAnalyzer:
    """Assigns runs to traverse systems from shared-point connectivity."""

    def __init__(self, config=None):
        self.config = config or get_settings().systems

    def auto_system_id(self, number: int) -> str:
        return f"{self.config.auto_system_prefix}{number}"

    def auto_system_name(self, number: int) -> str:
        return self.config.auto_system_name_template.format(number=number)

    def analyze(
        self,
        run_indexes: Sequence[int],
        shared_points: Sequence[SharedPoint],
        existing_auto_system_ids: Sequence[str] = (),
        default_system_id: Optional[str] = None
    ) -> ConnectivityResult:
        """
        Partition runs into systems.

        The largest component keeps the default system; the i-th other
        component (by descending size, ties in first-seen order) gets the
        auto system number i.

        Args:
            run_indexes: Runs to partition
            shared_points: Shared points (disabled ones do not connect runs)
            existing_auto_system_ids: Auto systems currently defined
            default_system_id: Id of the default system

        Returns:
            ConnectivityResult with run assignments and the system diff
        """
        default_system_id = default_system_id or self.config.default_system_id
        result = ConnectivityResult()
        if not run_indexes:
            return result

        graph = RunGraph(run_indexes)
        graph.add_shared_points(shared_points)
        components = graph.connected_components()

        if len(components) <= 1:
            for run_index in graph.run_indexes:
                result.run_to_system[run_index] = default_system_id
            result.systems_to_remove = list(existing_auto_system_ids)
            logger.debug(f"{len(graph.run_indexes)} runs form a single system")
            return result

        # sorted() is stable: equal sizes keep their discovery order
        components = sorted(components, key=len, reverse=True)
        used_auto_ids = set()

        for i, component in enumerate(components):
            if i == 0:
                system_id = default_system_id
            else:
                system_id = self.auto_system_id(i)
                used_auto_ids.add(system_id)
                if system_id not in existing_auto_system_ids:
                    result.new_systems.append(TraverseSystem(
                        id=system_id,
                        name=self.auto_system_name(i + 1),
                        order=i + 1,
                    ))

            for run_index in component:
                result.run_to_system[run_index] = system_id

        result.systems_to_remove = [
            system_id for system_id in existing_auto_system_ids
            if system_id not in used_auto_ids
        ]

        logger.info(
            f"{len(graph.run_indexes)} runs form {len(components)} systems "
            f"({len(result.new_systems)} new, {len(result.systems_to_remove)} removed)"
        )
        return result


def partition_runs(
    stations: Sequence[Station],
    context: CalculationContext = None,
    existing_systems: Sequence[TraverseSystem] = ()
) -> ConnectivityResult:
    """
    Convenience function: partition the runs found in a station list.

    Args:
        stations: Stations of all runs
        context: Shared point states
        existing_systems: Currently defined systems

    Returns:
        ConnectivityResult
    """
    run_indexes = list(dict.fromkeys(s.run_index for s in stations))
    shared_points = find_shared_points(stations, context)
    existing_auto = [s.id for s in existing_systems if s.is_auto]
    return SystemConnectivityAnalyzer().analyze(run_indexes, shared_points, existing_auto)
