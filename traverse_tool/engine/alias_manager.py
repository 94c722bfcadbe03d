"""
Alias Manager Module

Per-run identities for point codes.

A run may pass through the same turning point more than once (loops). Each
visit of a non-anchor code gets its own alias so the height solver never treats
two visits as one unknown:

    5, 5 (2), 5 (3), ...

Anchors (points of known height) always keep their code.
"""
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence, Tuple
import logging

from ..config.models import Station
from ..config.settings import normalize_code


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AliasRecord:
    """One registered alias of a point code."""
    alias: str
    code: str
    occurrence: int  # 0 for anchors, 1 for the first visit, 2.. for repeats

    @property
    def is_copy(self) -> bool:
        return self.alias != self.code


class AliasManager:
    """
    Alias bookkeeping for a single run.

    Records are kept in an arena (list); station sides refer to them by index.
    """

    def __init__(self, is_anchor: Callable[[str], bool]):
        self._is_anchor = is_anchor
        self._records: List[AliasRecord] = []
        self._record_by_alias: Dict[str, int] = {}
        self._record_by_side: Dict[Tuple[int, bool], int] = {}
        self._occurrences: Dict[str, int] = {}
        self._previous_fore_code: Optional[str] = None
        self._previous_fore_alias: Optional[str] = None

    def register_alias(self, code: str, reuse_previous: bool = False) -> str:
        """
        Allocate (or reuse) the alias for a code.

        Args:
            code: Normalized point code
            reuse_previous: True when the station chains from the previous fore point

        Returns:
            Alias to use for this station side
        """
        if self._is_anchor(code):
            self._store(AliasRecord(alias=code, code=code, occurrence=0))
            return code

        if (reuse_previous and self._previous_fore_alias is not None
                and self._previous_fore_code == code):
            return self._previous_fore_alias

        occurrence = self._occurrences.get(code, 0) + 1
        self._occurrences[code] = occurrence

        alias = code if occurrence == 1 else f"{code} ({occurrence})"
        self._store(AliasRecord(alias=alias, code=code, occurrence=occurrence))
        return alias

    def _store(self, record: AliasRecord):
        if record.alias in self._record_by_alias:
            return
        self._record_by_alias[record.alias] = len(self._records)
        self._records.append(record)

    def register_station_alias(self, position: int, is_back: bool, alias: str, code: str = None):
        """Bind an alias to one side of the station at a run position."""
        self._record_by_side[(position, is_back)] = self._record_by_alias[alias]

        if not is_back:
            self._previous_fore_code = code
            self._previous_fore_alias = alias

    def reset_previous_fore(self):
        self._previous_fore_code = None
        self._previous_fore_alias = None

    def get_alias(self, position: int, is_back: bool) -> Optional[str]:
        record_index = self._record_by_side.get((position, is_back))
        if record_index is None:
            return None
        return self._records[record_index].alias

    def get_record(self, alias: str) -> Optional[AliasRecord]:
        record_index = self._record_by_alias.get(alias)
        return None if record_index is None else self._records[record_index]

    def is_copy_alias(self, alias: str) -> bool:
        """True for suffixed aliases of repeated visits."""
        record = self.get_record(alias)
        return record is not None and record.is_copy

    @property
    def records(self) -> List[AliasRecord]:
        return list(self._records)

    def initialize(self, stations: Sequence[Station]):
        """
        Register aliases for every station side of a run, in order.

        A back code equal to the previous station's fore code reuses its alias.
        """
        previous_fore: Optional[str] = None

        for position, station in enumerate(stations):
            back = station.back_point
            if back:
                reuse = previous_fore is not None and previous_fore == back
                alias = self.register_alias(back, reuse_previous=reuse)
                self.register_station_alias(position, True, alias, back)

            fore = station.fore_point
            if fore:
                alias = self.register_alias(fore, reuse_previous=False)
                self.register_station_alias(position, False, alias, fore)
                previous_fore = fore
            else:
                self.reset_previous_fore()
                previous_fore = None

        logger.debug(
            f"Registered {len(self._records)} aliases "
            f"({sum(1 for r in self._records if r.is_copy)} repeated visits)"
        )


class RunHeightTracker:
    """
    History of unadjusted (Z0) heights per alias within one run.

    A repeated alias reads the most recently recorded value. New aliases are
    also written to the run's raw map unless the system pool already has them.
    """

    def __init__(self, raw_heights: Dict[str, float], available_raw_heights: Dict[str, float]):
        self._history: Dict[str, List[float]] = {}
        self._raw_heights = raw_heights
        self._available_raw_heights = available_raw_heights

    def get_height(self, alias: Optional[str]) -> Optional[float]:
        if not alias:
            return None

        history = self._history.get(alias)
        if history:
            return history[-1]

        return self._raw_heights.get(alias)

    def has_history(self, alias: Optional[str]) -> bool:
        return bool(alias) and bool(self._history.get(alias))

    def record_height(self, alias: Optional[str], value: float):
        if not alias:
            return

        self._history.setdefault(alias, []).append(value)

        if alias not in self._raw_heights and alias not in self._available_raw_heights:
            self._raw_heights[alias] = value


def build_aliases(stations: Sequence[Station], anchors: Sequence[str]) -> AliasManager:
    """
    Convenience function: aliases for a run with a fixed set of anchor codes.

    Args:
        stations: Ordered stations of one run
        anchors: Codes treated as anchors

    Returns:
        Initialized AliasManager
    """
    anchor_set = {normalize_code(code) for code in anchors}
    manager = AliasManager(lambda code: code in anchor_set)
    manager.initialize(stations)
    return manager
