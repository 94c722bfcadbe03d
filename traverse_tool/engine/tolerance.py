"""
Tolerance Calculator Module

Allowable closure formulas for leveling traverses.

    By station count:  Tolerance = k × √max(n, 1)
    By length:         Tolerance = k × √max(L_km, 1e-6)

The clamps keep empty or zero-length traverses from getting a zero tolerance.
"""
from typing import Optional, Union
import math
import logging

from ..config.settings import ToleranceMode, get_settings
from ..config.leveling_classes import ToleranceOption
from .errors import ToleranceInputError


logger = logging.getLogger(__name__)

CoefficientSource = Union[ToleranceOption, float]


def _coefficient(source: CoefficientSource) -> float:
    if isinstance(source, ToleranceOption):
        return source.coefficient
    return float(source)


class ToleranceCalculator:
    """Stateless tolerance formulas."""

    def __init__(self, config=None):
        self.config = config or get_settings().engine

    def by_station_count(self, station_count: int, source: CoefficientSource) -> float:
        """
        Tolerance from the number of stations.

        Args:
            station_count: Number of stations (n >= 0)
            source: Tolerance option or bare coefficient

        Returns:
            Tolerance in the coefficient's unit (meters)

        Raises:
            ToleranceInputError: If station_count is negative
        """
        if station_count < 0:
            raise ToleranceInputError(f"Station count cannot be negative: {station_count}")

        n = max(station_count, self.config.min_station_count)
        return _coefficient(source) * math.sqrt(n)

    def by_length(self, length_km: float, source: CoefficientSource) -> float:
        """
        Tolerance from the traverse length.

        Args:
            length_km: Traverse length in kilometers (L >= 0)
            source: Tolerance option or bare coefficient

        Returns:
            Tolerance in the coefficient's unit (meters)

        Raises:
            ToleranceInputError: If length_km is negative
        """
        if length_km < 0:
            raise ToleranceInputError(f"Length cannot be negative: {length_km}")

        length = max(length_km, self.config.min_length_km)
        return _coefficient(source) * math.sqrt(length)

    def for_option(
        self,
        option: Optional[ToleranceOption],
        station_count: int,
        length_km: float
    ) -> Optional[float]:
        """Dispatch on the option's mode; None when no option is selected."""
        if option is None:
            return None

        if option.mode == ToleranceMode.BY_STATION_COUNT:
            return self.by_station_count(station_count, option)
        if option.mode == ToleranceMode.BY_LENGTH:
            return self.by_length(length_km, option)

        logger.warning(f"Unsupported tolerance mode for {option.code}: {option.mode}")
        return None


def calculate_tolerance(
    option: Optional[ToleranceOption],
    station_count: int,
    length_km: float
) -> Optional[float]:
    """
    Convenience function for a one-off tolerance.

    Args:
        option: Method or class tolerance option
        station_count: Number of stations
        length_km: Traverse length in kilometers

    Returns:
        Tolerance in meters, or None without an option
    """
    return ToleranceCalculator().for_option(option, station_count, length_km)
