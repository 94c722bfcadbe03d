"""
Tests for closure computation and tolerance verdicts.
"""
import math

import pytest

from traverse_tool.config.leveling_classes import BF_METHOD, CLASS_IV
from traverse_tool.config.models import VerdictStatus
from traverse_tool.engine.closure import (
    ClosureCalculator, NO_DATA_TEXT, SELECT_PARAMETERS_TEXT, WITHIN_TEXT, EXCEEDED_TEXT
)


def test_closure_sign_symmetry(loop_stations):
    calc = ClosureCalculator()
    assert calc.closure(loop_stations, 1) == pytest.approx(-calc.closure(loop_stations, -1))


def test_closure_without_measurements(station_factory):
    calc = ClosureCalculator()
    assert calc.closure([], 1) is None
    assert calc.closure([station_factory(1, 0, 'A', None)], 1) is None


def test_two_station_loop(loop_stations):
    calc = ClosureCalculator()
    result = calc.evaluate(loop_stations, 1, 2, 0.030, class_option=CLASS_IV)

    assert result.closure == pytest.approx(0.0004)
    assert result.class_tolerance == pytest.approx(0.02 * math.sqrt(0.03))
    assert result.class_tolerance == pytest.approx(0.003464, abs=1e-6)
    assert result.allowable_closure == result.class_tolerance
    assert result.status == VerdictStatus.WITHIN_TOLERANCE
    assert result.is_within_tolerance is True
    assert result.verdict == f"{WITHIN_TEXT} Class IV: ok."


def test_allowable_is_minimum(loop_stations):
    calc = ClosureCalculator()
    result = calc.evaluate(loop_stations, 1, 2, 0.030, BF_METHOD, CLASS_IV)

    assert result.method_tolerance == pytest.approx(0.004 * math.sqrt(2))
    assert result.allowable_closure == pytest.approx(min(result.method_tolerance, result.class_tolerance))
    assert "Method BF: ok." in result.verdict


def test_exceeded(run_factory):
    stations = run_factory(1, [('A', '1', 0.510), ('1', 'A', -0.500)])
    result = ClosureCalculator().evaluate(stations, 1, 2, 0.030, BF_METHOD, CLASS_IV)

    assert result.status == VerdictStatus.EXCEEDED
    assert result.is_within_tolerance is False
    assert result.verdict.startswith(EXCEEDED_TEXT)
    assert "Class IV: exceeded." in result.verdict


def test_no_data():
    result = ClosureCalculator().evaluate([], 1, 0, 0.0, BF_METHOD, CLASS_IV)
    assert result.status == VerdictStatus.NO_DATA
    assert result.verdict == NO_DATA_TEXT
    assert result.is_within_tolerance is None


def test_no_tolerance_selected(loop_stations):
    result = ClosureCalculator().evaluate(loop_stations, 1, 2, 0.030)
    assert result.status == VerdictStatus.SELECT_PARAMETERS
    assert result.allowable_closure is None
    assert result.verdict == SELECT_PARAMETERS_TEXT


def test_classify_boundary():
    assert ClosureCalculator.classify(0.002, 0.002) == VerdictStatus.WITHIN_TOLERANCE
    assert ClosureCalculator.classify(-0.003, 0.002) == VerdictStatus.EXCEEDED
    assert ClosureCalculator.classify(None, 0.002) == VerdictStatus.NO_DATA
