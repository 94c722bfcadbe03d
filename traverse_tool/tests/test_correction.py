"""
Tests for closure distribution.
"""
import numpy as np
import pytest

from traverse_tool.config.models import ClosureMode, CorrectionDisplayMode
from traverse_tool.config.settings import AdjustmentMode
from traverse_tool.engine.correction import CorrectionDistributor, distribute_closure


def lookup_from(heights):
    return lambda code: heights.get(code)


@pytest.fixture
def two_section_run(run_factory):
    """A -> B over five stations, then B -> C over five stations."""
    codes = ['A', '1', '2', '3', '4', 'B', '5', '6', '7', '8', 'C']
    deltas = [0.2004] * 5 + [-0.1002] * 5
    legs = [(codes[i], codes[i + 1], deltas[i]) for i in range(10)]
    return run_factory(1, legs)


def test_simple_loop(loop_stations):
    result = distribute_closure(loop_stations, {'a': 100.0})

    assert result.closure_mode == ClosureMode.SIMPLE
    assert result.distinct_anchor_count == 1
    assert result.closures == [pytest.approx(0.0004)]
    assert result.total_correction == pytest.approx(-0.0004, abs=1e-9)
    for station in loop_stations:
        assert station.correction == pytest.approx(-0.0002)
        assert station.baseline_correction == pytest.approx(-0.0002)
        assert station.correction_mode == CorrectionDisplayMode.SINGLE


def test_loop_without_known_height_is_closed(loop_stations):
    result = distribute_closure(loop_stations, {})
    assert result.closure_mode == ClosureMode.SIMPLE
    assert sum(s.correction for s in loop_stations) == pytest.approx(-0.0004, abs=1e-9)


def test_open_run(run_factory):
    stations = run_factory(1, [('A', '1', 0.5), ('1', '2', 0.3)])
    result = distribute_closure(stations, {'A': 10.0})

    assert result.closure_mode == ClosureMode.OPEN
    assert result.closures == [pytest.approx(0.8)]
    assert all(s.correction is None for s in stations)
    assert all(s.correction_mode == CorrectionDisplayMode.NONE for s in stations)


def test_adjustment_mode_forces_open(loop_stations):
    for mode in (AdjustmentMode.NONE, AdjustmentMode.NETWORK):
        result = distribute_closure(loop_stations, {'A': 100.0}, adjustment_mode=mode)
        assert result.closure_mode == ClosureMode.OPEN
        assert result.closures == [pytest.approx(0.0004)]
        assert all(s.correction is None for s in loop_stations)


def test_orientation_sign_flips_closure_only(loop_stations):
    result = distribute_closure(loop_stations, {'A': 100.0}, orientation_sign=-1.0)
    assert result.closures == [pytest.approx(-0.0004)]
    assert loop_stations[0].correction == pytest.approx(-0.0002)


def test_two_sections(two_section_run):
    heights = {'A': 100.0, 'B': 101.0, 'C': 100.5}
    result = distribute_closure(two_section_run, heights)

    assert result.closure_mode == ClosureMode.LOCAL
    assert result.distinct_anchor_count == 3
    assert result.closures == [pytest.approx(0.002), pytest.approx(-0.001)]

    first, second = two_section_run[:5], two_section_run[5:]
    assert sum(s.correction for s in first) == pytest.approx(-0.002, abs=1e-9)
    assert sum(s.correction for s in second) == pytest.approx(0.001, abs=1e-9)
    for station in first:
        assert station.correction == pytest.approx(-0.0004)
        assert station.correction_mode == CorrectionDisplayMode.LOCAL
    for station in second:
        assert station.correction == pytest.approx(0.0002)

    # Whole-run baseline closes the run to zero
    assert sum(s.baseline_correction for s in two_section_run) == pytest.approx(-0.501, abs=1e-9)


def test_section_heights_follow_corrections(two_section_run):
    distribute_closure(two_section_run, {'A': 100.0, 'B': 101.0, 'C': 100.5})
    height = 100.0
    for station in two_section_run[:5]:
        height += station.adjusted_delta_h
    assert height == pytest.approx(101.0)


def test_anchor_points(two_section_run):
    lookup = lookup_from({'A': 100.0, 'B': 101.0, 'C': 100.5})
    anchors = CorrectionDistributor.collect_anchor_points(two_section_run, lookup)

    assert [(a.index, a.code) for a in anchors] == [(0, 'A'), (5, 'B'), (10, 'C')]


def test_zero_length_split_equally(run_factory):
    stations = run_factory(
        1, [('A', '1', 0.0123), ('1', 'A', -0.0119)],
        back_distance=None, fore_distance=None
    )
    distribute_closure(stations, {'A': 100.0})
    assert [s.correction for s in stations] == [pytest.approx(-0.0002), pytest.approx(-0.0002)]


def test_virtual_station_not_corrected(run_factory, station_factory):
    stations = [station_factory(1, 0, 'A', None)] + run_factory(1, [
        ('A', '1', 0.0123), ('1', 'A', -0.0119)
    ])
    result = distribute_closure(stations, {'A': 100.0})

    assert stations[0].correction is None
    assert result.total_correction == pytest.approx(-0.0004, abs=1e-9)


def test_rounding_keeps_exact_sum():
    distributor = CorrectionDistributor()
    lengths = np.array([10.0, 20.0, 30.0, 40.0])

    for required in (0.0007, -0.0013, 0.00123, 0.00005):
        raw = lengths * (required / lengths.sum())
        rounded = distributor.round_corrections(raw, lengths, required)
        assert sum(rounded) == pytest.approx(required, abs=1e-9)


def test_rounding_ticks_go_to_longest_first():
    distributor = CorrectionDistributor()
    lengths = np.array([5.0, 30.0, 10.0, 30.0])

    rounded = distributor.round_corrections(np.zeros(4), lengths, 0.0003)
    assert rounded == [
        pytest.approx(0.0), pytest.approx(0.0001), pytest.approx(0.0001), pytest.approx(0.0001)
    ]


def test_rounding_ticks_cycle():
    distributor = CorrectionDistributor()
    rounded = distributor.round_corrections(np.zeros(2), np.array([10.0, 20.0]), 0.0005)
    assert rounded == [pytest.approx(0.0002), pytest.approx(0.0003)]


def test_empty_run():
    result = CorrectionDistributor().calculate([], lookup_from({}))
    assert result.corrections == []
    assert result.closures == []
