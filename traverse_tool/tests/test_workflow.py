"""
Tests for the full recomputation workflow.
"""
import logging
import math

import pytest

from traverse_tool.config.leveling_classes import BF_METHOD, FB_METHOD, CLASS_I, CLASS_IV
from traverse_tool.config.models import (
    Run, CalculationContext, ClosureMode, TraverseCalculationRequest, TraverseSystem, VerdictStatus
)
from traverse_tool.engine.errors import InvalidRequestError
from traverse_tool.engine.workflow import TraverseCalculationWorkflow, calculate_traverse


def test_two_station_loop(loop_stations):
    result = calculate_traverse(loop_stations, known_heights={'A': 100.0}, class_option=CLASS_IV)

    assert result.stations_count == 2
    assert result.total_back_distance == pytest.approx(30.0)
    assert result.total_average_distance == pytest.approx(30.0)
    assert result.closure.closure == pytest.approx(0.0004)
    assert result.closure.class_tolerance == pytest.approx(0.02 * math.sqrt(0.030))
    assert result.closure.status == VerdictStatus.WITHIN_TOLERANCE

    run = result.get_run(1)
    assert run.closure_mode == ClosureMode.SIMPLE
    assert run.closure == pytest.approx(0.0004)
    assert run.known_points_count == 1
    assert run.closure_result.is_within_tolerance

    stations = result.get_run_stations(1)
    assert sum(s.correction for s in stations) == pytest.approx(-0.0004, abs=1e-9)
    assert stations[0].fore_height == pytest.approx(100.0121)
    assert stations[1].fore_height == pytest.approx(100.0)
    assert stations[1].fore_height_raw == pytest.approx(100.0004)


def test_request_is_not_modified(loop_stations):
    runs = [Run(index=1)]
    request = TraverseCalculationRequest(
        stations=loop_stations,
        runs=runs,
        context=CalculationContext(known_heights={'A': 100.0}),
    )
    result = TraverseCalculationWorkflow().calculate(request)

    assert result.stations[0].correction is not None
    assert loop_stations[0].correction is None
    assert loop_stations[0].back_height is None
    assert runs[0].closures == []


def test_fb_method_flips_closure(loop_stations):
    result = calculate_traverse(loop_stations, known_heights={'A': 100.0}, method_option=FB_METHOD)
    assert result.closure.closure == pytest.approx(-0.0004)
    assert result.closure.method_tolerance == pytest.approx(0.004 * math.sqrt(2))


def test_shared_point_links_runs(shared_runs):
    result = calculate_traverse(shared_runs, known_heights={'P1': 10.0})

    assert [s.code for s in result.shared_points] == ['P2']
    assert result.connectivity.new_systems == []
    assert [s.id for s in result.systems] == ['system-default']
    assert result.systems[0].run_indexes == [1, 2]

    second = result.get_run(2)
    assert second.system_id == 'system-default'
    assert not second.is_relative_only
    assert second.shared_point_codes == ['P2']

    stations = result.get_run_stations(2)
    assert stations[0].back_height == pytest.approx(10.3)
    assert stations[0].is_back_height_known
    assert stations[1].fore_height == pytest.approx(10.5)


def test_disabling_shared_point_splits_systems(shared_runs, caplog):
    context = CalculationContext(known_heights={'P1': 10.0}).with_shared_point_disabled(
        'P2', ['Run 01', 'Run 02']
    )

    with caplog.at_level(logging.WARNING):
        result = calculate_traverse(shared_runs, context=context)

    assert len(result.connectivity.new_systems) == 1
    assert [s.id for s in result.systems] == ['system-default', 'system-auto-1']

    first, second = result.get_run(1), result.get_run(2)
    assert first.system_id == 'system-default'
    assert second.system_id == 'system-auto-1'
    assert not first.is_relative_only
    assert second.is_relative_only
    assert "reference" in caplog.text

    stations = result.get_run_stations(2)
    assert stations[0].back_height == pytest.approx(0.0)
    assert not stations[0].is_back_height_known
    assert stations[1].fore_height == pytest.approx(0.2)

    # Run 1 still reaches P2 from P1
    assert result.get_run_stations(1)[1].fore_height == pytest.approx(10.3)


def test_runs_wait_for_anchors(run_factory):
    stations = (
        run_factory(1, [('P2', 'Y', 0.3), ('Y', 'P3', -0.1)])
        + run_factory(2, [('P1', 'X', 0.1), ('X', 'P2', 0.2)])
    )
    result = calculate_traverse(stations, known_heights={'P1': 10.0})

    first = result.get_run(1)
    assert not first.is_relative_only
    assert result.get_run_stations(1)[1].fore_height == pytest.approx(10.5)
    assert first.propagation_converged


def test_benchmark_attributed_to_other_system(shared_runs):
    context = CalculationContext(
        known_heights={'P1': 10.0},
        benchmark_systems={'P1': 'elsewhere'},
    )
    result = calculate_traverse(
        shared_runs, context=context, auto_partition=False,
        systems=[TraverseSystem(id='elsewhere', name='Other', order=5)]
    )

    assert result.get_run(1).system_id == 'system-default'
    assert result.get_run(1).is_relative_only
    assert result.get_run_stations(1)[0].back_height == pytest.approx(0.0)


def test_inactive_runs_are_skipped(shared_runs):
    runs = [Run(index=1), Run(index=2, is_active=False)]
    result = calculate_traverse(shared_runs, runs=runs, known_heights={'P1': 10.0})

    assert result.stations_count == 2
    assert result.get_run(2).closure_result is None
    assert all(s.back_height is None for s in result.get_run_stations(2))


def test_arm_difference_tolerances(run_factory):
    stations = run_factory(1, [('A', '1', 0.5), ('1', '2', 0.2)])
    stations[0].back_distance, stations[0].fore_distance = 20.0, 19.0
    stations[1].back_distance, stations[1].fore_distance = 20.0, 20.3

    result = calculate_traverse(stations, known_heights={'A': 1.0}, class_option=CLASS_I)

    assert result.stations[0].is_arm_difference_exceeded
    assert not result.stations[1].is_arm_difference_exceeded
    run = result.get_run(1)
    assert run.arm_difference_accumulation == pytest.approx(0.7)
    assert not run.is_arm_difference_accumulation_exceeded
    assert run.total_distance_back == pytest.approx(40.0)


def test_invalid_orientation_sign(loop_stations):
    with pytest.raises(InvalidRequestError):
        calculate_traverse(loop_stations, orientation_sign=0.5)


def test_unknown_run_rejected(loop_stations):
    with pytest.raises(InvalidRequestError):
        calculate_traverse(loop_stations, runs=[Run(index=7)])


def test_dataframes(loop_stations):
    result = calculate_traverse(
        loop_stations, known_heights={'A': 100.0}, method_option=BF_METHOD, class_option=CLASS_IV
    )

    stations_df = result.stations_to_dataframe()
    assert len(stations_df) == 2
    assert stations_df['ForeHeight'].iloc[-1] == pytest.approx(100.0)

    runs_df = result.runs_to_dataframe()
    assert runs_df['ClosureMode'].tolist() == ['simple']
    assert runs_df['Verdict'].iloc[0].startswith("Overall: within tolerance.")


def test_unanchored_multi_run_system_resolves_relative(run_factory, caplog):
    stations = (
        run_factory(1, [('X', 'Y', 0.3)])
        + run_factory(2, [('Y', 'Z', 0.2)])
    )

    with caplog.at_level(logging.WARNING):
        result = calculate_traverse(stations, known_heights={})

    assert [s.id for s in result.systems] == ['system-default']
    relative = [run.index for run in result.runs if run.is_relative_only]
    assert relative == [1]
    assert caplog.text.count("as reference") == 1

    first = result.get_run_stations(1)
    assert first[0].back_height == pytest.approx(0.0)
    assert first[0].fore_height == pytest.approx(0.3)

    second = result.get_run_stations(2)
    assert second[0].back_height == pytest.approx(0.3)
    assert second[0].is_back_height_known
    assert second[0].fore_height == pytest.approx(0.5)
    assert result.get_run(2).closures == [pytest.approx(0.2)]


def test_run_station_count_ignores_virtual_stations(station_factory):
    stations = [station_factory(1, 0, 'A', None)] + [
        station_factory(1, i + 1, back, fore, delta_h)
        for i, (back, fore, delta_h) in enumerate([('A', '1', 0.0123), ('1', 'A', -0.0119)])
    ]
    result = calculate_traverse(stations, known_heights={'A': 100.0}, method_option=BF_METHOD)

    run = result.get_run(1)
    assert run.station_count == 2
    assert run.closure_result.method_tolerance == pytest.approx(0.004 * math.sqrt(2))
