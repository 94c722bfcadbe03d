"""
Shared fixtures for traverse tool tests.
"""
import pytest

from traverse_tool.config.models import Station


def make_station(run_index, index, back, fore, delta_h=None, back_distance=15.0, fore_distance=15.0):
    return Station(
        run_index=run_index,
        index=index,
        back_code=back,
        fore_code=fore,
        back_distance=back_distance,
        fore_distance=fore_distance,
        delta_h=delta_h,
    )


def make_run(run_index, legs, **kwargs):
    """Stations from (back, fore, dH) legs."""
    return [
        make_station(run_index, i, back, fore, delta_h, **kwargs)
        for i, (back, fore, delta_h) in enumerate(legs)
    ]


@pytest.fixture
def station_factory():
    return make_station


@pytest.fixture
def run_factory():
    return make_run


@pytest.fixture
def loop_stations():
    """Two-station loop A -> 1 -> A, 30 m of back distance."""
    return make_run(1, [
        ('A', '1', 0.0123),
        ('1', 'A', -0.0119),
    ])


@pytest.fixture
def shared_runs():
    """Run 1 uses P1 and P2, run 2 uses P2 and P3."""
    return (
        make_run(1, [('P1', 'X', 0.1), ('X', 'P2', 0.2)])
        + make_run(2, [('P2', 'Y', 0.3), ('Y', 'P3', -0.1)])
    )
