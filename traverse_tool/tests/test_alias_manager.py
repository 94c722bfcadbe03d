"""
Tests for per-run point aliases.
"""
from traverse_tool.engine.alias_manager import AliasManager, RunHeightTracker, build_aliases


def test_repeated_code_gets_distinct_aliases(run_factory):
    stations = run_factory(1, [
        ('A', '5', 1.0),
        ('5', '6', 0.5),
        ('6', '5', -0.5),
        ('5', 'A', -1.0),
    ])
    aliases = build_aliases(stations, ['A'])

    assert aliases.get_alias(0, False) == '5'
    assert aliases.get_alias(1, True) == '5'
    assert aliases.get_alias(2, False) == '5 (2)'
    assert aliases.get_alias(3, True) == '5 (2)'

    fives = {r.alias for r in aliases.records if r.code == '5'}
    assert fives == {'5', '5 (2)'}
    assert aliases.is_copy_alias('5 (2)')
    assert not aliases.is_copy_alias('5')


def test_anchor_keeps_its_code(run_factory):
    stations = run_factory(1, [('A', '5', 1.0), ('5', 'A', -1.0), ('A', '7', 0.2)])
    aliases = build_aliases(stations, ['a'])

    assert aliases.get_alias(0, True) == 'A'
    assert aliases.get_alias(1, False) == 'A'
    assert aliases.get_alias(2, True) == 'A'
    assert aliases.get_record('A').occurrence == 0
    assert not aliases.is_copy_alias('A')


def test_k_visits_give_k_aliases(run_factory):
    legs = []
    for _ in range(4):
        legs.append(('T', 'X', 0.1))
        legs.append(('X', 'T', -0.1))
    aliases = build_aliases(run_factory(1, legs), [])

    t_aliases = {r.alias for r in aliases.records if r.code == 'T'}
    assert len(t_aliases) == 5  # start point plus four returns
    x_aliases = {r.alias for r in aliases.records if r.code == 'X'}
    assert len(x_aliases) == 4


def test_back_code_not_chaining_is_a_new_visit(run_factory):
    stations = run_factory(1, [('A', '5', 1.0), ('5', '6', 0.5), ('5', '8', 0.1)])
    aliases = build_aliases(stations, ['A'])

    assert aliases.get_alias(2, True) == '5 (2)'


def test_codes_are_case_insensitive(run_factory):
    stations = run_factory(1, [('a', 'rp1', 1.0), ('RP1 ', 'b', 0.5)])
    aliases = build_aliases(stations, ['A'])

    assert aliases.get_alias(0, True) == 'A'
    assert aliases.get_alias(0, False) == 'RP1'
    assert aliases.get_alias(1, True) == 'RP1'


def test_missing_fore_resets_chain(run_factory, station_factory):
    stations = [
        station_factory(1, 0, 'A', '5', 1.0),
        station_factory(1, 1, '5', None),
        station_factory(1, 2, '5', '6', 0.5),
    ]
    aliases = build_aliases(stations, ['A'])

    assert aliases.get_alias(1, True) == '5'
    assert aliases.get_alias(1, False) is None
    assert aliases.get_alias(2, True) == '5 (2)'


def test_register_alias_directly():
    manager = AliasManager(lambda code: code == 'BM')
    assert manager.register_alias('BM') == 'BM'
    assert manager.register_alias('BM') == 'BM'
    assert manager.register_alias('9') == '9'
    manager.register_station_alias(0, False, '9', '9')
    assert manager.register_alias('9', reuse_previous=True) == '9'
    assert manager.register_alias('9') == '9 (2)'


def test_height_tracker_reads_latest_value():
    raw = {'A': 100.0}
    tracker = RunHeightTracker(raw, {'A': 100.0})

    assert tracker.get_height('A') == 100.0
    assert not tracker.has_history('5')

    tracker.record_height('5', 101.0)
    tracker.record_height('5', 101.5)

    assert tracker.get_height('5') == 101.5
    assert tracker.has_history('5')
    assert raw['5'] == 101.0

    tracker.record_height('A', 99.0)
    assert raw['A'] == 100.0
    assert tracker.get_height(None) is None
