# socit/tests/test_programs.py

from datetime import datetime, time, timedelta

import pytest

from socit.services.programs import clamp_soc, make_programs, round_soc, round_to_step


def _minutes(t: time) -> int:
    return t.hour * 60 + t.minute


def _is_sorted_cyclic(times: list[time]) -> bool:
    drops = sum(1 for a, b in zip(times, times[1:]) if b < a)
    return drops == 0


@pytest.mark.parametrize(
    "raw,expected",
    [(-5.0, 0), (-0.1, 0), (0.0, 0), (0.4, 0), (0.5, 1), (49.5, 50), (99.4, 99), (99.6, 100), (100.0, 100), (250.0, 100)],
)
def test_round_soc_clamps(raw, expected):
    assert round_soc(raw) == expected


def test_clamp_soc_prefers_current_value():
    assert clamp_soc(45, 30, 60) == 45
    assert clamp_soc(20, 30, 60) == 30
    assert clamp_soc(75, 30, 60) == 60


def test_round_to_step_nearest():
    step = timedelta(minutes=5)
    assert round_to_step(datetime(2024, 1, 1, 10, 2, 29), step) == datetime(2024, 1, 1, 10, 0)
    assert round_to_step(datetime(2024, 1, 1, 10, 2, 30), step) == datetime(2024, 1, 1, 10, 5)
    assert round_to_step(datetime(2024, 1, 1, 23, 58), step) == datetime(2024, 1, 2, 0, 0)


def test_programs_around_now():
    now = datetime(2024, 5, 1, 14, 37, 12)
    programs = make_programs(63.2, 40.0, now, 6)

    assert [p.time for p in programs] == [
        time(14, 25), time(14, 45), time(14, 50), time(14, 55), time(15, 0), time(15, 5)
    ]
    assert programs[0].soc == 63
    assert all(p.soc == 40 for p in programs[1:])


def test_programs_wrap_past_midnight():
    now = datetime(2024, 5, 1, 23, 51)
    programs = make_programs(70, 30, now, 6)

    times = [p.time for p in programs]
    assert _is_sorted_cyclic(times)
    # Block carrying the target is now at the end, just before midnight.
    assert programs[-1].time == time(23, 40)
    assert programs[-1].soc == 70
    assert times[0] == time(0, 0)


def test_programs_wrap_before_midnight_target():
    now = datetime(2024, 5, 1, 0, 4)
    programs = make_programs(70, 30, now, 6)

    times = [p.time for p in programs]
    assert _is_sorted_cyclic(times)
    target = [p for p in programs if p.soc == 70]
    assert [p.time for p in target] == [time(23, 55)]


def test_program_invariants_over_a_day():
    base = datetime(2024, 5, 1)
    for minute in range(0, 24 * 60, 7):
        now = base + timedelta(minutes=minute, seconds=13)
        programs = make_programs(55, 25, now, 6)
        times = [p.time for p in programs]
        assert _is_sorted_cyclic(times)

        target = next(p for p in programs if p.soc == 55)
        rounded = round_to_step(now, timedelta(minutes=5))
        diff = abs(_minutes(target.time) - _minutes(rounded.time()))
        diff = min(diff, 24 * 60 - diff)
        assert diff <= 10


def test_too_few_programs_rejected():
    with pytest.raises(ValueError):
        make_programs(50, 50, datetime(2024, 1, 1), 1)
