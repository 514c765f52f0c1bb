# tests/test_recurrence_rules.py
"""
Recurrence engine (pure, no DB).

Календарь 2026: 1 января четверг, 6 марта пятница, 2 марта понедельник.
"""

from __future__ import annotations

from datetime import date, time, timedelta

import pytest

from shiftops.models.task_generator import TaskGenerator
from shiftops.rules.recurrence import (
    SkipReason,
    effective_month_day,
    effective_month_days,
    evaluate,
    period_key,
)
from shiftops.schemas.recurrence import GeneratorConfigError, RecurrenceRule

from tests.factories import CLOCK, local


def _rule(**overrides) -> RecurrenceRule:
    data = {
        "recurrence": "daily",
        "recurrence_time": time(10, 0),
        "deadline_time": time(18, 0),
        "start_date": local(2026, 1, 1),
    }
    data.update(overrides)
    return RecurrenceRule(**data)


def _eval(rule, now, cursor=None):
    return evaluate(rule, now, last_generated_at=cursor, clock=CLOCK)


# ============================================================================
# month day arithmetic
# ============================================================================


@pytest.mark.parametrize(
    "value, year, month, expected",
    [
        (-1, 2026, 1, 31),
        (-1, 2026, 2, 28),
        (-1, 2028, 2, 29),
        (-2, 2026, 4, 29),
        (31, 2026, 4, 30),
        (15, 2026, 2, 15),
        (-28, 2026, 2, 1),
        (-31, 2026, 2, None),
    ],
)
def test_effective_month_day(value, year, month, expected):
    assert effective_month_day(value, year, month) == expected


def test_clipped_values_collapse_to_one_day():
    assert effective_month_days((30, 31), 2026, 2) == {28}


# ============================================================================
# daily
# ============================================================================


def test_daily_generates_once_at_or_after_time():
    rule = _rule()

    occ = _eval(rule, local(2026, 3, 6, 10, 0), cursor=local(2026, 3, 5, 10, 5))
    assert occ.should_generate
    assert occ.appear_at == local(2026, 3, 6, 10, 0)
    assert occ.deadline_at == local(2026, 3, 6, 18, 0)
    assert occ.period_key == "2026-03-06"

    occ = _eval(rule, local(2026, 3, 6, 15, 0), cursor=local(2026, 3, 6, 10, 0))
    assert not occ.should_generate
    assert occ.skip_reason == SkipReason.ALREADY_GENERATED


def test_daily_before_time_is_not_due():
    occ = _eval(_rule(), local(2026, 3, 6, 9, 59))
    assert not occ.should_generate
    assert occ.skip_reason == SkipReason.BEFORE_TIME


def test_cursor_day_is_business_day():
    # курсор 20:00 UTC 5 марта это уже 6 марта по бизнес-зоне
    cursor = local(2026, 3, 5, 20, 0) + timedelta(hours=5)
    assert CLOCK.local_date(cursor) == date(2026, 3, 6)

    occ = _eval(_rule(), local(2026, 3, 6, 11, 0), cursor=cursor)
    assert occ.skip_reason == SkipReason.ALREADY_GENERATED


def test_deadline_rolls_over_midnight():
    rule = _rule(recurrence_time=time(22, 0), deadline_time=time(2, 0))
    occ = _eval(rule, local(2026, 3, 6, 22, 30))
    assert occ.should_generate
    assert occ.deadline_at == local(2026, 3, 7, 2, 0)


# ============================================================================
# weekly
# ============================================================================


def test_weekly_friday_example():
    rule = _rule(
        recurrence="weekly",
        days_of_week=[5],
        start_date=local(2026, 3, 6) - timedelta(days=30),
    )

    first = _eval(rule, local(2026, 3, 6, 11, 0))
    assert first.should_generate
    assert first.appear_at == local(2026, 3, 6, 10, 0)
    assert first.deadline_at == local(2026, 3, 6, 18, 0)
    assert first.period_key == "2026-W10"

    again = _eval(rule, local(2026, 3, 6, 15, 0), cursor=local(2026, 3, 6, 11, 0))
    assert not again.should_generate
    assert again.skip_reason == SkipReason.ALREADY_GENERATED

    tuesday = _eval(rule, local(2026, 3, 10, 11, 0), cursor=local(2026, 3, 6, 11, 0))
    assert tuesday.skip_reason == SkipReason.DAY_MISMATCH

    next_friday = _eval(rule, local(2026, 3, 13, 11, 0), cursor=local(2026, 3, 6, 11, 0))
    assert next_friday.should_generate
    assert next_friday.period_key == "2026-W11"


def test_weekly_several_days_each_day_is_its_own_period():
    rule = _rule(recurrence="weekly", days_of_week=[1, 5])

    occ = _eval(rule, local(2026, 3, 6, 11, 0), cursor=local(2026, 3, 2, 11, 0))
    assert occ.should_generate
    assert occ.period_key == "2026-03-06"


def test_days_of_week_are_deduplicated_and_sorted():
    assert _rule(recurrence="weekly", days_of_week=[5, 1, 5]).days_of_week == (1, 5)


# ============================================================================
# monthly
# ============================================================================


def test_monthly_last_day_generates_on_jan_31_and_feb_28():
    rule = _rule(recurrence="monthly", days_of_month=[-1])

    jan = _eval(rule, local(2026, 1, 31, 10, 30))
    assert jan.should_generate
    assert jan.period_key == "2026-01"

    feb_27 = _eval(rule, local(2026, 2, 27, 10, 30), cursor=local(2026, 1, 31, 10, 30))
    assert feb_27.skip_reason == SkipReason.DAY_MISMATCH

    feb_28 = _eval(rule, local(2026, 2, 28, 10, 30), cursor=local(2026, 1, 31, 10, 30))
    assert feb_28.should_generate
    assert feb_28.period_key == "2026-02"


def test_monthly_last_day_in_leap_year():
    rule = _rule(recurrence="monthly", days_of_month=[-1], start_date=local(2028, 1, 1))

    assert _eval(rule, local(2028, 2, 28, 10, 30)).skip_reason == SkipReason.DAY_MISMATCH
    assert _eval(rule, local(2028, 2, 29, 10, 30)).should_generate


def test_monthly_positive_day_clips_to_month_end():
    rule = _rule(recurrence="monthly", days_of_month=[31])
    assert _eval(rule, local(2026, 4, 30, 10, 30)).should_generate


def test_monthly_negative_before_day_one_never_matches():
    rule = _rule(recurrence="monthly", days_of_month=[-31])
    for day in range(1, 29):
        assert not _eval(rule, local(2026, 2, day, 10, 30)).should_generate


def test_monthly_several_trigger_days_yield_one_instance_each():
    rule = _rule(recurrence="monthly", days_of_month=[1, 15])

    occ = _eval(rule, local(2026, 3, 15, 10, 30), cursor=local(2026, 3, 1, 10, 30))
    assert occ.should_generate
    assert occ.period_key == "2026-03-15"


def test_monthly_period_key_with_clipped_duplicates_is_month():
    rule = _rule(recurrence="monthly", days_of_month=[30, 31])
    assert period_key(rule, date(2026, 2, 28)) == "2026-02"
    assert period_key(rule, date(2026, 3, 30)) == "2026-03-30"


# ============================================================================
# validity window / flags
# ============================================================================


def test_start_date_is_day_inclusive():
    rule = _rule(start_date=local(2026, 3, 6, 15, 0))

    assert _eval(rule, local(2026, 3, 6, 10, 30)).should_generate
    assert _eval(rule, local(2026, 3, 5, 10, 30)).skip_reason == SkipReason.BEFORE_START


def test_end_date_is_day_inclusive():
    rule = _rule(end_date=local(2026, 3, 6, 8, 0))

    assert _eval(rule, local(2026, 3, 6, 23, 0)).should_generate
    assert _eval(rule, local(2026, 3, 7, 10, 30)).skip_reason == SkipReason.AFTER_END


def test_inactive_and_none_are_never_due():
    now = local(2026, 3, 6, 11, 0)
    assert _eval(_rule(is_active=False), now).skip_reason == SkipReason.INACTIVE
    assert _eval(_rule(recurrence="none"), now).skip_reason == SkipReason.NOT_RECURRING


# ============================================================================
# config errors
# ============================================================================


def _generator(**overrides) -> TaskGenerator:
    data = {
        "title": "g",
        "recurrence": "daily",
        "recurrence_time": time(10, 0),
        "deadline_time": time(18, 0),
        "start_date": local(2026, 1, 1),
        "is_active": True,
    }
    data.update(overrides)
    return TaskGenerator(**data)


@pytest.mark.parametrize(
    "overrides",
    [
        {"recurrence": "hourly"},
        {"recurrence": "weekly", "recurrence_days_of_week": []},
        {"recurrence": "weekly", "recurrence_days_of_week": [0]},
        {"recurrence": "weekly", "recurrence_days_of_week": [8]},
        {"recurrence": "monthly", "recurrence_days_of_month": None},
        {"recurrence": "monthly", "recurrence_days_of_month": [0]},
        {"recurrence": "monthly", "recurrence_days_of_month": [32]},
        {"recurrence": "monthly", "recurrence_days_of_month": "15"},
        {"recurrence": "monthly", "recurrence_days_of_month": 15},
        {"recurrence": "weekly", "recurrence_days_of_week": 5},
        {"recurrence": "weekly", "recurrence_days_of_week": ["5"]},
        {"recurrence": "weekly", "recurrence_days_of_week": [True]},
        {"recurrence_time": None},
        {"end_date": local(2025, 12, 1)},
    ],
)
def test_broken_definition_is_config_error(overrides):
    with pytest.raises(GeneratorConfigError):
        RecurrenceRule.from_generator(_generator(**overrides))


def test_valid_definition_builds_rule():
    rule = RecurrenceRule.from_generator(
        _generator(recurrence="monthly", recurrence_days_of_month=[-1, 15])
    )
    assert rule.days_of_month == (-1, 15)


def test_day_string_is_not_split_into_digits():
    # "15" must not become days (1, 5) and fire on the 5th
    with pytest.raises(GeneratorConfigError, match="list of day numbers"):
        RecurrenceRule.from_generator(
            _generator(recurrence="monthly", recurrence_days_of_month="15")
        )
