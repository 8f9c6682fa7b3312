from datetime import date, timedelta

import pytest
from pydantic import ValidationError as PydanticValidationError

from conftest import make_block, make_origin
from errors import UnsupportedRecurrenceError, ValidationError
from recurrence import (
    apply_to_window,
    generate_instances,
    is_occurrence,
    make_instance,
    months_between,
    next_occurrence,
    occurs_on,
    weekday_number,
)
from schemas import RecurrenceRule


def rule(**kw) -> RecurrenceRule:
    return RecurrenceRule.model_validate(kw)


MON = date(2024, 1, 1)


def test_weekday_numbers_start_on_sunday():
    assert weekday_number(date(2024, 1, 7)) == 0
    assert weekday_number(MON) == 1
    assert weekday_number(date(2024, 1, 6)) == 6


def test_daily_matches_every_day_from_origin_only():
    r = rule(type="daily", interval=1)
    origin = date(2024, 3, 10)
    for offset in range(-5, 40):
        day = origin + timedelta(days=offset)
        assert is_occurrence(r, day, origin) is (offset >= 0)


def test_daily_interval():
    r = rule(type="daily", interval=3)
    assert is_occurrence(r, date(2024, 1, 4), MON)
    assert not is_occurrence(r, date(2024, 1, 3), MON)
    assert is_occurrence(r, date(2024, 1, 7), MON)


def test_weekly_days_of_week():
    r = rule(type="weekly", interval=1, daysOfWeek=[1, 3, 5])
    assert is_occurrence(r, date(2024, 1, 8), MON)
    assert not is_occurrence(r, date(2024, 1, 2), MON)
    assert is_occurrence(r, date(2024, 1, 3), MON)


def test_exception_removes_otherwise_matching_date():
    r = rule(type="weekly", interval=1, daysOfWeek=[1, 3, 5], exceptions=["2024-01-08"])
    assert not is_occurrence(r, date(2024, 1, 8), MON)
    assert is_occurrence(r, date(2024, 1, 10), MON)


def test_exception_compares_calendar_days():
    r = rule(type="daily", exceptions=["2024-01-08T00:00:00.000Z"])
    assert r.exceptions == [date(2024, 1, 8)]
    assert not is_occurrence(r, date(2024, 1, 8), MON)


def test_weekly_without_days_uses_origin_weekday():
    r = rule(type="weekly", interval=2)
    assert is_occurrence(r, date(2024, 1, 15), MON)
    assert not is_occurrence(r, date(2024, 1, 8), MON)
    assert not is_occurrence(r, date(2024, 1, 16), MON)


def test_monthly_same_day_of_month():
    r = rule(type="monthly", interval=2)
    origin = date(2024, 1, 15)
    assert is_occurrence(r, date(2024, 3, 15), origin)
    assert not is_occurrence(r, date(2024, 2, 15), origin)
    assert not is_occurrence(r, date(2024, 3, 16), origin)


def test_monthly_skips_short_months():
    r = rule(type="monthly")
    origin = date(2024, 1, 31)
    assert not is_occurrence(r, date(2024, 2, 29), origin)
    assert is_occurrence(r, date(2024, 3, 31), origin)


def test_months_between():
    assert months_between(date(2024, 3, 31), date(2024, 1, 31)) == 2
    assert months_between(date(2024, 2, 29), date(2024, 1, 31)) == 0
    assert months_between(date(2025, 1, 15), date(2024, 1, 15)) == 12


def test_end_date_is_inclusive():
    r = rule(type="daily", endDate="2024-01-05")
    assert is_occurrence(r, date(2024, 1, 5), MON)
    assert not is_occurrence(r, date(2024, 1, 6), MON)


def test_custom_rule_is_rejected():
    r = rule(type="custom")
    with pytest.raises(UnsupportedRecurrenceError):
        is_occurrence(r, MON, MON)


def test_predicate_ignores_occurrence_cap():
    r = rule(type="daily", endOccurrences=3)
    assert is_occurrence(r, date(2024, 1, 10), MON)
    assert occurs_on(r, date(2024, 1, 3), MON)
    assert not occurs_on(r, date(2024, 1, 4), MON)


@pytest.mark.parametrize("bad", [
    {"type": "daily", "interval": 0},
    {"type": "daily", "interval": 101},
    {"type": "weekly", "daysOfWeek": [7]},
    {"type": "daily", "endOccurrences": 366},
    {"type": "yearly"},
])
def test_rule_ranges_are_validated(bad):
    with pytest.raises(PydanticValidationError):
        RecurrenceRule.model_validate(bad)


def test_make_instance_strips_rule():
    origin = make_origin({"type": "daily"}, completed=True)
    inst = make_instance(origin, date(2024, 1, 5))
    assert inst.id == "run-2024-01-05"
    assert inst.original_date == date(2024, 1, 5)
    assert inst.completed is False
    assert inst.recurrence_rule is None
    assert inst.recurrence_id == "rec-run"
    assert inst.title == origin.title


def test_occurrence_cap_stops_enumeration():
    origin = make_origin({"type": "daily", "endOccurrences": 3})
    found = list(generate_instances(origin, MON, MON + timedelta(days=60)))
    assert [d for d, _ in found] == [date(2024, 1, 1), date(2024, 1, 2), date(2024, 1, 3)]


def test_occurrence_cap_on_weekly_rule():
    origin = make_origin({"type": "weekly", "daysOfWeek": [1, 3, 5], "endOccurrences": 4})
    days = [d for d, _ in generate_instances(origin, MON, MON + timedelta(days=60))]
    assert days == [date(2024, 1, 1), date(2024, 1, 3), date(2024, 1, 5), date(2024, 1, 8)]


def test_enumeration_stops_at_rule_end_date():
    origin = make_origin({"type": "daily", "endDate": "2024-01-04"})
    days = [d for d, _ in generate_instances(origin, MON, MON + timedelta(days=30))]
    assert days[-1] == date(2024, 1, 4)
    assert len(days) == 4


def test_non_recurring_block_yields_nothing():
    assert list(generate_instances(make_block(), MON, MON + timedelta(days=5))) == []


def test_origin_defaults_to_window_start():
    origin = make_origin({"type": "daily", "interval": 2}, origin=None)
    days = [d for d, _ in generate_instances(origin, date(2024, 1, 2), date(2024, 1, 6))]
    assert days == [date(2024, 1, 2), date(2024, 1, 4), date(2024, 1, 6)]


def test_apply_to_window_groups_by_date():
    origin = make_origin({"type": "weekly", "daysOfWeek": [1, 3]})
    plan = apply_to_window(origin, "2024-01-01", days_ahead=14)
    assert [d for d, _ in plan] == ["2024-01-01", "2024-01-03", "2024-01-08", "2024-01-10", "2024-01-15"]
    assert all(len(blocks) == 1 for _, blocks in plan)
    assert plan[1][1][0].id == "run-2024-01-03"


def test_apply_to_window_rejects_bad_start():
    with pytest.raises(ValidationError):
        apply_to_window(make_origin({"type": "daily"}), "01/01/2024")


def test_occurrence_cap_counts_from_origin_not_window():
    origin = make_origin({"type": "daily", "endOccurrences": 3})
    days = [d for d, _ in generate_instances(origin, date(2024, 1, 2), date(2024, 1, 10))]
    assert days == [date(2024, 1, 2), date(2024, 1, 3)]
    assert list(generate_instances(origin, date(2024, 1, 5), date(2024, 1, 10))) == []


def test_next_occurrence():
    origin = make_origin({"type": "weekly", "daysOfWeek": [1, 3], "exceptions": ["2024-01-03"]})
    assert next_occurrence(origin, date(2024, 1, 1)) == date(2024, 1, 8)
    capped = make_origin({"type": "daily", "endOccurrences": 2})
    assert next_occurrence(capped, date(2024, 1, 2)) is None
