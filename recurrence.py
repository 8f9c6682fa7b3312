"""
Recurrence rules: occurrence test and instance enumeration.

``is_occurrence`` is the single definition of which calendar days belong to a
series. Lazy reconstruction (schedule_service) and eager materialization
(``generate_instances`` / ``apply_to_window``) both go through it.

Weekday numbers follow the stored convention: 0 = Sunday ... 6 = Saturday.
"""
from collections import OrderedDict
from datetime import date, timedelta
from typing import Iterator, List, Optional, Tuple

from dateutil.relativedelta import relativedelta

from errors import UnsupportedRecurrenceError, ValidationError
from schemas import RecurrenceRule, ScheduleBlock, is_valid_date_string

SUPPORTED_TYPES = ("daily", "weekly", "monthly")


def parse_day(value: str) -> date:
    if not is_valid_date_string(value):
        raise ValidationError("Invalid date format. Use YYYY-MM-DD")
    return date.fromisoformat(value)


def weekday_number(day: date) -> int:
    return (day.weekday() + 1) % 7


def days_between(later: date, earlier: date) -> int:
    return (later - earlier).days


def weeks_between(later: date, earlier: date) -> int:
    return days_between(later, earlier) // 7


def months_between(later: date, earlier: date) -> int:
    """Whole calendar months from ``earlier`` to ``later`` (negative if reversed)."""
    delta = relativedelta(later, earlier)
    return delta.years * 12 + delta.months


def daterange(start: date, end: date) -> Iterator[date]:
    day = start
    while day <= end:
        yield day
        day += timedelta(days=1)


def ensure_supported(rule: RecurrenceRule) -> None:
    if rule.type not in SUPPORTED_TYPES:
        raise UnsupportedRecurrenceError(f"Unsupported recurrence type: {rule.type}")


def _daily(rule: RecurrenceRule, day: date, origin: date) -> bool:
    d = days_between(day, origin)
    return d >= 0 and d % rule.interval == 0


def _weekly(rule: RecurrenceRule, day: date, origin: date) -> bool:
    w = weeks_between(day, origin)
    if w < 0 or w % rule.interval != 0:
        return False
    if rule.days_of_week:
        return weekday_number(day) in rule.days_of_week
    return day.weekday() == origin.weekday()


def _monthly(rule: RecurrenceRule, day: date, origin: date) -> bool:
    m = months_between(day, origin)
    if m < 0 or m % rule.interval != 0:
        return False
    return day.day == origin.day


_CHECKS = {
    "daily": _daily,
    "weekly": _weekly,
    "monthly": _monthly,
}


def is_occurrence(rule: RecurrenceRule, day: date, origin: date) -> bool:
    """Whether ``day`` belongs to the series that started on ``origin``.

    ``endOccurrences`` is not considered here; see ``occurs_on``.
    Raises UnsupportedRecurrenceError for rule types without semantics.
    """
    check = _CHECKS.get(rule.type)
    if check is None:
        raise UnsupportedRecurrenceError(f"Unsupported recurrence type: {rule.type}")
    if day < origin:
        return False
    if rule.end_date is not None and day > rule.end_date:
        return False
    if day in rule.exceptions:
        return False
    return check(rule, day, origin)


def occurs_on(rule: RecurrenceRule, day: date, origin: date) -> bool:
    """``is_occurrence`` plus the ``endOccurrences`` cap counted from ``origin``."""
    if not is_occurrence(rule, day, origin):
        return False
    if not rule.end_occurrences:
        return True
    matches = sum(1 for d in daterange(origin, day) if is_occurrence(rule, d, origin))
    return matches <= rule.end_occurrences


def make_instance(origin_block: ScheduleBlock, day: date) -> ScheduleBlock:
    """Concrete, rule-less occurrence of ``origin_block`` on ``day``."""
    return origin_block.model_copy(update={
        "id": f"{origin_block.id}-{day.isoformat()}",
        "original_date": day,
        "completed": False,
        "recurrence_rule": None,
    })


def generate_instances(origin_block: ScheduleBlock, window_start: date,
                       window_end: date) -> Iterator[Tuple[date, ScheduleBlock]]:
    """Yield ``(date, instance)`` for each occurrence inside the window.

    The series origin is ``origin_block.original_date``, or ``window_start``
    when the block has none. Occurrences are counted from the origin, so a
    window opening after it sees only what is left of the ``endOccurrences``
    cap; enumeration stops for good once the cap is reached.
    """
    rule = origin_block.recurrence_rule
    if rule is None:
        return
    ensure_supported(rule)

    origin = origin_block.original_date or window_start
    last = window_end
    if rule.end_date is not None and rule.end_date < last:
        last = rule.end_date

    count = 0
    for day in daterange(min(origin, window_start), last):
        if not is_occurrence(rule, day, origin):
            continue
        count += 1
        if rule.end_occurrences and count > rule.end_occurrences:
            return
        if day >= window_start:
            yield day, make_instance(origin_block, day)


def apply_to_window(origin_block: ScheduleBlock, start_date: str,
                    days_ahead: int = 30) -> List[Tuple[str, List[ScheduleBlock]]]:
    """Instances from ``start_date`` through ``start_date + days_ahead``, grouped by date."""
    start = parse_day(start_date)
    end = start + timedelta(days=days_ahead)

    by_date: "OrderedDict[str, List[ScheduleBlock]]" = OrderedDict()
    for day, block in generate_instances(origin_block, start, end):
        by_date.setdefault(day.isoformat(), []).append(block)
    return list(by_date.items())


def next_occurrence(origin_block: ScheduleBlock, after: date) -> Optional[date]:
    """First occurrence strictly after ``after``, looking at most ten years ahead."""
    horizon = after + relativedelta(years=10)
    for day, _ in generate_instances(origin_block, after + timedelta(days=1), horizon):
        return day
    return None


def series_origin(block: ScheduleBlock, fallback: str) -> Optional[date]:
    """Origin day of a stored origin block: its originalDate, else its document date."""
    if block.original_date is not None:
        return block.original_date
    if is_valid_date_string(fallback):
        return date.fromisoformat(fallback)
    return None
