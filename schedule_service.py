"""
Read side of the schedule: the persisted document for a date merged with
recurring occurrences that were never materialized for it.
"""
import logging
from typing import Iterable, List, Optional

from pymongo.database import Database

import database
from errors import UnsupportedRecurrenceError
from recurrence import make_instance, occurs_on, parse_day, series_origin
from schemas import Schedule, ScheduleBlock

logger = logging.getLogger(__name__)


def merge_schedule(user_id: str, day: str, persisted: Optional[Schedule],
                   recurring_docs: Iterable[Schedule]) -> Schedule:
    """Combine ``persisted`` with occurrences of every origin block in ``recurring_docs``.

    A series already present on the date (materialized or edited) wins over a
    reconstructed occurrence. The result is sorted by start time and is not
    persisted.
    """
    target = parse_day(day)
    blocks: List[ScheduleBlock] = list(persisted.blocks) if persisted else []
    seen = {b.series_key for b in blocks if b.series_key}

    for doc in recurring_docs:
        for block in doc.blocks:
            if not block.is_origin:
                continue
            key = block.series_key
            if key in seen:
                continue
            origin = series_origin(block, doc.date)
            if origin is None:
                continue
            try:
                matches = occurs_on(block.recurrence_rule, target, origin)
            except UnsupportedRecurrenceError as e:
                logger.warning("Skipping recurring block %s in %s: %s", block.id, doc.date, e)
                continue
            if matches:
                instance = make_instance(block, target)
                if instance.recurrence_id is None:
                    instance = instance.model_copy(update={"recurrence_id": key})
                blocks.append(instance)
                seen.add(key)

    blocks.sort(key=lambda b: b.start_time)
    return Schedule(
        id=persisted.id if persisted else None,
        user_id=user_id,
        date=day,
        blocks=blocks,
    )


def get_schedule_for_date(db: Database, user_id: str, day: str) -> Schedule:
    """Schedule for ``day`` including lazily reconstructed recurring occurrences.

    Never raises for a missing document; an empty block list comes back instead.
    """
    parse_day(day)
    persisted = database.find_schedule(db, user_id, day)
    recurring_docs = database.find_recurring_schedules(db, user_id)
    logger.debug("Merging %d recurring documents into %s for %s", len(recurring_docs), day, user_id)
    return merge_schedule(user_id, day, persisted, recurring_docs)
