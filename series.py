"""
Write side of the schedule: single-block and series-wide edits and deletes,
and bulk materialization of a recurring series.

The mutation functions at the top are pure: they take schedule documents and
return changed copies. The ``*_schedule_*`` / ``create_recurring_series``
functions below them read from and write to the store.

Series-wide writes are not transactional. Each document is saved on its own;
a failed save is logged and counted, and the remaining documents still go out.
"""
import logging
from datetime import date, datetime, timedelta, timezone
from typing import Dict, List, NamedTuple, Optional, Sequence, Tuple

from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel
from pymongo.database import Database
from pymongo.errors import PyMongoError

import config
import database
from errors import NotFoundError, ValidationError
from recurrence import apply_to_window, ensure_supported, next_occurrence, parse_day, series_origin
from schemas import RecurrenceRule, Schedule, ScheduleBlock, new_recurrence_id

logger = logging.getLogger(__name__)

IMMUTABLE_FIELDS = {"id", "recurrenceId"}
ORIGIN_ONLY_FIELDS = {"recurrenceRule"}


class MutationResult(NamedTuple):
    documents: List[Schedule]
    modified_count: int


class SeriesOutcome(NamedTuple):
    schedule: Optional[Schedule]
    modified: int
    failed: int


# ------- Pure mutations -------

def normalize_updates(updates: dict) -> dict:
    """Accept snake_case or camelCase keys; refuse identity changes."""
    if not isinstance(updates, dict) or not updates:
        raise ValidationError("updates must be a non-empty object")
    normalized = {(to_camel(k) if "_" in k else k): v for k, v in updates.items()}
    touched = IMMUTABLE_FIELDS.intersection(normalized)
    if touched:
        raise ValidationError(f"Cannot update {', '.join(sorted(touched))}")
    if normalized.get("recurrenceRule") is not None:
        try:
            rule = RecurrenceRule.model_validate(normalized["recurrenceRule"])
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid recurrence rule: {e.errors()[0]['msg']}")
        ensure_supported(rule)
        normalized["recurrenceRule"] = rule.model_dump(by_alias=True)
    return normalized


def merge_updates(block: ScheduleBlock, updates: dict) -> ScheduleBlock:
    data = block.model_dump(by_alias=True)
    data.update(updates)
    try:
        return ScheduleBlock.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid block update: {e.errors()[0]['msg']}")


def update_block(schedule: Schedule, block_id: str, updates: dict) -> Schedule:
    block = schedule.find_block(block_id)
    if block is None:
        raise NotFoundError("Block not found")
    if block.recurrence_id and not block.is_origin and updates.get("recurrenceRule") is not None:
        raise ValidationError("recurrenceRule can only be changed on the series origin")
    blocks = [merge_updates(b, updates) if b.id == block_id else b for b in schedule.blocks]
    return schedule.model_copy(update={"blocks": blocks})


def update_series(documents: Sequence[Schedule], recurrence_id: str, updates: dict,
                  today: date) -> MutationResult:
    """Apply ``updates`` to every open, not-yet-past instance of the series.

    Instances that are completed, or whose document date is before ``today``,
    keep their current values. Rule changes reach the origin block only.
    """
    cutoff = today.isoformat()
    instance_updates = {k: v for k, v in updates.items() if k not in ORIGIN_ONLY_FIELDS}
    changed = []
    for doc in documents:
        if doc.date < cutoff:
            continue
        blocks = []
        for b in doc.blocks:
            if b.recurrence_id == recurrence_id and not b.completed:
                b = merge_updates(b, updates if b.is_origin else instance_updates)
            blocks.append(b)
        if blocks != list(doc.blocks):
            changed.append(doc.model_copy(update={"blocks": blocks}))
    return MutationResult(changed, len(changed))


def delete_block(schedule: Schedule, block_id: str) -> Schedule:
    if schedule.find_block(block_id) is None:
        raise NotFoundError("Block not found")
    return schedule.model_copy(update={"blocks": [b for b in schedule.blocks if b.id != block_id]})


def delete_series(documents: Sequence[Schedule], recurrence_id: str,
                  anchor_date: str) -> MutationResult:
    """Remove the series from every document dated on or after ``anchor_date``."""
    changed = []
    for doc in documents:
        if doc.date < anchor_date:
            continue
        blocks = [b for b in doc.blocks if b.recurrence_id != recurrence_id]
        if len(blocks) < len(doc.blocks):
            changed.append(doc.model_copy(update={"blocks": blocks}))
    return MutationResult(changed, len(changed))


def _rewrite_origin_rules(documents: Sequence[Schedule], recurrence_id: str, rewrite,
                          before: Optional[str] = None) -> List[Schedule]:
    changed = []
    for doc in documents:
        if before is not None and doc.date >= before:
            continue
        blocks = [
            b.model_copy(update={"recurrence_rule": rewrite(b.recurrence_rule)})
            if b.is_origin and b.recurrence_id == recurrence_id else b
            for b in doc.blocks
        ]
        if blocks != list(doc.blocks):
            changed.append(doc.model_copy(update={"blocks": blocks}))
    return changed


def end_series_before(documents: Sequence[Schedule], recurrence_id: str,
                      anchor_date: str) -> List[Schedule]:
    """Origin documents dated before the anchor, with the rule ending the day before it.

    Keeps read-time reconstruction from bringing back a deleted tail.
    """
    last = parse_day(anchor_date) - timedelta(days=1)

    def cap(rule):
        if rule.end_date is not None and rule.end_date <= last:
            return rule
        return rule.model_copy(update={"end_date": last})

    return _rewrite_origin_rules(documents, recurrence_id, cap, before=anchor_date)


def skip_occurrence(documents: Sequence[Schedule], recurrence_id: str, day: str) -> List[Schedule]:
    """Origin documents with ``day`` added to the rule's exceptions."""
    skipped = parse_day(day)

    def add(rule):
        if skipped in rule.exceptions:
            return rule
        return rule.model_copy(update={"exceptions": sorted(rule.exceptions + [skipped])})

    return _rewrite_origin_rules(documents, recurrence_id, add)


def successor_origin(origin: ScheduleBlock, day: str) -> ScheduleBlock:
    """The origin with ``day`` excepted, pinned to its series start and key."""
    rule = origin.recurrence_rule
    skipped = parse_day(day)
    if skipped not in rule.exceptions:
        rule = rule.model_copy(update={"exceptions": sorted(rule.exceptions + [skipped])})
    return origin.model_copy(update={
        "recurrence_rule": rule,
        "recurrence_id": origin.series_key,
        "original_date": series_origin(origin, day),
    })


def place_origin(existing: Optional[Schedule], origin: ScheduleBlock, user_id: str, day: str) -> Schedule:
    """Document for ``day`` carrying ``origin``.

    A materialized occurrence of the series already on the date takes over the
    rule and keeps its own fields; otherwise the origin block is appended.
    """
    if existing is None:
        return Schedule(user_id=user_id, date=day, blocks=[origin])
    promoted = False
    blocks = []
    for b in existing.blocks:
        if not promoted and b.recurrence_id == origin.recurrence_id:
            b = b.model_copy(update={
                "recurring": True,
                "recurrence_rule": origin.recurrence_rule,
                "original_date": origin.original_date,
            })
            promoted = True
        blocks.append(b)
    if not promoted:
        if existing.find_block(origin.id) is not None:
            origin = origin.model_copy(update={"id": f"{origin.id}-{day}"})
        blocks.append(origin)
    return existing.model_copy(update={"blocks": blocks})


def new_series_blocks(existing: Optional[Schedule], blocks: Sequence[ScheduleBlock]) -> List[ScheduleBlock]:
    """Blocks not already on the date, by recurrenceId and by block id."""
    if existing is None:
        return list(blocks)
    present_series = {b.recurrence_id for b in existing.blocks if b.recurrence_id}
    present_ids = {b.id for b in existing.blocks}
    return [b for b in blocks if b.recurrence_id not in present_series and b.id not in present_ids]


def prepare_origin(block: ScheduleBlock, start_date: str) -> ScheduleBlock:
    if not block.recurring or block.recurrence_rule is None:
        raise ValidationError("Block must have recurring flag and recurrenceRule")
    ensure_supported(block.recurrence_rule)
    start = parse_day(start_date)
    return block.model_copy(update={
        "recurrence_id": block.recurrence_id or new_recurrence_id(),
        "original_date": block.original_date or start,
    })


def plan_series(block: ScheduleBlock, start_date: str,
                days_ahead: int = 30) -> Tuple[ScheduleBlock, List[Tuple[str, List[ScheduleBlock]]]]:
    """Origin block and the dated blocks to write for a new series.

    The first occurrence date receives the origin block itself (rule kept);
    later dates receive rule-less instances.
    """
    if days_ahead < 1 or days_ahead > config.MAX_DAYS_AHEAD:
        raise ValidationError(f"daysAhead must be between 1 and {config.MAX_DAYS_AHEAD}")
    origin = prepare_origin(block, start_date)
    plan = apply_to_window(origin, start_date, days_ahead)
    if plan:
        first_date, first_blocks = plan[0]
        plan[0] = (first_date, [origin] + first_blocks[1:])
    return origin, plan


def check_schedule_blocks(blocks: Sequence[ScheduleBlock]) -> None:
    ids = [b.id for b in blocks]
    if len(ids) != len(set(ids)):
        raise ValidationError("Block ids must be unique within a schedule")
    for b in blocks:
        if b.recurrence_rule is not None:
            ensure_supported(b.recurrence_rule)


# ------- Store-backed operations -------

def _persist_all(db: Database, documents: Sequence[Schedule]) -> Tuple[int, int]:
    modified = failed = 0
    for doc in documents:
        try:
            database.save_blocks(db, doc)
        except PyMongoError as e:
            failed += 1
            logger.warning("Failed to save schedule %s (%s): %s", doc.id, doc.date, e)
        else:
            modified += 1
    return modified, failed


def _load_anchor(db: Database, user_id: str, schedule_id: str, block_id: str) -> Tuple[Schedule, ScheduleBlock]:
    schedule = database.find_schedule_by_id(db, user_id, schedule_id)
    if schedule is None:
        raise NotFoundError("Schedule not found")
    block = schedule.find_block(block_id)
    if block is None:
        raise NotFoundError("Block not found")
    return schedule, block


def _hand_off_origin(db: Database, user_id: str, origin: ScheduleBlock, day: str) -> int:
    """Move a deleted origin onto the next occurrence so the series lives on.

    Returns the number of failed writes (0 or 1).
    """
    successor = successor_origin(origin, day)
    next_day = next_occurrence(successor, parse_day(day))
    if next_day is None:
        logger.info("Series %s has no occurrence after %s", successor.recurrence_id, day)
        return 0
    target = next_day.isoformat()
    try:
        existing = database.find_schedule(db, user_id, target)
        placed = place_origin(existing, successor, user_id, target)
        if existing is not None:
            database.save_blocks(db, placed)
        else:
            database.insert_schedule(db, placed)
    except PyMongoError as e:
        logger.warning("Failed to move series %s origin to %s: %s", successor.recurrence_id, target, e)
        return 1
    return 0


def save_schedule(db: Database, user_id: str, day: str, blocks: Sequence[ScheduleBlock]) -> Schedule:
    """Upsert the whole (user, date) document"""
    parse_day(day)
    check_schedule_blocks(blocks)
    return database.upsert_schedule(db, user_id, day, list(blocks))


def update_schedule_block(db: Database, user_id: str, schedule_id: str, block_id: str,
                          updates: dict, update_series_flag: bool = False,
                          today: Optional[date] = None) -> SeriesOutcome:
    updates = normalize_updates(updates)
    schedule, block = _load_anchor(db, user_id, schedule_id, block_id)

    if not update_series_flag or not block.recurring or not block.recurrence_id:
        updated = update_block(schedule, block_id, updates)
        database.save_blocks(db, updated)
        return SeriesOutcome(updated, 1, 0)

    if today is None:
        today = datetime.now(timezone.utc).date()
    documents = database.find_series_schedules(db, user_id, block.recurrence_id)
    result = update_series(documents, block.recurrence_id, updates, today)
    modified, failed = _persist_all(db, result.documents)
    logger.info("Updated series %s: %d modified, %d failed", block.recurrence_id, modified, failed)
    return SeriesOutcome(database.find_schedule_by_id(db, user_id, schedule_id), modified, failed)


def delete_schedule_block(db: Database, user_id: str, schedule_id: str, block_id: str,
                          delete_series_flag: bool = False) -> SeriesOutcome:
    schedule, block = _load_anchor(db, user_id, schedule_id, block_id)

    if not delete_series_flag or not block.recurring or not block.recurrence_id:
        updated = delete_block(schedule, block_id)
        database.save_blocks(db, updated)
        failed = 0
        if block.is_origin:
            failed = _hand_off_origin(db, user_id, block, schedule.date)
        elif block.recurrence_id:
            others = [d for d in database.find_series_schedules(db, user_id, block.recurrence_id)
                      if d.id != schedule.id]
            _, failed = _persist_all(db, skip_occurrence(others, block.recurrence_id, schedule.date))
        return SeriesOutcome(updated, 1, failed)

    documents = database.find_series_schedules(db, user_id, block.recurrence_id)
    result = delete_series(documents, block.recurrence_id, schedule.date)
    modified, failed = _persist_all(db, result.documents)
    _, origin_failed = _persist_all(db, end_series_before(documents, block.recurrence_id, schedule.date))
    failed += origin_failed
    logger.info("Deleted series %s from %s on: %d modified, %d failed",
                block.recurrence_id, schedule.date, modified, failed)
    return SeriesOutcome(database.find_schedule_by_id(db, user_id, schedule_id), modified, failed)


def create_recurring_series(db: Database, user_id: str, block: ScheduleBlock, start_date: str,
                            days_ahead: int = 30) -> dict:
    """Materialize a recurring block into per-date documents.

    Dates that already hold the series are left alone, so repeating the call
    adds nothing new.
    """
    origin, plan = plan_series(block, start_date, days_ahead)
    recurrence_id = origin.recurrence_id

    details: List[Dict[str, object]] = []
    failed = 0
    for day, blocks in plan:
        try:
            existing = database.find_schedule(db, user_id, day)
            added = new_series_blocks(existing, blocks)
            if not added:
                continue
            if existing is not None:
                database.save_blocks(db, existing.model_copy(update={"blocks": list(existing.blocks) + added}))
            else:
                database.insert_schedule(db, Schedule(user_id=user_id, date=day, blocks=added))
        except PyMongoError as e:
            failed += 1
            logger.warning("Failed to materialize series %s on %s: %s", recurrence_id, day, e)
            continue
        details.append({"date": day, "added": len(added)})

    logger.info("Materialized series %s for %s: %d dates", recurrence_id, user_id, len(details))
    return {
        "message": "Recurring task created successfully",
        "recurrenceId": recurrence_id,
        "schedulesUpdated": len(details),
        "failed": failed,
        "details": details,
    }
