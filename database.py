"""
MongoDB access for the schedule API.

The module-level ``db`` is connected from DATABASE_URL / DATABASE_NAME at import.
Helpers take the database explicitly so routes and tests can inject another one.
"""
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Union

from bson import ObjectId
from bson.errors import InvalidId
from pydantic import BaseModel
from pymongo import ASCENDING, MongoClient, ReturnDocument
from pymongo.database import Database

import config
from errors import ServerError, ValidationError
from schemas import Schedule, ScheduleBlock

SCHEDULE_COLLECTION = "schedule"

_client = None
db: Optional[Database] = None

if config.DATABASE_URL and config.DATABASE_NAME:
    _client = MongoClient(config.DATABASE_URL)
    db = _client[config.DATABASE_NAME]


def get_db() -> Database:
    if db is None:
        raise ServerError("Database not available. Check DATABASE_URL and DATABASE_NAME.")
    return db


def _now():
    return datetime.now(timezone.utc)


def to_object_id(value: str) -> ObjectId:
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        raise ValidationError("Invalid schedule id")


def create_document(database: Database, collection_name: str, data: Union[BaseModel, dict]) -> str:
    """Insert a single document with creation timestamps"""
    if isinstance(data, BaseModel):
        data_dict = data.model_dump(mode="json", by_alias=True, exclude_none=True)
    else:
        data_dict = data.copy()
    data_dict["created_at"] = _now()
    data_dict["updated_at"] = _now()
    result = database[collection_name].insert_one(data_dict)
    return str(result.inserted_id)


def ensure_indexes(database: Database) -> None:
    database[SCHEDULE_COLLECTION].create_index(
        [("userId", ASCENDING), ("date", ASCENDING)], unique=True
    )


# ------- Schedule documents -------

def _schedules(docs: Iterable[dict]) -> List[Schedule]:
    return [Schedule.from_mongo(d) for d in docs]


def find_schedule(database: Database, user_id: str, day: str) -> Optional[Schedule]:
    doc = database[SCHEDULE_COLLECTION].find_one({"userId": user_id, "date": day})
    return Schedule.from_mongo(doc) if doc else None


def find_schedule_by_id(database: Database, user_id: str, schedule_id: str) -> Optional[Schedule]:
    oid = to_object_id(schedule_id)
    doc = database[SCHEDULE_COLLECTION].find_one({"_id": oid, "userId": user_id})
    return Schedule.from_mongo(doc) if doc else None


def find_recurring_schedules(database: Database, user_id: str) -> List[Schedule]:
    """Every document of the user holding at least one recurring block"""
    docs = database[SCHEDULE_COLLECTION].find({"userId": user_id, "blocks.recurring": True})
    return _schedules(docs)


def find_series_schedules(database: Database, user_id: str, recurrence_id: str) -> List[Schedule]:
    """Every document of the user holding a block of the series, oldest first"""
    flt = {"userId": user_id, "blocks.recurrenceId": recurrence_id}
    docs = database[SCHEDULE_COLLECTION].find(flt).sort("date", ASCENDING)
    return _schedules(docs)


def find_user_schedules(database: Database, user_id: str) -> List[Schedule]:
    docs = database[SCHEDULE_COLLECTION].find({"userId": user_id}).sort("date", ASCENDING)
    return _schedules(docs)


def upsert_schedule(database: Database, user_id: str, day: str, blocks: List[ScheduleBlock]) -> Schedule:
    """Replace the blocks of the (user, date) document, creating it if needed"""
    now = _now()
    doc = database[SCHEDULE_COLLECTION].find_one_and_update(
        {"userId": user_id, "date": day},
        {
            "$set": {"blocks": [b.to_mongo() for b in blocks], "updated_at": now},
            "$setOnInsert": {"userId": user_id, "date": day, "created_at": now},
        },
        upsert=True,
        return_document=ReturnDocument.AFTER,
    )
    return Schedule.from_mongo(doc)


def save_blocks(database: Database, schedule: Schedule) -> None:
    """Persist the block list of an existing document"""
    database[SCHEDULE_COLLECTION].update_one(
        {"_id": to_object_id(schedule.id), "userId": schedule.user_id},
        {"$set": {"blocks": [b.to_mongo() for b in schedule.blocks], "updated_at": _now()}},
    )


def insert_schedule(database: Database, schedule: Schedule) -> Schedule:
    _id = create_document(database, SCHEDULE_COLLECTION, schedule.to_mongo())
    return schedule.model_copy(update={"id": _id})
