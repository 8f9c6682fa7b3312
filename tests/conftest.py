"""Shared fixtures: block/rule factories and an in-memory Mongo."""
import mongomock
import pytest
from fastapi.testclient import TestClient

import database
from main import app
from schemas import RecurrenceRule, Schedule, ScheduleBlock

USER = "user-1"


def make_block(**overrides) -> ScheduleBlock:
    data = {
        "id": "block-1",
        "title": "Morning Run",
        "category": "physical",
        "start_time": "07:00",
        "end_time": "08:00",
    }
    data.update(overrides)
    return ScheduleBlock(**data)


def make_origin(rule: dict, origin: str = "2024-01-01", **overrides) -> ScheduleBlock:
    data = {
        "id": "run",
        "recurring": True,
        "recurrence_rule": RecurrenceRule.model_validate(rule),
        "recurrence_id": "rec-run",
        "original_date": origin,
    }
    data.update(overrides)
    return make_block(**data)


def make_schedule(day: str, blocks, schedule_id=None, user_id=USER) -> Schedule:
    return Schedule(id=schedule_id, user_id=user_id, date=day, blocks=list(blocks))


@pytest.fixture
def mongo_db():
    db = mongomock.MongoClient()["schedule_test"]
    database.ensure_indexes(db)
    return db


@pytest.fixture
def client(mongo_db):
    app.dependency_overrides[database.get_db] = lambda: mongo_db
    with TestClient(app) as c:
        c.headers.update({"X-User-Id": USER})
        yield c
    app.dependency_overrides.clear()
