"""
Database Schemas for the schedule API

Each Pydantic model corresponds to one MongoDB collection (lowercased class name)
or to a request body. Field names are camelCase on the wire and in storage.
"""
import re
from datetime import date, datetime
from typing import Any, List, Literal, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
TIME_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"
DATE_PATTERN = r"^\d{4}-\d{2}-\d{2}$"

Category = Literal['physical', 'mental', 'financial', 'social', 'personal']
RuleType = Literal['daily', 'weekly', 'monthly', 'custom']


def is_valid_date_string(value: Any) -> bool:
    if not isinstance(value, str) or not DATE_RE.match(value):
        return False
    try:
        date.fromisoformat(value)
    except ValueError:
        return False
    return True


def to_day(value: Any) -> Any:
    """Truncate datetimes and ISO datetime strings to their calendar day."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, str) and len(value) > 10 and DATE_RE.match(value[:10]):
        return value[:10]
    return value


def new_block_id() -> str:
    return f"block-{uuid4().hex[:12]}"


def new_recurrence_id() -> str:
    return f"rec-{uuid4().hex}"


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    def to_mongo(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# -------- Schedule core schemas --------
class RecurrenceRule(CamelModel):
    """Which calendar dates belong to a series. Lives only on the origin block."""
    type: RuleType
    interval: int = Field(1, ge=1, le=100)
    days_of_week: Optional[List[int]] = None
    end_date: Optional[date] = None
    end_occurrences: Optional[int] = Field(None, ge=1, le=365)
    exceptions: List[date] = Field(default_factory=list)

    @field_validator('days_of_week')
    @classmethod
    def _weekdays_in_range(cls, v):
        if v is None:
            return v
        bad = [d for d in v if d < 0 or d > 6]
        if bad:
            raise ValueError(f"daysOfWeek must be within 0-6, got {bad}")
        return sorted(set(v))

    @field_validator('end_date', mode='before')
    @classmethod
    def _end_day(cls, v):
        return to_day(v)

    @field_validator('exceptions', mode='before')
    @classmethod
    def _exception_days(cls, v):
        if v is None:
            return []
        return [to_day(d) for d in v]


class ScheduleBlock(CamelModel):
    """One scheduled activity inside a per-date schedule document"""
    id: str = Field(default_factory=new_block_id, min_length=1)
    title: str = Field(..., min_length=1)
    category: Category
    start_time: str = Field(..., pattern=TIME_PATTERN, description="HH:MM")
    end_time: str = Field(..., pattern=TIME_PATTERN, description="HH:MM")
    completed: bool = False
    goal_id: Optional[str] = None
    tags: Optional[List[str]] = None
    recurring: bool = False
    recurrence_rule: Optional[RecurrenceRule] = None
    recurrence_id: Optional[str] = None
    original_date: Optional[date] = None

    @field_validator('original_date', mode='before')
    @classmethod
    def _original_day(cls, v):
        return to_day(v)

    @property
    def is_origin(self) -> bool:
        return self.recurring and self.recurrence_rule is not None

    @property
    def series_key(self) -> Optional[str]:
        return self.recurrence_id or (self.id if self.is_origin else None)


class Schedule(CamelModel):
    """Per-user, per-date schedule
    Collection: "schedule"
    """
    id: Optional[str] = None
    user_id: str
    date: str = Field(..., pattern=DATE_PATTERN, description="YYYY-MM-DD")
    blocks: List[ScheduleBlock] = Field(default_factory=list)

    @classmethod
    def from_mongo(cls, doc: dict) -> "Schedule":
        d = dict(doc)
        if d.get("_id") is not None:
            d["id"] = str(d.pop("_id"))
        return cls.model_validate(d)

    def to_mongo(self) -> dict:
        data = super().to_mongo()
        data.pop("id", None)
        return data

    def to_response(self) -> dict:
        data = self.model_dump(mode="json", by_alias=True, exclude_none=True)
        data.setdefault("id", None)
        return data

    def find_block(self, block_id: str) -> Optional[ScheduleBlock]:
        return next((b for b in self.blocks if b.id == block_id), None)

    def has_series(self, recurrence_id: str) -> bool:
        return any(b.recurrence_id == recurrence_id for b in self.blocks)


class GoalRef(CamelModel):
    """Minimal view of a goal used for schedule generation (goals live elsewhere)"""
    id: Optional[str] = None
    title: Optional[str] = None
    category: str


# -------- Request bodies --------
class SchedulePayload(CamelModel):
    date: str = Field(..., pattern=DATE_PATTERN)
    blocks: List[ScheduleBlock]


class BlockUpdateRequest(CamelModel):
    schedule_id: str = Field(..., min_length=1)
    block_id: str = Field(..., min_length=1)
    updates: dict
    update_series: bool = False


class BlockDeleteRequest(CamelModel):
    schedule_id: str = Field(..., min_length=1)
    block_id: str = Field(..., min_length=1)
    delete_series: bool = False
    delete_all_occurrences: bool = False


class RecurringRequest(CamelModel):
    block: ScheduleBlock
    start_date: str
    days_ahead: Optional[int] = Field(None, ge=1, le=365)


class GenerateRequest(CamelModel):
    date: str = Field(..., pattern=DATE_PATTERN)
    goals: List[GoalRef]
