import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.database import Database
from pymongo.errors import PyMongoError

import config
import database
import planner
import schedule_service
import series
from errors import ScheduleError
from schemas import (
    BlockDeleteRequest,
    BlockUpdateRequest,
    GenerateRequest,
    RecurringRequest,
    SchedulePayload,
    is_valid_date_string,
)

config.configure_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if database.db is not None:
        database.ensure_indexes(database.db)
    yield


app = FastAPI(title="Schedule API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ------- Helpers -------

def get_user_id(x_user_id: Optional[str] = Header(None)) -> str:
    # Token verification happens upstream; we only receive the verified id
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Please authenticate")
    return x_user_id


def server_error(exc: Exception) -> JSONResponse:
    body = {"detail": "Server error"}
    if config.is_development():
        body["error"] = str(exc)
    return JSONResponse(status_code=500, content=body)


@app.exception_handler(ScheduleError)
def handle_schedule_error(request: Request, exc: ScheduleError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return server_error(exc)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.exception_handler(RequestValidationError)
def handle_request_validation(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content={"detail": jsonable_encoder(exc.errors())})


@app.exception_handler(PyMongoError)
def handle_store_error(request: Request, exc: PyMongoError):
    logger.exception("Store error on %s %s", request.method, request.url.path)
    return server_error(exc)


@app.exception_handler(Exception)
def handle_unexpected(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return server_error(exc)


# ------- Health/Test -------
@app.get("/")
def read_root():
    return {"message": "Schedule backend running"}


@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": "✅ Set" if config.DATABASE_URL else "❌ Not Set",
        "database_name": config.DATABASE_NAME or "❌ Not Set",
        "connection_status": "Not Connected",
        "collections": [],
    }
    try:
        if database.db is not None:
            response["connection_status"] = "Connected"
            response["collections"] = database.db.list_collection_names()[:10]
            response["database"] = "✅ Connected & Working"
        else:
            response["database"] = "⚠️ Available but not initialized"
    except PyMongoError as e:
        response["database"] = f"❌ Error: {str(e)[:80]}"
    return response


# ------- Schedule -------
@app.get("/schedule/debug/recurring")
def debug_recurring(user_id: str = Depends(get_user_id), db: Database = Depends(database.get_db)):
    schedules = database.find_user_schedules(db, user_id)
    tasks = []
    for schedule in schedules:
        for block in schedule.blocks:
            if block.recurring or block.recurrence_id or block.recurrence_rule:
                tasks.append({
                    "date": schedule.date,
                    "title": block.title,
                    "recurring": block.recurring,
                    "recurrenceId": block.recurrence_id,
                    "hasRecurrenceRule": block.recurrence_rule is not None,
                    "recurrenceRuleType": block.recurrence_rule.type if block.recurrence_rule else None,
                })
    return {
        "totalSchedules": len(schedules),
        "recurringTasksFound": len(tasks),
        "recurringTasks": tasks,
    }


@app.get("/schedule/{date}")
def get_schedule(date: str, user_id: str = Depends(get_user_id), db: Database = Depends(database.get_db)):
    if not is_valid_date_string(date):
        raise HTTPException(status_code=400, detail="Invalid date format. Use YYYY-MM-DD")
    return schedule_service.get_schedule_for_date(db, user_id, date).to_response()


@app.post("/schedule")
def save_schedule(payload: SchedulePayload, user_id: str = Depends(get_user_id),
                  db: Database = Depends(database.get_db)):
    schedule = series.save_schedule(db, user_id, payload.date, payload.blocks)
    return schedule.to_response()


@app.put("/schedule")
def update_block(payload: BlockUpdateRequest, user_id: str = Depends(get_user_id),
                 db: Database = Depends(database.get_db)):
    outcome = series.update_schedule_block(
        db, user_id, payload.schedule_id, payload.block_id, payload.updates,
        update_series_flag=payload.update_series,
        today=datetime.now(timezone.utc).date(),
    )
    return {
        "schedule": outcome.schedule.to_response() if outcome.schedule else None,
        "modified": outcome.modified,
        "failed": outcome.failed,
    }


@app.delete("/schedule")
def delete_block(payload: BlockDeleteRequest, user_id: str = Depends(get_user_id),
                 db: Database = Depends(database.get_db)):
    outcome = series.delete_schedule_block(
        db, user_id, payload.schedule_id, payload.block_id,
        delete_series_flag=payload.delete_series or payload.delete_all_occurrences,
    )
    return {
        "schedule": outcome.schedule.to_response() if outcome.schedule else None,
        "modified": outcome.modified,
        "failed": outcome.failed,
        "message": f"Deleted block from {outcome.modified} schedule(s)",
    }


@app.post("/schedule/recurring")
def create_recurring(payload: RecurringRequest, user_id: str = Depends(get_user_id),
                     db: Database = Depends(database.get_db)):
    days_ahead = payload.days_ahead or config.RECURRING_DAYS_AHEAD
    return series.create_recurring_series(db, user_id, payload.block, payload.start_date, days_ahead)


@app.post("/schedule/generate")
def generate_schedule(payload: GenerateRequest, user_id: str = Depends(get_user_id),
                      db: Database = Depends(database.get_db)):
    blocks = planner.generate_blocks(payload.goals)
    schedule = series.save_schedule(db, user_id, payload.date, blocks)
    return schedule.to_response()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=config.PORT)
