"""
Runtime configuration for the schedule API.

Values come from the environment, optionally seeded from a local .env file.
"""
import logging
import os

from dotenv import load_dotenv

load_dotenv(override=False)

DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME")

APP_ENV = os.getenv("APP_ENV", "production")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
PORT = int(os.getenv("PORT", 8000))

CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

# Horizon used by POST /schedule/recurring when the body omits daysAhead
RECURRING_DAYS_AHEAD = int(os.getenv("RECURRING_DAYS_AHEAD", 90))
MAX_DAYS_AHEAD = 365

LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


def is_development() -> bool:
    return APP_ENV.lower() == "development"


def configure_logging(level: str = LOG_LEVEL) -> None:
    """Configure the root logger once; later calls only adjust the level."""
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(level=level, format=LOG_FORMAT)
    root.setLevel(level)
