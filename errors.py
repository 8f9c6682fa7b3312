"""Error taxonomy shared by the schedule services and the HTTP layer."""


class ScheduleError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(ScheduleError):
    """Bad input: date format, rule ranges, missing fields. Never retried."""

    status_code = 400


class UnsupportedRecurrenceError(ValidationError):
    """A rule type with no defined occurrence semantics (e.g. ``custom``)."""


class NotFoundError(ScheduleError):
    status_code = 404


class ServerError(ScheduleError):
    status_code = 500
