import re
from datetime import date, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator

from campus_reminder.models.storage import PatchModel, StorageModel


class PriorityEnum(str, Enum):
    HIGH = "high"
    LOW = "low"
    MEDIUM = "medium"


def _check_title(value: str) -> str:
    value = value.strip()
    if not value:
        raise ValueError("Title is required")
    return value


_EXTENDED_DATE = re.compile(
    r"\d{4}-\d{2}-\d{2}([T ]\d{2}:\d{2}(:\d{2}(\.\d{1,6})?)?(Z|[+-]\d{2}:\d{2})?)?"
)
"""Forms SQLite date functions understand."""


def _check_due_date(value: str) -> str:
    """
    Accept an ISO 8601 date or date-time.

    Extended forms are kept as written. Basic (`20240115`) and week (`2024-W03-1`) forms are rewritten to the extended form, other date filters would not see them.
    """
    value = value.strip()
    if not value:
        raise ValueError("Due date is required")
    try:
        if _EXTENDED_DATE.fullmatch(value):
            datetime.fromisoformat(value)
            return value
        try:
            return date.fromisoformat(value).isoformat()
        except ValueError:
            return datetime.fromisoformat(value).isoformat()
    except ValueError as e:
        raise ValueError("Due date must be an ISO 8601 date or date-time") from e


class ReminderModel(StorageModel):
    # Immutable fields
    created_at: str = Field(frozen=True)
    id: int = Field(frozen=True)
    user_id: int = Field(frozen=True)
    # Editable fields
    description: str | None = None
    due_date: str
    is_completed: bool = False
    priority: PriorityEnum = PriorityEnum.MEDIUM
    title: str
    updated_at: str


class ReminderCreateModel(StorageModel):
    description: str | None = None
    due_date: str
    priority: PriorityEnum = PriorityEnum.MEDIUM
    title: str
    user_id: int

    @field_validator("title")
    @classmethod
    def _validate_title(cls, title: str) -> str:
        return _check_title(title)

    @field_validator("due_date")
    @classmethod
    def _validate_due_date(cls, due_date: str) -> str:
        return _check_due_date(due_date)


class ReminderPatchModel(PatchModel):
    description: str | None = None
    due_date: str | None = None
    is_completed: bool | None = None
    priority: PriorityEnum | None = None
    title: str | None = None

    @field_validator("title")
    @classmethod
    def _validate_title(cls, title: str | None) -> str | None:
        return None if title is None else _check_title(title)

    @field_validator("due_date")
    @classmethod
    def _validate_due_date(cls, due_date: str | None) -> str | None:
        return None if due_date is None else _check_due_date(due_date)

    def _to_storage(self, field: str, value: Any) -> Any:
        # SQLite has no boolean type
        if field == "is_completed":
            return 1 if value else 0
        return value


class UserStatsModel(BaseModel):
    completed_reminders: int = 0
    pending_reminders: int = 0
    total_reminders: int = 0
    weekly_reminders: int = 0
    """Reminders due in the last 7 days or later."""

    @property
    def completion_rate(self) -> int:
        """
        Percentage of completed reminders, from 0 to 100.
        """
        if not self.total_reminders:
            return 0
        return round(self.completed_reminders / self.total_reminders * 100)
