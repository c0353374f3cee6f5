from enum import Enum

from pydantic import BaseModel, Field, field_validator

from campus_reminder.models.storage import PatchModel, StorageModel


class FeedbackStatusEnum(str, Enum):
    """
    Review status of a feedback.

    Expected to move forward only, pending then reviewed then resolved, but any status can be set.
    """

    PENDING = "pending"
    RESOLVED = "resolved"
    REVIEWED = "reviewed"


def _check_required(value: str, label: str) -> str:
    value = value.strip()
    if not value:
        raise ValueError(f"{label} is required")
    return value


class FeedbackModel(StorageModel):
    # Immutable fields
    created_at: str = Field(frozen=True)
    id: int = Field(frozen=True)
    user_id: int = Field(frozen=True)
    # Editable fields
    message: str
    status: FeedbackStatusEnum = FeedbackStatusEnum.PENDING
    subject: str
    updated_at: str


class FeedbackCreateModel(StorageModel):
    message: str
    subject: str
    user_id: int

    @field_validator("message")
    @classmethod
    def _validate_message(cls, message: str) -> str:
        return _check_required(message, "Message")

    @field_validator("subject")
    @classmethod
    def _validate_subject(cls, subject: str) -> str:
        return _check_required(subject, "Subject")


class FeedbackPatchModel(PatchModel):
    message: str | None = None
    status: FeedbackStatusEnum | None = None
    subject: str | None = None

    @field_validator("message")
    @classmethod
    def _validate_message(cls, message: str | None) -> str | None:
        return None if message is None else _check_required(message, "Message")

    @field_validator("subject")
    @classmethod
    def _validate_subject(cls, subject: str | None) -> str | None:
        return None if subject is None else _check_required(subject, "Subject")


class FeedbackStatsModel(BaseModel):
    pending: int = 0
    resolved: int = 0
    reviewed: int = 0
    total: int = 0
