from enum import Enum
from typing import Generic, Literal, TypeVar

from pydantic import BaseModel, ValidationError

T = TypeVar("T")


class ErrorCodeEnum(str, Enum):
    CONFLICT = "conflict"
    """A unique value is already taken, e.g. an email address."""
    NO_UPDATES = "no_updates"
    """An update was requested without any field."""
    NOT_FOUND = "not_found"
    """The requested row does not exist."""
    NOT_INITIALIZED = "not_initialized"
    """The database was used before being initialized."""
    STORAGE = "storage"
    """The storage engine failed."""
    VALIDATION = "validation"
    """The input is malformed, it never reached the storage."""


class ErrorModel(BaseModel):
    code: ErrorCodeEnum
    details: str | None = None
    """Internal diagnostic, to be logged and never displayed."""
    message: str
    """Human readable message, suitable for direct display."""

    @staticmethod
    def from_validation(e: ValidationError) -> "ErrorModel":
        """
        Build a validation error listing every violated rule.
        """
        messages: list[str] = []
        for error in e.errors():
            # Custom validators raise ValueError, display the original message without the "Value error" prefix
            ctx_error = (error.get("ctx") or {}).get("error")
            if isinstance(ctx_error, ValueError):
                messages.append(str(ctx_error))
                continue
            field = ".".join(str(loc) for loc in error["loc"])
            messages.append(f"{field}: {error['msg']}" if field else error["msg"])
        return ErrorModel(
            code=ErrorCodeEnum.VALIDATION,
            details=str(e),
            message=". ".join(messages),
        )


class SuccessModel(BaseModel, Generic[T]):
    data: T
    success: Literal[True] = True


class FailureModel(BaseModel):
    error: ErrorModel
    success: Literal[False] = False

    @staticmethod
    def of(
        code: ErrorCodeEnum,
        message: str,
        details: str | None = None,
    ) -> "FailureModel":
        return FailureModel(
            error=ErrorModel(
                code=code,
                details=details,
                message=message,
            )
        )
