from pydantic import BaseModel, Field, field_validator

from campus_reminder.helpers.credentials import (
    validate_email,
    validate_password,
    validate_phone,
)
from campus_reminder.models.storage import PatchModel, StorageModel

NAME_MAX_LENGTH = 50
BIO_MAX_LENGTH = 500


def _check_name(value: str, label: str) -> str:
    value = value.strip()
    if not value:
        raise ValueError(f"{label} is required")
    if len(value) > NAME_MAX_LENGTH:
        raise ValueError(f"{label} must be less than {NAME_MAX_LENGTH} characters")
    return value


def _check_email(value: str) -> str:
    value = value.strip().lower()
    if not value:
        raise ValueError("Email is required")
    if not validate_email(value):
        raise ValueError("Please enter a valid email address")
    return value


def _check_phone(value: str | None) -> str | None:
    if value and value.strip() and not validate_phone(value):
        raise ValueError("Please enter a valid phone number")
    return value


def _check_bio(value: str | None) -> str | None:
    if value and len(value) > BIO_MAX_LENGTH:
        raise ValueError(f"Bio must be less than {BIO_MAX_LENGTH} characters")
    return value


class UserModel(StorageModel):
    """
    User as exposed to the application.

    The password hash is never part of it.
    """

    # Immutable fields
    created_at: str = Field(frozen=True)
    id: int = Field(frozen=True)
    # Editable fields
    bio: str | None = None
    email: str
    first_name: str
    last_login_at: str | None = None
    last_name: str
    major: str | None = None
    phone: str | None = None
    profile_completion_score: int = 0
    profile_picture: str | None = None
    university: str | None = None
    updated_at: str
    year: str | None = None


class UserCreateModel(StorageModel):
    bio: str | None = None
    email: str
    first_name: str
    last_name: str
    major: str | None = None
    password: str
    phone: str | None = None
    profile_picture: str | None = None
    university: str | None = None
    year: str | None = None

    @field_validator("email")
    @classmethod
    def _validate_email(cls, email: str) -> str:
        return _check_email(email)

    @field_validator("password")
    @classmethod
    def _validate_password(cls, password: str) -> str:
        validation = validate_password(password)
        if not validation.is_valid:
            raise ValueError(". ".join(validation.errors))
        return password

    @field_validator("first_name")
    @classmethod
    def _validate_first_name(cls, first_name: str) -> str:
        return _check_name(first_name, "First name")

    @field_validator("last_name")
    @classmethod
    def _validate_last_name(cls, last_name: str) -> str:
        return _check_name(last_name, "Last name")

    @field_validator("phone")
    @classmethod
    def _validate_phone(cls, phone: str | None) -> str | None:
        return _check_phone(phone)

    @field_validator("bio")
    @classmethod
    def _validate_bio(cls, bio: str | None) -> str | None:
        return _check_bio(bio)


class UserPatchModel(PatchModel):
    bio: str | None = None
    email: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    major: str | None = None
    phone: str | None = None
    profile_picture: str | None = None
    university: str | None = None
    year: str | None = None

    @field_validator("email")
    @classmethod
    def _validate_email(cls, email: str | None) -> str | None:
        return None if email is None else _check_email(email)

    @field_validator("first_name")
    @classmethod
    def _validate_first_name(cls, first_name: str | None) -> str | None:
        return None if first_name is None else _check_name(first_name, "First name")

    @field_validator("last_name")
    @classmethod
    def _validate_last_name(cls, last_name: str | None) -> str | None:
        return None if last_name is None else _check_name(last_name, "Last name")

    @field_validator("phone")
    @classmethod
    def _validate_phone(cls, phone: str | None) -> str | None:
        return _check_phone(phone)

    @field_validator("bio")
    @classmethod
    def _validate_bio(cls, bio: str | None) -> str | None:
        return _check_bio(bio)


class LoginModel(StorageModel):
    email: str
    password: str


class RegisterModel(StorageModel):
    """
    Registration form.

    Only the shape is checked here, content rules are applied when the user is created, after the password confirmation.
    """

    confirm_password: str
    email: str
    first_name: str
    last_name: str
    major: str | None = None
    password: str
    phone: str | None = None
    university: str | None = None
    year: str | None = None

    def to_create(self) -> dict:
        return self.model_dump(exclude={"confirm_password"})


class PasswordChangeModel(BaseModel):
    confirm_password: str
    current_password: str
    new_password: str
