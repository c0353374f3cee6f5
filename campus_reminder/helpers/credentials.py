"""
Password hashing and user input checks.

Stored credentials are formatted as `salt:digest`, where the digest is the hex SHA-256 of the salt followed by the password. A fresh random salt is drawn for every hash.
"""

import hashlib
import hmac
import re
import secrets

from pydantic import BaseModel

from campus_reminder.helpers.config import CONFIG
from campus_reminder.helpers.logging import logger

_EMAIL_R = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_PHONE_R = re.compile(r"^\+?[1-9]\d{0,15}$")
_PHONE_SEPARATORS_R = re.compile(r"[\s\-()]")
_SEPARATOR = ":"

PROFILE_FIELDS = (
    "first_name",
    "last_name",
    "email",
    "phone",
    "bio",
    "profile_picture",
)


class PasswordValidationModel(BaseModel):
    errors: list[str] = []
    is_valid: bool


def validate_password(password: str) -> PasswordValidationModel:
    """
    Check the password strength.

    All violated rules are reported, not only the first one.
    """
    errors: list[str] = []
    if len(password) < 8:
        errors.append("Password must be at least 8 characters long")
    if not re.search(r"[a-z]", password):
        errors.append("Password must contain at least one lowercase letter")
    if not re.search(r"[A-Z]", password):
        errors.append("Password must contain at least one uppercase letter")
    if not re.search(r"\d", password):
        errors.append("Password must contain at least one number")
    return PasswordValidationModel(
        errors=errors,
        is_valid=not errors,
    )


def validate_email(email: str) -> bool:
    """
    Structural check of an email address, `local@domain.tld`.

    Not RFC 5322 compliant, only catches obvious typos.
    """
    return bool(_EMAIL_R.match(email))


def validate_phone(phone: str) -> bool:
    # Spaces, dashes and parentheses are cosmetic
    return bool(_PHONE_R.match(_PHONE_SEPARATORS_R.sub("", phone)))


def hash_password(
    password: str,
    salt_length: int | None = None,
) -> str:
    """
    Hash a password with a random salt.

    Two calls with the same password return different values. Use `verify_password` to compare.
    """
    if not password:
        raise ValueError("Password must be a non-empty string")
    salt = secrets.token_hex(salt_length or CONFIG.credentials.salt_length)
    return f"{salt}{_SEPARATOR}{_digest(salt, password)}"


def verify_password(password: str, stored: str) -> bool:
    """
    Check a password against a value produced by `hash_password`.

    Malformed stored values are rejected, never raised.
    """
    if not password or not stored:
        logger.debug("Empty password or stored hash, rejecting")
        return False

    salt, separator, digest = stored.partition(_SEPARATOR)
    if not separator or not salt or not digest:
        logger.warning("Invalid stored password format, rejecting")
        return False

    # Bytes, strings with non-ASCII characters cannot be compared
    return hmac.compare_digest(_digest(salt, password).encode(), digest.encode())


def profile_completion_score(profile: BaseModel) -> int:
    """
    Percentage of filled profile fields, from 0 to 100.
    """
    share = round(100 / len(PROFILE_FIELDS))
    filled = sum(
        1
        for field in PROFILE_FIELDS
        if (value := getattr(profile, field, None)) and str(value).strip()
    )
    return min(filled * share, 100)


def _digest(salt: str, password: str) -> str:
    return hashlib.sha256(f"{salt}{password}".encode()).hexdigest()
