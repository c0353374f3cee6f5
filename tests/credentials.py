import pytest
from pytest_assume.plugin import assume

from campus_reminder.helpers.credentials import (
    hash_password,
    profile_completion_score,
    validate_email,
    validate_password,
    validate_phone,
    verify_password,
)
from campus_reminder.models.user import UserPatchModel


@pytest.mark.repeat(10)  # Salt is random, catch accidental collisions
def test_hash_is_salted() -> None:
    """
    Hashing the same password twice yields different values, both verifiable.
    """
    password = "Abcd1234"

    first = hash_password(password)
    second = hash_password(password)

    assume(first != second)
    assume(verify_password(password, first))
    assume(verify_password(password, second))
    assume(not verify_password("Abcd12345", first))


def test_hash_format() -> None:
    stored = hash_password("Abcd1234", salt_length=16)
    salt, _, digest = stored.partition(":")

    assume(len(salt) == 32)  # Hex encoded
    assume(len(digest) == 64)  # SHA-256


def test_hash_empty_password() -> None:
    with pytest.raises(ValueError):
        hash_password("")


@pytest.mark.parametrize(
    "stored",
    [
        pytest.param("malformed-no-colon", id="no_separator"),
        pytest.param(":abc", id="no_salt"),
        pytest.param("abc:", id="no_digest"),
        pytest.param("", id="empty"),
        pytest.param("salt:\u00e9t\u00e9", id="non_ascii_digest"),
        pytest.param("s\u00e9l:abc", id="non_ascii_salt"),
    ],
)
def test_verify_malformed(stored: str) -> None:
    """
    Malformed stored values are rejected without raising.
    """
    assume(verify_password("x", stored) is False)


def test_verify_empty_password() -> None:
    assume(verify_password("", hash_password("Abcd1234")) is False)


def test_validate_password_reports_all_rules() -> None:
    res = validate_password("abc")

    assume(not res.is_valid)
    assume(len(res.errors) == 3)  # Length, uppercase, number
    assume(validate_password("Abcd1234").is_valid)
    assume(validate_password("Abcd1234").errors == [])


@pytest.mark.parametrize(
    "email, expected",
    [
        pytest.param("a@b.com", True, id="simple"),
        pytest.param("first.last@campus.edu", True, id="dotted"),
        pytest.param("a@b", False, id="no_tld"),
        pytest.param("a b@c.com", False, id="space"),
        pytest.param("@b.com", False, id="no_local"),
        pytest.param("", False, id="empty"),
    ],
)
def test_validate_email(email: str, expected: bool) -> None:
    assume(validate_email(email) is expected)


@pytest.mark.parametrize(
    "phone, expected",
    [
        pytest.param("+33612345678", True, id="international"),
        pytest.param("(555) 123-4567", True, id="formatted"),
        pytest.param("0612345678", False, id="leading_zero"),
        pytest.param("phone", False, id="letters"),
    ],
)
def test_validate_phone(phone: str, expected: bool) -> None:
    assume(validate_phone(phone) is expected)


def test_profile_completion_score() -> None:
    empty = UserPatchModel()
    partial = UserPatchModel(
        email="a@b.com",
        first_name="Ada",
        last_name="Lovelace",
    )
    full = UserPatchModel(
        bio="Mathematician",
        email="a@b.com",
        first_name="Ada",
        last_name="Lovelace",
        phone="+33612345678",
        profile_picture="file:///ada.png",
    )

    assume(profile_completion_score(empty) == 0)
    assume(profile_completion_score(partial) == 51)  # 3 x 17
    assume(profile_completion_score(full) == 100)  # Capped
