"""Tests for users module."""

from datetime import datetime, timezone

import pytest
from werkzeug.security import check_password_hash

from messmass_admin.errors import UserValidationError
from messmass_admin.users import generate_password, hash_password, public_user, validate_user


def test_generate_password_is_32_hex_chars():
    password = generate_password()
    assert len(password) == 32
    assert all(char in "0123456789abcdef" for char in password)
    assert generate_password() != password


def test_hash_round_trip():
    password_hash = hash_password("s3cret")
    assert password_hash != "s3cret"
    assert check_password_hash(password_hash, "s3cret")
    assert not check_password_hash(password_hash, "wrong")


def test_validate_user_normalizes_email():
    assert validate_user({"email": " Admin@Example.COM ", "name": " Ada "}) == {"email": "admin@example.com", "name": "Ada"}


@pytest.mark.parametrize(
    "payload, message",
    [
        ({"email": "", "name": "Ada"}, "Email and name are required"),
        ({"email": "a@b.co", "name": "  "}, "Email and name are required"),
        ({"email": "not-an-email", "name": "Ada"}, "Invalid email address"),
    ],
)
def test_validate_user_errors(payload, message):
    with pytest.raises(UserValidationError, match=message):
        validate_user(payload)


def test_public_user_hides_hash():
    """The wire form never includes the password hash."""
    created = datetime(2024, 1, 1, tzinfo=timezone.utc)
    row = {"id": 5, "email": "a@b.co", "name": "Ada", "role": None, "password_hash": "x", "created_at": created}
    user = public_user(row)
    assert user["id"] == "5"
    assert user["role"] == "admin"
    assert user["createdAt"] == "2024-01-01T00:00:00+00:00"
    assert "password_hash" not in user
    assert "passwordHash" not in user
