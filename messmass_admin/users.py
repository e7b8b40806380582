from __future__ import annotations

import re
import secrets
from typing import Any, Dict, Mapping

from werkzeug.security import generate_password_hash

from .errors import UserValidationError

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
DEFAULT_ROLE = "admin"
PASSWORD_BYTES = 16


def generate_password() -> str:
    """32 lowercase hex characters, shown to the admin once."""
    return secrets.token_hex(PASSWORD_BYTES)


def hash_password(password: str) -> str:
    return generate_password_hash(password)


def validate_user(payload: Mapping[str, Any]) -> Dict[str, str]:
    email = str(payload.get("email") or "").strip().lower()
    name = str(payload.get("name") or "").strip()
    if not email or not name:
        raise UserValidationError("Email and name are required")
    if not EMAIL_PATTERN.match(email):
        raise UserValidationError("Invalid email address")
    return {"email": email, "name": name}


def public_user(row: Mapping[str, Any]) -> Dict[str, Any]:
    """Wire form of a user row; the password hash never leaves the server."""
    return {
        "id": str(row["id"]),
        "email": row.get("email"),
        "name": row.get("name"),
        "role": row.get("role") or DEFAULT_ROLE,
        "createdAt": _iso(row.get("created_at")),
        "updatedAt": _iso(row.get("updated_at")),
    }


def _iso(value: Any) -> Any:
    return value.isoformat() if hasattr(value, "isoformat") else value
