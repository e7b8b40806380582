from __future__ import annotations

import re
from typing import Any, Dict, Iterable, List, Mapping

from .errors import CategoryValidationError

NAME_MIN_LENGTH = 1
NAME_MAX_LENGTH = 50
NAME_PATTERN = re.compile(r"^[a-z0-9_-]+$")
RESERVED_NAMES = frozenset({"default", "all", "none", "undefined", "null"})
HEX_COLOR_PATTERN = re.compile(r"^#[0-9A-Fa-f]{6}$")

DEFAULT_CATEGORY_COLORS = (
    "#667eea",
    "#764ba2",
    "#f093fb",
    "#f5576c",
    "#4facfe",
    "#00f2fe",
    "#43e97b",
    "#38f9d7",
)
DEFAULT_HASHTAG_COLOR = "#667eea"


def normalize_category_name(value: Any) -> str:
    return str(value or "").strip().lower()


def is_valid_hex_color(value: Any) -> bool:
    return isinstance(value, str) and bool(HEX_COLOR_PATTERN.match(value))


def category_name_errors(name: str) -> List[str]:
    errors = []
    if len(name) < NAME_MIN_LENGTH:
        errors.append("Category name must be at least 1 character long")
    if len(name) > NAME_MAX_LENGTH:
        errors.append(f"Category name must be no more than {NAME_MAX_LENGTH} characters long")
    if name and not NAME_PATTERN.match(name):
        errors.append("Category name can only contain lowercase letters, numbers, underscores, and hyphens")
    if name in RESERVED_NAMES:
        errors.append(f'"{name}" is a reserved name and cannot be used as a category name')
    return errors


def validate_category(payload: Mapping[str, Any], partial: bool = False) -> Dict[str, Any]:
    """Clean a create/update payload.

    With ``partial`` only the keys present are checked, which is how
    updates arrive from the edit form.
    """
    cleaned: Dict[str, Any] = {}
    errors: List[str] = []

    if not partial or "name" in payload:
        name = normalize_category_name(payload.get("name"))
        errors.extend(category_name_errors(name))
        cleaned["name"] = name

    if not partial or "color" in payload:
        color = str(payload.get("color") or "").strip()
        if not color:
            errors.append("Category color is required")
        elif not is_valid_hex_color(color):
            errors.append("Category color must be a valid hex color code (e.g., #667eea)")
        cleaned["color"] = color

    if payload.get("order") is not None:
        order = payload.get("order")
        if isinstance(order, bool) or not isinstance(order, int) or order < 0:
            errors.append("Category order must be a non-negative integer")
        cleaned["order"] = order

    if errors:
        raise CategoryValidationError("; ".join(errors))
    return cleaned


def merge_hashtags(plain: Iterable[str] = (), categorized: Mapping[str, Iterable[str]] | None = None) -> List[str]:
    """Every distinct hashtag of a project, plain ones first."""
    seen: Dict[str, None] = {}
    for tag in plain:
        seen.setdefault(tag, None)
    for tags in (categorized or {}).values():
        for tag in tags:
            seen.setdefault(tag, None)
    return list(seen)


def resolve_hashtag_color(category_color: str | None = None, individual_color: str | None = None) -> str:
    if category_color and is_valid_hex_color(category_color):
        return category_color
    if individual_color and is_valid_hex_color(individual_color):
        return individual_color
    return DEFAULT_HASHTAG_COLOR
