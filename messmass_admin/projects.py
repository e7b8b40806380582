from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Any, Dict, List, Mapping

from .categories import normalize_category_name
from .errors import ProjectValidationError, UnknownStatsKeysError
from .variables import VariableRegistry

PROJECT_SORT_FIELDS = frozenset({"eventName", "eventDate", "images", "fans", "attendees"})


def normalize_hashtag(value: Any) -> str:
    return str(value or "").strip().lstrip("#").strip().lower()


def normalize_hashtags(values: Any) -> List[str]:
    if not isinstance(values, (list, tuple)):
        return []
    seen: Dict[str, None] = {}
    for value in values:
        tag = normalize_hashtag(value)
        if tag:
            seen.setdefault(tag, None)
    return list(seen)


def normalize_categorized(values: Any) -> Dict[str, List[str]]:
    if not isinstance(values, Mapping):
        return {}
    result: Dict[str, List[str]] = {}
    for category, tags in values.items():
        name = normalize_category_name(category)
        cleaned = normalize_hashtags(tags)
        if name and cleaned:
            result[name] = cleaned
    return result


def parse_event_date(value: Any) -> str:
    text = str(value or "").strip()
    if not text:
        raise ProjectValidationError("Event date is required")
    try:
        return date.fromisoformat(text[:10]).isoformat()
    except ValueError:
        raise ProjectValidationError(f"Invalid event date: {text}") from None


def validate_stats(stats: Any, registry: VariableRegistry) -> Dict[str, Any]:
    """Reject keys the registry does not know; numeric variables need numbers."""
    if stats is None:
        return {}
    if not isinstance(stats, Mapping):
        raise ProjectValidationError("stats must be an object")
    unknown = registry.unknown_stats_keys(stats)
    if unknown:
        raise UnknownStatsKeysError(unknown)
    cleaned: Dict[str, Any] = {}
    for key, value in stats.items():
        if key in registry and registry.get(key).type == "text":
            cleaned[key] = "" if value is None else str(value)
            continue
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ProjectValidationError(f"stats.{key} must be a number")
        if value < 0:
            raise ProjectValidationError(f"stats.{key} must not be negative")
        cleaned[key] = value
    return cleaned


def validate_project(payload: Mapping[str, Any], registry: VariableRegistry, partial: bool = False) -> Dict[str, Any]:
    cleaned: Dict[str, Any] = {}
    if not partial or "eventName" in payload:
        name = str(payload.get("eventName") or "").strip()
        if not name:
            raise ProjectValidationError("Event name is required")
        cleaned["eventName"] = name
    if not partial or "eventDate" in payload:
        cleaned["eventDate"] = parse_event_date(payload.get("eventDate"))
    if not partial or "hashtags" in payload:
        cleaned["hashtags"] = normalize_hashtags(payload.get("hashtags"))
    if not partial or "categorizedHashtags" in payload:
        cleaned["categorizedHashtags"] = normalize_categorized(payload.get("categorizedHashtags"))
    if not partial or "stats" in payload:
        cleaned["stats"] = validate_stats(payload.get("stats"), registry)
    if "styleId" in payload:
        style_id = payload.get("styleId")
        cleaned["styleId"] = str(style_id) if style_id else None
    return cleaned


def new_slugs() -> Dict[str, str]:
    return {"viewSlug": str(uuid.uuid4()), "editSlug": str(uuid.uuid4())}


def _number(stats: Mapping[str, Any], key: str) -> float:
    value = stats.get(key)
    return value if isinstance(value, (int, float)) and not isinstance(value, bool) else 0


def sort_metrics(stats: Mapping[str, Any] | None) -> Dict[str, float]:
    """Values behind the computed sort columns."""
    stats = stats or {}
    if "remoteFans" in stats:
        remote = _number(stats, "remoteFans")
    else:
        remote = _number(stats, "indoor") + _number(stats, "outdoor")
    return {
        "images": _number(stats, "remoteImages") + _number(stats, "hostessImages") + _number(stats, "selfies"),
        "fans": remote + _number(stats, "stadium"),
        "attendees": _number(stats, "eventAttendees"),
    }


def project_to_wire(row: Mapping[str, Any]) -> Dict[str, Any]:
    def iso(value: Any) -> Any:
        return value.isoformat() if isinstance(value, (date, datetime)) else value

    stats = row.get("stats") or {}
    return {
        "id": str(row["id"]),
        "eventName": row.get("event_name"),
        "eventDate": iso(row.get("event_date")),
        "hashtags": list(row.get("hashtags") or []),
        "categorizedHashtags": dict(row.get("categorized_hashtags") or {}),
        "stats": stats,
        "styleId": str(row["style_id"]) if row.get("style_id") else None,
        "viewSlug": row.get("view_slug"),
        "editSlug": row.get("edit_slug"),
        "createdAt": iso(row.get("created_at")),
        "updatedAt": iso(row.get("updated_at")),
        **sort_metrics(stats),
    }
