"""Shared fixtures: an in-memory store with the PostgresStore surface and a Flask test client."""

from __future__ import annotations

import copy
import itertools
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Mapping, Optional, Tuple

import pytest

from messmass_admin.backend import create_app
from messmass_admin.errors import ConflictError
from messmass_admin.listing import SORT_DESC, SortState
from messmass_admin.projects import sort_metrics
from messmass_admin.repository import CHART_COLUMNS, PROJECT_COLUMNS, VARIABLE_COLUMNS
from messmass_admin.settings import Settings


class FakeStore:
    """Rows are snake_case dicts with int ids and datetime timestamps, like RealDictCursor rows."""

    def __init__(self) -> None:
        self.projects: Dict[int, Dict[str, Any]] = {}
        self.categories: Dict[int, Dict[str, Any]] = {}
        self.variables: Dict[str, Dict[str, Any]] = {}
        self.charts: Dict[int, Dict[str, Any]] = {}
        self.styles: Dict[int, Dict[str, Any]] = {}
        self.hashtag_styles: Dict[str, str] = {}
        self.settings: Dict[str, Optional[str]] = {}
        self.users: Dict[int, Dict[str, Any]] = {}
        self._ids = itertools.count(1)
        self._clock = datetime(2024, 1, 1, tzinfo=timezone.utc)
        self.healthy = True

    def _now(self) -> datetime:
        self._clock += timedelta(seconds=1)
        return self._clock

    def _stamp(self, row: Dict[str, Any]) -> Dict[str, Any]:
        now = self._now()
        row.setdefault("id", next(self._ids))
        row.setdefault("created_at", now)
        row["updated_at"] = now
        return row

    def ping(self) -> bool:
        return self.healthy

    # Projects

    @staticmethod
    def _matches(row: Mapping[str, Any], q: str) -> bool:
        needle = q.lower()
        haystack = [row.get("event_name") or "", row.get("view_slug") or "", row.get("edit_slug") or ""]
        haystack.extend(row.get("hashtags") or [])
        for tags in (row.get("categorized_hashtags") or {}).values():
            haystack.extend(tags)
        return any(needle in str(value).lower() for value in haystack)

    def search_projects(self, q: Optional[str], sort: SortState, offset: int, limit: int) -> Tuple[List[Dict[str, Any]], int]:
        rows = [row for row in self.projects.values() if not q or self._matches(row, q)]
        if sort.active:
            def key(row: Mapping[str, Any]) -> Any:
                if sort.field == "eventName":
                    return (row["event_name"].lower(), row["id"])
                if sort.field == "eventDate":
                    return (row["event_date"], row["id"])
                return (sort_metrics(row.get("stats"))[sort.field], row["id"])

            rows.sort(key=key, reverse=sort.order == SORT_DESC)
        else:
            rows.sort(key=lambda row: (row["updated_at"], row["id"]), reverse=True)
        return [dict(row) for row in rows[offset : offset + limit]], len(rows)

    def list_projects_after(self, after: Optional[Tuple[str, str]], limit: int) -> List[Dict[str, Any]]:
        rows = sorted(self.projects.values(), key=lambda row: (row["updated_at"], row["id"]), reverse=True)
        if after is not None:
            boundary = (datetime.fromisoformat(after[0]), int(after[1]))
            rows = [row for row in rows if (row["updated_at"], row["id"]) < boundary]
        return [dict(row) for row in rows[: limit + 1]]

    def count_projects(self) -> int:
        return len(self.projects)

    def get_project(self, project_id: Any) -> Optional[Dict[str, Any]]:
        row = self.projects.get(int(project_id))
        return dict(row) if row else None

    def _project_values(self, data: Mapping[str, Any]) -> Dict[str, Any]:
        return {PROJECT_COLUMNS[key]: copy.deepcopy(value) for key, value in data.items() if key in PROJECT_COLUMNS}

    def insert_project(self, data: Mapping[str, Any]) -> Dict[str, Any]:
        values = self._project_values(data)
        if any(row["view_slug"] == values.get("view_slug") for row in self.projects.values()):
            raise ConflictError("Project slug already exists")
        row = {"hashtags": [], "categorized_hashtags": {}, "stats": {}, "style_id": None, **values}
        self._stamp(row)
        self.projects[row["id"]] = row
        return dict(row)

    def update_project(self, project_id: Any, data: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
        row = self.projects.get(int(project_id))
        if row is None:
            return None
        row.update(self._project_values(data))
        self._stamp(row)
        return dict(row)

    def delete_project(self, project_id: Any) -> bool:
        return self.projects.pop(int(project_id), None) is not None

    def count_projects_using_style(self, style_id: Any) -> int:
        return sum(1 for row in self.projects.values() if row.get("style_id") and str(row["style_id"]) == str(style_id))

    # Hashtag categories

    def _ordered_categories(self) -> List[Dict[str, Any]]:
        return sorted(self.categories.values(), key=lambda row: (row["display_order"], row["name"]))

    def search_categories(self, q: Optional[str], offset: int, limit: int) -> Tuple[List[Dict[str, Any]], int]:
        rows = [row for row in self._ordered_categories() if not q or q.lower() in row["name"]]
        return [dict(row) for row in rows[offset : offset + limit]], len(rows)

    def list_category_names(self) -> List[str]:
        return [row["name"] for row in self._ordered_categories()]

    def next_category_order(self) -> int:
        orders = [row["display_order"] for row in self.categories.values()]
        return max(orders) + 1 if orders else 0

    def get_category(self, category_id: Any) -> Optional[Dict[str, Any]]:
        row = self.categories.get(int(category_id))
        return dict(row) if row else None

    def get_category_by_name(self, name: str) -> Optional[Dict[str, Any]]:
        for row in self.categories.values():
            if row["name"] == name:
                return dict(row)
        return None

    def insert_category(self, data: Mapping[str, Any]) -> Dict[str, Any]:
        if self.get_category_by_name(data["name"]) is not None:
            raise ConflictError("Category with this name already exists")
        row = self._stamp({"name": data["name"], "color": data["color"], "display_order": data["order"]})
        self.categories[row["id"]] = row
        return dict(row)

    def update_category(self, category_id: Any, data: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
        row = self.categories.get(int(category_id))
        if row is None:
            return None
        columns = {"name": "name", "color": "color", "order": "display_order"}
        row.update({columns[key]: value for key, value in data.items() if key in columns})
        self._stamp(row)
        return dict(row)

    def delete_category(self, category_id: Any) -> bool:
        return self.categories.pop(int(category_id), None) is not None

    # Variables

    def list_variable_configs(self) -> List[Dict[str, Any]]:
        return [dict(self.variables[name]) for name in sorted(self.variables)]

    def upsert_variable_config(self, name: str, fields: Mapping[str, Any]) -> Dict[str, Any]:
        row = self.variables.setdefault(name, {"name": name})
        row.update({column: fields[column] for column in VARIABLE_COLUMNS if column in fields})
        return dict(row)

    def rename_variable_config(self, name: str, new_name: str) -> bool:
        if new_name in self.variables:
            raise ConflictError(f"Variable {new_name} already exists")
        row = self.variables.pop(name, None)
        if row is None:
            return False
        row["name"] = new_name
        self.variables[new_name] = row
        return True

    def delete_variable_config(self, name: str) -> bool:
        return self.variables.pop(name, None) is not None

    # Chart configurations

    def list_charts(self) -> List[Dict[str, Any]]:
        rows = sorted(self.charts.values(), key=lambda row: row["created_at"], reverse=True)
        return [copy.deepcopy(row) for row in sorted(rows, key=lambda row: row["display_order"])]

    def next_chart_order(self) -> int:
        orders = [row["display_order"] for row in self.charts.values()]
        return max(orders) + 1 if orders else 1

    def get_chart(self, chart_pk: Any) -> Optional[Dict[str, Any]]:
        row = self.charts.get(int(chart_pk))
        return copy.deepcopy(row) if row else None

    def get_chart_by_chart_id(self, chart_id: str) -> Optional[Dict[str, Any]]:
        for row in self.charts.values():
            if row["chart_id"] == chart_id:
                return copy.deepcopy(row)
        return None

    def insert_chart(self, data: Mapping[str, Any]) -> Dict[str, Any]:
        if self.get_chart_by_chart_id(data["chartId"]) is not None:
            raise ConflictError("Chart ID already exists")
        row = self._stamp({CHART_COLUMNS[key]: copy.deepcopy(value) for key, value in data.items() if key in CHART_COLUMNS})
        self.charts[row["id"]] = row
        return copy.deepcopy(row)

    def update_chart(self, chart_pk: Any, data: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
        row = self.charts.get(int(chart_pk))
        if row is None:
            return None
        row.update({CHART_COLUMNS[key]: copy.deepcopy(value) for key, value in data.items() if key in CHART_COLUMNS})
        self._stamp(row)
        return copy.deepcopy(row)

    def delete_chart(self, chart_pk: Any) -> bool:
        return self.charts.pop(int(chart_pk), None) is not None

    # Page styles

    def list_styles(self) -> List[Dict[str, Any]]:
        return [copy.deepcopy(row) for row in sorted(self.styles.values(), key=lambda row: row["name"])]

    def get_style(self, style_id: Any) -> Optional[Dict[str, Any]]:
        row = self.styles.get(int(style_id))
        return copy.deepcopy(row) if row else None

    def get_style_by_name(self, name: str) -> Optional[Dict[str, Any]]:
        for row in self.styles.values():
            if row["name"].lower() == name.lower():
                return copy.deepcopy(row)
        return None

    def insert_style(self, document: Mapping[str, Any]) -> Dict[str, Any]:
        if self.get_style_by_name(document["name"]) is not None:
            raise ConflictError("A style with this name already exists")
        row = self._stamp(
            {"name": document["name"], "description": document.get("description") or "", "document": copy.deepcopy(dict(document))}
        )
        self.styles[row["id"]] = row
        return copy.deepcopy(row)

    def update_style(self, style_id: Any, document: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
        row = self.styles.get(int(style_id))
        if row is None:
            return None
        row.update(
            {"name": document["name"], "description": document.get("description") or "", "document": copy.deepcopy(dict(document))}
        )
        self._stamp(row)
        return copy.deepcopy(row)

    def delete_style(self, style_id: Any) -> bool:
        return self.styles.pop(int(style_id), None) is not None

    def list_hashtag_styles(self) -> List[Dict[str, Any]]:
        return [{"hashtag": tag, "style_id": int(self.hashtag_styles[tag])} for tag in sorted(self.hashtag_styles)]

    def set_hashtag_style(self, hashtag: str, style_id: Optional[str]) -> None:
        if style_id is None:
            self.hashtag_styles.pop(hashtag, None)
        else:
            self.hashtag_styles[hashtag] = str(style_id)

    def count_hashtags_using_style(self, style_id: Any) -> int:
        return sum(1 for value in self.hashtag_styles.values() if value == str(style_id))

    # Settings

    def get_setting(self, key: str) -> Optional[str]:
        return self.settings.get(key)

    def set_setting(self, key: str, value: Optional[str]) -> None:
        self.settings[key] = value

    # Users

    def search_users(self, q: Optional[str], offset: int, limit: int) -> Tuple[List[Dict[str, Any]], int]:
        rows = sorted(self.users.values(), key=lambda row: row["email"])
        if q:
            needle = q.lower()
            rows = [row for row in rows if needle in row["email"] or needle in row["name"].lower()]
        return [dict(row) for row in rows[offset : offset + limit]], len(rows)

    def get_user(self, user_id: Any) -> Optional[Dict[str, Any]]:
        row = self.users.get(int(user_id))
        return dict(row) if row else None

    def get_user_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        for row in self.users.values():
            if row["email"] == email:
                return dict(row)
        return None

    def insert_user(self, data: Mapping[str, Any]) -> Dict[str, Any]:
        if self.get_user_by_email(data["email"]) is not None:
            raise ConflictError("Email already exists")
        row = self._stamp({key: data[key] for key in ("email", "name", "role", "password_hash")})
        self.users[row["id"]] = row
        return dict(row)

    def update_user_password(self, user_id: Any, password_hash: str) -> Optional[Dict[str, Any]]:
        row = self.users.get(int(user_id))
        if row is None:
            return None
        row["password_hash"] = password_hash
        self._stamp(row)
        return dict(row)

    def delete_user(self, user_id: Any) -> bool:
        return self.users.pop(int(user_id), None) is not None


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def settings() -> Settings:
    return Settings(cors_allowed_origins={"http://localhost:5000"})


@pytest.fixture
def app(store, settings):
    flask_app = create_app(store=store, settings=settings)
    flask_app.config["TESTING"] = True
    return flask_app


@pytest.fixture
def http(app):
    return app.test_client()


@pytest.fixture
def create_project(http):
    """POST a project and return its wire form."""

    def create(name: str = "Derby", **overrides: Any) -> Dict[str, Any]:
        payload = {"eventName": name, "eventDate": "2024-05-01", "hashtags": [], "stats": {}}
        payload.update(overrides)
        response = http.post("/api/projects", json=payload)
        assert response.status_code == 201, response.get_json()
        return response.get_json()["project"]

    return create
