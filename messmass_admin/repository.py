"""PostgreSQL-backed store used by the API blueprint.

The query builders are plain functions returning ``(sql, params)`` so the
pagination and search SQL can be checked without a database.
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Tuple

import psycopg2
from psycopg2.extras import Json

from . import db
from .errors import ConflictError
from .listing import SORT_DESC, SortState

Query = Tuple[str, List[Any]]

PROJECT_SORT_EXPRESSIONS = {
    "eventName": "LOWER(event_name)",
    "eventDate": "event_date",
    "images": (
        "(COALESCE((stats->>'remoteImages')::numeric, 0)"
        " + COALESCE((stats->>'hostessImages')::numeric, 0)"
        " + COALESCE((stats->>'selfies')::numeric, 0))"
    ),
    "fans": (
        "(COALESCE((stats->>'remoteFans')::numeric,"
        " COALESCE((stats->>'indoor')::numeric, 0) + COALESCE((stats->>'outdoor')::numeric, 0))"
        " + COALESCE((stats->>'stadium')::numeric, 0))"
    ),
    "attendees": "COALESCE((stats->>'eventAttendees')::numeric, 0)",
}

PROJECT_COLUMNS = {
    "eventName": "event_name",
    "eventDate": "event_date",
    "hashtags": "hashtags",
    "categorizedHashtags": "categorized_hashtags",
    "stats": "stats",
    "styleId": "style_id",
    "viewSlug": "view_slug",
    "editSlug": "edit_slug",
}
JSON_COLUMNS = {"categorized_hashtags", "stats"}

CHART_COLUMNS = {
    "chartId": "chart_id",
    "title": "title",
    "type": "chart_type",
    "order": "display_order",
    "isActive": "is_active",
    "elements": "elements",
}

VARIABLE_COLUMNS = (
    "label",
    "type",
    "category",
    "description",
    "derived",
    "formula",
    "is_custom",
    "visible_in_clicker",
    "editable_in_manual",
    "clicker_order",
)


def like_pattern(text: str) -> str:
    escaped = text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def project_search_clause(q: Optional[str]) -> Query:
    if not q:
        return "", []
    pattern = like_pattern(q)
    clause = (
        "WHERE (event_name ILIKE %s OR view_slug ILIKE %s OR edit_slug ILIKE %s"
        " OR EXISTS (SELECT 1 FROM unnest(hashtags) AS tag WHERE tag ILIKE %s)"
        " OR EXISTS (SELECT 1 FROM jsonb_each(categorized_hashtags) AS cat,"
        " jsonb_array_elements_text(cat.value) AS ctag WHERE ctag ILIKE %s))"
    )
    return clause, [pattern] * 5


def project_order_clause(sort: SortState) -> str:
    if not sort.active or sort.field not in PROJECT_SORT_EXPRESSIONS:
        return "ORDER BY updated_at DESC, id DESC"
    direction = "DESC" if sort.order == SORT_DESC else "ASC"
    return f"ORDER BY {PROJECT_SORT_EXPRESSIONS[sort.field]} {direction}, id {direction}"


def build_project_search(q: Optional[str], sort: SortState, offset: int, limit: int) -> Tuple[Query, Query]:
    where, params = project_search_clause(q)
    select = f"SELECT * FROM projects {where} {project_order_clause(sort)} LIMIT %s OFFSET %s"
    count = f"SELECT COUNT(*) AS total FROM projects {where}"
    return (select, params + [limit, offset]), (count, list(params))


def build_project_cursor_page(after: Optional[Tuple[str, str]], limit: int) -> Query:
    """Keyset page ordered by ``updated_at DESC, id DESC``; fetches one extra row."""
    if after is None:
        return "SELECT * FROM projects ORDER BY updated_at DESC, id DESC LIMIT %s", [limit + 1]
    updated_at, item_id = after
    return (
        "SELECT * FROM projects WHERE (updated_at, id) < (%s::timestamptz, %s::bigint)"
        " ORDER BY updated_at DESC, id DESC LIMIT %s",
        [updated_at, item_id, limit + 1],
    )


def build_name_search(table: str, column: str, order_by: str, q: Optional[str], offset: int, limit: int, extra: Tuple[str, ...] = ()) -> Tuple[Query, Query]:
    params: List[Any] = []
    where = ""
    if q:
        columns = (column, *extra)
        where = "WHERE " + " OR ".join(f"{name} ILIKE %s" for name in columns)
        params = [like_pattern(q)] * len(columns)
    select = f"SELECT * FROM {table} {where} ORDER BY {order_by} LIMIT %s OFFSET %s"
    count = f"SELECT COUNT(*) AS total FROM {table} {where}"
    return (select, params + [limit, offset]), (count, list(params))


def _column_values(data: Mapping[str, Any]) -> Dict[str, Any]:
    values: Dict[str, Any] = {}
    for key, value in data.items():
        column = PROJECT_COLUMNS.get(key)
        if column is None:
            continue
        values[column] = Json(value) if column in JSON_COLUMNS else value
    return values


def _chart_values(data: Mapping[str, Any]) -> Dict[str, Any]:
    values = {CHART_COLUMNS[key]: value for key, value in data.items() if key in CHART_COLUMNS}
    if "elements" in values:
        values["elements"] = Json(list(values["elements"]))
    return values


def _total(query: Query) -> int:
    row = db.fetch_one(*query)
    return int(row["total"]) if row else 0


class PostgresStore:
    def ping(self) -> bool:
        row = db.fetch_one("SELECT 1 AS ok")
        return bool(row and row.get("ok") == 1)

    # Projects

    def search_projects(self, q: Optional[str], sort: SortState, offset: int, limit: int) -> Tuple[List[Dict[str, Any]], int]:
        select, count = build_project_search(q, sort, offset, limit)
        return db.fetch_all_rows(*select), _total(count)

    def list_projects_after(self, after: Optional[Tuple[str, str]], limit: int) -> List[Dict[str, Any]]:
        return db.fetch_all_rows(*build_project_cursor_page(after, limit))

    def count_projects(self) -> int:
        return _total(("SELECT COUNT(*) AS total FROM projects", []))

    def get_project(self, project_id: str) -> Optional[Dict[str, Any]]:
        return db.fetch_one("SELECT * FROM projects WHERE id = %s", (project_id,))

    def insert_project(self, data: Mapping[str, Any]) -> Dict[str, Any]:
        values = _column_values(data)
        columns = ", ".join(values)
        placeholders = ", ".join("%s" for _ in values)
        try:
            row = db.write_returning(
                f"INSERT INTO projects ({columns}) VALUES ({placeholders}) RETURNING *",
                list(values.values()),
            )
        except psycopg2.IntegrityError as exc:
            raise ConflictError("Project slug already exists") from exc
        return row or {}

    def update_project(self, project_id: str, data: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
        values = _column_values(data)
        assignments = ", ".join(f"{column} = %s" for column in values)
        prefix = f"{assignments}, " if assignments else ""
        return db.write_returning(
            f"UPDATE projects SET {prefix}updated_at = now() WHERE id = %s RETURNING *",
            list(values.values()) + [project_id],
        )

    def delete_project(self, project_id: str) -> bool:
        deleted = db.execute_sql("DELETE FROM projects WHERE id = %s", (project_id,))
        db.commit()
        return deleted > 0

    def count_projects_using_style(self, style_id: str) -> int:
        return _total(("SELECT COUNT(*) AS total FROM projects WHERE style_id = %s", [style_id]))

    # Hashtag categories

    def search_categories(self, q: Optional[str], offset: int, limit: int) -> Tuple[List[Dict[str, Any]], int]:
        select, count = build_name_search("hashtag_categories", "name", "display_order ASC, name ASC", q, offset, limit)
        return db.fetch_all_rows(*select), _total(count)

    def list_category_names(self) -> List[str]:
        rows = db.fetch_all_rows("SELECT name FROM hashtag_categories ORDER BY display_order ASC, name ASC")
        return [row["name"] for row in rows]

    def next_category_order(self) -> int:
        row = db.fetch_one("SELECT COALESCE(MAX(display_order) + 1, 0) AS next_order FROM hashtag_categories")
        return int(row["next_order"]) if row else 0

    def get_category(self, category_id: str) -> Optional[Dict[str, Any]]:
        return db.fetch_one("SELECT * FROM hashtag_categories WHERE id = %s", (category_id,))

    def get_category_by_name(self, name: str) -> Optional[Dict[str, Any]]:
        return db.fetch_one("SELECT * FROM hashtag_categories WHERE name = %s", (name,))

    def insert_category(self, data: Mapping[str, Any]) -> Dict[str, Any]:
        try:
            row = db.write_returning(
                "INSERT INTO hashtag_categories (name, color, display_order) VALUES (%s, %s, %s) RETURNING *",
                (data["name"], data["color"], data["order"]),
            )
        except psycopg2.IntegrityError as exc:
            raise ConflictError("Category with this name already exists") from exc
        return row or {}

    def update_category(self, category_id: str, data: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
        columns = {"name": "name", "color": "color", "order": "display_order"}
        values = {columns[key]: value for key, value in data.items() if key in columns}
        assignments = "".join(f"{column} = %s, " for column in values)
        try:
            return db.write_returning(
                f"UPDATE hashtag_categories SET {assignments}updated_at = now() WHERE id = %s RETURNING *",
                list(values.values()) + [category_id],
            )
        except psycopg2.IntegrityError as exc:
            raise ConflictError("Category with this name already exists") from exc

    def delete_category(self, category_id: str) -> bool:
        deleted = db.execute_sql("DELETE FROM hashtag_categories WHERE id = %s", (category_id,))
        db.commit()
        return deleted > 0

    # Variables

    def list_variable_configs(self) -> List[Dict[str, Any]]:
        return db.fetch_all_rows("SELECT * FROM variables_config ORDER BY name")

    def upsert_variable_config(self, name: str, fields: Mapping[str, Any]) -> Dict[str, Any]:
        values = {column: fields[column] for column in VARIABLE_COLUMNS if column in fields}
        columns = ", ".join(["name", *values])
        placeholders = ", ".join("%s" for _ in range(len(values) + 1))
        updates = "".join(f"{column} = EXCLUDED.{column}, " for column in values)
        row = db.write_returning(
            f"INSERT INTO variables_config ({columns}) VALUES ({placeholders}) "
            f"ON CONFLICT (name) DO UPDATE SET {updates}updated_at = now() RETURNING *",
            [name, *values.values()],
        )
        return row or {}

    def rename_variable_config(self, name: str, new_name: str) -> bool:
        try:
            renamed = db.execute_sql(
                "UPDATE variables_config SET name = %s, updated_at = now() WHERE name = %s",
                (new_name, name),
            )
            db.commit()
        except psycopg2.IntegrityError as exc:
            raise ConflictError(f"Variable {new_name} already exists") from exc
        return renamed > 0

    def delete_variable_config(self, name: str) -> bool:
        deleted = db.execute_sql("DELETE FROM variables_config WHERE name = %s", (name,))
        db.commit()
        return deleted > 0

    # Chart configurations

    def list_charts(self) -> List[Dict[str, Any]]:
        return db.fetch_all_rows("SELECT * FROM chart_configurations ORDER BY display_order ASC, created_at DESC")

    def next_chart_order(self) -> int:
        row = db.fetch_one("SELECT COALESCE(MAX(display_order) + 1, 1) AS next_order FROM chart_configurations")
        return int(row["next_order"]) if row else 1

    def get_chart(self, chart_pk: str) -> Optional[Dict[str, Any]]:
        return db.fetch_one("SELECT * FROM chart_configurations WHERE id = %s", (chart_pk,))

    def get_chart_by_chart_id(self, chart_id: str) -> Optional[Dict[str, Any]]:
        return db.fetch_one("SELECT * FROM chart_configurations WHERE chart_id = %s", (chart_id,))

    def insert_chart(self, data: Mapping[str, Any]) -> Dict[str, Any]:
        values = _chart_values(data)
        columns = ", ".join(values)
        placeholders = ", ".join("%s" for _ in values)
        try:
            row = db.write_returning(
                f"INSERT INTO chart_configurations ({columns}) VALUES ({placeholders}) RETURNING *",
                list(values.values()),
            )
        except psycopg2.IntegrityError as exc:
            raise ConflictError("Chart ID already exists") from exc
        return row or {}

    def update_chart(self, chart_pk: str, data: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
        values = _chart_values(data)
        assignments = "".join(f"{column} = %s, " for column in values)
        try:
            return db.write_returning(
                f"UPDATE chart_configurations SET {assignments}updated_at = now() WHERE id = %s RETURNING *",
                list(values.values()) + [chart_pk],
            )
        except psycopg2.IntegrityError as exc:
            raise ConflictError("Chart ID already exists") from exc

    def delete_chart(self, chart_pk: str) -> bool:
        deleted = db.execute_sql("DELETE FROM chart_configurations WHERE id = %s", (chart_pk,))
        db.commit()
        return deleted > 0

    # Page styles

    def list_styles(self) -> List[Dict[str, Any]]:
        return db.fetch_all_rows("SELECT * FROM page_styles ORDER BY name")

    def get_style(self, style_id: str) -> Optional[Dict[str, Any]]:
        return db.fetch_one("SELECT * FROM page_styles WHERE id = %s", (style_id,))

    def get_style_by_name(self, name: str) -> Optional[Dict[str, Any]]:
        return db.fetch_one("SELECT * FROM page_styles WHERE LOWER(name) = LOWER(%s)", (name,))

    def insert_style(self, document: Mapping[str, Any]) -> Dict[str, Any]:
        try:
            row = db.write_returning(
                "INSERT INTO page_styles (name, description, document) VALUES (%s, %s, %s) RETURNING *",
                (document["name"], document.get("description") or "", Json(dict(document))),
            )
        except psycopg2.IntegrityError as exc:
            raise ConflictError("A style with this name already exists") from exc
        return row or {}

    def update_style(self, style_id: str, document: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
        try:
            return db.write_returning(
                "UPDATE page_styles SET name = %s, description = %s, document = %s, updated_at = now() "
                "WHERE id = %s RETURNING *",
                (document["name"], document.get("description") or "", Json(dict(document)), style_id),
            )
        except psycopg2.IntegrityError as exc:
            raise ConflictError("A style with this name already exists") from exc

    def delete_style(self, style_id: str) -> bool:
        deleted = db.execute_sql("DELETE FROM page_styles WHERE id = %s", (style_id,))
        db.commit()
        return deleted > 0

    def list_hashtag_styles(self) -> List[Dict[str, Any]]:
        return db.fetch_all_rows("SELECT hashtag, style_id FROM hashtag_styles ORDER BY hashtag")

    def set_hashtag_style(self, hashtag: str, style_id: Optional[str]) -> None:
        if style_id is None:
            db.execute_sql("DELETE FROM hashtag_styles WHERE hashtag = %s", (hashtag,))
        else:
            db.execute_sql(
                "INSERT INTO hashtag_styles (hashtag, style_id) VALUES (%s, %s) "
                "ON CONFLICT (hashtag) DO UPDATE SET style_id = EXCLUDED.style_id",
                (hashtag, style_id),
            )
        db.commit()

    def count_hashtags_using_style(self, style_id: str) -> int:
        return _total(("SELECT COUNT(*) AS total FROM hashtag_styles WHERE style_id = %s", [style_id]))

    # Settings

    def get_setting(self, key: str) -> Optional[str]:
        row = db.fetch_one("SELECT value FROM settings WHERE key = %s", (key,))
        return row["value"] if row else None

    def set_setting(self, key: str, value: Optional[str]) -> None:
        db.execute_sql(
            "INSERT INTO settings (key, value) VALUES (%s, %s) ON CONFLICT (key) DO UPDATE SET value = EXCLUDED.value",
            (key, value),
        )
        db.commit()

    # Users

    def search_users(self, q: Optional[str], offset: int, limit: int) -> Tuple[List[Dict[str, Any]], int]:
        select, count = build_name_search("users", "email", "email ASC", q, offset, limit, extra=("name",))
        return db.fetch_all_rows(*select), _total(count)

    def get_user(self, user_id: str) -> Optional[Dict[str, Any]]:
        return db.fetch_one("SELECT * FROM users WHERE id = %s", (user_id,))

    def get_user_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        return db.fetch_one("SELECT * FROM users WHERE email = %s", (email,))

    def insert_user(self, data: Mapping[str, Any]) -> Dict[str, Any]:
        try:
            row = db.write_returning(
                "INSERT INTO users (email, name, role, password_hash) VALUES (%s, %s, %s, %s) RETURNING *",
                (data["email"], data["name"], data["role"], data["password_hash"]),
            )
        except psycopg2.IntegrityError as exc:
            raise ConflictError("Email already exists") from exc
        return row or {}

    def update_user_password(self, user_id: str, password_hash: str) -> Optional[Dict[str, Any]]:
        return db.write_returning(
            "UPDATE users SET password_hash = %s, updated_at = now() WHERE id = %s RETURNING *",
            (password_hash, user_id),
        )

    def delete_user(self, user_id: str) -> bool:
        deleted = db.execute_sql("DELETE FROM users WHERE id = %s", (user_id,))
        db.commit()
        return deleted > 0
