from __future__ import annotations

import logging
from typing import Any, Dict, List

import psycopg2
from flask import Flask, g
from psycopg2 import pool
from psycopg2.extras import RealDictCursor

from .settings import Settings, required_env

logger = logging.getLogger(__name__)

DB_POOL: pool.ThreadedConnectionPool | None = None
DATABASE_URL: str | None = None

SCHEMA_STATEMENTS = [
    """
    CREATE TABLE IF NOT EXISTS page_styles (
        id BIGSERIAL PRIMARY KEY,
        name TEXT NOT NULL UNIQUE,
        description TEXT NOT NULL DEFAULT '',
        document JSONB NOT NULL,
        created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
        updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS projects (
        id BIGSERIAL PRIMARY KEY,
        event_name TEXT NOT NULL,
        event_date DATE NOT NULL,
        hashtags TEXT[] NOT NULL DEFAULT '{}',
        categorized_hashtags JSONB NOT NULL DEFAULT '{}'::jsonb,
        stats JSONB NOT NULL DEFAULT '{}'::jsonb,
        style_id BIGINT REFERENCES page_styles (id) ON DELETE SET NULL,
        view_slug TEXT NOT NULL UNIQUE,
        edit_slug TEXT NOT NULL UNIQUE,
        created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
        updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
    )
    """,
    "CREATE INDEX IF NOT EXISTS projects_updated_idx ON projects (updated_at DESC, id DESC)",
    """
    CREATE TABLE IF NOT EXISTS hashtag_categories (
        id BIGSERIAL PRIMARY KEY,
        name TEXT NOT NULL UNIQUE,
        color TEXT NOT NULL,
        display_order INTEGER NOT NULL DEFAULT 0,
        created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
        updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS variables_config (
        name TEXT PRIMARY KEY,
        label TEXT,
        type TEXT,
        category TEXT,
        description TEXT,
        derived BOOLEAN NOT NULL DEFAULT FALSE,
        formula TEXT,
        is_custom BOOLEAN NOT NULL DEFAULT FALSE,
        visible_in_clicker BOOLEAN,
        editable_in_manual BOOLEAN,
        clicker_order INTEGER,
        created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
        updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS chart_configurations (
        id BIGSERIAL PRIMARY KEY,
        chart_id TEXT NOT NULL UNIQUE,
        title TEXT NOT NULL,
        chart_type TEXT NOT NULL,
        display_order INTEGER NOT NULL DEFAULT 1,
        is_active BOOLEAN NOT NULL DEFAULT TRUE,
        elements JSONB NOT NULL DEFAULT '[]'::jsonb,
        created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
        updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS hashtag_styles (
        hashtag TEXT PRIMARY KEY,
        style_id BIGINT NOT NULL REFERENCES page_styles (id) ON DELETE CASCADE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS settings (
        key TEXT PRIMARY KEY,
        value TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS users (
        id BIGSERIAL PRIMARY KEY,
        email TEXT NOT NULL UNIQUE,
        name TEXT NOT NULL,
        role TEXT NOT NULL DEFAULT 'admin',
        password_hash TEXT NOT NULL,
        created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
        updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
    )
    """,
]


def configure_database(url: str | None) -> None:
    global DATABASE_URL, DB_POOL
    if url != DATABASE_URL and DB_POOL is not None:
        DB_POOL.closeall()
        DB_POOL = None
    DATABASE_URL = url


def get_db_pool() -> pool.ThreadedConnectionPool:
    global DB_POOL
    if DB_POOL is None:
        dsn = DATABASE_URL or required_env("DATABASE_URL")
        DB_POOL = pool.ThreadedConnectionPool(minconn=1, maxconn=10, dsn=dsn)
    return DB_POOL


def ensure_column(db, table: str, column: str, col_type: str) -> None:
    with db.cursor() as cursor:
        cursor.execute(f"ALTER TABLE {table} ADD COLUMN IF NOT EXISTS {column} {col_type}")


def init_db(db) -> None:
    with db.cursor() as cursor:
        for statement in SCHEMA_STATEMENTS:
            cursor.execute(statement)

    ensure_column(db, "projects", "style_id", "BIGINT")
    ensure_column(db, "variables_config", "clicker_order", "INTEGER")
    db.commit()


def _release(db) -> None:
    try:
        db.rollback()
    except psycopg2.Error:
        logger.warning("Rollback before returning a connection failed", exc_info=True)
    get_db_pool().putconn(db)


def maybe_init_db_on_startup(settings: Settings) -> None:
    """Create or upgrade the schema once at startup when RUN_DB_INIT=1.

    Schema changes never run on the request path.
    """
    if not settings.run_db_init:
        return

    db = get_db_pool().getconn()
    try:
        init_db(db)
        logger.info("Database schema initialised")
    finally:
        _release(db)


def get_db():
    if "db" not in g:
        g.db = get_db_pool().getconn()
    return g.db


def close_db(exc: Exception | None) -> None:
    db = g.pop("db", None)
    if db is not None:
        _release(db)


def init_app(app: Flask) -> None:
    app.teardown_appcontext(close_db)


def fetch_one(query: str, params: List[Any] | tuple[Any, ...] | None = None) -> Dict[str, Any] | None:
    with get_db().cursor(cursor_factory=RealDictCursor) as cursor:
        cursor.execute(query, params)
        row = cursor.fetchone()
        return dict(row) if row is not None else None


def fetch_all_rows(query: str, params: List[Any] | tuple[Any, ...] | None = None) -> List[Dict[str, Any]]:
    with get_db().cursor(cursor_factory=RealDictCursor) as cursor:
        cursor.execute(query, params)
        return [dict(row) for row in cursor.fetchall()]


def execute_sql(query: str, params: List[Any] | tuple[Any, ...] | None = None) -> int:
    with get_db().cursor() as cursor:
        cursor.execute(query, params)
        return cursor.rowcount


def write_returning(query: str, params: List[Any] | tuple[Any, ...] | None = None) -> Dict[str, Any] | None:
    row = fetch_one(query, params)
    get_db().commit()
    return row


def commit() -> None:
    get_db().commit()
