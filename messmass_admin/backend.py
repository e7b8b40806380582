from __future__ import annotations

from datetime import date, datetime
from typing import Any, Dict, List, Optional

from flask import Blueprint, Flask, current_app, jsonify, request
from werkzeug.exceptions import HTTPException

from . import db
from .categories import merge_hashtags, validate_category
from .charts import chart_references, validate_chart
from .errors import ConflictError, NotFoundError, UnknownStatsKeysError, ValidationError, VariableRuleError
from .listing import (
    MODE_SEARCH_OFFSET,
    MODE_SORT_OFFSET,
    cursor_pagination,
    decode_cursor,
    encode_cursor,
    offset_pagination,
    parse_limit,
    parse_offset,
    parse_sort,
)
from .projects import PROJECT_SORT_FIELDS, new_slugs, project_to_wire, validate_project
from .repository import PostgresStore
from .settings import Settings
from .styles import BUILT_IN_STYLES, StyleSettings, normalize_style, resolve_style, validate_style
from .users import DEFAULT_ROLE, generate_password, hash_password, public_user, validate_user
from .variables import (
    FLAG_NAMES,
    VariableDefinition,
    VariableFlags,
    VariableRegistry,
    variable_row,
)

api = Blueprint("api", __name__, url_prefix="/api")

STORE_KEY = "messmass_store"


def get_store():
    return current_app.extensions[STORE_KEY]


def get_settings() -> Settings:
    return current_app.config["MESSMASS_SETTINGS"]


def ok(status: int = 200, **payload: Any):
    return jsonify({"success": True, **payload}), status


def fail(message: str, status: int, **extra: Any):
    return jsonify({"success": False, "error": message, **extra}), status


def json_body() -> Dict[str, Any]:
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        raise ValidationError("Expected a JSON object body")
    return payload


def _iso(value: Any) -> Any:
    return value.isoformat() if isinstance(value, (date, datetime)) else value


def load_registry() -> VariableRegistry:
    store = get_store()
    return VariableRegistry.from_storage(store.list_variable_configs(), store.list_category_names())


# Projects


@api.route("/projects", methods=["GET"])
def list_projects():
    store = get_store()
    q = (request.args.get("q") or "").strip()
    sort = parse_sort(request.args.get("sortField"), request.args.get("sortOrder"), PROJECT_SORT_FIELDS)
    limit = parse_limit(request.args.get("limit"))

    if q or sort.active:
        offset = parse_offset(request.args.get("offset"))
        rows, total = store.search_projects(q or None, sort, offset, limit)
        mode = MODE_SEARCH_OFFSET if q else MODE_SORT_OFFSET
        return ok(
            items=[project_to_wire(row) for row in rows],
            pagination=offset_pagination(mode, offset, limit, len(rows), total),
        )

    rows = store.list_projects_after(decode_cursor(request.args.get("cursor")), limit)
    page = rows[:limit]
    next_cursor = None
    if len(rows) > limit and page:
        last = page[-1]
        next_cursor = encode_cursor(_iso(last["updated_at"]), last["id"])
    return ok(
        items=[project_to_wire(row) for row in page],
        pagination=cursor_pagination(limit, next_cursor, store.count_projects()),
    )


def _check_style_exists(style_id: Optional[str]) -> None:
    if not style_id:
        return
    try:
        row = get_store().get_style(int(style_id))
    except ValueError:
        row = None
    if row is None:
        raise ValidationError(f"Unknown style: {style_id}")


def _project_or_404(project_id: int) -> Dict[str, Any]:
    row = get_store().get_project(project_id)
    if row is None:
        raise NotFoundError("Project not found")
    return row


@api.route("/projects", methods=["POST"])
def create_project():
    data = validate_project(json_body(), load_registry())
    _check_style_exists(data.get("styleId"))
    row = get_store().insert_project({**data, **new_slugs()})
    current_app.logger.info("Created project %s", row.get("id"))
    return ok(201, project=project_to_wire(row))


@api.route("/projects/<int:project_id>", methods=["GET", "PUT", "DELETE"])
def project_item(project_id: int):
    store = get_store()
    if request.method == "GET":
        return ok(project=project_to_wire(_project_or_404(project_id)))
    if request.method == "DELETE":
        if not store.delete_project(project_id):
            raise NotFoundError("Project not found")
        return ok()
    data = validate_project(json_body(), load_registry(), partial=True)
    _check_style_exists(data.get("styleId"))
    row = store.update_project(project_id, data)
    if row is None:
        raise NotFoundError("Project not found")
    return ok(project=project_to_wire(row))


# Hashtag categories


def category_to_wire(row: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": str(row["id"]),
        "name": row["name"],
        "color": row["color"],
        "order": row.get("display_order", 0),
        "createdAt": _iso(row.get("created_at")),
        "updatedAt": _iso(row.get("updated_at")),
    }


@api.route("/hashtag-categories", methods=["GET"])
def list_categories():
    q = (request.args.get("q") or "").strip()
    limit = parse_limit(request.args.get("limit"))
    offset = parse_offset(request.args.get("offset"))
    rows, total = get_store().search_categories(q or None, offset, limit)
    mode = MODE_SEARCH_OFFSET if q else MODE_SORT_OFFSET
    return ok(
        items=[category_to_wire(row) for row in rows],
        pagination=offset_pagination(mode, offset, limit, len(rows), total),
    )


@api.route("/hashtag-categories", methods=["POST"])
def create_category():
    store = get_store()
    data = validate_category(json_body())
    if store.get_category_by_name(data["name"]) is not None:
        raise ConflictError("Category with this name already exists")
    if data.get("order") is None:
        data["order"] = store.next_category_order()
    row = store.insert_category(data)
    return ok(201, category=category_to_wire(row))


@api.route("/hashtag-categories/<int:category_id>", methods=["PUT", "DELETE"])
def category_item(category_id: int):
    store = get_store()
    if request.method == "DELETE":
        if not store.delete_category(category_id):
            raise NotFoundError("Category not found")
        return ok()
    data = validate_category(json_body(), partial=True)
    if "name" in data:
        existing = store.get_category_by_name(data["name"])
        if existing is not None and existing["id"] != category_id:
            raise ConflictError("Category with this name already exists")
    row = store.update_category(category_id, data)
    if row is None:
        raise NotFoundError("Category not found")
    return ok(category=category_to_wire(row))


# Variables


@api.route("/variables-config", methods=["GET"])
def list_variables():
    registry = load_registry()
    q = (request.args.get("q") or "").strip()
    variables = registry.search(q) if q else registry.all()
    return ok(variables=[v.to_dict() for v in variables], categories=registry.categories())


@api.route("/variables-config", methods=["POST"])
def create_variable():
    payload = json_body()
    registry = load_registry()
    flags = VariableFlags.from_dict(payload.get("flags"))
    variable = registry.create_custom(VariableDefinition.from_dict({**payload, "isCustom": True}), flags)
    get_store().upsert_variable_config(variable.name, variable_row(variable))
    current_app.logger.info("Created custom variable %s", variable.name)
    return ok(201, variable=variable.to_dict())


def _persist_overrides(variable: VariableDefinition) -> None:
    if variable.is_custom:
        fields = variable_row(variable)
    else:
        fields = {
            "label": variable.label,
            "visible_in_clicker": variable.flags.visible_in_clicker,
            "editable_in_manual": variable.flags.editable_in_manual,
            "clicker_order": variable.clicker_order,
        }
    get_store().upsert_variable_config(variable.name, fields)


@api.route("/variables-config/<name>", methods=["PUT", "DELETE"])
def variable_item(name: str):
    registry = load_registry()
    if name not in registry:
        raise NotFoundError(f"Variable not found: {name}")

    if request.method == "DELETE":
        registry.delete_custom(name)
        _ensure_unused_by_charts(name)
        get_store().delete_variable_config(name)
        return ok()

    payload = json_body()
    if "label" in payload:
        registry.rename_label(name, str(payload["label"]))
    flags = payload.get("flags")
    if isinstance(flags, dict):
        for flag in FLAG_NAMES:
            if flag not in flags:
                continue
            if not isinstance(flags[flag], bool):
                raise VariableRuleError(f"{flag} must be a boolean")
            registry.set_flag(name, flag, flags[flag])
    if "clickerOrder" in payload:
        order = payload["clickerOrder"]
        if order is not None and (isinstance(order, bool) or not isinstance(order, int) or order < 0):
            raise VariableRuleError("clickerOrder must be a non-negative integer")
        registry.set_clicker_order(name, order)

    target = name
    new_name = payload.get("newName")
    if new_name and new_name != name:
        target = registry.rename_identifier(name, str(new_name)).name
        _ensure_unused_by_charts(name)
        get_store().rename_variable_config(name, target)

    variable = registry.get(target)
    _persist_overrides(variable)
    return ok(variable=variable.to_dict())


# Chart configurations


def chart_to_wire(row: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": str(row["id"]),
        "chartId": row["chart_id"],
        "title": row["title"],
        "type": row["chart_type"],
        "order": row.get("display_order", 1),
        "isActive": bool(row.get("is_active", True)),
        "elements": list(row.get("elements") or []),
        "createdAt": _iso(row.get("created_at")),
        "updatedAt": _iso(row.get("updated_at")),
    }


def _charts_using(variable_name: str) -> List[str]:
    return [row["chart_id"] for row in get_store().list_charts() if variable_name in chart_references(chart_to_wire(row))]


def _ensure_unused_by_charts(variable_name: str) -> None:
    charts = _charts_using(variable_name)
    if charts:
        raise ConflictError(f"Variable {variable_name} is used by charts: {', '.join(charts)}")


def _check_chart_id_free(chart_id: str, chart_pk: Optional[int] = None) -> None:
    existing = get_store().get_chart_by_chart_id(chart_id)
    if existing is not None and existing["id"] != chart_pk:
        raise ConflictError("Chart ID already exists")


@api.route("/chart-config", methods=["GET"])
def list_charts():
    return ok(configurations=[chart_to_wire(row) for row in get_store().list_charts()])


@api.route("/chart-config", methods=["POST"])
def create_chart():
    store = get_store()
    payload = json_body()
    if payload.get("order") is None:
        payload["order"] = store.next_chart_order()
    data = validate_chart(payload, load_registry())
    _check_chart_id_free(data["chartId"])
    row = store.insert_chart(data)
    current_app.logger.info("Created chart configuration %s", data["chartId"])
    return ok(201, configuration=chart_to_wire(row))


@api.route("/chart-config/<int:chart_pk>", methods=["PUT", "DELETE"])
def chart_item(chart_pk: int):
    store = get_store()
    if request.method == "DELETE":
        if not store.delete_chart(chart_pk):
            raise NotFoundError("Chart configuration not found")
        return ok()
    current = store.get_chart(chart_pk)
    if current is None:
        raise NotFoundError("Chart configuration not found")
    data = validate_chart({**chart_to_wire(current), **json_body()}, load_registry())
    _check_chart_id_free(data["chartId"], chart_pk)
    row = store.update_chart(chart_pk, data)
    if row is None:
        raise NotFoundError("Chart configuration not found")
    return ok(configuration=chart_to_wire(row))


# Page styles


def style_to_wire(row: Dict[str, Any]) -> Dict[str, Any]:
    style = normalize_style(row.get("document") or {})
    style.update(
        {
            "id": str(row["id"]),
            "name": row["name"],
            "description": row.get("description") or "",
            "createdAt": _iso(row.get("created_at")),
            "updatedAt": _iso(row.get("updated_at")),
        }
    )
    return style


def _style_document(style: Dict[str, Any]) -> Dict[str, Any]:
    return {key: value for key, value in style.items() if key not in {"id", "createdAt", "updatedAt"}}


def ensure_builtin_styles() -> None:
    store = get_store()
    if store.list_styles():
        return
    first_id = None
    for style in BUILT_IN_STYLES:
        row = store.insert_style(validate_style(style))
        first_id = first_id or str(row["id"])
    StyleSettings(store).set_global(first_id)
    current_app.logger.info("Seeded built-in page styles")


def _style_or_404(style_id: int) -> Dict[str, Any]:
    row = get_store().get_style(style_id)
    if row is None:
        raise NotFoundError("Style not found")
    return row


@api.route("/page-styles", methods=["GET"])
def list_styles():
    ensure_builtin_styles()
    store = get_store()
    return ok(styles=[style_to_wire(row) for row in store.list_styles()], **StyleSettings(store).as_dict())


@api.route("/page-styles", methods=["POST"])
def create_style():
    store = get_store()
    style = validate_style(json_body())
    if store.get_style_by_name(style["name"]) is not None:
        raise ConflictError("A style with this name already exists")
    row = store.insert_style(_style_document(style))
    return ok(201, style=style_to_wire(row))


@api.route("/page-styles/<int:style_id>", methods=["GET", "PUT", "DELETE"])
def style_item(style_id: int):
    store = get_store()
    if request.method == "GET":
        return ok(style=style_to_wire(_style_or_404(style_id)))

    _style_or_404(style_id)
    if request.method == "DELETE":
        pointers = StyleSettings(store)
        if str(style_id) in (pointers.global_style_id, pointers.admin_style_id):
            raise ConflictError("Cannot delete the global or admin default style")
        in_use = store.count_projects_using_style(style_id) + store.count_hashtags_using_style(style_id)
        if in_use:
            raise ConflictError(f"Style is in use by {in_use} project(s) or hashtag(s)")
        store.delete_style(style_id)
        return ok()

    style = validate_style(json_body())
    existing = store.get_style_by_name(style["name"])
    if existing is not None and existing["id"] != style_id:
        raise ConflictError("A style with this name already exists")
    row = store.update_style(style_id, _style_document(style))
    return ok(style=style_to_wire(row))


def _pointer_target() -> Optional[str]:
    style_id = json_body().get("styleId")
    if style_id in (None, ""):
        return None
    try:
        _style_or_404(int(style_id))
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid style id: {style_id}") from None
    return str(style_id)


@api.route("/page-styles/global", methods=["PUT"])
def set_global_style():
    target = _pointer_target()
    if target is None:
        raise ValidationError("A global style is required")
    pointers = StyleSettings(get_store())
    pointers.set_global(target)
    return ok(**pointers.as_dict())


@api.route("/page-styles/admin", methods=["PUT"])
def set_admin_style():
    pointers = StyleSettings(get_store())
    pointers.set_admin(_pointer_target())
    return ok(**pointers.as_dict())


@api.route("/page-styles/hashtag", methods=["GET", "PUT"])
def hashtag_styles():
    store = get_store()
    if request.method == "PUT":
        payload = json_body()
        hashtag = str(payload.get("hashtag") or "").strip().lstrip("#").lower()
        if not hashtag:
            raise ValidationError("hashtag is required")
        store.set_hashtag_style(hashtag, _pointer_target())
    bindings = [{"hashtag": row["hashtag"], "styleId": str(row["style_id"])} for row in store.list_hashtag_styles()]
    return ok(bindings=bindings)


@api.route("/page-styles/resolve", methods=["GET"])
def resolve_page_style():
    store = get_store()
    styles = {str(row["id"]): row.get("document") or {} for row in store.list_styles()}
    pointers = StyleSettings(store)
    project_style_id = None
    hashtag_style_ids = []
    project_id = request.args.get("projectId")
    if project_id:
        try:
            project = _project_or_404(int(project_id))
        except ValueError:
            raise ValidationError(f"Invalid project id: {project_id}") from None
        project_style_id = str(project["style_id"]) if project.get("style_id") else None
        bound = {row["hashtag"]: str(row["style_id"]) for row in store.list_hashtag_styles()}
        tags = merge_hashtags(project.get("hashtags") or [], project.get("categorized_hashtags"))
        hashtag_style_ids = [bound[tag] for tag in tags if tag in bound]
    style = resolve_style(
        styles,
        project_style_id=project_style_id,
        hashtag_style_ids=hashtag_style_ids,
        admin_style_id=pointers.admin_style_id,
        global_style_id=pointers.global_style_id,
        admin_context=request.args.get("admin") == "1",
    )
    return ok(style=style)


# Users


@api.route("/users", methods=["GET"])
def list_users():
    q = (request.args.get("q") or "").strip()
    limit = parse_limit(request.args.get("limit"))
    offset = parse_offset(request.args.get("offset"))
    rows, total = get_store().search_users(q or None, offset, limit)
    mode = MODE_SEARCH_OFFSET if q else MODE_SORT_OFFSET
    return ok(
        items=[public_user(row) for row in rows],
        pagination=offset_pagination(mode, offset, limit, len(rows), total),
    )


@api.route("/users", methods=["POST"])
def create_user():
    store = get_store()
    data = validate_user(json_body())
    if store.get_user_by_email(data["email"]) is not None:
        raise ConflictError("Email already exists")
    password = generate_password()
    row = store.insert_user({**data, "role": DEFAULT_ROLE, "password_hash": hash_password(password)})
    current_app.logger.info("Created admin user %s", data["email"])
    return ok(201, user=public_user(row), password=password)


@api.route("/users/<int:user_id>/regenerate-password", methods=["POST"])
def regenerate_password(user_id: int):
    password = generate_password()
    row = get_store().update_user_password(user_id, hash_password(password))
    if row is None:
        raise NotFoundError("User not found")
    return ok(user=public_user(row), password=password)


@api.route("/users/<int:user_id>", methods=["DELETE"])
def delete_user(user_id: int):
    if not get_store().delete_user(user_id):
        raise NotFoundError("User not found")
    return ok()


@api.route("/db-health")
def db_health():
    return jsonify({"ok": get_store().ping()})


# Errors and CORS


def _handle_unknown_stats(exc: UnknownStatsKeysError):
    return fail(str(exc), 400, unknownKeys=exc.keys)


def _handle_validation(exc: ValidationError):
    return fail(str(exc), 400)


def _handle_not_found(exc: NotFoundError):
    return fail(str(exc.args[0]) if exc.args else "Not found", 404)


def _handle_conflict(exc: ConflictError):
    return fail(str(exc), 409)


def _handle_http(exc: HTTPException):
    if not request.path.startswith("/api/"):
        return exc
    return fail(exc.description or exc.name, exc.code or 500)


def _handle_unexpected(exc: Exception):
    current_app.logger.exception("Unhandled error on %s %s", request.method, request.path)
    return fail("Internal server error", 500)


def cors_origin_for_request() -> str | None:
    origin = request.headers.get("Origin")
    if not origin:
        return None
    allowed = get_settings().cors_allowed_origins
    if "*" in allowed:
        return "*"
    if origin in allowed:
        return origin
    return None


def api_cors_preflight():
    if request.method == "OPTIONS" and request.path.startswith("/api/"):
        return "", 204
    return None


def add_api_cors_headers(response):
    if not request.path.startswith("/api/"):
        return response

    origin = cors_origin_for_request()
    if origin:
        response.headers["Access-Control-Allow-Origin"] = origin
        if origin != "*":
            response.headers["Vary"] = "Origin"

    response.headers["Access-Control-Allow-Methods"] = "GET, POST, PUT, DELETE, OPTIONS"
    response.headers["Access-Control-Allow-Headers"] = "Content-Type, Authorization"
    response.headers["Access-Control-Max-Age"] = "600"
    return response


def register_api(app: Flask, store: Any = None, settings: Settings | None = None) -> Flask:
    settings = settings or Settings.from_env()
    app.config["MESSMASS_SETTINGS"] = settings
    if store is None:
        db.configure_database(settings.database_url)
        db.init_app(app)
        store = PostgresStore()
    app.extensions[STORE_KEY] = store

    app.register_blueprint(api)
    app.before_request(api_cors_preflight)
    app.after_request(add_api_cors_headers)
    app.register_error_handler(UnknownStatsKeysError, _handle_unknown_stats)
    app.register_error_handler(ValidationError, _handle_validation)
    app.register_error_handler(NotFoundError, _handle_not_found)
    app.register_error_handler(ConflictError, _handle_conflict)
    app.register_error_handler(HTTPException, _handle_http)
    app.register_error_handler(Exception, _handle_unexpected)
    return app


def create_app(store: Any = None, settings: Settings | None = None) -> Flask:
    return register_api(Flask(__name__), store=store, settings=settings)
