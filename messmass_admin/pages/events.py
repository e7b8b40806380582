from __future__ import annotations

import asyncio
import logging
import re
from typing import Any, Dict, List, Optional

from reactpy import component, hooks, html

from ..categories import resolve_hashtag_color
from ..client import AdminApiClient
from ..errors import ApiError
from ..hooks import use_debounced_value, use_list_view, use_modal
from ..listing import SortState
from ..modal import FormModal, confirm_dialog, error_message
from ..projects import PROJECT_SORT_FIELDS, normalize_hashtag
from ..settings import Settings
from .common import (
    render_error_banner,
    render_field,
    render_list_footer,
    render_search,
    render_sort_header,
    render_table,
    section_head,
    text_input,
    textarea_input,
)

logger = logging.getLogger(__name__)

COLUMNS = (
    ("eventName", "Event"),
    ("eventDate", "Date"),
    ("images", "Images"),
    ("fans", "Fans"),
    ("attendees", "Attendees"),
    ("hashtags", "Hashtags"),
)


def parse_hashtag_input(text: str) -> List[str]:
    tags: List[str] = []
    for chunk in re.split(r"[,\s]+", text or ""):
        tag = normalize_hashtag(chunk)
        if tag and tag not in tags:
            tags.append(tag)
    return tags


def parse_categorized_input(text: str) -> Dict[str, List[str]]:
    """One ``category: tag, tag`` pair per line."""
    result: Dict[str, List[str]] = {}
    for line in (text or "").splitlines():
        if ":" not in line:
            continue
        category, tags = line.split(":", 1)
        name = category.strip().lower()
        parsed = parse_hashtag_input(tags)
        if name and parsed:
            result.setdefault(name, [])
            result[name].extend(tag for tag in parsed if tag not in result[name])
    return result


def format_categorized(mapping: Dict[str, List[str]] | None) -> str:
    return "\n".join(f"{category}: {', '.join(tags)}" for category, tags in (mapping or {}).items())


def project_form_values(project: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    project = project or {}
    return {
        "eventName": project.get("eventName") or "",
        "eventDate": project.get("eventDate") or "",
        "hashtags": ", ".join(project.get("hashtags") or []),
        "categorizedHashtags": format_categorized(project.get("categorizedHashtags")),
        "styleId": project.get("styleId") or "",
    }


def project_payload(values: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "eventName": str(values.get("eventName") or "").strip(),
        "eventDate": str(values.get("eventDate") or "").strip(),
        "hashtags": parse_hashtag_input(str(values.get("hashtags") or "")),
        "categorizedHashtags": parse_categorized_input(str(values.get("categorizedHashtags") or "")),
        "styleId": values.get("styleId") or None,
    }


def format_number(value: Any) -> str:
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if isinstance(value, int):
        return f"{value:,}"
    return str(value or 0)


def render_hashtags(project: Dict[str, Any], category_colors: Dict[str, str] | None = None):
    category_colors = category_colors or {}
    tags = [html.span({"class": "tag", "key": f"#{tag}"}, f"#{tag}") for tag in project.get("hashtags") or []]
    for category, values in (project.get("categorizedHashtags") or {}).items():
        color = resolve_hashtag_color(category_colors.get(category))
        tags.extend(
            html.span({"class": "tag", "key": f"{category}:{tag}", "style": {"borderColor": color, "color": color}}, f"{category}:{tag}")
            for tag in values
        )
    if not tags:
        return html.span({"class": "meta"}, "None")
    return html.div({"class": "tag-list"}, *tags)


@component
def EventsPage(client: AdminApiClient, settings: Settings):
    raw_search, set_raw_search = hooks.use_state("")
    search = use_debounced_value(raw_search, settings.search_debounce_seconds)
    sort, set_sort = hooks.use_state(SortState())
    view = use_list_view(client.list_projects, search, sort, settings.page_size)
    modal, open_modal, dismiss = use_modal()
    form_values, set_form_values = hooks.use_state({})
    styles, set_styles = hooks.use_state([])
    category_colors, set_category_colors = hooks.use_state({})
    action_error, set_action_error = hooks.use_state("")

    @hooks.use_effect(dependencies=[])
    async def load_lookups() -> None:
        try:
            body = await asyncio.to_thread(client.list_styles)
            categories = await asyncio.to_thread(client.list_categories, {"limit": 100})
        except ApiError as exc:
            logger.warning("Failed to load styles or categories: %s", exc.message)
            return
        set_styles(body.get("styles") or [])
        set_category_colors({item["name"]: item["color"] for item in categories.get("items") or []})

    def set_field(name: str, value: Any) -> None:
        set_form_values(lambda prev: {**prev, name: value})

    def open_form(project: Optional[Dict[str, Any]] = None) -> None:
        set_action_error("")
        set_form_values(project_form_values(project))
        open_modal("form", {"project": project})

    async def submit_form() -> None:
        payload = project_payload(form_values)
        project = modal.payload.get("project")
        if project:
            saved = await asyncio.to_thread(client.update_project, project["id"], payload)
            view.replace_item("id", project["id"], saved)
        else:
            await asyncio.to_thread(client.create_project, payload)
            view.reload()

    async def delete_project() -> None:
        project = modal.payload.get("project") or {}
        try:
            await asyncio.to_thread(client.delete_project, project["id"])
        except ApiError as exc:
            logger.warning("Failed to delete project %s: %s", project.get("id"), exc.message)
            set_action_error(error_message(exc))
            return
        view.remove_item("id", project["id"])

    def render_form():
        return html.div(
            {"class": "form-grid", "key": str((modal.payload.get("project") or {}).get("id") or "new")},
            render_field("Event name", text_input("eventName", form_values, set_field, required=True)),
            render_field("Event date", text_input("eventDate", form_values, set_field, input_type="date", required=True)),
            render_field("Hashtags", text_input("hashtags", form_values, set_field), "Comma separated, without #"),
            render_field(
                "Categorized hashtags",
                textarea_input("categorizedHashtags", form_values, set_field),
                "One line per category, e.g. country: hungary, austria",
            ),
            render_field(
                "Style",
                html.select(
                    {
                        "class": "input glass-input",
                        "default_value": form_values.get("styleId") or "",
                        "on_change": lambda event: set_field("styleId", event.get("target", {}).get("value", "")),
                    },
                    html.option({"value": ""}, "Use default"),
                    *[html.option({"value": style["id"], "key": style["id"]}, style["name"]) for style in styles],
                ),
            ),
        )

    def render_modal():
        if not modal.visible:
            return None
        closing = not modal.is_open
        if modal.kind == "confirm-delete":
            project = modal.payload.get("project") or {}
            return confirm_dialog(
                "delete-project",
                "Delete event",
                f"Delete \"{project.get('eventName')}\"? Its statistics are removed as well.",
                delete_project,
                dismiss,
                variant="danger",
                confirm_label="Delete",
                closing=closing,
            )
        return FormModal(
            "project-form",
            "Edit event" if modal.payload.get("project") else "New event",
            render_form(),
            submit_form,
            dismiss,
            closing=closing,
        )

    snapshot = view.snapshot
    rows = [
        html.tr(
            {"key": project["id"]},
            html.td(project.get("eventName") or ""),
            html.td(project.get("eventDate") or ""),
            html.td(format_number(project.get("images"))),
            html.td(format_number(project.get("fans"))),
            html.td(format_number(project.get("attendees"))),
            html.td(render_hashtags(project, category_colors)),
            html.td(
                html.button(
                    {"class": "btn glass-btn ghost", "type": "button", "on_click": lambda e, p=project: open_form(p)},
                    "Edit",
                ),
                html.button(
                    {
                        "class": "btn glass-btn ghost",
                        "type": "button",
                        "on_click": lambda e, p=project: open_modal("confirm-delete", {"project": p}),
                    },
                    "Delete",
                ),
            ),
        )
        for project in snapshot.items
    ]

    return html.section(
        {"class": "card glass-surface glass-card"},
        section_head(
            "Events",
            "Search by name, slug or hashtag. Click a column to sort.",
            html.button({"class": "btn glass-btn primary", "type": "button", "on_click": lambda e: open_form()}, "New event"),
        ),
        render_search(raw_search, set_raw_search, "Search events..."),
        *([render_error_banner(snapshot.error, view.reload)] if snapshot.error else []),
        *([render_error_banner(action_error)] if action_error else []),
        render_table(
            render_sort_header(COLUMNS, sort, set_sort, PROJECT_SORT_FIELDS),
            rows,
            "Loading events..." if snapshot.loading else "No events found.",
        ),
        render_list_footer(snapshot, view.load_more, "events"),
        render_modal(),
    )
