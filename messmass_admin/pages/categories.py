from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional

from reactpy import component, hooks, html

from ..categories import DEFAULT_CATEGORY_COLORS, validate_category
from ..client import AdminApiClient
from ..errors import ApiError, CategoryValidationError
from ..hooks import use_debounced_value, use_list_view, use_modal
from ..listing import SortState
from ..modal import FormModal, confirm_dialog, error_message
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
)

logger = logging.getLogger(__name__)

COLUMNS = (("name", "Name"), ("color", "Color"), ("order", "Order"))


def category_form_values(category: Optional[Dict[str, Any]], suggested_color: str) -> Dict[str, Any]:
    category = category or {}
    return {
        "name": category.get("name") or "",
        "color": category.get("color") or suggested_color,
        "order": "" if category.get("order") is None else str(category.get("order")),
    }


def category_payload(values: Dict[str, Any]) -> Dict[str, Any]:
    """Clean form values; raises ``CategoryValidationError`` before any request."""
    payload: Dict[str, Any] = {"name": values.get("name"), "color": str(values.get("color") or "").strip()}
    order_text = str(values.get("order") or "").strip()
    if order_text:
        try:
            payload["order"] = int(order_text)
        except ValueError:
            raise CategoryValidationError("Category order must be a non-negative integer") from None
    return validate_category(payload)


@component
def CategoriesPage(client: AdminApiClient, settings: Settings):
    raw_search, set_raw_search = hooks.use_state("")
    search = use_debounced_value(raw_search, settings.search_debounce_seconds)
    view = use_list_view(client.list_categories, search, SortState(), settings.page_size)
    modal, open_modal, dismiss = use_modal()
    form_values, set_form_values = hooks.use_state({})
    action_error, set_action_error = hooks.use_state("")

    def set_field(name: str, value: Any) -> None:
        set_form_values(lambda prev: {**prev, name: value})

    def open_form(category: Optional[Dict[str, Any]] = None) -> None:
        set_action_error("")
        suggested = DEFAULT_CATEGORY_COLORS[len(view.snapshot.items) % len(DEFAULT_CATEGORY_COLORS)]
        set_form_values(category_form_values(category, suggested))
        open_modal("form", {"category": category})

    async def submit_form() -> None:
        payload = category_payload(form_values)
        category = modal.payload.get("category")
        if category:
            saved = await asyncio.to_thread(client.update_category, category["id"], payload)
            view.replace_item("id", category["id"], saved)
        else:
            await asyncio.to_thread(client.create_category, payload)
            view.reload()

    async def delete_category() -> None:
        category = modal.payload.get("category") or {}
        try:
            await asyncio.to_thread(client.delete_category, category["id"])
        except ApiError as exc:
            logger.warning("Failed to delete category %s: %s", category.get("name"), exc.message)
            set_action_error(error_message(exc))
            return
        view.remove_item("id", category["id"])

    def render_modal():
        if not modal.visible:
            return None
        closing = not modal.is_open
        category = modal.payload.get("category")
        if modal.kind == "confirm-delete":
            return confirm_dialog(
                "delete-category",
                "Delete category",
                f"Delete category \"{category['name']}\"? Hashtags assigned to it stay on their projects.",
                delete_category,
                dismiss,
                confirm_label="Delete",
                closing=closing,
            )
        return FormModal(
            "category-form",
            "Edit category" if category else "New category",
            html.div(
                {"class": "form-grid", "key": str((category or {}).get("id") or "new")},
                render_field(
                    "Name",
                    text_input("name", form_values, set_field, required=True, maxlength=50),
                    "Lowercase letters, numbers, - and _",
                ),
                render_field("Color", text_input("color", form_values, set_field, input_type="color")),
                render_field("Order", text_input("order", form_values, set_field, input_type="number", min=0), "Leave empty to append"),
            ),
            submit_form,
            dismiss,
            closing=closing,
        )

    snapshot = view.snapshot
    rows = [
        html.tr(
            {"key": category["id"]},
            html.td(html.span({"class": "tag", "style": {"background": category["color"]}}, category["name"])),
            html.td(html.code(category["color"])),
            html.td(str(category.get("order", 0))),
            html.td(
                html.button(
                    {"class": "btn glass-btn ghost", "type": "button", "on_click": lambda e, c=category: open_form(c)},
                    "Edit",
                ),
                html.button(
                    {
                        "class": "btn glass-btn ghost",
                        "type": "button",
                        "on_click": lambda e, c=category: open_modal("confirm-delete", {"category": c}),
                    },
                    "Delete",
                ),
            ),
        )
        for category in snapshot.items
    ]

    return html.section(
        {"class": "card glass-surface glass-card"},
        section_head(
            "Hashtag categories",
            "Group hashtags by category; the category color wins over individual hashtag colors.",
            html.button({"class": "btn glass-btn primary", "type": "button", "on_click": lambda e: open_form()}, "New category"),
        ),
        render_search(raw_search, set_raw_search, "Search categories..."),
        *([render_error_banner(snapshot.error, view.reload)] if snapshot.error else []),
        *([render_error_banner(action_error)] if action_error else []),
        render_table(
            render_sort_header(COLUMNS, SortState(), lambda _: None),
            rows,
            "Loading categories..." if snapshot.loading else "No categories yet.",
        ),
        render_list_footer(snapshot, view.load_more, "categories"),
        render_modal(),
    )
