from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict

from reactpy import component, hooks, html

from ..client import AdminApiClient
from ..errors import ApiError
from ..hooks import use_debounced_value, use_list_view, use_modal
from ..listing import SortState
from ..modal import FormModal, confirm_dialog, error_message
from ..settings import Settings
from ..users import validate_user
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

COLUMNS = (("email", "Email"), ("name", "Name"), ("role", "Role"), ("createdAt", "Created"))


def render_password_notice(notice: Dict[str, str], on_close):
    return html.div(
        {"class": "banner banner-success", "role": "status"},
        html.div(f"Password for {notice['email']} (shown only once):"),
        html.code({"class": "password"}, notice["password"]),
        html.button({"class": "btn glass-btn ghost", "type": "button", "on_click": lambda e: on_close()}, "Done"),
    )


@component
def UsersPage(client: AdminApiClient, settings: Settings):
    raw_search, set_raw_search = hooks.use_state("")
    search = use_debounced_value(raw_search, settings.search_debounce_seconds)
    view = use_list_view(client.list_users, search, SortState(), settings.page_size)
    modal, open_modal, dismiss = use_modal()
    form_values, set_form_values = hooks.use_state({})
    notice, set_notice = hooks.use_state(None)
    action_error, set_action_error = hooks.use_state("")

    def set_field(name: str, value: Any) -> None:
        set_form_values(lambda prev: {**prev, name: value})

    def open_form() -> None:
        set_action_error("")
        set_form_values({"email": "", "name": ""})
        open_modal("form")

    async def submit_form() -> None:
        payload = validate_user(form_values)
        body = await asyncio.to_thread(client.create_user, payload)
        set_notice({"email": body["user"]["email"], "password": body["password"]})
        view.reload()

    async def regenerate() -> None:
        user = modal.payload.get("user") or {}
        try:
            body = await asyncio.to_thread(client.regenerate_password, user["id"])
        except ApiError as exc:
            logger.warning("Failed to regenerate password for %s: %s", user.get("email"), exc.message)
            set_action_error(error_message(exc))
            return
        set_notice({"email": user["email"], "password": body["password"]})

    async def delete_user() -> None:
        user = modal.payload.get("user") or {}
        try:
            await asyncio.to_thread(client.delete_user, user["id"])
        except ApiError as exc:
            logger.warning("Failed to delete user %s: %s", user.get("email"), exc.message)
            set_action_error(error_message(exc))
            return
        view.remove_item("id", user["id"])

    def render_modal():
        if not modal.visible:
            return None
        closing = not modal.is_open
        user = modal.payload.get("user") or {}
        if modal.kind == "confirm-regenerate":
            return confirm_dialog(
                "regenerate-password",
                "Regenerate password",
                f"Generate a new password for {user.get('email')}? The old one stops working immediately.",
                regenerate,
                dismiss,
                variant="warning",
                confirm_label="Regenerate",
                closing=closing,
            )
        if modal.kind == "confirm-delete":
            return confirm_dialog(
                "delete-user",
                "Delete user",
                f"Delete {user.get('email')}? This cannot be undone.",
                delete_user,
                dismiss,
                confirm_label="Delete",
                closing=closing,
            )
        return FormModal(
            "user-form",
            "New admin user",
            html.div(
                {"class": "form-grid"},
                render_field("Email", text_input("email", form_values, set_field, input_type="email", required=True)),
                render_field("Name", text_input("name", form_values, set_field, required=True)),
                html.div({"class": "meta"}, "A random password is generated and shown once after saving."),
            ),
            submit_form,
            dismiss,
            submit_label="Create",
            closing=closing,
        )

    snapshot = view.snapshot
    rows = [
        html.tr(
            {"key": user["id"]},
            html.td(user.get("email") or ""),
            html.td(user.get("name") or ""),
            html.td(html.span({"class": "pill pill-info"}, user.get("role") or "admin")),
            html.td(str(user.get("createdAt") or "")[:10]),
            html.td(
                html.button(
                    {
                        "class": "btn glass-btn ghost",
                        "type": "button",
                        "on_click": lambda e, u=user: open_modal("confirm-regenerate", {"user": u}),
                    },
                    "New password",
                ),
                html.button(
                    {
                        "class": "btn glass-btn ghost",
                        "type": "button",
                        "on_click": lambda e, u=user: open_modal("confirm-delete", {"user": u}),
                    },
                    "Delete",
                ),
            ),
        )
        for user in snapshot.items
    ]

    return html.section(
        {"class": "card glass-surface glass-card"},
        section_head(
            "Users",
            "Admin accounts. Passwords are generated by the server.",
            html.button({"class": "btn glass-btn primary", "type": "button", "on_click": lambda e: open_form()}, "New user"),
        ),
        *([render_password_notice(notice, lambda: set_notice(None))] if notice else []),
        render_search(raw_search, set_raw_search, "Search by email or name..."),
        *([render_error_banner(snapshot.error, view.reload)] if snapshot.error else []),
        *([render_error_banner(action_error)] if action_error else []),
        render_table(
            render_sort_header(COLUMNS, SortState(), lambda _: None),
            rows,
            "Loading users..." if snapshot.loading else "No users found.",
        ),
        render_list_footer(snapshot, view.load_more, "users"),
        render_modal(),
    )
