"""Page style administration.

The list shows every stored theme with its global/admin badges. Editing
happens in place: a tabbed form on the left, the live mockup on the right.
Every keystroke replaces the draft through ``update_field`` so the preview
always renders the exact document that will be saved.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional, Tuple

from reactpy import component, hooks, html

from ..client import AdminApiClient
from ..errors import ApiError, StyleValidationError
from ..hooks import use_modal
from ..modal import confirm_dialog, error_message
from ..preview import render_preview
from ..settings import Settings
from ..styles import (
    CHART_COLOR_FIELDS,
    EDITOR_TABS,
    FONT_FAMILIES,
    default_style,
    normalize_style,
    toggle_background_type,
    update_field,
    validate_style,
)
from .common import render_error_banner, render_field, render_table, section_head

logger = logging.getLogger(__name__)

TAB_LABELS = {
    "general": "General",
    "backgrounds": "Backgrounds",
    "typography": "Typography",
    "colors": "Colors",
    "chartColors": "Chart colors",
}

# (path, label, kind)
Field = Tuple[str, str, str]


def _background_fields(key: str, title: str, draft: Dict[str, Any]) -> List[Field]:
    background = draft.get(key) or {}
    if background.get("type") != "gradient":
        return [(f"{key}.solidColor", f"{title} color", "color")]
    fields: List[Field] = [(f"{key}.gradientAngle", f"{title} angle", "number")]
    for index, _ in enumerate(background.get("gradientStops") or []):
        fields.append((f"{key}.gradientStops.{index}.color", f"{title} stop {index + 1} color", "color"))
        fields.append((f"{key}.gradientStops.{index}.position", f"{title} stop {index + 1} position", "number"))
    return fields


def editor_fields(tab: str, draft: Dict[str, Any]) -> List[Field]:
    """Form fields shown on one editor tab for the current draft."""
    if tab == "general":
        return [("name", "Name", "text"), ("description", "Description", "text")]
    if tab == "backgrounds":
        return [
            *_background_fields("pageBackground", "Page", draft),
            *_background_fields("heroBackground", "Hero", draft),
            ("contentBoxBackground.solidColor", "Content box color", "color"),
            ("contentBoxBackground.opacity", "Content box opacity", "opacity"),
        ]
    if tab == "typography":
        return [
            ("typography.fontFamily", "Font family", "font"),
            ("typography.primaryTextColor", "Primary text", "color"),
            ("typography.secondaryTextColor", "Secondary text", "color"),
            ("typography.headingColor", "Headings", "color"),
        ]
    if tab == "colors":
        return [
            (f"colorScheme.{key}", key.capitalize(), "color")
            for key in ("primary", "secondary", "success", "warning", "error")
        ]
    if tab == "chartColors":
        return [(f"chartColors.{key}", key, "color") for key in CHART_COLOR_FIELDS]
    raise StyleValidationError(f"Unknown editor tab: {tab}")


def read_field(draft: Dict[str, Any], path: str) -> Any:
    node: Any = draft
    for key in path.split("."):
        if isinstance(node, list):
            try:
                node = node[int(key)]
            except (ValueError, IndexError):
                return None
        elif isinstance(node, dict):
            node = node.get(key)
        else:
            return None
    return node


def coerce_field_value(kind: str, raw: Any) -> Any:
    """Convert raw input text; numbers that do not parse raise ``StyleValidationError``."""
    if kind not in ("number", "opacity"):
        return raw
    text = str(raw if raw is not None else "").strip()
    try:
        number = float(text)
    except ValueError:
        raise StyleValidationError(f"Not a number: {text!r}") from None
    return int(number) if number.is_integer() and kind == "number" else number


def _render_control(path: str, kind: str, value: Any, on_change):
    base = {
        "name": path,
        "class": "input glass-input",
        "default_value": "" if value is None else value,
        "on_change": lambda event: on_change(path, kind, event.get("target", {}).get("value", "")),
    }
    if kind == "font":
        return html.select(base, *[html.option({"value": font, "key": font}, font) for font in FONT_FAMILIES])
    if kind == "opacity":
        return html.input({**base, "type": "number", "min": 0, "max": 1, "step": 0.05})
    if kind == "number":
        return html.input({**base, "type": "number"})
    if kind == "color":
        return html.input({**base, "type": "color", "default_value": value or "#000000"})
    return html.input({**base, "type": "text"})


@component
def StylesPage(client: AdminApiClient, settings: Settings):
    styles, set_styles = hooks.use_state([])
    pointers, set_pointers = hooks.use_state({"globalStyleId": None, "adminStyleId": None})
    bindings, set_bindings = hooks.use_state([])
    reload_token, set_reload_token = hooks.use_state(0)
    loading, set_loading = hooks.use_state(True)
    load_error, set_load_error = hooks.use_state("")
    action_error, set_action_error = hooks.use_state("")
    draft, set_draft = hooks.use_state(None)
    draft_id, set_draft_id = hooks.use_state(None)
    active_tab, set_active_tab = hooks.use_state(EDITOR_TABS[0])
    saving, set_saving = hooks.use_state(False)
    editor_error, set_editor_error = hooks.use_state("")
    binding_form, set_binding_form = hooks.use_state({"hashtag": "", "styleId": ""})
    modal, open_modal, dismiss = use_modal()

    def reload() -> None:
        set_reload_token(lambda value: value + 1)

    @hooks.use_effect(dependencies=[reload_token])
    async def load_styles() -> None:
        set_loading(True)
        try:
            body = await asyncio.to_thread(client.list_styles)
            bound = await asyncio.to_thread(client.list_hashtag_styles)
        except ApiError as exc:
            logger.warning("Failed to load page styles: %s", exc.message)
            set_load_error(error_message(exc))
            set_loading(False)
            return
        set_styles(body.get("styles") or [])
        set_pointers({"globalStyleId": body.get("globalStyleId"), "adminStyleId": body.get("adminStyleId")})
        set_bindings(bound)
        set_load_error("")
        set_loading(False)

    def open_editor(style: Optional[Dict[str, Any]] = None) -> None:
        set_editor_error("")
        set_active_tab(EDITOR_TABS[0])
        if style is None:
            fresh = default_style()
            fresh["name"] = ""
            fresh["description"] = ""
            set_draft(fresh)
            set_draft_id(None)
        else:
            set_draft(normalize_style({k: v for k, v in style.items() if k not in ("id", "createdAt", "updatedAt")}))
            set_draft_id(style["id"])

    def close_editor() -> None:
        if saving:
            return
        set_draft(None)
        set_draft_id(None)

    def change_field(path: str, kind: str, raw: Any) -> None:
        try:
            value = coerce_field_value(kind, raw)
        except StyleValidationError as exc:
            set_editor_error(str(exc))
            return
        set_editor_error("")
        set_draft(lambda current: update_field(current, path, value))

    def toggle_background(key: str) -> None:
        set_draft(lambda current: toggle_background_type(current, key))

    async def save_draft(event_data: Any = None) -> None:
        if saving:
            return
        try:
            document = validate_style(draft)
        except StyleValidationError as exc:
            set_editor_error(str(exc))
            return
        set_saving(True)
        try:
            if draft_id:
                await asyncio.to_thread(client.update_style, draft_id, document)
            else:
                await asyncio.to_thread(client.create_style, document)
        except ApiError as exc:
            logger.warning("Failed to save style %s: %s", document["name"], exc.message)
            set_editor_error(error_message(exc))
            return
        finally:
            set_saving(False)
        set_draft(None)
        set_draft_id(None)
        reload()

    async def set_pointer(kind: str, style_id: Optional[str]) -> None:
        set_action_error("")
        try:
            if kind == "global":
                body = await asyncio.to_thread(client.set_global_style, style_id)
            else:
                body = await asyncio.to_thread(client.set_admin_style, style_id)
        except ApiError as exc:
            logger.warning("Failed to set %s style: %s", kind, exc.message)
            set_action_error(error_message(exc))
            return
        set_pointers({"globalStyleId": body.get("globalStyleId"), "adminStyleId": body.get("adminStyleId")})

    async def delete_style() -> None:
        style = modal.payload.get("style") or {}
        try:
            await asyncio.to_thread(client.delete_style, style["id"])
        except ApiError as exc:
            logger.warning("Failed to delete style %s: %s", style.get("name"), exc.message)
            set_action_error(error_message(exc))
            return
        set_styles(lambda current: [item for item in current if item["id"] != style["id"]])

    async def bind_hashtag(event_data: Any = None) -> None:
        hashtag = binding_form["hashtag"].strip().lstrip("#").lower()
        if not hashtag:
            set_action_error("Hashtag is required")
            return
        set_action_error("")
        try:
            bound = await asyncio.to_thread(client.set_hashtag_style, hashtag, binding_form["styleId"] or None)
        except ApiError as exc:
            logger.warning("Failed to bind style to #%s: %s", hashtag, exc.message)
            set_action_error(error_message(exc))
            return
        set_bindings(bound)
        set_binding_form({"hashtag": "", "styleId": ""})

    async def unbind_hashtag(hashtag: str) -> None:
        try:
            bound = await asyncio.to_thread(client.set_hashtag_style, hashtag, None)
        except ApiError as exc:
            set_action_error(error_message(exc))
            return
        set_bindings(bound)

    def render_tab_fields():
        controls = []
        if active_tab == "backgrounds":
            for key, title in (("pageBackground", "Page"), ("heroBackground", "Hero")):
                kind = (draft.get(key) or {}).get("type", "solid")
                controls.append(
                    html.button(
                        {
                            "class": "btn glass-btn",
                            "type": "button",
                            "key": f"toggle-{key}",
                            "on_click": lambda e, k=key: toggle_background(k),
                        },
                        f"{title}: {kind} (switch to {'solid' if kind == 'gradient' else 'gradient'})",
                    )
                )
        for path, label, kind in editor_fields(active_tab, draft):
            controls.append(
                html.div(
                    {"key": f"{draft_id or 'new'}-{path}"},
                    render_field(label, _render_control(path, kind, read_field(draft, path), change_field)),
                )
            )
        return html.div({"class": "form-grid"}, *controls)

    def render_editor():
        return html.section(
            {"class": "card glass-surface glass-card"},
            section_head(
                "Edit style" if draft_id else "New style",
                "Changes apply to the preview immediately and are stored on save.",
                html.button(
                    {"class": "btn glass-btn ghost", "type": "button", "disabled": saving, "on_click": lambda e: close_editor()},
                    "Cancel",
                ),
                html.button(
                    {"class": "btn glass-btn primary", "type": "button", "disabled": saving, "on_click": save_draft},
                    "Saving..." if saving else "Save style",
                ),
            ),
            *([render_error_banner(editor_error)] if editor_error else []),
            html.div(
                {"class": "tabs", "role": "tablist"},
                *[
                    html.button(
                        {
                            "class": f"tab {'active' if tab == active_tab else ''}",
                            "type": "button",
                            "role": "tab",
                            "key": tab,
                            "aria-selected": tab == active_tab,
                            "on_click": lambda e, t=tab: set_active_tab(t),
                        },
                        TAB_LABELS[tab],
                    )
                    for tab in EDITOR_TABS
                ],
            ),
            html.div(
                {"class": "editor-split"},
                html.div({"class": "editor-form", "key": active_tab}, render_tab_fields()),
                html.div({"class": "editor-preview"}, render_preview(draft, active_tab)),
            ),
        )

    def render_badges(style: Dict[str, Any]):
        badges = []
        if style["id"] == pointers.get("globalStyleId"):
            badges.append(html.span({"class": "pill pill-success", "key": "global"}, "Global"))
        if style["id"] == pointers.get("adminStyleId"):
            badges.append(html.span({"class": "pill pill-info", "key": "admin"}, "Admin"))
        return badges

    def render_bindings():
        names = {style["id"]: style["name"] for style in styles}
        rows = [
            html.tr(
                {"key": binding["hashtag"]},
                html.td(f"#{binding['hashtag']}"),
                html.td(names.get(binding["styleId"], binding["styleId"])),
                html.td(
                    html.button(
                        {
                            "class": "btn glass-btn ghost",
                            "type": "button",
                            "on_click": lambda e, h=binding["hashtag"]: unbind_hashtag(h),
                        },
                        "Remove",
                    )
                ),
            )
            for binding in bindings
        ]
        return html.div(
            {"class": "hashtag-bindings"},
            html.h3("Hashtag styles"),
            html.div({"class": "meta"}, "Events carrying a bound hashtag use its style unless they pick one themselves."),
            html.div(
                {"class": "toolbar"},
                html.input(
                    {
                        "class": "input glass-input",
                        "placeholder": "hashtag",
                        "default_value": binding_form["hashtag"],
                        "on_change": lambda event: set_binding_form(
                            lambda prev: {**prev, "hashtag": event.get("target", {}).get("value", "")}
                        ),
                    }
                ),
                html.select(
                    {
                        "class": "input glass-input",
                        "default_value": binding_form["styleId"],
                        "on_change": lambda event: set_binding_form(
                            lambda prev: {**prev, "styleId": event.get("target", {}).get("value", "")}
                        ),
                    },
                    html.option({"value": ""}, "Select a style"),
                    *[html.option({"value": style["id"], "key": style["id"]}, style["name"]) for style in styles],
                ),
                html.button({"class": "btn glass-btn", "type": "button", "on_click": bind_hashtag}, "Bind"),
            ),
            render_table(
                html.thead(html.tr(html.th("Hashtag"), html.th("Style"), html.th("Actions"))),
                rows,
                "No hashtag styles yet.",
            ),
        )

    def render_modal():
        if not modal.visible:
            return None
        style = modal.payload.get("style") or {}
        return confirm_dialog(
            "delete-style",
            "Delete style",
            f"Delete \"{style.get('name')}\"? Styles that are in use or set as a default cannot be deleted.",
            delete_style,
            dismiss,
            confirm_label="Delete",
            closing=not modal.is_open,
        )

    if draft is not None:
        return render_editor()

    admin_id = pointers.get("adminStyleId")
    rows = [
        html.tr(
            {"key": style["id"]},
            html.td(style["name"], *render_badges(style)),
            html.td({"class": "meta"}, style.get("description") or ""),
            html.td(
                html.button(
                    {"class": "btn glass-btn ghost", "type": "button", "on_click": lambda e, s=style: open_editor(s)},
                    "Edit",
                ),
                html.button(
                    {
                        "class": "btn glass-btn ghost",
                        "type": "button",
                        "disabled": style["id"] == pointers.get("globalStyleId"),
                        "on_click": lambda e, s=style: set_pointer("global", s["id"]),
                    },
                    "Set global",
                ),
                html.button(
                    {
                        "class": "btn glass-btn ghost",
                        "type": "button",
                        "on_click": lambda e, s=style: set_pointer("admin", None if s["id"] == admin_id else s["id"]),
                    },
                    "Clear admin" if style["id"] == admin_id else "Set admin",
                ),
                html.button(
                    {
                        "class": "btn glass-btn ghost",
                        "type": "button",
                        "on_click": lambda e, s=style: open_modal("confirm-delete", {"style": s}),
                    },
                    "Delete",
                ),
            ),
        )
        for style in styles
    ]

    return html.section(
        {"class": "card glass-surface glass-card"},
        section_head(
            "Page styles",
            "Themes for public stats pages and the admin area.",
            html.button({"class": "btn glass-btn primary", "type": "button", "on_click": lambda e: open_editor()}, "New style"),
        ),
        *([render_error_banner(load_error, reload)] if load_error else []),
        *([render_error_banner(action_error)] if action_error else []),
        render_table(
            html.thead(html.tr(html.th("Name"), html.th("Description"), html.th("Actions"))),
            rows,
            "Loading styles..." if loading else "No styles yet.",
        ),
        render_bindings(),
        render_modal(),
    )
