from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional, Tuple

from reactpy import component, hooks, html

from ..client import AdminApiClient
from ..errors import ApiError, VariableRuleError
from ..hooks import use_debounced_value, use_modal
from ..modal import TRIGGER_BUTTON, FormModal, base_modal, confirm_dialog, error_message
from ..settings import Settings
from ..variables import (
    FLAG_EDITABLE_IN_MANUAL,
    FLAG_VISIBLE_IN_CLICKER,
    VARIABLE_TYPES,
    VariableDefinition,
    VariableRegistry,
    validate_custom_name,
)
from .common import (
    checkbox_input,
    render_error_banner,
    render_field,
    render_search,
    render_table,
    section_head,
    text_input,
    textarea_input,
)

logger = logging.getLogger(__name__)

HEAD = ("Variable", "Label", "Category", "Type", "Clicker", "Manual", "Actions")


def move_item(names: List[str], index: int, delta: int) -> List[str]:
    """Swap ``names[index]`` with its neighbour; out-of-range moves are no-ops."""
    target = index + delta
    if index < 0 or index >= len(names) or target < 0 or target >= len(names):
        return list(names)
    moved = list(names)
    moved[index], moved[target] = moved[target], moved[index]
    return moved


def persist_reorder(client: AdminApiClient, changes: List[Tuple[str, int]]) -> List[str]:
    """Send one update per changed rank and return the names that failed."""
    failed: List[str] = []
    for name, order in changes:
        try:
            client.update_variable(name, {"clickerOrder": order})
        except ApiError as exc:
            logger.warning("Failed to save clicker order for %s: %s", name, exc.message)
            failed.append(name)
    return failed


def reorder_summary(changes: List[Tuple[str, int]], failed: List[str]) -> str:
    if not failed:
        return ""
    saved = len(changes) - len(failed)
    return f"Saved {saved} of {len(changes)} positions. Failed: {', '.join(failed)}"


def variable_form_values(variable: Optional[VariableDefinition]) -> Dict[str, Any]:
    if variable is None:
        return {"name": "", "label": "", "type": "count", "category": "", "description": "", "formula": ""}
    return {"name": variable.name, "label": variable.label}


def new_variable_payload(values: Dict[str, Any], registry: VariableRegistry) -> Dict[str, Any]:
    """Check a custom variable form before it is sent."""
    name = validate_custom_name(values.get("name"))
    if name in registry:
        raise VariableRuleError(f"Variable {name} already exists")
    var_type = str(values.get("type") or "count")
    if var_type not in VARIABLE_TYPES:
        raise VariableRuleError(f"Invalid variable type: {var_type}")
    category = str(values.get("category") or "").strip()
    if not category:
        raise VariableRuleError("Category is required")
    formula = str(values.get("formula") or "").strip()
    if formula:
        registry.validate_formula(formula)
    return {
        "name": name,
        "label": str(values.get("label") or "").strip() or name,
        "type": var_type,
        "category": category,
        "description": str(values.get("description") or "").strip(),
        "derived": bool(formula),
        "formula": formula or None,
    }


def edit_variable_payload(values: Dict[str, Any], variable: VariableDefinition) -> Dict[str, Any]:
    label = str(values.get("label") or "").strip()
    if not label:
        raise VariableRuleError("Label is required")
    payload: Dict[str, Any] = {"label": label}
    if variable.is_custom:
        new_name = str(values.get("name") or "").strip()
        if new_name and new_name != variable.name:
            payload["newName"] = validate_custom_name(new_name)
    return payload


def _flag_cell(variable: VariableDefinition, flag: str, on_toggle):
    if variable.locked:
        return html.span({"class": "meta", "title": "Derived and text variables are never entered by hand"}, "-")
    return checkbox_input(
        f"{variable.name}-{flag}",
        variable.flags.get(flag),
        lambda value: on_toggle(variable.name, flag, value),
        label=f"{flag} for {variable.label}",
    )


@component
def VariablesPage(client: AdminApiClient, settings: Settings):
    registry_ref = hooks.use_ref(VariableRegistry())
    _, set_version = hooks.use_state(0)
    reload_token, set_reload_token = hooks.use_state(0)
    loading, set_loading = hooks.use_state(True)
    load_error, set_load_error = hooks.use_state("")
    action_error, set_action_error = hooks.use_state("")
    warning, set_warning = hooks.use_state("")
    raw_search, set_raw_search = hooks.use_state("")
    search = use_debounced_value(raw_search, settings.search_debounce_seconds)
    modal, open_modal, dismiss = use_modal()
    form_values, set_form_values = hooks.use_state({})
    order_names, set_order_names = hooks.use_state([])
    saving_order, set_saving_order = hooks.use_state(False)

    def bump() -> None:
        set_version(lambda value: value + 1)

    def reload() -> None:
        set_reload_token(lambda value: value + 1)

    @hooks.use_effect(dependencies=[reload_token])
    async def load_variables() -> None:
        set_loading(True)
        try:
            items = await asyncio.to_thread(client.list_variables)
        except ApiError as exc:
            logger.warning("Failed to load variables: %s", exc.message)
            set_load_error(error_message(exc))
            set_loading(False)
            return
        registry_ref.current = VariableRegistry(VariableDefinition.from_dict(item) for item in items)
        set_load_error("")
        set_loading(False)
        bump()

    registry: VariableRegistry = registry_ref.current

    async def toggle_flag(name: str, flag: str, value: bool) -> None:
        change = registry.set_flag(name, flag, value)
        if change is None:
            return
        set_action_error("")
        bump()
        try:
            await asyncio.to_thread(client.update_variable, name, {"flags": {flag: value}})
        except ApiError as exc:
            logger.warning("Failed to update %s on %s: %s", flag, name, exc.message)
            registry.revert(change)
            set_action_error(f"Could not update {name}: {error_message(exc)}")
            bump()
            return
        change.commit()

    def set_field(name: str, value: Any) -> None:
        set_form_values(lambda prev: {**prev, name: value})

    def open_form(variable: Optional[VariableDefinition] = None) -> None:
        set_action_error("")
        set_form_values(variable_form_values(variable))
        open_modal("form", {"name": variable.name if variable else None})

    async def submit_form() -> None:
        name = modal.payload.get("name")
        if name:
            payload = edit_variable_payload(form_values, registry.get(name))
            await asyncio.to_thread(client.update_variable, name, payload)
        else:
            payload = new_variable_payload(form_values, registry)
            await asyncio.to_thread(client.create_variable, payload)
        reload()

    async def delete_variable() -> None:
        name = modal.payload.get("name")
        try:
            await asyncio.to_thread(client.delete_variable, name)
        except ApiError as exc:
            logger.warning("Failed to delete variable %s: %s", name, exc.message)
            set_action_error(error_message(exc))
            return
        registry.delete_custom(name)
        bump()

    def open_reorder(category: str) -> None:
        set_warning("")
        set_order_names([v.name for v in registry.clicker_candidates(category)])
        open_modal("reorder", {"category": category})

    async def save_order(event_data: Any = None) -> None:
        if saving_order:
            return
        category = modal.payload.get("category")
        set_saving_order(True)
        try:
            changes = registry.reorder_within_category(category, list(order_names))
            failed = await asyncio.to_thread(persist_reorder, client, changes)
        finally:
            set_saving_order(False)
        set_warning(reorder_summary(changes, failed))
        if failed:
            reload()
        else:
            bump()
        dismiss(TRIGGER_BUTTON)

    def render_reorder_modal(closing: bool):
        items = []
        for index, name in enumerate(order_names):
            variable = registry.get(name)
            items.append(
                html.li(
                    {"key": name, "class": "reorder-item"},
                    html.span(f"{index + 1}. {variable.label}"),
                    html.button(
                        {
                            "class": "btn glass-btn ghost",
                            "type": "button",
                            "disabled": index == 0,
                            "aria-label": f"Move {variable.label} up",
                            "on_click": lambda e, i=index: set_order_names(lambda prev: move_item(prev, i, -1)),
                        },
                        "Up",
                    ),
                    html.button(
                        {
                            "class": "btn glass-btn ghost",
                            "type": "button",
                            "disabled": index == len(order_names) - 1,
                            "aria-label": f"Move {variable.label} down",
                            "on_click": lambda e, i=index: set_order_names(lambda prev: move_item(prev, i, 1)),
                        },
                        "Down",
                    ),
                )
            )

        def guarded_dismiss(trigger: str) -> None:
            if not saving_order:
                dismiss(trigger)

        return base_modal(
            "reorder-variables",
            f"Clicker order: {modal.payload.get('category')}",
            html.ol({"class": "reorder-list"}, *items),
            guarded_dismiss,
            footer=html._(
                html.button(
                    {
                        "class": "btn glass-btn ghost",
                        "type": "button",
                        "disabled": saving_order,
                        "on_click": lambda e: guarded_dismiss(TRIGGER_BUTTON),
                    },
                    "Cancel",
                ),
                html.button(
                    {"class": "btn glass-btn primary", "type": "button", "disabled": saving_order, "on_click": save_order},
                    "Saving..." if saving_order else "Save order",
                ),
            ),
            closing=closing,
            dismissable=not saving_order,
        )

    def render_form(editing: Optional[VariableDefinition]):
        if editing is not None:
            fields = [render_field("Label", text_input("label", form_values, set_field, required=True))]
            if editing.is_custom:
                fields.append(
                    render_field(
                        "Identifier",
                        text_input("name", form_values, set_field),
                        "Renaming does not migrate values already stored on events",
                    )
                )
            return html.div({"class": "form-grid", "key": editing.name}, *fields)
        return html.div(
            {"class": "form-grid", "key": "new"},
            render_field("Identifier", text_input("name", form_values, set_field, required=True), "Letters, numbers and _"),
            render_field("Label", text_input("label", form_values, set_field)),
            render_field(
                "Type",
                html.select(
                    {
                        "class": "input glass-input",
                        "default_value": form_values.get("type") or "count",
                        "on_change": lambda event: set_field("type", event.get("target", {}).get("value", "")),
                    },
                    *[html.option({"value": t, "key": t}, t) for t in VARIABLE_TYPES],
                ),
            ),
            render_field("Category", text_input("category", form_values, set_field, required=True)),
            render_field("Description", textarea_input("description", form_values, set_field, rows=2)),
            render_field("Formula", text_input("formula", form_values, set_field), "Optional, e.g. [remoteImages] + [hostessImages]"),
        )

    def render_modal():
        if not modal.visible:
            return None
        closing = not modal.is_open
        if modal.kind == "reorder":
            return render_reorder_modal(closing)
        name = modal.payload.get("name")
        if modal.kind == "confirm-delete":
            return confirm_dialog(
                "delete-variable",
                "Delete variable",
                f"Delete custom variable \"{name}\"? Values already stored on events are kept.",
                delete_variable,
                dismiss,
                confirm_label="Delete",
                closing=closing,
            )
        editing = registry.get(name) if name and name in registry else None
        return FormModal(
            "variable-form",
            f"Edit {editing.label}" if editing else "New custom variable",
            render_form(editing),
            submit_form,
            dismiss,
            closing=closing,
        )

    variables = registry.search(search)
    rows = [
        html.tr(
            {"key": variable.name},
            html.td(html.code(f"[{variable.name}]")),
            html.td(variable.label),
            html.td(variable.category),
            html.td(
                variable.type,
                *([html.span({"class": "pill pill-info", "title": variable.formula or ""}, "derived")] if variable.derived else []),
            ),
            html.td(_flag_cell(variable, FLAG_VISIBLE_IN_CLICKER, toggle_flag)),
            html.td(_flag_cell(variable, FLAG_EDITABLE_IN_MANUAL, toggle_flag)),
            html.td(
                html.button(
                    {"class": "btn glass-btn ghost", "type": "button", "on_click": lambda e, v=variable: open_form(v)},
                    "Edit",
                ),
                *(
                    [
                        html.button(
                            {
                                "class": "btn glass-btn ghost",
                                "type": "button",
                                "on_click": lambda e, v=variable: open_modal("confirm-delete", {"name": v.name}),
                            },
                            "Delete",
                        )
                    ]
                    if variable.is_custom
                    else []
                ),
            ),
        )
        for variable in variables
    ]
    reorderable = [category for category in registry.categories() if len(registry.clicker_candidates(category)) > 1]

    return html.section(
        {"class": "card glass-surface glass-card"},
        section_head(
            "Variables",
            "Choose which variables appear in the clicker and the manual editor.",
            html.button({"class": "btn glass-btn primary", "type": "button", "on_click": lambda e: open_form()}, "New variable"),
        ),
        render_search(raw_search, set_raw_search, "Search variables..."),
        *([render_error_banner(load_error, reload)] if load_error else []),
        *([render_error_banner(action_error)] if action_error else []),
        *([html.div({"class": "banner banner-warning", "role": "status"}, warning)] if warning else []),
        html.div(
            {"class": "toolbar"},
            html.span({"class": "meta"}, "Clicker order:"),
            *[
                html.button(
                    {"class": "btn glass-btn", "type": "button", "key": category, "on_click": lambda e, c=category: open_reorder(c)},
                    category,
                )
                for category in reorderable
            ],
        ),
        render_table(
            html.thead(html.tr(*[html.th({"key": label}, label) for label in HEAD])),
            rows,
            "Loading variables..." if loading else "No variables match the search.",
        ),
        html.div({"class": "list-footer"}, html.span({"class": "meta"}, f"{len(variables)} of {len(registry)} variables")),
        render_modal(),
    )
