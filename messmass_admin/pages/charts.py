from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional

from reactpy import component, hooks, html

from ..charts import CHART_TYPE_LABELS, CHART_TYPE_PIE, ELEMENT_COUNTS, blank_elements, resize_elements, validate_chart
from ..client import AdminApiClient
from ..errors import ApiError, ChartValidationError
from ..hooks import use_modal
from ..modal import FormModal, confirm_dialog, error_message
from ..settings import Settings
from ..variables import VariableDefinition, VariableRegistry
from .common import checkbox_input, render_error_banner, render_field, render_table, section_head, text_input

logger = logging.getLogger(__name__)

HEAD = ("Order", "Chart", "Type", "Elements", "Active", "Actions")


def chart_form_values(chart: Optional[Dict[str, Any]], next_order: int) -> Dict[str, Any]:
    if chart is None:
        return {
            "chartId": "",
            "title": "",
            "type": CHART_TYPE_PIE,
            "order": str(next_order),
            "isActive": True,
            "elements": blank_elements(CHART_TYPE_PIE),
        }
    return {
        "chartId": chart["chartId"],
        "title": chart["title"],
        "type": chart["type"],
        "order": str(chart.get("order", next_order)),
        "isActive": bool(chart.get("isActive", True)),
        "elements": [dict(element) for element in chart.get("elements") or []],
    }


def with_chart_type(values: Dict[str, Any], chart_type: str) -> Dict[str, Any]:
    if chart_type not in ELEMENT_COUNTS:
        return values
    return {**values, "type": chart_type, "elements": resize_elements(values.get("elements") or [], chart_type)}


def with_element_field(values: Dict[str, Any], index: int, field: str, value: Any) -> Dict[str, Any]:
    elements = [dict(element) for element in values.get("elements") or []]
    if 0 <= index < len(elements):
        elements[index][field] = value
    return {**values, "elements": elements}


def chart_payload(values: Dict[str, Any], registry: VariableRegistry) -> Dict[str, Any]:
    """Validate the form locally so bad formulas never reach the API."""
    order_text = str(values.get("order") or "").strip()
    try:
        order = int(order_text)
    except ValueError:
        raise ChartValidationError("Order must be a positive integer") from None
    return validate_chart({**values, "order": order}, registry)


def next_chart_order(charts: List[Dict[str, Any]]) -> int:
    return max((chart.get("order", 0) for chart in charts), default=0) + 1


@component
def ChartsPage(client: AdminApiClient, settings: Settings):
    charts, set_charts = hooks.use_state([])
    registry_ref = hooks.use_ref(VariableRegistry())
    reload_token, set_reload_token = hooks.use_state(0)
    loading, set_loading = hooks.use_state(True)
    load_error, set_load_error = hooks.use_state("")
    action_error, set_action_error = hooks.use_state("")
    modal, open_modal, dismiss = use_modal()
    form_values, set_form_values = hooks.use_state({})

    def reload() -> None:
        set_reload_token(lambda value: value + 1)

    @hooks.use_effect(dependencies=[reload_token])
    async def load_charts() -> None:
        set_loading(True)
        try:
            items = await asyncio.to_thread(client.list_charts)
            variables = await asyncio.to_thread(client.list_variables)
        except ApiError as exc:
            logger.warning("Failed to load chart configurations: %s", exc.message)
            set_load_error(error_message(exc))
            set_loading(False)
            return
        registry_ref.current = VariableRegistry(VariableDefinition.from_dict(item) for item in variables)
        set_charts(items)
        set_load_error("")
        set_loading(False)

    def replace_chart(saved: Dict[str, Any]) -> None:
        set_charts(lambda prev: [saved if chart["id"] == saved["id"] else chart for chart in prev])

    async def toggle_active(chart: Dict[str, Any], value: bool) -> None:
        set_action_error("")
        replace_chart({**chart, "isActive": value})
        try:
            saved = await asyncio.to_thread(client.update_chart, chart["id"], {"isActive": value})
        except ApiError as exc:
            logger.warning("Failed to toggle chart %s: %s", chart["chartId"], exc.message)
            replace_chart(chart)
            set_action_error(f"Could not update {chart['title']}: {error_message(exc)}")
            return
        replace_chart(saved)

    def open_form(chart: Optional[Dict[str, Any]] = None) -> None:
        set_action_error("")
        set_form_values(chart_form_values(chart, next_chart_order(charts)))
        open_modal("form", {"chart": chart})

    async def submit_form() -> None:
        payload = chart_payload(form_values, registry_ref.current)
        chart = modal.payload.get("chart")
        if chart:
            replace_chart(await asyncio.to_thread(client.update_chart, chart["id"], payload))
        else:
            await asyncio.to_thread(client.create_chart, payload)
            reload()

    async def delete_chart() -> None:
        chart = modal.payload.get("chart") or {}
        try:
            await asyncio.to_thread(client.delete_chart, chart["id"])
        except ApiError as exc:
            logger.warning("Failed to delete chart %s: %s", chart.get("chartId"), exc.message)
            set_action_error(error_message(exc))
            return
        set_charts(lambda prev: [item for item in prev if item["id"] != chart["id"]])

    def set_field(name: str, value: Any) -> None:
        set_form_values(lambda prev: {**prev, name: value})

    def render_elements():
        rows = []
        for index, element in enumerate(form_values.get("elements") or []):
            def change(field: str, i: int = index):
                return lambda event: set_form_values(
                    lambda prev: with_element_field(prev, i, field, event.get("target", {}).get("value", ""))
                )

            rows.append(
                html.div(
                    {"class": "element-row", "key": f"{form_values.get('type')}-{index}"},
                    html.input(
                        {
                            "class": "input glass-input",
                            "name": f"element-{index}-label",
                            "placeholder": "Label",
                            "default_value": element.get("label") or "",
                            "on_change": change("label"),
                        }
                    ),
                    html.input(
                        {
                            "class": "input glass-input",
                            "name": f"element-{index}-formula",
                            "placeholder": "[female] + [male]",
                            "default_value": element.get("formula") or "",
                            "on_change": change("formula"),
                        }
                    ),
                    html.input(
                        {
                            "class": "input",
                            "type": "color",
                            "name": f"element-{index}-color",
                            "default_value": element.get("color") or "#3b82f6",
                            "on_change": change("color"),
                        }
                    ),
                )
            )
        return html.div({"class": "element-list"}, *rows)

    def render_modal():
        if not modal.visible:
            return None
        closing = not modal.is_open
        chart = modal.payload.get("chart")
        if modal.kind == "confirm-delete":
            return confirm_dialog(
                "delete-chart",
                "Delete chart",
                f"Delete chart \"{chart['title']}\"? Reports stop showing it immediately.",
                delete_chart,
                dismiss,
                confirm_label="Delete",
                closing=closing,
            )
        return FormModal(
            "chart-form",
            f"Edit {chart['title']}" if chart else "New chart",
            html.div(
                {"class": "form-grid", "key": str((chart or {}).get("id") or "new")},
                render_field("Chart ID", text_input("chartId", form_values, set_field, required=True), "e.g. gender-distribution"),
                render_field("Title", text_input("title", form_values, set_field, required=True, maxlength=80)),
                render_field(
                    "Type",
                    html.select(
                        {
                            "class": "input glass-input",
                            "default_value": form_values.get("type") or CHART_TYPE_PIE,
                            "on_change": lambda event: set_form_values(
                                lambda prev: with_chart_type(prev, event.get("target", {}).get("value", ""))
                            ),
                        },
                        *[
                            html.option({"value": key, "key": key}, f"{label} ({ELEMENT_COUNTS[key]})")
                            for key, label in CHART_TYPE_LABELS.items()
                        ],
                    ),
                ),
                render_field("Order", text_input("order", form_values, set_field, input_type="number", min=1)),
                render_field(
                    "Active",
                    checkbox_input("isActive", form_values.get("isActive", True), lambda value: set_field("isActive", value)),
                ),
                render_field("Elements", render_elements(), "Formulas reference variables in brackets, e.g. [remoteImages]"),
            ),
            submit_form,
            dismiss,
            closing=closing,
        )

    rows = [
        html.tr(
            {"key": chart["id"]},
            html.td(str(chart.get("order", ""))),
            html.td(html.div(chart["title"]), html.code(chart["chartId"])),
            html.td(CHART_TYPE_LABELS.get(chart["type"], chart["type"])),
            html.td(
                *[
                    html.span({"class": "tag", "key": element["id"], "style": {"background": element["color"]}, "title": element["formula"]}, element["label"])
                    for element in chart.get("elements") or []
                ]
            ),
            html.td(
                checkbox_input(
                    f"{chart['chartId']}-active",
                    chart.get("isActive", True),
                    lambda value, c=chart: toggle_active(c, value),
                    label=f"Active: {chart['title']}",
                )
            ),
            html.td(
                html.button(
                    {"class": "btn glass-btn ghost", "type": "button", "on_click": lambda e, c=chart: open_form(c)},
                    "Edit",
                ),
                html.button(
                    {
                        "class": "btn glass-btn ghost",
                        "type": "button",
                        "on_click": lambda e, c=chart: open_modal("confirm-delete", {"chart": c}),
                    },
                    "Delete",
                ),
            ),
        )
        for chart in charts
    ]

    return html.section(
        {"class": "card glass-surface glass-card"},
        section_head(
            "Charts",
            "Pie charts take 2 elements, bar charts 5 and KPIs 1.",
            html.button({"class": "btn glass-btn primary", "type": "button", "on_click": lambda e: open_form()}, "New chart"),
        ),
        *([render_error_banner(load_error, reload)] if load_error else []),
        *([render_error_banner(action_error)] if action_error else []),
        render_table(
            html.thead(html.tr(*[html.th({"key": label}, label) for label in HEAD])),
            rows,
            "Loading charts..." if loading else "No charts configured yet.",
        ),
        html.div({"class": "list-footer"}, html.span({"class": "meta"}, f"{len(charts)} charts")),
        render_modal(),
    )
