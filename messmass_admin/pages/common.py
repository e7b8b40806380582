from __future__ import annotations

import inspect
from typing import Any, Callable, Dict, List, Sequence, Tuple

from reactpy import html

from ..listing import ListViewSnapshot, SortState


def render_search(value: str, on_change: Callable[[str], None], placeholder: str = "Search..."):
    return html.input(
        {
            "class": "input glass-input search-input",
            "type": "search",
            "placeholder": placeholder,
            "default_value": value,
            "on_change": lambda event: on_change(str(event.get("target", {}).get("value", ""))),
        }
    )


def render_sort_header(
    columns: Sequence[Tuple[str, str]],
    sort: SortState,
    on_sort: Callable[[SortState], None],
    sortable: frozenset[str] | set[str] = frozenset(),
    trailing: Sequence[str] = ("Actions",),
):
    cells = []
    for key, label in columns:
        if key in sortable:
            cells.append(
                html.th(
                    {"key": key},
                    html.button(
                        {
                            "class": "sort-btn",
                            "type": "button",
                            "aria-sort": _aria_sort(sort, key),
                            "on_click": lambda event, column=key: on_sort(sort.toggle(column)),
                        },
                        f"{label}{sort.indicator(key)}",
                    ),
                )
            )
        else:
            cells.append(html.th({"key": key}, label))
    cells.extend(html.th({"key": f"trailing-{label}"}, label) for label in trailing)
    return html.thead(html.tr(*cells))


def _aria_sort(sort: SortState, column: str) -> str:
    if sort.field != column:
        return "none"
    return "ascending" if sort.order == "asc" else "descending"


def render_error_banner(message: str, on_retry: Callable[[], Any] | None = None):
    return html.div(
        {"class": "banner banner-error", "role": "alert"},
        html.span(message),
        *(
            [html.button({"class": "btn glass-btn ghost", "type": "button", "on_click": lambda e: on_retry()}, "Retry")]
            if on_retry
            else []
        ),
    )


def render_list_footer(snapshot: ListViewSnapshot, on_load_more: Callable[..., Any], noun: str = "items"):
    shown = len(snapshot.items)
    return html.div(
        {"class": "list-footer"},
        html.span({"class": "meta"}, f"Showing {shown} of {snapshot.total_matched} {noun}"),
        *(
            [
                html.button(
                    {
                        "class": "btn glass-btn",
                        "type": "button",
                        "disabled": snapshot.loading,
                        "on_click": on_load_more,
                    },
                    "Loading..." if snapshot.loading else "Load more",
                )
            ]
            if snapshot.has_more
            else []
        ),
    )


def render_table(head, rows: List[Any], empty_message: str):
    if not rows:
        return html.div({"class": "meta empty-state"}, empty_message)
    return html.div(
        {"class": "table-wrap glass-surface glass-panel"},
        html.table({"class": "table"}, head, html.tbody(*rows)),
    )


def render_field(label: str, control, hint: str | None = None):
    return html.label(
        {"class": "field"},
        html.span({"class": "label"}, label),
        control,
        *([html.div({"class": "meta"}, hint)] if hint else []),
    )


def text_input(name: str, values: Dict[str, Any], set_field: Callable[[str, Any], None], input_type: str = "text", **attrs: Any):
    return html.input(
        {
            "name": name,
            "class": "input glass-input",
            "type": input_type,
            "default_value": "" if values.get(name) is None else values.get(name),
            "on_change": lambda event: set_field(name, event.get("target", {}).get("value", "")),
            **attrs,
        }
    )


def textarea_input(name: str, values: Dict[str, Any], set_field: Callable[[str, Any], None], rows: int = 4):
    return html.textarea(
        {
            "name": name,
            "class": "textarea glass-input",
            "rows": rows,
            "default_value": values.get(name) or "",
            "on_change": lambda event: set_field(name, event.get("target", {}).get("value", "")),
        }
    )


def checkbox_input(name: str, checked: bool, on_toggle: Callable[[bool], Any], disabled: bool = False, label: str = ""):
    async def handle_change(event: Dict[str, Any]) -> None:
        result = on_toggle(bool(event.get("target", {}).get("checked")))
        if inspect.isawaitable(result):
            await result

    return html.input(
        {
            "name": name,
            "type": "checkbox",
            "checked": bool(checked),
            "disabled": disabled,
            "aria-label": label or name,
            "on_change": handle_change,
        }
    )


def section_head(title: str, meta: str, *actions):
    return html.div(
        {"class": "section-head"},
        html.div(html.h2(title), html.div({"class": "meta"}, meta)),
        html.div({"class": "section-actions"}, *actions),
    )
