"""Chart configurations: which variables feed each pie, bar and KPI chart.

A chart is a fixed number of elements, each a label, a color and a formula
over registry variables. Pie charts split two values, bar charts compare
five and a KPI shows a single number.
"""

from __future__ import annotations

import re
from typing import Any, Dict, List, Mapping

from .categories import is_valid_hex_color
from .errors import ChartValidationError, VariableRuleError
from .variables import VariableRegistry, extract_formula_references

CHART_TYPE_PIE = "pie"
CHART_TYPE_BAR = "bar"
CHART_TYPE_KPI = "kpi"

ELEMENT_COUNTS = {CHART_TYPE_PIE: 2, CHART_TYPE_BAR: 5, CHART_TYPE_KPI: 1}
CHART_TYPE_LABELS = {CHART_TYPE_PIE: "Pie", CHART_TYPE_BAR: "Bar", CHART_TYPE_KPI: "KPI"}

CHART_ID_PATTERN = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")
TITLE_MAX_LENGTH = 80

ELEMENT_COLORS = ("#3b82f6", "#f59e0b", "#10b981", "#ef4444", "#8b5cf6")


def blank_elements(chart_type: str) -> List[Dict[str, str]]:
    """Empty element rows for a new chart of ``chart_type``."""
    count = ELEMENT_COUNTS.get(chart_type, 1)
    return [
        {"id": f"element-{index + 1}", "label": "", "formula": "", "color": ELEMENT_COLORS[index % len(ELEMENT_COLORS)]}
        for index in range(count)
    ]


def resize_elements(elements: List[Mapping[str, Any]], chart_type: str) -> List[Dict[str, Any]]:
    """Keep existing rows when the type changes, padding or cutting to the new count."""
    blanks = blank_elements(chart_type)
    kept = [dict(element) for element in elements[: len(blanks)]]
    return kept + blanks[len(kept) :]


def _clean_element(index: int, element: Any, registry: VariableRegistry, errors: List[str]) -> Dict[str, Any]:
    position = f"Element {index + 1}"
    if not isinstance(element, Mapping):
        errors.append(f"{position} must be an object")
        return {}
    label = str(element.get("label") or "").strip()
    if not label:
        errors.append(f"{position} needs a label")
    element_id = str(element.get("id") or "").strip() or f"element-{index + 1}"
    color = str(element.get("color") or "").strip()
    if not is_valid_hex_color(color):
        errors.append(f"{position} color must be a valid hex color code (e.g., #3b82f6)")
    formula = str(element.get("formula") or "").strip()
    try:
        registry.validate_formula(formula)
    except VariableRuleError as exc:
        errors.append(f"{position}: {exc}")
    return {"id": element_id, "label": label, "formula": formula, "color": color}


def validate_chart(payload: Mapping[str, Any], registry: VariableRegistry) -> Dict[str, Any]:
    """Clean a full chart configuration or raise ``ChartValidationError``.

    Every element formula must reference known variables; all problems
    are reported together.
    """
    errors: List[str] = []

    chart_id = str(payload.get("chartId") or "").strip().lower()
    if not chart_id:
        errors.append("Chart ID is required")
    elif not CHART_ID_PATTERN.match(chart_id):
        errors.append("Chart ID can only contain lowercase letters, numbers and single hyphens")

    title = str(payload.get("title") or "").strip()
    if not title:
        errors.append("Chart title is required")
    elif len(title) > TITLE_MAX_LENGTH:
        errors.append(f"Chart title must be no more than {TITLE_MAX_LENGTH} characters long")

    chart_type = payload.get("type")
    if not isinstance(chart_type, str) or chart_type not in ELEMENT_COUNTS:
        errors.append('Chart type must be "pie", "bar", or "kpi"')
        chart_type = None

    order = payload.get("order")
    if isinstance(order, bool) or not isinstance(order, int) or order < 1:
        errors.append("Order must be a positive integer")

    is_active = payload.get("isActive", True)
    if not isinstance(is_active, bool):
        errors.append("isActive must be a boolean")

    raw_elements = payload.get("elements")
    elements: List[Dict[str, Any]] = []
    if not isinstance(raw_elements, list):
        errors.append("Elements must be a list")
    else:
        expected = ELEMENT_COUNTS.get(chart_type)
        if expected is not None and len(raw_elements) != expected:
            errors.append(f"{CHART_TYPE_LABELS[chart_type]} charts must have exactly {expected} element{'s' if expected > 1 else ''}")
        elements = [_clean_element(index, element, registry, errors) for index, element in enumerate(raw_elements)]
        ids = [element["id"] for element in elements if element]
        if len(ids) != len(set(ids)):
            errors.append("Element ids must be unique within a chart")

    if errors:
        raise ChartValidationError("; ".join(errors))
    return {
        "chartId": chart_id,
        "title": title,
        "type": chart_type,
        "order": order,
        "isActive": is_active,
        "elements": elements,
    }


def chart_references(chart: Mapping[str, Any]) -> List[str]:
    """Variables used anywhere in the chart, first occurrence first."""
    seen: Dict[str, None] = {}
    for element in chart.get("elements") or []:
        for name in extract_formula_references(element.get("formula")):
            seen.setdefault(name, None)
    return list(seen)
