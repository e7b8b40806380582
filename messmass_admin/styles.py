"""Page style themes: defaults, immutable edits, validation and CSS helpers.

Themes travel as plain camelCase dictionaries, the same shape the API
stores in the ``page_styles.document`` column. Every edit returns a new
dictionary; nothing here mutates its input.
"""

from __future__ import annotations

import copy
import re
from typing import Any, Dict, Iterable, List, Mapping, Optional

from .errors import StyleValidationError

BACKGROUND_KEYS = ("pageBackground", "heroBackground")
BACKGROUND_TYPES = ("solid", "gradient")
FONT_FAMILIES = ("inter", "roboto", "poppins")
FONT_STACKS = {
    "inter": "Inter, system-ui, sans-serif",
    "roboto": "Roboto, system-ui, sans-serif",
    "poppins": "Poppins, system-ui, sans-serif",
}

EDITOR_TABS = ("general", "backgrounds", "typography", "colors", "chartColors")

CHART_COLOR_FIELDS = (
    "chartBackground",
    "chartBorder",
    "chartTitleColor",
    "chartLabelColor",
    "chartValueColor",
    "kpiIconColor",
    "barColor1",
    "barColor2",
    "barColor3",
    "barColor4",
    "barColor5",
    "pieColor1",
    "pieColor2",
    "tooltipBackground",
    "tooltipText",
    "exportButtonBackground",
    "exportButtonText",
)

GRADIENT_TOGGLE_ANGLE = 135
GRADIENT_TOGGLE_END_COLOR = "#000000"

DEFAULT_STYLE: Dict[str, Any] = {
    "name": "System Default",
    "description": "Clean, professional default theme",
    "pageBackground": {"type": "solid", "solidColor": "#ffffff"},
    "heroBackground": {
        "type": "gradient",
        "gradientAngle": 0,
        "gradientStops": [
            {"color": "#f8fafc", "position": 0},
            {"color": "#f1f5f9", "position": 100},
        ],
    },
    "contentBoxBackground": {"type": "solid", "solidColor": "#ffffff", "opacity": 0.95},
    "typography": {
        "fontFamily": "inter",
        "primaryTextColor": "#111827",
        "secondaryTextColor": "#6b7280",
        "headingColor": "#1f2937",
    },
    "colorScheme": {
        "primary": "#3b82f6",
        "secondary": "#10b981",
        "success": "#10b981",
        "warning": "#f59e0b",
        "error": "#ef4444",
    },
}

DARK_THEME: Dict[str, Any] = {
    "name": "Dark Theme",
    "description": "Modern dark mode theme",
    "pageBackground": {"type": "solid", "solidColor": "#1f2937"},
    "heroBackground": {
        "type": "gradient",
        "gradientAngle": 135,
        "gradientStops": [
            {"color": "#111827", "position": 0},
            {"color": "#1f2937", "position": 100},
        ],
    },
    "contentBoxBackground": {"type": "solid", "solidColor": "#374151", "opacity": 0.9},
    "typography": {
        "fontFamily": "roboto",
        "primaryTextColor": "#f9fafb",
        "secondaryTextColor": "#d1d5db",
        "headingColor": "#ffffff",
    },
    "colorScheme": {
        "primary": "#8b5cf6",
        "secondary": "#ec4899",
        "success": "#10b981",
        "warning": "#f59e0b",
        "error": "#ef4444",
    },
}

BUILT_IN_STYLES = (DEFAULT_STYLE, DARK_THEME)

_HEX_COLOR = re.compile(r"^#?([0-9a-fA-F]{6})([0-9a-fA-F]{2})?$")
_LEGACY_STOP = re.compile(r"(#[0-9a-fA-F]{6,8})\s+(\d+)%")


def derive_chart_colors(style: Mapping[str, Any]) -> Dict[str, str]:
    scheme = style.get("colorScheme") or {}
    typography = style.get("typography") or {}
    content = style.get("contentBoxBackground") or {}
    fallback = DEFAULT_STYLE["colorScheme"]

    def scheme_color(key: str) -> str:
        return scheme.get(key) or fallback[key]

    return {
        "chartBackground": content.get("solidColor") or "#ffffff",
        "chartBorder": "#e5e7eb",
        "chartTitleColor": typography.get("headingColor") or "#1f2937",
        "chartLabelColor": typography.get("secondaryTextColor") or "#6b7280",
        "chartValueColor": typography.get("primaryTextColor") or "#111827",
        "kpiIconColor": scheme_color("primary"),
        "barColor1": scheme_color("primary"),
        "barColor2": scheme_color("secondary"),
        "barColor3": scheme_color("success"),
        "barColor4": scheme_color("warning"),
        "barColor5": scheme_color("error"),
        "pieColor1": scheme_color("primary"),
        "pieColor2": scheme_color("secondary"),
        "tooltipBackground": typography.get("headingColor") or "#1f2937",
        "tooltipText": "#ffffff",
        "exportButtonBackground": scheme_color("primary"),
        "exportButtonText": "#ffffff",
    }


def normalize_style(raw: Mapping[str, Any] | None) -> Dict[str, Any]:
    """Fill missing sections from the default theme and backfill chart colors."""
    style: Dict[str, Any] = copy.deepcopy(dict(raw or {}))
    for key in ("pageBackground", "heroBackground", "contentBoxBackground", "typography", "colorScheme"):
        section = style.get(key)
        if key in BACKGROUND_KEYS and isinstance(section, str):
            section = style[key] = parse_legacy_gradient(section)
        if not isinstance(section, dict):
            style[key] = copy.deepcopy(DEFAULT_STYLE[key])
            continue
        for field_name, default_value in DEFAULT_STYLE[key].items():
            if key in BACKGROUND_KEYS and field_name != "type":
                continue
            section.setdefault(field_name, copy.deepcopy(default_value))
    style.setdefault("name", "")
    style.setdefault("description", "")

    chart = style.get("chartColors")
    if not isinstance(chart, dict):
        chart = {}
    derived = derive_chart_colors(style)
    style["chartColors"] = {name: chart.get(name) or derived[name] for name in CHART_COLOR_FIELDS}
    return style


def default_style() -> Dict[str, Any]:
    return normalize_style(DEFAULT_STYLE)


def update_field(style: Mapping[str, Any], path: str, value: Any) -> Dict[str, Any]:
    """Set ``value`` at a dot path, cloning every level on the way down."""
    keys = [key for key in path.split(".") if key]
    if not keys:
        raise StyleValidationError("Empty field path")

    def assign(node: Any, remaining: List[str]) -> Any:
        head, rest = remaining[0], remaining[1:]
        if isinstance(node, list):
            try:
                index = int(head)
            except ValueError:
                raise StyleValidationError(f"Invalid list index in path: {path}") from None
            clone_list = list(node)
            if not 0 <= index < len(clone_list):
                raise StyleValidationError(f"Index out of range in path: {path}")
            clone_list[index] = value if not rest else assign(clone_list[index], rest)
            return clone_list
        clone = dict(node) if isinstance(node, Mapping) else {}
        clone[head] = value if not rest else assign(clone.get(head), rest)
        return clone

    return assign(style, keys)


def toggle_background_type(style: Mapping[str, Any], key: str) -> Dict[str, Any]:
    if key not in BACKGROUND_KEYS:
        raise StyleValidationError(f"Not a switchable background: {key}")
    background = dict(style.get(key) or {})
    if background.get("type") == "gradient":
        stops = background.get("gradientStops") or []
        first = stops[0].get("color") if stops else None
        replacement = {"type": "solid", "solidColor": first or "#ffffff"}
    else:
        replacement = {
            "type": "gradient",
            "gradientAngle": GRADIENT_TOGGLE_ANGLE,
            "gradientStops": [
                {"color": background.get("solidColor") or "#ffffff", "position": 0},
                {"color": GRADIENT_TOGGLE_END_COLOR, "position": 100},
            ],
        }
    return update_field(style, key, replacement)


def validate_style(style: Mapping[str, Any]) -> Dict[str, Any]:
    """Return a normalized copy ready to store, or raise ``StyleValidationError``."""
    cleaned = normalize_style(style)
    name = str(cleaned.get("name") or "").strip()
    if not name:
        raise StyleValidationError("Style name is required")
    cleaned["name"] = name
    cleaned["description"] = str(cleaned.get("description") or "").strip()

    for key in BACKGROUND_KEYS:
        background = cleaned[key]
        if background.get("type") not in BACKGROUND_TYPES:
            raise StyleValidationError(f"{key}.type must be solid or gradient")
        if background["type"] == "gradient":
            stops = background.get("gradientStops") or []
            if len(stops) < 2:
                raise StyleValidationError(f"{key} needs at least two gradient stops")
            for stop in stops:
                position = stop.get("position")
                if not isinstance(position, (int, float)) or not 0 <= position <= 100:
                    raise StyleValidationError(f"{key} stop positions must be between 0 and 100")

    opacity = cleaned["contentBoxBackground"].get("opacity", 1)
    if not isinstance(opacity, (int, float)) or not 0 <= opacity <= 1:
        raise StyleValidationError("contentBoxBackground.opacity must be between 0 and 1")
    if cleaned["typography"].get("fontFamily") not in FONT_FAMILIES:
        raise StyleValidationError("typography.fontFamily must be one of: " + ", ".join(FONT_FAMILIES))
    return cleaned


def background_css(background: Mapping[str, Any] | None) -> str:
    background = background or {}
    if background.get("type") != "gradient":
        return background.get("solidColor") or "#ffffff"
    stops = background.get("gradientStops") or []
    if len(stops) < 2:
        return "#ffffff"
    angle = background.get("gradientAngle") or 0
    parts = ", ".join(f"{stop.get('color')} {stop.get('position')}%" for stop in stops)
    return f"linear-gradient({angle}deg, {parts})"


def hex_to_rgba(color: str, opacity: float) -> str:
    match = _HEX_COLOR.match((color or "").strip())
    if not match:
        # Named or rgb() colors are passed through untouched.
        return color
    digits = match.group(1)
    red, green, blue = (int(digits[i : i + 2], 16) for i in (0, 2, 4))
    return f"rgba({red}, {green}, {blue}, {opacity})"


def parse_legacy_gradient(value: str | None) -> Dict[str, Any]:
    """Parse the old ``"0deg, #ffffffff 0%, #000000ff 100%"`` format."""
    parts = [part.strip() for part in (value or "").split(",")]
    if len(parts) < 2:
        return {"type": "solid", "solidColor": "#ffffff"}
    angle_match = re.match(r"-?\d+", parts[0])
    angle = int(angle_match.group(0)) if angle_match else 0
    stops = []
    for part in parts[1:]:
        match = _LEGACY_STOP.search(part)
        if match:
            stops.append({"color": match.group(1)[:7], "position": int(match.group(2))})
    if len(stops) < 2:
        stops = [{"color": "#ffffff", "position": 0}, {"color": "#ffffff", "position": 100}]
    return {"type": "gradient", "gradientAngle": angle, "gradientStops": stops}


def inline_styles(style: Mapping[str, Any]) -> Dict[str, Dict[str, Any]]:
    """CSS property maps for each mockup region of a theme."""
    theme = normalize_style(style)
    typography = theme["typography"]
    content = theme["contentBoxBackground"]
    chart = theme["chartColors"]
    return {
        "page": {
            "background": background_css(theme["pageBackground"]),
            "color": typography["primaryTextColor"],
            "fontFamily": FONT_STACKS.get(typography["fontFamily"], FONT_STACKS["inter"]),
        },
        "hero": {"background": background_css(theme["heroBackground"])},
        "heading": {"color": typography["headingColor"]},
        "secondary": {"color": typography["secondaryTextColor"]},
        "content": {
            "background": hex_to_rgba(content.get("solidColor") or "#ffffff", content.get("opacity", 1)),
        },
        "chart": {
            "background": chart["chartBackground"],
            "border": f"1px solid {chart['chartBorder']}",
        },
        "chart_title": {"color": chart["chartTitleColor"]},
        "chart_label": {"color": chart["chartLabelColor"]},
        "chart_value": {"color": chart["chartValueColor"]},
        "kpi_icon": {"color": chart["kpiIconColor"]},
        "tooltip": {"background": chart["tooltipBackground"], "color": chart["tooltipText"]},
        "export_button": {
            "background": chart["exportButtonBackground"],
            "color": chart["exportButtonText"],
        },
    }


SETTING_GLOBAL_STYLE = "globalStyleId"
SETTING_ADMIN_STYLE = "adminStyleId"


class StyleSettings:
    """Access to the two singleton style pointers kept in the settings table."""

    def __init__(self, store: Any) -> None:
        self._store = store

    @property
    def global_style_id(self) -> Optional[str]:
        return self._store.get_setting(SETTING_GLOBAL_STYLE)

    @property
    def admin_style_id(self) -> Optional[str]:
        return self._store.get_setting(SETTING_ADMIN_STYLE)

    def set_global(self, style_id: Optional[str]) -> None:
        self._store.set_setting(SETTING_GLOBAL_STYLE, style_id)

    def set_admin(self, style_id: Optional[str]) -> None:
        self._store.set_setting(SETTING_ADMIN_STYLE, style_id)

    def as_dict(self) -> Dict[str, Optional[str]]:
        return {SETTING_GLOBAL_STYLE: self.global_style_id, SETTING_ADMIN_STYLE: self.admin_style_id}


def resolve_style(
    styles: Mapping[str, Mapping[str, Any]],
    *,
    project_style_id: Optional[str] = None,
    hashtag_style_ids: Iterable[Optional[str]] = (),
    admin_style_id: Optional[str] = None,
    global_style_id: Optional[str] = None,
    admin_context: bool = False,
) -> Dict[str, Any]:
    """Pick the effective theme.

    Order: project, first bound hashtag, admin (admin pages only), global,
    then the built-in default. Dangling ids fall through to the next level.
    """
    candidates: List[Optional[str]] = [project_style_id, *hashtag_style_ids]
    if admin_context:
        candidates.append(admin_style_id)
    candidates.append(global_style_id)
    for style_id in candidates:
        if style_id and style_id in styles:
            return normalize_style(styles[style_id])
    return default_style()
