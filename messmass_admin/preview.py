from __future__ import annotations

from typing import Any, Dict, Mapping

from reactpy import html

from .styles import inline_styles, normalize_style

SAMPLE_BARS = (("Gen Alpha", 40), ("Gen Y+Z", 85), ("Gen X", 60), ("Boomer", 30), ("Other", 15))


def render_chart_samples(theme: Mapping[str, Any], regions: Dict[str, Dict[str, Any]]):
    chart = theme["chartColors"]
    peak = max(value for _, value in SAMPLE_BARS)
    return html.div(
        {"class": "preview-charts"},
        html.div(
            {"class": "preview-kpi", "style": regions["chart"]},
            html.span({"class": "preview-kpi-icon", "style": regions["kpi_icon"]}, "●"),
            html.div({"class": "preview-kpi-value", "style": regions["chart_value"]}, "12,480"),
            html.div({"class": "preview-kpi-label", "style": regions["chart_label"]}, "Total Images"),
        ),
        html.div(
            {"class": "preview-pie", "style": regions["chart"]},
            html.div({"class": "preview-chart-title", "style": regions["chart_title"]}, "Gender"),
            html.div(
                {
                    "class": "preview-pie-disc",
                    "style": {
                        "background": f"conic-gradient({chart['pieColor1']} 0 58%, {chart['pieColor2']} 58% 100%)",
                    },
                }
            ),
        ),
        html.div(
            {"class": "preview-bars", "style": regions["chart"]},
            html.div({"class": "preview-chart-title", "style": regions["chart_title"]}, "Age groups"),
            *[
                html.div(
                    {"class": "preview-bar-row", "key": label},
                    html.span({"class": "preview-bar-label", "style": regions["chart_label"]}, label),
                    html.span(
                        {
                            "class": "preview-bar",
                            "style": {
                                "width": f"{round(value * 100 / peak)}%",
                                "background": chart[f"barColor{index + 1}"],
                            },
                        }
                    ),
                )
                for index, (label, value) in enumerate(SAMPLE_BARS)
            ],
            html.div({"class": "preview-tooltip", "style": regions["tooltip"]}, "Gen Y+Z: 85"),
        ),
        html.button({"class": "preview-export", "type": "button", "style": regions["export_button"]}, "Export PDF"),
    )


def render_preview(style: Mapping[str, Any], active_tab: str):
    """Static mockup of a page rendered with ``style``.

    Chart samples only appear while the chart colors tab is active.
    """
    theme = normalize_style(style)
    regions = inline_styles(theme)
    scheme = theme["colorScheme"]
    return html.div(
        {"class": "style-preview", "style": regions["page"]},
        html.div(
            {"class": "preview-hero", "style": regions["hero"]},
            html.h2({"class": "preview-heading", "style": regions["heading"]}, theme.get("name") or "Untitled style"),
            html.div({"class": "preview-secondary", "style": regions["secondary"]}, theme.get("description") or "Event report"),
        ),
        html.div(
            {"class": "preview-content", "style": regions["content"]},
            html.h3({"class": "preview-heading", "style": regions["heading"]}, "Content box"),
            html.p("Primary text sits on the content background."),
            html.p({"style": regions["secondary"]}, "Secondary text for captions and metadata."),
            html.div(
                {"class": "preview-swatches"},
                *[
                    html.span(
                        {"class": "preview-swatch", "key": key, "style": {"background": scheme[key]}},
                        key,
                    )
                    for key in ("primary", "secondary", "success", "warning", "error")
                ],
            ),
        ),
        *([render_chart_samples(theme, regions)] if active_tab == "chartColors" else []),
    )
