from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict

from flask import Flask
from reactpy import component, hooks, html
from reactpy.backend.flask import Options, configure

from . import db
from .backend import register_api
from .client import AdminApiClient
from .errors import ApiError
from .pages import CategoriesPage, ChartsPage, EventsPage, StylesPage, UsersPage, VariablesPage
from .settings import Settings, configure_logging, load_dotenv
from .styles import inline_styles

logger = logging.getLogger(__name__)

PAGES = (
    ("events", "Events", EventsPage),
    ("categories", "Categories", CategoriesPage),
    ("variables", "Variables", VariablesPage),
    ("charts", "Charts", ChartsPage),
    ("styles", "Styles", StylesPage),
    ("users", "Users", UsersPage),
)

ADMIN_CSS = """
:root {
  color-scheme: light;
  --bg-2: #86c9ff;
  --bg-3: #356eff;
  --bg-4: #f2f6ff;
  --glass: rgba(255, 255, 255, 0.58);
  --glass-2: rgba(255, 255, 255, 0.32);
  --border: rgba(255, 255, 255, 0.5);
  --text: #0b1220;
  --muted: #56627a;
  --shadow: 0 24px 60px rgba(10, 20, 45, 0.22);
  --shadow-soft: 0 12px 30px rgba(10, 20, 45, 0.14);
  --blur: 26px;
  --radius: 22px;
  --accent: #0a84ff;
  --accent-2: #6bd7ff;
  --danger: #e5484d;
  --warning: #f59e0b;
}

@media (prefers-color-scheme: dark) {
  :root {
    color-scheme: dark;
    --bg-2: #111f3d;
    --bg-3: #1b2f61;
    --bg-4: #0b142b;
    --glass: rgba(12, 18, 34, 0.62);
    --glass-2: rgba(12, 18, 34, 0.42);
    --border: rgba(255, 255, 255, 0.14);
    --text: #ecf2ff;
    --muted: #a7b6d3;
    --shadow: 0 26px 70px rgba(0, 0, 0, 0.45);
    --accent: #6bb7ff;
  }
}

* { box-sizing: border-box; }

body {
  margin: 0;
  font-family: "SF Pro Text", "Helvetica Neue", "Segoe UI", sans-serif;
  color: var(--text);
  background: linear-gradient(155deg, var(--bg-2) 0%, var(--bg-3) 55%, var(--bg-4) 100%);
  min-height: 100vh;
}

.page {
  max-width: 1180px;
  margin: 0 auto;
  padding: 32px 24px 88px;
  display: grid;
  gap: 24px;
}

.glass-surface {
  background: linear-gradient(135deg, var(--glass), var(--glass-2));
  border: 1px solid var(--border);
  border-radius: var(--radius);
  box-shadow: var(--shadow), inset 0 1px 0 rgba(255, 255, 255, 0.45);
  backdrop-filter: blur(var(--blur)) saturate(180%);
  -webkit-backdrop-filter: blur(var(--blur)) saturate(180%);
}

.card { padding: 24px; }

.navbar {
  max-width: 1180px;
  margin: 20px auto 0;
  padding: 14px 20px;
  display: flex;
  align-items: center;
  justify-content: space-between;
  gap: 16px;
  flex-wrap: wrap;
  position: sticky;
  top: 16px;
  z-index: 10;
}

.nav-eyebrow { text-transform: uppercase; letter-spacing: 0.28em; font-size: 10px; color: var(--muted); }
.nav-title { font-size: 18px; font-weight: 600; }
.nav-actions, .tabs, .toolbar, .section-actions, .tag-list { display: flex; gap: 8px; flex-wrap: wrap; align-items: center; }

h1, h2, h3 { margin: 0 0 8px; font-weight: 600; letter-spacing: -0.02em; }
h2 { font-size: 20px; margin-bottom: 4px; }
.meta { color: var(--muted); font-size: 14px; }

.section-head {
  display: flex;
  align-items: center;
  justify-content: space-between;
  gap: 12px;
  flex-wrap: wrap;
  margin-bottom: 16px;
}

.btn, .glass-btn, .tab {
  border: 1px solid var(--border);
  background: linear-gradient(135deg, rgba(255, 255, 255, 0.8), rgba(255, 255, 255, 0.35));
  padding: 10px 16px;
  border-radius: 999px;
  cursor: pointer;
  font-size: 13px;
  font-weight: 600;
  color: var(--text);
  box-shadow: var(--shadow-soft);
}

.btn.primary, .tab.active {
  background: linear-gradient(160deg, var(--accent-2), var(--accent) 55%, #0a4bd6 100%);
  color: #fff;
}

.btn.ghost { background: rgba(255, 255, 255, 0.14); box-shadow: none; }
.btn.danger { background: var(--danger); color: #fff; }
.btn.warning { background: var(--warning); color: #1f1300; }
.btn.info { background: var(--accent); color: #fff; }
.btn[disabled] { cursor: wait; opacity: 0.6; pointer-events: none; }

.sort-btn {
  background: none;
  border: none;
  padding: 0;
  font: inherit;
  color: inherit;
  letter-spacing: inherit;
  text-transform: inherit;
  cursor: pointer;
}

.tag {
  display: inline-flex;
  padding: 4px 10px;
  border-radius: 999px;
  border: 1px solid var(--border);
  background: rgba(255, 255, 255, 0.7);
  font-size: 12px;
}

.element-list { display: grid; gap: 8px; }
.element-row { display: grid; grid-template-columns: 1fr 2fr 48px; gap: 8px; align-items: center; }

.pill { display: inline-flex; margin-left: 6px; padding: 2px 8px; border-radius: 999px; font-size: 11px; font-weight: 600; }
.pill-success { background: rgba(68, 201, 140, 0.18); color: #0f5132; }
.pill-info { background: rgba(86, 160, 255, 0.2); color: #133d7a; }

.banner { padding: 12px 16px; border-radius: 14px; margin: 12px 0; display: flex; gap: 12px; align-items: center; flex-wrap: wrap; }
.banner-error { background: rgba(229, 72, 77, 0.14); border: 1px solid rgba(229, 72, 77, 0.45); }
.banner-warning { background: rgba(245, 158, 11, 0.16); border: 1px solid rgba(245, 158, 11, 0.45); }
.banner-success { background: rgba(68, 201, 140, 0.16); border: 1px solid rgba(68, 201, 140, 0.45); }
.password { font-size: 16px; user-select: all; }

.search-input { margin-bottom: 16px; }
.table-wrap { border-radius: 16px; overflow-x: auto; }
.table { width: 100%; border-collapse: collapse; font-size: 14px; }
.table th, .table td { text-align: left; padding: 12px; border-bottom: 1px solid rgba(15, 23, 42, 0.08); }
.table th { font-size: 11px; letter-spacing: 0.12em; text-transform: uppercase; color: var(--muted); }
.list-footer { display: flex; justify-content: space-between; align-items: center; margin-top: 12px; }
.empty-state { padding: 24px 0; }

.modal {
  position: fixed;
  inset: 0;
  display: flex;
  align-items: center;
  justify-content: center;
  padding: 24px;
  z-index: 40;
  animation: modal-in 0.15s ease-out;
}

.modal.closing { animation: modal-out 0.15s ease-in forwards; }
.modal-backdrop { position: absolute; inset: 0; background: rgba(8, 16, 32, 0.45); backdrop-filter: blur(16px); }
.modal-card { position: relative; padding: 24px; display: grid; gap: 16px; max-height: 90vh; overflow-y: auto; }
.modal-sm { width: min(440px, 95vw); }
.modal-md { width: min(720px, 95vw); }
.modal-head { display: flex; justify-content: space-between; align-items: center; }
.modal-title { font-size: 20px; margin: 0; }
.dialog-message { margin: 0; }

@keyframes modal-in { from { opacity: 0; } to { opacity: 1; } }
@keyframes modal-out { from { opacity: 1; } to { opacity: 0; } }

.form, .form-grid, .field { display: grid; gap: 14px; }
.field { gap: 6px; }
.label { font-size: 12px; text-transform: uppercase; letter-spacing: 0.12em; color: var(--muted); }
.form-actions { display: flex; gap: 10px; flex-wrap: wrap; justify-content: flex-end; }

.input, .textarea, .glass-input {
  width: 100%;
  padding: 12px 14px;
  border-radius: 12px;
  border: 1px solid rgba(255, 255, 255, 0.4);
  background: rgba(255, 255, 255, 0.85);
  font-size: 14px;
  color: #0b1220;
}

.input[type="color"] { padding: 4px; height: 42px; }
.input[type="checkbox"] { width: auto; }
.textarea { min-height: 96px; resize: vertical; }

.reorder-list { display: grid; gap: 8px; padding-left: 20px; }
.reorder-item { display: flex; gap: 8px; align-items: center; }
.reorder-item > span { flex: 1; }

.editor-split { display: grid; grid-template-columns: minmax(0, 1fr) minmax(0, 1fr); gap: 24px; margin-top: 16px; }
.style-preview { border-radius: 16px; overflow: hidden; padding: 16px; display: grid; gap: 12px; }
.preview-hero, .preview-content { border-radius: 12px; padding: 16px; }
.preview-swatches { display: flex; gap: 6px; flex-wrap: wrap; }
.preview-swatch { padding: 4px 8px; border-radius: 8px; color: #fff; font-size: 11px; }
.preview-charts { display: grid; gap: 12px; }
.preview-kpi, .preview-pie, .preview-bars { border-radius: 12px; padding: 12px; position: relative; }
.preview-kpi-value { font-size: 24px; font-weight: 700; }
.preview-pie-disc { width: 96px; height: 96px; border-radius: 50%; }
.preview-bar-row { display: grid; grid-template-columns: 80px 1fr; gap: 8px; align-items: center; margin: 4px 0; }
.preview-bar { display: block; height: 10px; border-radius: 999px; }
.preview-tooltip { position: absolute; top: 12px; right: 12px; padding: 4px 8px; border-radius: 6px; font-size: 12px; }
.preview-export { border: none; border-radius: 999px; padding: 8px 14px; font-weight: 600; justify-self: start; }

@media (max-width: 720px) {
  .page { padding: 24px 16px 70px; }
  .card { padding: 16px; }
  .editor-split { grid-template-columns: 1fr; }
  .modal { padding: 12px; }
}

@media (prefers-reduced-motion: reduce) {
  * { animation-duration: 0.01ms !important; transition-duration: 0.01ms !important; }
}
"""


def shell_style(theme: Dict[str, Any] | None) -> Dict[str, Any]:
    """Font and text color of the admin theme; the glass backdrop stays."""
    if not theme:
        return {}
    page = inline_styles(theme)["page"]
    return {"fontFamily": page["fontFamily"], "color": page["color"]}


def build_app_component(client: AdminApiClient, settings: Settings):
    @component
    def App():
        active, set_active = hooks.use_state(PAGES[0][0])
        theme, set_theme = hooks.use_state(None)

        @hooks.use_effect(dependencies=[])
        async def load_admin_theme() -> None:
            try:
                resolved = await asyncio.to_thread(client.resolve_style, True)
            except ApiError as exc:
                logger.warning("Failed to resolve admin style: %s", exc.message)
                return
            set_theme(resolved)

        page = next(view for key, _, view in PAGES if key == active)
        return html.div(
            {"id": "messmass-admin-root", "style": shell_style(theme)},
            html.style(ADMIN_CSS),
            html.header(
                {"class": "navbar glass-surface"},
                html.div(
                    html.div({"class": "nav-eyebrow"}, "MessMass"),
                    html.div({"class": "nav-title"}, "Admin"),
                ),
                html.nav(
                    {"class": "nav-actions", "aria-label": "Admin sections"},
                    *[
                        html.button(
                            {
                                "class": f"tab {'active' if key == active else ''}",
                                "type": "button",
                                "key": key,
                                "on_click": lambda e, k=key: set_active(k),
                                **({"aria-current": "page"} if key == active else {}),
                            },
                            label,
                        )
                        for key, label, _ in PAGES
                    ],
                ),
            ),
            html.main({"class": "page"}, page(client, settings, key=active)),
        )

    return App


def create_web_app(settings: Settings | None = None, store: Any = None) -> Flask:
    """API blueprint plus the ReactPy admin pages on one Flask app."""
    settings = settings or Settings.from_env()
    app = register_api(Flask(__name__), store=store, settings=settings)
    if store is None:
        db.maybe_init_db_on_startup(settings)

    client = AdminApiClient.from_settings(settings)
    configure(
        app,
        build_app_component(client, settings),
        Options(
            head=(
                {"tagName": "title", "children": ["MessMass Admin"]},
                {
                    "tagName": "meta",
                    "attributes": {"name": "viewport", "content": "width=device-width, initial-scale=1"},
                },
            )
        ),
    )
    return app


def main() -> None:
    load_dotenv()
    settings = Settings.from_env()
    configure_logging(settings.log_level)
    app = create_web_app(settings)
    logger.info("Starting MessMass admin on port %s", settings.port)
    app.run(host="0.0.0.0", port=settings.port, debug=settings.debug)


if __name__ == "__main__":
    main()
