"""Tests for website module."""

from messmass_admin.styles import DARK_THEME, inline_styles
from messmass_admin.website import PAGES, create_web_app, shell_style


def test_shell_style_without_theme():
    assert shell_style(None) == {}


def test_shell_style_takes_font_and_text_color():
    page = inline_styles(DARK_THEME)["page"]
    style = shell_style(DARK_THEME)
    assert style == {"fontFamily": page["fontFamily"], "color": page["color"]}
    assert style["fontFamily"].startswith("Roboto")


def test_every_section_has_a_page():
    assert [key for key, _, _ in PAGES] == ["events", "categories", "variables", "charts", "styles", "users"]


def test_web_app_serves_api(store, settings):
    """The admin pages and the REST API share one Flask app."""
    app = create_web_app(settings, store=store)
    response = app.test_client().get("/api/db-health")
    assert response.status_code == 200
    assert response.get_json() == {"ok": True}
