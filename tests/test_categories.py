"""Tests for categories module."""

import pytest

from messmass_admin.categories import (
    DEFAULT_HASHTAG_COLOR,
    category_name_errors,
    merge_hashtags,
    resolve_hashtag_color,
    validate_category,
)
from messmass_admin.errors import CategoryValidationError


def test_validate_category_normalizes_name():
    assert validate_category({"name": "  Country ", "color": "#667eea"}) == {"name": "country", "color": "#667eea"}


def test_validate_category_keeps_order():
    assert validate_category({"name": "sport", "color": "#000000", "order": 3})["order"] == 3


@pytest.mark.parametrize(
    "payload, message",
    [
        ({"name": "", "color": "#667eea"}, "at least 1 character"),
        ({"name": "x" * 51, "color": "#667eea"}, "no more than 50"),
        ({"name": "two words", "color": "#667eea"}, "lowercase letters"),
        ({"name": "default", "color": "#667eea"}, "reserved name"),
        ({"name": "sport", "color": ""}, "color is required"),
        ({"name": "sport", "color": "blue"}, "valid hex color"),
        ({"name": "sport", "color": "#000000", "order": -1}, "non-negative integer"),
        ({"name": "sport", "color": "#000000", "order": True}, "non-negative integer"),
    ],
)
def test_validate_category_errors(payload, message):
    with pytest.raises(CategoryValidationError, match=message):
        validate_category(payload)


def test_all_errors_reported_together():
    """Every problem is joined into one message."""
    with pytest.raises(CategoryValidationError) as excinfo:
        validate_category({"name": "Bad Name!", "color": "nope"})
    assert "lowercase letters" in str(excinfo.value)
    assert "valid hex color" in str(excinfo.value)


def test_partial_update_only_checks_given_keys():
    assert validate_category({"color": "#123456"}, partial=True) == {"color": "#123456"}


def test_category_name_errors_empty_for_valid_name():
    assert category_name_errors("home-team_2") == []


def test_merge_hashtags_keeps_plain_first():
    assert merge_hashtags(["derby", "cup"], {"country": ["hungary", "cup"]}) == ["derby", "cup", "hungary"]
    assert merge_hashtags() == []


def test_resolve_hashtag_color_precedence():
    """Category color beats the individual color, which beats the default."""
    assert resolve_hashtag_color("#111111", "#222222") == "#111111"
    assert resolve_hashtag_color(None, "#222222") == "#222222"
    assert resolve_hashtag_color("red", "also-bad") == DEFAULT_HASHTAG_COLOR
