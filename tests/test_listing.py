"""Tests for listing module."""

import pytest

from messmass_admin.listing import (
    MODE_CURSOR,
    MODE_SEARCH_OFFSET,
    MODE_SORT_OFFSET,
    ListFetchOrchestrator,
    ListViewSnapshot,
    PaginationState,
    SearchDebouncer,
    SortState,
    build_list_params,
    cursor_pagination,
    decode_cursor,
    encode_cursor,
    offset_pagination,
    parse_limit,
    parse_offset,
    parse_sort,
)


def cursor_page(items, next_cursor=None, total=0):
    return {
        "success": True,
        "items": items,
        "pagination": {"mode": MODE_CURSOR, "nextCursor": next_cursor, "totalMatched": total},
    }


def offset_page(items, next_offset=None, total=0, mode=MODE_SEARCH_OFFSET):
    return {
        "success": True,
        "items": items,
        "pagination": {"mode": mode, "nextOffset": next_offset, "totalMatched": total},
    }


class TestSearchDebouncer:
    def test_settles_after_quiet_period(self):
        """A value is released only once the delay has passed since the last keystroke."""
        debouncer = SearchDebouncer(delay=0.3)
        debouncer.push("ab", now=0.0)
        assert debouncer.poll(now=0.2) is None
        debouncer.push("abc", now=0.25)
        assert debouncer.poll(now=0.5) is None
        assert debouncer.poll(now=0.6) == "abc"
        assert debouncer.debounced == "abc"

    def test_poll_returns_value_once(self):
        """The settled value is reported a single time."""
        debouncer = SearchDebouncer(delay=0.1)
        debouncer.push("x", now=0.0)
        assert debouncer.poll(now=1.0) == "x"
        assert debouncer.poll(now=2.0) is None
        assert not debouncer.pending

    def test_typing_back_to_settled_value_reports_nothing(self):
        """Returning to the already settled text does not trigger a new search."""
        debouncer = SearchDebouncer(delay=0.1, initial="cup")
        debouncer.push("cupx", now=0.0)
        debouncer.push("cup", now=0.05)
        assert debouncer.poll(now=1.0) is None

    def test_repeated_value_is_ignored(self):
        debouncer = SearchDebouncer(delay=0.1, initial="a")
        debouncer.push("a", now=0.0)
        assert not debouncer.pending


class TestSortState:
    def test_toggle_cycles_asc_desc_cleared(self):
        """Clicking the same column cycles through ascending, descending and off."""
        state = SortState().toggle("eventName")
        assert state == SortState("eventName", "asc")
        state = state.toggle("eventName")
        assert state == SortState("eventName", "desc")
        state = state.toggle("eventName")
        assert not state.active

    def test_toggle_other_column_starts_ascending(self):
        state = SortState("eventName", "desc").toggle("eventDate")
        assert state == SortState("eventDate", "asc")

    def test_indicator(self):
        assert SortState("fans", "asc").indicator("fans") == " ▲"
        assert SortState("fans", "desc").indicator("fans") == " ▼"
        assert SortState("fans", "desc").indicator("images") == ""

    def test_field_and_order_must_match(self):
        """A field without an order is rejected."""
        with pytest.raises(ValueError, match="set or cleared together"):
            SortState("fans", None)
        with pytest.raises(ValueError, match="invalid sort order"):
            SortState("fans", "up")


class TestBuildListParams:
    def test_plain_first_page_uses_no_offset(self):
        assert build_list_params("", SortState(), 20) == {"limit": 20}

    def test_search_first_page_starts_at_offset_zero(self):
        params = build_list_params("  derby ", SortState(), 20)
        assert params == {"limit": 20, "q": "derby", "offset": 0}

    def test_sort_adds_field_and_order(self):
        params = build_list_params("", SortState("fans", "desc"), 10)
        assert params == {"limit": 10, "sortField": "fans", "sortOrder": "desc", "offset": 0}

    def test_next_page_uses_cursor_for_plain_listing(self):
        pagination = PaginationState(mode=MODE_CURSOR, cursor="abc", loaded=True)
        assert build_list_params("", SortState(), 20, pagination) == {"limit": 20, "cursor": "abc"}

    def test_next_page_uses_offset_for_search(self):
        pagination = PaginationState(mode=MODE_SEARCH_OFFSET, offset=40, loaded=True)
        params = build_list_params("cup", SortState(), 20, pagination)
        assert params["offset"] == 40
        assert "cursor" not in params


class TestPaginationState:
    def test_not_loaded_has_no_more(self):
        assert not PaginationState().has_more

    def test_cursor_response(self):
        state = PaginationState.from_response({"mode": MODE_CURSOR, "nextCursor": "c1", "totalMatched": 55})
        assert state.has_more
        assert state.cursor == "c1"
        assert state.total_matched == 55

    def test_exhausted_offset_response(self):
        state = PaginationState.from_response({"mode": MODE_SORT_OFFSET, "nextOffset": None, "totalMatched": 3})
        assert state.loaded
        assert not state.has_more

    def test_mode_is_inferred_when_missing(self):
        """Without a mode the presence of nextCursor decides the kind."""
        assert PaginationState.from_response({"nextCursor": None}).mode == MODE_CURSOR
        assert PaginationState.from_response({"nextOffset": 20}).mode == MODE_SEARCH_OFFSET

    def test_bad_total_falls_back_to_zero(self):
        assert PaginationState.from_response({"mode": MODE_CURSOR, "totalMatched": "many"}).total_matched == 0


class TestListFetchOrchestrator:
    def test_first_page_replaces_items(self):
        orchestrator = ListFetchOrchestrator(page_size=2)
        request = orchestrator.load_first_page("", SortState())
        assert orchestrator.loading
        assert orchestrator.receive(request, cursor_page([{"id": "1"}, {"id": "2"}], "c1", 3))
        assert [item["id"] for item in orchestrator.items] == ["1", "2"]
        assert not orchestrator.loading
        assert orchestrator.pagination.has_more

    def test_next_page_appends(self):
        orchestrator = ListFetchOrchestrator(page_size=2)
        first = orchestrator.load_first_page("", SortState())
        orchestrator.receive(first, cursor_page([{"id": "1"}, {"id": "2"}], "c1", 3))
        second = orchestrator.load_next_page()
        assert second.params == {"limit": 2, "cursor": "c1"}
        orchestrator.receive(second, cursor_page([{"id": "3"}], None, 3))
        assert [item["id"] for item in orchestrator.items] == ["1", "2", "3"]
        assert orchestrator.load_next_page() is None

    def test_next_page_refused_while_loading(self):
        """Load more is a no-op while another request is in flight."""
        orchestrator = ListFetchOrchestrator()
        orchestrator.load_first_page("", SortState())
        assert orchestrator.load_next_page() is None

    def test_new_search_supersedes_older_response(self):
        """A stale response from an earlier search is dropped."""
        orchestrator = ListFetchOrchestrator()
        stale = orchestrator.load_first_page("a", SortState())
        fresh = orchestrator.load_first_page("ab", SortState())
        assert not orchestrator.receive(stale, offset_page([{"id": "old"}]))
        assert orchestrator.items == []
        assert orchestrator.receive(fresh, offset_page([{"id": "new"}]))
        assert orchestrator.items == [{"id": "new"}]

    def test_unsuccessful_body_sets_error(self):
        orchestrator = ListFetchOrchestrator()
        request = orchestrator.load_first_page("", SortState())
        assert not orchestrator.receive(request, {"success": False, "error": "boom"})
        assert orchestrator.error == "boom"
        assert not orchestrator.loading

    def test_fail_ignores_superseded_request(self):
        orchestrator = ListFetchOrchestrator()
        stale = orchestrator.load_first_page("", SortState())
        orchestrator.load_first_page("x", SortState())
        assert not orchestrator.fail(stale, "timeout")
        assert orchestrator.error is None

    def test_failed_search_keeps_paging_the_loaded_list(self):
        """Load more after a failed search continues the list on screen."""
        orchestrator = ListFetchOrchestrator(page_size=2)
        first = orchestrator.load_first_page("", SortState())
        orchestrator.receive(first, cursor_page([{"id": "1"}, {"id": "2"}], "c1", 3))

        search = orchestrator.load_first_page("foo", SortState())
        assert orchestrator.fail(search, "Failed to load events")
        assert orchestrator.search == ""

        more = orchestrator.load_next_page()
        assert more.params == {"limit": 2, "cursor": "c1"}
        assert more.append
        orchestrator.receive(more, cursor_page([{"id": "3"}], None, 3))
        assert [item["id"] for item in orchestrator.items] == ["1", "2", "3"]

    def test_successful_search_is_adopted_for_next_pages(self):
        orchestrator = ListFetchOrchestrator(page_size=2)
        search = orchestrator.load_first_page("foo", SortState("eventName", "asc"))
        assert orchestrator.search == ""
        orchestrator.receive(search, offset_page([{"id": "1"}, {"id": "2"}], 2, 5))
        assert orchestrator.search == "foo"
        assert orchestrator.load_next_page().params == {
            "limit": 2,
            "q": "foo",
            "sortField": "eventName",
            "sortOrder": "asc",
            "offset": 2,
        }

    def test_replace_and_remove_item(self):
        """Removing an item also lowers the matched total."""
        orchestrator = ListFetchOrchestrator()
        request = orchestrator.load_first_page("", SortState())
        orchestrator.receive(request, cursor_page([{"id": "1", "n": 1}, {"id": "2", "n": 2}], None, 2))
        orchestrator.replace_item("id", "2", {"id": "2", "n": 20})
        assert orchestrator.items[1]["n"] == 20
        orchestrator.remove_item("id", "1")
        assert orchestrator.items == [{"id": "2", "n": 20}]
        assert orchestrator.pagination.total_matched == 1
        orchestrator.remove_item("id", "missing")
        assert orchestrator.pagination.total_matched == 1

    def test_snapshot_copies_state(self):
        orchestrator = ListFetchOrchestrator()
        request = orchestrator.load_first_page("", SortState())
        orchestrator.receive(request, cursor_page([{"id": "1"}], "next", 9))
        snapshot = ListViewSnapshot.of(orchestrator)
        assert snapshot.items == [{"id": "1"}]
        assert snapshot.total_matched == 9
        assert snapshot.has_more
        assert snapshot.items is not orchestrator.items


class TestServerHelpers:
    @pytest.mark.parametrize(
        "raw, expected",
        [(None, 20), ("abc", 20), ("0", 20), ("-5", 20), ("5", 5), ("500", 100)],
    )
    def test_parse_limit(self, raw, expected):
        assert parse_limit(raw) == expected

    def test_parse_offset(self):
        assert parse_offset("15") == 15
        assert parse_offset("-3") == 0
        assert parse_offset(None) == 0

    def test_parse_sort_rejects_unknown_field(self):
        allowed = frozenset({"eventName"})
        assert parse_sort("eventName", "desc", allowed) == SortState("eventName", "desc")
        assert not parse_sort("secret", "asc", allowed).active
        assert not parse_sort("eventName", "sideways", allowed).active

    def test_cursor_round_trip(self):
        cursor = encode_cursor("2024-01-01T00:00:00+00:00", 7)
        assert decode_cursor(cursor) == ("2024-01-01T00:00:00+00:00", "7")

    @pytest.mark.parametrize("raw", [None, "", "not-base64!!", "eyJmb28iOiAxfQ=="])
    def test_invalid_cursor_is_ignored(self, raw):
        assert decode_cursor(raw) is None

    def test_offset_pagination_next_offset(self):
        page = offset_pagination(MODE_SEARCH_OFFSET, 0, 20, 20, 45)
        assert page["nextOffset"] == 20
        assert page["totalMatched"] == 45
        last = offset_pagination(MODE_SEARCH_OFFSET, 40, 20, 5, 45)
        assert last["nextOffset"] is None

    def test_cursor_pagination(self):
        assert cursor_pagination(20, None, 3) == {
            "mode": MODE_CURSOR,
            "limit": 20,
            "nextCursor": None,
            "totalMatched": 3,
        }
