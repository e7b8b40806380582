"""List-view state shared by every admin list page.

Each page combines three pieces of state into one request:

* a debounced search string (``SearchDebouncer``),
* a column sort that cycles asc -> desc -> cleared (``SortState``),
* a pagination pointer in one of three modes (``PaginationState``).

``ListFetchOrchestrator`` turns those into request parameters, hands out a
token per request and reconciles responses into the visible list. A newer
first-page load supersedes older requests; their responses are dropped.

The second half of the module holds the server-side counterparts used by
the REST endpoints: limit clamping, cursor encoding and the ``pagination``
payload builders.
"""

from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional

MODE_CURSOR = "cursor"
MODE_SEARCH_OFFSET = "searchOffset"
MODE_SORT_OFFSET = "sortOffset"
PAGINATION_MODES = (MODE_CURSOR, MODE_SEARCH_OFFSET, MODE_SORT_OFFSET)

SORT_ASC = "asc"
SORT_DESC = "desc"

DEFAULT_LIMIT = 20
MAX_LIMIT = 100


class SearchDebouncer:
    """Holds the raw search text and settles it after a quiet period.

    ``push`` records a keystroke; ``poll`` returns the settled value once,
    when at least ``delay`` seconds have passed since the last change.
    """

    def __init__(self, delay: float = 0.3, initial: str = "") -> None:
        self.delay = delay
        self.raw = initial
        self.debounced = initial
        self._changed_at: float | None = None

    def push(self, value: str, now: float) -> None:
        if value == self.raw:
            return
        self.raw = value
        self._changed_at = now

    def poll(self, now: float) -> Optional[str]:
        if self._changed_at is None:
            return None
        if now - self._changed_at < self.delay:
            return None
        self._changed_at = None
        if self.raw == self.debounced:
            return None
        self.debounced = self.raw
        return self.debounced

    @property
    def pending(self) -> bool:
        return self._changed_at is not None


@dataclass(frozen=True)
class SortState:
    field: Optional[str] = None
    order: Optional[str] = None

    def __post_init__(self) -> None:
        if (self.field is None) != (self.order is None):
            raise ValueError("sort field and order must be set or cleared together")
        if self.order not in (None, SORT_ASC, SORT_DESC):
            raise ValueError(f"invalid sort order: {self.order!r}")

    @property
    def active(self) -> bool:
        return self.field is not None

    def toggle(self, column: str) -> "SortState":
        if self.field != column:
            return SortState(column, SORT_ASC)
        if self.order == SORT_ASC:
            return SortState(column, SORT_DESC)
        return SortState()

    def indicator(self, column: str) -> str:
        if self.field != column:
            return ""
        return " ▲" if self.order == SORT_ASC else " ▼"


@dataclass(frozen=True)
class PaginationState:
    """Pointer to the next page.

    ``loaded`` is False before the first response arrives. After that a
    ``None`` pointer means there are no further pages.
    """

    mode: str = MODE_CURSOR
    cursor: Optional[str] = None
    offset: Optional[int] = None
    total_matched: int = 0
    loaded: bool = False

    @property
    def has_more(self) -> bool:
        if not self.loaded:
            return False
        if self.mode == MODE_CURSOR:
            return self.cursor is not None
        return self.offset is not None

    @classmethod
    def from_response(cls, payload: Dict[str, Any] | None) -> "PaginationState":
        payload = payload or {}
        mode = payload.get("mode")
        if mode not in PAGINATION_MODES:
            mode = MODE_CURSOR if "nextCursor" in payload else MODE_SEARCH_OFFSET
        total = payload.get("totalMatched")
        try:
            total_matched = max(int(total), 0) if total is not None else 0
        except (TypeError, ValueError):
            total_matched = 0
        if mode == MODE_CURSOR:
            return cls(mode=mode, cursor=payload.get("nextCursor") or None, total_matched=total_matched, loaded=True)
        next_offset = payload.get("nextOffset")
        return cls(
            mode=mode,
            offset=int(next_offset) if next_offset is not None else None,
            total_matched=total_matched,
            loaded=True,
        )


@dataclass(frozen=True)
class FetchRequest:
    token: int
    params: Dict[str, Any]
    append: bool
    search: str = ""
    sort: SortState = field(default_factory=SortState)


def build_list_params(
    search: str,
    sort: SortState,
    limit: int,
    pagination: PaginationState | None = None,
) -> Dict[str, Any]:
    """Query parameters for a list endpoint.

    Cursor pagination is only used for the plain listing; any search or
    sort switches to offset pagination.
    """
    params: Dict[str, Any] = {"limit": limit}
    query = search.strip()
    if query:
        params["q"] = query
    if sort.active:
        params["sortField"] = sort.field
        params["sortOrder"] = sort.order

    if pagination is None:
        if query or sort.active:
            params["offset"] = 0
        return params

    if pagination.mode == MODE_CURSOR and not query and not sort.active:
        if pagination.cursor:
            params["cursor"] = pagination.cursor
    else:
        params["offset"] = pagination.offset or 0
    return params


class ListFetchOrchestrator:
    def __init__(self, page_size: int = DEFAULT_LIMIT) -> None:
        self.page_size = page_size
        self.items: List[Dict[str, Any]] = []
        self.pagination = PaginationState()
        self.search = ""
        self.sort = SortState()
        self.loading = False
        self.error: Optional[str] = None
        self._token = 0
        self._in_flight: Optional[FetchRequest] = None

    @property
    def in_flight(self) -> Optional[FetchRequest]:
        return self._in_flight

    def load_first_page(self, search: str, sort: SortState) -> FetchRequest:
        self._token += 1
        request = FetchRequest(
            token=self._token,
            params=build_list_params(search, sort, self.page_size),
            append=False,
            search=search,
            sort=sort,
        )
        self._in_flight = request
        self.loading = True
        self.error = None
        return request

    def load_next_page(self) -> Optional[FetchRequest]:
        if self.loading or not self.pagination.has_more:
            return None
        self._token += 1
        request = FetchRequest(
            token=self._token,
            params=build_list_params(self.search, self.sort, self.page_size, self.pagination),
            append=True,
            search=self.search,
            sort=self.sort,
        )
        self._in_flight = request
        self.loading = True
        self.error = None
        return request

    def is_current(self, request: FetchRequest) -> bool:
        return self._in_flight is not None and request.token == self._in_flight.token

    def receive(self, request: FetchRequest, body: Dict[str, Any]) -> bool:
        """Apply a response. Returns False when it was superseded or failed."""
        if not self.is_current(request):
            return False
        self._in_flight = None
        self.loading = False
        if not body.get("success"):
            self.error = str(body.get("error") or "Failed to load items")
            return False
        items = list(body.get("items") or [])
        if request.append:
            self.items = self.items + items
        else:
            # The list now belongs to this query; next pages continue it.
            self.items = items
            self.search = request.search
            self.sort = request.sort
        self.pagination = PaginationState.from_response(body.get("pagination"))
        return True

    def fail(self, request: FetchRequest, message: str) -> bool:
        if not self.is_current(request):
            return False
        self._in_flight = None
        self.loading = False
        self.error = message
        return True

    def replace_item(self, key: str, value: Any, item: Dict[str, Any]) -> None:
        self.items = [item if existing.get(key) == value else existing for existing in self.items]

    def remove_item(self, key: str, value: Any) -> None:
        before = len(self.items)
        self.items = [existing for existing in self.items if existing.get(key) != value]
        if len(self.items) != before:
            self.pagination = replace(self.pagination, total_matched=max(self.pagination.total_matched - 1, 0))


@dataclass
class ListViewSnapshot:
    """Render-ready copy of the orchestrator state."""

    items: List[Dict[str, Any]] = field(default_factory=list)
    total_matched: int = 0
    has_more: bool = False
    loading: bool = False
    error: Optional[str] = None

    @classmethod
    def of(cls, orchestrator: ListFetchOrchestrator) -> "ListViewSnapshot":
        return cls(
            items=list(orchestrator.items),
            total_matched=orchestrator.pagination.total_matched,
            has_more=orchestrator.pagination.has_more,
            loading=orchestrator.loading,
            error=orchestrator.error,
        )


# Server side


def parse_limit(value: Any, default: int = DEFAULT_LIMIT) -> int:
    try:
        limit = int(value)
    except (TypeError, ValueError):
        limit = default
    if limit <= 0:
        limit = default
    return max(1, min(MAX_LIMIT, limit))


def parse_offset(value: Any) -> int:
    try:
        return max(int(value), 0)
    except (TypeError, ValueError):
        return 0


def parse_sort(field_value: Any, order_value: Any, allowed: set[str] | frozenset[str]) -> SortState:
    if field_value in allowed and order_value in (SORT_ASC, SORT_DESC):
        return SortState(str(field_value), str(order_value))
    return SortState()


def encode_cursor(updated_at: str, item_id: Any) -> str:
    raw = json.dumps({"u": updated_at, "id": str(item_id)}, separators=(",", ":"))
    return base64.urlsafe_b64encode(raw.encode("utf-8")).decode("ascii")


def decode_cursor(cursor: str | None) -> Optional[tuple[str, str]]:
    if not cursor:
        return None
    try:
        decoded = json.loads(base64.urlsafe_b64decode(cursor.encode("ascii")).decode("utf-8"))
    except (binascii.Error, UnicodeError, ValueError):
        return None
    if not isinstance(decoded, dict) or "u" not in decoded or "id" not in decoded:
        return None
    return str(decoded["u"]), str(decoded["id"])


def offset_pagination(mode: str, offset: int, limit: int, returned: int, total: int) -> Dict[str, Any]:
    next_offset = offset + returned
    return {
        "mode": mode,
        "limit": limit,
        "offset": offset,
        "nextOffset": next_offset if returned and next_offset < total else None,
        "totalMatched": total,
    }


def cursor_pagination(limit: int, next_cursor: Optional[str], total: int) -> Dict[str, Any]:
    return {
        "mode": MODE_CURSOR,
        "limit": limit,
        "nextCursor": next_cursor,
        "totalMatched": total,
    }
