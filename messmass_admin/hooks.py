from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Dict, Optional

from reactpy import hooks

from .errors import ApiError
from .listing import FetchRequest, ListFetchOrchestrator, ListViewSnapshot, SearchDebouncer, SortState
from .modal import CLOSE_ANIMATION_SECONDS, PHASE_CLOSING, ModalState

logger = logging.getLogger(__name__)


def use_debounced_value(value: str, delay: float) -> str:
    """Return ``value`` once it has stayed unchanged for ``delay`` seconds."""
    debouncer_ref = hooks.use_ref(None)
    if debouncer_ref.current is None:
        debouncer_ref.current = SearchDebouncer(delay, value)
    debounced, set_debounced = hooks.use_state(value)

    @hooks.use_effect(dependencies=[value])
    async def settle() -> None:
        debouncer = debouncer_ref.current
        pushed_at = asyncio.get_running_loop().time()
        debouncer.push(value, pushed_at)
        if not debouncer.pending:
            return
        # A newer keystroke cancels this task before the sleep ends. The loop
        # may wake a tick early, so poll at the time the sleep was due.
        await asyncio.sleep(delay)
        settled = debouncer.poll(pushed_at + delay)
        if settled is not None:
            set_debounced(settled)

    return debounced


class ListView:
    """What ``use_list_view`` hands back to a page."""

    def __init__(
        self,
        snapshot: ListViewSnapshot,
        load_more: Callable[..., Any],
        reload: Callable[[], None],
        replace_item: Callable[[str, Any, Dict[str, Any]], None],
        remove_item: Callable[[str, Any], None],
    ) -> None:
        self.snapshot = snapshot
        self.load_more = load_more
        self.reload = reload
        self.replace_item = replace_item
        self.remove_item = remove_item


def use_list_view(
    fetch: Callable[[Dict[str, Any]], Dict[str, Any]],
    search: str,
    sort: SortState,
    page_size: int,
) -> ListView:
    orchestrator_ref = hooks.use_ref(None)
    if orchestrator_ref.current is None:
        orchestrator_ref.current = ListFetchOrchestrator(page_size)
    orchestrator: ListFetchOrchestrator = orchestrator_ref.current
    snapshot, set_snapshot = hooks.use_state(ListViewSnapshot())
    reload_token, set_reload_token = hooks.use_state(0)

    def publish() -> None:
        set_snapshot(ListViewSnapshot.of(orchestrator))

    async def run(request: Optional[FetchRequest]) -> None:
        if request is None:
            return
        publish()
        try:
            body = await asyncio.to_thread(fetch, request.params)
        except ApiError as exc:
            logger.warning("List load failed: %s", exc.message)
            orchestrator.fail(request, exc.message)
        else:
            orchestrator.receive(request, body)
        publish()

    @hooks.use_effect(dependencies=[search, sort.field, sort.order, reload_token])
    async def load_first_page() -> None:
        await run(orchestrator.load_first_page(search, sort))

    async def load_more(event_data: Any = None) -> None:
        await run(orchestrator.load_next_page())

    def reload() -> None:
        set_reload_token(lambda token: token + 1)

    def replace_item(key: str, value: Any, item: Dict[str, Any]) -> None:
        orchestrator.replace_item(key, value, item)
        publish()

    def remove_item(key: str, value: Any) -> None:
        orchestrator.remove_item(key, value)
        publish()

    return ListView(snapshot, load_more, reload, replace_item, remove_item)


def use_modal():
    """Modal state plus open/dismiss callbacks; closing settles after the fade."""
    state, set_state = hooks.use_state(ModalState())

    @hooks.use_effect(dependencies=[state.phase])
    async def settle_closing() -> None:
        if state.phase != PHASE_CLOSING:
            return
        await asyncio.sleep(CLOSE_ANIMATION_SECONDS)
        set_state(lambda current: current.settle())

    def open_modal(kind: str, payload: Dict[str, Any] | None = None, **options: bool) -> None:
        set_state(lambda current: current.open(kind, payload, **options))

    def dismiss(trigger: str) -> None:
        set_state(lambda current: current.dismiss(trigger))

    return state, open_modal, dismiss
