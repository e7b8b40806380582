"""Modal primitives shared by the admin pages.

``ModalState`` is the lifecycle (closed -> open -> closing -> closed).
``base_modal`` and ``confirm_dialog`` are plain VDOM builders; ``FormModal``
is a component because it owns the pending flag of its submit handler.
"""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass, field, replace
from typing import Any, Awaitable, Callable, Dict, Optional

from reactpy import component, event, hooks, html

from .errors import ApiError, ValidationError

logger = logging.getLogger(__name__)

PHASE_CLOSED = "closed"
PHASE_OPEN = "open"
PHASE_CLOSING = "closing"

TRIGGER_ESCAPE = "escape"
TRIGGER_OVERLAY = "overlay"
TRIGGER_BUTTON = "button"
TRIGGER_SUBMIT = "submit"

CLOSE_ANIMATION_SECONDS = 0.15
DIALOG_VARIANTS = ("danger", "warning", "info")

FOCUSABLE_SELECTOR = (
    "a[href], button:not([disabled]), input:not([disabled]), select:not([disabled]), "
    "textarea:not([disabled]), [tabindex]:not([tabindex=\"-1\"])"
)


@dataclass(frozen=True)
class ModalState:
    phase: str = PHASE_CLOSED
    kind: Optional[str] = None
    payload: Dict[str, Any] = field(default_factory=dict)
    close_on_escape: bool = True
    close_on_overlay: bool = True

    @property
    def visible(self) -> bool:
        return self.phase != PHASE_CLOSED

    @property
    def is_open(self) -> bool:
        return self.phase == PHASE_OPEN

    def open(self, kind: str, payload: Dict[str, Any] | None = None, **options: bool) -> "ModalState":
        return ModalState(phase=PHASE_OPEN, kind=kind, payload=dict(payload or {}), **options)

    def dismiss(self, trigger: str, pending: bool = False) -> "ModalState":
        """Start closing, unless the trigger is disabled or a submit is pending."""
        if self.phase != PHASE_OPEN:
            return self
        if pending and trigger != TRIGGER_SUBMIT:
            return self
        if trigger == TRIGGER_ESCAPE and not self.close_on_escape:
            return self
        if trigger == TRIGGER_OVERLAY and not self.close_on_overlay:
            return self
        return replace(self, phase=PHASE_CLOSING)

    def settle(self) -> "ModalState":
        if self.phase != PHASE_CLOSING:
            return self
        return ModalState()


def modal_lifecycle_script(modal_id: str) -> str:
    """Focus trap, scroll lock and focus restore for one mounted modal.

    The returned function runs when the script element mounts; its return
    value runs when the modal unmounts.
    """
    return (
        "() => {"
        f"  const root = document.querySelector('[data-modal-root=\"{modal_id}\"]');"
        "  const previous = document.activeElement;"
        "  const overflow = document.body.style.overflow;"
        "  document.body.style.overflow = 'hidden';"
        f"  const focusable = () => root ? Array.from(root.querySelectorAll('{FOCUSABLE_SELECTOR}')) : [];"
        "  const trap = (event) => {"
        "    if (event.key !== 'Tab') { return; }"
        "    const items = focusable();"
        "    if (!items.length) { event.preventDefault(); return; }"
        "    const first = items[0];"
        "    const last = items[items.length - 1];"
        "    if (event.shiftKey && document.activeElement === first) { event.preventDefault(); last.focus(); }"
        "    else if (!event.shiftKey && document.activeElement === last) { event.preventDefault(); first.focus(); }"
        "  };"
        "  document.addEventListener('keydown', trap);"
        "  const initial = focusable();"
        "  if (initial.length) { initial[0].focus(); }"
        "  return () => {"
        "    document.removeEventListener('keydown', trap);"
        "    document.body.style.overflow = overflow;"
        "    if (previous && previous.focus) { previous.focus(); }"
        "  };"
        "}"
    )


def base_modal(
    modal_id: str,
    title: str,
    body: Any,
    on_dismiss: Callable[[str], None],
    footer: Any = None,
    closing: bool = False,
    dismissable: bool = True,
    size: str = "md",
):
    def handle_key_down(event_data: Dict[str, Any]) -> None:
        if event_data.get("key") == "Escape":
            on_dismiss(TRIGGER_ESCAPE)

    return html.div(
        {
            "class": f"modal {'closing' if closing else ''}",
            "data-modal-root": modal_id,
            "role": "dialog",
            "aria-modal": "true",
            "aria-label": title,
            "on_key_down": handle_key_down,
        },
        html.script(modal_lifecycle_script(modal_id)),
        html.div({"class": "modal-backdrop", "on_click": lambda e: on_dismiss(TRIGGER_OVERLAY)}),
        html.div(
            {"class": f"modal-card modal-{size} glass-surface glass-card"},
            html.div(
                {"class": "modal-head"},
                html.h3({"class": "modal-title"}, title),
                html.button(
                    {
                        "class": "btn glass-btn ghost",
                        "type": "button",
                        "aria-label": "Close",
                        "disabled": not dismissable,
                        "on_click": lambda e: on_dismiss(TRIGGER_BUTTON),
                    },
                    "Close",
                ),
            ),
            html.div({"class": "modal-body"}, body),
            *([html.div({"class": "form-actions"}, footer)] if footer is not None else []),
        ),
    )


def confirm_dialog(
    modal_id: str,
    title: str,
    message: str,
    on_confirm: Callable[[], Any],
    on_dismiss: Callable[[str], None],
    variant: str = "danger",
    confirm_label: str = "Confirm",
    cancel_label: str = "Cancel",
    closing: bool = False,
):
    """Confirm/cancel prompt. Confirming runs the callback, then closes."""
    if variant not in DIALOG_VARIANTS:
        variant = "info"

    async def handle_confirm(event_data: Dict[str, Any]) -> None:
        result = on_confirm()
        if inspect.isawaitable(result):
            await result
        on_dismiss(TRIGGER_BUTTON)

    return base_modal(
        modal_id,
        title,
        html.p({"class": f"dialog-message dialog-{variant}"}, message),
        on_dismiss,
        footer=html._(
            html.button(
                {"class": "btn glass-btn ghost", "type": "button", "on_click": lambda e: on_dismiss(TRIGGER_BUTTON)},
                cancel_label,
            ),
            html.button(
                {"class": f"btn glass-btn {variant}", "type": "button", "on_click": handle_confirm},
                confirm_label,
            ),
        ),
        closing=closing,
        size="sm",
    )


def error_message(exc: Exception) -> str:
    if isinstance(exc, ApiError):
        return exc.message
    return str(exc)


@component
def FormModal(
    modal_id: str,
    title: str,
    body: Any,
    on_submit: Callable[[], Awaitable[Any]],
    on_dismiss: Callable[[str], None],
    submit_label: str = "Save",
    closing: bool = False,
):
    """Form shell whose submit handler is awaited.

    While the handler runs, every dismissal path is disabled and the submit
    button shows a loading label. A failure keeps the form open with its
    inputs intact and shows the message above the footer.
    """
    pending, set_pending = hooks.use_state(False)
    error, set_error = hooks.use_state("")
    pending_ref = hooks.use_ref(False)

    def dismiss(trigger: str) -> None:
        if pending_ref.current:
            return
        on_dismiss(trigger)

    @event(prevent_default=True)
    async def handle_submit(event_data: Dict[str, Any]) -> None:
        if pending_ref.current:
            return
        pending_ref.current = True
        set_pending(True)
        set_error("")
        try:
            await on_submit()
        except (ApiError, ValidationError) as exc:
            logger.info("%s submit failed: %s", modal_id, exc)
            set_error(error_message(exc))
            return
        finally:
            pending_ref.current = False
            set_pending(False)
        on_dismiss(TRIGGER_SUBMIT)

    form = html.form(
        {"class": "form", "on_submit": handle_submit},
        body,
        *([html.div({"class": "banner banner-error", "role": "alert"}, error)] if error else []),
        html.div(
            {"class": "form-actions"},
            html.button(
                {"type": "button", "class": "btn glass-btn ghost", "disabled": pending, "on_click": lambda e: dismiss(TRIGGER_BUTTON)},
                "Cancel",
            ),
            html.button(
                {"type": "submit", "class": "btn glass-btn primary", "disabled": pending},
                "Saving..." if pending else submit_label,
            ),
        ),
    )
    return base_modal(modal_id, title, form, dismiss, closing=closing, dismissable=not pending)
