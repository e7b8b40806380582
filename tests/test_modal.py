"""Tests for modal module."""

import asyncio

import pytest
from reactpy import html
from reactpy.core.layout import Layout

from messmass_admin.errors import ApplicationError, VariableRuleError
from messmass_admin.modal import (
    PHASE_CLOSED,
    PHASE_CLOSING,
    PHASE_OPEN,
    TRIGGER_BUTTON,
    TRIGGER_ESCAPE,
    TRIGGER_OVERLAY,
    TRIGGER_SUBMIT,
    FormModal,
    ModalState,
    confirm_dialog,
    error_message,
    modal_lifecycle_script,
)


def walk(node):
    if isinstance(node, dict):
        yield node
        for child in node.get("children") or []:
            yield from walk(child)
    elif isinstance(node, (list, tuple)):
        for child in node:
            yield from walk(child)


def texts(node):
    found = []
    for element in walk(node):
        found.extend(child for child in element.get("children") or [] if isinstance(child, str))
    return found


def attribute_values(node, name):
    return [element.get("attributes", {}).get(name) for element in walk(node) if name in element.get("attributes", {})]


class TestModalState:
    def test_open_then_close_through_closing_phase(self):
        """Dismissal passes through a closing phase before the modal unmounts."""
        state = ModalState().open("form", {"id": "1"})
        assert state.phase == PHASE_OPEN
        assert state.visible and state.is_open
        assert state.payload == {"id": "1"}

        closing = state.dismiss(TRIGGER_BUTTON)
        assert closing.phase == PHASE_CLOSING
        assert closing.visible and not closing.is_open
        assert closing.payload == {"id": "1"}

        closed = closing.settle()
        assert closed.phase == PHASE_CLOSED
        assert not closed.visible

    def test_escape_and_overlay_can_be_disabled(self):
        state = ModalState().open("form", close_on_escape=False, close_on_overlay=False)
        assert state.dismiss(TRIGGER_ESCAPE) is state
        assert state.dismiss(TRIGGER_OVERLAY) is state
        assert state.dismiss(TRIGGER_BUTTON).phase == PHASE_CLOSING

    def test_pending_submit_blocks_other_triggers(self):
        state = ModalState().open("form")
        assert state.dismiss(TRIGGER_ESCAPE, pending=True) is state
        assert state.dismiss(TRIGGER_BUTTON, pending=True) is state
        assert state.dismiss(TRIGGER_SUBMIT, pending=True).phase == PHASE_CLOSING

    def test_dismiss_and_settle_are_noops_outside_their_phase(self):
        closed = ModalState()
        assert closed.dismiss(TRIGGER_BUTTON) is closed
        opened = closed.open("confirm")
        assert opened.settle() is opened
        closing = opened.dismiss(TRIGGER_OVERLAY)
        assert closing.dismiss(TRIGGER_BUTTON) is closing

    def test_open_copies_payload(self):
        payload = {"id": "1"}
        state = ModalState().open("form", payload)
        payload["id"] = "2"
        assert state.payload == {"id": "1"}


def test_lifecycle_script_targets_modal():
    script = modal_lifecycle_script("delete-project")
    assert '[data-modal-root="delete-project"]' in script
    assert "document.body.style.overflow = 'hidden'" in script
    assert "removeEventListener('keydown', trap)" in script
    assert "previous.focus()" in script


def test_error_message():
    assert error_message(ApplicationError("Email already exists", 409)) == "Email already exists"
    assert error_message(VariableRuleError("Label is required")) == "Label is required"


class TestConfirmDialog:
    def noop(self, *args):
        return None

    def test_renders_title_message_and_buttons(self):
        dialog = confirm_dialog(
            "delete-user",
            "Delete user",
            "Delete ada@example.com?",
            self.noop,
            self.noop,
            confirm_label="Delete",
        )
        rendered = texts(dialog)
        assert "Delete user" in rendered
        assert "Delete ada@example.com?" in rendered
        assert "Delete" in rendered
        assert "Cancel" in rendered
        assert "delete-user" in attribute_values(dialog, "data-modal-root")
        assert any(element.get("tagName") == "script" for element in walk(dialog))

    def test_unknown_variant_falls_back_to_info(self):
        dialog = confirm_dialog("x", "Title", "Message", self.noop, self.noop, variant="loud")
        classes = " ".join(value for value in attribute_values(dialog, "class") if isinstance(value, str))
        assert "dialog-info" in classes
        assert "dialog-loud" not in classes

    def test_closing_flag_sets_class(self):
        dialog = confirm_dialog("x", "Title", "Message", self.noop, self.noop, closing=True)
        assert "closing" in dialog["attributes"]["class"]


def find(node, predicate):
    return next(element for element in walk(node) if predicate(element))


def button(model, label):
    return find(model, lambda element: element.get("tagName") == "button" and label in texts(element))


def is_disabled(element):
    return bool(element.get("attributes", {}).get("disabled"))


async def fire(layout, element, name, data=None):
    """Deliver a client event to the handler bound under ``name``."""
    handlers = element.get("eventHandlers") or {}
    head, *rest = name.split("_")
    spec = handlers.get(name) or handlers[head + "".join(part.capitalize() for part in rest)]
    await layout.deliver({"type": "layout-event", "target": spec["target"], "data": [data or {}]})


async def next_model(layout):
    update = await asyncio.wait_for(layout.render(), timeout=5)
    return update["model"]


class TestFormModal:
    def build(self, on_submit, dismissed):
        return FormModal(
            "project-form",
            "New event",
            html.input({"class": "input", "name": "eventName"}),
            on_submit,
            dismissed.append,
        )

    @pytest.mark.asyncio
    async def test_pending_submit_disables_controls_and_dismissal(self):
        """While saving, every way out is blocked and the label changes."""
        dismissed = []
        release = asyncio.Event()

        async def submit():
            await release.wait()

        async with Layout(self.build(submit, dismissed)) as layout:
            model = await next_model(layout)
            assert not is_disabled(button(model, "Save"))
            saving = asyncio.create_task(fire(layout, find(model, lambda e: e.get("tagName") == "form"), "on_submit"))

            model = await next_model(layout)
            assert "Saving..." in texts(model)
            assert "Save" not in texts(model)
            assert is_disabled(button(model, "Saving..."))
            assert is_disabled(button(model, "Cancel"))
            assert is_disabled(button(model, "Close"))

            await fire(layout, find(model, lambda e: "data-modal-root" in e.get("attributes", {})), "on_key_down", {"key": "Escape"})
            await fire(layout, find(model, lambda e: e.get("attributes", {}).get("class") == "modal-backdrop"), "on_click")
            await fire(layout, button(model, "Cancel"), "on_click")
            await fire(layout, button(model, "Close"), "on_click")
            assert dismissed == []

            release.set()
            await asyncio.wait_for(saving, timeout=5)
            assert dismissed == [TRIGGER_SUBMIT]

            model = await next_model(layout)
            assert not is_disabled(button(model, "Save"))

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "exc, message",
        [
            (ApplicationError("Event name already exists", 409), "Event name already exists"),
            (VariableRuleError("Label is required"), "Label is required"),
        ],
    )
    async def test_failed_submit_stays_open_with_error(self, exc, message):
        dismissed = []

        async def submit():
            raise exc

        async with Layout(self.build(submit, dismissed)) as layout:
            model = await next_model(layout)
            await fire(layout, find(model, lambda e: e.get("tagName") == "form"), "on_submit")
            assert dismissed == []

            model = await next_model(layout)
            banner = find(model, lambda e: e.get("attributes", {}).get("role") == "alert")
            assert texts(banner) == [message]
            assert not is_disabled(button(model, "Save"))
            assert find(model, lambda e: e.get("attributes", {}).get("name") == "eventName")

    @pytest.mark.asyncio
    async def test_escape_and_overlay_dismiss_when_idle(self):
        dismissed = []

        async def submit():
            return None

        async with Layout(self.build(submit, dismissed)) as layout:
            model = await next_model(layout)
            await fire(layout, find(model, lambda e: "data-modal-root" in e.get("attributes", {})), "on_key_down", {"key": "Escape"})
            await fire(layout, find(model, lambda e: e.get("attributes", {}).get("class") == "modal-backdrop"), "on_click")
            await fire(layout, button(model, "Cancel"), "on_click")
            assert dismissed == [TRIGGER_ESCAPE, TRIGGER_OVERLAY, TRIGGER_BUTTON]
