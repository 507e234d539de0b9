"""Window facades — typed, reusable request descriptions.

A window is a small mutable object: its title, content, buttons and
fields may be edited freely between requests. `request()` snapshots the
current values into an immutable schema, so editing a window never
affects a request already in flight.

Usage:
    relay = FormRelay(broker)
    menu = relay.menu("Warp", "Where to?", {"spawn": Button.simple("Spawn"), "arena": Button.simple("Arena")})
    while True:
        try:
            destination = await menu.request(session_id)   # "spawn" or "arena"
            break
        except FormRequestError as e:
            if e.kind is not ErrorKind.VALIDATION_FAILED:
                raise
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from collections.abc import Hashable, Mapping, Sequence
from typing import Any

from formrelay.config import Settings, get_settings
from formrelay.models.controls import Button, FormControl
from formrelay.models.schemas import DialogSchema, FormSchema, MenuSchema
from formrelay.services.request_broker import RequestBroker
from formrelay.services.session_registry import SessionId
from formrelay.utils.exceptions import ErrorKind, FormRequestError

# Failures `request_or_fallback` turns into the fallback value
FALLBACK_KINDS = frozenset({ErrorKind.DECLINED, ErrorKind.SESSION_ENDED})


class _Window(ABC):
    @abstractmethod
    async def request(self, session_id: SessionId) -> Any:
        """Send the window to the session and await the typed answer."""

    async def request_or_fallback(self, session_id: SessionId, fallback: Any) -> Any:
        """Like `request`, but return `fallback` if the client declines or leaves.

        Invalid replies still raise FormRequestError(VALIDATION_FAILED).
        """
        try:
            return await self.request(session_id)
        except FormRequestError as e:
            if e.kind not in FALLBACK_KINDS:
                raise
            return fallback


@dataclass
class DialogWindow(_Window):
    """Two-button dialog answered with True (button1) or False (button2)."""
    broker: RequestBroker = field(repr=False)
    title: str
    content: str
    button1: str = "gui.yes"
    button2: str = "gui.no"

    def build_schema(self) -> DialogSchema:
        return DialogSchema(
            title=self.title,
            content=self.content,
            button1=self.button1,
            button2=self.button2,
        )

    async def request(self, session_id: SessionId) -> bool:
        return await self.broker.request(session_id, self.build_schema())


@dataclass
class FormWindow(_Window):
    """Custom form whose answer is keyed like its `content`.

    `content` is either a mapping of caller keys to controls or a plain
    sequence of controls (answer keyed by position).
    """
    broker: RequestBroker = field(repr=False)
    title: str
    content: Mapping[Hashable, FormControl] | Sequence[FormControl]
    title_prefix: str = ""

    def _entries(self) -> list[tuple[Hashable, FormControl]]:
        if isinstance(self.content, Mapping):
            return list(self.content.items())
        return list(enumerate(self.content))

    def build_schema(self) -> tuple[list[Hashable], FormSchema, tuple]:
        """Snapshot the window into (keys, schema, tags)."""
        entries = self._entries()
        keys = [key for key, _ in entries]
        schema = FormSchema(
            title=self.title_prefix + self.title,
            content=tuple(control.data for _, control in entries),
        )
        tags = tuple(control.tag for _, control in entries)
        return keys, schema, tags

    async def request(self, session_id: SessionId) -> dict[Hashable, Any]:
        keys, schema, tags = self.build_schema()
        values = await self.broker.request(session_id, schema, tags)
        return dict(zip(keys, values))


@dataclass
class MenuWindow(_Window):
    """Button menu answered with the payload paired with the chosen button.

    `buttons` holds (Button, payload) pairs in display order.
    """
    broker: RequestBroker = field(repr=False)
    title: str
    content: str
    buttons: list[tuple[Button, Any]] = field(default_factory=list)
    title_prefix: str = ""

    def build_schema(self) -> tuple[list[Any], MenuSchema]:
        """Snapshot the window into (payloads, schema)."""
        pairs = list(self.buttons)
        schema = MenuSchema(
            title=self.title_prefix + self.title,
            content=self.content,
            buttons=tuple(button.data for button, _ in pairs),
        )
        return [payload for _, payload in pairs], schema

    async def request(self, session_id: SessionId) -> Any:
        payloads, schema = self.build_schema()
        index = await self.broker.request(session_id, schema)
        return payloads[index]


class FormRelay:
    """Entry point for building windows and sending one-shot requests.

    Args:
        broker: Broker every window sends through.
        settings: Supplies default dialog labels and the title prefix.
    """

    def __init__(self, broker: RequestBroker, settings: Settings | None = None) -> None:
        self._broker = broker
        self._settings = settings or get_settings()

    @property
    def broker(self) -> RequestBroker:
        return self._broker

    # ── Window Builders ───────────────────────────────────────────────

    def dialog(
        self,
        title: str,
        content: str,
        button1: str | None = None,
        button2: str | None = None,
    ) -> DialogWindow:
        """Create a two-button dialog window."""
        return DialogWindow(
            self._broker,
            title,
            content,
            button1 if button1 is not None else self._settings.DIALOG_BUTTON_YES,
            button2 if button2 is not None else self._settings.DIALOG_BUTTON_NO,
        )

    def form(
        self,
        title: str,
        content: Mapping[Hashable, FormControl] | Sequence[FormControl],
    ) -> FormWindow:
        """Create a custom form; its answer is keyed like `content`."""
        return FormWindow(self._broker, title, content, title_prefix=self._settings.TITLE_PREFIX)

    def menu(
        self,
        title: str,
        content: str,
        buttons: Mapping[Any, Button] | Sequence[Button],
    ) -> MenuWindow:
        """Create a menu answered with the key of the chosen button.

        For a sequence of buttons the key is the button's position.
        """
        items = buttons.items() if isinstance(buttons, Mapping) else enumerate(buttons)
        pairs = [(button, key) for key, button in items]
        return MenuWindow(self._broker, title, content, pairs, title_prefix=self._settings.TITLE_PREFIX)

    # ── One-shot Requests ─────────────────────────────────────────────

    async def send_dialog(
        self,
        session_id: SessionId,
        title: str,
        content: str,
        button1: str | None = None,
        button2: str | None = None,
    ) -> bool:
        return await self.dialog(title, content, button1, button2).request(session_id)

    async def send_form(
        self,
        session_id: SessionId,
        title: str,
        fields: Mapping[Hashable, FormControl] | Sequence[FormControl],
    ) -> dict[Hashable, Any]:
        return await self.form(title, fields).request(session_id)

    async def send_menu(
        self,
        session_id: SessionId,
        title: str,
        content: str,
        buttons: Mapping[Any, Button] | Sequence[Button],
    ) -> Any:
        return await self.menu(title, content, buttons).request(session_id)
