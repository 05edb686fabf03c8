"""Textual-based UI for bctop."""

from __future__ import annotations

import logging
from typing import Optional

from textual import events
from textual.app import App, ComposeResult
from textual.containers import Vertical
from textual.widgets import Header, Static

from .model import AppReturn, AppSnapshot
from .state import Application
from .ui import render_containers, render_exec, render_logs, render_status, render_title

logger = logging.getLogger(__name__)


def translate_key(event: events.Key) -> str:
    """Printable characters as themselves, everything else by Textual key name."""
    character = event.character
    if character is not None and len(character) == 1 and character.isprintable():
        return character
    return event.key


class BctopApp(App[None], inherit_bindings=False):
    TITLE = "bctop"
    SUB_TITLE = "Docker container monitor"

    CSS = """
    Screen {
      layout: vertical;
    }

    #main {
      height: 1fr;
    }

    #body {
      height: 1fr;
      border: round $accent;
      padding: 0 1;
      overflow: hidden;
    }

    #status {
      height: 1;
      padding: 0 1;
      background: $panel;
      color: $text;
    }
    """

    def __init__(self, application: Application, refresh_interval: int = 200,
                 show_help: bool = True) -> None:
        super().__init__()
        self.application = application
        self.refresh_interval = max(refresh_interval, 10) / 1000.0
        self.show_help = show_help
        self._rendered_version = -1
        self._tick_in_flight = False
        self._shut_down = False

    def compose(self) -> ComposeResult:
        yield Header(show_clock=True)
        yield Vertical(
            Static("", id="body"),
            id="main",
        )
        yield Static("", id="status")

    async def on_mount(self) -> None:
        await self.application.start()
        self.set_interval(self.refresh_interval, self._tick)
        self._render(force=True)

    def on_resize(self, event: events.Resize) -> None:
        self._render(force=True)

    async def on_unmount(self) -> None:
        await self._shutdown()

    async def _shutdown(self) -> None:
        if self._shut_down:
            return
        self._shut_down = True
        await self.application.shutdown()

    def _body_height(self) -> int:
        return max(1, self.query_one("#body", Static).content_size.height)

    def _render(self, force: bool = False) -> None:
        version = self.application.get_version()
        if not force and version == self._rendered_version:
            return
        snapshot: AppSnapshot = self.application.snapshot()
        self._rendered_version = snapshot.version

        body = self.query_one("#body", Static)
        height = self._body_height()
        mode = snapshot.mode
        if mode.is_monitoring:
            content = render_containers(snapshot, height)
        elif mode.is_exec_command:
            content = render_exec(snapshot, height)
        else:
            content = render_logs(snapshot, height)
        body.border_title = render_title(snapshot)
        body.update(content)
        self.query_one("#status", Static).update(render_status(snapshot, self.show_help))

    async def _tick(self) -> None:
        if self._tick_in_flight or self._shut_down:
            return
        self._tick_in_flight = True
        try:
            await self.application.update_on_tick()
            self._render()
        finally:
            self._tick_in_flight = False

    async def on_key(self, event: events.Key) -> None:
        event.stop()
        event.prevent_default()
        if self._shut_down:
            return
        key = translate_key(event)
        result: Optional[AppReturn] = await self.application.do_action(key)
        if result is AppReturn.EXIT:
            logger.info("Quit requested")
            await self._shutdown()
            self.exit()
            return
        self._render()
