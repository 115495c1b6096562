from __future__ import annotations

import asyncio
import logging
import threading
from typing import Awaitable, Callable

import pyperclip

from .events import INCOMING_TEXT, EventHub, NotificationError
from .replacements import ReplacementEngine
from .state import Toggle

__all__ = ["ACTIVE_POLL_INTERVAL", "IDLE_POLL_INTERVAL", "ClipboardWatcher"]

logger = logging.getLogger(__name__)

IDLE_POLL_INTERVAL = 0.5
ACTIVE_POLL_INTERVAL = 1.5


class ClipboardWatcher:
    """
    Polls the system clipboard and forwards new text as ``incoming_text``.

    Two states: while the toggle is off every tick just reports the idle
    interval; while it is on a tick reads the clipboard (in the default
    executor, since clipboard APIs block), runs the replacement rules and
    emits the result unless it matches the last forwarded value. The last
    forwarded value is kept across toggles, so re-enabling the watcher does
    not replay an unchanged clipboard.
    """

    def __init__(
        self,
        engine: ReplacementEngine,
        hub: EventHub,
        enabled: Toggle,
        *,
        read_clipboard: Callable[[], str | None] = pyperclip.paste,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    ) -> None:
        self._engine = engine
        self._hub = hub
        self._enabled = enabled
        self._read_clipboard = read_clipboard
        self._sleep = sleep
        self._last_lock = threading.Lock()
        self._last = ""

    @property
    def last_forwarded(self) -> str:
        with self._last_lock:
            return self._last

    def _read_processed(self) -> str | None:
        text = self._read_clipboard()
        if not text:
            return None
        text = text.strip()
        if not text:
            return None
        return self._engine.apply(text)

    async def tick(self) -> float:
        if not self._enabled.is_enabled():
            return IDLE_POLL_INTERVAL

        loop = asyncio.get_running_loop()
        try:
            processed = await loop.run_in_executor(None, self._read_processed)
        except Exception as exc:
            logger.warning("Clipboard poll failed: %s", exc)
            return ACTIVE_POLL_INTERVAL

        if not processed:
            return ACTIVE_POLL_INTERVAL
        with self._last_lock:
            if processed == self._last:
                return ACTIVE_POLL_INTERVAL
            self._last = processed

        logger.debug("Clipboard text changed, len=%d", len(processed))
        try:
            self._hub.emit(INCOMING_TEXT, processed)
        except NotificationError as exc:
            logger.error("Failed to emit clipboard text: %s", exc)
        return ACTIVE_POLL_INTERVAL

    async def run(self) -> None:
        while True:
            delay = await self.tick()
            await self._sleep(delay)
