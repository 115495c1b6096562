from __future__ import annotations

import logging
import threading
from dataclasses import asdict, dataclass
from typing import Callable

from .config import HISTORY_CAPACITY

__all__ = ["HistoryEntry", "TranslationHistory"]

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class HistoryEntry:
    original: str
    translation: str

    def to_dict(self) -> dict[str, str]:
        return asdict(self)


class TranslationHistory:
    """Session ledger of translated lines, capped at ``capacity`` entries."""

    def __init__(
        self,
        capacity: int = HISTORY_CAPACITY,
        on_change: Callable[[], None] | None = None,
    ) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be positive.")
        self.capacity = capacity
        self._on_change = on_change
        self._lock = threading.Lock()
        self._entries: list[HistoryEntry] = []

    def record(self, original: str, translation: str) -> bool:
        if not original.strip() or not translation.strip():
            return False
        with self._lock:
            self._entries.append(HistoryEntry(original=original, translation=translation))
            overflow = len(self._entries) - self.capacity
            if overflow > 0:
                del self._entries[:overflow]
        if self._on_change is not None:
            try:
                self._on_change()
            except Exception as exc:
                logger.error("Failed to announce history update: %s", exc)
        return True

    def list(self) -> list[HistoryEntry]:
        with self._lock:
            return list(self._entries)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
