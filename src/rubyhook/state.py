from __future__ import annotations

import logging
import threading
from dataclasses import asdict, dataclass
from functools import partial
from typing import Callable

from .cache import TranslationCache
from .config import ServiceConfig
from .events import HTTP_SERVER_FAILED, TRANSLATION_HISTORY_UPDATED, EventHub, NotificationError
from .furigana import FugashiTokenizer, FuriganaAnnotator, Tokenizer
from .history import TranslationHistory
from .replacements import ReplacementEngine

__all__ = ["HttpErrorSlot", "HttpServerError", "Toggle", "Translator"]

logger = logging.getLogger(__name__)


class Toggle:
    def __init__(self, enabled: bool = False) -> None:
        self._lock = threading.Lock()
        self._enabled = enabled

    def set(self, enabled: bool) -> None:
        with self._lock:
            self._enabled = bool(enabled)

    def is_enabled(self) -> bool:
        with self._lock:
            return self._enabled


@dataclass(frozen=True, slots=True)
class HttpServerError:
    port: int
    message: str

    def to_dict(self) -> dict[str, object]:
        return asdict(self)


class HttpErrorSlot:
    """Last HTTP listener failure, kept so the host can ask for it after the fact."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._error: HttpServerError | None = None

    def set(self, error: HttpServerError) -> None:
        with self._lock:
            self._error = error

    def get(self) -> HttpServerError | None:
        with self._lock:
            return self._error


class Translator:
    """Owns every piece of shared state; each piece carries its own lock."""

    def __init__(
        self,
        config: ServiceConfig,
        *,
        tokenizer_factory: Callable[[], Tokenizer] | None = None,
        hub: EventHub | None = None,
    ) -> None:
        self.config = config
        self.hub = hub or EventHub()
        self.replacements = ReplacementEngine()
        if tokenizer_factory is None:
            tokenizer_factory = partial(FugashiTokenizer.from_data_dir, config.data_dir)
        self.annotator = FuriganaAnnotator(tokenizer_factory)
        self.cache = TranslationCache(config.cache_dir)
        self.history = TranslationHistory(
            capacity=config.history_capacity,
            on_change=lambda: self.hub.emit(TRANSLATION_HISTORY_UPDATED),
        )
        self.clipboard_watch = Toggle(config.clipboard_watch)
        self.openai_compatible_input = Toggle(config.openai_compatible_input)
        self.http_error = HttpErrorSlot()

    def record_http_error(self, port: int, exc: BaseException) -> HttpServerError:
        error = HttpServerError(port=port, message=str(exc))
        self.http_error.set(error)
        try:
            self.hub.emit(HTTP_SERVER_FAILED, error.to_dict())
        except NotificationError as emit_exc:
            logger.error("Failed to notify host about HTTP listener error: %s", emit_exc)
        return error
