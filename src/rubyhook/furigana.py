from __future__ import annotations

import logging
import shlex
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, Protocol

from .tools import get_unidic_dicdir

__all__ = [
    "AnnotatedSpan",
    "FugashiTokenizer",
    "FuriganaAnnotator",
    "Token",
    "TokenizerUnavailableError",
    "escape_html",
    "katakana_to_hiragana",
    "render_spans",
]

logger = logging.getLogger(__name__)

# Katakana letters whose hiragana counterpart sits exactly KANA_OFFSET below.
KATAKANA_START = 0x30A1  # ァ
KATAKANA_END = 0x30F6  # ヶ
KANA_OFFSET = 0x60

READING_PLACEHOLDER = "*"

_HTML_ESCAPES = str.maketrans(
    {
        "&": "&amp;",
        "<": "&lt;",
        ">": "&gt;",
        '"': "&quot;",
        "'": "&#39;",
    }
)


class TokenizerUnavailableError(RuntimeError):
    """Raised when the morphological analyzer or its dictionary cannot be loaded."""


@dataclass(slots=True)
class Token:
    surface: str
    start: int
    end: int
    reading: str = ""


@dataclass(slots=True)
class AnnotatedSpan:
    surface: str
    reading: str | None = None


class Tokenizer(Protocol):
    def tokenize(self, text: str) -> Iterable[Token]: ...


def katakana_to_hiragana(text: str) -> str:
    chars: list[str] = []
    for ch in text:
        code = ord(ch)
        if KATAKANA_START <= code <= KATAKANA_END:
            chars.append(chr(code - KANA_OFFSET))
        else:
            chars.append(ch)
    return "".join(chars)


def escape_html(text: str) -> str:
    return text.translate(_HTML_ESCAPES)


def _extract_reading(token) -> str:
    feature = getattr(token, "feature", None)
    if feature is None:
        return ""
    for attr in ("kana", "pron", "reading"):
        if hasattr(feature, attr):
            value = getattr(feature, attr)
        else:
            try:
                value = feature[attr]
            except Exception:  # pragma: no cover - feature object may not be subscriptable
                value = None
        if value and value != READING_PLACEHOLDER:
            return str(value)
    return ""


class FugashiTokenizer:
    """Fugashi (MeCab) tagger that reports offsets into the input string."""

    def __init__(self, dicdir: Path | None = None) -> None:
        try:
            from fugashi import GenericTagger, Tagger  # type: ignore
            from fugashi import fugashi as fugashi_core  # type: ignore
        except ImportError as exc:
            raise TokenizerUnavailableError(
                "Furigana requires 'fugashi' (MeCab) to be installed."
            ) from exc

        if dicdir:
            args = f"-d {shlex.quote(str(dicdir))}"
            feature_wrapper = getattr(fugashi_core, "UnidicFeatures29", None)
            try:
                if feature_wrapper is not None:
                    self._tagger = GenericTagger(args, feature_wrapper)
                else:
                    self._tagger = GenericTagger(args)
            except RuntimeError as exc:
                raise TokenizerUnavailableError(
                    f"Failed to initialize UniDic dictionary at '{dicdir}': {exc}"
                ) from exc
        else:
            logger.warning("UniDic not detected; falling back to the default MeCab dictionary.")
            try:
                self._tagger = Tagger()
            except RuntimeError as exc:
                raise TokenizerUnavailableError(
                    "No MeCab dictionary available. Run 'rubyhook tools install-unidic'."
                ) from exc

    @classmethod
    def from_data_dir(cls, data_dir: Path) -> "FugashiTokenizer":
        return cls(get_unidic_dicdir(data_dir))

    def tokenize(self, text: str) -> list[Token]:
        tokens: list[Token] = []
        pos = 0
        for raw in self._tagger(text):
            surface = raw.surface
            if not surface:
                continue
            start = text.find(surface, pos)
            if start == -1:
                start = pos
            end = start + len(surface)
            tokens.append(Token(surface=surface, start=start, end=end, reading=_extract_reading(raw)))
            pos = end
        return tokens


class FuriganaAnnotator:
    """Renders ``<ruby>`` markup from a lazily created, exclusively used tokenizer."""

    def __init__(self, tokenizer_factory: Callable[[], Tokenizer]) -> None:
        self._factory = tokenizer_factory
        self._tokenizer: Tokenizer | None = None
        self._init_lock = threading.Lock()
        self._tokenize_lock = threading.Lock()

    def _get_tokenizer(self) -> Tokenizer:
        with self._init_lock:
            if self._tokenizer is None:
                self._tokenizer = self._factory()
                logger.info("Tokenizer initialized")
            return self._tokenizer

    def warm_up(self) -> None:
        self._get_tokenizer()

    def tokenize(self, text: str) -> list[Token]:
        tokenizer = self._get_tokenizer()
        with self._tokenize_lock:
            return list(tokenizer.tokenize(text))

    def segment(self, text: str) -> list[AnnotatedSpan]:
        if not text.strip():
            return []
        tokens = sorted(self.tokenize(text), key=lambda token: token.start)
        length = len(text)
        spans: list[AnnotatedSpan] = []
        cursor = 0
        for token in tokens:
            start = min(token.start, length)
            if start > cursor:
                spans.append(AnnotatedSpan(text[cursor:start]))
            start = max(start, cursor)
            end = min(max(token.end, start), length)
            surface = text[start:end]
            cursor = end
            if not surface:
                continue
            spans.append(AnnotatedSpan(surface, _gloss_for(surface, token.reading)))
        if cursor < length:
            spans.append(AnnotatedSpan(text[cursor:]))
        return spans

    def annotate(self, text: str) -> str:
        if not text.strip():
            return ""
        return render_spans(self.segment(text))


def _gloss_for(surface: str, reading: str | None) -> str | None:
    if not reading:
        return None
    reading = reading.strip()
    if not reading or reading == READING_PLACEHOLDER:
        return None
    reading = katakana_to_hiragana(reading)
    if reading == katakana_to_hiragana(surface):
        return None
    return reading


def render_spans(spans: Iterable[AnnotatedSpan]) -> str:
    parts: list[str] = []
    for span in spans:
        surface = escape_html(span.surface)
        if span.reading is None:
            parts.append(surface)
        else:
            parts.append(f"<ruby>{surface}<rt>{escape_html(span.reading)}</rt></ruby>")
    return "".join(parts)
