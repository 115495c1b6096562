from .cache import CacheError, TranslationCache
from .config import ServiceConfig
from .events import EventHub, NotificationError
from .furigana import FuriganaAnnotator, TokenizerUnavailableError
from .history import HistoryEntry, TranslationHistory
from .replacements import ReplacementEngine, RulePayload
from .state import Translator

__all__ = [
    "CacheError",
    "EventHub",
    "FuriganaAnnotator",
    "HistoryEntry",
    "NotificationError",
    "ReplacementEngine",
    "RulePayload",
    "ServiceConfig",
    "TokenizerUnavailableError",
    "TranslationCache",
    "TranslationHistory",
    "Translator",
]
