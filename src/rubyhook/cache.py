from __future__ import annotations

import contextlib
import hashlib
import sqlite3
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator

__all__ = ["CacheEntry", "CacheError", "TranslationCache", "cache_key"]

CACHE_FILENAME = "translations.sqlite3"
KEY_DIGEST_SIZE = 8

_SCHEMA = """
CREATE TABLE IF NOT EXISTS translations (
    key TEXT PRIMARY KEY,
    original TEXT NOT NULL,
    translation TEXT NOT NULL,
    created_at INTEGER NOT NULL
)
"""


class CacheError(RuntimeError):
    """Raised when the translation cache cannot be opened, read or written."""


@dataclass(slots=True)
class CacheEntry:
    key: str
    original: str
    translation: str
    created_at: int


def cache_key(text: str) -> str:
    """Return the fixed-width (16 hex chars) content hash used as the row key."""
    return hashlib.blake2b(text.encode("utf-8"), digest_size=KEY_DIGEST_SIZE).hexdigest()


class TranslationCache:
    """
    Content-addressed store of translations kept in a SQLite file.

    Every call opens its own short-lived connection and (re)creates the schema,
    so calls are independent and may run concurrently from worker threads.
    """

    def __init__(self, cache_dir: Path) -> None:
        self.cache_dir = cache_dir

    @property
    def path(self) -> Path:
        return self.cache_dir / CACHE_FILENAME

    @contextlib.contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise CacheError(f"Failed to create cache directory {self.cache_dir}: {exc}") from exc
        try:
            with contextlib.closing(sqlite3.connect(self.path)) as conn:
                with conn:
                    conn.execute(_SCHEMA)
                yield conn
        except sqlite3.Error as exc:
            raise CacheError(f"Translation cache error ({self.path}): {exc}") from exc

    def entry(self, text: str) -> CacheEntry | None:
        key = cache_key(text)
        with self._connect() as conn:
            row = conn.execute(
                "SELECT key, original, translation, created_at FROM translations WHERE key = ? LIMIT 1",
                (key,),
            ).fetchone()
        if row is None:
            return None
        return CacheEntry(key=row[0], original=row[1], translation=row[2], created_at=int(row[3]))

    def get(self, text: str) -> str | None:
        entry = self.entry(text)
        return entry.translation if entry is not None else None

    def put(self, text: str, translation: str) -> None:
        if not translation.strip():
            return
        key = cache_key(text)
        now = int(time.time())
        with self._connect() as conn:
            with conn:
                conn.execute(
                    "INSERT OR REPLACE INTO translations (key, original, translation, created_at) "
                    "VALUES (?, ?, ?, ?)",
                    (key, text, translation, now),
                )
