from __future__ import annotations

import sqlite3
from concurrent.futures import ThreadPoolExecutor

import pytest

import rubyhook.cache as cache_mod
from rubyhook.cache import CacheError, TranslationCache, cache_key


def test_cache_key_is_fixed_width_hex() -> None:
    short = cache_key("あ")
    long = cache_key("長い文章" * 500)
    assert len(short) == len(long) == 16
    int(short, 16)
    assert cache_key("あ") == short
    assert cache_key("あ ") != short


def test_get_after_put_returns_translation(tmp_path) -> None:
    cache = TranslationCache(tmp_path / "cache")
    assert cache.get("猫です") is None
    cache.put("猫です", "It's a cat.")
    assert cache.get("猫です") == "It's a cat."
    assert (tmp_path / "cache" / "translations.sqlite3").is_file()


def test_blank_translation_never_overwrites(tmp_path) -> None:
    cache = TranslationCache(tmp_path)
    cache.put("犬", "dog")
    cache.put("犬", "")
    cache.put("犬", "   \n")
    assert cache.get("犬") == "dog"


def test_blank_translation_does_not_create_store(tmp_path) -> None:
    cache = TranslationCache(tmp_path / "cache")
    cache.put("犬", "")
    assert not (tmp_path / "cache").exists()


def test_put_upserts_translation_and_timestamp(tmp_path, monkeypatch) -> None:
    cache = TranslationCache(tmp_path)
    monkeypatch.setattr(cache_mod.time, "time", lambda: 1000.0)
    cache.put("鳥", "bird")
    monkeypatch.setattr(cache_mod.time, "time", lambda: 2000.0)
    cache.put("鳥", "a bird")

    entry = cache.entry("鳥")
    assert entry is not None
    assert entry.translation == "a bird"
    assert entry.original == "鳥"
    assert entry.created_at == 2000
    assert entry.key == cache_key("鳥")

    with sqlite3.connect(cache.path) as conn:
        count = conn.execute("SELECT COUNT(*) FROM translations").fetchone()[0]
    assert count == 1


def test_separate_instances_share_the_file(tmp_path) -> None:
    TranslationCache(tmp_path).put("魚", "fish")
    assert TranslationCache(tmp_path).get("魚") == "fish"


def test_concurrent_first_use(tmp_path) -> None:
    cache = TranslationCache(tmp_path / "fresh")
    texts = [f"文{i}" for i in range(16)]
    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(lambda text: cache.put(text, text + "!"), texts))
    assert [cache.get(text) for text in texts] == [text + "!" for text in texts]


def test_storage_failure_raises_cache_error(tmp_path) -> None:
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("x", encoding="utf-8")
    cache = TranslationCache(blocker)
    with pytest.raises(CacheError):
        cache.get("x")
    with pytest.raises(CacheError):
        cache.put("x", "y")


def test_corrupt_file_raises_cache_error(tmp_path) -> None:
    (tmp_path / "translations.sqlite3").write_bytes(b"this is not a database" * 100)
    with pytest.raises(CacheError):
        TranslationCache(tmp_path).get("x")
