"""Tests for the content-hash parse cache."""

import threading
import time
from pathlib import Path

import pytest

from reposcope.cache import ParseCache, hash_content
from reposcope.models import ParsedFile
from reposcope.parser import SourceParser


def _parsed(name: str) -> ParsedFile:
    return ParsedFile(language="python", file_path=name, content_hash=hash_content(name))


def test_hash_content_is_stable():
    assert hash_content("abc") == hash_content("abc")
    assert hash_content("abc") != hash_content("abd")
    assert len(hash_content("abc")) == 32


def test_invalid_capacity():
    with pytest.raises(ValueError):
        ParseCache(max_entries=0)


class TestLookup:
    """Hit/miss accounting and hash validation."""

    def test_hit_requires_matching_hash(self):
        cache = ParseCache()
        cache.store("a.py", "h1", _parsed("a.py"))

        assert cache.lookup("a.py", "h1") is not None
        assert cache.lookup("a.py", "h2") is None
        assert cache.lookup("missing.py", "h1") is None

        stats = cache.stats()
        assert stats.hit_count == 1
        assert stats.miss_count == 2
        assert stats.hit_rate == pytest.approx(1 / 3)

    def test_invalidate_and_clear(self):
        cache = ParseCache()
        cache.store("a.py", "h", _parsed("a.py"))
        cache.lookup("a.py", "h")

        assert cache.invalidate("a.py")
        assert not cache.invalidate("a.py")
        assert "a.py" not in cache

        cache.store("b.py", "h", _parsed("b.py"))
        cache.clear()
        stats = cache.stats()
        assert len(cache) == 0
        assert stats.hit_count == 0
        assert stats.miss_count == 0
        assert stats.oldest_entry is None


class TestEviction:
    """Capacity handling."""

    def test_full_cache_drops_least_recently_accessed(self):
        cache = ParseCache(max_entries=5, eviction_fraction=0.4)
        for i in range(5):
            cache.store(f"f{i}", "h", _parsed(f"f{i}"))
        # Touch the two oldest so f2 and f3 become the stalest.
        cache.lookup("f0", "h")
        cache.lookup("f1", "h")

        cache.store("new", "h", _parsed("new"))

        assert len(cache) == 4
        assert "f2" not in cache
        assert "f3" not in cache
        assert all(key in cache for key in ("f0", "f1", "f4", "new"))

    def test_overwriting_existing_key_does_not_evict(self):
        cache = ParseCache(max_entries=2)
        cache.store("a", "h1", _parsed("a"))
        cache.store("b", "h1", _parsed("b"))
        cache.store("a", "h2", _parsed("a"))

        assert len(cache) == 2
        assert cache.lookup("a", "h2") is not None

    def test_evicts_at_least_one(self):
        cache = ParseCache(max_entries=2, eviction_fraction=0.1)
        cache.store("a", "h", _parsed("a"))
        cache.store("b", "h", _parsed("b"))
        cache.store("c", "h", _parsed("c"))

        assert len(cache) == 2
        assert "a" not in cache


class TestKeyLocks:
    """Per-key locks only live while a caller needs them."""

    def test_lock_dropped_after_use(self):
        cache = ParseCache()

        with cache.key_lock("a.py"):
            assert "a.py" in cache._key_locks

        assert cache._key_locks == {}

    def test_contending_callers_are_serialized(self):
        cache = ParseCache()
        entered = threading.Event()
        release = threading.Event()
        order = []

        def first():
            with cache.key_lock("k"):
                entered.set()
                release.wait(5)
                order.append("first")

        def second():
            entered.wait(5)
            with cache.key_lock("k"):
                order.append("second")

        threads = [threading.Thread(target=first), threading.Thread(target=second)]
        for thread in threads:
            thread.start()
        entered.wait(5)
        deadline = time.monotonic() + 5
        while cache._key_locks.get("k", (None, 0))[1] < 2 and time.monotonic() < deadline:
            time.sleep(0.01)
        release.set()
        for thread in threads:
            thread.join(5)

        assert order == ["first", "second"]
        assert cache._key_locks == {}


class TestParserIntegration:
    """SourceParser consults the cache by path and content hash."""

    def test_second_parse_is_served_from_cache(self, temp_dir: Path, cached_parser: SourceParser):
        path = temp_dir / "mod.py"
        path.write_text("def f():\n    pass\n")

        first = cached_parser.parse(path)
        second = cached_parser.parse(path)

        assert second is first
        stats = cached_parser.cache.stats()
        assert stats.hit_count == 1
        assert stats.miss_count == 1

    def test_changed_content_is_reparsed(self, temp_dir: Path, cached_parser: SourceParser):
        path = temp_dir / "mod.py"
        path.write_text("def f():\n    pass\n")
        first = cached_parser.parse(path)

        path.write_text("def g():\n    pass\n")
        second = cached_parser.parse(path)

        assert second is not first
        assert second.content_hash != first.content_hash
        assert [f.name for f in second.functions] == ["g"]
        assert cached_parser.cache.stats().miss_count == 2

    def test_bypassing_cache(self, temp_dir: Path, cached_parser: SourceParser):
        path = temp_dir / "mod.py"
        path.write_text("x = 1\n")

        cached_parser.parse(path, use_cache=False)

        assert len(cached_parser.cache) == 0
        assert cached_parser.cache.stats().miss_count == 0

    def test_key_locks_do_not_outlive_evicted_entries(self, temp_dir: Path, cached_parser: SourceParser):
        for i in range(15):
            path = temp_dir / f"m{i}.py"
            path.write_text(f"X = {i}\n")
            cached_parser.parse(path)

        assert len(cached_parser.cache) <= 10
        assert cached_parser.cache._key_locks == {}
