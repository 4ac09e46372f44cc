"""Tests for the repository tree cache."""

from __future__ import annotations

import json
from pathlib import Path

from mizmaster.ai.services.repo_index_cache import RepoFileIndexEntry, RepoIndexCache, RepoIndexKey

_KEY = RepoIndexKey(owner="FlightControl-Master", repo="MOOSE", branch="develop")
_ENTRIES = (
    RepoFileIndexEntry(path="Moose Development/Moose/Core/Spawn.lua", type="blob", size=120),
    RepoFileIndexEntry(path="Moose Development/Moose/Core", type="tree"),
)


class _Clock:
    def __init__(self, now: float = 1_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def test_fresh_entry_is_returned() -> None:
    clock = _Clock()
    cache = RepoIndexCache(ttl_seconds=60, clock=clock)
    cache.put(_KEY, _ENTRIES)

    clock.now += 59.999

    assert cache.get(_KEY) == _ENTRIES
    assert cache.stats.hits == 1


def test_entry_one_millisecond_past_ttl_is_never_returned() -> None:
    clock = _Clock()
    cache = RepoIndexCache(ttl_seconds=60, clock=clock)
    cache.put(_KEY, _ENTRIES)

    clock.now += 60.001

    assert cache.get(_KEY) is None
    assert cache.stats.expirations == 1


def test_entry_at_exact_ttl_is_expired() -> None:
    clock = _Clock()
    cache = RepoIndexCache(ttl_seconds=60, clock=clock)
    cache.put(_KEY, _ENTRIES)

    clock.now += 60

    assert cache.get(_KEY) is None


def test_keys_are_scoped_by_branch() -> None:
    cache = RepoIndexCache()
    cache.put(_KEY, _ENTRIES)

    assert cache.get(RepoIndexKey(owner=_KEY.owner, repo=_KEY.repo, branch="master")) is None


def test_last_write_wins() -> None:
    cache = RepoIndexCache()
    cache.put(_KEY, _ENTRIES)
    cache.put(_KEY, _ENTRIES[:1])

    assert cache.get(_KEY) == _ENTRIES[:1]


def test_disk_mirror_survives_new_instance(tmp_path: Path) -> None:
    clock = _Clock()
    RepoIndexCache(ttl_seconds=60, cache_dir=tmp_path, clock=clock).put(_KEY, _ENTRIES)

    reloaded = RepoIndexCache(ttl_seconds=60, cache_dir=tmp_path, clock=clock)

    assert reloaded.get(_KEY) == _ENTRIES
    stored = json.loads((tmp_path / f"{_KEY.storage_name()}.json").read_text(encoding="utf-8"))
    assert stored["timestamp"] == 1_000.0
    assert stored["tree"][0]["path"].endswith("Spawn.lua")


def test_corrupt_disk_entry_is_discarded(tmp_path: Path) -> None:
    path = tmp_path / f"{_KEY.storage_name()}.json"
    path.write_text("{not json", encoding="utf-8")
    cache = RepoIndexCache(cache_dir=tmp_path)

    assert cache.get(_KEY) is None
    assert not path.exists()


def test_write_failure_is_counted_not_raised(tmp_path: Path) -> None:
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("file", encoding="utf-8")
    cache = RepoIndexCache(cache_dir=blocker / "nested")

    cache.put(_KEY, _ENTRIES)

    assert cache.stats.write_failures == 1
    assert cache.get(_KEY) == _ENTRIES


def test_invalidate_and_clear(tmp_path: Path) -> None:
    cache = RepoIndexCache(cache_dir=tmp_path)
    cache.put(_KEY, _ENTRIES)
    cache.invalidate(_KEY)

    assert cache.get(_KEY) is None

    cache.put(_KEY, _ENTRIES)
    cache.clear()

    assert list(tmp_path.iterdir()) == []


def test_storage_name_is_filesystem_safe() -> None:
    key = RepoIndexKey(owner="a b", repo="c/d", branch="e")

    assert key.storage_name() == "mizmaster-tree-a_b-c_d-e"
