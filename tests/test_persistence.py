"""Tests for snapshot persistence and the write debouncer."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path

import pytest

from backlogctx.search.persistence import SNAPSHOT_VERSION, Debouncer, SnapshotStore


class TestDebouncer:
    def test_runs_immediately_without_loop(self):
        calls = []
        debouncer = Debouncer(10.0, lambda: calls.append(1))
        debouncer.schedule()
        assert calls == [1]
        assert not debouncer.pending

    @pytest.mark.asyncio
    async def test_coalesces_bursts(self):
        calls = []
        debouncer = Debouncer(0.01, lambda: calls.append(1))
        for _ in range(5):
            debouncer.schedule()
        assert debouncer.pending
        await asyncio.sleep(0.05)
        assert calls == [1]
        assert not debouncer.pending

    @pytest.mark.asyncio
    async def test_flush(self):
        calls = []
        debouncer = Debouncer(60.0, lambda: calls.append(1))
        debouncer.flush()
        assert calls == []
        debouncer.schedule()
        debouncer.flush()
        assert calls == [1]
        assert not debouncer.pending

    @pytest.mark.asyncio
    async def test_cancel(self):
        calls = []
        debouncer = Debouncer(0.01, lambda: calls.append(1))
        debouncer.schedule()
        debouncer.cancel()
        await asyncio.sleep(0.03)
        assert calls == []


class TestSnapshotStore:
    def test_missing(self, tmp_path: Path):
        assert SnapshotStore(tmp_path / "index.json").load() is None

    def test_save_and_load(self, tmp_path: Path):
        store = SnapshotStore(tmp_path / "nested" / "index.json")
        assert store.save({"items": [{"id": "TASK-0001"}]})
        data = store.load()
        assert data["version"] == SNAPSHOT_VERSION
        assert data["items"] == [{"id": "TASK-0001"}]
        assert [p.name for p in store.path.parent.iterdir()] == ["index.json"]

    def test_corrupt(self, tmp_path: Path):
        path = tmp_path / "index.json"
        path.write_text("{truncated")
        assert SnapshotStore(path).load() is None

    def test_stale_version(self, tmp_path: Path):
        path = tmp_path / "index.json"
        path.write_text(json.dumps({"version": "0.0", "items": []}))
        assert SnapshotStore(path).load() is None

    def test_unserializable_payload(self, tmp_path: Path):
        store = SnapshotStore(tmp_path / "index.json")
        assert store.save({"bad": object()}) is False
        assert list(tmp_path.iterdir()) == []

    def test_clear(self, tmp_path: Path):
        store = SnapshotStore(tmp_path / "index.json")
        store.save({})
        store.clear()
        assert not store.path.exists()
        store.clear()
