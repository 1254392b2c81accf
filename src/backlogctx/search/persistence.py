"""Snapshot persistence for the retrieval index."""

from __future__ import annotations

import asyncio
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Callable

from backlogctx.search.tokenizer import TOKENIZER_VERSION

logger = logging.getLogger("backlogctx.search")

# Bump when the snapshot layout or indexed fields change.
INDEX_VERSION = 5

SNAPSHOT_VERSION = f"{INDEX_VERSION}.{TOKENIZER_VERSION}"


class Debouncer:
    """Coalesces bursts of calls into a single delayed callback.

    ``schedule()`` cancels any pending run and starts the delay again, so it
    is safe to call from every mutation site. Outside a running event loop
    the callback runs immediately.
    """

    def __init__(self, delay: float, callback: Callable[[], None]) -> None:
        self.delay = delay
        self.callback = callback
        self._handle: asyncio.TimerHandle | None = None

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def schedule(self) -> None:
        self.cancel()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self.callback()
            return
        self._handle = loop.call_later(self.delay, self._fire)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def flush(self) -> None:
        """Run a pending callback now; no-op when nothing is scheduled."""
        if self._handle is None:
            return
        self.cancel()
        self.callback()

    def _fire(self) -> None:
        self._handle = None
        self.callback()


class SnapshotStore:
    """Reads and writes the versioned JSON index snapshot."""

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)

    def load(self) -> dict[str, Any] | None:
        """Return the snapshot payload, or None if it is missing, unreadable or stale."""
        if not self.path.exists():
            return None
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Ignoring unreadable index snapshot {self.path}: {e}")
            return None

        if not isinstance(data, dict) or data.get("version") != SNAPSHOT_VERSION:
            found = data.get("version") if isinstance(data, dict) else None
            logger.warning(
                f"Index snapshot version {found!r} != {SNAPSHOT_VERSION!r}, rebuilding"
            )
            return None
        return data

    def save(self, payload: dict[str, Any]) -> bool:
        """Atomically write the snapshot. Failures are logged, never raised."""
        data = {"version": SNAPSHOT_VERSION, **payload}
        tmp_name = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=".index-", suffix=".tmp", dir=str(self.path.parent)
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f)
            os.replace(tmp_name, self.path)
            return True
        except (OSError, TypeError, ValueError) as e:
            logger.warning(f"Failed to write index snapshot {self.path}: {e}")
            if tmp_name and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            return False

    def clear(self) -> None:
        if self.path.exists():
            self.path.unlink()
