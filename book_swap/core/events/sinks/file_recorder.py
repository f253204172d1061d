"""
Append-only file recorder sink.
"""
from __future__ import annotations

import json
import threading
from pathlib import Path
from typing import Any

from book_swap.core.events.events import event_to_record


class FileRecorderSink:
    """Writes each event as a JSON line to a file."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._fh = self._path.open("a", encoding="utf-8")
        # Engine callers publish from many threads.
        self._lock = threading.Lock()
        self._closed = False

    def on_event(self, event: Any) -> None:
        line = json.dumps(event_to_record(event)) + "\n"
        with self._lock:
            self._fh.write(line)
            self._fh.flush()

    def close(self) -> None:
        if self._closed:
            return
        with self._lock:
            self._fh.flush()
            self._fh.close()
        self._closed = True
