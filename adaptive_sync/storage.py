from __future__ import annotations

import json
import queue
import threading
import time
from abc import ABC, abstractmethod
from typing import Optional

from .models import RunSummary, SyncTask


class StorageBase(ABC):
    """Abstract base class for run report backends."""

    @abstractmethod
    def write(self, task: SyncTask) -> None:
        """Persist the final state of a single task."""

    @abstractmethod
    def close(self) -> None:
        """Flush pending writes and release resources."""

    def write_summary(self, summary: RunSummary) -> None:
        for task in summary.tasks:
            self.write(task)


class JsonlStorage(StorageBase):
    """Stores task reports as JSON Lines (.jsonl) using a background writer thread."""

    def __init__(self, path: str, run_id: Optional[str] = None) -> None:
        self._path = path
        self._run_id = run_id
        self._queue: queue.Queue[Optional[SyncTask]] = queue.Queue()
        self._thread = threading.Thread(target=self._writer, daemon=True)
        self._thread.start()

    def write(self, task: SyncTask) -> None:
        """Enqueue a task report for background writing."""
        self._queue.put(task)

    def close(self) -> None:
        """Signal the writer thread to flush and stop."""
        self._queue.put(None)
        self._thread.join(timeout=5)

    def _writer(self) -> None:
        with open(self._path, "a", encoding="utf-8") as f:
            while True:
                item = self._queue.get()
                if item is None:
                    break
                record = {"timestamp": time.time(), "run_id": self._run_id, **item.to_dict()}
                f.write(json.dumps(record, ensure_ascii=False) + "\n")
                f.flush()
