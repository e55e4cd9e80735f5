"""In-memory registry of generation progress.

Architectural role:
    Holds the only shared mutable state of the relay: a mapping from
    generation identifier to its latest `ProgressRecord`. One instance is
    created per application (see `imagerelay.api.http_api.create_app`) and injected
    into the generation service and the progress stream.

Lifecycle:
    - Created once at application start, dropped at process exit.
    - Entries are seeded when a generation starts, overwritten on every
      polling tick, and removed by the deferred cleanup.

Concurrency:
    Per-key last-write-wins. A lock guards the dict so the store is also safe
    to touch from worker threads.

Persistence:
    None. Nothing survives a restart and the store is not a durable queue.
"""

import logging
import threading
from typing import Dict, Optional

from imagerelay.core.progress_types import ProgressRecord


logger = logging.getLogger(__name__)


class ProgressStore:
    """Process-wide `generation_id -> ProgressRecord` mapping."""

    def __init__(self) -> None:
        self._records: Dict[str, ProgressRecord] = {}
        self._lock = threading.Lock()

    def set(self, generation_id: str, status: str, progress: float, message: str) -> ProgressRecord:
        """Insert or overwrite the record for `generation_id`."""
        record = ProgressRecord(status=status, progress=progress, message=message)
        self.put(generation_id, record)
        return record

    def put(self, generation_id: str, record: ProgressRecord) -> None:
        with self._lock:
            self._records[generation_id] = record
        logger.debug(
            "Progress %s: %s %.0f%% %s",
            generation_id, record.status, record.progress, record.message,
        )

    def get(self, generation_id: str) -> Optional[ProgressRecord]:
        """Return the current record, or `None` if none exists."""
        with self._lock:
            return self._records.get(generation_id)

    def delete(self, generation_id: str) -> bool:
        """Remove the record if present.

        Returns:
            `True` when a record was removed, `False` when it was already gone.
        """
        with self._lock:
            return self._records.pop(generation_id, None) is not None

    def __contains__(self, generation_id: object) -> bool:
        with self._lock:
            return generation_id in self._records

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def __bool__(self) -> bool:
        return True
