from __future__ import annotations

import asyncio

from portwatch.errors import ResultSinkError
from portwatch.models import CheckResult


class MemoryResultSink:
    """Keeps results in process memory. Used by ``--once`` runs and tests."""

    def __init__(self, max_records: int | None = None):
        self.max_records = max_records
        self.records: list[tuple[int, CheckResult]] = []
        self._next_id = 1
        self._lock = asyncio.Lock()
        self.closed = False

    async def append(self, result: CheckResult) -> int:
        async with self._lock:
            if self.closed:
                raise ResultSinkError("sink is closed")
            record_id = self._next_id
            self._next_id += 1
            self.records.append((record_id, result))
            if self.max_records is not None and len(self.records) > self.max_records:
                del self.records[: len(self.records) - self.max_records]
            return record_id

    @property
    def results(self) -> list[CheckResult]:
        return [result for _record_id, result in self.records]

    async def close(self) -> None:
        self.closed = True
