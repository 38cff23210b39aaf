from __future__ import annotations

from typing import Protocol

from portwatch.models import CheckResult


AGENT_NAME = "portwatch"


class ResultSink(Protocol):
    """Append-only destination for check results.

    ``append`` returns the identifier assigned to the stored record and raises
    ResultSinkError if the record could not be stored. Implementations must be
    safe for concurrent callers.
    """

    async def append(self, result: CheckResult) -> int: ...

    async def close(self) -> None: ...
