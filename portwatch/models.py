from __future__ import annotations

import ipaddress
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Union

from portwatch.errors import ErrorKind


DEFAULT_PORT = 443


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Endpoint:
    host: str
    port: int

    def __post_init__(self) -> None:
        ipaddress.IPv4Address(self.host)
        if not (1 <= int(self.port) <= 65535):
            raise ValueError(f"port out of range: {self.port}")

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"

    def __str__(self) -> str:
        return self.address


@dataclass(frozen=True)
class FunctionalCheckSpec:
    url: str
    selector: str | None = None
    headless: bool = True
    # ws:// -> Playwright browser server, http:// -> CDP endpoint, None -> local Chromium.
    session_endpoint: str | None = None


@dataclass(frozen=True)
class Target:
    name: str
    endpoint: Endpoint | None = None
    functional: FunctionalCheckSpec | None = None

    def __post_init__(self) -> None:
        if (self.endpoint is None) == (self.functional is None):
            raise ValueError(f"target {self.name!r} must define exactly one of endpoint or functional check")

    @classmethod
    def for_endpoint(cls, endpoint: Endpoint, name: str | None = None) -> Target:
        return cls(name=name or endpoint.address, endpoint=endpoint)

    @classmethod
    def for_functional(cls, spec: FunctionalCheckSpec, name: str | None = None) -> Target:
        return cls(name=name or spec.url, functional=spec)

    @property
    def kind(self) -> str:
        return "reachability" if self.endpoint is not None else "functional"


@dataclass(frozen=True)
class Measurement:
    duration_seconds: float
    close_error: str | None = None


@dataclass(frozen=True)
class ReachabilityResult:
    target: str
    endpoint: Endpoint
    open: bool
    probed_at: datetime = field(default_factory=utc_now)
    service: str | None = None

    @property
    def ok(self) -> bool:
        return self.open

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": "reachability",
            "target": self.target,
            "host": self.endpoint.host,
            "port": self.endpoint.port,
            "open": self.open,
            "service": self.service,
            "probed_at": self.probed_at.isoformat(),
        }


@dataclass(frozen=True)
class FunctionalTimeResult:
    target: str
    spec: FunctionalCheckSpec
    duration_seconds: float
    probed_at: datetime = field(default_factory=utc_now)
    close_error: str | None = None

    @property
    def ok(self) -> bool:
        return True

    @property
    def duration_ms(self) -> float:
        return round(self.duration_seconds * 1000.0, 3)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": "functional_time",
            "target": self.target,
            "url": self.spec.url,
            "selector": self.spec.selector,
            "duration_ms": self.duration_ms,
            "close_error": self.close_error,
            "probed_at": self.probed_at.isoformat(),
        }


@dataclass(frozen=True)
class CheckError:
    target: str
    kind: ErrorKind
    message: str
    probed_at: datetime = field(default_factory=utc_now)
    close_error: str | None = None

    @property
    def ok(self) -> bool:
        return False

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": "error",
            "target": self.target,
            "kind": self.kind.value,
            "message": self.message,
            "close_error": self.close_error,
            "probed_at": self.probed_at.isoformat(),
        }


CheckResult = Union[ReachabilityResult, FunctionalTimeResult, CheckError]
