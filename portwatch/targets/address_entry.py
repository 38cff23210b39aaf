"""Operator entry of ``host:port`` addresses to monitor."""

from __future__ import annotations

import ipaddress
import re
import sys
from dataclasses import dataclass, field
from typing import IO, Callable, Iterable

import structlog

from portwatch.errors import AddressParseError
from portwatch.models import DEFAULT_PORT, Endpoint


logger = structlog.get_logger(__name__)

_PORT_RE = re.compile(r"\+?[0-9]+")

BANNER = (
    "Enter IP addresses and ports to monitor.\n"
    "Format: <IP_ADDRESS>:<PORT> (e.g., 192.168.1.1:80)\n"
    "Type 'done' or press Enter on an empty line when finished.\n"
)


@dataclass
class AddressEntry:
    endpoints: list[Endpoint] = field(default_factory=list)
    errors: list[AddressParseError] = field(default_factory=list)


def is_end_of_input(line: str) -> bool:
    stripped = line.strip()
    return not stripped or stripped.lower() == "done"


def _parse_port(port_str: str) -> int:
    if not _PORT_RE.fullmatch(port_str):
        logger.warning("Invalid port number, using default", port=port_str, default_port=DEFAULT_PORT)
        return DEFAULT_PORT
    port = int(port_str)
    if port > 65535:
        logger.warning("Port number out of range, using default", port=port_str, default_port=DEFAULT_PORT)
        return DEFAULT_PORT
    if port == 0:
        logger.warning("Port 0 is not usable, using default", default_port=DEFAULT_PORT)
        return DEFAULT_PORT
    return port


def parse_address(line: str) -> Endpoint:
    """Parse ``<IPv4>:<port>``.

    A bad port (0, non-numeric, out of range) falls back to 443 with a
    warning. A malformed line or host raises AddressParseError.
    """
    text = line.strip()
    parts = text.split(":")
    if len(parts) != 2:
        raise AddressParseError(text, "invalid format, expected <IP_ADDRESS>:<PORT>")

    host_str = parts[0].strip()
    port_str = parts[1].strip()
    try:
        host = ipaddress.IPv4Address(host_str)
    except ValueError as e:
        raise AddressParseError(text, f"invalid IP address {host_str!r} ({e})") from e

    return Endpoint(host=str(host), port=_parse_port(port_str))


def read_addresses(lines: Iterable[str], report: Callable[[str], None] | None = None) -> AddressEntry:
    """Parse lines until an empty line or ``done``; bad lines are collected, not fatal."""
    entry = AddressEntry()
    for line in lines:
        if is_end_of_input(line):
            break
        try:
            endpoint = parse_address(line)
        except AddressParseError as e:
            logger.error("Rejected address", line=e.line, reason=e.reason)
            entry.errors.append(e)
            if report:
                report(f" -> Error: {e}")
            continue
        entry.endpoints.append(endpoint)
        logger.info("Added endpoint", endpoint=endpoint.address)
        if report:
            report(f" -> Added: {endpoint.address}")
    return entry


def prompt_addresses(stdin: IO[str] | None = None, stdout: IO[str] | None = None) -> AddressEntry:
    """Interactive variant of read_addresses with a ``# `` prompt.

    A failing input stream ends the configuration phase; whatever was entered
    before the failure is kept.
    """
    stdin = stdin or sys.stdin
    stdout = stdout or sys.stdout
    stdout.write(BANNER)

    def _lines():
        while True:
            stdout.write("# ")
            stdout.flush()
            try:
                line = stdin.readline()
            except OSError as e:
                logger.error("Failed to read operator input", error=str(e))
                return
            if not line:
                return
            yield line

    return read_addresses(_lines(), report=lambda message: stdout.write(message + "\n"))
