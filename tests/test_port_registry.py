from __future__ import annotations

import csv
from pathlib import Path

import pytest

from portwatch.targets.port_registry import COLUMNS, load_port_registry


def _write_registry(path: Path, rows: list[dict[str, str]]) -> Path:
    with open(path, "w", encoding="utf-8", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=list(COLUMNS.values()))
        writer.writeheader()
        for row in rows:
            writer.writerow({column: row.get(column, "") for column in COLUMNS.values()})
    return path


def _row(service: str, port: str, proto: str, description: str = "") -> dict[str, str]:
    return {
        "Service Name": service,
        "Port Number": port,
        "Transport Protocol": proto,
        "Description": description,
    }


@pytest.fixture()
def registry_csv(tmp_path: Path) -> Path:
    return _write_registry(
        tmp_path / "service-names-port-numbers.csv",
        [
            _row("http", "80", "tcp", "World Wide Web HTTP"),
            _row("domain", "53", "udp", "Domain Name Server"),
            _row("domain", "53", "tcp", "Domain Name Server"),
            _row("ftp-range", "20-25", "tcp"),
            _row("https", "443", "TCP"),
            _row("sctp-only", "9", "sctp"),
            _row("", "7", "tcp"),
            _row("noport", "", "tcp"),
            _row("too-big", "70000", "tcp"),
        ],
    )


def test_range_record_goes_to_range_table_only(registry_csv: Path) -> None:
    registry = load_port_registry(registry_csv)

    assert "20-25" in registry.ranges
    assert "20-25" not in registry.tcp
    assert "20-25" not in registry.udp


def test_tcp_record_appears_only_in_tcp_table(registry_csv: Path) -> None:
    registry = load_port_registry(registry_csv)

    assert registry.tcp["80"].service_name == "http"
    assert registry.tcp["80"].description == "World Wide Web HTTP"
    assert "80" not in registry.udp


def test_protocol_match_is_case_insensitive(registry_csv: Path) -> None:
    registry = load_port_registry(registry_csv)
    assert registry.service_name(443) == "https"


def test_skips_empty_unknown_protocol_and_out_of_range(registry_csv: Path) -> None:
    registry = load_port_registry(registry_csv)

    assert "9" not in registry.tcp and "9" not in registry.udp
    assert "7" not in registry.tcp
    assert "70000" not in registry.tcp
    assert set(registry.tcp) == {"80", "53", "443"}
    assert set(registry.udp) == {"53"}


def test_lookup_by_protocol(registry_csv: Path) -> None:
    registry = load_port_registry(registry_csv)

    assert registry.service_name(53, "udp") == "domain"
    assert registry.service_name(80, "udp") is None
    assert registry.lookup(12345) is None
