"""IANA service-name / port-number registry lookup."""

from __future__ import annotations

import csv
from dataclasses import dataclass, field
from pathlib import Path

import structlog


logger = structlog.get_logger(__name__)

COLUMNS = {
    "service_name": "Service Name",
    "port_number": "Port Number",
    "transport_protocol": "Transport Protocol",
    "description": "Description",
    "assignee": "Assignee",
    "contact": "Contact",
    "registration_date": "Registration Date",
    "modification_date": "Modification Date",
    "reference": "Reference",
    "service_code": "Service Code",
    "unauthorized_use_reported": "Unauthorized Use Reported",
    "assignment_notes": "Assignment Notes",
}


@dataclass(frozen=True)
class PortRecord:
    service_name: str
    port_number: str
    transport_protocol: str
    description: str = ""
    assignee: str = ""
    contact: str = ""
    registration_date: str = ""
    modification_date: str = ""
    reference: str = ""
    service_code: str = ""
    unauthorized_use_reported: str = ""
    assignment_notes: str = ""

    @classmethod
    def from_row(cls, row: dict[str, str | None]) -> PortRecord:
        return cls(**{attr: (row.get(column) or "").strip() for attr, column in COLUMNS.items()})


@dataclass
class PortRegistry:
    tcp: dict[str, PortRecord] = field(default_factory=dict)
    udp: dict[str, PortRecord] = field(default_factory=dict)
    ranges: dict[str, PortRecord] = field(default_factory=dict)

    def lookup(self, port: int, protocol: str = "tcp") -> PortRecord | None:
        table = self.udp if protocol.lower() == "udp" else self.tcp
        return table.get(str(port))

    def service_name(self, port: int, protocol: str = "tcp") -> str | None:
        record = self.lookup(port, protocol)
        return record.service_name if record else None


def _is_u16(value: str) -> bool:
    return value.isascii() and value.isdigit() and int(value) <= 65535


def build_port_registry(rows) -> PortRegistry:
    registry = PortRegistry()
    skipped = 0
    for row in rows:
        record = PortRecord.from_row(row)
        if not record.port_number or not record.service_name:
            skipped += 1
            continue
        if "-" in record.port_number:
            registry.ranges[record.port_number] = record
            continue
        if not _is_u16(record.port_number):
            skipped += 1
            continue

        protocol = record.transport_protocol.lower()
        if protocol == "tcp":
            registry.tcp[record.port_number] = record
        elif protocol == "udp":
            registry.udp[record.port_number] = record
        else:
            skipped += 1

    logger.debug(
        "Built port registry",
        tcp=len(registry.tcp),
        udp=len(registry.udp),
        ranges=len(registry.ranges),
        skipped=skipped,
    )
    return registry


def load_port_registry(path: str | Path) -> PortRegistry:
    with open(path, "r", encoding="utf-8-sig", newline="") as f:
        registry = build_port_registry(csv.DictReader(f))
    logger.info("Loaded port registry", path=str(path), tcp=len(registry.tcp), udp=len(registry.udp))
    return registry
