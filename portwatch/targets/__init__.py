"""Target sources: operator address entry and the IANA port registry."""

from .address_entry import AddressEntry, parse_address, prompt_addresses, read_addresses
from .port_registry import PortRecord, PortRegistry, load_port_registry

__all__ = [
    "AddressEntry",
    "PortRecord",
    "PortRegistry",
    "load_port_registry",
    "parse_address",
    "prompt_addresses",
    "read_addresses",
]
