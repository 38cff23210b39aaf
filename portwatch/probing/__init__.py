"""TCP reachability probing."""

from .reachability import connect, probe

__all__ = ["connect", "probe"]
