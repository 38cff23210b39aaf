"""Browser-driven functional-time measurement."""

from .measurer import FunctionalTimeMeasurer
from .session import BrowserSession, BrowserSessionManager, SessionLease
from .visibility import VisibilityWait, WaitState

__all__ = [
    "BrowserSession",
    "BrowserSessionManager",
    "FunctionalTimeMeasurer",
    "SessionLease",
    "VisibilityWait",
    "WaitState",
]
