"""portwatch: TCP reachability and page functional-time monitor."""

__version__ = "0.1.0"
