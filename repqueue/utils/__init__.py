"""
Utilities package for the replication queue client.

Exports shared helpers for logging and other cross-cutting concerns.
Keep this package lightweight and free of domain-specific logic.
"""

from repqueue.utils.logging import configure_logging, get_logger

__all__ = [
    "configure_logging",
    "get_logger",
]
