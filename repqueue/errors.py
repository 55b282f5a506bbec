"""
Error taxonomy for the replication queue client.

Every error carries the remote operation name and the parameters it was called
with so a failure can be diagnosed from the client side alone.

- TransportError: connectivity or authentication failed.
- RemoteLogicError: the server rejected the request.
- EmptyResult: the server reported "no items found" (fault code "0").
- ProtocolError: the response does not have the documented shape.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

EMPTY_RESULT_CODE = "0"


class ReplicationError(Exception):
    """Base class for all errors raised by this package."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.operation = operation
        self.params: Dict[str, Any] = dict(params or {})

    def __str__(self) -> str:
        if not self.operation:
            return self.message
        args = ", ".join(f"{k}={v!r}" for k, v in self.params.items())
        return f"{self.operation}({args}) failed: {self.message}"


class ConfigurationError(ReplicationError):
    """Settings or the configuration file are missing or invalid."""


class ProtocolError(ReplicationError):
    """The server response violates the documented contract."""


class RemoteError(ReplicationError):
    """An error reported by, or while talking to, the remote server."""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        operation: Optional[str] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, operation=operation, params=params)
        self.code = code

    def __str__(self) -> str:
        text = super().__str__()
        return f"{text} (code {self.code})" if self.code is not None else text


class TransportError(RemoteError):
    """Connection, timeout, HTTP or authentication failure."""


class RemoteLogicError(RemoteError):
    """The server processed the request and rejected it."""


class EmptyResult(RemoteError):
    """The query matched no items. A valid outcome, not a failure."""

    def __init__(
        self,
        message: str = "No items found",
        operation: Optional[str] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, code=EMPTY_RESULT_CODE, operation=operation, params=params)


__all__ = [
    "EMPTY_RESULT_CODE",
    "ReplicationError",
    "ConfigurationError",
    "ProtocolError",
    "RemoteError",
    "TransportError",
    "RemoteLogicError",
    "EmptyResult",
]
