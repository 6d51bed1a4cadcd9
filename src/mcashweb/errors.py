"""
Exception hierarchy shared by every mcashweb component.

Every error raised on purpose by the SDK derives from ``McashWebError`` so
callers can catch one base class; the subclasses tell apart local input
problems, encoding problems, node-side failures and contract execution
failures.
"""

from __future__ import annotations

from typing import Any, Optional


class McashWebError(RuntimeError):
    exit_code = 1


class ValidationError(McashWebError, ValueError):
    """Malformed, missing or out-of-range input, detected before any RPC."""


class AbiError(McashWebError, ValueError):
    """ABI encode/decode failure or malformed ABI JSON."""


class RpcError(McashWebError):
    """The node (or the transport in front of it) reported an error."""

    def __init__(self, message: str, payload: Any = None) -> None:
        super().__init__(message)
        self.payload = payload


class StateError(McashWebError):
    """Operation invoked on an object in the wrong lifecycle state."""


class SignatureError(McashWebError):
    pass


class PermissionDenied(SignatureError):
    """A multi-signature request was refused.

    ``kind`` is one of ``PERMISSION_ERROR`` (reported by the node),
    ``NO_PERMISSION`` (key not part of the permission) or
    ``ALREADY_SIGNED`` (key already in the approved list).
    """

    PERMISSION_ERROR = "PERMISSION_ERROR"
    NO_PERMISSION = "NO_PERMISSION"
    ALREADY_SIGNED = "ALREADY_SIGNED"

    def __init__(self, message: str, kind: str) -> None:
        super().__init__(message)
        self.kind = kind


class ExecutionError(McashWebError):
    """A contract execution failed on chain or in constant execution."""

    def __init__(
        self,
        message: str,
        transaction: Optional[dict[str, Any]] = None,
        output: Any = None,
        code: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.transaction = transaction
        self.output = output
        self.code = code


class RevertError(ExecutionError):
    pass


class ResultNotFoundError(ExecutionError):
    pass


class PluginError(McashWebError):
    pass


__all__ = [
    "AbiError",
    "ExecutionError",
    "McashWebError",
    "PermissionDenied",
    "PluginError",
    "ResultNotFoundError",
    "RevertError",
    "RpcError",
    "SignatureError",
    "StateError",
    "ValidationError",
]
