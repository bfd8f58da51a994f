"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Defines the exceptions raised by the operation registry.
"""

from ..errors import HubError


class OperationError(HubError):
    """Base error for operation registration and dispatch."""

    kind = "operation"


class OperationAlreadyRegisteredError(OperationError):
    pass


class OperationNotFoundError(OperationError):
    """Raised when a call names an operation that was never registered."""

    kind = "not_found"


class OperationTimeoutError(OperationError):
    kind = "timeout"
