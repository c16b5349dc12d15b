"""
Error types for the Vesta protocol model.

Validation and precondition errors also derive from ValueError.
"""


class ProtocolError(Exception):
    """Base class for every error raised by the model."""


class ValidationError(ProtocolError, ValueError):
    """Bad input: zero amounts, out-of-range parameters, unknown identifiers."""


class PreconditionError(ProtocolError, ValueError):
    """The input is well formed but the current state does not allow the operation."""


class InsufficientBalanceError(PreconditionError):
    """An account or pool does not hold enough tokens."""


class NotLiquidatableError(PreconditionError):
    """The position's ICR is at or above the liquidation threshold."""


class NothingToLiquidateError(PreconditionError):
    """No position could be liquidated (closed, empty, or last active position)."""


class UnauthorizedError(ProtocolError, PermissionError):
    """The caller does not hold the role required for a privileged operation."""


class InvariantViolation(ProtocolError, RuntimeError):
    """Internal accounting is inconsistent. The system halts when this is raised."""


class SystemHaltedError(ProtocolError, RuntimeError):
    """A mutating call was made after the system halted."""
