"""Engine error types."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from rest_provisioner.engine.options import OperationOptions


class EngineError(Exception):
    """Base exception for engine errors."""


# ── Reconciliation core ─────────────────────────────────────────────


class InvalidPayloadError(EngineError):
    """A payload field does not hold a well-formed JSON object.

    Fatal for create/update/delete. Reads may continue with the partially
    built ``options`` attached to the exception.
    """

    def __init__(
        self, field: str, message: str, *, options: OperationOptions | None = None
    ) -> None:
        super().__init__(f"{field} attribute is invalid JSON: {message}")
        self.field = field
        self.options = options


class MissingIdentifierError(EngineError):
    """No identifier could be resolved where one is required.

    Raised for path templates containing ``{id}`` and for creates whose
    response carries no identifier.
    """


class InvalidImportFormatError(EngineError):
    """A composite import identifier contains no path separator."""

    def __init__(self, raw: str) -> None:
        super().__init__(
            f"invalid path to import api_object '{raw}' - "
            "must be /<full path from server root>/<object id>"
        )
        self.raw = raw


class DriftParseError(EngineError):
    """The ``drift_fields`` document is not a well-formed JSON object."""


class TransportError(EngineError):
    """Opaque failure reported by the transport."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class NotFoundError(TransportError):
    """The remote object does not exist."""


# ── Host engine ─────────────────────────────────────────────────────


class DuplicateAddressError(EngineError):
    """Raised when multiple desired resources share the same address."""

    def __init__(self, address: str) -> None:
        super().__init__(f"Duplicate resource address: {address}")
        self.address = address


class DependencyCycleError(EngineError):
    """Raised when dependencies contain a cycle."""

    def __init__(self, addresses: list[str]) -> None:
        msg = "Dependency cycle detected"
        if addresses:
            msg += f": {', '.join(addresses)}"
        super().__init__(msg)
        self.addresses = addresses


class StateEndpointMismatchError(EngineError):
    """Raised when the on-disk state was written against another API endpoint."""

    def __init__(self, expected: str, got: str) -> None:
        super().__init__(f"State endpoint mismatch: expected {expected}, got {got}")
        self.expected = expected
        self.got = got


class StalePlanError(EngineError):
    """Raised when applying a plan against a different state than planned."""


class StateLockError(EngineError):
    """Raised when the state lock cannot be acquired or released."""


class ValidationError(EngineError):
    """One or more resources failed plan validation."""

    def __init__(self, errors: list[str]) -> None:
        self.errors = errors
        msg = "Validation failed:\n" + "\n".join(f"  - {e}" for e in errors)
        super().__init__(msg)


class ApplyError(EngineError):
    """Raised when an apply fails mid-way through.

    Carries the partial result (what was applied before the failure) so
    callers can inspect progress.  The original exception is chained via
    ``__cause__``.
    """

    def __init__(self, *, applied: list[Any], address: str, message: str) -> None:
        from rest_provisioner.engine.types import ApplyResult

        self.result = ApplyResult(applied=applied)
        self.address = address
        super().__init__(f"Apply failed on {address}: {message}")


class ApplyCanceled(EngineError):
    """Raised when an apply is canceled (e.g., Ctrl-C)."""
