"""Typed errors raised by the lineage engine.

Every error carries an HTTP status and a stable machine code so the
exception handlers in `app.middleware.exceptions` can render them without
knowing the individual classes.  Messages only echo identifiers supplied
by the caller, never rows belonging to another tenant.
"""

from fastapi import status


class BrewLotError(Exception):
    """Base exception for lineage engine errors."""

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        error_code: str = "INTERNAL_ERROR",
        details: dict | None = None,
    ):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details
        super().__init__(self.message)


class NotFoundError(BrewLotError):
    """Lot, batch, tank or recipe absent (or owned by another tenant)."""

    def __init__(self, resource: str, identifier: str):
        super().__init__(
            message=f"{resource} not found: {identifier}",
            status_code=status.HTTP_404_NOT_FOUND,
            error_code="RESOURCE_NOT_FOUND",
        )


class InvalidStateError(BrewLotError):
    """Operation attempted on an entity not in an eligible status/phase."""

    def __init__(self, message: str, error_code: str = "INVALID_STATE"):
        super().__init__(
            message=message,
            status_code=status.HTTP_409_CONFLICT,
            error_code=error_code,
        )


class InvalidBatchStatusError(InvalidStateError):
    def __init__(self, batch_number: str, current: str, allowed: tuple[str, ...]):
        super().__init__(
            f"Batch {batch_number} must be {' or '.join(allowed)} (current: {current})",
            error_code="INVALID_BATCH_STATUS",
        )
        self.details = {"batch_number": batch_number, "status": current, "allowed": list(allowed)}


class VolumeExceededError(BrewLotError):
    """Requested volume is larger than the source holds."""

    def __init__(self, requested: float, available: float, message: str | None = None):
        super().__init__(
            message=message or f"Requested {requested:.2f} L exceeds available {available:.2f} L",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            error_code="VOLUME_EXCEEDED",
            details={"requested_volume": requested, "available_volume": available},
        )
        self.requested = requested
        self.available = available


class InsufficientVolumeError(BrewLotError):
    """Packaging request larger than the lot's remaining volume."""

    def __init__(self, available_volume: float, requested_volume: float):
        super().__init__(
            message=f"Insufficient volume. Available: {available_volume:.1f} L",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            error_code="INSUFFICIENT_VOLUME",
            details={
                "available_volume": available_volume,
                "requested_volume": requested_volume,
            },
        )
        self.available_volume = available_volume
        self.requested_volume = requested_volume


class IncompatibleBlendError(BrewLotError):
    def __init__(self, reasons: list[str]):
        super().__init__(
            message="Blend rejected by compatibility policy: " + "; ".join(reasons),
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            error_code="INCOMPATIBLE_BLEND",
            details={"reasons": reasons},
        )
        self.reasons = reasons


class ConflictError(BrewLotError):
    """A concurrent writer changed a row this transaction also changed.

    Retryable: the caller may reload and resubmit.
    """

    def __init__(self, entity: str, identifier: str):
        super().__init__(
            message=f"{entity} {identifier} was modified concurrently, retry the request",
            status_code=status.HTTP_409_CONFLICT,
            error_code="CONFLICT",
            details={"retryable": True},
        )


class ValidationError(BrewLotError):
    """Malformed input that passed schema validation (e.g. duplicate suffixes)."""

    def __init__(self, message: str):
        super().__init__(
            message=message,
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            error_code="VALIDATION_ERROR",
        )
