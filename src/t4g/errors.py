"""Domain error taxonomy.

Services raise these; ``t4g.middleware.error_handler`` maps each one to a
status code and a stable ``code`` string for clients.
"""

from __future__ import annotations

from typing import Any


class DomainError(Exception):
    """Base class for every business-rule failure."""

    status_code: int = 400
    code: str = "domain_error"
    default_message: str = "Request rejected"

    def __init__(self, message: str | None = None, **extra: Any) -> None:  # noqa: ANN401
        self.message = message or self.default_message
        self.extra = extra
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        return {"detail": self.message, "code": self.code, **self.extra}


class InvalidCoordinate(DomainError):
    status_code = 400
    code = "invalid_coordinate"
    default_message = "Invalid coordinates provided"


class InvalidInput(DomainError):
    status_code = 400
    code = "invalid_input"
    default_message = "Invalid input"


class RateLimited(DomainError):
    status_code = 429
    code = "rate_limited"

    def __init__(self, scope: str, message: str | None = None) -> None:
        super().__init__(message or f"Rate limit reached for {scope}", scope=scope)
        self.scope = scope


class CooldownActive(DomainError):
    status_code = 429
    code = "cooldown_active"

    def __init__(self, remaining_seconds: int) -> None:
        super().__init__(
            f"Please wait {remaining_seconds}s before trying again",
            retry_after=remaining_seconds,
        )
        self.remaining_seconds = remaining_seconds


class NotFound(DomainError):
    status_code = 404
    code = "not_found"
    default_message = "Not found"


class Inactive(DomainError):
    status_code = 409
    code = "inactive"
    default_message = "Resource is not active"


class Expired(DomainError):
    status_code = 410
    code = "expired"
    default_message = "Resource has expired"


class OutOfRange(DomainError):
    status_code = 400
    code = "out_of_range"

    def __init__(self, distance_m: float, radius_m: float) -> None:
        super().__init__(
            f"You must be within {radius_m:g}m of the NFC tag to scan it. "
            f"Current distance: {round(distance_m)}m",
            distance_m=round(distance_m, 1),
            radius_m=radius_m,
        )


class SoldOut(DomainError):
    status_code = 409
    code = "sold_out"
    default_message = "Token is sold out"


class AlreadyClaimed(DomainError):
    status_code = 409
    code = "already_claimed"
    default_message = "Token already claimed"


class AlreadyRedeemed(DomainError):
    status_code = 409
    code = "already_redeemed"
    default_message = "Claim already redeemed"


class AlreadyParticipating(DomainError):
    status_code = 409
    code = "already_participating"
    default_message = "Already participating in this challenge"


class InsufficientPoints(DomainError):
    status_code = 402
    code = "insufficient_points"

    def __init__(self, balance: int, required: int) -> None:
        super().__init__(
            f"Insufficient points: {balance} available, {required} required",
            balance=balance,
            required=required,
        )


class Forbidden(DomainError):
    status_code = 403
    code = "forbidden"
    default_message = "Forbidden"


class TransientFailure(DomainError):
    status_code = 503
    code = "transient_failure"
    default_message = "Temporary failure, please retry"
