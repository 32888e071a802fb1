"""
Exception hierarchy for the checkout and subscription services.

Services raise these instead of HTTPException so they stay usable outside a
request; a single handler registered in app.main renders them as
{"error": {"code", "message", "details"}} with the matching HTTP status.
"""
from typing import Any, Dict, Optional

from fastapi import status


class BillingError(Exception):
    """
    Base class for every recoverable checkout/subscription error.
    """

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    error_code: str = "BILLING_ERROR"

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None,
    ):
        self.message = message
        self.details = details or {}
        if error_code:
            self.error_code = error_code
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to the API error body."""
        return {
            "error": {
                "code": self.error_code,
                "message": self.message,
                "details": self.details,
            }
        }


class NotFoundError(BillingError):
    """Plan, session, promo code or subscription does not exist."""

    status_code = status.HTTP_404_NOT_FOUND
    error_code = "NOT_FOUND"

    def __init__(self, resource: str, resource_id: Any = None):
        details = {"resource": resource}
        if resource_id is not None:
            details["resource_id"] = str(resource_id)
        super().__init__(f"{resource} not found", details=details)


class ForbiddenError(BillingError):
    """The resource belongs to a different user."""

    status_code = status.HTTP_403_FORBIDDEN
    error_code = "FORBIDDEN"


class ConflictError(BillingError):
    """The operation clashes with the current state (e.g. already completed)."""

    status_code = status.HTTP_409_CONFLICT
    error_code = "CONFLICT"


class InvalidTransitionError(ConflictError):
    """
    Raised by the status state machines on an illegal move.
    """

    error_code = "INVALID_TRANSITION"

    def __init__(self, entity: str, current: str, target: str):
        super().__init__(
            f"{entity} cannot move from '{current}' to '{target}'",
            details={"entity": entity, "from": current, "to": target},
        )


class PromoCodeExhaustedError(ConflictError):
    """The promo code on the session hit its usage limit before checkout completed."""

    error_code = "PROMO_CODE_EXHAUSTED"

    def __init__(self, promo_code_id: int):
        super().__init__(
            "Promo code usage limit has been reached; remove it and try again",
            details={"promo_code_id": promo_code_id},
        )


class SessionExpiredError(BillingError):
    """The checkout session is past its TTL; the caller must start a new one."""

    status_code = status.HTTP_410_GONE
    error_code = "EXPIRED"

    def __init__(self, session_id: str):
        super().__init__(
            "Checkout session has expired",
            details={"session_id": str(session_id)},
        )


class BillingValidationError(BillingError):
    """A business rule rejected the input."""

    status_code = status.HTTP_400_BAD_REQUEST
    error_code = "VALIDATION_ERROR"


class PlanUnavailableError(BillingValidationError):
    error_code = "PLAN_UNAVAILABLE"

    def __init__(self, plan_id: Any):
        super().__init__(
            "This plan is no longer available",
            details={"plan_id": str(plan_id)},
        )


class PromoCodeRejectedError(BillingValidationError):
    """
    A promo code failed one of the rule-engine checks.

    details["reason"] carries the machine-readable reason so clients can
    pick their own wording.
    """

    error_code = "PROMO_CODE_REJECTED"

    def __init__(self, reason: str, message: str, code: Optional[str] = None):
        details = {"reason": reason}
        if code:
            details["code"] = code
        self.reason = reason
        super().__init__(message, details=details)


class PaymentMethodRequiredError(BillingValidationError):
    error_code = "PAYMENT_METHOD_REQUIRED"

    def __init__(self):
        super().__init__("A payment method is required for paid plans")


class PaymentFailedError(BillingError):
    """
    The gateway declined the charge or did not answer in time.

    The checkout session stays pending and can be retried.
    """

    status_code = status.HTTP_402_PAYMENT_REQUIRED
    error_code = "PAYMENT_FAILED"
