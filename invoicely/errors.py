"""Error taxonomy and the Result type used at the service boundary.

Handlers raise AppError subclasses; create_app() turns them into JSON
bodies of the form {"error": message, **payload} with the class status code.

Entitlement and reconciliation functions return values instead of raising
for expected outcomes (a denied limit, an already-applied payment), so
callers handle a denial separately from an infrastructure failure. Those
values carry an AppError in ``Result.error`` when the outcome is a failure.
"""

from dataclasses import dataclass, field
from typing import Any, Optional


class AppError(Exception):
    """Base class for errors surfaced to API callers."""

    kind = "internal_error"
    status_code = 500
    default_message = "Something went wrong."

    def __init__(self, message=None, **payload):
        self.message = message or self.default_message
        self.payload = payload
        super().__init__(self.message)

    def to_dict(self):
        body = {"error": self.message, "kind": self.kind}
        body.update(self.payload)
        return body


# --- Request / access ---

class ValidationError(AppError):
    kind = "validation_error"
    status_code = 400
    default_message = "Invalid request."


class Unauthorized(AppError):
    kind = "unauthorized"
    status_code = 401
    default_message = "Unauthorized"


class Forbidden(AppError):
    kind = "forbidden"
    status_code = 403
    default_message = "Forbidden"


class TenantSuspended(Forbidden):
    kind = "tenant_suspended"
    default_message = "Tenant account is suspended."


class NotFound(AppError):
    kind = "not_found"
    status_code = 404
    default_message = "Not found."


class Conflict(AppError):
    kind = "conflict"
    status_code = 409
    default_message = "Conflict."


# --- Entitlements ---

class LimitReached(AppError):
    """Resource limit denial. Payload carries ``limit`` and ``current``."""

    kind = "limit_reached"
    status_code = 403
    default_message = "Plan limit reached. Please upgrade your plan."


class FeatureUnavailable(AppError):
    kind = "feature_unavailable"
    status_code = 403
    default_message = "This feature is not available on your plan. Please upgrade."


# --- Subscription lifecycle ---

class AlreadyOnboarded(AppError):
    kind = "already_onboarded"
    status_code = 400
    default_message = "You already have a company account."


class NoSubscription(AppError):
    kind = "no_subscription"
    status_code = 404
    default_message = "No subscription found."


class AlreadyCanceled(AppError):
    kind = "already_canceled"
    status_code = 400
    default_message = "Subscription is already canceled."


class NotScheduledForCancellation(AppError):
    kind = "not_scheduled_for_cancellation"
    status_code = 400
    default_message = "Subscription is not scheduled for cancellation."


class UpgradeRejected(AppError):
    kind = "upgrade_rejected"
    status_code = 400
    default_message = (
        "New plan must be an upgrade. Please contact support for downgrades."
    )


class PaymentNotSuccessful(AppError):
    kind = "payment_not_successful"
    status_code = 400
    default_message = "Payment not successful."


# --- Payments / gateway ---

class SignatureInvalid(AppError):
    kind = "signature_invalid"
    status_code = 400
    default_message = "Invalid signature"


class PaymentRecordNotFound(AppError):
    kind = "payment_record_not_found"
    status_code = 404
    default_message = "Payment record not found"


class GatewayError(AppError):
    kind = "gateway_error"
    status_code = 502
    default_message = "Payment provider error."


class GatewayUnreachable(GatewayError):
    """Timeout or transport failure. Local state is untouched; safe to retry."""

    kind = "gateway_unreachable"
    status_code = 502
    default_message = "Could not reach the payment provider. Please try again."


class GatewayReportedFailure(GatewayError):
    """The gateway answered and the transaction did not succeed. Terminal."""

    kind = "gateway_reported_failure"
    status_code = 400
    default_message = "Payment was not successful"


# --- Delivery ---

class DeliveryFailed(AppError):
    kind = "delivery_failed"
    status_code = 502
    default_message = "Message could not be delivered. Please try again."


@dataclass
class Result:
    """Outcome of a boundary operation: a value, or an AppError."""

    value: Any = None
    error: Optional[AppError] = None
    status: str = "ok"
    extra: dict = field(default_factory=dict)

    @property
    def ok(self):
        return self.error is None

    @classmethod
    def success(cls, value=None, status="ok", **extra):
        return cls(value=value, status=status, extra=extra)

    @classmethod
    def failure(cls, error, status="error", **extra):
        return cls(error=error, status=status, extra=extra)

    def unwrap(self):
        """Return the value, or raise the carried error."""
        if self.error is not None:
            raise self.error
        return self.value
