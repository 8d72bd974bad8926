class BookingError(Exception):
    """Base class for errors the booking engine reports to callers.

    Each subclass carries the HTTP status and the machine-readable code the
    API layer renders; ``extra`` is merged into the JSON body.
    """

    status_code = 500
    code = "INTERNAL_ERROR"
    message = "Internal server error"
    retryable = False

    def __init__(self, message=None, retryable=None, **extra):
        super().__init__(message or self.message)
        self.message = message or self.message
        if retryable is not None:
            self.retryable = retryable
        self.extra = extra

    def payload(self) -> dict:
        body = {"success": False, "error": self.message, "code": self.code}
        body.update(self.extra)
        return body


# ---------- validation ----------
class ValidationError(BookingError):
    status_code = 422
    code = "VALIDATION_ERROR"
    message = "Invalid request"


class InvalidAmountError(BookingError):
    status_code = 400
    code = "INVALID_AMOUNT"
    message = "Valid amount is required"


# ---------- not found ----------
class NotFoundError(BookingError):
    status_code = 404
    code = "NOT_FOUND"
    message = "Not found"


# ---------- conflict ----------
class ConflictError(BookingError):
    status_code = 409
    code = "CONFLICT"
    message = "Request conflicts with current state"


class InvalidTransitionError(ConflictError):
    code = "INVALID_STATE_TRANSITION"

    def __init__(self, current: str, target: str, message=None):
        super().__init__(
            message or f"Booking cannot move from {current} to {target}",
            status=current,
        )
        self.current = current
        self.target = target


class CouponExhaustedError(ConflictError):
    code = "COUPON_EXHAUSTED"
    message = "Promo code is no longer available"


class InvalidCouponError(BookingError):
    # One message for every reason so valid codes cannot be enumerated.
    status_code = 400
    code = "INVALID_COUPON"
    message = "Invalid or expired promo code"


# ---------- gating ----------
class UpgradeRequiredError(BookingError):
    status_code = 403
    code = "UPGRADE_REQUIRED"
    message = "This item is available to premium members only"

    def __init__(self, message=None, required_tier="premium", current_tier=None):
        super().__init__(
            message,
            requires_upgrade=True,
            required_tier=required_tier,
            current_tier=current_tier,
        )


# ---------- upstream ----------
class GatewayError(BookingError):
    status_code = 502
    code = "PAYMENT_GATEWAY_ERROR"
    message = "Payment provider unavailable. Please try again."
    retryable = True

    def payload(self) -> dict:
        body = super().payload()
        body["retryable"] = self.retryable
        return body


class PaymentNotSucceededError(GatewayError):
    status_code = 402
    code = "PAYMENT_NOT_SUCCEEDED"
    message = "Payment not successful"


class PaymentRequestError(GatewayError):
    status_code = 400
    code = "PAYMENT_REQUEST_INVALID"
    message = "Invalid payment request"
    retryable = False


# ---------- integrity ----------
class IntegrityViolationError(BookingError):
    status_code = 400
    code = "PAYMENT_INTEGRITY_VIOLATION"
    message = "Payment does not match booking"

    def payload(self) -> dict:
        body = super().payload()
        body["retryable"] = False
        return body
