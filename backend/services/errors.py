class PricingError(Exception):
    """
    Base class for business errors raised by the pricing services.

    Carries the HTTP status the route layer should answer with and the exact
    human-readable message shown to the shopper.
    """
    status_code = 400

    def __init__(self, message: str, status_code: int = None, payload: dict = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.payload = payload or {}

    def to_dict(self) -> dict:
        body = dict(self.payload)
        body["message"] = self.message
        return body


class ValidationError(PricingError):
    status_code = 400


class NotFound(PricingError):
    status_code = 404


class CouponRejected(PricingError):
    """Raised when a coupon evaluates to any state other than VALID."""

    def __init__(self, evaluation):
        super().__init__(
            evaluation.message,
            status_code=evaluation.http_status,
            payload={"state": evaluation.state.value},
        )
        self.evaluation = evaluation
