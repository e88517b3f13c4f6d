"""Service-level errors, rendered to JSON by the handler in main.py."""


class ServiceError(Exception):
    """Base error carrying a user-safe message and an HTTP status."""

    status_code = 500
    error = "Internal server error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(ServiceError):
    status_code = 404
    error = "Not found"


class CapacityExhaustedError(ServiceError):
    status_code = 400
    error = "Capacity exhausted"


class PaymentProviderNotConfigured(ServiceError):
    status_code = 500
    error = "Payment provider not configured"

    def __init__(self, message: str = "Stripe not configured"):
        super().__init__(message)


class PaymentProviderError(ServiceError):
    status_code = 502
    error = "Payment provider error"
