"""Typed failures raised by the order services and mapped to HTTP in main.py"""


class LaundryOpsError(Exception):
    status_code = 500

    def __init__(self, detail: str = "Internal server error"):
        super().__init__(detail)
        self.detail = detail


class ValidationError(LaundryOpsError):
    status_code = 400


class InvalidTransition(ValidationError):

    def __init__(self, current, target):
        super().__init__(f"Cannot transition from {current} to {target}")
        self.current = current
        self.target = target


class AuthError(LaundryOpsError):
    status_code = 401


class ForbiddenError(AuthError):
    status_code = 403


class NotFoundOrConflict(LaundryOpsError):
    status_code = 404

    def __init__(self, resource_name: str = "Resource"):
        # Absent, foreign-tenant and lost-CAS cases share one message.
        super().__init__(f"{resource_name} not found or in unexpected state")
        self.resource_name = resource_name


class RetryExhausted(LaundryOpsError):
    status_code = 503

    def __init__(self, attempts: int):
        super().__init__(
            "Unable to create order due to high traffic. Please try again in a moment."
        )
        self.attempts = attempts


class InternalError(LaundryOpsError):
    status_code = 500
