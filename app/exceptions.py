"""Typed errors raised by the service layer and mapped to responses in main.py."""

import enum


class AuthFailure(str, enum.Enum):
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"


class AuthorizationError(Exception):
    """Base for guard failures. `kind` tells callers which response to send."""

    kind: AuthFailure

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class Unauthorized(AuthorizationError):
    """No valid principal."""

    kind = AuthFailure.UNAUTHORIZED

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message)


class Forbidden(AuthorizationError):
    """Valid principal with insufficient privilege or scope."""

    kind = AuthFailure.FORBIDDEN

    def __init__(self, message: str = "Insufficient permissions"):
        super().__init__(message)


class NotFoundError(Exception):
    def __init__(self, entity: str, entity_id: object = None):
        message = f"{entity} not found"
        if entity_id is not None:
            message = f"{entity} {entity_id} not found"
        super().__init__(message)
        self.entity = entity
        self.message = message


class ConflictError(Exception):
    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(Exception):
    """A well-formed request that names an unusable target."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class AuthenticationError(Exception):
    """Login failed: unknown email, wrong password or inactive account."""

    def __init__(self, message: str = "Invalid email or password"):
        super().__init__(message)
        self.message = message


class TicketNumberExhaustedError(RuntimeError):
    pass
