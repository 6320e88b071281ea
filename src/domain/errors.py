"""
Service error taxonomy.

Every error carries the HTTP status it maps to; the API layer renders
any ``ServiceError`` as ``{"detail": message}`` with that status.
"""


class ServiceError(Exception):
    status_code = 500

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message or self.__class__.__name__


class ValidationError(ServiceError):
    status_code = 400


class Unauthorized(ServiceError):
    status_code = 401


class Forbidden(ServiceError):
    status_code = 403


class NotFound(ServiceError):
    status_code = 404


class Conflict(ServiceError):
    status_code = 409


class InvalidState(Conflict):
    """An entity is not in a state that allows the requested transition."""


class Internal(ServiceError):
    status_code = 500


class GatewayError(Internal):
    """The payment gateway could not be reached or refused the request."""

    status_code = 502
