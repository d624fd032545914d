"""
Service Errors
Exceptions raised by the business layer and mapped to HTTP responses in app.py
"""


class ServiceError(Exception):
    """Base class for expected business-rule failures"""
    status_code = 500

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ValidationFailed(ServiceError, ValueError):
    status_code = 400


class AuthenticationFailed(ServiceError):
    status_code = 401


class PermissionDenied(ServiceError):
    status_code = 403


class NotFoundError(ServiceError):
    status_code = 404


class ConflictError(ServiceError):
    status_code = 409
