from __future__ import annotations


class AppError(Exception):
    """Base error for expected failures."""

    def __init__(self, message: str, *, http_status: int = 400):
        super().__init__(message)
        self.message = message
        self.http_status = http_status


class AuthError(AppError):
    """Missing, malformed, unsigned or expired credentials."""

    def __init__(self, message: str = "unauthorized"):
        super().__init__(message, http_status=401)


class InvalidSignatureError(AuthError):
    def __init__(self, message: str = "invalid token signature"):
        super().__init__(message)


class TokenExpiredError(AuthError):
    def __init__(self, message: str = "token expired"):
        super().__init__(message)


class ForbiddenError(AppError):
    def __init__(self, message: str = "forbidden"):
        super().__init__(message, http_status=403)


class NotFoundError(AppError):
    def __init__(self, message: str = "not found"):
        super().__init__(message, http_status=404)


class ConflictError(AppError):
    def __init__(self, message: str = "conflict"):
        super().__init__(message, http_status=409)


class ValidationError(AppError):
    def __init__(self, message: str = "validation failed"):
        super().__init__(message, http_status=422)


class StorageError(AppError):
    """Override store or audit sink could not be reached."""

    def __init__(self, message: str = "storage unavailable"):
        super().__init__(message, http_status=503)
