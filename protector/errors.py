"""Exceptions that map straight onto JSON error responses."""


class ProtectorError(Exception):
    status_code = 500
    message = "Internal error"

    def __init__(self, message=None, **extra):
        super().__init__(message or self.message)
        if message:
            self.message = message
        self.extra = extra

    def to_dict(self):
        body = {"error": self.message}
        body.update(self.extra)
        return body


class ValidationError(ProtectorError):
    status_code = 400
    message = "Bad request"


class AuthError(ProtectorError):
    status_code = 401
    message = "invalid signature"


class NotFoundError(ProtectorError):
    status_code = 404
    message = "Not found"


class MethodNotAllowed(ProtectorError):
    status_code = 405
    message = "Method not allowed"


class PayloadTooLarge(ProtectorError):
    status_code = 413
    message = "Payload too large"


class RateLimited(ProtectorError):
    status_code = 429
    message = "Too many requests"

    def __init__(self, reason, message=None):
        super().__init__(message, reason=reason)
        self.reason = reason


class InternalError(ProtectorError):
    """Server-side failure. The detail is for logs; clients see the generic message."""

    status_code = 500
    message = "Internal error"

    def __init__(self, detail=None, **extra):
        super().__init__(None, **extra)
        self.detail = detail or self.message

    def __str__(self):
        return self.detail


class UpstreamError(InternalError):
    pass


class DecryptionError(InternalError):
    pass


class StoreError(UpstreamError):
    message = "Record store error"
