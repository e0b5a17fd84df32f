class AuthError(Exception):
    """Base for failures that map onto a client-facing response."""

    status_code = 500
    code = "SERVER_ERROR"
    message = "Server error"

    def __init__(self, message: str | None = None, code: str | None = None, **extra):
        super().__init__(message or self.message)
        self.message = message or self.message
        if code:
            self.code = code
        # additional response body fields, already in wire (camelCase) form
        self.extra = extra


class ValidationFailed(AuthError):
    status_code = 400
    code = "VALIDATION_ERROR"
    message = "Invalid request"


class Conflict(AuthError):
    status_code = 400
    code = "ALREADY_EXISTS"
    message = "Resource already exists"


class Unauthorized(AuthError):
    status_code = 401
    code = "UNAUTHORIZED"
    message = "Not authorized to access this route"


class EmailNotVerified(Unauthorized):
    code = "EMAIL_NOT_VERIFIED"
    message = "Please verify your email before logging in"


class Forbidden(AuthError):
    status_code = 403
    code = "FORBIDDEN"
    message = "Forbidden"


class NotFound(AuthError):
    status_code = 404
    code = "NOT_FOUND"
    message = "Not found"


class TokenExpired(AuthError):
    """A stored verification secret exists but is past its expiry."""

    status_code = 400
    code = "TOKEN_EXPIRED"
    message = "Token has expired"


class InvalidToken(AuthError):
    """No live verification secret matches the presented value."""

    status_code = 400
    code = "INVALID_TOKEN"
    message = "Invalid or expired token"


class DeliveryFailed(AuthError):
    status_code = 500
    code = "EMAIL_NOT_SENT"
    message = "Email could not be sent"
