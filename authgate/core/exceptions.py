"""Custom application exceptions."""


class AppException(Exception):
    """Base application exception."""

    def __init__(self, message: str, status_code: int = 500):
        """Initialize exception with message and status code."""
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)


class NotFoundException(AppException):
    """Resource not found exception."""

    def __init__(self, message: str = "Resource not found"):
        """Initialize with 404 status code."""
        super().__init__(message, status_code=404)


class UnauthorizedException(AppException):
    """Unauthorized access exception."""

    def __init__(self, message: str = "Unauthorized"):
        """Initialize with 401 status code."""
        super().__init__(message, status_code=401)


class BadRequestException(AppException):
    """Bad request exception."""

    def __init__(self, message: str = "Bad request"):
        """Initialize with 400 status code."""
        super().__init__(message, status_code=400)


class ConflictException(AppException):
    """Conflict exception."""

    def __init__(self, message: str = "Conflict"):
        """Initialize with 409 status code."""
        super().__init__(message, status_code=409)


class ValidationException(AppException):
    """Validation error exception."""

    def __init__(self, message: str = "Validation error", details: list | None = None):
        """Initialize with 400 status code and the violated constraints."""
        super().__init__(message, status_code=400)
        self.details = details or []


class InvalidOTPException(BadRequestException):
    """One-time passcode rejected (wrong, expired, used or locked)."""

    def __init__(self, message: str = "Invalid or expired OTP"):
        """Initialize with 400 status code."""
        super().__init__(message)


class DeliveryException(AppException):
    """Notification could not be delivered."""

    def __init__(self, message: str = "Failed to send verification email"):
        """Initialize with 500 status code."""
        super().__init__(message, status_code=500)


class RateLimitException(AppException):
    """Rate limit exceeded exception."""

    def __init__(self, message: str = "Rate limit exceeded"):
        """Initialize with 429 status code."""
        super().__init__(message, status_code=429)


class TokenError(Exception):
    """Session or verification token could not be accepted."""


class InvalidTokenError(TokenError):
    """Bad signature, malformed structure or unexpected claims."""


class TokenExpiredError(TokenError):
    """Token signature is valid but its expiry has passed."""
