class HintcoreException(Exception):
    """Base exception for the group API.

    ``code`` is a stable machine-readable tag returned next to the message so
    clients can tell "retry" apart from "take a different action".
    """

    default_code = "ERROR"

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code


class ValidationException(HintcoreException):
    """Raised for missing or malformed input and business rule violations"""

    default_code = "VALIDATION_ERROR"


class UnauthorizedException(HintcoreException):
    """Raised when no credentials were supplied"""

    default_code = "UNAUTHORIZED"


class ForbiddenException(HintcoreException):
    """Raised when the caller is authenticated but not allowed to act"""

    default_code = "FORBIDDEN"


class NotFoundException(HintcoreException):
    """Raised when resource not found (or not visible to the caller's group)"""

    default_code = "NOT_FOUND"


class ConflictException(HintcoreException):
    """Raised when a unique field is already taken"""

    default_code = "CONFLICT"


class JoinCodeTakenException(ConflictException):
    """Raised when a freshly drawn join code lost a race to another group"""

    default_code = "JOIN_CODE_TAKEN"


class TransactionException(HintcoreException):
    """Raised when a multi-write operation failed and was rolled back"""

    default_code = "TRANSACTION_FAILED"


class TokenInvalidException(ForbiddenException):
    default_code = "TOKEN_INVALID"


class TokenExpiredException(ForbiddenException):
    default_code = "TOKEN_EXPIRED"


class OTPNotFoundException(ValidationException):
    default_code = "OTP_NOT_FOUND"


class OTPExpiredException(ValidationException):
    default_code = "OTP_EXPIRED"


class OTPInvalidException(ValidationException):
    default_code = "OTP_INVALID"
