"""Domain error codes for the classroom module."""

from dataclasses import dataclass
from enum import Enum


class ErrorCode(Enum):
    """Domain error codes."""

    AUTHENTICATION_REQUIRED = "AUTHENTICATION_REQUIRED"
    UNAUTHORIZED = "UNAUTHORIZED"
    SESSION_NOT_FOUND = "SESSION_NOT_FOUND"
    REQUEST_NOT_FOUND = "REQUEST_NOT_FOUND"
    CONFLICT = "CONFLICT"
    INVALID_TRANSITION = "INVALID_TRANSITION"
    ALREADY_FINALIZED = "ALREADY_FINALIZED"
    DUPLICATE_PENDING_REQUEST = "DUPLICATE_PENDING_REQUEST"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_ID = "INVALID_ID"


@dataclass(frozen=True)
class DomainError(Exception):
    """Base domain error with code and user-safe message."""

    code: ErrorCode
    message: str

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"


class AuthenticationRequiredError(DomainError):
    """Raised when a call carries no resolvable identity."""

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(code=ErrorCode.AUTHENTICATION_REQUIRED, message=message)


class UnauthorizedError(DomainError):
    """Raised when the actor's role is not permitted at this stage."""

    def __init__(self, message: str) -> None:
        super().__init__(code=ErrorCode.UNAUTHORIZED, message=message)


class SessionNotFoundError(DomainError):
    """Raised when a session does not exist."""

    def __init__(self, session_id: str) -> None:
        super().__init__(code=ErrorCode.SESSION_NOT_FOUND, message="Session not found")
        self.session_id = session_id


class RequestNotFoundError(DomainError):
    """Raised when an approval request does not exist or is no longer pending."""

    def __init__(self, message: str = "Request not found") -> None:
        super().__init__(code=ErrorCode.REQUEST_NOT_FOUND, message=message)


class ConflictError(DomainError):
    """Raised when the current state does not allow the attempted operation."""

    def __init__(self, message: str, code: ErrorCode = ErrorCode.CONFLICT) -> None:
        super().__init__(code=code, message=message)


class InvalidTransitionError(ConflictError):
    """Raised when a session status edge is not allowed."""

    def __init__(self, current: str, target: str) -> None:
        super().__init__(
            message=f'Cannot move session from "{current}" to "{target}"',
            code=ErrorCode.INVALID_TRANSITION,
        )


class AlreadyFinalizedError(ConflictError):
    """Raised when acting on a request that is already approved or rejected."""

    def __init__(self) -> None:
        super().__init__(message="Request already finalized", code=ErrorCode.ALREADY_FINALIZED)


class DuplicatePendingRequestError(ConflictError):
    """Raised when an equivalent request is already awaiting a decision."""

    def __init__(self, message: str) -> None:
        super().__init__(message=message, code=ErrorCode.DUPLICATE_PENDING_REQUEST)


class ValidationError(DomainError):
    """Raised when a required field is missing or invalid."""

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(code=ErrorCode.VALIDATION_ERROR, message=message)
        self.field = field


class InvalidIdError(ValidationError):
    """Raised when a session or request ID is malformed."""

    def __init__(self, field: str = "id") -> None:
        super().__init__(message="Invalid ID format", field=field)
        object.__setattr__(self, "code", ErrorCode.INVALID_ID)
