from typing import Optional

from fastapi import HTTPException, status


class BaseAPIException(HTTPException):
    """Base exception for API errors.
    Ensures clarity and actionable next steps."""

    def __init__(
        self,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail: str = "An unexpected error occurred. Please try again.",
        headers: Optional[dict] = None,
    ):
        super().__init__(status_code=status_code, detail=detail, headers=headers)


# ============== Authentication & Verification ==============


class AuthenticationRequiredException(BaseAPIException):
    """No bearer token on a secured route."""

    def __init__(self, detail: str = "No token provided"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"},
        )


class InvalidTokenException(BaseAPIException):
    """Token present but malformed, tampered with or expired."""

    def __init__(self, detail: str = "Invalid token"):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=detail,
        )


class InvalidCredentialsException(BaseAPIException):
    """Triggered when login fails. Never reveals which half was wrong."""

    def __init__(self, detail: str = "Invalid email or password"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
        )


class AccountNotVerifiedException(BaseAPIException):
    def __init__(
        self,
        detail: str = "Please verify your email before logging in.",
    ):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=detail,
        )


class RateLimitExceededException(BaseAPIException):
    """Resend/forgot-password throttle tripped. Carries a Retry-After hint."""

    def __init__(self, retry_after: int, detail: Optional[str] = None):
        self.retry_after = max(int(retry_after), 1)
        super().__init__(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=detail or f"Please wait {self.retry_after}s before requesting another code.",
            headers={"Retry-After": str(self.retry_after)},
        )


# ============== Users ==============


class UserAlreadyExistsException(BaseAPIException):
    """Prevents duplicate registration by email."""

    def __init__(
        self, detail: str = "An account with this email already exists."
    ):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=detail,
        )


# ============== Staff & Permissions ==============


class PermissionDeniedException(BaseAPIException):
    """Enforces role-based access for employees, IT staff and managers."""

    def __init__(
        self, detail: str = "You do not have the required permissions for this action."
    ):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=detail,
        )


# ============== General Operational Exceptions ==============


class ResourceNotFoundException(BaseAPIException):
    """Generic fallback for missing resources."""

    def __init__(self, detail: str = "The requested information could not be found."):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=detail,
        )


class ValidationFailedException(BaseAPIException):
    """Business-rule validation failure (bad enum value, empty body)."""

    def __init__(self, detail: str = "Invalid input."):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=detail,
        )
