from typing import Optional


class AppError(Exception):
    """Base class for errors that map onto an HTTP status and a stable error code."""

    def __init__(self, message: str, status_code: int = 500, code: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code


class NotFoundError(AppError):
    def __init__(self, resource: str = "Resource") -> None:
        super().__init__(f"{resource} not found", 404, "NOT_FOUND")


class ValidationError(AppError):
    def __init__(self, message: str) -> None:
        super().__init__(message, 400, "VALIDATION_ERROR")


class UnauthorizedError(AppError):
    def __init__(self, message: str = "Unauthorized") -> None:
        super().__init__(message, 401, "UNAUTHORIZED")


class RateLimitError(AppError):
    def __init__(self) -> None:
        super().__init__("Too many requests, please try again later", 429, "RATE_LIMIT_EXCEEDED")


class ExternalApiError(AppError):
    def __init__(self, provider: str, message: str) -> None:
        super().__init__(f"External API error ({provider}): {message}", 502, "EXTERNAL_API_ERROR")
        self.provider = provider


class DatabaseError(AppError):
    def __init__(self, message: str) -> None:
        super().__init__(f"Database error: {message}", 500, "DATABASE_ERROR")
