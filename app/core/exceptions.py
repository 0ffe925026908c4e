"""Custom exception types for domain and API layers."""


class AppError(Exception):
    """Base app exception."""


class ValidationError(AppError):
    """Malformed subscription or user data."""


class NotFoundError(AppError):
    """Requested record does not exist."""


class IntegrationError(AppError):
    """External provider call failure or missing provider configuration."""

    def __init__(self, provider: str, message: str, status_code: int | None = None):
        super().__init__(f"{provider}: {message}")
        self.provider = provider
        self.status_code = status_code
