"""Exceptions raised by provider clients and the sync engine."""


class SyncError(Exception):
    """Base exception for sync engine errors."""

    pass


class AuthConfigurationError(SyncError):
    """Provider credentials or secrets are not configured."""

    pass


class RateLimitError(SyncError):
    """Provider asked the caller to stop and retry later."""

    def __init__(self, message: str, retry_after: float | None = None):
        super().__init__(message)
        self.retry_after = retry_after


class TransientNetworkError(SyncError):
    """Transport failure or server error that persisted through retries."""

    pass


class ProviderAPIError(SyncError):
    """Non-retryable error response from a provider API."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class PayloadValidationError(SyncError):
    """Inbound payload rejected at the boundary (bad signature or JSON)."""

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


class SyncStateConflictError(SyncError):
    """Another writer advanced the provider's sync state first."""

    pass
