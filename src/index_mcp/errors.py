"""Exception types shared across the assessment pipeline."""


class ConfigurationError(RuntimeError):
    """Raised when a required setting (e.g. an API key) is missing.

    This is the only failure surfaced to the caller before a refresh cycle
    starts. Everything downstream degrades to fallback objects instead.
    """

    def __init__(self, message: str, setting: str | None = None):
        super().__init__(message)
        self.setting = setting


class ProviderError(Exception):
    """Raised when an external provider fails or returns unusable data."""

    pass


class ProviderRetryError(ProviderError):
    """Raised when a provider call fails after all retries."""

    def __init__(self, message: str, last_error: Exception | None = None):
        super().__init__(message)
        self.last_error = last_error


class ServiceShuttingDownError(Exception):
    """Raised when the service is shutting down."""

    pass
