"""
Axiom exception hierarchy.

- AxiomError: base for all known errors
- ConfigError: configuration file errors
- StateError: persisted state is unreadable or corrupt
- SyncError: remote sync transport failures
- LLMError: plan generation model call failures
"""
from typing import Optional


class AxiomError(Exception):
    """Base class for all expected Axiom errors.

    Catching this handles every anticipated failure mode.
    """

    def __init__(self, message: str, hint: Optional[str] = None):
        """
        Args:
            message: error description
            hint: suggested action for the user
        """
        super().__init__(message)
        self.message = message
        self.hint = hint

    def get_user_message(self) -> str:
        """Return a user-facing error message."""
        if self.hint:
            return f"{self.message}\nHint: {self.hint}"
        return self.message


class ConfigError(AxiomError):
    """Raised when a configuration file is missing, malformed or invalid."""

    def __init__(self, message: str, config_path: Optional[str] = None):
        hint = f"Check the configuration file: {config_path}" if config_path else "Check the configuration format"
        super().__init__(message, hint)
        self.config_path = config_path


class StateError(AxiomError):
    """Raised when stored application state cannot be loaded.

    Corrupt data must fail loudly at the persistence boundary instead of
    being silently replaced by an empty state.
    """

    def __init__(self, message: str, corrupted_data: Optional[str] = None):
        hint = "The local state file may be corrupt; restore it from an export or a sync pull"
        super().__init__(message, hint)
        self.corrupted_data = corrupted_data


class SyncError(AxiomError):
    """Raised when the remote sync store cannot be reached or rejects a request."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message, hint="Check the sync server URL and your network connection")
        self.status_code = status_code


class LLMError(AxiomError):
    """Base class for plan generation model failures."""

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        model_name: Optional[str] = None,
        endpoint: Optional[str] = None
    ):
        self.provider = provider or "unknown"
        self.model_name = model_name or "unknown"
        self.endpoint = endpoint

        context = f"[{self.provider}/{self.model_name}]"
        super().__init__(f"{context} {message}")
        self.reason = message

    def get_user_message(self) -> str:
        base = f"Model call failed ({self.provider}/{self.model_name}): {self.reason}"
        if self.hint:
            return f"{base}\nHint: {self.hint}"
        return base


class LLMConnectionError(LLMError):
    """The model service could not be reached."""

    def __init__(
        self,
        provider: Optional[str] = None,
        model_name: Optional[str] = None,
        endpoint: Optional[str] = None
    ):
        super().__init__("Could not connect to the model service", provider, model_name, endpoint)
        self.hint = "Check your network connection or the API endpoint configuration"


class LLMAuthError(LLMError):
    """The model service rejected the credentials."""

    def __init__(
        self,
        provider: Optional[str] = None,
        model_name: Optional[str] = None,
        endpoint: Optional[str] = None
    ):
        super().__init__("Model authentication failed", provider, model_name, endpoint)
        self.hint = "Check that the API key is configured correctly"


class LLMTimeoutError(LLMError):
    """The model call exceeded its bounded wait."""

    def __init__(
        self,
        provider: Optional[str] = None,
        model_name: Optional[str] = None,
        endpoint: Optional[str] = None,
        timeout_seconds: Optional[float] = None
    ):
        message = "Model call timed out"
        if timeout_seconds:
            message = f"Model call timed out ({timeout_seconds}s)"
        super().__init__(message, provider, model_name, endpoint)
        self.timeout_seconds = timeout_seconds
        self.hint = "Long plans take a while to generate; try a shorter horizon or retry later"


class LLMRateLimitError(LLMError):
    """The model service is rate limiting requests."""

    def __init__(
        self,
        provider: Optional[str] = None,
        model_name: Optional[str] = None,
        endpoint: Optional[str] = None,
        retry_after: Optional[int] = None
    ):
        super().__init__("Request rate limit exceeded", provider, model_name, endpoint)
        self.retry_after = retry_after
        if retry_after:
            self.hint = f"Retry after {retry_after} seconds"
        else:
            self.hint = "Retry later"
