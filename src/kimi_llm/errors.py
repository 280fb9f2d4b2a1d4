"""Package specific exception hierarchy."""


class KimiLLMError(Exception):
    """Base exception for kimi_llm package."""


class AuthError(KimiLLMError):
    """Raised when no usable API key can be resolved."""


class CredentialNotFound(AuthError):
    """Raised when neither the environment nor secure storage holds a key."""

    def __init__(self, api_url: str) -> None:
        super().__init__(f"credentials not found for {api_url}")
        self.api_url = api_url


class EnvParseFailure(AuthError):
    """Raised when the API key environment variable holds an unusable value."""

    def __init__(self, var_name: str) -> None:
        super().__init__(f"environment variable {var_name} does not hold a usable API key")
        self.var_name = var_name


class SecretStoreError(AuthError):
    """Raised when secure storage cannot be read or written."""

    def __init__(self, action: str, api_url: str, reason: object) -> None:
        super().__init__(f"could not {action} credentials for {api_url}: {reason}")
        self.api_url = api_url


class TransportError(KimiLLMError):
    """Network failure talking to the API. Callers may retry these."""

    retryable = True


class ConnectFailed(TransportError):
    """Raised when the connection to the API cannot be established."""


class LowSpeedTimeout(TransportError):
    """Raised when the response stream stalls longer than the low-speed timeout."""


class Disconnected(TransportError):
    """Raised when the connection drops in the middle of a response."""


class ProviderError(TransportError):
    """Represents provider-specific HTTP or API errors."""

    def __init__(self, provider: str, message: str, status_code: int | None = None) -> None:
        suffix = f" (status {status_code})" if status_code is not None else ""
        super().__init__(f"{provider}: {message}{suffix}")
        self.provider = provider
        self.status_code = status_code
        self.retryable = status_code is not None and (status_code == 429 or status_code >= 500)


class ProtocolError(KimiLLMError):
    """Raised when the event stream cannot be interpreted."""


class MalformedEvent(ProtocolError):
    """Raised for a server-sent event whose payload is not valid JSON."""

    def __init__(self, data: str) -> None:
        preview = data if len(data) <= 80 else data[:77] + "..."
        super().__init__(f"malformed stream event: {preview!r}")
        self.data = data


class IncompleteToolCall(ProtocolError):
    """Raised when a stream ends before the tool arguments form complete JSON."""

    def __init__(self, tool_name: str, buffered: str) -> None:
        super().__init__(f"stream ended before arguments for tool '{tool_name}' were complete")
        self.tool_name = tool_name
        self.buffered = buffered


class AdmissionError(KimiLLMError):
    """Raised to callers waiting on a request limiter that has been closed."""


class UnknownModelError(KimiLLMError):
    """Raised when a model id is not in the provider's catalog."""

    def __init__(self, model_id: str) -> None:
        super().__init__(f"Model '{model_id}' is not available.")
        self.model_id = model_id
