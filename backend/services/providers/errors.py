from enum import Enum


class ErrorCode(str, Enum):
    NOT_CONFIGURED = "NOT_CONFIGURED"
    RATE_LIMITED = "RATE_LIMITED"
    QUOTA_EXCEEDED = "QUOTA_EXCEEDED"
    INVALID_KEY = "INVALID_KEY"
    CONTENT_BLOCKED = "CONTENT_BLOCKED"
    NETWORK_ERROR = "NETWORK_ERROR"
    API_ERROR = "API_ERROR"
    NO_PROVIDER = "NO_PROVIDER"
    UNKNOWN = "UNKNOWN"


RETRYABLE_CODES = frozenset({ErrorCode.RATE_LIMITED, ErrorCode.NETWORK_ERROR})

# HTTP status the API layer answers with for each code
HTTP_STATUS = {
    ErrorCode.NOT_CONFIGURED: 503,
    ErrorCode.RATE_LIMITED: 429,
    ErrorCode.QUOTA_EXCEEDED: 402,
    ErrorCode.INVALID_KEY: 401,
    ErrorCode.CONTENT_BLOCKED: 422,
    ErrorCode.NETWORK_ERROR: 503,
    ErrorCode.API_ERROR: 502,
    ErrorCode.NO_PROVIDER: 503,
    ErrorCode.UNKNOWN: 500,
}

_DEFAULT_MESSAGES = {
    ErrorCode.RATE_LIMITED: "Rate limit exceeded",
    ErrorCode.QUOTA_EXCEEDED: "API quota exceeded",
    ErrorCode.INVALID_KEY: "Invalid API key",
    ErrorCode.CONTENT_BLOCKED: "Content was blocked by safety filters",
    ErrorCode.NETWORK_ERROR: "Network error - please try again",
}


class ProviderError(Exception):
    """Structured failure raised at the provider boundary.

    ``retryable`` defaults to the taxonomy row for ``code``; the router only
    falls back on errors where it is true.
    """

    def __init__(
        self,
        message: str,
        provider: str,
        code: ErrorCode = ErrorCode.UNKNOWN,
        retryable: bool | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.provider = provider
        self.code = ErrorCode(code)
        self.retryable = self.code in RETRYABLE_CODES if retryable is None else retryable

    @property
    def status_code(self) -> int:
        return HTTP_STATUS[self.code]

    def to_dict(self) -> dict:
        return {
            "code": self.code.value,
            "message": self.message,
            "provider": self.provider,
            "retryable": self.retryable,
        }

    def __repr__(self) -> str:
        return (
            f"ProviderError(provider={self.provider!r}, code={self.code.value}, "
            f"retryable={self.retryable}, message={self.message!r})"
        )


def classify_status(status_code: int | None) -> ErrorCode:
    """Map an HTTP status reported by a vendor SDK to an error code."""
    if status_code == 429:
        return ErrorCode.RATE_LIMITED
    if status_code == 401:
        return ErrorCode.INVALID_KEY
    if status_code == 403:
        return ErrorCode.QUOTA_EXCEEDED
    if status_code == 408 or (status_code is not None and status_code >= 500):
        return ErrorCode.NETWORK_ERROR
    return ErrorCode.API_ERROR


def error_for(code: ErrorCode, provider: str, detail: str = "") -> ProviderError:
    """Build a ProviderError with the canonical message for ``code``.

    Only API_ERROR keeps the vendor's ``detail`` text.
    """
    if code == ErrorCode.API_ERROR:
        message = f"{provider} API error: {detail}" if detail else f"{provider} API error"
    else:
        message = _DEFAULT_MESSAGES.get(code, "An unexpected error occurred")
    return ProviderError(message, provider, code)
