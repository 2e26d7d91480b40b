"""Error types raised by the Cloudflare API client."""

import asyncio
from typing import Optional

AUTH_ERROR_KEYWORDS = (
    "invalid access token",
    "invalid token",
    "expired",
    "authentication",
    "unauthorized",
    "not authorized",
    "invalid credentials",
    "token is invalid",
)

PERMISSION_ERROR_KEYWORDS = (
    "permission",
    "forbidden",
    "access denied",
    "not entitled",
)


def is_auth_failure_message(message: str) -> bool:
    lowered = message.lower()
    return any(keyword in lowered for keyword in AUTH_ERROR_KEYWORDS)


class CloudflareAPIError(Exception):
    """Base exception for Cloudflare API client errors."""

    @property
    def description(self) -> str:
        return str(self)


class NotAuthenticated(CloudflareAPIError):
    """No usable credential, or the API answered 401."""

    def __init__(self) -> None:
        super().__init__(
            "Not authenticated. Add an API token profile or run 'wrangler login'."
        )


class TokenExpired(CloudflareAPIError):
    """The API rejected the token as invalid or expired."""

    def __init__(self, message: str = "") -> None:
        self.message = message
        super().__init__(
            "Your Cloudflare session has expired or the token is invalid. "
            "Run 'wrangler login' again or update the active profile."
        )


class NetworkError(CloudflareAPIError):
    """Transport-level failure: DNS, TLS, timeout, connection reset."""

    def __init__(self, cause: BaseException) -> None:
        self.cause = cause
        detail = str(cause) or type(cause).__name__
        super().__init__(f"Network error: {detail}")


class InvalidResponse(CloudflareAPIError):
    def __init__(self) -> None:
        super().__init__("Invalid response from Cloudflare API")


class ApiError(CloudflareAPIError):
    def __init__(self, message: str) -> None:
        self.message = message or "Unknown error"
        super().__init__(f"API error: {self.message}")


class DecodingError(CloudflareAPIError):
    def __init__(self, cause: BaseException) -> None:
        self.cause = cause
        super().__init__(f"Failed to decode response: {cause}")


class DecodingErrorWithPreview(DecodingError):
    """A response that parsed as JSON (or claimed to) but did not match the schema."""

    def __init__(
        self,
        cause: BaseException,
        preview: str,
        log_path: Optional[str] = None,
    ) -> None:
        super().__init__(cause)
        self.preview = preview
        self.log_path = log_path

    @property
    def description(self) -> str:
        text = f"Failed to decode response: {self.cause}. Response preview: {self.preview}"
        if self.log_path:
            text += f" (diagnostics written to {self.log_path})"
        return text


class UnexpectedContentType(CloudflareAPIError):
    """A success status carrying a non-JSON body, e.g. a captive portal page."""

    def __init__(
        self,
        content_type: Optional[str],
        preview: str,
        log_path: Optional[str] = None,
    ) -> None:
        self.content_type = content_type
        self.preview = preview
        self.log_path = log_path
        super().__init__(
            f"Unexpected content type {content_type or 'unknown'} from Cloudflare API"
        )

    @property
    def description(self) -> str:
        text = (
            f"Unexpected response from Cloudflare API "
            f"(content type: {self.content_type or 'unknown'}). "
            f"A proxy or captive portal may be intercepting requests. "
            f"Response preview: {self.preview}"
        )
        if self.log_path:
            text += f" (diagnostics written to {self.log_path})"
        return text


def describe_error(exc: BaseException) -> str:
    """Translate any error reaching the state boundary into display text."""
    if isinstance(exc, CloudflareAPIError):
        return exc.description
    if isinstance(exc, asyncio.TimeoutError):
        return "The request timed out"
    return str(exc) or type(exc).__name__


USAGE_NO_PERMISSION = (
    "Usage analytics unavailable: the token has no Account Analytics permission"
)
USAGE_NEEDS_SESSION = "Usage analytics require a valid Cloudflare session"
USAGE_UNAVAILABLE = "Usage analytics are currently unavailable"


def usage_error_message(exc: BaseException) -> str:
    """Map a usage fetch failure onto the text shown in the usage widget."""
    detail = exc.message if isinstance(exc, (ApiError, TokenExpired)) else str(exc)
    lowered = detail.lower()
    if any(keyword in lowered for keyword in PERMISSION_ERROR_KEYWORDS):
        return USAGE_NO_PERMISSION
    if isinstance(exc, (NotAuthenticated, TokenExpired)):
        return USAGE_NEEDS_SESSION
    return USAGE_UNAVAILABLE
