from typing import Optional


class DmmCacheError(Exception):
    """Base exception for errors surfaced to API clients."""

    status_code = 500
    error = "Internal error"

    def __init__(self, message: str, display_message: str = None):
        self.message = message
        self.display_message = display_message or message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"error": self.error, "errorMessage": self.display_message}


class AuthError(DmmCacheError):
    """Missing or wrong problem key / solution pair."""

    status_code = 403
    error = "Authentication error"

    def __init__(self, message: str = "Authentication error"):
        super().__init__(message)


class RateLimited(DmmCacheError):
    status_code = 429
    error = "Too many requests"

    def __init__(self, retry_after: int, limit: int, remaining: int = 0):
        self.retry_after = retry_after
        self.limit = limit
        self.remaining = remaining
        super().__init__(
            f"Rate limit exceeded, retry in {retry_after}s",
            "Too many requests. Please try again later.",
        )

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["retryAfter"] = self.retry_after
        return data


class ValidationError(DmmCacheError):
    status_code = 400
    error = "Invalid request"

    def __init__(self, message: str, **detail):
        self.detail = detail
        super().__init__(message)

    def to_dict(self) -> dict:
        data = super().to_dict()
        data.update(self.detail)
        return data


class StoreUnavailable(DmmCacheError):
    """The availability store could not be reached or is not configured."""

    status_code = 503
    error = "Store unavailable"


class UpstreamError(DmmCacheError):
    """An upstream API answered with a non-success status."""

    status_code = 502
    error = "Upstream error"

    def __init__(self, status: int, body, message: Optional[str] = None):
        self.status = status
        self.body = body
        super().__init__(message or f"Upstream responded with status {status}")

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["status"] = self.status
        return data


class UpstreamRateLimited(UpstreamError):
    status_code = 429
    error = "Upstream rate limited"

    def __init__(self, body=None, retry_after: Optional[str] = None):
        self.retry_after = retry_after
        super().__init__(429, body, "Upstream rate limit exceeded")


class UpstreamAuthExpired(UpstreamError):
    status_code = 401
    error = "Upstream authentication expired"

    def __init__(self, body=None, status: int = 401):
        super().__init__(status, body, "Upstream access token expired or invalid")


class ReauthenticationRequired(UpstreamAuthExpired):
    """Authentication failed again after a refresh, the user must log in."""

    error = "Re-authentication required"


class MalformedPayload(UpstreamError):
    error = "Malformed upstream payload"

    def __init__(self, status: int, body, reason: str):
        super().__init__(status, body, f"Upstream payload rejected: {reason}")


class NetworkError(DmmCacheError):
    """Timeout or connection failure talking to an upstream."""

    status_code = 504
    error = "Network error"


class MissingCredential(DmmCacheError):
    """A proxied upstream call needs a Bearer token and none was sent."""

    status_code = 401
    error = "Missing access token"

    def __init__(self, message: str = "Authorization header with a Bearer token is required"):
        super().__init__(message)
