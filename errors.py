from typing import Any, Dict, Optional


class ApiError(Exception):
    """Base error rendered as a JSON envelope with a matching HTTP status."""

    code: str = "INTERNAL_ERROR"
    status: int = 500
    status_message: str = "An unexpected error occurred. Please try again later."

    def __init__(
        self,
        status_message: Optional[str] = None,
        *,
        status: Optional[int] = None,
        extra: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        super().__init__(status_message or self.status_message)
        if status_message:
            self.status_message = status_message
        if status:
            self.status = status
        self.extra = extra or {}
        self.headers = headers or {}

    def to_dict(self) -> Dict[str, Any]:
        body = {"error": self.code, "status_message": self.status_message}
        body.update(self.extra)
        return body


class ApiKeyMissing(ApiError):
    code = "TMDB_API_KEY_MISSING"
    status = 500
    status_message = (
        "TMDB API key is not configured on the server. "
        "Add TMDB_API_KEY to your environment variables and restart."
    )


class MissingEndpoint(ApiError):
    code = "MISSING_ENDPOINT"
    status = 400
    status_message = "Missing endpoint parameter"


class InvalidEndpoint(ApiError):
    code = "INVALID_ENDPOINT"
    status = 400
    status_message = "Invalid endpoint"


class RateLimited(ApiError):
    code = "RATE_LIMITED"
    status = 429
    status_message = "Too many requests. Please try again in a minute."

    def __init__(self, retry_after_seconds: int, status_message: Optional[str] = None):
        super().__init__(
            status_message,
            headers={"Retry-After": str(retry_after_seconds)},
        )
        self.retry_after_seconds = retry_after_seconds


class UpstreamError(ApiError):
    """TMDB answered with a non-2xx status; the status is passed through."""

    code = "TMDB_UPSTREAM_ERROR"

    def __init__(self, upstream_status: int, status_message: Optional[str] = None):
        super().__init__(
            status_message or f"TMDB API error: {upstream_status}",
            status=upstream_status,
            extra={"upstream_status": upstream_status},
        )
        self.upstream_status = upstream_status


class UpstreamRequestFailed(ApiError):
    code = "TMDB_REQUEST_FAILED"
    status = 502
    status_message = "Could not fetch data from TMDB at this time. Please try again later."


class AnalyzerNotConfigured(ApiError):
    code = "OPENAI_API_KEY_MISSING"
    status = 503
    status_message = "AI analysis is not configured on the server."


class InvalidRequest(ApiError):
    code = "INVALID_REQUEST"
    status = 400
    status_message = "Invalid request"


class AnalysisFailed(ApiError):
    code = "ANALYSIS_FAILED"
    status = 500
    status_message = "Failed to analyze content"


class MoodRequired(ApiError):
    code = "MOOD_REQUIRED"
    status = 400
    status_message = "Select your current mood to get recommendations"


class RecommendationError(ApiError):
    """The primary discovery query failed; the client may retry."""

    code = "RECOMMENDATIONS_FAILED"
    status = 502
    status_message = "Couldn't find recommendations. Please try again."

    def __init__(self, status_message: Optional[str] = None):
        super().__init__(status_message, extra={"retryable": True})
