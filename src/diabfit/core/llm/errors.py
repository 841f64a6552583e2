"""Vision analysis errors.

Every failure of a meal-photo analysis is a :class:`VisionError` with a
stable ``kind`` string (used in tool responses) and a user-facing message.
"""

from __future__ import annotations


class VisionError(Exception):
    """Base class for vision analysis failures."""

    kind = "unknown_error"
    default_message = "Vision analysis failed. Please try again."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict[str, str]:
        return {"status": "error", "error": self.kind, "message": self.message}


class InvalidImageError(VisionError):
    kind = "invalid_image"
    default_message = "Failed to process the image. Please try with a different image."


class NetworkError(VisionError):
    kind = "network_error"
    default_message = "Network error occurred. Please check your internet connection."


class InvalidResponseError(VisionError):
    kind = "invalid_response"
    default_message = "Invalid response from the vision model. Please try again."


class APIError(VisionError):
    kind = "api_error"
    default_message = "The vision API returned an error."


class RateLimitError(APIError):
    kind = "rate_limit_exceeded"
    default_message = "Rate limit exceeded. Please wait a moment before trying again."


class InvalidAPIKeyError(APIError):
    kind = "invalid_api_key"
    default_message = "Invalid API key. Please check your vision provider configuration."


class APINotConfiguredError(APIError):
    kind = "api_not_configured"
    default_message = "Vision API key not configured. Please check your configuration."


class InvalidRequestError(APIError):
    kind = "invalid_request"

    def __init__(self, detail: str = "Unknown API error") -> None:
        self.detail = detail
        super().__init__(f"Invalid request: {detail}")


class ServerError(APIError):
    kind = "server_error"
    default_message = "Vision provider server error. Please try again later."


class UnknownAPIError(APIError):
    kind = "unknown_error"

    def __init__(self, status_code: int) -> None:
        self.status_code = status_code
        super().__init__(f"Unknown error occurred (Code: {status_code}). Please try again.")


class DecodingError(VisionError):
    kind = "decoding_error"

    def __init__(self, detail: str) -> None:
        self.detail = detail
        super().__init__(f"Failed to parse analysis result: {detail}")


class InvalidAnalysisDataError(VisionError):
    kind = "invalid_analysis_data"

    def __init__(self, detail: str) -> None:
        self.detail = detail
        super().__init__(f"Invalid analysis data: {detail}")


def error_for_status(status_code: int, detail: str = "") -> APIError:
    """Map an HTTP status from the vision API to the matching error."""
    if status_code == 400:
        return InvalidRequestError(detail or "Unknown API error")
    if status_code == 401:
        return InvalidAPIKeyError()
    if status_code == 429:
        return RateLimitError()
    if 500 <= status_code <= 599:
        return ServerError()
    return UnknownAPIError(status_code)
