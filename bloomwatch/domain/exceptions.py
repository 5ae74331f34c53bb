"""
Domain exceptions.

Every error carries an HTTP status and a short message suitable for showing
to the user; the global error handler relies on both.
"""
from typing import Optional


class BloomWatchError(Exception):
    """Base class for errors raised by the analysis pipeline."""

    status_code: int = 500
    user_message: str = "The analysis could not be completed"

    def __init__(self, message: str, user_message: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if user_message is not None:
            self.user_message = user_message


class ConfigurationError(BloomWatchError):
    """Required credentials or identifiers are not configured."""

    status_code = 503
    user_message = "The service is not configured for satellite access"


class AuthenticationError(BloomWatchError):
    """No token endpoint produced a usable access token."""

    status_code = 502
    user_message = "Could not authenticate with the imagery service"


class RemoteServiceError(BloomWatchError):
    """The imagery service answered with a non-success status."""

    status_code = 502
    user_message = "The imagery service rejected the request"

    def __init__(
        self,
        message: str,
        remote_status: Optional[int] = None,
        body: str = "",
        user_message: Optional[str] = None,
    ):
        super().__init__(message, user_message=user_message)
        self.remote_status = remote_status
        self.body = body


class ResponseShapeError(RemoteServiceError):
    """A remote response did not match the expected schema."""

    user_message = "The imagery service returned an unexpected response"


class GeometryError(BloomWatchError):
    """A drawn shape cannot be interpreted as a polygon."""

    status_code = 400
    user_message = "The drawn shape is not a valid polygon"


class RecordNotFoundError(BloomWatchError):
    """No analysis with the given id exists in the history."""

    status_code = 404
    user_message = "Analysis not found"

    def __init__(self, record_id: str):
        super().__init__(f"Analysis '{record_id}' not found")
        self.record_id = record_id


class ComparisonError(BloomWatchError):
    """The comparison view has no valid pair of analyses to show."""

    status_code = 409
    user_message = "Select two analyses from the history to compare them"
