"""Exception types shared across flowdesk.

The HTTP and MCP surfaces map each FlowdeskError subclass onto a status
code; everything else is treated as an internal failure.
"""

from __future__ import annotations


class FlowdeskError(Exception):
    """Base class for errors that carry a user-facing message."""

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(FlowdeskError):
    """A required field is missing or malformed in a request."""

    status_code = 400


class NotFoundError(FlowdeskError):
    """A session, task, notification, or plan does not exist."""

    status_code = 404


class ConflictError(FlowdeskError):
    """An active session already exists for the requested task."""

    status_code = 409

    def __init__(self, message: str, existing_session_id: str) -> None:
        super().__init__(message)
        self.existing_session_id = existing_session_id


class UpstreamError(FlowdeskError):
    """GitHub, Jira, Slack, or Calendar could not be reached or refused the call."""

    status_code = 502


class ExtractionError(Exception):
    """No parseable JSON object could be located in model output."""


class LLMError(Exception):
    """The language model call failed after retries."""
