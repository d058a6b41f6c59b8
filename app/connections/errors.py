"""Errors raised by the connection workflow.

Every error carries a human-readable message plus the HTTP status the API
layer answers with; callers only ever see the flat message.
"""

from fastapi import status


class ConnectionStageError(Exception):
    status_code: int = status.HTTP_400_BAD_REQUEST
    error_type: str = "connection_error"
    default_message: str = "This action could not be completed."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class NotAuthorized(ConnectionStageError):
    status_code = status.HTTP_403_FORBIDDEN
    error_type = "not_authorized"
    default_message = "You are not allowed to do this on this connection."


class StageClosed(ConnectionStageError):
    status_code = status.HTTP_409_CONFLICT
    error_type = "stage_closed"
    default_message = "This step is no longer open."


class ValidationError(ConnectionStageError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    error_type = "validation_error"
    default_message = "Some of the submitted details are invalid."


class AlreadySubmitted(ConnectionStageError):
    status_code = status.HTTP_409_CONFLICT
    error_type = "already_submitted"
    default_message = "You have already submitted this step."


class NotFound(ConnectionStageError):
    status_code = status.HTTP_404_NOT_FOUND
    error_type = "not_found"
    default_message = "Connection not found."


class ConflictExpired(ConnectionStageError):
    """The stage deadline lapsed; the connection has been moved to expired."""

    status_code = status.HTTP_409_CONFLICT
    error_type = "expired"
    default_message = "This connection has expired."
