"""Failure taxonomy for the prediction pipeline.

Every failure the user can see is a ``PredictionError`` carrying a stable
``code`` and a human-readable ``message``. Validation errors are raised (or
returned) before any network activity; the rest describe what went wrong
with a request that was actually sent.
"""
from __future__ import annotations

from .constants import ERROR_MESSAGES


class ConfigurationError(RuntimeError):
    pass


class SubmissionInProgress(RuntimeError):
    """A form already has a request in flight."""


class PredictionError(Exception):
    code: str = "unexpected_error"
    message_key: str = "UNEXPECTED_ERROR"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or ERROR_MESSAGES[self.message_key]
        super().__init__(self.message)

    def to_dict(self) -> dict[str, str]:
        return {"error": self.code, "detail": self.message}


# ---------------- Local, pre-flight ----------------


class ValidationError(PredictionError):
    code = "validation_error"


class NoFileSelected(ValidationError):
    code = "no_file_selected"
    message_key = "NO_FILE_SELECTED"


class FileTooLarge(ValidationError):
    code = "file_too_large"
    message_key = "FILE_TOO_LARGE"


class InvalidFileType(ValidationError):
    code = "invalid_file_type"
    message_key = "INVALID_FILE_TYPE"


class InvalidModelKey(ValidationError):
    code = "invalid_model_key"
    message_key = "INVALID_MODEL_KEY"


class InvalidThreshold(ValidationError):
    code = "invalid_threshold"
    message_key = "INVALID_THRESHOLD"


# ---------------- Post-flight ----------------


class RequestTimeoutError(PredictionError):
    code = "timeout_error"
    message_key = "TIMEOUT_ERROR"


class RequestCancelled(PredictionError):
    code = "cancelled"
    message_key = "CANCELLED"


class NetworkError(PredictionError):
    code = "network_error"
    message_key = "NETWORK_ERROR"


class InvalidRequest(PredictionError):
    code = "invalid_request"
    message_key = "INVALID_REQUEST"


class ServerError(PredictionError):
    code = "server_error"
    message_key = "SERVER_ERROR"


class InvalidResponseShape(PredictionError):
    code = "invalid_response"
    message_key = "INVALID_RESPONSE"
