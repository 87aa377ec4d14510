# backend/errors.py

from typing import Any, Optional


class ChatAppError(Exception):
    """Base error carrying the HTTP status it should be reported with."""

    status_code = 500

    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_body(self) -> dict:
        body = {"error": self.message}
        if self.details is not None:
            body["details"] = self.details
        return body


class InvalidInput(ChatAppError):
    status_code = 400


class Unauthenticated(ChatAppError):
    status_code = 401


class NotFound(ChatAppError):
    # Absent and not-owned records are reported the same way.
    status_code = 404


class StoreError(ChatAppError):
    status_code = 500


class UpstreamUnavailable(ChatAppError):
    status_code = 502


class UpstreamTimeout(ChatAppError):
    status_code = 504
