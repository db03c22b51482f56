# gatsishub/exceptions.py
from typing import Any, Optional


class GatsisError(Exception):
    """Base for errors that map onto an HTTP response.

    Handlers in ``gatsishub.main`` render these as ``{"error": ..., "details": ...}``.
    """
    status_code = 500

    def __init__(self, message: str, *, details: Optional[Any] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.details = details
        if status_code is not None:
            self.status_code = status_code


class ValidationFailed(GatsisError):
    """Missing or malformed input. ``details`` maps field name -> problem."""
    status_code = 400


class NotFound(GatsisError):
    status_code = 404


class Conflict(GatsisError):
    """Uniqueness violation, reported with a friendly message."""
    status_code = 400


class InvalidTransition(GatsisError):
    """An order action that its current status does not allow."""
    status_code = 400

    def __init__(self, message: str, *, current_status: Optional[str] = None, target_status: Optional[str] = None):
        details = {"current_status": current_status}
        if target_status is not None:
            details["target_status"] = target_status
        super().__init__(message, details=details)
        self.current_status = current_status
        self.target_status = target_status


class Forbidden(GatsisError):
    status_code = 403


class UpstreamError(GatsisError):
    """A dependency (email provider, storage) failed or is not configured."""
    status_code = 500
