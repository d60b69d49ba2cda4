# serial_hub/errors.py
"""
Domain error taxonomy.

Every service raises one of these; main.py renders them as
{"error": message, "kind": kind} with the matching HTTP status.
"""
from __future__ import annotations
from typing import Optional


class ServiceError(Exception):
    kind = "InternalError"
    status_code = 500

    def __init__(self, message: str, status_code: Optional[int] = None, kind: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        # errors relayed from another service keep that service's classification
        if kind:
            self.kind = kind

    def to_dict(self) -> dict:
        return {"error": self.message, "kind": self.kind}


class ValidationError(ServiceError):
    """Malformed or missing input. Never retried."""
    kind = "ValidationError"
    status_code = 400


class NotFound(ServiceError):
    kind = "NotFound"
    status_code = 404


class ConflictError(ServiceError):
    """Uniqueness violation on insert, or a lost conditional update."""
    kind = "ConflictError"
    status_code = 409


class InvalidTransitionError(ServiceError):
    kind = "InvalidTransitionError"
    status_code = 400

    def __init__(self, current: str, requested: str):
        super().__init__(
            f"Invalid status transition from {current} to {requested}. "
            f"Valid transitions are: GENERATED -> PRINTED -> SCANNED"
        )
        self.current = current
        self.requested = requested


class UpstreamError(ServiceError):
    """A dependency could not give a definitive answer (transport failure, 5xx)."""
    kind = "UpstreamError"
    status_code = 502


class InternalError(ServiceError):
    kind = "InternalError"
    status_code = 500
