"""
Error Taxonomy

Tagged error kinds for the ingestion and submission pipeline.
Callers branch on `kind` (or the exception class), never on the message text.
"""

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """Machine-readable failure kind"""
    AUTHENTICATION = "authentication"
    AUTHORIZATION = "authorization"
    QUOTA_EXCEEDED = "quota_exceeded"
    MALFORMED_INPUT = "malformed_input"
    VALIDATION_REJECTED = "validation_rejected"
    UPSTREAM_FAILURE = "upstream_failure"


class RejectionReason(str, Enum):
    """Why the image validator rejected a payload"""
    FILE_TOO_LARGE = "file_too_large"
    FILE_TOO_SMALL = "file_too_small"
    INVALID_FORMAT = "invalid_format"
    DIMENSIONS_TOO_SMALL = "dimensions_too_small"
    DIMENSIONS_TOO_LARGE = "dimensions_too_large"


class AttendanceError(Exception):
    """
    Base class for all pipeline errors.

    Attributes:
        kind: ErrorKind tag
        message: Human-readable, user-facing reason
        status_code: HTTP status used when the error reaches the API
    """
    kind: ErrorKind = ErrorKind.UPSTREAM_FAILURE
    status_code: int = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {
            'success': False,
            'error': self.message,
            'kind': self.kind.value
        }


class AuthenticationError(AttendanceError):
    """Missing or invalid bearer credential"""
    kind = ErrorKind.AUTHENTICATION
    status_code = 401


class AuthorizationError(AttendanceError):
    """Valid credential, but the principal is not the claimed owner"""
    kind = ErrorKind.AUTHORIZATION
    status_code = 403


class QuotaExceededError(AttendanceError):
    """Cumulative stored-photo cap reached"""
    kind = ErrorKind.QUOTA_EXCEEDED
    status_code = 429

    def __init__(self, message: str, limit: int):
        super().__init__(message)
        self.limit = limit


class MalformedInputError(AttendanceError):
    """Undecodable data URI or wrong envelope"""
    kind = ErrorKind.MALFORMED_INPUT
    status_code = 400


class ValidationRejection(AttendanceError):
    """Image rejected by the format validator; carries the violated bound"""
    kind = ErrorKind.VALIDATION_REJECTED
    status_code = 400

    def __init__(self, message: str, reason: RejectionReason, bound: Optional[int] = None):
        super().__init__(message)
        self.reason = reason
        self.bound = bound

    def to_dict(self) -> dict:
        data = super().to_dict()
        data['reason'] = self.reason.value
        data['bound'] = self.bound
        return data


class UpstreamFailure(AttendanceError):
    """An external collaborator call failed or timed out"""
    kind = ErrorKind.UPSTREAM_FAILURE
    status_code = 502

    def __init__(self, message: str, stage: str):
        super().__init__(message)
        self.stage = stage

    def to_dict(self) -> dict:
        data = super().to_dict()
        data['stage'] = self.stage
        return data


_STATUS_BY_KIND = {
    cls.kind: cls.status_code
    for cls in (
        AuthenticationError,
        AuthorizationError,
        QuotaExceededError,
        MalformedInputError,
        ValidationRejection,
        UpstreamFailure,
    )
}


def status_for_kind(kind: ErrorKind) -> int:
    """HTTP status for an error kind"""
    return _STATUS_BY_KIND.get(kind, 500)
