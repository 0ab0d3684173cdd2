"""Error taxonomy for Portia.

Every error a caller can see is a PortiaError carrying a machine-readable
code and the HTTP status the API layer answers with.
"""
from typing import Optional


class PortiaError(Exception):
    """Base class for all errors surfaced through the API envelope."""

    code = 'ERROR'
    http_status = 500

    def __init__(self, message: str, details: Optional[str] = None, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.details = details
        if code:
            self.code = code

    def to_dict(self) -> dict:
        return {
            'code': self.code,
            'message': self.message,
            'details': self.details,
        }


class ValidationError(PortiaError):
    """Missing or malformed input."""
    code = 'VALIDATION_ERROR'
    http_status = 400


class AuthenticationRequired(PortiaError):
    code = 'AUTH_REQUIRED'
    http_status = 401


class Forbidden(PortiaError):
    code = 'FORBIDDEN'
    http_status = 403


class NotFound(PortiaError):
    """Referenced id does not exist in the targeted collection."""
    code = 'NOT_FOUND'
    http_status = 404

    def __init__(self, collection: str, record_id, message: Optional[str] = None):
        super().__init__(message or f"No {collection} record with id {record_id}")
        self.collection = collection
        self.record_id = record_id


class UserNotFound(PortiaError):
    code = 'USER_NOT_FOUND'
    http_status = 404


class UserInactive(PortiaError):
    code = 'USER_INACTIVE'
    http_status = 403


class Conflict(PortiaError):
    code = 'CONFLICT'
    http_status = 409


class InvalidTransition(Conflict):
    """A status change out of a terminal state."""
    code = 'INVALID_TRANSITION'


class BackendError(PortiaError):
    """The underlying storage call failed (network, auth, quota, SQL)."""
    code = 'BACKEND_ERROR'
    http_status = 502


class PartialFailure(PortiaError):
    """
    A compound operation completed its first write but not its second.

    Raised by approve when the request was marked approved, the registry
    entry could not be created, and the request could not be restored.
    The record needs manual reconciliation.
    """
    code = 'PARTIAL_FAILURE'
    http_status = 500

    def __init__(self, message: str, request_id: str, details: Optional[str] = None):
        super().__init__(message, details=details)
        self.request_id = request_id
