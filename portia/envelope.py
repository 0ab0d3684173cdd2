"""JSON response envelope shared by every API route."""
import uuid
from typing import Any, Optional

from flask import jsonify

from portia.errors import PortiaError
from portia.models import utc_now_iso


def envelope(success: bool, data: Any = None, message: Optional[str] = None,
             error: Optional[dict] = None) -> dict:
    """
    Build the standard response body.

    Shape: {success, data, error, timestamp, request_id}; successful
    responses also carry a human-readable message.
    """
    body = {
        'success': success,
        'data': data,
        'timestamp': utc_now_iso(),
        'request_id': uuid.uuid4().hex,
    }
    if success:
        body['message'] = message or 'OK'
    else:
        body['error'] = error or {'code': 'ERROR', 'message': message or 'Request failed', 'details': None}
    return body


def ok(data: Any = None, message: Optional[str] = None, status: int = 200):
    """Flask response for a successful call."""
    return jsonify(envelope(True, data=data, message=message)), status


def fail(code: str, message: str, status: int, details: Optional[str] = None):
    """Flask response for a failed call."""
    error = {'code': code, 'message': message, 'details': details}
    return jsonify(envelope(False, error=error)), status


def fail_from(error: PortiaError):
    """Flask response for a PortiaError."""
    return fail(error.code, error.message, error.http_status, error.details)
