"""JSON API for the Portia front end.

Every response uses the envelope from portia.envelope. All routes except
the auth endpoints need an `Authorization: Bearer <session token>` header.
"""
import logging

from flask import Blueprint, current_app, request
from flask_login import current_user

from portia.envelope import ok
from portia.errors import ValidationError
from portia.models import parse_bool
from shared.auth import login_required

logger = logging.getLogger(__name__)

api_bp = Blueprint('api', __name__)


def _services():
    return current_app.extensions['portia']


def _actor():
    return current_user.record


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        if request.get_data():
            raise ValidationError('Request body must be valid JSON')
        return {}
    if not isinstance(data, dict):
        raise ValidationError('Request body must be a JSON object')
    return data


def _dump(records):
    if isinstance(records, list):
        return [r.to_dict() for r in records]
    return records.to_dict()


@api_bp.after_request
def add_cors_headers(response):
    response.headers['Access-Control-Allow-Origin'] = _services()['config'].cors_origin
    response.headers['Access-Control-Allow-Headers'] = 'Content-Type, Authorization'
    response.headers['Access-Control-Allow-Methods'] = 'GET, POST, PATCH, DELETE, OPTIONS'
    return response


# ─────────────────────────────────────────────────────────────
# Auth
# ─────────────────────────────────────────────────────────────

@api_bp.route('/auth/google-login', methods=['POST'])
def google_login():
    """
    Exchange a Google ID token for a Portia session.

    Body:
        credential: The ID token from Google Sign-In

    Returns:
        {user, token}
    """
    data = _json_body()
    credential = data.get('credential')
    if not credential:
        raise ValidationError('credential is required')

    result = _services()['identity'].login(credential)
    return ok({'user': result['user'].to_dict(), 'token': result['token']}, 'Signed in')


@api_bp.route('/auth/logout', methods=['POST'])
def logout():
    _services()['identity'].end_session()
    return ok(None, 'Signed out')


@api_bp.route('/auth/me')
@login_required
def me():
    return ok(_actor().to_dict())


# ─────────────────────────────────────────────────────────────
# Dashboard
# ─────────────────────────────────────────────────────────────

@api_bp.route('/dashboard')
@login_required
def dashboard():
    return ok(_services()['directory'].dashboard_stats(actor=_actor()))


# ─────────────────────────────────────────────────────────────
# Users
# ─────────────────────────────────────────────────────────────

@api_bp.route('/users')
@login_required
def list_users():
    """
    List users.

    Query params:
        status: active | offboard (optional)
        role: employee | app_admin | super_admin (optional)
        with_access_counts: true to include each user's active grant count
    """
    directory = _services()['directory']
    if parse_bool(request.args.get('with_access_counts')):
        return ok(directory.users_with_access_counts(actor=_actor()))

    filters = {k: request.args.get(k) for k in ('status', 'role') if request.args.get(k)}
    return ok(_dump(directory.list_users(filters, actor=_actor())))


@api_bp.route('/users', methods=['POST'])
@login_required
def create_user():
    data = _json_body()
    user = _services()['directory'].create_user(
        name=data.get('name'),
        email=data.get('email'),
        role=data.get('role') or 'employee',
        actor=_actor(),
    )
    return ok(user.to_dict(), 'User created', status=201)


@api_bp.route('/users/<user_id>')
@login_required
def get_user(user_id):
    return ok(_services()['directory'].get_user(user_id, actor=_actor()).to_dict())


@api_bp.route('/users/<user_id>', methods=['PATCH'])
@login_required
def update_user(user_id):
    user = _services()['directory'].update_user(user_id, _json_body(), actor=_actor())
    return ok(user.to_dict(), 'User updated')


@api_bp.route('/users/<user_id>/offboard', methods=['POST'])
@login_required
def offboard_user(user_id):
    user = _services()['directory'].offboard_user(user_id, actor=_actor())
    return ok(user.to_dict(), 'User offboarded')


@api_bp.route('/users/<user_id>/detail')
@login_required
def user_detail(user_id):
    return ok(_services()['directory'].user_detail(user_id, actor=_actor()))


# ─────────────────────────────────────────────────────────────
# Applications
# ─────────────────────────────────────────────────────────────

@api_bp.route('/applications')
@login_required
def list_applications():
    filters = {k: request.args.get(k) for k in ('category',) if request.args.get(k)}
    return ok(_dump(_services()['directory'].list_applications(filters, actor=_actor())))


@api_bp.route('/applications', methods=['POST'])
@login_required
def create_application():
    data = _json_body()
    application = _services()['directory'].create_application(
        name=data.get('name'),
        category=data.get('category', ''),
        description=data.get('description', ''),
        admin_emails=data.get('admin_emails'),
        actor=_actor(),
    )
    return ok(application.to_dict(), 'Application created', status=201)


@api_bp.route('/applications/<application_id>')
@login_required
def get_application(application_id):
    return ok(_services()['directory'].get_application(application_id, actor=_actor()).to_dict())


@api_bp.route('/applications/<application_id>', methods=['PATCH'])
@login_required
def update_application(application_id):
    application = _services()['directory'].update_application(application_id, _json_body(), actor=_actor())
    return ok(application.to_dict(), 'Application updated')


@api_bp.route('/applications/<application_id>', methods=['DELETE'])
@login_required
def delete_application(application_id):
    _services()['directory'].delete_application(application_id, actor=_actor())
    return ok(None, 'Application deleted')


@api_bp.route('/applications/<application_id>/admins', methods=['POST'])
@login_required
def assign_admin(application_id):
    email = _json_body().get('email')
    if not email:
        raise ValidationError('email is required')
    application = _services()['directory'].assign_admin(application_id, email, actor=_actor())
    return ok(application.to_dict(), 'Admin assigned')


@api_bp.route('/applications/<application_id>/admins', methods=['DELETE'])
@login_required
def remove_admin(application_id):
    email = _json_body().get('email') or request.args.get('email')
    if not email:
        raise ValidationError('email is required')
    application = _services()['directory'].remove_admin(application_id, email, actor=_actor())
    return ok(application.to_dict(), 'Admin removed')


# ─────────────────────────────────────────────────────────────
# Access requests
# ─────────────────────────────────────────────────────────────

@api_bp.route('/access-requests')
@login_required
def list_access_requests():
    """
    List access requests visible to the caller.

    Query params:
        status, employee_id, application_id (all optional, exact match)
    """
    requests_ = _services()['lifecycle'].list_requests(request.args.to_dict(), actor=_actor())
    return ok(_dump(requests_))


@api_bp.route('/access-requests', methods=['POST'])
@login_required
def create_access_request():
    """
    Request access to an application.

    Body:
        application_id: required
        justification: required
        employee_id: defaults to the caller
    """
    data = _json_body()
    access_request = _services()['lifecycle'].create_request(
        employee_id=data.get('employee_id') or current_user.id,
        application_id=data.get('application_id'),
        justification=data.get('justification'),
        actor=_actor(),
    )
    return ok(access_request.to_dict(), 'Access request submitted', status=201)


@api_bp.route('/access-requests/<request_id>')
@login_required
def get_access_request(request_id):
    return ok(_services()['lifecycle'].get_request(request_id, actor=_actor()).to_dict())


@api_bp.route('/access-requests/<request_id>/approve', methods=['POST'])
@login_required
def approve_access_request(request_id):
    result = _services()['lifecycle'].approve_request(
        request_id,
        approved_by=current_user.email,
        notes=_json_body().get('notes'),
        actor=_actor(),
    )
    return ok({
        'request': result['request'].to_dict(),
        'registry': result['registry'].to_dict(),
    }, 'Access request approved')


@api_bp.route('/access-requests/<request_id>/reject', methods=['POST'])
@login_required
def reject_access_request(request_id):
    rejected = _services()['lifecycle'].reject_request(
        request_id,
        rejected_by=current_user.email,
        notes=_json_body().get('notes'),
        actor=_actor(),
    )
    return ok(rejected.to_dict(), 'Access request rejected')


# ─────────────────────────────────────────────────────────────
# Access registry
# ─────────────────────────────────────────────────────────────

@api_bp.route('/access-registry')
@login_required
def list_access_registry():
    entries = _services()['lifecycle'].list_registry(request.args.to_dict(), actor=_actor())
    return ok(_dump(entries))


@api_bp.route('/access-registry/<registry_id>/revoke', methods=['POST'])
@login_required
def revoke_access(registry_id):
    entry = _services()['lifecycle'].revoke_registry_entry(
        registry_id,
        revoked_by=current_user.email,
        actor=_actor(),
    )
    return ok(entry.to_dict(), 'Access revoked')
