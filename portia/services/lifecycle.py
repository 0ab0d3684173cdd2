"""Access request lifecycle.

pending --approve--> approved (+ one active registry entry)
pending --reject-->  rejected
registry active --revoke--> revoked

approved, rejected and revoked are terminal.
"""
import logging
from typing import Dict, List, Optional

from portia.database import ACCESS_REGISTRY, ACCESS_REQUESTS, APPLICATIONS
from portia.errors import (
    BackendError, Conflict, InvalidTransition, PartialFailure, PortiaError, ValidationError,
)
from portia.models import AccessRegistry, AccessRequest, User, utc_now_iso
from portia.services import text_input
from portia.services.policy import Policy

logger = logging.getLogger(__name__)

REQUEST_FILTERS = ('status', 'employee_id', 'application_id')
REGISTRY_FILTERS = ('status', 'employee_id', 'application_id')


def _clean(value) -> str:
    return str(value).strip() if value is not None else ''


def _require_fields(**values):
    missing = [name for name, value in values.items() if not _clean(value)]
    if missing:
        raise ValidationError(f"Missing required field(s): {', '.join(missing)}")


def _describe(error: Exception) -> str:
    if isinstance(error, PortiaError):
        return error.details or error.message
    return str(error) or type(error).__name__


def _restrict_filters(filters: Optional[Dict], allowed: tuple) -> Dict:
    filters = {k: v for k, v in (filters or {}).items() if v not in (None, '')}
    unknown = set(filters) - set(allowed)
    if unknown:
        raise ValidationError(f"Unsupported filter(s): {', '.join(sorted(unknown))}")
    return filters


class AccessLifecycleService:
    """
    Creates, resolves and revokes access.

    Every method takes an optional actor. When given, the policy is checked
    before anything is written and list results are scoped to what the
    actor may see.
    """

    def __init__(self, store, policy: Policy = None):
        self.store = store
        self.policy = policy or Policy(store)

    def _authorize(self, actor: Optional[User], action: str, resource):
        if actor is not None:
            self.policy.require(actor, action, resource)

    # ─────────────────────────────────────────────────────────────
    # Requests
    # ─────────────────────────────────────────────────────────────

    def create_request(self, employee_id, application_id, justification: str,
                       actor: Optional[User] = None, auto_generated: bool = False) -> AccessRequest:
        """
        Open a pending request for employee_id to use application_id.

        Raises:
            ValidationError: any argument is blank
            NotFound: the application does not exist
            Forbidden: actor may not request on the employee's behalf
            Conflict: a pending request or an active grant already exists
        """
        justification = text_input('justification', justification)
        _require_fields(employee_id=employee_id, application_id=application_id, justification=justification)
        employee_id = _clean(employee_id)
        application_id = _clean(application_id)

        self.store.get(APPLICATIONS, application_id)
        draft = AccessRequest(id=None, employee_id=employee_id, application_id=application_id)
        self._authorize(actor, 'request.create', draft)

        pair = {'employee_id': employee_id, 'application_id': application_id}
        if self.store.list(ACCESS_REQUESTS, dict(pair, status='pending'), use_cache=False):
            raise Conflict(
                'A pending request for this application already exists',
                code='DUPLICATE_REQUEST'
            )
        if self.store.list(ACCESS_REGISTRY, dict(pair, status='active'), use_cache=False):
            raise Conflict(
                'This employee already has access to this application',
                code='ALREADY_GRANTED'
            )

        request = self.store.create(ACCESS_REQUESTS, {
            'employee_id': employee_id,
            'application_id': application_id,
            'type': 'new',
            'status': 'pending',
            'justification': justification,
            'auto_generated': bool(auto_generated),
        })
        logger.info(f"Access request {request.id} created: employee {employee_id} -> application {application_id}")
        return request

    def get_request(self, request_id, actor: Optional[User] = None) -> AccessRequest:
        request = self.store.get(ACCESS_REQUESTS, request_id)
        self._authorize(actor, 'request.view', request)
        return request

    def list_requests(self, filters: Optional[Dict] = None, actor: Optional[User] = None) -> List[AccessRequest]:
        """List requests matching status/employee_id/application_id."""
        requests_ = self.store.list(ACCESS_REQUESTS, _restrict_filters(filters, REQUEST_FILTERS))
        if actor is not None:
            requests_ = self.policy.filter_visible(actor, requests_)
        return requests_

    def approve_request(self, request_id, approved_by: str, notes: Optional[str] = None,
                        actor: Optional[User] = None) -> Dict:
        """
        Approve a pending request and record the grant.

        Returns:
            {'request': AccessRequest, 'registry': AccessRegistry}

        Raises:
            NotFound, Forbidden, InvalidTransition
            BackendError: the grant failed and the request was put back to pending
            PartialFailure: the grant failed and the request could not be restored
        """
        _require_fields(approved_by=approved_by)
        notes = text_input('notes', notes)
        request = self.store.get(ACCESS_REQUESTS, request_id, use_cache=False)
        self._authorize(actor, 'request.approve', request)
        self._require_pending(request)

        now = utc_now_iso()
        changes = {'status': 'approved', 'approved_date': now, 'approved_by': _clean(approved_by)}
        if notes:
            changes['admin_notes'] = notes
        approved = self.store.update(ACCESS_REQUESTS, request.id, changes)

        try:
            entry = self.store.create(ACCESS_REGISTRY, {
                'employee_id': request.employee_id,
                'application_id': request.application_id,
                'granted_date': now,
                'granted_by': _clean(approved_by),
                'status': 'active',
            })
        except Exception as e:
            self._restore_pending(request, e)
            if isinstance(e, PortiaError):
                raise
            raise BackendError("Granting access failed", details=str(e)) from e

        logger.info(f"Access request {request.id} approved by {approved_by}; registry entry {entry.id} granted")
        return {'request': approved, 'registry': entry}

    def reject_request(self, request_id, rejected_by: str, notes: Optional[str] = None,
                       actor: Optional[User] = None) -> AccessRequest:
        """Reject a pending request. approved_date/approved_by record the rejection."""
        _require_fields(rejected_by=rejected_by)
        notes = text_input('notes', notes)
        request = self.store.get(ACCESS_REQUESTS, request_id, use_cache=False)
        self._authorize(actor, 'request.reject', request)
        self._require_pending(request)

        changes = {'status': 'rejected', 'approved_date': utc_now_iso(), 'approved_by': _clean(rejected_by)}
        if notes:
            changes['admin_notes'] = notes
        rejected = self.store.update(ACCESS_REQUESTS, request.id, changes)

        logger.info(f"Access request {request.id} rejected by {rejected_by}")
        return rejected

    @staticmethod
    def _require_pending(request: AccessRequest):
        if not request.is_pending:
            raise InvalidTransition(f"Access request {request.id} is already {request.status}")

    def _restore_pending(self, original: AccessRequest, cause: Exception):
        """Put a request back to pending after its grant failed, or raise PartialFailure."""
        try:
            self.store.update(ACCESS_REQUESTS, original.id, {
                'status': 'pending',
                'approved_date': None,
                'approved_by': None,
                'admin_notes': original.admin_notes,
            })
        except PortiaError as restore_error:
            logger.error(
                f"Access request {original.id} is approved but has no registry entry "
                f"and could not be restored: {restore_error.message}"
            )
            raise PartialFailure(
                f"Access request {original.id} was approved but access could not be granted. "
                f"Manual reconciliation is required.",
                request_id=original.id,
                details=_describe(cause),
            ) from restore_error

        logger.error(f"Granting access for request {original.id} failed, request restored to pending: {_describe(cause)}")

    # ─────────────────────────────────────────────────────────────
    # Registry
    # ─────────────────────────────────────────────────────────────

    def list_registry(self, filters: Optional[Dict] = None, actor: Optional[User] = None) -> List[AccessRegistry]:
        entries = self.store.list(ACCESS_REGISTRY, _restrict_filters(filters, REGISTRY_FILTERS))
        if actor is not None:
            entries = self.policy.filter_visible(actor, entries)
        return entries

    def revoke_registry_entry(self, registry_id, revoked_by: str, actor: Optional[User] = None) -> AccessRegistry:
        """
        Revoke an active grant.

        Revoking an entry that is already revoked returns it unchanged.
        """
        _require_fields(revoked_by=revoked_by)
        entry = self.store.get(ACCESS_REGISTRY, registry_id, use_cache=False)
        self._authorize(actor, 'registry.revoke', entry)

        if not entry.is_active:
            logger.info(f"Registry entry {entry.id} already {entry.status}, nothing to revoke")
            return entry

        revoked = self.store.update(ACCESS_REGISTRY, entry.id, {
            'status': 'revoked',
            'revoked_date': utc_now_iso(),
            'revoked_by': _clean(revoked_by),
        })
        logger.info(f"Registry entry {entry.id} revoked by {revoked_by}")
        return revoked
