"""Authorization rules for Portia.

One place answers "may this user do this to that". Services call
require() before any write; list operations call filter_visible() so
employees and app admins only ever receive the rows they may see.
"""
import logging
from typing import Iterable, List, Optional, Set

from portia.database import APPLICATIONS
from portia.errors import Forbidden, NotFound
from portia.models import User, has_role

logger = logging.getLogger(__name__)

# Actions decided by employee_id / application_id on the resource
OWN_OR_ADMINISTERED = ('request.create', 'request.view', 'registry.view')
ADMINISTERED_ONLY = ('request.approve', 'request.reject', 'registry.revoke')
SUPER_ADMIN_ONLY = (
    'user.update',
    'user.offboard',
    'application.create',
    'application.update',
    'application.delete',
    'application.assign_admin',
)
ANY_ACTIVE_USER = ('dashboard.view', 'application.view')

ACTIONS = (
    OWN_OR_ADMINISTERED + ADMINISTERED_ONLY + SUPER_ADMIN_ONLY + ANY_ACTIVE_USER
    + ('user.create', 'user.view')
)


class Policy:
    """Role and app-admin checks against the domain store."""

    def __init__(self, store):
        self.store = store

    def can(self, user: Optional[User], action: str, resource=None) -> bool:
        """
        Decide whether user may perform action on resource.

        Args:
            user: The acting user; None or offboarded users are always denied
            action: One of ACTIONS
            resource: AccessRequest/AccessRegistry (or any object with
                employee_id and application_id), Application, or target User

        Returns:
            True if allowed
        """
        if action not in ACTIONS:
            raise ValueError(f"Unknown action: {action}")
        if user is None or not user.is_active:
            return False
        if user.role == 'super_admin':
            return True

        if action in ANY_ACTIVE_USER:
            return True

        if action in OWN_OR_ADMINISTERED:
            if resource is None:
                return action != 'request.create'
            if str(resource.employee_id) == str(user.id):
                return True
            return self.administers(user, resource.application_id)

        if action in ADMINISTERED_ONLY:
            return resource is not None and self.administers(user, resource.application_id)

        if action == 'user.create':
            return has_role(user.role, 'app_admin')

        if action == 'user.view':
            if resource is not None and str(resource.id) == str(user.id):
                return True
            return has_role(user.role, 'app_admin')

        # SUPER_ADMIN_ONLY
        return False

    def require(self, user: Optional[User], action: str, resource=None):
        """Raise Forbidden unless can() allows it."""
        if not self.can(user, action, resource):
            who = user.email if user else 'anonymous'
            logger.warning(f"Denied {action} for {who}")
            raise Forbidden(f"You are not allowed to perform {action}")

    # ─────────────────────────────────────────────────────────────
    # App admin lookups
    # ─────────────────────────────────────────────────────────────

    def administers(self, user: User, application_id) -> bool:
        """True if user is an app admin listed on the application."""
        if not has_role(user.role, 'app_admin'):
            return False
        try:
            application = self.store.get(APPLICATIONS, application_id, use_cache=False)
        except NotFound:
            return False
        return application.is_admin(user.email)

    def administered_application_ids(self, user: User) -> Set[str]:
        if not has_role(user.role, 'app_admin'):
            return set()
        return {
            app.id for app in self.store.list(APPLICATIONS, use_cache=False)
            if app.is_admin(user.email)
        }

    def filter_visible(self, user: Optional[User], records: Iterable) -> List:
        """
        Keep only the request/registry records user may view.

        Super admins see everything; app admins see their own plus records
        for applications they administer; everyone else sees their own.
        """
        records = list(records)
        if user is None or not user.is_active:
            return []
        if user.role == 'super_admin':
            return records

        administered = self.administered_application_ids(user)
        return [
            r for r in records
            if str(r.employee_id) == str(user.id) or str(r.application_id) in administered
        ]
