"""User and application administration plus the read-only views built on them."""
import logging
import re
from typing import Dict, List, Optional

from portia.database import ACCESS_REGISTRY, ACCESS_REQUESTS, APPLICATIONS, USERS
from portia.errors import Conflict, NotFound, ValidationError
from portia.models import (
    UNKNOWN_APPLICATION, USER_ROLES, Application, User, has_role, normalize_email,
    split_emails, utc_now_iso,
)
from portia.services import text_input
from portia.services.policy import Policy

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r'^[^@\s]+@[^@\s]+\.[^@\s]+$')

USER_EDITABLE = ('name', 'email', 'role', 'join_date')
APPLICATION_EDITABLE = ('name', 'category', 'description', 'admin_emails')


def _validate_email(email: str) -> str:
    email = text_input('email', email) or ''
    if not EMAIL_PATTERN.match(email):
        raise ValidationError(f"Invalid email address: {email or '(blank)'}")
    return email


def _validate_role(role: str) -> str:
    if not isinstance(role, str) or role not in USER_ROLES:
        raise ValidationError(f"Invalid role '{role}'. Must be one of: {', '.join(USER_ROLES)}")
    return role


def _validate_admin_emails(value) -> List[str]:
    if value is not None and not isinstance(value, (str, list)):
        raise ValidationError('admin_emails must be a string or a list')
    emails = split_emails(value)
    for email in emails:
        _validate_email(email)
    return emails


def _text_changes(changes: Dict, names) -> Dict:
    for name in names:
        if name in changes:
            changes[name] = text_input(name, changes[name])
    return changes


class DirectoryService:
    """Users, applications, and their admins."""

    def __init__(self, store, policy: Policy = None):
        self.store = store
        self.policy = policy or Policy(store)

    def _authorize(self, actor: Optional[User], action: str, resource=None):
        if actor is not None:
            self.policy.require(actor, action, resource)

    # ─────────────────────────────────────────────────────────────
    # Users
    # ─────────────────────────────────────────────────────────────

    def list_users(self, filters: Optional[Dict] = None, actor: Optional[User] = None) -> List[User]:
        self._authorize(actor, 'user.view')
        return self.store.list(USERS, filters)

    def get_user(self, user_id, actor: Optional[User] = None) -> User:
        user = self.store.get(USERS, user_id)
        self._authorize(actor, 'user.view', user)
        return user

    def _email_taken(self, email: str, exclude_id: Optional[str] = None) -> bool:
        email = normalize_email(email)
        return any(
            normalize_email(u.email) == email and u.id != exclude_id
            for u in self.store.list(USERS, use_cache=False)
        )

    def create_user(self, name: str, email: str, role: str = 'employee',
                    invited_by: Optional[str] = None, actor: Optional[User] = None) -> User:
        """
        Invite a new active user.

        Raises:
            ValidationError: blank name, malformed email, unknown role
            Conflict: a user with this email already exists
        """
        self._authorize(actor, 'user.create')
        name = text_input('name', name)
        if not name:
            raise ValidationError('Name is required')
        email = _validate_email(email)
        role = _validate_role(role or 'employee')

        # App admins can only invite employees
        if actor is not None and role != 'employee' and actor.role != 'super_admin':
            self.policy.require(actor, 'user.update')

        if self._email_taken(email):
            raise Conflict(f"A user with email {email} already exists", code='DUPLICATE_USER')

        user = self.store.create(USERS, {
            'name': name,
            'email': email,
            'role': role,
            'status': 'active',
            'invited_by': invited_by or (actor.email if actor else None),
        })
        logger.info(f"User {user.id} ({user.email}) created as {role}")
        return user

    def update_user(self, user_id, changes: Dict, actor: Optional[User] = None) -> User:
        self._authorize(actor, 'user.update')
        unknown = set(changes) - set(USER_EDITABLE)
        if unknown:
            raise ValidationError(f"Cannot update user field(s): {', '.join(sorted(unknown))}")

        changes = dict(changes)
        _text_changes(changes, ('name', 'join_date'))
        if 'role' in changes:
            _validate_role(changes['role'])
        if 'email' in changes:
            changes['email'] = _validate_email(changes['email'])
            current = self.store.get(USERS, user_id, use_cache=False)
            if self._email_taken(changes['email'], exclude_id=current.id):
                raise Conflict(f"A user with email {changes['email']} already exists", code='DUPLICATE_USER')

        user = self.store.update(USERS, user_id, changes)
        logger.info(f"User {user.id} updated: {sorted(changes)}")
        return user

    def offboard_user(self, user_id, actor: Optional[User] = None) -> User:
        """Mark a user offboarded. Users are never deleted."""
        self._authorize(actor, 'user.offboard')
        current = self.store.get(USERS, user_id, use_cache=False)
        if not current.is_active:
            return current

        user = self.store.update(USERS, current.id, {
            'status': 'offboard',
            'offboard_date': utc_now_iso(),
        })
        logger.info(f"User {user.id} ({user.email}) offboarded")
        return user

    # ─────────────────────────────────────────────────────────────
    # Applications
    # ─────────────────────────────────────────────────────────────

    def list_applications(self, filters: Optional[Dict] = None, actor: Optional[User] = None) -> List[Application]:
        self._authorize(actor, 'application.view')
        return self.store.list(APPLICATIONS, filters)

    def get_application(self, application_id, actor: Optional[User] = None) -> Application:
        self._authorize(actor, 'application.view')
        return self.store.get(APPLICATIONS, application_id)

    def create_application(self, name: str, category: str = '', description: str = '',
                           admin_emails=None, created_by: Optional[str] = None,
                           actor: Optional[User] = None) -> Application:
        self._authorize(actor, 'application.create')
        name = text_input('name', name)
        if not name:
            raise ValidationError('Application name is required')
        emails = _validate_admin_emails(admin_emails)

        application = self.store.create(APPLICATIONS, {
            'name': name,
            'category': text_input('category', category) or '',
            'description': text_input('description', description) or '',
            'admin_emails': emails,
            'created_by': created_by or (actor.email if actor else ''),
        })
        logger.info(f"Application {application.id} ({application.name}) created")
        return application

    def update_application(self, application_id, changes: Dict, actor: Optional[User] = None) -> Application:
        self._authorize(actor, 'application.update')
        unknown = set(changes) - set(APPLICATION_EDITABLE)
        if unknown:
            raise ValidationError(f"Cannot update application field(s): {', '.join(sorted(unknown))}")

        changes = dict(changes)
        _text_changes(changes, ('name', 'category', 'description'))
        if 'name' in changes and not (changes['name'] or '').strip():
            raise ValidationError('Application name is required')
        if 'admin_emails' in changes:
            changes['admin_emails'] = _validate_admin_emails(changes['admin_emails'])

        application = self.store.update(APPLICATIONS, application_id, changes)
        logger.info(f"Application {application.id} updated: {sorted(changes)}")
        return application

    def delete_application(self, application_id, actor: Optional[User] = None):
        """Delete an application. Requests and grants referencing it are kept."""
        self._authorize(actor, 'application.delete')
        self.store.delete(APPLICATIONS, application_id)
        logger.info(f"Application {application_id} deleted")

    def assign_admin(self, application_id, email: str, actor: Optional[User] = None) -> Application:
        """
        Add email to an application's admins.

        The user must exist and be an app_admin or super_admin.
        """
        self._authorize(actor, 'application.assign_admin')
        email = _validate_email(email)

        user = next(
            (u for u in self.store.list(USERS, use_cache=False) if normalize_email(u.email) == normalize_email(email)),
            None
        )
        if user is None:
            raise NotFound(USERS, email, message=f"No user with email {email}")
        if not user.is_active or not has_role(user.role, 'app_admin'):
            raise ValidationError(f"{email} must be an active app admin or super admin to administer an application")

        application = self.store.get(APPLICATIONS, application_id, use_cache=False)
        if application.is_admin(email):
            return application

        updated = self.store.update(APPLICATIONS, application.id, {
            'admin_emails': application.admin_emails + [user.email],
        })
        logger.info(f"{user.email} is now an admin of application {application.id}")
        return updated

    def remove_admin(self, application_id, email: str, actor: Optional[User] = None) -> Application:
        self._authorize(actor, 'application.assign_admin')
        application = self.store.get(APPLICATIONS, application_id, use_cache=False)
        target = normalize_email(text_input('email', email))
        remaining = [e for e in application.admin_emails if e.lower() != target]
        if len(remaining) == len(application.admin_emails):
            return application

        updated = self.store.update(APPLICATIONS, application.id, {'admin_emails': remaining})
        logger.info(f"{email} removed from admins of application {application.id}")
        return updated

    # ─────────────────────────────────────────────────────────────
    # Views
    # ─────────────────────────────────────────────────────────────

    def _application_names(self) -> Dict[str, str]:
        return {app.id: app.name for app in self.store.list(APPLICATIONS)}

    def dashboard_stats(self, actor: Optional[User] = None) -> Dict:
        self._authorize(actor, 'dashboard.view')
        users = self.store.list(USERS)
        return {
            'total_users': len(users),
            'active_users': sum(1 for u in users if u.is_active),
            'total_applications': len(self.store.list(APPLICATIONS)),
            'pending_requests': len(self.store.list(ACCESS_REQUESTS, {'status': 'pending'})),
            'active_access': len(self.store.list(ACCESS_REGISTRY, {'status': 'active'})),
        }

    def user_detail(self, user_id, actor: Optional[User] = None) -> Dict:
        """A user with their requests and grants, each labelled with the application name."""
        user = self.get_user(user_id, actor=actor)
        names = self._application_names()

        requests_ = self.store.list(ACCESS_REQUESTS, {'employee_id': user.id})
        registry = self.store.list(ACCESS_REGISTRY, {'employee_id': user.id})
        if actor is not None:
            requests_ = self.policy.filter_visible(actor, requests_)
            registry = self.policy.filter_visible(actor, registry)

        def labelled(record) -> Dict:
            data = record.to_dict()
            data['application_name'] = names.get(record.application_id, UNKNOWN_APPLICATION)
            return data

        return {
            'user': user.to_dict(),
            'requests': [labelled(r) for r in requests_],
            'registry': [labelled(r) for r in registry],
        }

    def users_with_access_counts(self, actor: Optional[User] = None) -> List[Dict]:
        """Every user plus how many active grants they hold."""
        users = self.list_users(actor=actor)
        counts: Dict[str, int] = {}
        for entry in self.store.list(ACCESS_REGISTRY, {'status': 'active'}):
            counts[entry.employee_id] = counts.get(entry.employee_id, 0) + 1

        result = []
        for user in users:
            data = user.to_dict()
            data['access_count'] = counts.get(user.id, 0)
            result.append(data)
        return result
