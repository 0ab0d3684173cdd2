"""Domain records for Portia.

Four record types, one per collection. Backends decode into these and
encode from them; nothing outside portia.database ever sees a spreadsheet
row or a Notion page.
"""
from dataclasses import dataclass, field, fields, asdict
from datetime import datetime, timezone
from typing import Dict, List, Optional


def utc_now_iso() -> str:
    """Return current UTC time as ISO8601 string."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


# ─────────────────────────────────────────────────────────────
# Enumerations
# ─────────────────────────────────────────────────────────────

USER_ROLES = {
    'employee': 'Employee',
    'app_admin': 'App Admin',
    'super_admin': 'Super Admin',
}

ROLE_RANK = {
    'employee': 1,
    'app_admin': 2,
    'super_admin': 3,
}

USER_STATUSES = {
    'active': 'Active',
    'offboard': 'Offboarded',
}

REQUEST_TYPES = {
    'new': 'New Access',
    'update': 'Update Access',
    'delete': 'Remove Access',
}

REQUEST_STATUSES = {
    'pending': 'Pending',
    'approved': 'Approved',
    'rejected': 'Rejected',
}

ACCESS_STATUSES = {
    'active': 'Active',
    'revoked': 'Revoked',
}

UNKNOWN_USER = 'Unknown user'
UNKNOWN_APPLICATION = 'Unknown application'


def has_role(role: str, required: str) -> bool:
    """True if role sits at or above required in the privilege hierarchy."""
    return ROLE_RANK.get(role, 0) >= ROLE_RANK[required]


def normalize_email(email: Optional[str]) -> str:
    return (email or '').strip().lower()


def split_emails(value) -> List[str]:
    """
    Turn a comma-joined string or a list into a clean email list.

    Blank entries are dropped and duplicates (compared case-insensitively)
    keep their first spelling.
    """
    if not value:
        return []
    if isinstance(value, str):
        value = value.split(',')

    emails = []
    seen = set()
    for item in value:
        email = str(item).strip()
        if email and email.lower() not in seen:
            seen.add(email.lower())
            emails.append(email)
    return emails


def parse_bool(value) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() in ('true', '1', 'yes')


# ─────────────────────────────────────────────────────────────
# Records
# ─────────────────────────────────────────────────────────────

class Record:
    """Shared behaviour for the four record dataclasses."""

    # field -> default applied when a backend hands back nothing (or '')
    DEFAULTS: Dict[str, object] = {}
    # fields stamped with the current time when a record is created
    STAMPED_ON_CREATE: tuple = ()

    @classmethod
    def field_names(cls) -> List[str]:
        return [f.name for f in fields(cls)]

    @classmethod
    def from_fields(cls, data: Dict) -> 'Record':
        """
        Build a record from a flat field bag.

        Missing and empty values fall back to DEFAULTS, or None for
        optional fields. This is the single default policy every backend
        decoder goes through.
        """
        values = {}
        for name in cls.field_names():
            value = data.get(name)
            if value == '' or value is None:
                value = cls.DEFAULTS.get(name)
                if isinstance(value, list):
                    value = list(value)
            values[name] = value

        if values.get('id') is not None:
            values['id'] = str(values['id'])
        return cls(**cls._coerce(values))

    @classmethod
    def _coerce(cls, values: Dict) -> Dict:
        return values

    @classmethod
    def new_fields(cls, data: Dict) -> Dict:
        """Field bag for a record about to be created, defaults applied."""
        values = {k: v for k, v in data.items() if v is not None}
        now = utc_now_iso()
        for name in cls.STAMPED_ON_CREATE:
            if not values.get(name):
                values[name] = now
        for name, default in cls.DEFAULTS.items():
            if values.get(name) in (None, ''):
                values[name] = list(default) if isinstance(default, list) else default
        return values

    def to_dict(self) -> Dict:
        return asdict(self)


@dataclass
class User(Record):
    id: Optional[str]
    name: str = ''
    email: str = ''
    role: str = 'employee'
    status: str = 'active'
    join_date: str = ''
    offboard_date: Optional[str] = None
    invited_by: Optional[str] = None
    created_at: Optional[str] = None

    DEFAULTS = {
        'name': '',
        'email': '',
        'role': 'employee',
        'status': 'active',
        'join_date': '',
    }
    STAMPED_ON_CREATE = ('join_date', 'created_at')

    @property
    def is_active(self) -> bool:
        return self.status == 'active'


@dataclass
class Application(Record):
    id: Optional[str]
    name: str = ''
    category: str = ''
    description: str = ''
    admin_emails: List[str] = field(default_factory=list)
    created_at: str = ''
    created_by: str = ''

    DEFAULTS = {
        'name': '',
        'category': '',
        'description': '',
        'admin_emails': [],
        'created_at': '',
        'created_by': '',
    }
    STAMPED_ON_CREATE = ('created_at',)

    @classmethod
    def _coerce(cls, values: Dict) -> Dict:
        values['admin_emails'] = split_emails(values.get('admin_emails'))
        return values

    def is_admin(self, email: str) -> bool:
        email = normalize_email(email)
        return bool(email) and email in [e.lower() for e in self.admin_emails]


@dataclass
class AccessRequest(Record):
    id: Optional[str]
    employee_id: str = ''
    application_id: str = ''
    type: str = 'new'
    status: str = 'pending'
    request_date: str = ''
    approved_date: Optional[str] = None
    approved_by: Optional[str] = None
    admin_notes: Optional[str] = None
    justification: str = ''
    auto_generated: bool = False

    DEFAULTS = {
        'employee_id': '',
        'application_id': '',
        'type': 'new',
        'status': 'pending',
        'request_date': '',
        'justification': '',
        'auto_generated': False,
    }
    STAMPED_ON_CREATE = ('request_date',)

    @classmethod
    def _coerce(cls, values: Dict) -> Dict:
        values['auto_generated'] = parse_bool(values.get('auto_generated'))
        for ref in ('employee_id', 'application_id'):
            if values.get(ref) is not None:
                values[ref] = str(values[ref])
        return values

    @property
    def is_pending(self) -> bool:
        return self.status == 'pending'


@dataclass
class AccessRegistry(Record):
    id: Optional[str]
    employee_id: str = ''
    application_id: str = ''
    granted_date: str = ''
    granted_by: str = ''
    status: str = 'active'
    revoked_date: Optional[str] = None
    revoked_by: Optional[str] = None

    DEFAULTS = {
        'employee_id': '',
        'application_id': '',
        'granted_date': '',
        'granted_by': '',
        'status': 'active',
    }
    STAMPED_ON_CREATE = ('granted_date',)

    @classmethod
    def _coerce(cls, values: Dict) -> Dict:
        for ref in ('employee_id', 'application_id'):
            if values.get(ref) is not None:
                values[ref] = str(values[ref])
        return values

    @property
    def is_active(self) -> bool:
        return self.status == 'active'
