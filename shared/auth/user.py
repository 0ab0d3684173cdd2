"""
Flask-Login user wrapper.
"""
from flask_login import UserMixin


class SessionUser(UserMixin):
    """
    The authenticated user for the current request.

    Wraps the application's own user record so Flask-Login can carry it.

    Attributes:
        record: The underlying user record (needs id, email, name, role)
        token: The bearer token the request was authenticated with
    """

    def __init__(self, record, token: str = None):
        self.record = record
        self.token = token
        self.id = str(record.id)
        self.email = record.email
        self.name = record.name or record.email
        self.role = getattr(record, 'role', None)

    @property
    def is_active(self) -> bool:
        return bool(getattr(self.record, 'is_active', True))

    def __repr__(self):
        return f"<SessionUser {self.email}>"
