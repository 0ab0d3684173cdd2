"""
Shared pytest fixtures for Portia tests.

Provides isolated SQLite stores, seeded directory data, a Flask app wired
to a temporary store, a mocked Google Sheets service, and helpers for
identity tokens.
"""
import os
import sys
from pathlib import Path
from unittest.mock import MagicMock

import jwt
import pytest

# Add project root to Python path for imports
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

# Set test environment BEFORE any imports
os.environ['TESTING'] = '1'
os.environ['FLASK_SECRET_KEY'] = 'test-secret-key-for-testing-only'
os.environ.pop('PORTIA_BACKEND', None)

from portia.cache import ReadCache  # noqa: E402
from portia.config import Config  # noqa: E402
from portia.database import CachingStore, USERS, APPLICATIONS  # noqa: E402
from portia.database.sqlite_store import SQLiteStore  # noqa: E402

SESSION_SECRET = 'test-session-secret-that-is-long-enough-for-hs256'


# ==============================================================================
# Store Fixtures
# ==============================================================================

@pytest.fixture
def sqlite_store(tmp_path):
    """A migrated SQLite store in a temporary directory."""
    store = SQLiteStore(str(tmp_path / 'portia_test.db'))
    yield store
    store.close()


@pytest.fixture
def store(sqlite_store):
    """The SQLite store behind the read cache, as the app runs it."""
    return CachingStore(sqlite_store, ReadCache(ttl_seconds=600))


@pytest.fixture
def people(store):
    """
    Seed users and applications.

    Returns a dict of records keyed by short names:
        alice (employee), bob (employee), carol (app admin of jira),
        dave (super admin), erin (offboarded employee), jira, slack
    """
    alice = store.create(USERS, {'name': 'Alice Employee', 'email': 'alice@example.com', 'role': 'employee'})
    bob = store.create(USERS, {'name': 'Bob Employee', 'email': 'bob@example.com', 'role': 'employee'})
    carol = store.create(USERS, {'name': 'Carol Admin', 'email': 'Carol@Example.com', 'role': 'app_admin'})
    dave = store.create(USERS, {'name': 'Dave Super', 'email': 'dave@example.com', 'role': 'super_admin'})
    erin = store.create(USERS, {
        'name': 'Erin Gone', 'email': 'erin@example.com', 'role': 'employee',
        'status': 'offboard', 'offboard_date': '2024-12-31T00:00:00Z',
    })
    jira = store.create(APPLICATIONS, {
        'name': 'Jira', 'category': 'Engineering', 'description': 'Issue tracker',
        'admin_emails': ['carol@example.com'], 'created_by': 'dave@example.com',
    })
    slack = store.create(APPLICATIONS, {
        'name': 'Slack', 'category': 'Communication', 'description': 'Chat',
        'admin_emails': [], 'created_by': 'dave@example.com',
    })
    return {
        'alice': alice, 'bob': bob, 'carol': carol, 'dave': dave, 'erin': erin,
        'jira': jira, 'slack': slack,
    }


# ==============================================================================
# App Fixtures
# ==============================================================================

@pytest.fixture
def test_config(tmp_path):
    """Config built from the bundled yaml with a controlled environment."""
    return Config(
        overrides={
            'backend': 'sqlite',
            'backends': {'sqlite': {'path': str(tmp_path / 'portia_app.db')}},
        },
        env={
            'FLASK_SECRET_KEY': 'test-secret-key-for-testing-only',
            'SESSION_SECRET': SESSION_SECRET,
            'NOTION_API_KEY': 'secret_test_key',
        },
    )


@pytest.fixture
def app(test_config, store):
    from portia.app import create_app
    flask_app = create_app(test_config, store=store)
    flask_app.config['TESTING'] = True
    return flask_app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def login(client):
    """Sign in by email and return Authorization headers."""
    def _login(email):
        response = client.post('/api/auth/google-login', json={'credential': make_assertion(email)})
        assert response.status_code == 200, response.get_json()
        token = response.get_json()['data']['token']
        return {'Authorization': f'Bearer {token}'}
    return _login


def make_assertion(email, name='Test User', sub='1234567890'):
    """An identity token shaped like a Google ID token (signature is never checked)."""
    return jwt.encode({'email': email, 'name': name, 'sub': sub}, 'not-googles-key-just-a-placeholder-for-tests', algorithm='HS256')


@pytest.fixture
def assertion():
    return make_assertion


@pytest.fixture
def session_secret():
    return SESSION_SECRET


# ==============================================================================
# Google API Mock Fixtures
# ==============================================================================

@pytest.fixture
def mock_google_sheets_service():
    """Mock Google Sheets API service with all four worksheets present and empty."""
    mock_service = MagicMock()

    mock_service.spreadsheets().get().execute.return_value = {
        'sheets': [
            {'properties': {'title': title, 'sheetId': sheet_id}}
            for sheet_id, title in enumerate(['Users', 'Applications', 'Access Requests', 'Access Registry'])
        ]
    }
    mock_service.spreadsheets().values().get().execute.return_value = {'values': []}
    mock_service.spreadsheets().values().append().execute.return_value = {
        'updates': {'updatedRows': 1}
    }
    mock_service.spreadsheets().values().update().execute.return_value = {'updatedRows': 1}
    mock_service.spreadsheets().batchUpdate().execute.return_value = {'replies': [{}]}

    return mock_service


# ==============================================================================
# HTTP Mock Fixtures
# ==============================================================================

@pytest.fixture
def mock_responses():
    """Fixture to mock HTTP responses using responses library."""
    import responses as responses_lib
    with responses_lib.RequestsMock() as rsps:
        yield rsps


# ==============================================================================
# Time-related Fixtures
# ==============================================================================

@pytest.fixture
def frozen_time():
    """Fixture to freeze time for testing."""
    from freezegun import freeze_time
    with freeze_time('2025-01-15 10:00:00'):
        yield
