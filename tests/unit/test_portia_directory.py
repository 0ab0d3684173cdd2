"""
Unit tests for user and application administration.
"""
import pytest

from portia.database import APPLICATIONS
from portia.errors import Conflict, Forbidden, NotFound, ValidationError
from portia.services.directory import DirectoryService
from portia.services.lifecycle import AccessLifecycleService


@pytest.fixture
def directory(store):
    return DirectoryService(store)


@pytest.fixture
def lifecycle(store):
    return AccessLifecycleService(store)


# ==============================================================================
# User Tests
# ==============================================================================

@pytest.mark.unit
@pytest.mark.portia
class TestUsers:
    """Test inviting, editing and offboarding users."""

    def test_create_user(self, directory, people, frozen_time):
        user = directory.create_user('Frank New', 'frank@example.com', actor=people['dave'])

        assert user.role == 'employee'
        assert user.status == 'active'
        assert user.invited_by == 'dave@example.com'
        assert user.join_date == '2025-01-15T10:00:00Z'

    def test_duplicate_email_any_case(self, directory, people):
        with pytest.raises(Conflict) as exc_info:
            directory.create_user('Alice Again', 'ALICE@example.com')
        assert exc_info.value.code == 'DUPLICATE_USER'

    @pytest.mark.parametrize('email', ['', 'not-an-email', 'a@b', 'two@@example.com'])
    def test_invalid_email(self, directory, email):
        with pytest.raises(ValidationError):
            directory.create_user('Someone', email)

    def test_invalid_role(self, directory):
        with pytest.raises(ValidationError):
            directory.create_user('Someone', 'someone@example.com', role='owner')

    def test_name_required(self, directory):
        with pytest.raises(ValidationError):
            directory.create_user('  ', 'someone@example.com')

    @pytest.mark.parametrize('field, value', [
        ('name', 42), ('email', ['someone@example.com']), ('role', {'name': 'app_admin'}),
    ])
    def test_non_text_user_input(self, directory, field, value):
        args = {'name': 'Someone', 'email': 'someone@example.com', 'role': 'employee'}
        args[field] = value

        with pytest.raises(ValidationError):
            directory.create_user(**args)

    def test_app_admin_invites_employees_only(self, directory, people):
        carol = people['carol']
        assert directory.create_user('Gina', 'gina@example.com', actor=carol).invited_by == carol.email

        with pytest.raises(Forbidden):
            directory.create_user('Hank', 'hank@example.com', role='app_admin', actor=carol)

    def test_employee_cannot_invite(self, directory, people):
        with pytest.raises(Forbidden):
            directory.create_user('Ivan', 'ivan@example.com', actor=people['alice'])

    def test_update_user_role(self, directory, people):
        updated = directory.update_user(people['bob'].id, {'role': 'app_admin'}, actor=people['dave'])
        assert updated.role == 'app_admin'

    def test_update_rejects_status_changes(self, directory, people):
        with pytest.raises(ValidationError):
            directory.update_user(people['bob'].id, {'status': 'offboard'})

    def test_update_email_conflict(self, directory, people):
        with pytest.raises(Conflict):
            directory.update_user(people['bob'].id, {'email': 'alice@example.com'})

    def test_update_keeps_own_email(self, directory, people):
        updated = directory.update_user(people['bob'].id, {'email': 'bob@example.com', 'name': 'Robert'})
        assert updated.name == 'Robert'

    def test_offboard(self, directory, people, frozen_time):
        user = directory.offboard_user(people['bob'].id, actor=people['dave'])

        assert user.status == 'offboard'
        assert user.offboard_date == '2025-01-15T10:00:00Z'

    def test_offboard_is_idempotent(self, directory, people):
        again = directory.offboard_user(people['erin'].id)
        assert again.offboard_date == '2024-12-31T00:00:00Z'

    def test_only_super_admin_offboards(self, directory, people):
        with pytest.raises(Forbidden):
            directory.offboard_user(people['bob'].id, actor=people['carol'])

    def test_employee_views_only_self(self, directory, people):
        assert directory.get_user(people['alice'].id, actor=people['alice']).id == people['alice'].id
        with pytest.raises(Forbidden):
            directory.get_user(people['bob'].id, actor=people['alice'])
        with pytest.raises(Forbidden):
            directory.list_users(actor=people['alice'])

    def test_list_users_filtered(self, directory, people):
        admins = directory.list_users({'role': 'super_admin'}, actor=people['carol'])
        assert [u.id for u in admins] == [people['dave'].id]


# ==============================================================================
# Application Tests
# ==============================================================================

@pytest.mark.unit
@pytest.mark.portia
class TestApplications:
    """Test the application catalogue and its admins."""

    def test_create_application(self, directory, people):
        app = directory.create_application(
            'Figma', category='Design', admin_emails='carol@example.com', actor=people['dave'],
        )

        assert app.name == 'Figma'
        assert app.admin_emails == ['carol@example.com']
        assert app.created_by == 'dave@example.com'

    def test_application_name_required(self, directory):
        with pytest.raises(ValidationError):
            directory.create_application('')

    def test_invalid_admin_email(self, directory):
        with pytest.raises(ValidationError):
            directory.create_application('Figma', admin_emails=['not-an-email'])

    @pytest.mark.parametrize('changes', [
        {'name': 42}, {'description': {'text': 'Issue tracker'}}, {'admin_emails': {'email': 'carol@example.com'}},
    ])
    def test_non_text_application_input(self, directory, people, changes):
        with pytest.raises(ValidationError):
            directory.update_application(people['jira'].id, changes)

    def test_numeric_application_name(self, directory):
        with pytest.raises(ValidationError):
            directory.create_application(1234)

    def test_app_admin_cannot_create(self, directory, people):
        with pytest.raises(Forbidden):
            directory.create_application('Figma', actor=people['carol'])

    def test_any_active_user_lists_applications(self, directory, people):
        assert len(directory.list_applications(actor=people['alice'])) == 2
        with pytest.raises(Forbidden):
            directory.list_applications(actor=people['erin'])

    def test_update_application(self, directory, people):
        app = directory.update_application(people['slack'].id, {'description': 'Team chat'})
        assert app.description == 'Team chat'
        assert app.name == 'Slack'

    def test_update_rejects_unknown_fields(self, directory, people):
        with pytest.raises(ValidationError):
            directory.update_application(people['slack'].id, {'created_by': 'me'})

    def test_delete_keeps_history(self, directory, lifecycle, store, people):
        request = lifecycle.create_request(people['alice'].id, people['slack'].id, 'Chat')

        directory.delete_application(people['slack'].id)

        with pytest.raises(NotFound):
            directory.get_application(people['slack'].id)
        assert lifecycle.get_request(request.id).application_id == people['slack'].id

    def test_assign_admin(self, directory, people):
        app = directory.assign_admin(people['slack'].id, 'carol@example.com')
        assert app.is_admin('carol@example.com')

    def test_assign_admin_twice_is_noop(self, directory, people):
        app = directory.assign_admin(people['jira'].id, 'CAROL@example.com')
        assert app.admin_emails == ['carol@example.com']

    def test_assign_admin_requires_admin_role(self, directory, people):
        with pytest.raises(ValidationError):
            directory.assign_admin(people['slack'].id, 'alice@example.com')

    def test_assign_admin_offboarded(self, directory, store, people):
        directory.update_user(people['carol'].id, {'role': 'app_admin'})
        directory.offboard_user(people['carol'].id)
        with pytest.raises(ValidationError):
            directory.assign_admin(people['slack'].id, 'carol@example.com')

    def test_assign_admin_unknown_user(self, directory, people):
        with pytest.raises(NotFound):
            directory.assign_admin(people['slack'].id, 'nobody@example.com')

    def test_remove_admin(self, directory, store, people):
        app = directory.remove_admin(people['jira'].id, 'Carol@Example.com')

        assert app.admin_emails == []
        assert store.get(APPLICATIONS, people['jira'].id).admin_emails == []


# ==============================================================================
# View Tests
# ==============================================================================

@pytest.mark.unit
@pytest.mark.portia
class TestViews:
    """Test dashboard and detail views."""

    def test_dashboard_stats(self, directory, lifecycle, people):
        first = lifecycle.create_request(people['alice'].id, people['jira'].id, 'Sprint')
        lifecycle.create_request(people['bob'].id, people['jira'].id, 'Sprint')
        lifecycle.approve_request(first.id, 'carol@example.com')

        stats = directory.dashboard_stats(actor=people['alice'])

        assert stats == {
            'total_users': 5,
            'active_users': 4,
            'total_applications': 2,
            'pending_requests': 1,
            'active_access': 1,
        }

    def test_user_detail_labels_applications(self, directory, lifecycle, people):
        request = lifecycle.create_request(people['alice'].id, people['slack'].id, 'Chat')
        lifecycle.approve_request(request.id, 'dave@example.com')
        directory.delete_application(people['slack'].id)
        lifecycle.create_request(people['alice'].id, people['jira'].id, 'Sprint')

        detail = directory.user_detail(people['alice'].id, actor=people['dave'])

        assert detail['user']['email'] == 'alice@example.com'
        names = sorted(r['application_name'] for r in detail['requests'])
        assert names == ['Jira', 'Unknown application']
        assert detail['registry'][0]['application_name'] == 'Unknown application'

    def test_user_detail_scoped_for_app_admin(self, directory, lifecycle, people):
        lifecycle.create_request(people['alice'].id, people['jira'].id, 'Sprint')
        lifecycle.create_request(people['alice'].id, people['slack'].id, 'Chat')

        detail = directory.user_detail(people['alice'].id, actor=people['carol'])

        assert [r['application_name'] for r in detail['requests']] == ['Jira']

    def test_users_with_access_counts(self, directory, lifecycle, people):
        request = lifecycle.create_request(people['bob'].id, people['jira'].id, 'Sprint')
        lifecycle.approve_request(request.id, 'carol@example.com')

        counts = {u['email']: u['access_count'] for u in directory.users_with_access_counts()}

        assert counts['bob@example.com'] == 1
        assert counts['alice@example.com'] == 0
