"""
Unit tests for the identity gate and session tokens.
"""
import jwt
import pytest
from freezegun import freeze_time

from portia.cache import ReadCache
from portia.database import CachingStore, USERS
from portia.errors import AuthenticationRequired, Forbidden, UserInactive, UserNotFound, ValidationError
from portia.services.directory import DirectoryService
from portia.services.identity import IdentityGate
from shared.auth.tokens import create_auth_token, verify_auth_token


@pytest.fixture
def gate(store, session_secret):
    return IdentityGate(store, session_secret, session_ttl_seconds=3600)


@pytest.mark.unit
@pytest.mark.portia
class TestDecodeAssertion:
    """Test reading identity assertions."""

    def test_reads_claims(self, assertion):
        claims = IdentityGate.decode_assertion(assertion('Alice@Example.com', name='Alice', sub='42'))
        assert claims == {'email': 'alice@example.com', 'name': 'Alice', 'sub': '42'}

    @pytest.mark.parametrize('token', ['', 'not-a-jwt', 'a.b', 'a.b.c.d', None])
    def test_wrong_shape(self, token):
        with pytest.raises(ValidationError):
            IdentityGate.decode_assertion(token)

    def test_undecodable_payload(self):
        with pytest.raises(ValidationError):
            IdentityGate.decode_assertion('aaa.!!!not-base64!!!.ccc')

    def test_email_required(self):
        token = jwt.encode({'sub': '1'}, 'not-googles-key-just-a-placeholder-for-tests', algorithm='HS256')
        with pytest.raises(ValidationError):
            IdentityGate.decode_assertion(token)


@pytest.mark.unit
@pytest.mark.portia
class TestAuthenticate:
    """Test matching assertions to users."""

    def test_login_returns_user_and_token(self, gate, people, assertion, session_secret):
        result = gate.login(assertion('alice@example.com'))

        assert result['user'].id == people['alice'].id
        payload = verify_auth_token(result['token'], session_secret)
        assert payload['sub'] == people['alice'].id
        assert payload['email'] == 'alice@example.com'
        assert payload['role'] == 'employee'
        assert payload['exp'] - payload['iat'] == 3600

    def test_email_match_is_case_insensitive(self, gate, people, assertion):
        result = gate.login(assertion('carol@EXAMPLE.com'))
        assert result['user'].id == people['carol'].id

    def test_unknown_email(self, gate, people, assertion):
        with pytest.raises(UserNotFound):
            gate.login(assertion('mallory@example.com'))

    def test_offboarded_user(self, gate, people, assertion):
        with pytest.raises(UserInactive):
            gate.login(assertion('erin@example.com'))

    def test_prefers_active_duplicate(self, gate, store, people, assertion):
        rehired = store.create(USERS, {'name': 'Erin Again', 'email': 'ERIN@example.com', 'role': 'employee'})

        result = gate.login(assertion('erin@example.com'))

        assert result['user'].id == rehired.id

    def test_domain_restriction(self, store, people, assertion, session_secret):
        gate = IdentityGate(store, session_secret, allowed_domains=['example.com'])
        assert gate.login(assertion('alice@example.com'))['user'].id == people['alice'].id

        gate = IdentityGate(store, session_secret, allowed_domains=['corp.example'])
        with pytest.raises(Forbidden):
            gate.login(assertion('alice@example.com'))

    def test_session_secret_required(self, store):
        with pytest.raises(ValueError):
            IdentityGate(store, '')


@pytest.mark.unit
@pytest.mark.portia
class TestSessions:
    """Test resolving and ending sessions."""

    def test_resolve_session(self, gate, people, assertion):
        token = gate.login(assertion('alice@example.com'))['token']
        assert gate.resolve_session(token).email == 'alice@example.com'

    @pytest.mark.parametrize('token', ['', None, 'garbage'])
    def test_missing_or_invalid_token(self, gate, token):
        with pytest.raises(AuthenticationRequired):
            gate.resolve_session(token)

    def test_token_signed_with_other_secret(self, gate, people):
        token = create_auth_token({'sub': people['dave'].id}, 'some-other-secret-that-is-also-long-enough')
        with pytest.raises(AuthenticationRequired):
            gate.resolve_session(token)

    def test_expired_token(self, gate, people, assertion):
        with freeze_time('2025-01-15 10:00:00') as frozen:
            token = gate.login(assertion('alice@example.com'))['token']
            frozen.move_to('2025-01-15 11:00:01')
            with pytest.raises(AuthenticationRequired):
                gate.resolve_session(token)

    def test_user_offboarded_after_login(self, gate, store, people, assertion):
        token = gate.login(assertion('alice@example.com'))['token']
        store.update(USERS, people['alice'].id, {'status': 'offboard'})

        with pytest.raises(UserInactive):
            gate.resolve_session(token)

    def test_offboarding_seen_by_other_workers(self, sqlite_store, people, assertion, session_secret):
        worker_a = CachingStore(sqlite_store, ReadCache())
        worker_b = CachingStore(sqlite_store, ReadCache())
        gate_b = IdentityGate(worker_b, session_secret)
        token = gate_b.login(assertion('carol@example.com'))['token']
        assert gate_b.resolve_session(token).is_active

        DirectoryService(worker_a).offboard_user(people['carol'].id)

        with pytest.raises(UserInactive):
            gate_b.resolve_session(token)

    def test_session_for_unknown_user(self, gate, session_secret):
        token = create_auth_token({'sub': '999'}, session_secret)
        with pytest.raises(AuthenticationRequired):
            gate.resolve_session(token)

    def test_end_session(self, gate):
        assert gate.end_session('anything') is True
