"""Tests for AuthGate authentication, session validation and revocation."""

import asyncio
from datetime import timedelta

import bcrypt
import pytest

from authgate.core.modules.access import roles
from authgate.core.modules.access.gate import AuthGate, authorize
from authgate.core.modules.access.models import AuthErrorKind, AuthFailure, AuthPolicy, ClientInfo, LoginResult
from authgate.core.modules.principal.models import Role
from authgate.utils import is_well_formed_token

PASSWORD = "correct-horse"


def login(gate, email="alice@example.com", password=PASSWORD, client=None):
    return asyncio.run(gate.authenticate(email, password, client))


def validate(gate, token):
    return asyncio.run(gate.validate_session(token))


class TestAuthenticate:
    """Tests for authenticate."""

    @pytest.fixture(autouse=True)
    def setup(self, gate, credentials, sessions, hasher, clock, alice):
        self.gate = gate
        self.credentials = credentials
        self.sessions = sessions
        self.hasher = hasher
        self.clock = clock
        self.alice = alice

    def test_correct_password_opens_session(self):
        """Test that valid credentials return the principal and a fresh session."""
        result = login(self.gate, client=ClientInfo(ip_address="198.51.100.4", user_agent="pytest"))
        assert isinstance(result, LoginResult)
        assert result.principal.id == self.alice.id
        assert is_well_formed_token(result.session.token)
        assert result.session.expires_at == self.clock.now() + timedelta(seconds=3600)
        stored = self.sessions.sessions[result.session.token]
        assert stored.ip_address == "198.51.100.4"
        assert stored.user_agent == "pytest"
        assert self.credentials.get(self.alice.id).last_login_at == self.clock.now()

    def test_email_is_normalized(self):
        """Test that surrounding whitespace and case in the email are ignored."""
        assert isinstance(login(self.gate, email="  Alice@Example.COM "), LoginResult)

    def test_unknown_email_and_wrong_password_are_indistinguishable(self):
        """Test that both failure paths return the same kind after one full hash comparison each."""
        self.hasher.verify_calls = 0
        unknown = login(self.gate, email="nobody@example.com")
        assert self.hasher.verify_calls == 1

        wrong = login(self.gate, password="wrong-horse")
        assert self.hasher.verify_calls == 2

        assert unknown == wrong == AuthFailure(AuthErrorKind.INVALID_CREDENTIALS)

    def test_unknown_email_does_not_touch_counters(self):
        """Test that a missing principal records no failed attempt."""
        login(self.gate, email="nobody@example.com")
        assert self.credentials.failed_attempt_calls == 0

    def test_wrong_password_increments_counter(self):
        """Test that a verified wrong password increments the failure counter."""
        login(self.gate, password="wrong-horse")
        login(self.gate, password="wrong-horse")
        assert self.credentials.get(self.alice.id).failed_login_attempts == 2

    def test_success_resets_counter(self):
        """Test that a correct password resets the failure counter."""
        login(self.gate, password="wrong-horse")
        login(self.gate)
        assert self.credentials.get(self.alice.id).failed_login_attempts == 0

    def test_lockout_after_threshold(self):
        """Test that the attempt after N failures is locked, even with the correct password."""
        for _ in range(4):
            assert login(self.gate, password="wrong-horse").kind == AuthErrorKind.INVALID_CREDENTIALS
        assert login(self.gate, password="wrong-horse").kind == AuthErrorKind.INVALID_CREDENTIALS

        result = login(self.gate)
        assert result.kind == AuthErrorKind.ACCOUNT_LOCKED
        assert result.retry_after == timedelta(minutes=15)

    def test_no_counting_while_locked(self):
        """Test that attempts during a lockout neither compare hashes nor increment the counter."""
        for _ in range(5):
            login(self.gate, password="wrong-horse")
        calls = self.credentials.failed_attempt_calls
        verify_calls = self.hasher.verify_calls

        for _ in range(3):
            assert login(self.gate, password="wrong-horse").kind == AuthErrorKind.ACCOUNT_LOCKED

        assert self.credentials.failed_attempt_calls == calls
        assert self.hasher.verify_calls == verify_calls
        assert self.credentials.get(self.alice.id).failed_login_attempts == 5

    def test_lockout_expires(self):
        """Test that a correct password succeeds once the lockout has elapsed."""
        for _ in range(5):
            login(self.gate, password="wrong-horse")
        self.clock.advance(minutes=15, seconds=1)

        assert isinstance(login(self.gate), LoginResult)
        principal = self.credentials.get(self.alice.id)
        assert principal.failed_login_attempts == 0
        assert principal.locked_until is None

    def test_wrong_password_after_lockout_relocks(self):
        """Test that the counter survives an expired lockout, so one more failure locks again."""
        for _ in range(5):
            login(self.gate, password="wrong-horse")
        self.clock.advance(minutes=16)

        assert login(self.gate, password="wrong-horse").kind == AuthErrorKind.INVALID_CREDENTIALS
        assert login(self.gate).kind == AuthErrorKind.ACCOUNT_LOCKED

    def test_disabled_account(self):
        """Test that a disabled account is refused only after the password is verified."""
        self.credentials.principals[self.alice.id] = self.alice.model_copy(update={"is_active": False})

        assert login(self.gate).kind == AuthErrorKind.ACCOUNT_DISABLED
        assert login(self.gate, password="wrong-horse").kind == AuthErrorKind.INVALID_CREDENTIALS
        assert self.sessions.sessions == {}

    def test_concurrent_logins_create_independent_sessions(self):
        """Test that parallel logins each get their own session."""

        async def both():
            return await asyncio.gather(
                self.gate.authenticate("alice@example.com", PASSWORD),
                self.gate.authenticate("alice@example.com", PASSWORD),
            )

        first, second = asyncio.run(both())
        assert first.session.token != second.session.token
        assert len(self.sessions.for_principal(self.alice.id)) == 2

    def test_untagged_hash_is_upgraded(self):
        """Test that a legacy untagged bcrypt hash is replaced by a tagged one on login."""
        legacy = bcrypt.hashpw(PASSWORD.encode(), bcrypt.gensalt(rounds=4)).decode()
        self.credentials.principals[self.alice.id] = self.alice.model_copy(update={"password_hash": legacy})

        assert isinstance(login(self.gate), LoginResult)
        upgraded = self.credentials.get(self.alice.id).password_hash
        assert upgraded.startswith("bcrypt$")
        assert self.hasher.verify(PASSWORD, upgraded)

    def test_store_failure_fails_closed(self):
        """Test that a failing credential store yields service_unavailable."""
        self.credentials.failing = True
        assert login(self.gate) == AuthFailure(AuthErrorKind.SERVICE_UNAVAILABLE)


class TestValidateSession:
    """Tests for validate_session."""

    @pytest.fixture(autouse=True)
    def setup(self, gate, credentials, sessions, clock, alice):
        self.gate = gate
        self.credentials = credentials
        self.sessions = sessions
        self.clock = clock
        self.alice = alice
        self.token = login(gate).session.token

    def test_valid_session_returns_principal(self):
        """Test that a fresh session resolves to its principal and records activity."""
        self.clock.advance(minutes=5)
        principal = validate(self.gate, self.token)
        assert principal.id == self.alice.id
        assert self.sessions.sessions[self.token].last_activity_at == self.clock.now()

    @pytest.mark.parametrize("token", [None, "", "short", "x" * 43 + "=", "a b" * 15])
    def test_malformed_token_skips_lookup(self, token):
        """Test that empty or malformed tokens are rejected without a store lookup."""
        assert validate(self.gate, token) == AuthFailure(AuthErrorKind.UNAUTHENTICATED)
        assert self.sessions.lookups == 0

    def test_unknown_token(self):
        """Test that a well-formed but unknown token is unauthenticated."""
        assert validate(self.gate, "A" * 43).kind == AuthErrorKind.UNAUTHENTICATED

    def test_session_expiry(self):
        """Test that a session is valid just before its TTL and expired just after."""
        self.clock.advance(seconds=3599)
        assert validate(self.gate, self.token).id == self.alice.id

        self.clock.advance(seconds=2)
        assert validate(self.gate, self.token).kind == AuthErrorKind.SESSION_EXPIRED
        assert self.token not in self.sessions.sessions
        assert validate(self.gate, self.token).kind == AuthErrorKind.UNAUTHENTICATED

    def test_deactivation_takes_effect_immediately(self):
        """Test that deactivating the principal invalidates its live session on the next call."""
        self.credentials.principals[self.alice.id] = self.alice.model_copy(update={"is_active": False})
        assert validate(self.gate, self.token).kind == AuthErrorKind.UNAUTHENTICATED
        assert self.token not in self.sessions.sessions

    def test_deleted_principal(self):
        """Test that a session whose principal no longer exists is rejected and removed."""
        del self.credentials.principals[self.alice.id]
        assert validate(self.gate, self.token).kind == AuthErrorKind.UNAUTHENTICATED
        assert self.token not in self.sessions.sessions

    def test_locked_principal_keeps_session(self):
        """Test that a lockout blocks new logins but not sessions opened before it."""
        self.credentials.principals[self.alice.id] = self.alice.model_copy(
            update={"locked_until": self.clock.now() + timedelta(minutes=10)}
        )
        assert validate(self.gate, self.token).id == self.alice.id

    def test_store_failure_fails_closed(self):
        """Test that a failing session store never grants access."""
        self.sessions.failing = True
        assert validate(self.gate, self.token) == AuthFailure(AuthErrorKind.SERVICE_UNAVAILABLE)

    def test_store_timeout_fails_closed(self, credentials, sessions, hasher, clock, policy):
        """Test that a store call exceeding the timeout yields service_unavailable."""
        gate = AuthGate(credentials, sessions, hasher, clock, policy=policy, store_timeout=0.01)
        sessions.delay = 0.5
        assert validate(gate, self.token) == AuthFailure(AuthErrorKind.SERVICE_UNAVAILABLE)


class TestIdleTimeout:
    """Tests for the optional idle timeout."""

    @pytest.fixture(autouse=True)
    def setup(self, credentials, sessions, hasher, clock, alice):
        policy = AuthPolicy(session_ttl=timedelta(hours=8), idle_timeout=timedelta(minutes=30))
        self.gate = AuthGate(credentials, sessions, hasher, clock, policy=policy)
        self.clock = clock
        self.token = login(self.gate).session.token

    def test_activity_extends_idle_window(self):
        """Test that each validation resets the idle clock."""
        for _ in range(4):
            self.clock.advance(minutes=20)
            assert not isinstance(validate(self.gate, self.token), AuthFailure)

    def test_idle_session_expires(self):
        """Test that a session unused for the idle timeout is expired."""
        self.clock.advance(minutes=30)
        assert validate(self.gate, self.token).kind == AuthErrorKind.SESSION_EXPIRED


class TestAuthorize:
    """Tests for the flat role check."""

    def test_admin_only(self, credentials, hasher):
        """Test that only the listed role passes."""
        tech = credentials.add("tech@example.com", PASSWORD, Role.TECHNICIAN, hasher=hasher)
        admin = credentials.add("admin@example.com", PASSWORD, Role.ADMIN, hasher=hasher)
        assert authorize(tech, {Role.ADMIN}) == AuthFailure(AuthErrorKind.FORBIDDEN)
        assert authorize(admin, {Role.ADMIN}) is admin

    def test_no_role_inherits_another(self, credentials, hasher):
        """Test that admin gets nothing it is not listed for."""
        admin = credentials.add("admin@example.com", PASSWORD, Role.ADMIN, hasher=hasher)
        assert authorize(admin, {Role.TECHNICIAN}).kind == AuthErrorKind.FORBIDDEN

    def test_role_sets(self, credentials, hasher):
        """Test the named role sets."""
        company_admin = credentials.add("boss@example.com", PASSWORD, Role.COMPANY_ADMIN, hasher=hasher)
        customer = credentials.add("customer@example.com", PASSWORD, Role.CUSTOMER, hasher=hasher)
        assert AuthGate.authorize(company_admin, roles.ACCOUNT_ADMINS) is company_admin
        assert AuthGate.authorize(company_admin, roles.ADMIN_ONLY).kind == AuthErrorKind.FORBIDDEN
        assert AuthGate.authorize(customer, roles.ACCOUNT_ADMINS).kind == AuthErrorKind.FORBIDDEN
        assert AuthGate.authorize(customer, roles.EVERYONE) is customer


class TestRevocation:
    """Tests for session revocation."""

    @pytest.fixture(autouse=True)
    def setup(self, gate, credentials, sessions, hasher, clock, alice):
        self.gate = gate
        self.sessions = sessions
        self.clock = clock
        self.alice = alice
        self.bob = credentials.add("bob@example.com", PASSWORD, Role.TESTER, hasher=hasher)

    def test_revoke_session(self):
        """Test that a revoked token is no longer accepted."""
        token = login(self.gate).session.token
        assert asyncio.run(self.gate.revoke_session(token)) is None
        assert validate(self.gate, token).kind == AuthErrorKind.UNAUTHENTICATED

    def test_revoke_all_for_principal(self):
        """Test that every session of one principal ends and others survive."""
        tokens = [login(self.gate).session.token for _ in range(3)]
        bob_token = login(self.gate, email="bob@example.com").session.token

        assert asyncio.run(self.gate.revoke_all_for_principal(self.alice.id)) == 3
        for token in tokens:
            assert validate(self.gate, token).kind == AuthErrorKind.UNAUTHENTICATED
        assert validate(self.gate, bob_token).id == self.bob.id

    def test_revoke_all(self):
        """Test that global revocation ends every session."""
        login(self.gate)
        login(self.gate, email="bob@example.com")
        assert asyncio.run(self.gate.revoke_all()) == 2
        assert self.sessions.sessions == {}

    def test_purge_expired_sessions(self):
        """Test that only expired sessions are purged."""
        login(self.gate)
        self.clock.advance(minutes=30)
        fresh = login(self.gate, email="bob@example.com").session.token
        self.clock.advance(minutes=31)

        assert asyncio.run(self.gate.purge_expired_sessions()) == 1
        assert list(self.sessions.sessions) == [fresh]

    def test_revocation_store_failure(self):
        """Test that revocation reports an unavailable store."""
        self.sessions.failing = True
        assert asyncio.run(self.gate.revoke_all()).kind == AuthErrorKind.SERVICE_UNAVAILABLE
        assert asyncio.run(self.gate.revoke_session("A" * 43)).kind == AuthErrorKind.SERVICE_UNAVAILABLE


class TestLoginScenario:
    """Lockout, recovery, expiry and revocation for one principal, in order."""

    def test_full_lifecycle(self, gate, clock, alice):
        # (a) five wrong passwords, then locked even with the right one
        for _ in range(5):
            result = login(gate, password="wrong")
        assert result.kind == AuthErrorKind.INVALID_CREDENTIALS
        locked = login(gate)
        assert locked.kind == AuthErrorKind.ACCOUNT_LOCKED
        assert locked.retry_after > timedelta(0)

        # (b) lockout elapses
        clock.advance(seconds=locked.retry_after.total_seconds() + 1)
        result = login(gate)
        assert isinstance(result, LoginResult)
        assert result.principal.id == alice.id
        token = result.session.token

        # (c) valid immediately
        assert validate(gate, token).id == alice.id

        # (d) expired after TTL
        clock.advance(seconds=3601)
        assert validate(gate, token).kind == AuthErrorKind.SESSION_EXPIRED

        # (e) revocation ends every earlier token
        earlier = [login(gate).session.token for _ in range(2)]
        asyncio.run(gate.revoke_all_for_principal(alice.id))
        for old in [token, *earlier]:
            assert validate(gate, old).kind == AuthErrorKind.UNAUTHENTICATED
