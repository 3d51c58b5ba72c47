# Overview: Pytest coverage for users, sessions and the sign-in/sign-out terminal lifecycle.

from datetime import timedelta

import pytest

from conftest import PASSWORD
from fastbill.models import SessionToken
from fastbill.records import CustomerInfo, LineItem, PendingOrder
from fastbill.services import auth_service, session_service
from fastbill.services.auth_service import (
    AuthEvents,
    PasswordValidationError,
    SIGNED_IN,
    SIGNED_OUT,
)
from fastbill.validation import ConflictError
from fastbill.time_utils import utcnow


class TestPasswords:

    @pytest.mark.parametrize("password", ["Sh0rt!", "alllower1!", "ALLUPPER1!", "NoDigits!!", "NoSpecial12"])
    def test_weak_passwords(self, password):
        with pytest.raises(PasswordValidationError):
            auth_service.validate_password_strength(password)

    def test_hash_roundtrip(self):
        hashed = auth_service.hash_password(PASSWORD)
        assert hashed != PASSWORD
        assert auth_service.verify_password(PASSWORD, hashed) is True
        assert auth_service.verify_password("Wrong0ne!", hashed) is False

    def test_malformed_hash_is_a_mismatch(self):
        assert auth_service.verify_password(PASSWORD, "not-a-bcrypt-hash") is False


class TestUsers:

    def test_create_user_starts_free_trial(self, app):
        user = auth_service.create_user("corner_shop", PASSWORD, email="corner@example.com")
        assert user.subscription_tier == "FREE"
        assert user.subscription_status == "trial"
        assert user.trial_started_at is not None

    def test_duplicate_username(self, user_a):
        with pytest.raises(ConflictError):
            auth_service.create_user(user_a.username, PASSWORD)

    def test_authenticate_by_username_or_email(self, user_a):
        assert auth_service.authenticate(user_a.username, PASSWORD).id == user_a.id
        assert auth_service.authenticate(user_a.email, PASSWORD).id == user_a.id
        assert auth_service.authenticate(user_a.username, "Wrong0ne!") is None

    def test_inactive_user_cannot_sign_in(self, user_a, db_session):
        user_a.is_active = False
        db_session.commit()
        assert auth_service.authenticate(user_a.username, PASSWORD) is None


class TestSessions:

    def test_validate_and_revoke(self, user_a):
        session, token = session_service.create_session(user_a.id)

        context = session_service.validate_session(token)
        assert context.tenant_id == user_a.id
        assert session_service.active_session_count(user_a.id) == 1

        assert session_service.revoke_session(token) is not None
        assert session_service.validate_session(token) is None
        assert session_service.active_session_count(user_a.id) == 0

    def test_idle_session_expires(self, user_a, db_session):
        session, token = session_service.create_session(user_a.id)
        session.last_used_at = utcnow() - timedelta(hours=3)
        db_session.commit()

        assert session_service.validate_session(token) is None
        assert db_session.get(SessionToken, session.id).revoked_reason == "Idle timeout"

    def test_token_stored_hashed(self, user_a):
        session, token = session_service.create_session(user_a.id)
        assert session.token_hash == session_service.hash_token(token)
        assert session.token_hash != token


class TestAuthEvents:

    def test_sign_in_opens_and_sign_out_closes_terminal(self, registry, user_a):
        events = AuthEvents()
        events.subscribe(registry.handle_auth_event)

        events.emit(SIGNED_IN, user_a.id)
        assert registry.get(user_a.id) is not None

        events.emit(SIGNED_OUT, user_a.id)
        assert registry.get(user_a.id) is None

    def test_failing_listener_is_isolated(self):
        events = AuthEvents()
        seen = []

        def broken(event, user_id):
            raise RuntimeError("boom")

        events.subscribe(broken)
        unsubscribe = events.subscribe(lambda event, user_id: seen.append((event, user_id)))
        events.emit(SIGNED_IN, 1)
        unsubscribe()
        events.emit(SIGNED_OUT, 1)

        assert seen == [(SIGNED_IN, 1)]

    def test_sign_out_keeps_queue_in_storage(self, registry, user_a):
        terminal = registry.open(user_a.id)
        terminal.connectivity.report(False)
        terminal.queue_offline_order(PendingOrder(
            local_id="1",
            customer=CustomerInfo(name="Asha", phone="9000000001"),
            items=[LineItem(product_id=1, name="Pen", quantity=1, unit_price_cents=100)],
            total_cents=100,
        ))

        registry.close(user_a.id)
        reopened = registry.open(user_a.id)

        assert [o.local_id for o in reopened.pending.list()] == ["1"]
        assert reopened.sync.status == "pending"
