from datetime import datetime, timedelta, timezone

from edubot.schemas.drafts import AdminDraft
from edubot.services.session_expiry import SessionExpiryMonitor, admin_session_expired
from edubot.services.state_machine import FlowName, FlowState

NOW = datetime(2025, 3, 10, 12, 0, tzinfo=timezone.utc)


class TestIsStale:
    def setup_method(self):
        self.monitor = SessionExpiryMonitor(timeout=timedelta(minutes=30), clock=lambda: NOW)

    def test_idle_never_expires(self):
        state = FlowState(flow=FlowName.IDLE, last_activity=NOW - timedelta(days=3))
        assert not self.monitor.is_stale(state)

    def test_recent_wizard_is_fresh(self):
        state = FlowState(flow=FlowName.VOUCHER_AMOUNT, last_activity=NOW - timedelta(minutes=29))
        assert not self.monitor.is_stale(state)

    def test_old_wizard_is_stale(self):
        state = FlowState(flow=FlowName.VOUCHER_AMOUNT, last_activity=NOW - timedelta(minutes=31))
        assert self.monitor.is_stale(state)

    def test_wizard_without_activity_is_stale(self):
        assert self.monitor.is_stale(FlowState(flow=FlowName.LOGIN_PASSWORD))


class TestEnforce:
    def test_stale_conversation_reset(self, db_session, make_conversation):
        monitor = SessionExpiryMonitor(timeout=timedelta(minutes=30), clock=lambda: NOW)
        conversation = make_conversation(
            "voucher_confirm", {"amount": 50}, last_activity=NOW - timedelta(hours=2)
        )

        result, expired = monitor.enforce(db_session, conversation)

        assert expired is True
        assert result is conversation
        assert conversation.current_flow == "idle"
        assert conversation.flow_data == {}
        assert conversation.last_activity_at == NOW
        db_session.refresh.assert_called_once_with(conversation)

    def test_fresh_conversation_untouched(self, db_session, make_conversation):
        monitor = SessionExpiryMonitor(timeout=timedelta(minutes=30), clock=lambda: NOW)
        conversation = make_conversation("voucher_confirm", {"amount": 50}, last_activity=NOW - timedelta(minutes=5))

        _, expired = monitor.enforce(db_session, conversation)

        assert expired is False
        assert conversation.current_flow == "voucher_confirm"
        db_session.flush.assert_not_called()


class TestAdminSessionExpired:
    def test_within_timeout(self):
        draft = AdminDraft(admin_session_start=NOW - timedelta(minutes=14))
        assert not admin_session_expired(draft, NOW, timedelta(minutes=15))

    def test_past_timeout(self):
        draft = AdminDraft(admin_session_start=NOW - timedelta(minutes=16))
        assert admin_session_expired(draft, NOW, timedelta(minutes=15))

    def test_missing_start_counts_as_expired(self):
        assert admin_session_expired(AdminDraft(), NOW, timedelta(minutes=15))

    def test_naive_start_is_treated_as_utc(self):
        draft = AdminDraft(admin_session_start=datetime(2025, 3, 10, 11, 50))
        assert not admin_session_expired(draft, NOW, timedelta(minutes=15))
