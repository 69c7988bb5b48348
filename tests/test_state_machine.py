from datetime import datetime, timedelta, timezone

import pytest

from edubot.schemas.drafts import AdminDraft, EmptyDraft, LoginDraft, VoucherDraft
from edubot.services.state_machine import (
    ADMIN_FLOWS,
    DRAFT_BY_FLOW,
    MENU_FLOWS,
    FlowName,
    FlowState,
    InvalidDraftError,
    check_draft,
    coerce_flow,
    draft_class_for,
    draft_for,
    is_admin_flow,
)


class TestFlowName:
    def test_all_flows_are_lowercase_snake_case(self):
        for flow in FlowName:
            assert flow.value == flow.value.lower()
            assert " " not in flow.value

    def test_coerce_known_value(self):
        assert coerce_flow("voucher_amount") == FlowName.VOUCHER_AMOUNT

    def test_coerce_unknown_value(self):
        assert coerce_flow("legacy_quiz_flow") is None
        assert coerce_flow(None) is None

    def test_coerce_passes_enum_through(self):
        assert coerce_flow(FlowName.ADMIN_MENU) is FlowName.ADMIN_MENU


class TestFlowFamilies:
    def test_admin_flows(self):
        assert FlowName.ADMIN_MENU in ADMIN_FLOWS
        assert FlowName.ADMIN_BROADCAST_CONFIRM in ADMIN_FLOWS
        assert FlowName.VOUCHER_AMOUNT not in ADMIN_FLOWS
        assert is_admin_flow(FlowName.ADMIN_DELETE_CONFIRM)
        assert not is_admin_flow(FlowName.IDLE)

    def test_menu_flows_are_not_wizards(self):
        for flow in MENU_FLOWS:
            assert draft_class_for(flow) is EmptyDraft

    def test_every_admin_flow_carries_admin_draft(self):
        for flow in ADMIN_FLOWS:
            assert DRAFT_BY_FLOW[flow] is AdminDraft

    def test_voucher_family(self):
        assert draft_class_for(FlowName.VOUCHER_CONFIRM) is VoucherDraft
        assert draft_class_for(FlowName.VOUCHER_RECIPIENT_EMAIL) is VoucherDraft


class TestCheckDraft:
    def test_matching_draft_passes(self):
        check_draft(FlowName.VOUCHER_AMOUNT, VoucherDraft(amount=10))

    def test_wrong_draft_rejected(self):
        with pytest.raises(InvalidDraftError) as exc_info:
            check_draft(FlowName.VOUCHER_AMOUNT, LoginDraft(user_id="u1"))
        assert exc_info.value.flow == FlowName.VOUCHER_AMOUNT

    def test_idle_accepts_anything(self):
        check_draft(FlowName.IDLE, LoginDraft(user_id="u1"))

    def test_empty_draft_accepted_everywhere(self):
        check_draft(FlowName.ADMIN_MENU, EmptyDraft())


class TestFlowState:
    def test_idle_for_with_naive_timestamp(self):
        state = FlowState(flow=FlowName.LOGIN_EMAIL, last_activity=datetime(2025, 1, 1, 12, 0))
        now = datetime(2025, 1, 1, 12, 45, tzinfo=timezone.utc)
        assert state.idle_for(now) == timedelta(minutes=45)

    def test_idle_for_without_activity(self):
        assert FlowState(flow=FlowName.LOGIN_EMAIL).idle_for() is None

    def test_to_document(self):
        stamp = datetime(2025, 1, 1, tzinfo=timezone.utc)
        state = FlowState(flow=FlowName.VOUCHER_AMOUNT, data={"isGift": True}, last_activity=stamp)
        assert state.to_document() == {
            "flow": "voucher_amount",
            "data": {"isGift": True},
            "lastActivity": "2025-01-01T00:00:00+00:00",
        }

    def test_draft_for_reads_camel_case(self):
        draft = draft_for(FlowName.VOUCHER_CONFIRM, {"isGift": True, "recipientEmail": "a@b.co", "amount": 50})
        assert isinstance(draft, VoucherDraft)
        assert draft.is_gift is True
        assert draft.recipient_email == "a@b.co"
        assert draft.amount == 50


class TestDrafts:
    def test_dump_uses_camel_case_and_skips_unset(self):
        draft = VoucherDraft(is_gift=True, recipient_email="friend@example.com")
        assert draft.dump() == {"isGift": True, "recipientEmail": "friend@example.com"}

    def test_load_ignores_unknown_keys(self):
        draft = LoginDraft.load({"userId": "u1", "somethingElse": 1})
        assert draft.user_id == "u1"

    def test_load_none(self):
        assert VoucherDraft.load(None) == VoucherDraft()

    def test_admin_session_only(self):
        start = datetime(2025, 1, 1, tzinfo=timezone.utc)
        draft = AdminDraft(admin_session_start=start, target_user_id="u9", broadcast_message="hi")
        assert draft.session_only() == AdminDraft(admin_session_start=start)
        assert draft.session_only().dump() == {"adminSessionStart": "2025-01-01T00:00:00Z"}
