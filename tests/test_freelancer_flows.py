import pytest

from edubot.schemas.events import EventKind
from edubot.schemas.platform import Application, CreatorBalance, FreelancerOrder, Transaction, Wallet
from edubot.services.handlers.freelancer import (
    MEMBERSHIP_PLANS,
    handle_freelancer_selection,
    handle_upgrade_plan_confirm,
    handle_upgrade_plan_select,
)
from edubot.services.handlers.payouts import handle_withdraw_amount


class TestMembershipPlans:
    def test_price_labels(self):
        assert MEMBERSHIP_PLANS["free"].price_label == "Free"
        assert MEMBERSHIP_PLANS["creator"].price_label == "$9.99/month"
        assert MEMBERSHIP_PLANS["business"].price_label == "$49.99/month"


class TestFreelancerMenu:
    @pytest.mark.asyncio
    async def test_approved_application(self, make_conversation, make_ctx, choice_event, platform, sender, freelancer):
        platform.get_user.return_value = freelancer
        platform.get_freelancer_application.return_value = Application(
            status="approved", display_name="fay-designs", category="Design"
        )
        conversation = make_conversation("freelancer_menu", linked_user_id=freelancer.id)

        await handle_freelancer_selection(make_ctx(conversation, choice_event("frl_status")))

        body = sender.last["body"]
        assert "Status: Approved" in body
        assert "https://edufiliova.test/freelancer/fay-designs" in body

    @pytest.mark.asyncio
    async def test_orders(self, make_conversation, make_ctx, choice_event, platform, sender, freelancer):
        platform.get_user.return_value = freelancer
        platform.list_freelancer_orders.return_value = [
            FreelancerOrder(id="o1", title="Logo design", status="in_progress", budget=120),
            FreelancerOrder(id="o2", title="Flyer", status="completed", budget=None),
        ]
        conversation = make_conversation("freelancer_menu", linked_user_id=freelancer.id)

        await handle_freelancer_selection(make_ctx(conversation, choice_event("frl_orders")))

        body = sender.last["body"]
        assert "Active: 1" in body
        assert "Completed: 1" in body
        assert "1. Logo design - in progress ($120.00)" in body
        assert sender.last["rows"] == ["order_o1", "order_o2"]

    @pytest.mark.asyncio
    async def test_wallet_and_earnings(self, make_conversation, make_ctx, choice_event, platform, sender, freelancer):
        platform.get_user.return_value = freelancer
        platform.get_wallet.return_value = Wallet(balance=12.0)
        platform.get_creator_balance.return_value = CreatorBalance(available=75.0, pending=10.0, lifetime=400.0)
        platform.list_transactions.return_value = [Transaction(type="refund", amount=5, description="Refund")]
        conversation = make_conversation("freelancer_menu", linked_user_id=freelancer.id)

        await handle_freelancer_selection(make_ctx(conversation, choice_event("frl_wallet")))

        body = sender.last["body"]
        assert "Wallet Balance: $12.00" in body
        assert "Available for Withdrawal: $75.00" in body
        assert "1. +$5.00 - Refund" in body

    @pytest.mark.asyncio
    async def test_withdraw_minimum_is_fifty(self, make_conversation, make_ctx, choice_event, platform, sender, freelancer):
        platform.get_user.return_value = freelancer
        platform.get_creator_balance.return_value = CreatorBalance(available=40.0)
        conversation = make_conversation("freelancer_menu", linked_user_id=freelancer.id)

        await handle_freelancer_selection(make_ctx(conversation, choice_event("frl_withdraw")))

        assert "Minimum withdrawal amount is $50.00" in sender.last["body"]

    @pytest.mark.asyncio
    async def test_withdraw_amount_below_freelancer_minimum(self, make_conversation, make_ctx, text_event, sender):
        conversation = make_conversation("frl_withdraw_amount", {"availableBalance": 300.0, "payoutAccountId": "pa-1"})

        await handle_withdraw_amount(make_ctx(conversation, text_event("20")))

        assert conversation.current_flow == "frl_withdraw_amount"
        assert sender.last["body"].startswith("Minimum withdrawal is $50.00")


class TestUpgradeWizard:
    @pytest.mark.asyncio
    async def test_lists_other_plans(self, make_conversation, make_ctx, choice_event, platform, sender, freelancer):
        platform.get_user.return_value = freelancer
        platform.get_membership_plan.return_value = "creator"
        conversation = make_conversation("freelancer_menu", linked_user_id=freelancer.id)

        await handle_freelancer_selection(make_ctx(conversation, choice_event("frl_upgrade")))

        assert conversation.current_flow == "upgrade_plan_select"
        assert conversation.flow_data == {"currentPlan": "creator"}
        assert sender.last["rows"] == ["plan_free", "plan_pro", "plan_business"]

    @pytest.mark.asyncio
    async def test_highest_plan(self, make_conversation, make_ctx, choice_event, platform, sender, freelancer):
        platform.get_user.return_value = freelancer
        platform.get_membership_plan.return_value = "business"
        conversation = make_conversation("freelancer_menu", linked_user_id=freelancer.id)

        await handle_freelancer_selection(make_ctx(conversation, choice_event("frl_upgrade")))

        assert conversation.current_flow == "freelancer_menu"
        assert "highest plan" in sender.last["body"]

    @pytest.mark.asyncio
    async def test_unknown_plan_treated_as_free(self, make_conversation, make_ctx, choice_event, platform, freelancer):
        platform.get_user.return_value = freelancer
        platform.get_membership_plan.return_value = "legacy_gold"
        conversation = make_conversation("freelancer_menu", linked_user_id=freelancer.id)

        await handle_freelancer_selection(make_ctx(conversation, choice_event("frl_upgrade")))

        assert conversation.flow_data == {"currentPlan": "free"}

    @pytest.mark.asyncio
    async def test_select_paid_plan(self, make_conversation, make_ctx, choice_event, sender):
        conversation = make_conversation("upgrade_plan_select", {"currentPlan": "free"})

        await handle_upgrade_plan_select(make_ctx(conversation, choice_event("plan_pro")))

        assert conversation.current_flow == "upgrade_plan_confirm"
        assert conversation.flow_data == {
            "currentPlan": "free",
            "selectedPlan": "pro",
            "planName": "Pro",
            "monthlyPrice": 24.99,
        }
        assert sender.last["buttons"] == ["upgrade_confirm", "btn_back_menu"]

    @pytest.mark.asyncio
    async def test_select_free_plan(self, make_conversation, make_ctx, choice_event, sender):
        conversation = make_conversation("upgrade_plan_select", {"currentPlan": "creator"})

        await handle_upgrade_plan_select(make_ctx(conversation, choice_event("plan_free")))

        assert conversation.current_flow == "idle"
        assert "No action needed" in sender.last["body"]

    @pytest.mark.asyncio
    async def test_confirm_sends_checkout_link(self, make_conversation, make_ctx, choice_event, sender):
        conversation = make_conversation(
            "upgrade_plan_confirm",
            {"currentPlan": "free", "selectedPlan": "pro", "planName": "Pro", "monthlyPrice": 24.99},
        )

        await handle_upgrade_plan_confirm(make_ctx(conversation, choice_event("upgrade_confirm", kind=EventKind.BUTTON)))

        assert conversation.current_flow == "idle"
        payment_message = sender.sent[-2]["body"]
        assert "https://edufiliova.test/checkout/membership?plan=pro" in payment_message
        assert "$24.99/month" in payment_message
        assert "Pro Plan" in payment_message

    @pytest.mark.asyncio
    async def test_anything_else_returns_to_menu(
        self, make_conversation, make_ctx, text_event, platform, sender, freelancer
    ):
        platform.get_user.return_value = freelancer
        conversation = make_conversation(
            "upgrade_plan_confirm", {"selectedPlan": "pro", "planName": "Pro", "monthlyPrice": 24.99},
            linked_user_id=freelancer.id,
        )

        await handle_upgrade_plan_confirm(make_ctx(conversation, text_event("maybe later")))

        assert conversation.current_flow == "idle"
        assert sender.last["header"] == "Freelancer Menu"
