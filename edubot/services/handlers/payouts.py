"""Creator withdrawal wizard, shared by teachers and freelancers.

The two roles differ only in the minimum amount and in which flow names
carry the draft.
"""

from dataclasses import dataclass
from typing import Optional

from edubot.schemas.drafts import WithdrawalDraft
from edubot.schemas.outbound import Button
from edubot.services.flow_executor import FlowContext, registry
from edubot.services.state_machine import FlowName

PAYOUT_METHODS = {
    "payout_bank": "bank",
    "payout_paypal": "paypal",
    "payout_mobile": "mobile money",
}

BACK_TO_MENU = Button(id="btn_back_menu", title="Back to Menu")


@dataclass(frozen=True)
class PayoutPolicy:
    minimum: float
    amount_flow: FlowName
    method_flow: FlowName
    low_balance_hint: str


TEACHER_PAYOUTS = PayoutPolicy(
    minimum=10.0,
    amount_flow=FlowName.WITHDRAW_AMOUNT,
    method_flow=FlowName.WITHDRAW_METHOD,
    low_balance_hint="Keep teaching to earn more!",
)

FREELANCER_PAYOUTS = PayoutPolicy(
    minimum=50.0,
    amount_flow=FlowName.FRL_WITHDRAW_AMOUNT,
    method_flow=FlowName.FRL_WITHDRAW_METHOD,
    low_balance_hint="Keep creating to earn more!",
)

_POLICY_BY_FLOW = {
    flow: policy
    for policy in (TEACHER_PAYOUTS, FREELANCER_PAYOUTS)
    for flow in (policy.amount_flow, policy.method_flow)
}


def _money(amount: float) -> str:
    return f"${amount:.2f}"


def parse_amount(text: str) -> Optional[float]:
    digits = "".join(ch for ch in text if ch.isdigit() or ch == ".")
    try:
        return float(digits)
    except ValueError:
        return None


async def start_withdrawal(ctx: FlowContext, user_id: str, policy: PayoutPolicy) -> None:
    balance = await ctx.platform.get_creator_balance(user_id)
    if balance.available < policy.minimum:
        await ctx.send_buttons(
            "💳 Withdraw Funds\n\n"
            f"Your available balance: {_money(balance.available)}\n\n"
            f"Minimum withdrawal amount is {_money(policy.minimum)}\n\n"
            f"{policy.low_balance_hint}",
            [BACK_TO_MENU],
            header="💳 Withdraw",
        )
        return

    account = await ctx.platform.get_default_payout_account(user_id)
    ctx.update_flow(
        policy.amount_flow,
        WithdrawalDraft(available_balance=balance.available, payout_account_id=account.id if account else None),
    )

    lines = ["💳 Withdraw Funds", "", f"💵 Available: {_money(balance.available)}"]
    if account:
        lines.append(f"🏦 Payout Method: {account.account_name}")
    lines += ["", f"Enter the amount to withdraw (minimum ${policy.minimum:g}):"]
    await ctx.send_text("\n".join(lines))


@registry.handles(FlowName.WITHDRAW_AMOUNT, FlowName.FRL_WITHDRAW_AMOUNT)
async def handle_withdraw_amount(ctx: FlowContext) -> None:
    policy = _POLICY_BY_FLOW[ctx.state.flow]
    draft = ctx.draft(WithdrawalDraft)
    available = draft.available_balance or 0.0

    amount = parse_amount(ctx.event.raw_text)
    if amount is None or amount < policy.minimum:
        await ctx.send_text(f"Minimum withdrawal is {_money(policy.minimum)}. Please enter a valid amount:")
        return
    if amount > available:
        await ctx.send_text(f"Insufficient balance. Your available balance is {_money(available)}:")
        return

    if not draft.payout_account_id:
        ctx.update_flow(policy.method_flow, draft.model_copy(update={"amount": amount}))
        await ctx.send_buttons(
            "Select your payout method:",
            [
                Button(id="payout_bank", title="🏦 Bank Transfer"),
                Button(id="payout_paypal", title="💳 PayPal"),
                Button(id="payout_mobile", title="📱 Mobile Money"),
            ],
            header="💳 Payout Method",
        )
        return

    await _submit_withdrawal(ctx, amount, draft.payout_account_id)


@registry.handles(FlowName.WITHDRAW_METHOD, FlowName.FRL_WITHDRAW_METHOD)
async def handle_withdraw_method(ctx: FlowContext) -> None:
    method = PAYOUT_METHODS.get(ctx.event.choice_id or "")
    if method is None:
        await ctx.send_text("Please select a payout method.")
        return

    ctx.reset()
    await ctx.send_text(
        f"To complete your withdrawal, please set up your {method} details on our website:\n\n"
        f"{ctx.site_url('/dashboard/payout-settings')}\n\n"
        "Once set up, you can request withdrawals here."
    )


async def _submit_withdrawal(ctx: FlowContext, amount: float, payout_account_id: str) -> None:
    result = await ctx.platform.request_payout(ctx.linked_user_id, amount, payout_account_id)
    if not result.ok:
        ctx.log.warning("Payout request refused", context={"error": result.error, "code": result.error_code})
        ctx.reset()
        await ctx.send_buttons(
            f"We couldn't submit your withdrawal: {result.error}",
            [BACK_TO_MENU],
            header="Withdraw",
        )
        return

    account = await ctx.platform.get_default_payout_account(ctx.linked_user_id)
    ctx.reset()
    ctx.log.info("Payout requested", context={"amount": amount, "payout_request_id": result.value.id})
    await ctx.send_buttons(
        "✅ Withdrawal Request Submitted!\n\n"
        f"💵 Amount: {_money(amount)}\n"
        f"🏦 Method: {account.account_name if account else 'Default'}\n\n"
        "Your request is being processed. Payouts are typically completed by the 5th of each month.",
        [BACK_TO_MENU],
        header="✅ Request Sent",
    )
