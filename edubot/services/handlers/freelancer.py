"""Freelancer menu actions and the membership upgrade wizard."""

from dataclasses import dataclass

from edubot.schemas.drafts import UpgradeDraft
from edubot.schemas.outbound import Button, ListRow, ListSection
from edubot.services.flow_executor import FlowContext, registry
from edubot.services.handlers.menus import send_freelancer_menu, send_new_user_menu, sign_out
from edubot.services.handlers.payouts import FREELANCER_PAYOUTS, start_withdrawal
from edubot.services.state_machine import FlowName

ACTIVE_ORDER_STATUSES = ("active", "pending", "in_progress", "waiting_review")

BACK_TO_MENU = Button(id="btn_back_menu", title="Back to Menu")


@dataclass(frozen=True)
class MembershipPlan:
    name: str
    monthly_price: float
    features: tuple[str, ...]

    @property
    def price_label(self) -> str:
        return f"${self.monthly_price:g}/month" if self.monthly_price > 0 else "Free"


MEMBERSHIP_PLANS = {
    "free": MembershipPlan("Free", 0, ("Basic profile", "5 downloads/day", "Limited uploads")),
    "creator": MembershipPlan(
        "Creator", 9.99, ("Enhanced profile", "30 downloads/day", "Priority listing", "1 ad/year")
    ),
    "pro": MembershipPlan("Pro", 24.99, ("Premium profile", "Unlimited downloads", "Featured listing", "3 ads/year")),
    "business": MembershipPlan(
        "Business", 49.99, ("Business profile", "Unlimited everything", "Top listing", "Unlimited ads")
    ),
}
HIGHEST_PLAN = "business"


async def handle_freelancer_selection(ctx: FlowContext) -> None:
    user = await ctx.linked_user()
    if user is None:
        await send_new_user_menu(ctx)
        return

    selection = ctx.event.selection
    if selection == "frl_status":
        await show_application_status(ctx, user.id)
    elif selection == "frl_orders":
        await show_orders(ctx, user.id)
    elif selection == "frl_wallet":
        await show_wallet_and_earnings(ctx, user.id)
    elif selection == "frl_upgrade":
        await start_upgrade(ctx, user.id)
    elif selection == "frl_withdraw":
        await start_withdrawal(ctx, user.id, FREELANCER_PAYOUTS)
    elif selection == "frl_help":
        await show_freelancer_help(ctx)
    elif selection == "frl_signout":
        await sign_out(ctx)
    else:
        await send_freelancer_menu(ctx, user.name)


async def show_application_status(ctx: FlowContext, user_id: str) -> None:
    application = await ctx.platform.get_freelancer_application(user_id)
    if application is None:
        await ctx.send_buttons(
            "You haven't submitted a freelancer application yet.\n\nJoin our community of creative professionals!",
            [BACK_TO_MENU],
            header="Application Status",
        )
        await ctx.send_text(f"Apply at: {ctx.site_url('/apply/freelancer')}")
        return

    status = {"approved": "Approved", "rejected": "Rejected"}.get(application.status, "Pending Review")
    lines = [
        "Application Status",
        "",
        f"Status: {status}",
        f"Display Name: {application.display_name or '-'}",
        f"Category: {application.category or '-'}",
    ]
    if application.submitted_at:
        lines.append(f"Submitted: {application.submitted_at:%d/%m/%Y}")
    if application.status == "rejected" and application.notes:
        lines += ["", "Reason:", application.notes]
    if application.status == "approved":
        lines += ["", "Your profile is live!", f"View it: {ctx.site_url(f'/freelancer/{application.display_name}')}"]

    await ctx.send_buttons("\n".join(lines), [BACK_TO_MENU], header="Freelancer Status")


def _budget(value) -> str:
    return f"${value:.2f}" if value else "TBD"


async def show_orders(ctx: FlowContext, user_id: str) -> None:
    orders = (await ctx.platform.list_freelancer_orders(user_id))[:10]
    if not orders:
        await ctx.send_buttons(
            "You don't have any orders yet.\n\nComplete your profile and portfolio to start receiving orders!",
            [BACK_TO_MENU],
            header="My Orders",
        )
        return

    active = [o for o in orders if o.status in ACTIVE_ORDER_STATUSES]
    completed = [o for o in orders if o.status == "completed"]

    lines = ["Your Orders", "", f"Active: {len(active)}", f"Completed: {len(completed)}"]
    if active:
        lines += ["", "Active Orders:"]
        for i, order in enumerate(active[:5], start=1):
            lines.append(f"{i}. {order.title[:20]} - {order.status.replace('_', ' ')} ({_budget(order.budget)})")

    rows = [
        ListRow(
            id=f"order_{o.id}",
            title=o.title,
            description=f"{o.status.replace('_', ' ')} - ${o.budget or 0:.2f}",
        )
        for o in orders
    ]
    await ctx.send_list("\n".join(lines), "View Orders", [ListSection(title="All Orders", rows=rows)], header="Orders")


async def show_wallet_and_earnings(ctx: FlowContext, user_id: str) -> None:
    wallet = await ctx.platform.get_wallet(user_id)
    balance = await ctx.platform.get_creator_balance(user_id)
    transactions = await ctx.platform.list_transactions(user_id, limit=5)

    lines = [
        "Wallet & Earnings",
        "",
        f"Wallet Balance: ${wallet.balance:.2f}",
        f"Available for Withdrawal: ${balance.available:.2f}",
        f"Pending: ${balance.pending:.2f}",
        f"Lifetime Earnings: ${balance.lifetime:.2f}",
    ]
    if transactions:
        lines += ["", "Recent Activity:"]
        for i, t in enumerate(transactions, start=1):
            sign = "+" if t.is_credit else "-"
            lines.append(f"{i}. {sign}${t.amount:.2f} - {t.description[:20]}")

    await ctx.send_buttons(
        "\n".join(lines),
        [Button(id="frl_withdraw", title="Withdraw"), BACK_TO_MENU],
        header="Wallet",
    )


async def show_freelancer_help(ctx: FlowContext) -> None:
    await ctx.send_buttons(
        "❓ Freelancer Help & Support\n\n"
        "• For portfolio help, reply PORTFOLIO\n"
        "• For payment issues, reply PAYMENT\n"
        "• For client issues, reply CLIENT\n\n"
        f"Visit our freelancer resources:\n{ctx.site_url('/freelancer-resources')}",
        [Button(id="help_contact", title="Contact Support"), BACK_TO_MENU],
        header="❓ Help",
    )


# --- membership upgrade ----------------------------------------------------


def _plan_summary(plan: MembershipPlan) -> list[str]:
    return [f"Your Plan: {plan.name}", "", "Current Features:", *(f"• {f}" for f in plan.features), ""]


async def start_upgrade(ctx: FlowContext, user_id: str) -> None:
    current = await ctx.platform.get_membership_plan(user_id)
    if current not in MEMBERSHIP_PLANS:
        current = "free"
    summary = "\n".join(_plan_summary(MEMBERSHIP_PLANS[current]))

    if current == HIGHEST_PLAN:
        await ctx.send_buttons(summary + "\nYou're on the highest plan!", [BACK_TO_MENU], header="Your Plan")
        return

    rows = [
        ListRow(id=f"plan_{key}", title=plan.name, description=plan.price_label)
        for key, plan in MEMBERSHIP_PLANS.items()
        if key != current
    ]
    ctx.update_flow(FlowName.UPGRADE_PLAN_SELECT, UpgradeDraft(current_plan=current))
    await ctx.send_list(
        summary + "\nSelect a plan to upgrade:",
        "View Plans",
        [ListSection(title="Available Plans", rows=rows)],
        header="Upgrade Plan",
    )


@registry.handles(FlowName.UPGRADE_PLAN_SELECT)
async def handle_upgrade_plan_select(ctx: FlowContext) -> None:
    choice = ctx.event.choice_id or ""
    if not choice.startswith("plan_"):
        await ctx.send_text("Please select a plan from the list.")
        return

    key = choice[len("plan_") :]
    plan = MEMBERSHIP_PLANS.get(key)
    if plan is None:
        await ctx.send_text("Invalid plan selection. Please try again.")
        return

    if plan.monthly_price == 0:
        ctx.reset()
        await ctx.send_text(
            "You're already eligible for the Free plan. No action needed!\n\nType MENU to return to the main menu."
        )
        return

    draft = ctx.draft(UpgradeDraft)
    ctx.update_flow(
        FlowName.UPGRADE_PLAN_CONFIRM,
        draft.model_copy(update={"selected_plan": key, "plan_name": plan.name, "monthly_price": plan.monthly_price}),
    )
    features = "\n".join(f"• {f}" for f in plan.features)
    await ctx.send_buttons(
        f"Upgrade to {plan.name}\n\nPrice: {plan.price_label}\n\nFeatures:\n{features}\n\nProceed with upgrade?",
        [Button(id="upgrade_confirm", title="Upgrade Now"), Button(id="btn_back_menu", title="Cancel")],
        header="Confirm Upgrade",
    )


@registry.handles(FlowName.UPGRADE_PLAN_CONFIRM)
async def handle_upgrade_plan_confirm(ctx: FlowContext) -> None:
    draft = ctx.draft(UpgradeDraft)
    if ctx.event.choice_id != "upgrade_confirm" or not draft.selected_plan:
        ctx.reset()
        user = await ctx.linked_user()
        await send_freelancer_menu(ctx, user.name if user else "Freelancer")
        return

    ctx.reset()
    ctx.log.info("Membership checkout sent", context={"plan": draft.selected_plan})
    await ctx.sender.send_payment_link(
        ctx.address,
        ctx.site_url(f"/checkout/membership?plan={draft.selected_plan}"),
        f"${draft.monthly_price:g}/month",
        f"{draft.plan_name} Plan",
    )
    await ctx.send_text("Complete the payment to activate your new plan.\n\nType MENU to return to the main menu.")
