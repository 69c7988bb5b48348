"""Student menu actions and the gift voucher wizard."""

from edubot.schemas.drafts import VoucherDraft
from edubot.schemas.outbound import Button, ListRow, ListSection
from edubot.schemas.platform import Wallet
from edubot.services.flow_executor import FlowContext, registry
from edubot.services.handlers.menus import back_to_menu, send_new_user_menu, send_student_menu, sign_out
from edubot.services.state_machine import FlowName

PRESET_AMOUNTS = {"voucher_10": 10.0, "voucher_25": 25.0, "voucher_50": 50.0, "voucher_100": 100.0}
MIN_CUSTOM_AMOUNT, MAX_CUSTOM_AMOUNT = 5.0, 500.0
MAX_PERSONAL_MESSAGE = 200
REFERRAL_REWARD_THRESHOLD = 5

APP_LINKS = {
    "app_ios": ("iPhone", "https://apps.apple.com/app/edufiliova"),
    "app_android": ("Android", "https://play.google.com/store/apps/details?id=com.edufiliova"),
    "app_huawei": ("Huawei", "https://appgallery.huawei.com/app/edufiliova"),
}

AMOUNT_ROWS = [
    ListRow(id="voucher_10", title="$10 Voucher", description="Perfect for trying out"),
    ListRow(id="voucher_25", title="$25 Voucher", description="Great starter value"),
    ListRow(id="voucher_50", title="$50 Voucher", description="Best value for courses"),
    ListRow(id="voucher_100", title="$100 Voucher", description="Premium gift"),
    ListRow(id="voucher_custom", title="Custom Amount", description="Enter your own amount"),
]


def _money(amount: float) -> str:
    return f"${amount:.2f}"


async def handle_student_selection(ctx: FlowContext) -> None:
    user = await ctx.linked_user()
    if user is None:
        await send_new_user_menu(ctx)
        return

    selection = ctx.event.selection
    if selection == "stu_courses":
        await show_courses(ctx, user.id)
    elif selection == "stu_voucher":
        await start_voucher(ctx)
    elif selection == "stu_wallet":
        await show_wallet(ctx, user.id)
    elif selection == "stu_certificates":
        await show_certificates(ctx, user.id)
    elif selection == "stu_referral":
        await show_referral(ctx, user.id)
    elif selection == "stu_download":
        await start_download_app(ctx)
    elif selection == "stu_help":
        await show_student_help(ctx)
    elif selection == "stu_signout":
        await sign_out(ctx)
    else:
        await send_student_menu(ctx, user.name)


async def show_courses(ctx: FlowContext, user_id: str) -> None:
    enrollments = (await ctx.platform.list_enrollments(user_id))[:10]
    if not enrollments:
        await ctx.send_buttons(
            "You haven't enrolled in any courses yet.\n\nBrowse our course catalog to start learning!",
            [Button(id="btn_browse_courses", title="Browse Courses"), Button(id="btn_back_menu", title="Back to Menu")],
            header="My Courses",
        )
        return

    rows = [
        ListRow(
            id=f"course_view_{e.course_id}",
            title=e.course_title or "Untitled Course",
            description=f"Progress: {e.progress}%",
        )
        for e in enrollments
    ]
    await ctx.send_list(
        f"You are enrolled in {len(enrollments)} course(s).\n\nSelect a course to view details:",
        "View Courses",
        [ListSection(title="Your Courses", rows=rows)],
        header="My Courses",
        footer="Tap to see progress",
    )


async def show_wallet(ctx: FlowContext, user_id: str) -> None:
    wallet = await ctx.platform.get_wallet(user_id)
    transactions = await ctx.platform.list_transactions(user_id, limit=5)

    lines = ["Your Wallet", "", f"Current Balance: {_money(wallet.balance)}", ""]
    if transactions:
        lines.append("Recent Transactions:")
        for i, t in enumerate(transactions, start=1):
            sign = "+" if t.is_credit else "-"
            lines.append(f"{i}. {sign}{_money(t.amount)} - {t.description}")
    else:
        lines.append("No recent transactions.")

    await ctx.send_buttons(
        "\n".join(lines),
        [Button(id="wallet_add_funds", title="Add Funds"), Button(id="btn_back_menu", title="Back to Menu")],
        header="Wallet",
    )


async def show_certificates(ctx: FlowContext, user_id: str) -> None:
    certificates = (await ctx.platform.list_certificates(user_id))[:10]
    if not certificates:
        await ctx.send_buttons(
            "You haven't earned any certificates yet.\n\nComplete a course to receive your certificate!",
            [Button(id="btn_browse_courses", title="Browse Courses"), Button(id="btn_back_menu", title="Back to Menu")],
            header="Certificates",
        )
        return

    rows = [
        ListRow(
            id=f"cert_{c.id}",
            title=c.course_title,
            description=f"Issued: {c.issue_date:%d/%m/%Y}" if c.issue_date else "View Certificate",
        )
        for c in certificates
    ]
    await ctx.send_list(
        f"You have {len(certificates)} certificate(s)!\n\nSelect one to view or download:",
        "View Certificates",
        [ListSection(title="Your Certificates", rows=rows)],
        header="Certificates",
    )


async def show_referral(ctx: FlowContext, user_id: str) -> None:
    info = await ctx.platform.get_referral_info(user_id)
    rewards = info.referral_count // REFERRAL_REWARD_THRESHOLD
    next_reward_in = REFERRAL_REWARD_THRESHOLD - info.referral_count % REFERRAL_REWARD_THRESHOLD

    await ctx.send_buttons(
        "Referral Program\n\n"
        f"Your Referral Code:\n{info.code}\n\n"
        f"Share this link:\n{ctx.site_url(f'/register?ref={info.code}')}\n\n"
        "Your Stats:\n"
        f"• Friends Referred: {info.referral_count}\n"
        f"• Rewards Earned: {rewards}\n"
        f"• Next Reward In: {next_reward_in} more referrals\n\n"
        "Earn $5 credit for every 5 friends who sign up using your code!",
        [Button(id="ref_share", title="Share Link"), Button(id="btn_back_menu", title="Back to Menu")],
        header="Referrals",
    )


async def show_student_help(ctx: FlowContext) -> None:
    await ctx.send_buttons(
        "Help & Support\n\nHow can we help you?\n\n"
        "• For account issues, reply ACCOUNT\n"
        "• For payment issues, reply PAYMENT\n"
        "• For technical help, reply TECH\n\n"
        f"Or visit our help center:\n{ctx.site_url('/help')}",
        [Button(id="help_contact", title="Contact Support"), Button(id="btn_back_menu", title="Back to Menu")],
        header="Help",
    )


# --- download app ----------------------------------------------------------


async def start_download_app(ctx: FlowContext) -> None:
    ctx.update_flow(FlowName.DOWNLOAD_APP)
    await ctx.send_buttons(
        "Download EduFiliova App\n\nGet the full experience with our mobile app!\n\nSelect your device:",
        [
            Button(id="app_ios", title="iPhone"),
            Button(id="app_android", title="Android"),
            Button(id="app_huawei", title="Huawei"),
        ],
        header="Download App",
    )


@registry.handles(FlowName.DOWNLOAD_APP)
async def handle_download_app(ctx: FlowContext) -> None:
    choice = APP_LINKS.get(ctx.event.selection)
    if choice is None:
        await start_download_app(ctx)
        return

    platform, link = choice
    ctx.reset()
    await ctx.send_text(
        f"Download EduFiliova for {platform}\n\n{link}\n\n"
        f"Note: Mobile app coming soon! For now, use our web app:\n{ctx.site_url()}\n\n"
        "Type MENU to return to the main menu."
    )


# --- voucher wizard --------------------------------------------------------


async def start_voucher(ctx: FlowContext) -> None:
    ctx.update_flow(FlowName.VOUCHER_TYPE, VoucherDraft())
    await ctx.send_buttons(
        "Gift Vouchers\n\nVouchers can be used for courses, subscriptions, and more!\n\nWho is this voucher for?",
        [Button(id="voucher_self", title="For Myself"), Button(id="voucher_gift", title="Gift Someone")],
        header="Buy Voucher",
    )


async def send_amount_options(ctx: FlowContext) -> None:
    await ctx.send_list(
        "Select the voucher amount:",
        "Select Amount",
        [ListSection(title="Voucher Amounts", rows=AMOUNT_ROWS)],
        header="Select Amount",
    )


@registry.handles(FlowName.VOUCHER_TYPE)
async def handle_voucher_type(ctx: FlowContext) -> None:
    selection = ctx.event.selection
    if selection == "voucher_gift" or "gift" in selection:
        ctx.update_flow(FlowName.VOUCHER_RECIPIENT_EMAIL, VoucherDraft(is_gift=True))
        await ctx.send_text("Who would you like to gift this voucher to?\n\nPlease enter the recipient's email address:")
        return

    ctx.update_flow(FlowName.VOUCHER_AMOUNT, VoucherDraft(is_gift=False))
    await send_amount_options(ctx)


@registry.handles(FlowName.VOUCHER_RECIPIENT_EMAIL)
async def handle_voucher_recipient_email(ctx: FlowContext) -> None:
    email = ctx.event.raw_text.lower()
    if "@" not in email or "." not in email:
        await ctx.send_text("Please enter a valid email address:")
        return

    draft = ctx.draft(VoucherDraft)
    ctx.update_flow(FlowName.VOUCHER_RECIPIENT_NAME, draft.model_copy(update={"recipient_email": email}))
    await ctx.send_text("What is the recipient's name?\n\n(This will appear on the voucher)")


@registry.handles(FlowName.VOUCHER_RECIPIENT_NAME)
async def handle_voucher_recipient_name(ctx: FlowContext) -> None:
    name = ctx.event.raw_text
    if len(name) < 2:
        await ctx.send_text("Please enter a valid name:")
        return

    draft = ctx.draft(VoucherDraft)
    ctx.update_flow(FlowName.VOUCHER_MESSAGE, draft.model_copy(update={"recipient_name": name}))
    await _ask_personal_message(ctx)


async def _ask_personal_message(ctx: FlowContext) -> None:
    await ctx.send_buttons(
        "Would you like to add a personal message?\n\n(This will be included in the gift email)",
        [Button(id="voucher_add_msg", title="Add Message"), Button(id="voucher_skip_msg", title="Skip")],
    )


@registry.handles(FlowName.VOUCHER_MESSAGE)
async def handle_voucher_message(ctx: FlowContext) -> None:
    draft = ctx.draft(VoucherDraft)
    choice = ctx.event.choice_id

    if choice == "voucher_skip_msg":
        ctx.update_flow(FlowName.VOUCHER_AMOUNT, draft.model_copy(update={"personal_message": None}))
        await send_amount_options(ctx)
        return
    if choice == "voucher_add_msg":
        await ctx.send_text("Enter your personal message for the recipient:\n\n(Max 200 characters)")
        return
    if not ctx.event.raw_text:
        await _ask_personal_message(ctx)
        return

    message = ctx.event.raw_text[:MAX_PERSONAL_MESSAGE]
    ctx.update_flow(FlowName.VOUCHER_AMOUNT, draft.model_copy(update={"personal_message": message}))
    await send_amount_options(ctx)


@registry.handles(FlowName.VOUCHER_AMOUNT)
async def handle_voucher_amount(ctx: FlowContext) -> None:
    draft = ctx.draft(VoucherDraft)
    selection = ctx.event.choice_id

    if selection == "voucher_custom":
        ctx.update_flow(FlowName.VOUCHER_CUSTOM_AMOUNT, draft)
        await ctx.send_text("Enter your custom amount in USD (minimum $5, maximum $500):\n\n(Example: 75)")
        return

    amount = PRESET_AMOUNTS.get(selection or "")
    if amount is None:
        await send_amount_options(ctx)
        return

    await confirm_voucher(ctx, draft.model_copy(update={"amount": amount}))


@registry.handles(FlowName.VOUCHER_CUSTOM_AMOUNT)
async def handle_voucher_custom_amount(ctx: FlowContext) -> None:
    digits = "".join(ch for ch in ctx.event.raw_text if ch.isdigit() or ch == ".")
    try:
        amount = float(digits)
    except ValueError:
        amount = None
    if amount is None or not MIN_CUSTOM_AMOUNT <= amount <= MAX_CUSTOM_AMOUNT:
        await ctx.send_text("Please enter a valid amount between $5 and $500:")
        return

    await confirm_voucher(ctx, ctx.draft(VoucherDraft).model_copy(update={"amount": amount}))


async def _wallet(ctx: FlowContext) -> Wallet:
    if not ctx.linked_user_id:
        return Wallet()
    return await ctx.platform.get_wallet(ctx.linked_user_id)


async def confirm_voucher(ctx: FlowContext, draft: VoucherDraft) -> None:
    ctx.update_flow(FlowName.VOUCHER_CONFIRM, draft)
    wallet = await _wallet(ctx)

    lines = ["Voucher Summary", "", f"Amount: {_money(draft.amount)}"]
    if draft.is_gift:
        lines.append(f"Recipient: {draft.recipient_email}")
        lines.append(f"Name: {draft.recipient_name}")
        if draft.personal_message:
            lines.append(f'Message: "{draft.personal_message}"')
    else:
        lines.append("Voucher will be sent to your email")
    balance_line = f"Wallet Balance: {_money(wallet.balance)}"
    if wallet.balance >= draft.amount:
        balance_line += " (Sufficient)"
    lines += ["", balance_line, "", "How would you like to pay?"]

    await ctx.send_list(
        "\n".join(lines),
        "Payment Method",
        [
            ListSection(
                title="Payment Options",
                rows=[
                    ListRow(
                        id="voucher_pay_wallet", title="Pay with Wallet", description=f"Balance: {_money(wallet.balance)}"
                    ),
                    ListRow(id="voucher_pay_card", title="Pay with Card", description="Credit/Debit Card via Stripe"),
                    ListRow(id="voucher_cancel", title="Cancel", description="Return to menu"),
                ],
            )
        ],
        header="Confirm Voucher",
    )


async def _send_insufficient_funds(ctx: FlowContext, balance: float, amount: float) -> None:
    await ctx.send_buttons(
        "Insufficient wallet balance.\n\n"
        f"Your balance: {_money(balance)}\nVoucher cost: {_money(amount)}\n\n"
        "Would you like to add funds or pay with card?",
        [Button(id="wallet_add_funds", title="Add Funds"), Button(id="voucher_pay_card", title="Pay with Card")],
    )


@registry.handles(FlowName.VOUCHER_CONFIRM)
async def handle_voucher_confirm(ctx: FlowContext) -> None:
    draft = ctx.draft(VoucherDraft)
    selection = ctx.event.choice_id

    if selection == "voucher_cancel":
        await back_to_menu(ctx)
        return
    if draft.amount is None or not ctx.linked_user_id:
        await back_to_menu(ctx)
        return
    if selection == "voucher_pay_wallet":
        await _pay_with_wallet(ctx, draft)
    elif selection in ("voucher_pay", "voucher_pay_card"):
        await _pay_with_card(ctx, draft)
    else:
        await confirm_voucher(ctx, draft)


def _voucher_request(draft: VoucherDraft) -> dict:
    return draft.model_dump(exclude_none=True)


async def _pay_with_wallet(ctx: FlowContext, draft: VoucherDraft) -> None:
    wallet = await _wallet(ctx)
    if wallet.balance < draft.amount:
        await _send_insufficient_funds(ctx, wallet.balance, draft.amount)
        return

    result = await ctx.platform.create_voucher(ctx.linked_user_id, _voucher_request(draft), "wallet")
    if result.has_code("insufficient_funds"):
        await _send_insufficient_funds(ctx, wallet.balance, draft.amount)
        return
    if not result.ok:
        ctx.log.warning("Voucher purchase refused", context={"error": result.error, "code": result.error_code})
        ctx.reset()
        await ctx.send_text(f"We couldn't complete your purchase: {result.error}\n\nType MENU to return to the main menu.")
        return

    voucher = result.value
    new_balance = voucher.new_wallet_balance if voucher.new_wallet_balance is not None else wallet.balance - draft.amount
    ctx.reset()
    ctx.log.info("Voucher paid from wallet", context={"voucher_code": voucher.code, "amount": draft.amount})
    await ctx.send_text(
        "Payment Successful!\n\n"
        f"Paid: {_money(draft.amount)} from wallet\n"
        f"New Balance: {_money(new_balance)}\n"
        f"Voucher Code: {voucher.code}\n\n"
        f"The voucher has been sent to {draft.recipient_email if draft.is_gift else 'your email'}.\n\n"
        "Type MENU to return to the main menu."
    )


async def _pay_with_card(ctx: FlowContext, draft: VoucherDraft) -> None:
    result = await ctx.platform.create_voucher(ctx.linked_user_id, _voucher_request(draft), "card")
    if not result.ok:
        ctx.log.warning("Card voucher refused", context={"error": result.error, "code": result.error_code})
        ctx.reset()
        await ctx.send_text(
            "Payment system is currently unavailable. Please try again later or purchase through our website."
        )
        return

    voucher = result.value
    payment_url = voucher.checkout_url or ctx.site_url(f"/checkout/voucher?code={voucher.code}&amount={draft.amount:g}")
    await ctx.sender.send_payment_link(ctx.address, payment_url, _money(draft.amount), "Gift Voucher")
    ctx.reset()
    await ctx.send_text(
        f"Once payment is complete, the voucher will be sent to "
        f"{draft.recipient_email if draft.is_gift else 'your email'}.\n\n"
        "Type MENU to return to the main menu."
    )
