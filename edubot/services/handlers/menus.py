"""Menus and the global entry points that every flow can be interrupted by."""

from typing import Optional

from edubot.schemas.outbound import Button, ListRow, ListSection
from edubot.schemas.platform import PlatformUser
from edubot.services.flow_executor import FlowContext
from edubot.services.state_machine import FlowName

SUPPORT_EMAIL = "support@edufiliova.com"

NEW_USER_BODY = "Welcome to EduFiliova!\n\nI don't recognize this phone number.\n\nWhat would you like to do?"
GENERIC_FAULT_TEXT = "Sorry, something went wrong. Please type MENU to start over."
LOCKOUT_TEXT = "Too many failed attempts. Please try again later."
SIGNED_OUT_TEXT = "You have been signed out successfully.\n\nType MENU or send any message to start again."

STUDENT_ROWS = [
    ListRow(id="stu_courses", title="My Courses", description="View enrolled courses"),
    ListRow(id="stu_voucher", title="Buy Voucher", description="Purchase gift vouchers"),
    ListRow(id="stu_wallet", title="My Wallet", description="Check balance"),
    ListRow(id="stu_certificates", title="Certificates", description="View certificates"),
    ListRow(id="stu_referral", title="Referral Program", description="Earn rewards"),
    ListRow(id="stu_download", title="Download App", description="Get mobile app"),
    ListRow(id="stu_help", title="Help & Support", description="Get assistance"),
    ListRow(id="stu_signout", title="Sign Out", description="Log out of your account"),
]

TEACHER_ROWS = [
    ListRow(id="tch_status", title="Application Status", description="Check approval status"),
    ListRow(id="tch_bookings", title="My Bookings", description="View scheduled sessions"),
    ListRow(id="tch_assignments", title="Assignments", description="Manage assignments"),
    ListRow(id="tch_availability", title="Availability", description="Update schedule"),
    ListRow(id="tch_earnings", title="Earnings", description="View earnings"),
    ListRow(id="tch_withdraw", title="Withdraw", description="Request payout"),
    ListRow(id="tch_help", title="Help & Support", description="Get assistance"),
    ListRow(id="tch_signout", title="Sign Out", description="Log out of your account"),
]

FREELANCER_ROWS = [
    ListRow(id="frl_status", title="Application Status", description="Check approval status"),
    ListRow(id="frl_orders", title="My Orders", description="View active orders"),
    ListRow(id="frl_wallet", title="Wallet & Earnings", description="Check balance"),
    ListRow(id="frl_upgrade", title="Upgrade Plan", description="View plans"),
    ListRow(id="frl_withdraw", title="Withdraw", description="Request payout"),
    ListRow(id="frl_help", title="Help & Support", description="Get assistance"),
    ListRow(id="frl_signout", title="Sign Out", description="Log out of your account"),
]

ADMIN_SECTIONS = [
    ListSection(
        title="User Management",
        rows=[
            ListRow(id="adm_block", title="Block User", description="Block a user account"),
            ListRow(id="adm_unblock", title="Unblock User", description="Restore a blocked account"),
            ListRow(id="adm_delete", title="Delete User", description="Permanently remove a user"),
            ListRow(id="adm_view_user", title="View User", description="Look up account details"),
        ],
    ),
    ListSection(
        title="Support & Notifications",
        rows=[
            ListRow(id="adm_tickets", title="Support Tickets", description="View open tickets"),
            ListRow(id="adm_broadcast", title="Broadcast", description="Message all users"),
        ],
    ),
    ListSection(
        title="System",
        rows=[
            ListRow(id="adm_stats", title="System Stats", description="Platform overview"),
            ListRow(id="adm_audit", title="Audit Log", description="Recent admin actions"),
            ListRow(id="adm_exit", title="Exit Admin", description="Leave admin mode"),
        ],
    ),
]

REGISTER_ROLE_BUTTONS = [
    Button(id="role_student", title="📚 Student"),
    Button(id="role_teacher", title="👨‍🏫 Teacher"),
    Button(id="role_freelancer", title="💼 Freelancer"),
]

ROLE_MENU_FLOWS = {
    "teacher": FlowName.TEACHER_MENU,
    "freelancer": FlowName.FREELANCER_MENU,
}


async def send_new_user_menu(ctx: FlowContext) -> None:
    await ctx.send_buttons(
        NEW_USER_BODY,
        [
            Button(id="btn_create_account", title="Create Account"),
            Button(id="btn_login", title="Login"),
            Button(id="btn_link_number", title="Link Number"),
        ],
        header="EduFiliova",
        footer="Select an option",
    )


async def _send_services_list(ctx: FlowContext, name: str, section: str, header: str, rows: list[ListRow]) -> None:
    await ctx.send_list(
        f"Hello {name}!\n\nWhat would you like to do?",
        "View Options",
        [ListSection(title=section, rows=rows)],
        header=header,
    )


async def send_student_menu(ctx: FlowContext, name: str = "Student") -> None:
    await _send_services_list(ctx, name, "Student Services", "Student Menu", STUDENT_ROWS)


async def send_teacher_menu(ctx: FlowContext, name: str = "Teacher") -> None:
    await _send_services_list(ctx, name, "Teacher Services", "Teacher Menu", TEACHER_ROWS)


async def send_freelancer_menu(ctx: FlowContext, name: str = "Freelancer") -> None:
    await _send_services_list(ctx, name, "Freelancer Services", "Freelancer Menu", FREELANCER_ROWS)


async def send_admin_menu(ctx: FlowContext) -> None:
    await ctx.send_list(
        "🔐 *Admin Control Panel*\n\nSelect an action to perform:",
        "Admin Actions",
        ADMIN_SECTIONS,
        header="🔐 Admin Panel",
    )


async def send_menu_for(ctx: FlowContext, user: Optional[PlatformUser]) -> None:
    if user is None:
        await send_new_user_menu(ctx)
    elif user.role == "teacher":
        await send_teacher_menu(ctx, user.name)
    elif user.role == "freelancer":
        await send_freelancer_menu(ctx, user.name)
    else:
        await send_student_menu(ctx, user.name or "Student")


async def send_role_menu(ctx: FlowContext) -> None:
    """Menu matching the linked account's role, or the anonymous menu."""
    await send_menu_for(ctx, await ctx.linked_user())


async def back_to_menu(ctx: FlowContext) -> None:
    """Discard whatever was in progress and show the role menu."""
    ctx.reset()
    await send_role_menu(ctx)


async def open_role_menu(ctx: FlowContext, role: str) -> None:
    """btn_student / btn_teacher / btn_freelancer: park on that role's menu flow."""
    user = await ctx.linked_user()
    if user is None:
        await send_new_user_menu(ctx)
        return
    ctx.update_flow(ROLE_MENU_FLOWS.get(role, FlowName.STUDENT_MENU))
    if role == "teacher":
        await send_teacher_menu(ctx, user.name)
    elif role == "freelancer":
        await send_freelancer_menu(ctx, user.name)
    else:
        await send_student_menu(ctx, user.name)


async def start_login(ctx: FlowContext, prompt: str = "Please enter your email address:") -> None:
    ctx.update_flow(FlowName.LOGIN_EMAIL)
    await ctx.send_text(prompt)


async def start_register(ctx: FlowContext) -> None:
    ctx.update_flow(FlowName.REGISTER_ROLE)
    await ctx.send_buttons(
        "What type of account would you like to create?",
        REGISTER_ROLE_BUTTONS,
        header="🎓 Create Account",
    )


async def start_link(ctx: FlowContext) -> None:
    ctx.update_flow(FlowName.LINK_ACCOUNT_EMAIL)
    await ctx.send_text("Link your existing EduFiliova account.\n\nPlease enter your email address:")


async def send_help(ctx: FlowContext) -> None:
    await ctx.send_text(
        "Need help? Here are your options:\n\n"
        f"1. Visit our Help Center: {ctx.site_url('/help')}\n"
        f"2. Email: {SUPPORT_EMAIL}\n"
        "3. Type MENU to go back to the main menu"
    )


async def sign_out(ctx: FlowContext) -> None:
    ctx.unlink_user()
    ctx.log.info("User signed out")
    await ctx.send_text(SIGNED_OUT_TEXT)
    await send_new_user_menu(ctx)
