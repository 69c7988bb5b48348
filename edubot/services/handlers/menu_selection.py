"""Handler for the resting flows: idle and the role menus.

Anything typed or picked while no wizard is running lands here and is
dispatched on the choice id prefix.
"""

from edubot.schemas.drafts import RegistrationDraft
from edubot.services.flow_executor import FlowContext, registry
from edubot.services.handlers.admin import handle_admin_selection
from edubot.services.handlers.auth import handle_register_role, resend_verification_code
from edubot.services.handlers.freelancer import handle_freelancer_selection
from edubot.services.handlers.menus import (
    back_to_menu,
    open_role_menu,
    send_help,
    send_role_menu,
    start_link,
    start_login,
    start_register,
)
from edubot.services.handlers.student import handle_student_selection
from edubot.services.handlers.teacher import handle_teacher_selection
from edubot.services.state_machine import DRAFT_BY_FLOW, MENU_FLOWS, FlowName

ROLE_BUTTONS = {"btn_student": "student", "btn_teacher": "teacher", "btn_freelancer": "freelancer"}

SELECTION_PREFIXES = (
    ("role_", handle_register_role),
    ("stu_", handle_student_selection),
    ("tch_", handle_teacher_selection),
    ("frl_", handle_freelancer_selection),
    ("adm_", handle_admin_selection),
)


async def handle_menu_button(ctx: FlowContext) -> None:
    """Buttons that override whatever flow the conversation is in."""
    choice = ctx.event.choice_id

    if choice in ROLE_BUTTONS:
        await open_role_menu(ctx, ROLE_BUTTONS[choice])
    elif choice == "btn_login":
        await start_login(ctx)
    elif choice in ("btn_register", "btn_create_account"):
        await start_register(ctx)
    elif choice in ("btn_link", "btn_link_number"):
        await start_link(ctx)
    elif choice == "btn_try_again":
        await start_login(ctx, "Please enter your email or phone number:")
    elif choice == "btn_try_again_pwd":
        await ctx.send_text("Please enter your password:")
    elif choice == "btn_try_again_link":
        if ctx.state.flow == FlowName.LINK_ACCOUNT_PASSWORD and ctx.state.data:
            await ctx.send_text("Please enter your password to link this number:")
        else:
            await start_link(ctx)
    elif choice == "btn_different_email":
        # Only a registration draft survives the jump back to the email step.
        if DRAFT_BY_FLOW.get(ctx.state.flow) is not RegistrationDraft:
            await start_register(ctx)
        else:
            draft = ctx.draft(RegistrationDraft).model_copy(update={"email": None})
            ctx.update_flow(FlowName.REGISTER_EMAIL, draft)
            await ctx.send_text("Please enter a different email address:")
    elif choice == "btn_resend_code":
        await resend_verification_code(ctx)
    elif choice == "btn_forgot_pwd":
        await ctx.send_text(
            f"To reset your password, please visit:\n{ctx.site_url('/forgot-password')}\n\n"
            "Type MENU to return to the main menu."
        )
        ctx.reset()
    else:
        # btn_cancel, btn_back_menu
        await back_to_menu(ctx)


@registry.handles(*MENU_FLOWS)
async def handle_menu_selection(ctx: FlowContext) -> None:
    selection = ctx.event.choice_id or ""

    if selection == "help_contact" or ctx.event.normalized_text == "help":
        await send_help(ctx)
        return
    if selection == "btn_browse_courses":
        await ctx.send_text(f"Browse our courses at:\n{ctx.site_url('/courses')}\n\nType MENU to go back.")
        return
    if selection == "wallet_add_funds":
        await ctx.send_text(f"Add funds to your wallet at:\n{ctx.site_url('/dashboard/wallet')}\n\nType MENU to go back.")
        return
    if selection == "ref_share":
        await ctx.send_text(
            "Share your referral link with friends and earn rewards!\n\n"
            "Type REFERRAL to see your referral code, or MENU to go back."
        )
        return

    for prefix, handler in SELECTION_PREFIXES:
        if selection.startswith(prefix):
            await handler(ctx)
            return

    await send_role_menu(ctx)
