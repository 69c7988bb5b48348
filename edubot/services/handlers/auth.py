"""Login, student registration and phone linking wizards.

bcrypt work runs in a worker thread so it never stalls the event loop.
"""

import asyncio
import re
from datetime import datetime, timedelta, timezone
from typing import Optional

from edubot.schemas.drafts import LoginDraft, RegistrationDraft
from edubot.schemas.outbound import Button, ListRow, ListSection
from edubot.schemas.platform import PlatformUser
from edubot.services.flow_executor import FlowContext, registry
from edubot.services.handlers.menus import send_menu_for, send_new_user_menu, send_student_menu
from edubot.services.passwords import check_password, generate_verification_code, hash_password
from edubot.services.state_machine import FlowName

VERIFICATION_CODE_TTL = timedelta(minutes=10)
MIN_NAME_LENGTH = 2
MIN_PASSWORD_LENGTH = 8
MIN_AGE, MAX_AGE = 5, 100

# list row id -> (grade, education level)
GRADE_CHOICES = {
    "grade_1": (2, "grade"),
    "grade_4": (5, "grade"),
    "grade_7": (8, "grade"),
    "grade_10": (11, "grade"),
    "grade_college": (13, "college"),
    "grade_university": (14, "university"),
}
DEFAULT_GRADE = (8, "grade")

GRADE_ROWS = [
    ListRow(id="grade_1", title="Grade 1-3 (Primary)"),
    ListRow(id="grade_4", title="Grade 4-6 (Primary)"),
    ListRow(id="grade_7", title="Grade 7-9 (Middle)"),
    ListRow(id="grade_10", title="Grade 10-12 (High)"),
    ListRow(id="grade_college", title="College"),
    ListRow(id="grade_university", title="University"),
]

RESEND_OR_CANCEL = [Button(id="btn_resend_code", title="Resend Code"), Button(id="btn_cancel", title="Cancel")]

_NON_DIGITS = re.compile(r"\D+")


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def _login_draft(user: PlatformUser) -> LoginDraft:
    return LoginDraft(user_id=user.id, user_email=user.email, user_name=user.name, user_role=user.role)


async def find_user_by_identity(ctx: FlowContext, identity: str) -> Optional[PlatformUser]:
    if "@" in identity:
        return await ctx.platform.find_user_by_email(identity.lower())
    phone = _NON_DIGITS.sub("", identity)
    if not phone:
        return None
    return await ctx.platform.find_user_by_phone(phone)


async def _load_draft_user(ctx: FlowContext) -> tuple[LoginDraft, Optional[PlatformUser]]:
    draft = ctx.draft(LoginDraft)
    user = await ctx.platform.get_user(draft.user_id) if draft.user_id else None
    return draft, user


# --- login -----------------------------------------------------------------


@registry.handles(FlowName.LOGIN_EMAIL)
async def handle_login_email(ctx: FlowContext) -> None:
    identity = ctx.event.raw_text
    if not identity:
        await ctx.send_text("Please enter your email or phone number:")
        return

    user = await find_user_by_identity(ctx, identity)
    if user is None:
        await ctx.send_buttons(
            "No account found with that email or phone number.\n\nWould you like to create a new account?",
            [Button(id="btn_create_account", title="Create Account"), Button(id="btn_try_again", title="Try Again")],
        )
        ctx.reset()
        return

    ctx.update_flow(FlowName.LOGIN_PASSWORD, _login_draft(user))
    await ctx.send_text("Please enter your password:")


@registry.handles(FlowName.LOGIN_PASSWORD)
async def handle_login_password(ctx: FlowContext) -> None:
    password = ctx.event.raw_text
    if not password:
        await ctx.send_text("Please enter your password:")
        return

    draft, user = await _load_draft_user(ctx)
    if user is None or not user.password_hash:
        await ctx.send_text("Login failed. Please try again.")
        ctx.reset()
        return

    if not await asyncio.to_thread(check_password, password, user.password_hash):
        ctx.log.info("Login rejected: wrong password", context={"user_id": user.id})
        await ctx.send_buttons(
            "Incorrect password. Please try again.",
            [
                Button(id="btn_try_again_pwd", title="Try Again"),
                Button(id="btn_forgot_pwd", title="Forgot Password"),
                Button(id="btn_cancel", title="Cancel"),
            ],
        )
        return

    ctx.link_user(user)
    await ctx.platform.set_user_phone(user.id, ctx.address)
    ctx.reset()
    ctx.log.info("Login successful", context={"user_id": user.id})
    await ctx.send_text(f"Login successful!\n\nWelcome back, {user.name}!")
    await send_menu_for(ctx, user)


# --- registration ----------------------------------------------------------


@registry.handles(FlowName.REGISTER_ROLE)
async def handle_register_role(ctx: FlowContext) -> None:
    selection = ctx.event.selection
    for role, blurb in (
        ("teacher", "Teacher applications require document verification"),
        ("freelancer", "Freelancer applications require portfolio submission"),
    ):
        if selection in (f"role_{role}", f"btn_role_{role}", role):
            await ctx.send_text(
                f"{role.capitalize()} Registration\n\n"
                f"{blurb} and cannot be completed via WhatsApp.\n\n"
                f"Please apply through our website:\n{ctx.site_url(f'/apply/{role}')}\n\n"
                "Already have an account? Type LOGIN to sign in."
            )
            ctx.reset()
            return

    ctx.update_flow(FlowName.REGISTER_NAME, RegistrationDraft(role="student"))
    await ctx.send_text("Let's create your student account!\n\nWhat is your full name?")


@registry.handles(FlowName.REGISTER_NAME)
async def handle_register_name(ctx: FlowContext) -> None:
    name = ctx.event.raw_text
    if len(name) < MIN_NAME_LENGTH:
        await ctx.send_text("Please enter a valid full name (at least 2 characters):")
        return

    draft = ctx.draft(RegistrationDraft)
    ctx.update_flow(FlowName.REGISTER_EMAIL, draft.model_copy(update={"name": name}))
    await ctx.send_text(f"Nice to meet you, {name}!\n\nWhat is your email address?")


@registry.handles(FlowName.REGISTER_EMAIL)
async def handle_register_email(ctx: FlowContext) -> None:
    email = ctx.event.raw_text.lower()
    if "@" not in email or "." not in email:
        await ctx.send_text("Please enter a valid email address:")
        return

    if await ctx.platform.find_user_by_email(email) is not None:
        await ctx.send_buttons(
            "An account with this email already exists.\n\nWould you like to login instead?",
            [Button(id="btn_login", title="Login"), Button(id="btn_different_email", title="Use Different Email")],
        )
        return

    draft = ctx.draft(RegistrationDraft)
    ctx.update_flow(FlowName.REGISTER_PASSWORD, draft.model_copy(update={"email": email}))
    await ctx.send_text("Create a password for your account.\n\n(Minimum 8 characters, include letters and numbers)")


@registry.handles(FlowName.REGISTER_PASSWORD)
async def handle_register_password(ctx: FlowContext) -> None:
    password = ctx.event.raw_text
    if len(password) < MIN_PASSWORD_LENGTH:
        await ctx.send_text("Password must be at least 8 characters long. Please try again:")
        return

    draft = ctx.draft(RegistrationDraft)
    password_hash = await asyncio.to_thread(hash_password, password)
    ctx.update_flow(FlowName.REGISTER_COUNTRY, draft.model_copy(update={"password_hash": password_hash}))

    countries = await ctx.platform.list_popular_countries()
    rows = [ListRow(id=f"country_{c.id}", title=c.name) for c in countries[:10]]
    await ctx.send_list(
        "Which country are you in?\n\n"
        "Pick from popular countries OR type any country name (e.g. Brazil, Japan, Germany).\n\n"
        "We support 200+ countries!",
        "Select Country",
        [ListSection(title="Popular Countries", rows=rows)],
        header="Country",
    )


@registry.handles(FlowName.REGISTER_COUNTRY)
async def handle_register_country(ctx: FlowContext) -> None:
    choice = ctx.event.choice_id or ""
    if choice.startswith("country_"):
        country = await ctx.platform.get_country(choice[len("country_") :])
    elif ctx.event.raw_text:
        country = await ctx.platform.find_country(ctx.event.raw_text)
    else:
        await ctx.send_text("Please select or type your country:")
        return

    if country is None:
        await ctx.send_text("Country not found. Please try again or type a different country name:")
        return

    draft = ctx.draft(RegistrationDraft)
    ctx.update_flow(FlowName.REGISTER_AGE, draft.model_copy(update={"country": country.name, "country_id": country.id}))
    await ctx.send_text("How old are you? (Enter your age as a number)")


@registry.handles(FlowName.REGISTER_AGE)
async def handle_register_age(ctx: FlowContext) -> None:
    try:
        age = int(ctx.event.raw_text)
    except ValueError:
        age = None
    if age is None or not MIN_AGE <= age <= MAX_AGE:
        await ctx.send_text("Please enter a valid age (5-100):")
        return

    draft = ctx.draft(RegistrationDraft)
    ctx.update_flow(FlowName.REGISTER_GRADE, draft.model_copy(update={"age": age}))
    await ctx.send_list(
        "What is your education level?",
        "Select Level",
        [ListSection(title="Education Level", rows=GRADE_ROWS)],
        header="Education",
    )


async def issue_verification_code(ctx: FlowContext, draft: RegistrationDraft) -> str:
    """Store a fresh 6-digit code for the draft's email and mail it out."""
    code = generate_verification_code()
    expires_at = ctx.now() + VERIFICATION_CODE_TTL
    await ctx.platform.store_verification_code(
        draft.email, code, expires_at, {**draft.dump(), "phone": ctx.address}
    )
    if not await ctx.platform.send_verification_email(draft.email, code):
        ctx.log.warning("Verification email was not delivered", context={"email": draft.email})
    return code


@registry.handles(FlowName.REGISTER_GRADE)
async def handle_register_grade(ctx: FlowContext) -> None:
    grade, level = GRADE_CHOICES.get(ctx.event.selection, DEFAULT_GRADE)
    draft = ctx.draft(RegistrationDraft).model_copy(update={"grade": grade, "education_level": level})

    await issue_verification_code(ctx, draft)
    ctx.update_flow(FlowName.VERIFY_EMAIL_CODE, draft)
    await ctx.send_text(
        f"Verification Code Sent!\n\nWe've sent a 6-digit code to:\n{draft.email}\n\n"
        "Please enter the code to complete your registration:"
    )


@registry.handles(FlowName.VERIFY_EMAIL_CODE)
async def handle_verify_email_code(ctx: FlowContext) -> None:
    code = re.sub(r"\s", "", ctx.event.raw_text)
    if len(code) != 6:
        await ctx.send_text("Please enter the 6-digit verification code:")
        return

    draft = ctx.draft(RegistrationDraft)
    verification = await ctx.platform.get_verification_code(draft.email) if draft.email else None
    if verification is None or verification.is_used or verification.code != code:
        await ctx.send_buttons("Invalid verification code. Please check and try again.", RESEND_OR_CANCEL)
        return

    if ctx.now() > _aware(verification.expires_at):
        await ctx.send_buttons("This verification code has expired.", RESEND_OR_CANCEL)
        return

    registration = RegistrationDraft.load(verification.user_data)
    result = await ctx.platform.create_student_account(registration.dump(), ctx.address)
    if not result.ok:
        ctx.log.warning("Account creation refused", context={"error": result.error, "code": result.error_code})
        await ctx.send_text(f"We couldn't create your account: {result.error}\n\nType MENU to start over.")
        ctx.reset()
        return

    user = result.value
    await ctx.platform.mark_verification_code_used(verification.id)
    ctx.link_user(user)
    ctx.reset()
    ctx.log.info("Student account created", context={"user_id": user.id})
    await ctx.send_text(
        f"Account Created Successfully!\n\nWelcome to EduFiliova, {registration.name}!\n\n"
        "You can now login with your email or this phone number."
    )
    await send_student_menu(ctx, registration.name or user.name)


# --- link existing account -------------------------------------------------


@registry.handles(FlowName.LINK_ACCOUNT_EMAIL)
async def handle_link_account_email(ctx: FlowContext) -> None:
    email = ctx.event.raw_text.lower()
    if "@" not in email:
        await ctx.send_text("Please enter a valid email address:")
        return

    user = await ctx.platform.find_user_by_email(email)
    if user is None:
        await ctx.send_buttons(
            "No account found with this email.\n\nWould you like to create a new account?",
            [Button(id="btn_create_account", title="Create Account"), Button(id="btn_try_again", title="Try Again")],
        )
        ctx.reset()
        return

    ctx.update_flow(FlowName.LINK_ACCOUNT_PASSWORD, _login_draft(user))
    await ctx.send_text("Please enter your password to link this number:")


@registry.handles(FlowName.LINK_ACCOUNT_PASSWORD)
async def handle_link_account_password(ctx: FlowContext) -> None:
    password = ctx.event.raw_text
    if not password:
        await ctx.send_text("Please enter your password:")
        return

    draft, user = await _load_draft_user(ctx)
    if user is None or not user.password_hash:
        await ctx.send_text("Login failed. Please try again.")
        ctx.reset()
        return

    if not await asyncio.to_thread(check_password, password, user.password_hash):
        await ctx.send_buttons(
            "Incorrect password.",
            [Button(id="btn_try_again_link", title="Try Again"), Button(id="btn_cancel", title="Cancel")],
        )
        return

    await ctx.platform.set_user_phone(user.id, ctx.address)
    ctx.link_user(user)
    ctx.reset()
    ctx.log.info("Phone number linked", context={"user_id": user.id})
    await ctx.send_text(
        "Phone Number Linked!\n\nThis WhatsApp number is now linked to your account.\n\n"
        f"You can now login with:\nEmail: {draft.user_email or user.email}\nPhone: {ctx.address}"
    )
    await send_menu_for(ctx, user)


async def resend_verification_code(ctx: FlowContext) -> None:
    draft = ctx.draft(RegistrationDraft)
    if not draft.email:
        ctx.reset()
        await ctx.send_text("Session expired. Please start registration again.")
        await send_new_user_menu(ctx)
        return

    await issue_verification_code(ctx, draft)
    ctx.update_flow(FlowName.VERIFY_EMAIL_CODE, draft)
    await ctx.send_text("A new verification code has been sent to your email. Please enter the 6-digit code:")
