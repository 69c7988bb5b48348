"""Teacher menu actions plus the assignment and availability wizards."""

import re
from datetime import datetime, timezone
from typing import Optional

from edubot.schemas.drafts import AssignmentDraft, AvailabilityDraft
from edubot.schemas.outbound import Button, ListRow, ListSection
from edubot.schemas.platform import Application
from edubot.services.flow_executor import FlowContext, registry
from edubot.services.handlers.menus import back_to_menu, send_new_user_menu, send_teacher_menu, sign_out
from edubot.services.handlers.payouts import TEACHER_PAYOUTS, start_withdrawal
from edubot.services.state_machine import FlowName

DAYS_OF_WEEK = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]
MIN_ASSIGNMENT_TITLE = 3

APPLICATION_STATUS_LABELS = {
    "approved": "Approved",
    "rejected": "Rejected",
    "under_review": "Under Review",
}

_DATE_SEPARATORS = re.compile(r"[/\-.]")
_HOURS = re.compile(r"(\d{1,2}):(\d{2})\s*-\s*(\d{1,2}):(\d{2})")

BACK_TO_MENU = Button(id="btn_back_menu", title="Back to Menu")


def application_status_label(application: Application) -> str:
    return APPLICATION_STATUS_LABELS.get(application.status, "Pending Review")


def parse_due_date(text: str) -> Optional[datetime]:
    """DD/MM/YYYY (or with - or . separators) at 23:59:59 UTC; None when unparseable."""
    parts = _DATE_SEPARATORS.split(text.strip())
    if len(parts) != 3:
        return None
    try:
        day, month, year = (int(p) for p in parts)
        return datetime(year, month, day, 23, 59, 59, tzinfo=timezone.utc)
    except ValueError:
        return None


def parse_hours(text: str) -> Optional[tuple[str, str]]:
    match = _HOURS.search(text)
    if not match:
        return None
    start_h, start_m, end_h, end_m = match.groups()
    return f"{start_h.zfill(2)}:{start_m}", f"{end_h.zfill(2)}:{end_m}"


async def handle_teacher_selection(ctx: FlowContext) -> None:
    user = await ctx.linked_user()
    if user is None:
        await send_new_user_menu(ctx)
        return

    selection = ctx.event.selection
    if selection == "tch_status":
        await show_application_status(ctx, user.id)
    elif selection == "tch_bookings":
        await show_bookings(ctx, user.id)
    elif selection == "tch_assignments":
        await start_assignment(ctx, user.id)
    elif selection == "tch_availability":
        await start_availability(ctx, user.id)
    elif selection == "tch_earnings":
        await show_earnings(ctx, user.id)
    elif selection == "tch_withdraw":
        await start_withdrawal(ctx, user.id, TEACHER_PAYOUTS)
    elif selection == "tch_help":
        await show_teacher_help(ctx)
    elif selection == "tch_signout":
        await sign_out(ctx)
    else:
        await send_teacher_menu(ctx, user.name)


async def show_application_status(ctx: FlowContext, user_id: str) -> None:
    application = await ctx.platform.get_teacher_application(user_id)
    if application is None:
        await ctx.send_buttons(
            "You haven't submitted a teacher application yet.\n\nApply now to start teaching on EduFiliova!",
            [BACK_TO_MENU],
            header="Application Status",
        )
        await ctx.send_text(f"Apply at: {ctx.site_url('/apply/teacher')}")
        return

    lines = ["Application Status", "", f"Status: {application_status_label(application)}"]
    if application.submitted_at:
        lines.append(f"Submitted: {application.submitted_at:%d/%m/%Y}")
    if application.status == "rejected" and application.notes:
        lines += ["", "Feedback:", application.notes]
    if application.status == "approved":
        lines += ["", "Congratulations! You can now create courses and schedule sessions."]

    await ctx.send_buttons("\n".join(lines), [BACK_TO_MENU], header="Teacher Status")


async def show_bookings(ctx: FlowContext, user_id: str) -> None:
    bookings = (await ctx.platform.list_upcoming_bookings(user_id))[:10]
    if not bookings:
        await ctx.send_buttons(
            "You don't have any upcoming bookings.\n\nUpdate your availability to receive new booking requests!",
            [Button(id="tch_availability", title="Set Availability"), BACK_TO_MENU],
            header="My Bookings",
        )
        return

    rows = [
        ListRow(
            id=f"booking_{b.id}",
            title=b.title or b.subject or "Session",
            description=f"{b.start_date:%a, %b %d} at {b.start_date:%I:%M %p} - {b.status}",
        )
        for b in bookings
    ]
    await ctx.send_list(
        f"You have {len(bookings)} upcoming booking(s).\n\nSelect one to view details or manage:",
        "View Bookings",
        [ListSection(title="Upcoming Bookings", rows=rows)],
        header="My Bookings",
    )


async def show_earnings(ctx: FlowContext, user_id: str) -> None:
    balance = await ctx.platform.get_creator_balance(user_id)
    lines = [
        "Your Earnings",
        "",
        f"Available Balance: ${balance.available:.2f}",
        f"Pending: ${balance.pending:.2f}",
        f"Lifetime Earnings: ${balance.lifetime:.2f}",
    ]
    if balance.recent_earnings:
        lines += ["", "Recent Earnings:"]
        for i, earning in enumerate(balance.recent_earnings[:5], start=1):
            lines.append(f"{i}. ${earning.amount:.2f} - {earning.event_type.replace('_', ' ')}")

    await ctx.send_buttons(
        "\n".join(lines),
        [Button(id="tch_withdraw", title="Withdraw Funds"), BACK_TO_MENU],
        header="Earnings",
    )


async def show_teacher_help(ctx: FlowContext) -> None:
    await ctx.send_buttons(
        "Teacher Help & Support\n\n"
        "• For course creation, reply COURSE\n"
        "• For payment issues, reply PAYMENT\n"
        "• For student issues, reply STUDENT\n\n"
        f"Visit our teacher resources:\n{ctx.site_url('/teacher-resources')}",
        [Button(id="help_contact", title="Contact Support"), BACK_TO_MENU],
        header="Help",
    )


# --- assignment wizard -----------------------------------------------------


async def start_assignment(ctx: FlowContext, user_id: str) -> None:
    courses = (await ctx.platform.list_teacher_courses(user_id))[:10]
    if not courses:
        ctx.reset()
        await ctx.send_buttons(
            "You don't have any courses yet.\n\nCreate a course first to add assignments!",
            [BACK_TO_MENU],
            header="Assignments",
        )
        return

    ctx.update_flow(FlowName.ASSIGNMENT_SELECT_COURSE, AssignmentDraft())
    rows = [ListRow(id=f"assign_course_{c.id}", title=c.title, description="Select to create assignment") for c in courses]
    await ctx.send_list(
        "Create Assignment\n\nSelect a course to add an assignment:",
        "Select Course",
        [ListSection(title="Your Courses", rows=rows)],
        header="New Assignment",
    )


@registry.handles(FlowName.ASSIGNMENT_SELECT_COURSE)
async def handle_assignment_select_course(ctx: FlowContext) -> None:
    choice = ctx.event.choice_id or ""
    if not choice.startswith("assign_course_"):
        await ctx.send_text("Please select a course from the list.")
        return

    ctx.update_flow(FlowName.ASSIGNMENT_TITLE, AssignmentDraft(course_id=choice[len("assign_course_") :]))
    await ctx.send_text("Enter the assignment title:\n\n(Example: Week 3 Quiz - Chapter 5)")


@registry.handles(FlowName.ASSIGNMENT_TITLE)
async def handle_assignment_title(ctx: FlowContext) -> None:
    title = ctx.event.raw_text
    if len(title) < MIN_ASSIGNMENT_TITLE:
        await ctx.send_text("Please enter a valid assignment title (at least 3 characters):")
        return

    draft = ctx.draft(AssignmentDraft)
    ctx.update_flow(FlowName.ASSIGNMENT_DUE_DATE, draft.model_copy(update={"title": title}))
    await ctx.send_text("Enter the due date:\n\n(Format: DD/MM/YYYY)\nExample: 15/12/2024")


@registry.handles(FlowName.ASSIGNMENT_DUE_DATE)
async def handle_assignment_due_date(ctx: FlowContext) -> None:
    text = ctx.event.raw_text
    if not text:
        await ctx.send_text("Please enter a due date (DD/MM/YYYY):")
        return
    if len(_DATE_SEPARATORS.split(text)) != 3:
        await ctx.send_text("Invalid date format. Please use DD/MM/YYYY (e.g., 15/12/2024):")
        return

    due_date = parse_due_date(text)
    if due_date is None or due_date < ctx.now():
        await ctx.send_text("Please enter a valid future date (DD/MM/YYYY):")
        return

    draft = ctx.draft(AssignmentDraft)
    if not draft.course_id or not draft.title:
        await back_to_menu(ctx)
        return

    await ctx.platform.create_assignment(ctx.linked_user_id, draft.course_id, draft.title, due_date)
    ctx.reset()
    ctx.log.info("Assignment created", context={"course_id": draft.course_id})
    await ctx.send_buttons(
        f"Assignment Created!\n\nTitle: {draft.title}\nDue: {due_date:%d/%m/%Y}\n\n"
        "Students enrolled in this course will be notified.",
        [Button(id="tch_assignments", title="Add Another"), BACK_TO_MENU],
        header="Success",
    )


# --- availability wizard ---------------------------------------------------


async def start_availability(ctx: FlowContext, user_id: str) -> None:
    ctx.update_flow(FlowName.AVAILABILITY_SELECT_DAY, AvailabilityDraft())
    slots = {slot.day_of_week: slot for slot in await ctx.platform.list_availability(user_id)}

    rows = []
    for index, day in enumerate(DAYS_OF_WEEK):
        slot = slots.get(index)
        rows.append(
            ListRow(
                id=f"avail_day_{index}",
                title=day,
                description=f"{slot.start_time} - {slot.end_time}" if slot else "Not set",
            )
        )
    await ctx.send_list(
        "Update Availability\n\nSelect a day to set your available hours:",
        "Select Day",
        [ListSection(title="Days of Week", rows=rows)],
        header="Availability",
    )


@registry.handles(FlowName.AVAILABILITY_SELECT_DAY)
async def handle_availability_select_day(ctx: FlowContext) -> None:
    choice = ctx.event.choice_id or ""
    index = choice[len("avail_day_") :] if choice.startswith("avail_day_") else ""
    if not index.isdigit() or int(index) >= len(DAYS_OF_WEEK):
        await ctx.send_text("Please select a day from the list.")
        return

    day_name = DAYS_OF_WEEK[int(index)]
    ctx.update_flow(FlowName.AVAILABILITY_SET_HOURS, AvailabilityDraft(day_of_week=int(index), day_name=day_name))
    await ctx.send_buttons(
        f"Set availability for {day_name}:\n\nAre you available on {day_name}?",
        [
            Button(id="avail_set_hours", title="Set Hours"),
            Button(id="avail_not_available", title="Not Available"),
            Button(id="btn_back_menu", title="Cancel"),
        ],
        header=day_name,
    )


@registry.handles(FlowName.AVAILABILITY_SET_HOURS)
async def handle_availability_set_hours(ctx: FlowContext) -> None:
    draft = ctx.draft(AvailabilityDraft)
    if draft.day_of_week is None:
        await back_to_menu(ctx)
        return

    choice = ctx.event.choice_id
    if choice == "avail_not_available":
        await ctx.platform.clear_availability(ctx.linked_user_id, draft.day_of_week)
        ctx.reset()
        await ctx.send_text(f"{draft.day_name} marked as not available.\n\nType MENU to return to the main menu.")
        return
    if choice == "avail_set_hours":
        await ctx.send_text(
            f"Enter your available hours for {draft.day_name}:\n\n(Format: HH:MM - HH:MM)\nExample: 09:00 - 17:00"
        )
        return

    text = ctx.event.raw_text
    if not text:
        await ctx.send_text("Please enter hours in format: HH:MM - HH:MM")
        return
    hours = parse_hours(text)
    if hours is None:
        await ctx.send_text("Invalid format. Please use HH:MM - HH:MM (e.g., 09:00 - 17:00):")
        return

    start_time, end_time = hours
    await ctx.platform.set_availability(ctx.linked_user_id, draft.day_of_week, start_time, end_time)
    ctx.reset()
    await ctx.send_buttons(
        f"Availability Updated!\n\n{draft.day_name}: {start_time} - {end_time}\n\n"
        "Students can now book sessions during these hours.",
        [Button(id="tch_availability", title="Update More"), BACK_TO_MENU],
        header="Updated",
    )
