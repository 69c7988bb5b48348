from datetime import datetime, timezone

import pytest

from edubot.schemas.events import EventKind
from edubot.schemas.platform import (
    Application,
    AvailabilitySlot,
    Booking,
    Course,
    CreatorBalance,
    Earning,
    PayoutAccount,
    PayoutRequest,
)
from edubot.services.handlers.payouts import handle_withdraw_amount, handle_withdraw_method, parse_amount
from edubot.services.handlers.teacher import (
    handle_assignment_due_date,
    handle_assignment_select_course,
    handle_assignment_title,
    handle_availability_select_day,
    handle_availability_set_hours,
    handle_teacher_selection,
    parse_due_date,
    parse_hours,
)
from edubot.services.result import Result


class TestParsers:
    def test_due_date(self):
        assert parse_due_date("15/12/2025") == datetime(2025, 12, 15, 23, 59, 59, tzinfo=timezone.utc)

    def test_due_date_other_separators(self):
        assert parse_due_date("1-2-2026") == datetime(2026, 2, 1, 23, 59, 59, tzinfo=timezone.utc)
        assert parse_due_date("01.02.2026") == datetime(2026, 2, 1, 23, 59, 59, tzinfo=timezone.utc)

    def test_due_date_invalid(self):
        assert parse_due_date("31/02/2025") is None
        assert parse_due_date("tomorrow") is None
        assert parse_due_date("12/2025") is None

    def test_hours(self):
        assert parse_hours("9:00 - 17:30") == ("09:00", "17:30")
        assert parse_hours("09:00-17:00") == ("09:00", "17:00")

    def test_hours_invalid(self):
        assert parse_hours("nine to five") is None

    def test_amount(self):
        assert parse_amount("$120.50") == 120.5
        assert parse_amount("lots") is None


class TestTeacherMenu:
    @pytest.mark.asyncio
    async def test_application_status(self, make_conversation, make_ctx, choice_event, platform, sender, teacher):
        platform.get_user.return_value = teacher
        platform.get_teacher_application.return_value = Application(
            status="rejected", submitted_at=datetime(2025, 1, 5), notes="Please upload your degree."
        )
        conversation = make_conversation("teacher_menu", linked_user_id=teacher.id)

        await handle_teacher_selection(make_ctx(conversation, choice_event("tch_status")))

        body = sender.last["body"]
        assert "Status: Rejected" in body
        assert "Submitted: 05/01/2025" in body
        assert "Please upload your degree." in body

    @pytest.mark.asyncio
    async def test_no_application(self, make_conversation, make_ctx, choice_event, platform, sender, teacher):
        platform.get_user.return_value = teacher
        platform.get_teacher_application.return_value = None
        conversation = make_conversation("teacher_menu", linked_user_id=teacher.id)

        await handle_teacher_selection(make_ctx(conversation, choice_event("tch_status")))

        assert sender.last["body"] == "Apply at: https://edufiliova.test/apply/teacher"

    @pytest.mark.asyncio
    async def test_bookings(self, make_conversation, make_ctx, choice_event, platform, sender, teacher):
        platform.get_user.return_value = teacher
        platform.list_upcoming_bookings.return_value = [
            Booking(id="b1", title="Algebra tutoring", start_date=datetime(2025, 3, 12, 15, 0), status="confirmed")
        ]
        conversation = make_conversation("teacher_menu", linked_user_id=teacher.id)

        await handle_teacher_selection(make_ctx(conversation, choice_event("tch_bookings")))

        assert sender.last["rows"] == ["booking_b1"]

    @pytest.mark.asyncio
    async def test_earnings(self, make_conversation, make_ctx, choice_event, platform, sender, teacher):
        platform.get_user.return_value = teacher
        platform.get_creator_balance.return_value = CreatorBalance(
            available=120.0, pending=30.0, lifetime=900.0, recent_earnings=[Earning(amount=45.0, event_type="course_sale")]
        )
        conversation = make_conversation("teacher_menu", linked_user_id=teacher.id)

        await handle_teacher_selection(make_ctx(conversation, choice_event("tch_earnings")))

        body = sender.last["body"]
        assert "Available Balance: $120.00" in body
        assert "1. $45.00 - course sale" in body
        assert sender.last["buttons"] == ["tch_withdraw", "btn_back_menu"]

    @pytest.mark.asyncio
    async def test_unknown_selection_shows_menu(self, make_conversation, make_ctx, text_event, platform, sender, teacher):
        platform.get_user.return_value = teacher
        conversation = make_conversation("teacher_menu", linked_user_id=teacher.id)

        await handle_teacher_selection(make_ctx(conversation, text_event("tch_dance")))

        assert sender.last["header"] == "Teacher Menu"


class TestAssignmentWizard:
    @pytest.mark.asyncio
    async def test_start_without_courses(self, make_conversation, make_ctx, choice_event, platform, sender, teacher):
        platform.get_user.return_value = teacher
        platform.list_teacher_courses.return_value = []
        conversation = make_conversation("teacher_menu", linked_user_id=teacher.id)

        await handle_teacher_selection(make_ctx(conversation, choice_event("tch_assignments")))

        assert conversation.current_flow == "idle"
        assert "Create a course first" in sender.last["body"]

    @pytest.mark.asyncio
    async def test_start_lists_courses(self, make_conversation, make_ctx, choice_event, platform, sender, teacher):
        platform.get_user.return_value = teacher
        platform.list_teacher_courses.return_value = [Course(id="c1", title="Algebra I"), Course(id="c2", title="Physics")]
        conversation = make_conversation("teacher_menu", linked_user_id=teacher.id)

        await handle_teacher_selection(make_ctx(conversation, choice_event("tch_assignments")))

        assert conversation.current_flow == "assignment_select_course"
        assert sender.last["rows"] == ["assign_course_c1", "assign_course_c2"]

    @pytest.mark.asyncio
    async def test_select_course(self, make_conversation, make_ctx, choice_event):
        conversation = make_conversation("assignment_select_course", {})

        await handle_assignment_select_course(make_ctx(conversation, choice_event("assign_course_c2")))

        assert conversation.current_flow == "assignment_title"
        assert conversation.flow_data == {"courseId": "c2"}

    @pytest.mark.asyncio
    async def test_title_too_short(self, make_conversation, make_ctx, text_event):
        conversation = make_conversation("assignment_title", {"courseId": "c2"})

        await handle_assignment_title(make_ctx(conversation, text_event("Q1")))

        assert conversation.current_flow == "assignment_title"

    @pytest.mark.asyncio
    async def test_title(self, make_conversation, make_ctx, text_event):
        conversation = make_conversation("assignment_title", {"courseId": "c2"})

        await handle_assignment_title(make_ctx(conversation, text_event("Week 3 Quiz")))

        assert conversation.current_flow == "assignment_due_date"
        assert conversation.flow_data == {"courseId": "c2", "title": "Week 3 Quiz"}

    @pytest.mark.asyncio
    async def test_past_due_date(self, make_conversation, make_ctx, text_event, platform, sender):
        conversation = make_conversation("assignment_due_date", {"courseId": "c2", "title": "Week 3 Quiz"})

        await handle_assignment_due_date(make_ctx(conversation, text_event("01/01/2020")))

        platform.create_assignment.assert_not_awaited()
        assert sender.last["body"] == "Please enter a valid future date (DD/MM/YYYY):"

    @pytest.mark.asyncio
    async def test_malformed_due_date(self, make_conversation, make_ctx, text_event, sender):
        conversation = make_conversation("assignment_due_date", {"courseId": "c2", "title": "Week 3 Quiz"})

        await handle_assignment_due_date(make_ctx(conversation, text_event("next friday")))

        assert sender.last["body"].startswith("Invalid date format")

    @pytest.mark.asyncio
    async def test_assignment_created(self, make_conversation, make_ctx, text_event, platform, sender, teacher):
        conversation = make_conversation(
            "assignment_due_date", {"courseId": "c2", "title": "Week 3 Quiz"}, linked_user_id=teacher.id
        )

        await handle_assignment_due_date(make_ctx(conversation, text_event("15/04/2025")))

        platform.create_assignment.assert_awaited_once_with(
            teacher.id, "c2", "Week 3 Quiz", datetime(2025, 4, 15, 23, 59, 59, tzinfo=timezone.utc)
        )
        assert conversation.current_flow == "idle"
        assert "Due: 15/04/2025" in sender.last["body"]


class TestAvailabilityWizard:
    @pytest.mark.asyncio
    async def test_start_shows_current_slots(self, make_conversation, make_ctx, choice_event, platform, sender, teacher):
        platform.get_user.return_value = teacher
        platform.list_availability.return_value = [AvailabilitySlot(day_of_week=1, start_time="09:00", end_time="12:00")]
        conversation = make_conversation("teacher_menu", linked_user_id=teacher.id)

        await handle_teacher_selection(make_ctx(conversation, choice_event("tch_availability")))

        assert conversation.current_flow == "availability_select_day"
        assert sender.last["rows"] == [f"avail_day_{i}" for i in range(7)]

    @pytest.mark.asyncio
    async def test_select_day(self, make_conversation, make_ctx, choice_event, sender):
        conversation = make_conversation("availability_select_day", {})

        await handle_availability_select_day(make_ctx(conversation, choice_event("avail_day_0")))

        assert conversation.current_flow == "availability_set_hours"
        assert conversation.flow_data == {"dayOfWeek": 0, "dayName": "Sunday"}
        assert sender.last["buttons"] == ["avail_set_hours", "avail_not_available", "btn_back_menu"]

    @pytest.mark.asyncio
    async def test_select_day_out_of_range(self, make_conversation, make_ctx, choice_event, sender):
        conversation = make_conversation("availability_select_day", {})

        await handle_availability_select_day(make_ctx(conversation, choice_event("avail_day_9")))

        assert conversation.current_flow == "availability_select_day"

    @pytest.mark.asyncio
    async def test_set_hours(self, make_conversation, make_ctx, text_event, platform, teacher):
        conversation = make_conversation(
            "availability_set_hours", {"dayOfWeek": 2, "dayName": "Tuesday"}, linked_user_id=teacher.id
        )

        await handle_availability_set_hours(make_ctx(conversation, text_event("9:00 - 17:00")))

        platform.set_availability.assert_awaited_once_with(teacher.id, 2, "09:00", "17:00")
        assert conversation.current_flow == "idle"

    @pytest.mark.asyncio
    async def test_not_available(self, make_conversation, make_ctx, choice_event, platform, teacher):
        conversation = make_conversation(
            "availability_set_hours", {"dayOfWeek": 6, "dayName": "Saturday"}, linked_user_id=teacher.id
        )

        await handle_availability_set_hours(
            make_ctx(conversation, choice_event("avail_not_available", kind=EventKind.BUTTON))
        )

        platform.clear_availability.assert_awaited_once_with(teacher.id, 6)
        assert conversation.current_flow == "idle"

    @pytest.mark.asyncio
    async def test_bad_hours(self, make_conversation, make_ctx, text_event, platform, sender):
        conversation = make_conversation("availability_set_hours", {"dayOfWeek": 2, "dayName": "Tuesday"})

        await handle_availability_set_hours(make_ctx(conversation, text_event("mornings")))

        platform.set_availability.assert_not_awaited()
        assert sender.last["body"].startswith("Invalid format")


class TestWithdrawal:
    @pytest.mark.asyncio
    async def test_balance_below_minimum(self, make_conversation, make_ctx, choice_event, platform, sender, teacher):
        platform.get_user.return_value = teacher
        platform.get_creator_balance.return_value = CreatorBalance(available=5.0)
        conversation = make_conversation("teacher_menu", linked_user_id=teacher.id)

        await handle_teacher_selection(make_ctx(conversation, choice_event("tch_withdraw")))

        assert conversation.current_flow == "teacher_menu"
        assert "Minimum withdrawal amount is $10.00" in sender.last["body"]

    @pytest.mark.asyncio
    async def test_start(self, make_conversation, make_ctx, choice_event, platform, teacher):
        platform.get_user.return_value = teacher
        platform.get_creator_balance.return_value = CreatorBalance(available=120.0)
        platform.get_default_payout_account.return_value = PayoutAccount(id="pa-1", account_name="Zanaco ****1234")
        conversation = make_conversation("teacher_menu", linked_user_id=teacher.id)

        await handle_teacher_selection(make_ctx(conversation, choice_event("tch_withdraw")))

        assert conversation.current_flow == "withdraw_amount"
        assert conversation.flow_data == {"availableBalance": 120.0, "payoutAccountId": "pa-1"}

    @pytest.mark.asyncio
    async def test_amount_above_balance(self, make_conversation, make_ctx, text_event, platform, sender):
        conversation = make_conversation("withdraw_amount", {"availableBalance": 120.0, "payoutAccountId": "pa-1"})

        await handle_withdraw_amount(make_ctx(conversation, text_event("500")))

        platform.request_payout.assert_not_awaited()
        assert sender.last["body"].startswith("Insufficient balance")

    @pytest.mark.asyncio
    async def test_amount_submits_request(self, make_conversation, make_ctx, text_event, platform, sender, teacher):
        platform.request_payout.return_value = Result.success(PayoutRequest(id="po-1", amount=100.0))
        platform.get_default_payout_account.return_value = PayoutAccount(id="pa-1", account_name="Zanaco ****1234")
        conversation = make_conversation(
            "withdraw_amount", {"availableBalance": 120.0, "payoutAccountId": "pa-1"}, linked_user_id=teacher.id
        )

        await handle_withdraw_amount(make_ctx(conversation, text_event("$100")))

        platform.request_payout.assert_awaited_once_with(teacher.id, 100.0, "pa-1")
        assert conversation.current_flow == "idle"
        assert "Amount: $100.00" in sender.last["body"]
        assert "Zanaco ****1234" in sender.last["body"]

    @pytest.mark.asyncio
    async def test_without_payout_account_asks_method(self, make_conversation, make_ctx, text_event, sender):
        conversation = make_conversation("withdraw_amount", {"availableBalance": 120.0})

        await handle_withdraw_amount(make_ctx(conversation, text_event("50")))

        assert conversation.current_flow == "withdraw_method"
        assert conversation.flow_data == {"availableBalance": 120.0, "amount": 50.0}
        assert sender.last["buttons"] == ["payout_bank", "payout_paypal", "payout_mobile"]

    @pytest.mark.asyncio
    async def test_method_points_to_website(self, make_conversation, make_ctx, choice_event, sender):
        conversation = make_conversation("withdraw_method", {"availableBalance": 120.0, "amount": 50.0})

        await handle_withdraw_method(make_ctx(conversation, choice_event("payout_paypal", kind=EventKind.BUTTON)))

        assert conversation.current_flow == "idle"
        assert "paypal" in sender.last["body"]
        assert "https://edufiliova.test/dashboard/payout-settings" in sender.last["body"]

    @pytest.mark.asyncio
    async def test_refused_request(self, make_conversation, make_ctx, text_event, platform, sender, teacher):
        platform.request_payout.return_value = Result.failure("Payouts are paused", "payouts_paused")
        conversation = make_conversation(
            "withdraw_amount", {"availableBalance": 120.0, "payoutAccountId": "pa-1"}, linked_user_id=teacher.id
        )

        await handle_withdraw_amount(make_ctx(conversation, text_event("20")))

        assert conversation.current_flow == "idle"
        assert "Payouts are paused" in sender.last["body"]
