from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Optional

from edubot.schemas.drafts import (
    AdminDraft,
    AssignmentDraft,
    AvailabilityDraft,
    Draft,
    EmptyDraft,
    LoginDraft,
    RegistrationDraft,
    UpgradeDraft,
    VoucherDraft,
    WithdrawalDraft,
)


class FlowName(str, Enum):
    IDLE = "idle"
    MAIN_MENU = "main_menu"

    LOGIN_EMAIL = "login_email"
    LOGIN_PASSWORD = "login_password"
    REGISTER_ROLE = "register_role"
    REGISTER_NAME = "register_name"
    REGISTER_EMAIL = "register_email"
    REGISTER_PASSWORD = "register_password"
    REGISTER_COUNTRY = "register_country"
    REGISTER_AGE = "register_age"
    REGISTER_GRADE = "register_grade"
    VERIFY_EMAIL_CODE = "verify_email_code"
    LINK_ACCOUNT_EMAIL = "link_account_email"
    LINK_ACCOUNT_PASSWORD = "link_account_password"

    STUDENT_MENU = "student_menu"
    TEACHER_MENU = "teacher_menu"
    FREELANCER_MENU = "freelancer_menu"

    VOUCHER_TYPE = "voucher_type"
    VOUCHER_AMOUNT = "voucher_amount"
    VOUCHER_CUSTOM_AMOUNT = "voucher_custom_amount"
    VOUCHER_RECIPIENT_EMAIL = "voucher_recipient_email"
    VOUCHER_RECIPIENT_NAME = "voucher_recipient_name"
    VOUCHER_MESSAGE = "voucher_message"
    VOUCHER_CONFIRM = "voucher_confirm"
    DOWNLOAD_APP = "download_app"

    ASSIGNMENT_SELECT_COURSE = "assignment_select_course"
    ASSIGNMENT_TITLE = "assignment_title"
    ASSIGNMENT_DUE_DATE = "assignment_due_date"
    AVAILABILITY_SELECT_DAY = "availability_select_day"
    AVAILABILITY_SET_HOURS = "availability_set_hours"
    WITHDRAW_AMOUNT = "withdraw_amount"
    WITHDRAW_METHOD = "withdraw_method"

    UPGRADE_PLAN_SELECT = "upgrade_plan_select"
    UPGRADE_PLAN_CONFIRM = "upgrade_plan_confirm"
    FRL_WITHDRAW_AMOUNT = "frl_withdraw_amount"
    FRL_WITHDRAW_METHOD = "frl_withdraw_method"

    ADMIN_MENU = "admin_menu"
    ADMIN_BLOCK_USER = "admin_block_user"
    ADMIN_BLOCK_CONFIRM = "admin_block_confirm"
    ADMIN_UNBLOCK_USER = "admin_unblock_user"
    ADMIN_DELETE_USER = "admin_delete_user"
    ADMIN_DELETE_CONFIRM = "admin_delete_confirm"
    ADMIN_BROADCAST = "admin_broadcast"
    ADMIN_BROADCAST_CONFIRM = "admin_broadcast_confirm"


MENU_FLOWS = frozenset(
    {
        FlowName.IDLE,
        FlowName.MAIN_MENU,
        FlowName.STUDENT_MENU,
        FlowName.TEACHER_MENU,
        FlowName.FREELANCER_MENU,
    }
)

ADMIN_FLOWS = frozenset(flow for flow in FlowName if flow.value.startswith("admin_"))

# Free text typed in these flows is a password or one-time code.
CREDENTIAL_FLOWS = frozenset(
    {
        FlowName.LOGIN_PASSWORD,
        FlowName.LINK_ACCOUNT_PASSWORD,
        FlowName.REGISTER_PASSWORD,
        FlowName.VERIFY_EMAIL_CODE,
    }
)

_DRAFT_FAMILIES: dict[type[Draft], tuple[FlowName, ...]] = {
    LoginDraft: (FlowName.LOGIN_PASSWORD, FlowName.LINK_ACCOUNT_PASSWORD),
    RegistrationDraft: (
        FlowName.REGISTER_NAME,
        FlowName.REGISTER_EMAIL,
        FlowName.REGISTER_PASSWORD,
        FlowName.REGISTER_COUNTRY,
        FlowName.REGISTER_AGE,
        FlowName.REGISTER_GRADE,
        FlowName.VERIFY_EMAIL_CODE,
    ),
    VoucherDraft: (
        FlowName.VOUCHER_TYPE,
        FlowName.VOUCHER_RECIPIENT_EMAIL,
        FlowName.VOUCHER_RECIPIENT_NAME,
        FlowName.VOUCHER_MESSAGE,
        FlowName.VOUCHER_AMOUNT,
        FlowName.VOUCHER_CUSTOM_AMOUNT,
        FlowName.VOUCHER_CONFIRM,
    ),
    AssignmentDraft: (FlowName.ASSIGNMENT_SELECT_COURSE, FlowName.ASSIGNMENT_TITLE, FlowName.ASSIGNMENT_DUE_DATE),
    AvailabilityDraft: (FlowName.AVAILABILITY_SELECT_DAY, FlowName.AVAILABILITY_SET_HOURS),
    WithdrawalDraft: (
        FlowName.WITHDRAW_AMOUNT,
        FlowName.WITHDRAW_METHOD,
        FlowName.FRL_WITHDRAW_AMOUNT,
        FlowName.FRL_WITHDRAW_METHOD,
    ),
    UpgradeDraft: (FlowName.UPGRADE_PLAN_SELECT, FlowName.UPGRADE_PLAN_CONFIRM),
    AdminDraft: tuple(ADMIN_FLOWS),
}

DRAFT_BY_FLOW: dict[FlowName, type[Draft]] = {
    flow: draft_cls for draft_cls, flows in _DRAFT_FAMILIES.items() for flow in flows
}


class InvalidDraftError(Exception):
    def __init__(self, flow: FlowName, draft_cls: type[Draft]):
        self.flow = flow
        self.draft_cls = draft_cls
        super().__init__(f"Flow {flow.value} does not carry a {draft_cls.__name__}")


def coerce_flow(value: Optional[str]) -> Optional[FlowName]:
    """Return the FlowName for a stored value, or None when it is not a known flow."""
    if isinstance(value, FlowName):
        return value
    try:
        return FlowName(value)
    except ValueError:
        return None


def draft_class_for(flow: FlowName) -> type[Draft]:
    return DRAFT_BY_FLOW.get(flow, EmptyDraft)


def check_draft(flow: FlowName, draft: Draft) -> None:
    """Raise InvalidDraftError when a draft is written to a flow that cannot read it back."""
    if flow == FlowName.IDLE or isinstance(draft, EmptyDraft):
        return
    expected = draft_class_for(flow)
    if not isinstance(draft, expected):
        raise InvalidDraftError(flow, type(draft))


def is_admin_flow(flow: FlowName) -> bool:
    return flow in ADMIN_FLOWS


@dataclass
class FlowState:
    flow: FlowName
    data: dict[str, Any] = field(default_factory=dict)
    last_activity: Optional[datetime] = None
    corrupted: bool = False

    @property
    def is_idle(self) -> bool:
        return self.flow == FlowName.IDLE

    def draft(self, draft_cls: type[Draft]) -> Draft:
        return draft_cls.load(self.data)

    def idle_for(self, now: Optional[datetime] = None) -> Optional[timedelta]:
        if self.last_activity is None:
            return None
        now = now or datetime.now(timezone.utc)
        last = self.last_activity
        if last.tzinfo is None:
            last = last.replace(tzinfo=timezone.utc)
        return now - last

    def to_document(self) -> dict[str, Any]:
        return {
            "flow": self.flow.value,
            "data": self.data,
            "lastActivity": self.last_activity.isoformat() if self.last_activity else None,
        }


def draft_for(flow: FlowName, data: Optional[dict[str, Any]]) -> Draft:
    """Parse a stored bag with the draft model of the flow's family."""
    return draft_class_for(flow).load(data)
