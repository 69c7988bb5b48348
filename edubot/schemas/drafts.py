"""Typed views over the per-conversation ``flow_data`` bag.

Each wizard family owns one draft. Drafts are persisted with camelCase keys
so rows written by older deployments stay readable.
"""

from datetime import datetime
from typing import Any, Optional, TypeVar

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

DraftT = TypeVar("DraftT", bound="Draft")


class Draft(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    @classmethod
    def load(cls: type[DraftT], data: Optional[dict[str, Any]]) -> DraftT:
        return cls.model_validate(data or {})

    def dump(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class EmptyDraft(Draft):
    pass


class LoginDraft(Draft):
    user_id: Optional[str] = None
    user_email: Optional[str] = None
    user_name: Optional[str] = None
    user_role: Optional[str] = None


class RegistrationDraft(Draft):
    role: str = "student"
    name: Optional[str] = None
    email: Optional[str] = None
    password_hash: Optional[str] = None
    country: Optional[str] = None
    country_id: Optional[str] = None
    age: Optional[int] = None
    grade: Optional[int] = None
    education_level: Optional[str] = None


class VoucherDraft(Draft):
    is_gift: Optional[bool] = None
    recipient_email: Optional[str] = None
    recipient_name: Optional[str] = None
    personal_message: Optional[str] = None
    amount: Optional[float] = None


class AssignmentDraft(Draft):
    course_id: Optional[str] = None
    title: Optional[str] = None


class AvailabilityDraft(Draft):
    day_of_week: Optional[int] = None
    day_name: Optional[str] = None


class WithdrawalDraft(Draft):
    available_balance: Optional[float] = None
    payout_account_id: Optional[str] = None
    amount: Optional[float] = None


class UpgradeDraft(Draft):
    current_plan: Optional[str] = None
    selected_plan: Optional[str] = None
    plan_name: Optional[str] = None
    monthly_price: Optional[float] = None


class AdminDraft(Draft):
    admin_session_start: Optional[datetime] = None
    view_only: Optional[bool] = None
    target_user_id: Optional[str] = None
    target_user_name: Optional[str] = None
    target_user_email: Optional[str] = None
    broadcast_message: Optional[str] = None

    def session_only(self) -> "AdminDraft":
        """Draft carrying nothing but the session start, used on return to the admin menu."""
        return AdminDraft(admin_session_start=self.admin_session_start)
