from datetime import datetime
from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class PlatformModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class PlatformUser(PlatformModel):
    id: str
    email: Optional[str] = None
    name: str = "User"
    role: str = "student"  # student, teacher, freelancer, admin
    phone: Optional[str] = Field(default=None, validation_alias=AliasChoices("phone", "phoneNumber"))
    password_hash: Optional[str] = Field(default=None, validation_alias=AliasChoices("password_hash", "passwordHash"))
    is_blocked: bool = Field(default=False, validation_alias=AliasChoices("is_blocked", "isBlocked"))
    created_at: Optional[datetime] = Field(default=None, validation_alias=AliasChoices("created_at", "createdAt"))


class Country(PlatformModel):
    id: str
    name: str


class VerificationCode(PlatformModel):
    id: str
    email: str
    code: str
    expires_at: datetime
    user_data: dict[str, Any] = Field(default_factory=dict)
    is_used: bool = False


class Enrollment(PlatformModel):
    course_id: str
    course_title: Optional[str] = None
    progress: int = 0


class Wallet(PlatformModel):
    customer_id: Optional[str] = None
    balance: float = 0.0


class Transaction(PlatformModel):
    type: str
    amount: float
    description: str = ""

    @property
    def is_credit(self) -> bool:
        return self.type in ("add_funds", "refund")


class Certificate(PlatformModel):
    id: str
    course_title: str
    issue_date: Optional[datetime] = None


class ReferralInfo(PlatformModel):
    code: str
    referral_count: int = 0


class Voucher(PlatformModel):
    code: str
    amount: float
    payment_status: str  # completed, pending
    new_wallet_balance: Optional[float] = None
    checkout_url: Optional[str] = None


class Application(PlatformModel):
    status: str  # pending, under_review, approved, rejected
    submitted_at: Optional[datetime] = None
    notes: Optional[str] = None
    display_name: Optional[str] = None
    category: Optional[str] = None


class Booking(PlatformModel):
    id: str
    title: Optional[str] = None
    subject: Optional[str] = None
    start_date: datetime
    status: str


class Course(PlatformModel):
    id: str
    title: str


class AvailabilitySlot(PlatformModel):
    day_of_week: int
    start_time: str
    end_time: str


class Earning(PlatformModel):
    amount: float
    event_type: str


class CreatorBalance(PlatformModel):
    available: float = 0.0
    pending: float = 0.0
    lifetime: float = 0.0
    recent_earnings: list[Earning] = Field(default_factory=list)


class PayoutAccount(PlatformModel):
    id: str
    account_name: str
    type: str = "bank"


class PayoutRequest(PlatformModel):
    id: str
    amount: float
    status: str = "awaiting_admin"


class FreelancerOrder(PlatformModel):
    id: str
    title: str
    status: str
    budget: Optional[float] = None


class SupportTicket(PlatformModel):
    id: str
    subject: str
    status: str  # open, pending
    priority: Optional[str] = None
    created_at: Optional[datetime] = None


class SystemStats(PlatformModel):
    total_users: int = 0
    blocked_users: int = 0
    total_courses: int = 0
    total_products: int = 0


class AdminAction(PlatformModel):
    action: str
    target_user_id: Optional[str] = None
    created_at: Optional[datetime] = None
