"""Gateway to the EduFiliova platform (accounts, wallets, courses, payouts).

Flow handlers never touch platform tables directly; every domain read or
write goes through a PlatformGateway so the engine can be tested with a mock.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime
from typing import Any, Optional, TypeVar

import httpx
from pydantic import BaseModel

from edubot.logging_config import get_logger
from edubot.schemas.platform import (
    AdminAction,
    Application,
    AvailabilitySlot,
    Booking,
    Certificate,
    Country,
    Course,
    CreatorBalance,
    Enrollment,
    FreelancerOrder,
    PayoutAccount,
    PayoutRequest,
    PlatformUser,
    ReferralInfo,
    SupportTicket,
    SystemStats,
    Transaction,
    VerificationCode,
    Voucher,
    Wallet,
)
from edubot.services.result import Result

logger = get_logger("platform_client")

ModelT = TypeVar("ModelT", bound=BaseModel)


class PlatformError(Exception):
    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class PlatformGateway(ABC):
    """Domain operations the conversation flows depend on."""

    # Accounts
    @abstractmethod
    async def find_user_by_email(self, email: str) -> Optional[PlatformUser]:
        pass

    @abstractmethod
    async def find_user_by_phone(self, phone: str) -> Optional[PlatformUser]:
        pass

    @abstractmethod
    async def get_user(self, user_id: str) -> Optional[PlatformUser]:
        pass

    @abstractmethod
    async def set_user_phone(self, user_id: str, phone: str) -> None:
        pass

    @abstractmethod
    async def create_student_account(self, registration: dict[str, Any], phone: str) -> Result[PlatformUser]:
        pass

    # Registration
    @abstractmethod
    async def list_popular_countries(self) -> list[Country]:
        pass

    @abstractmethod
    async def get_country(self, country_id: str) -> Optional[Country]:
        pass

    @abstractmethod
    async def find_country(self, name: str) -> Optional[Country]:
        pass

    @abstractmethod
    async def store_verification_code(
        self, email: str, code: str, expires_at: datetime, user_data: dict[str, Any]
    ) -> None:
        """Replace any pending code for this email."""
        pass

    @abstractmethod
    async def get_verification_code(self, email: str) -> Optional[VerificationCode]:
        pass

    @abstractmethod
    async def mark_verification_code_used(self, code_id: str) -> None:
        pass

    @abstractmethod
    async def send_verification_email(self, email: str, code: str) -> bool:
        pass

    # Student
    @abstractmethod
    async def list_enrollments(self, user_id: str) -> list[Enrollment]:
        pass

    @abstractmethod
    async def get_wallet(self, user_id: str) -> Wallet:
        pass

    @abstractmethod
    async def list_transactions(self, user_id: str, limit: int = 5) -> list[Transaction]:
        pass

    @abstractmethod
    async def list_certificates(self, user_id: str) -> list[Certificate]:
        pass

    @abstractmethod
    async def get_referral_info(self, user_id: str) -> ReferralInfo:
        pass

    @abstractmethod
    async def create_voucher(self, buyer_id: str, voucher: dict[str, Any], payment_method: str) -> Result[Voucher]:
        """Create a gift voucher. Wallet payments fail with code ``insufficient_funds``."""
        pass

    # Teacher
    @abstractmethod
    async def get_teacher_application(self, user_id: str) -> Optional[Application]:
        pass

    @abstractmethod
    async def list_upcoming_bookings(self, teacher_id: str) -> list[Booking]:
        pass

    @abstractmethod
    async def list_teacher_courses(self, teacher_id: str) -> list[Course]:
        pass

    @abstractmethod
    async def get_course(self, course_id: str) -> Optional[Course]:
        pass

    @abstractmethod
    async def create_assignment(self, teacher_id: str, course_id: str, title: str, due_date: datetime) -> None:
        pass

    @abstractmethod
    async def list_availability(self, teacher_id: str) -> list[AvailabilitySlot]:
        pass

    @abstractmethod
    async def set_availability(self, teacher_id: str, day_of_week: int, start_time: str, end_time: str) -> None:
        pass

    @abstractmethod
    async def clear_availability(self, teacher_id: str, day_of_week: int) -> None:
        pass

    @abstractmethod
    async def get_creator_balance(self, creator_id: str) -> CreatorBalance:
        pass

    @abstractmethod
    async def get_default_payout_account(self, user_id: str) -> Optional[PayoutAccount]:
        pass

    @abstractmethod
    async def request_payout(self, creator_id: str, amount: float, payout_account_id: str) -> Result[PayoutRequest]:
        pass

    # Freelancer
    @abstractmethod
    async def get_freelancer_application(self, user_id: str) -> Optional[Application]:
        pass

    @abstractmethod
    async def list_freelancer_orders(self, user_id: str) -> list[FreelancerOrder]:
        pass

    @abstractmethod
    async def get_membership_plan(self, user_id: str) -> str:
        pass

    # Admin
    @abstractmethod
    async def block_user(self, user_id: str) -> None:
        pass

    @abstractmethod
    async def unblock_user(self, user_id: str) -> None:
        pass

    @abstractmethod
    async def delete_user(self, user_id: str) -> None:
        """Soft delete: deactivate, block and scrub the profile."""
        pass

    @abstractmethod
    async def list_open_tickets(self, limit: int = 10) -> list[SupportTicket]:
        pass

    @abstractmethod
    async def get_system_stats(self) -> SystemStats:
        pass

    @abstractmethod
    async def list_admin_actions(self, limit: int = 10) -> list[AdminAction]:
        pass

    @abstractmethod
    async def log_admin_action(
        self, admin_user_id: str, action: str, target_user_id: Optional[str], details: dict[str, Any]
    ) -> None:
        pass


def _jsonable(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_jsonable(v) for v in value]
    return value


class PlatformApiClient(PlatformGateway):
    """PlatformGateway over the platform's internal JSON API.

    Every endpoint answers ``{"success": bool, "data": ..., "error": str, "code": str}``.
    A 404 on a lookup means "no such record"; other non-2xx answers and
    transport errors raise PlatformError.
    """

    def __init__(self, base_url: str, token: str = "", timeout_seconds: float = 10.0):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout_seconds = timeout_seconds

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[dict[str, Any]] = None,
        body: Optional[dict[str, Any]] = None,
        allow_not_found: bool = False,
    ) -> Optional[dict[str, Any]]:
        url = f"{self.base_url}{path}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                response = await client.request(
                    method, url, params=params, json=_jsonable(body) if body is not None else None, headers=self._headers()
                )
        except httpx.HTTPError as e:
            logger.error(f"Platform request failed: {method} {path}: {e}")
            raise PlatformError(f"{method} {path} failed: {e}") from e

        if response.status_code == 404 and allow_not_found:
            return None
        if response.status_code >= 500 or response.status_code in (401, 403):
            logger.error(
                "Platform request rejected",
                extra={"context": {"method": method, "path": path, "status_code": response.status_code}},
            )
            raise PlatformError(f"{method} {path} returned {response.status_code}", response.status_code)

        try:
            return response.json()
        except ValueError as e:
            raise PlatformError(f"{method} {path} returned invalid JSON", response.status_code) from e

    async def _get_one(self, path: str, model: type[ModelT], params: Optional[dict] = None) -> Optional[ModelT]:
        payload = await self._request("GET", path, params=params, allow_not_found=True)
        if not payload or not payload.get("data"):
            return None
        return model.model_validate(payload["data"])

    async def _get_many(self, path: str, model: type[ModelT], params: Optional[dict] = None) -> list[ModelT]:
        payload = await self._request("GET", path, params=params)
        return [model.model_validate(item) for item in (payload or {}).get("data") or []]

    async def _post(self, path: str, body: dict[str, Any]) -> dict[str, Any]:
        return await self._request("POST", path, body=body) or {}

    async def find_user_by_email(self, email):
        return await self._get_one("/users/lookup", PlatformUser, {"email": email.strip().lower()})

    async def find_user_by_phone(self, phone):
        return await self._get_one("/users/lookup", PlatformUser, {"phone": phone})

    async def get_user(self, user_id):
        return await self._get_one(f"/users/{user_id}", PlatformUser)

    async def set_user_phone(self, user_id, phone):
        await self._post(f"/users/{user_id}/phone", {"phone": phone})

    async def create_student_account(self, registration, phone):
        payload = await self._post("/users/students", {**registration, "phone": phone})
        return Result.from_envelope(payload, PlatformUser.model_validate)

    async def list_popular_countries(self):
        return await self._get_many("/countries/popular", Country)

    async def get_country(self, country_id):
        return await self._get_one(f"/countries/{country_id}", Country)

    async def find_country(self, name):
        return await self._get_one("/countries/search", Country, {"name": name})

    async def store_verification_code(self, email, code, expires_at, user_data):
        await self._post(
            "/verification-codes",
            {"email": email, "code": code, "type": "email", "expires_at": expires_at, "user_data": user_data},
        )

    async def get_verification_code(self, email):
        return await self._get_one("/verification-codes/pending", VerificationCode, {"email": email})

    async def mark_verification_code_used(self, code_id):
        await self._post(f"/verification-codes/{code_id}/use", {})

    async def send_verification_email(self, email, code):
        payload = await self._post("/emails/verification", {"email": email, "code": code})
        return bool(payload.get("success"))

    async def list_enrollments(self, user_id):
        return await self._get_many(f"/students/{user_id}/enrollments", Enrollment)

    async def get_wallet(self, user_id):
        return await self._get_one(f"/wallets/{user_id}", Wallet) or Wallet()

    async def list_transactions(self, user_id, limit=5):
        return await self._get_many(f"/wallets/{user_id}/transactions", Transaction, {"limit": limit})

    async def list_certificates(self, user_id):
        return await self._get_many(f"/students/{user_id}/certificates", Certificate)

    async def get_referral_info(self, user_id):
        info = await self._get_one(f"/students/{user_id}/referral", ReferralInfo)
        return info or ReferralInfo(code="")

    async def create_voucher(self, buyer_id, voucher, payment_method):
        payload = await self._post("/vouchers", {"buyer_id": buyer_id, "payment_method": payment_method, **voucher})
        return Result.from_envelope(payload, Voucher.model_validate)

    async def get_teacher_application(self, user_id):
        return await self._get_one(f"/teachers/{user_id}/application", Application)

    async def list_upcoming_bookings(self, teacher_id):
        return await self._get_many(f"/teachers/{teacher_id}/bookings", Booking, {"upcoming": "true"})

    async def list_teacher_courses(self, teacher_id):
        return await self._get_many(f"/teachers/{teacher_id}/courses", Course)

    async def get_course(self, course_id):
        return await self._get_one(f"/courses/{course_id}", Course)

    async def create_assignment(self, teacher_id, course_id, title, due_date):
        await self._post(
            f"/teachers/{teacher_id}/assignments",
            {"course_id": course_id, "title": title, "due_date": due_date},
        )

    async def list_availability(self, teacher_id):
        return await self._get_many(f"/teachers/{teacher_id}/availability", AvailabilitySlot)

    async def set_availability(self, teacher_id, day_of_week, start_time, end_time):
        await self._post(
            f"/teachers/{teacher_id}/availability",
            {"day_of_week": day_of_week, "start_time": start_time, "end_time": end_time, "is_active": True},
        )

    async def clear_availability(self, teacher_id, day_of_week):
        await self._post(
            f"/teachers/{teacher_id}/availability",
            {"day_of_week": day_of_week, "is_active": False},
        )

    async def get_creator_balance(self, creator_id):
        return await self._get_one(f"/creators/{creator_id}/balance", CreatorBalance) or CreatorBalance()

    async def get_default_payout_account(self, user_id):
        return await self._get_one(f"/creators/{user_id}/payout-account", PayoutAccount)

    async def request_payout(self, creator_id, amount, payout_account_id):
        payload = await self._post(
            f"/creators/{creator_id}/payouts",
            {"amount": amount, "payout_account_id": payout_account_id},
        )
        return Result.from_envelope(payload, PayoutRequest.model_validate)

    async def get_freelancer_application(self, user_id):
        return await self._get_one(f"/freelancers/{user_id}/application", Application)

    async def list_freelancer_orders(self, user_id):
        return await self._get_many(f"/freelancers/{user_id}/orders", FreelancerOrder)

    async def get_membership_plan(self, user_id):
        payload = await self._request("GET", f"/freelancers/{user_id}/membership", allow_not_found=True)
        return ((payload or {}).get("data") or {}).get("plan") or "free"

    async def block_user(self, user_id):
        await self._post(f"/admin/users/{user_id}/block", {})

    async def unblock_user(self, user_id):
        await self._post(f"/admin/users/{user_id}/unblock", {})

    async def delete_user(self, user_id):
        await self._post(f"/admin/users/{user_id}/delete", {})

    async def list_open_tickets(self, limit=10):
        return await self._get_many("/admin/tickets", SupportTicket, {"status": "open,pending", "limit": limit})

    async def get_system_stats(self):
        return await self._get_one("/admin/stats", SystemStats) or SystemStats()

    async def list_admin_actions(self, limit=10):
        return await self._get_many("/admin/audit-log", AdminAction, {"limit": limit})

    async def log_admin_action(self, admin_user_id, action, target_user_id, details):
        await self._post(
            "/admin/audit-log",
            {
                "admin_user_id": admin_user_id,
                "action": action,
                "target_user_id": target_user_id,
                "details": details,
                "channel": "whatsapp",
            },
        )
