"""Privileged admin sub-session.

Entry needs both the shared secret (checked by the router's SecretGuard) and
a linked account with the admin role. Every admin-family handler re-checks
the session age before doing anything, so a party idling deep inside a
wizard is thrown out on their next message.
"""

import asyncio
import functools
from dataclasses import dataclass
from datetime import timedelta
from typing import Awaitable, Callable, Optional

from edubot.logging_config import get_logger
from edubot.schemas.drafts import AdminDraft
from edubot.schemas.outbound import Button
from edubot.schemas.platform import PlatformUser
from edubot.services import conversation_service
from edubot.services.flow_executor import FlowContext, Handler, registry
from edubot.services.handlers.auth import find_user_by_identity
from edubot.services.handlers.menus import send_admin_menu, send_menu_for, send_new_user_menu
from edubot.services.platform_client import PlatformGateway
from edubot.services.session_expiry import admin_session_expired
from edubot.services.state_machine import FlowName
from edubot.services.whatsapp_service import MessageSender

logger = get_logger("admin")

ACCESS_DENIED_TEXT = "Access denied. You don't have admin privileges."
SESSION_EXPIRED_TEXT = "Admin session expired. Please re-authenticate."
USER_NOT_FOUND_TEXT = "User not found. Please try again or type CANCEL to go back."
BROADCAST_PREFIX = "📢 *Announcement from EduFiliova*\n\n"

AdminHandler = Callable[[FlowContext, AdminDraft], Awaitable[None]]


def admin_timeout(ctx: FlowContext) -> timedelta:
    return timedelta(minutes=ctx.settings.admin_session_timeout_minutes)


def admin_handler(handler: AdminHandler) -> Handler:
    """Wrap an admin-family handler with the session age check."""

    @functools.wraps(handler)
    async def guarded(ctx: FlowContext) -> None:
        draft = ctx.draft(AdminDraft)
        if admin_session_expired(draft, ctx.now(), admin_timeout(ctx)):
            ctx.log.info("Admin session expired", context={"session_start": draft.admin_session_start})
            ctx.reset()
            await ctx.send_text(SESSION_EXPIRED_TEXT)
            await send_new_user_menu(ctx)
            return
        await handler(ctx, draft)

    return guarded


async def return_to_admin_menu(ctx: FlowContext, draft: AdminDraft) -> None:
    ctx.update_flow(FlowName.ADMIN_MENU, draft.session_only())
    await send_admin_menu(ctx)


async def audit(ctx: FlowContext, action: str, target_user_id, details: dict) -> None:
    await ctx.platform.log_admin_action(ctx.linked_user_id, action, target_user_id, details)
    ctx.log.info("Admin action", context={"action": action, "target_user_id": target_user_id})


async def enter_admin(ctx: FlowContext) -> None:
    """Secret matched; only an account that already holds the admin role gets in."""
    user = await ctx.linked_user()
    if user is None or user.role != "admin":
        ctx.log.warning("Admin entry refused", context={"linked_user_id": ctx.linked_user_id})
        await ctx.send_text(ACCESS_DENIED_TEXT)
        return

    ctx.update_flow(FlowName.ADMIN_MENU, AdminDraft(admin_session_start=ctx.now()))
    ctx.log.info("Admin session started", context={"user_id": user.id})
    await send_admin_menu(ctx)


@admin_handler
async def cancel_admin_action(ctx: FlowContext, draft: AdminDraft) -> None:
    await return_to_admin_menu(ctx, draft)


_LOOKUP_PROMPTS = {
    "adm_block": (FlowName.ADMIN_BLOCK_USER, False, "Enter the email or phone number of the user you want to block:"),
    "adm_unblock": (
        FlowName.ADMIN_UNBLOCK_USER,
        False,
        "Enter the email or phone number of the user you want to unblock:",
    ),
    "adm_delete": (
        FlowName.ADMIN_DELETE_USER,
        False,
        "⚠️ *WARNING: This action cannot be undone!*\n\n"
        "Enter the email or phone number of the user you want to delete:",
    ),
    "adm_view_user": (FlowName.ADMIN_BLOCK_USER, True, "Enter the email or phone number of the user you want to view:"),
}


@registry.handles(FlowName.ADMIN_MENU)
@admin_handler
async def handle_admin_selection(ctx: FlowContext, draft: AdminDraft) -> None:
    selection = ctx.event.selection
    session = draft.session_only()

    if selection in _LOOKUP_PROMPTS:
        flow, view_only, prompt = _LOOKUP_PROMPTS[selection]
        ctx.update_flow(flow, session.model_copy(update={"view_only": view_only or None}))
        await ctx.send_text(prompt)
    elif selection == "adm_broadcast":
        ctx.update_flow(FlowName.ADMIN_BROADCAST, session)
        await ctx.send_text(
            "Enter the message you want to broadcast to all WhatsApp users:\n\n(Type CANCEL to abort)"
        )
    elif selection == "adm_tickets":
        await show_support_tickets(ctx)
        await return_to_admin_menu(ctx, draft)
    elif selection == "adm_stats":
        await show_system_stats(ctx)
        await return_to_admin_menu(ctx, draft)
    elif selection == "adm_audit":
        await show_audit_log(ctx)
        await return_to_admin_menu(ctx, draft)
    elif selection == "adm_exit":
        ctx.reset()
        ctx.log.info("Admin session ended")
        await ctx.send_text("Exited admin mode.")
        await send_menu_for(ctx, await ctx.linked_user())
    else:
        await send_admin_menu(ctx)


# --- reports ---------------------------------------------------------------


async def show_support_tickets(ctx: FlowContext) -> None:
    tickets = await ctx.platform.list_open_tickets(limit=10)
    if not tickets:
        await ctx.send_text("🎫 *Support Tickets*\n\n✅ No open tickets at the moment!")
        return

    lines = ["🎫 *Open Support Tickets*", ""]
    for ticket in tickets:
        status = "🔴" if ticket.status == "open" else "🟡"
        priority = {"high": "🔥", "medium": "⚠️"}.get(ticket.priority or "", "📝")
        lines.append(f"{status} *#{ticket.id[:8]}*")
        lines.append(f"   {priority} {ticket.subject}")
        if ticket.created_at:
            lines.append(f"   📅 {ticket.created_at:%d/%m/%Y}")
        lines.append("")
    lines.append(f"📊 Total open: {len(tickets)} ticket(s)")
    await ctx.send_text("\n".join(lines))


async def show_system_stats(ctx: FlowContext) -> None:
    stats = await ctx.platform.get_system_stats()
    conversations = len(conversation_service.list_active_addresses(ctx.db))
    await ctx.send_text(
        "📊 *System Statistics*\n\n"
        f"👥 Total Users: {stats.total_users}\n"
        f"🚫 Blocked Users: {stats.blocked_users}\n"
        f"📚 Total Courses: {stats.total_courses}\n"
        f"🛍️ Total Products: {stats.total_products}\n"
        f"📱 WhatsApp Conversations: {conversations}\n"
        f"\n📅 Generated: {ctx.now():%d/%m/%Y %H:%M} UTC"
    )


def _action_icon(action: str) -> str:
    if "UNBLOCK" in action:
        return "✅"
    if "BLOCK" in action:
        return "🚫"
    if "DELETE" in action:
        return "🗑️"
    if "BROADCAST" in action:
        return "📢"
    return "⚡"


async def show_audit_log(ctx: FlowContext) -> None:
    actions = await ctx.platform.list_admin_actions(limit=10)
    if not actions:
        await ctx.send_text("📋 *Admin Audit Log*\n\nNo admin actions recorded yet.")
        return

    lines = ["📋 *Recent Admin Actions*", ""]
    for entry in actions:
        lines.append(f"{_action_icon(entry.action)} *{entry.action}*")
        if entry.created_at:
            lines.append(f"   📅 {entry.created_at:%d/%m/%Y %H:%M}")
        if entry.target_user_id:
            lines.append(f"   🎯 Target: {entry.target_user_id[:8]}...")
        lines.append("")
    await ctx.send_text("\n".join(lines))


# --- user management -------------------------------------------------------


def _describe(user: PlatformUser) -> str:
    return f"👤 Name: {user.name}\n📧 Email: {user.email or 'N/A'}\n🎭 Role: {user.role}"


def _with_target(draft: AdminDraft, user: PlatformUser) -> AdminDraft:
    return draft.model_copy(
        update={"target_user_id": user.id, "target_user_name": user.name, "target_user_email": user.email}
    )


def _target_details(draft: AdminDraft) -> dict:
    return {"userName": draft.target_user_name, "email": draft.target_user_email}


@registry.handles(FlowName.ADMIN_BLOCK_USER)
@admin_handler
async def handle_admin_block_user(ctx: FlowContext, draft: AdminDraft) -> None:
    user = await find_user_by_identity(ctx, ctx.event.raw_text)
    if user is None:
        await ctx.send_text(USER_NOT_FOUND_TEXT)
        return

    if draft.view_only:
        joined = f"{user.created_at:%d/%m/%Y}" if user.created_at else "N/A"
        await ctx.send_text(
            "*User Information*\n\n"
            f"👤 Name: {user.name}\n"
            f"📧 Email: {user.email or 'N/A'}\n"
            f"📱 Phone: {user.phone or 'N/A'}\n"
            f"🎭 Role: {user.role}\n"
            f"📊 Status: {'🚫 BLOCKED' if user.is_blocked else '✅ Active'}\n"
            f"📅 Joined: {joined}"
        )
        await return_to_admin_menu(ctx, draft)
        return

    ctx.update_flow(FlowName.ADMIN_BLOCK_CONFIRM, _with_target(draft, user))
    await ctx.send_buttons(
        f"Are you sure you want to block this user?\n\n{_describe(user)}",
        [Button(id="confirm_block", title="Yes, Block User"), Button(id="cancel_block", title="Cancel")],
        header="⚠️ Confirm Block",
    )


@registry.handles(FlowName.ADMIN_BLOCK_CONFIRM)
@admin_handler
async def handle_admin_block_confirm(ctx: FlowContext, draft: AdminDraft) -> None:
    if ctx.event.selection in ("confirm_block", "yes") and draft.target_user_id:
        await ctx.platform.block_user(draft.target_user_id)
        await audit(ctx, "BLOCK_USER", draft.target_user_id, _target_details(draft))
        await ctx.send_text(f'✅ User "{draft.target_user_name}" has been blocked successfully.')
    else:
        await ctx.send_text("Block action cancelled.")
    await return_to_admin_menu(ctx, draft)


@registry.handles(FlowName.ADMIN_UNBLOCK_USER)
@admin_handler
async def handle_admin_unblock_user(ctx: FlowContext, draft: AdminDraft) -> None:
    user = await find_user_by_identity(ctx, ctx.event.raw_text)
    if user is None:
        await ctx.send_text(USER_NOT_FOUND_TEXT)
        return

    if not user.is_blocked:
        await ctx.send_text(f'User "{user.name}" is not blocked.')
        await return_to_admin_menu(ctx, draft)
        return

    await ctx.platform.unblock_user(user.id)
    await audit(ctx, "UNBLOCK_USER", user.id, {"userName": user.name, "email": user.email})
    await ctx.send_text(f'✅ User "{user.name}" has been unblocked successfully.')
    await return_to_admin_menu(ctx, draft)


@registry.handles(FlowName.ADMIN_DELETE_USER)
@admin_handler
async def handle_admin_delete_user(ctx: FlowContext, draft: AdminDraft) -> None:
    user = await find_user_by_identity(ctx, ctx.event.raw_text)
    if user is None:
        await ctx.send_text(USER_NOT_FOUND_TEXT)
        return

    ctx.update_flow(FlowName.ADMIN_DELETE_CONFIRM, _with_target(draft, user))
    await ctx.send_buttons(
        "⚠️ *DANGER: This action CANNOT be undone!*\n\n"
        f"You are about to PERMANENTLY DELETE:\n\n{_describe(user)}\n\n"
        "All user data will be lost forever.",
        [Button(id="confirm_delete", title="⚠️ DELETE FOREVER"), Button(id="cancel_delete", title="Cancel")],
        header="🗑️ Confirm Delete",
    )


@registry.handles(FlowName.ADMIN_DELETE_CONFIRM)
@admin_handler
async def handle_admin_delete_confirm(ctx: FlowContext, draft: AdminDraft) -> None:
    if ctx.event.choice_id == "confirm_delete" and draft.target_user_id:
        await ctx.platform.delete_user(draft.target_user_id)
        await audit(ctx, "DELETE_USER", draft.target_user_id, _target_details(draft))
        await ctx.send_text(f'🗑️ User "{draft.target_user_name}" has been deleted.')
    else:
        await ctx.send_text("Delete action cancelled.")
    await return_to_admin_menu(ctx, draft)


# --- broadcast -------------------------------------------------------------


@dataclass
class Broadcast:
    """One announcement fan-out, detached from the admin's inbound event.

    Runs as its own task, outside the handler timeout. Each send has its own
    bound. The audit entry and the summary go out once every recipient has
    been tried.
    """

    sender: MessageSender
    platform: PlatformGateway
    admin_address: str
    admin_user_id: Optional[str]
    message: str
    recipients: list[str]
    send_timeout: float

    async def _deliver(self, address: str) -> bool:
        try:
            result = await asyncio.wait_for(
                self.sender.send_text(address, BROADCAST_PREFIX + self.message), timeout=self.send_timeout
            )
        except asyncio.TimeoutError:
            logger.warning("Broadcast send timed out", extra={"context": {"address": address}})
            return False
        return result.success

    async def run(self) -> int:
        sent = 0
        for address in self.recipients:
            if await self._deliver(address):
                sent += 1

        details = {"message": self.message, "recipientCount": sent}
        await self.platform.log_admin_action(self.admin_user_id, "BROADCAST", None, details)
        logger.info(
            "Broadcast finished",
            extra={"context": {"admin_user_id": self.admin_user_id, "sent": sent, "total": len(self.recipients)}},
        )
        await self.sender.send_text(self.admin_address, f"✅ Broadcast sent successfully to {sent} user(s).")
        return sent


_running_broadcasts: set[asyncio.Task] = set()


def _broadcast_done(task: asyncio.Task) -> None:
    _running_broadcasts.discard(task)
    if not task.cancelled() and task.exception() is not None:
        logger.error("Broadcast failed", exc_info=task.exception())


def start_broadcast(job: Broadcast) -> asyncio.Task:
    task = asyncio.create_task(job.run())
    _running_broadcasts.add(task)
    task.add_done_callback(_broadcast_done)
    return task


async def drain_broadcasts() -> None:
    """Wait for every broadcast still in flight."""
    if _running_broadcasts:
        await asyncio.gather(*list(_running_broadcasts), return_exceptions=True)


@registry.handles(FlowName.ADMIN_BROADCAST)
@admin_handler
async def handle_admin_broadcast(ctx: FlowContext, draft: AdminDraft) -> None:
    message = ctx.event.raw_text
    if not message:
        await ctx.send_text("Please enter the message to broadcast, or type CANCEL to abort.")
        return

    ctx.update_flow(FlowName.ADMIN_BROADCAST_CONFIRM, draft.model_copy(update={"broadcast_message": message}))
    await ctx.send_buttons(
        f"*Preview of broadcast message:*\n\n{message}\n\nSend this to all WhatsApp users?",
        [Button(id="confirm_broadcast", title="Send to All"), Button(id="cancel_broadcast", title="Cancel")],
        header="📢 Confirm Broadcast",
    )


@registry.handles(FlowName.ADMIN_BROADCAST_CONFIRM)
@admin_handler
async def handle_admin_broadcast_confirm(ctx: FlowContext, draft: AdminDraft) -> None:
    if ctx.event.choice_id != "confirm_broadcast" or not draft.broadcast_message:
        await ctx.send_text("Broadcast cancelled.")
        await return_to_admin_menu(ctx, draft)
        return

    recipients = [a for a in conversation_service.list_active_addresses(ctx.db) if a != ctx.address]
    job = Broadcast(
        sender=ctx.sender,
        platform=ctx.platform,
        admin_address=ctx.address,
        admin_user_id=ctx.linked_user_id,
        message=draft.broadcast_message,
        recipients=recipients,
        send_timeout=ctx.settings.send_timeout_seconds,
    )
    start_broadcast(job)
    ctx.log.info("Broadcast started", context={"recipients": len(recipients)})
    await ctx.send_text(f"📢 Broadcasting to {len(recipients)} user(s). You will get a summary when it finishes.")
    await return_to_admin_menu(ctx, draft)
