"""Precedence rules for an inbound event.

Order: admin secret guard, global text commands, top-level buttons,
cancel, then the handler registered for the current flow. Every path runs
inside ``_run`` so a fault anywhere resets the conversation to idle.
"""

import asyncio
from enum import Enum
from typing import Optional

from edubot.logging_config import get_logger
from edubot.schemas.events import EventKind
from edubot.services.flow_executor import FlowContext, FlowRegistry, Handler
from edubot.services.handlers import cancel_admin_action, enter_admin, handle_menu_button
from edubot.services.handlers.menus import (
    GENERIC_FAULT_TEXT,
    LOCKOUT_TEXT,
    back_to_menu,
    start_link,
    start_login,
    start_register,
)
from edubot.services.secret_guard import SecretGuard
from edubot.services.state_machine import MENU_FLOWS, FlowName, is_admin_flow

logger = get_logger("command_router")


class RouteOutcome(str, Enum):
    LOCKED_OUT = "locked_out"
    ADMIN_ENTRY = "admin_entry"
    GLOBAL_COMMAND = "global_command"
    MENU_BUTTON = "menu_button"
    CANCELLED = "cancelled"
    DISPATCHED = "dispatched"
    FALLBACK_IDLE = "fallback_idle"
    HANDLER_FAULT = "handler_fault"
    DUPLICATE = "duplicate"


GLOBAL_COMMANDS: dict[str, Handler] = {
    "menu": back_to_menu,
    "start": back_to_menu,
    "hi": back_to_menu,
    "hello": back_to_menu,
    "login": start_login,
    "register": start_register,
    "link": start_link,
    "link_account": start_link,
}

MENU_BUTTONS = frozenset(
    {
        "btn_login",
        "btn_register",
        "btn_create_account",
        "btn_link",
        "btn_link_number",
        "btn_try_again",
        "btn_try_again_pwd",
        "btn_try_again_link",
        "btn_different_email",
        "btn_cancel",
        "btn_resend_code",
        "btn_forgot_pwd",
        "btn_back_menu",
        "btn_student",
        "btn_teacher",
        "btn_freelancer",
    }
)

CANCEL_WORD = "cancel"


class CommandRouter:
    def __init__(self, guard: SecretGuard, registry: FlowRegistry, handler_timeout: float = 20.0):
        self.guard = guard
        self.registry = registry
        self.handler_timeout = handler_timeout

    async def route(self, ctx: FlowContext) -> RouteOutcome:
        event = ctx.event
        flow = ctx.state.flow

        # An admin already inside the sub-session is never blocked by the guard.
        if event.kind == EventKind.TEXT and not is_admin_flow(flow):
            verdict = self.guard.check(ctx.address, event.raw_text)
            if verdict.is_locked_out:
                await ctx.send_text(LOCKOUT_TEXT)
                return RouteOutcome.LOCKED_OUT
            if verdict.is_secret_match:
                return await self._run(ctx, enter_admin, RouteOutcome.ADMIN_ENTRY)

        command = GLOBAL_COMMANDS.get(event.normalized_text) if event.kind == EventKind.TEXT else None
        if command is not None:
            return await self._run(ctx, command, RouteOutcome.GLOBAL_COMMAND)

        if event.choice_id in MENU_BUTTONS:
            return await self._run(ctx, handle_menu_button, RouteOutcome.MENU_BUTTON)

        if event.normalized_text == CANCEL_WORD and flow not in MENU_FLOWS:
            cancel = cancel_admin_action if is_admin_flow(flow) else back_to_menu
            return await self._run(ctx, cancel, RouteOutcome.CANCELLED)

        handler = self._handler_for(ctx)
        if handler is None:
            return await self._run(ctx, self._idle_handler(ctx), RouteOutcome.FALLBACK_IDLE)
        return await self._run(ctx, handler, RouteOutcome.DISPATCHED)

    def _handler_for(self, ctx: FlowContext) -> Optional[Handler]:
        if ctx.state.corrupted:
            return None
        return self.registry.get(ctx.state.flow)

    def _idle_handler(self, ctx: FlowContext) -> Handler:
        ctx.log.warning(
            "No handler for flow, falling back to idle",
            context={"flow": ctx.conversation.current_flow, "corrupted": ctx.state.corrupted},
        )
        ctx.reset()
        return self.registry.get(FlowName.IDLE) or back_to_menu

    async def _run(self, ctx: FlowContext, handler: Handler, outcome: RouteOutcome) -> RouteOutcome:
        flow = ctx.state.flow
        name = getattr(handler, "__name__", repr(handler))
        try:
            await asyncio.wait_for(handler(ctx), timeout=self.handler_timeout)
        except Exception:
            logger.error(
                "Flow handler failed",
                extra={"context": {"address": ctx.address, "flow": flow.value, "handler": name}},
                exc_info=True,
            )
            await self._recover(ctx)
            return RouteOutcome.HANDLER_FAULT
        return outcome

    async def _recover(self, ctx: FlowContext) -> None:
        """Discard the failed handler's writes, park the conversation on idle and apologise."""
        ctx.db.rollback()
        try:
            ctx.reset()
        except Exception:
            logger.error(
                "Could not reset conversation after fault",
                extra={"context": {"address": ctx.address}},
                exc_info=True,
            )
        await ctx.send_text(GENERIC_FAULT_TEXT)
