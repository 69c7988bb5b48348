from edubot.services.conversation_service import (
    get_or_create_conversation,
    link_user,
    load_flow_state,
    normalize_address,
    unlink_user,
    update_flow,
)
from edubot.services.state_machine import (
    ADMIN_FLOWS,
    MENU_FLOWS,
    FlowName,
    FlowState,
)

__all__ = [
    "get_or_create_conversation",
    "link_user",
    "load_flow_state",
    "normalize_address",
    "unlink_user",
    "update_flow",
    "ADMIN_FLOWS",
    "MENU_FLOWS",
    "FlowName",
    "FlowState",
]
