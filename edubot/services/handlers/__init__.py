"""Flow handlers. Importing this package fills ``flow_executor.registry``."""

from edubot.services.handlers import admin, auth, freelancer, menu_selection, payouts, student, teacher  # noqa: F401
from edubot.services.handlers.admin import cancel_admin_action, enter_admin
from edubot.services.handlers.menu_selection import handle_menu_button

__all__ = ["cancel_admin_action", "enter_admin", "handle_menu_button"]
