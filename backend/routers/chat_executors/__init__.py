"""
Nyx Chat Executors - tool implementations

Every executor is an async function decorated with handle_async_tool_errors,
so failures come back as standard failed outcomes. Executors declare the
context they need (store, image_data, vision) as parameters; the registry
passes only what each signature accepts.
"""

from .workspace import execute_create_task, execute_create_expense, execute_log_activity
from .inventory import (
    execute_get_inventory_status,
    execute_check_special_order,
    execute_generate_quote,
    find_part,
    find_part_in_text,
)
from .vision import execute_analyze_image
from .dev_requests import (
    execute_save_user_preference,
    execute_handle_development_request,
    execute_suggest_prompt_improvement,
)
from .common import record_activity, normalize_part_name

__all__ = [
    # Workspace
    "execute_create_task",
    "execute_create_expense",
    "execute_log_activity",
    # Inventory / sales
    "execute_get_inventory_status",
    "execute_check_special_order",
    "execute_generate_quote",
    "find_part",
    "find_part_in_text",
    # Vision
    "execute_analyze_image",
    # Preferences / dev requests
    "execute_save_user_preference",
    "execute_handle_development_request",
    "execute_suggest_prompt_improvement",
    # Utilities
    "record_activity",
    "normalize_part_name",
]
