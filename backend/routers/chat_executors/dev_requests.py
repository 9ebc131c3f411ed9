"""
Nyx Chat Executors - Preferences and Development Requests

Self-improvement tools: user corrections that shape future prompts, and
feature or prompt-change requests queued for the developers.
"""

import logging
from typing import Any, Dict

from errors import handle_async_tool_errors, success_response
from services.preferences import add_rule
from services.store import DEV_REQUESTS, DataStore, session_scope, utc_now

from .common import record_activity

logger = logging.getLogger(__name__)


async def create_dev_request(store: DataStore, session_identity: str, request_type: str, task: str) -> str:
    record = {
        "type": request_type,
        "task": task,
        "session_identity": session_identity,
        "status": "pending",
        "created_at": utc_now(),
    }
    return await store.append(session_scope(DEV_REQUESTS, session_identity), record)


@handle_async_tool_errors("save_user_preference")
async def execute_save_user_preference(preference: str, session_identity: str, store: DataStore) -> Dict[str, Any]:
    rule_id = await add_rule(store, session_identity, preference)
    await record_activity(store, session_identity, f'New user preference saved: "{preference}"')
    return success_response("Understood. I will remember this preference.", rule_id=rule_id)


@handle_async_tool_errors("handle_development_request")
async def execute_handle_development_request(
    type: str, task: str, session_identity: str, store: DataStore
) -> Dict[str, Any]:
    request_id = await create_dev_request(store, session_identity, type, task)
    await record_activity(store, session_identity, f"Development request received: {task}")
    return success_response(f"Development request recorded with ID {request_id}.", request_id=request_id)


@handle_async_tool_errors("suggest_prompt_improvement")
async def execute_suggest_prompt_improvement(
    inefficiency_description: str, suggested_change: str, session_identity: str, store: DataStore
) -> Dict[str, Any]:
    task = (
        f'Suggestion based on inefficiency: "{inefficiency_description}". '
        f'Proposed change: "{suggested_change}"'
    )
    request_id = await create_dev_request(store, session_identity, "prompt-improvement", task)
    await record_activity(store, session_identity, f"Prompt improvement suggestion received: {request_id}")
    return success_response(
        f"Prompt improvement suggestion recorded with ID {request_id} for review.", request_id=request_id
    )
