"""
Nyx Chat Executors - Workspace

Tasks, expenses and the activity log.
"""

import logging
from typing import Any, Dict

from errors import ErrorCode, ValidationError, handle_async_tool_errors, success_response
from services.store import EXPENSES, TASKS, DataStore, session_scope, utc_now

from .common import record_activity

logger = logging.getLogger(__name__)

PRIORITIES = ("low", "medium", "high")


@handle_async_tool_errors("create_task")
async def execute_create_task(
    title: str, session_identity: str, store: DataStore, priority: str = "medium"
) -> Dict[str, Any]:
    priority = (priority or "medium").lower()
    if priority not in PRIORITIES:
        raise ValidationError(
            f"Unknown priority: {priority}",
            parameter="priority",
            expected=", ".join(PRIORITIES),
            received=priority,
            code=ErrorCode.VALIDATION_OUT_OF_RANGE,
        )

    task = {
        "title": title.strip(),
        "priority": priority,
        "completed": False,
        "session_identity": session_identity,
        "created_at": utc_now(),
    }
    task_id = await store.append(session_scope(TASKS, session_identity), task)
    logger.info(f"Task {task_id} created for {session_identity}")
    return success_response(f'Task "{task["title"]}" created.', task_id=task_id)


@handle_async_tool_errors("create_expense")
async def execute_create_expense(
    category: str, amount: Any, session_identity: str, store: DataStore
) -> Dict[str, Any]:
    try:
        value = float(amount)
    except (TypeError, ValueError):
        raise ValidationError(
            "Invalid amount",
            details="Amount must be a number",
            parameter="amount",
            expected="number",
            received=str(amount),
        )
    if value <= 0:
        raise ValidationError(
            "Invalid amount",
            details="Amount must be positive",
            parameter="amount",
            received=str(amount),
            code=ErrorCode.VALIDATION_OUT_OF_RANGE,
        )

    expense = {
        "category": category.strip(),
        "amount": value,
        "session_identity": session_identity,
        "timestamp": utc_now(),
    }
    expense_id = await store.append(session_scope(EXPENSES, session_identity), expense)
    return success_response(f"Expense of ${value:.2f} for {expense['category']} logged.", expense_id=expense_id)


@handle_async_tool_errors("log_activity")
async def execute_log_activity(description: str, session_identity: str, store: DataStore) -> Dict[str, Any]:
    entry_id = await record_activity(store, session_identity, description)
    return success_response("Activity logged.", entry_id=entry_id)
