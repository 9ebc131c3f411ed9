"""
Nyx Chat Executors - Inventory and Quotes

Stock lookups against the shared inventory, special-order follow-ups and
quote generation.
"""

import logging
import re
from typing import Any, Dict, Optional

from config import runtime_config
from errors import ErrorCode, ToolExecutionError, ValidationError, handle_async_tool_errors, success_response
from services.store import INVENTORY, QUOTES, DataStore, session_scope, utc_now

from .common import normalize_part_name, record_activity
from .workspace import execute_create_task

logger = logging.getLogger(__name__)

_WORDS = re.compile(r"\w+")


async def find_part(store: DataStore, part_name: str) -> Optional[Dict[str, Any]]:
    """Inventory record for a part name, or None."""
    matches = await store.query(INVENTORY, {"part_name": normalize_part_name(part_name)}, limit=1)
    return matches[0] if matches else None


async def find_part_in_text(store: DataStore, text: str) -> Optional[Dict[str, Any]]:
    """First inventory record whose every name word appears in free text."""
    words = set(_WORDS.findall(text.lower()))
    for part in await store.query(INVENTORY):
        name_words = _WORDS.findall(part.get("part_name", ""))
        if name_words and all(word in words for word in name_words):
            return part
    return None


@handle_async_tool_errors("get_inventory_status")
async def execute_get_inventory_status(part_name: str, store: DataStore) -> Dict[str, Any]:
    part = await find_part(store, part_name)
    if part is None:
        return success_response(f'"{part_name}" was not found in inventory.', data={"stock": 0})

    data = {k: v for k, v in part.items() if k != "id"}
    data.setdefault("stock", 0)
    if data["stock"] <= 0:
        return success_response(f'"{part_name}" is out of stock.', data=data)
    return success_response(f'Found "{part_name}": {data["stock"]} in stock.', data=data)


@handle_async_tool_errors("check_special_order")
async def execute_check_special_order(part_name: str, session_identity: str, store: DataStore) -> Dict[str, Any]:
    task = await execute_create_task(
        title=f"Check special order for: {part_name}",
        priority="high",
        session_identity=session_identity,
        store=store,
    )
    if not task.get("success"):
        raise ToolExecutionError("Could not create the special order task", details=task.get("message"))

    await record_activity(store, session_identity, f'Special order task created for "{part_name}"')
    return success_response(
        f'Created a high-priority task to check a special order for "{part_name}".',
        task_id=task.get("task_id"),
    )


@handle_async_tool_errors("generate_quote")
async def execute_generate_quote(
    part_name: str, session_identity: str, store: DataStore, quantity: Any = 1
) -> Dict[str, Any]:
    try:
        quantity = 1 if quantity in (None, "") else int(quantity)
    except (TypeError, ValueError):
        raise ValidationError("Invalid quantity", parameter="quantity", expected="integer", received=str(quantity))
    if quantity < 1:
        raise ValidationError(
            "Invalid quantity",
            details="Quantity must be at least 1",
            parameter="quantity",
            code=ErrorCode.VALIDATION_OUT_OF_RANGE,
        )

    part = await find_part(store, part_name)
    if part is None or part.get("stock", 0) <= 0:
        raise ToolExecutionError(f'Cannot quote "{part_name}" because it is not in stock.', tool="generate_quote")

    price = float(part.get("price") or runtime_config.default_quote_price)
    quote = {
        "part_name": part_name,
        "quantity": quantity,
        "price": price,
        "total": round(price * quantity, 2),
        "session_identity": session_identity,
        "status": "generated",
        "created_at": utc_now(),
    }
    quote_id = await store.append(session_scope(QUOTES, session_identity), quote)
    await record_activity(store, session_identity, f'Quote {quote_id} generated for "{part_name}"')

    return success_response(f"Quote {quote_id} generated.", data={**quote, "id": quote_id}, quote_id=quote_id)
