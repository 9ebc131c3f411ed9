"""
Nyx Webhook Router
Inbound messages from an external messaging platform.

POST /api/webhook stores the message in the session inbox and runs the
keyword automations before any model is involved:
- stock check for a part named in the text (out of stock opens a
  special-order task)
- follow-up task for "revisa/busca/cotiza/check/find/search ..." requests
- quote template hint when the text talks about parts
- a coarse customer tone tag
"""

import logging
import re
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import AliasChoices, BaseModel, Field

from routers.chat_executors import execute_check_special_order, execute_create_task, find_part_in_text, record_activity
from routers.workspace import SessionIdentity
from services.store import MESSAGES, DataStore, get_store, session_scope, utc_now

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")

WEBHOOK_IDENTITY = "webhook"

TASK_REQUEST = re.compile(r"\b(revisa|busca|check|find|cotiza|search)\s+(.+)", re.IGNORECASE)
PART_KEYWORDS = ("parte", "pieza", "refacción", "faro", "motor", "suspensión", "cotiza")
FRUSTRATION_KEYWORDS = ("problema", "no funciona", "tarda mucho", "error", "ayuda")
SATISFACTION_KEYWORDS = ("gracias", "excelente", "perfecto", "muy bien", "funciona")


class WebhookMessage(BaseModel):
    message: Optional[str] = Field(default=None, max_length=4000)
    session_identity: str = Field(
        default=WEBHOOK_IDENTITY,
        validation_alias=AliasChoices("sessionIdentity", "userId", "session_identity"),
        min_length=1,
        max_length=128,
    )


def detect_tone(text: str) -> str:
    lowered = text.lower()
    if any(keyword in lowered for keyword in FRUSTRATION_KEYWORDS):
        return "frustration"
    if any(keyword in lowered for keyword in SATISFACTION_KEYWORDS):
        return "satisfaction"
    return "neutral"


async def run_automations(store: DataStore, session_identity: str, text: str) -> Dict[str, Any]:
    """Keyword automations for one inbound message.

    Returns:
        {"notifications": [...], "suggested_template": str | None, "tone": str}
    """
    notifications: List[Dict[str, str]] = []
    lowered = text.lower()

    part = await find_part_in_text(store, text)
    if part is not None:
        name = part.get("display_name") or part["part_name"]
        stock = part.get("stock", 0)
        if stock <= 0:
            notifications.append({"type": "stock_alert", "message": f"Stock check: {name} is out of stock."})
            outcome = await execute_check_special_order(
                part_name=part["part_name"], session_identity=session_identity, store=store
            )
            if outcome.get("success"):
                notifications.append({"type": "task_created", "message": outcome["message"]})
        else:
            notifications.append({"type": "stock_info", "message": f"Stock check: {name} has {stock} units available."})

    match = TASK_REQUEST.search(text)
    if match:
        title = f"User requested: {match.group(1).lower()} {match.group(2).strip()}"[:200]
        outcome = await execute_create_task(
            title=title, priority="high", session_identity=session_identity, store=store
        )
        if outcome.get("success"):
            notifications.append({"type": "task_created", "message": outcome["message"]})

    suggested_template = None
    if any(keyword in lowered for keyword in PART_KEYWORDS):
        suggested_template = "parts-quote"
        notifications.append({"type": "template_suggestion", "message": "Suggested template: Parts Quote"})

    return {"notifications": notifications, "suggested_template": suggested_template, "tone": detect_tone(text)}


@router.post("/webhook")
async def receive_webhook(body: WebhookMessage, store: DataStore = Depends(get_store)) -> Dict[str, Any]:
    text = (body.message or "").strip()
    if not text:
        raise HTTPException(status_code=400, detail="A webhook call needs a message.")

    identity = body.session_identity
    logger.info(f"Webhook message for {identity}: {text[:80]}")
    await record_activity(store, identity, "Webhook message received")
    automations = await run_automations(store, identity, text)
    message_id = await store.append(
        session_scope(MESSAGES, identity),
        {"text": text, "source": "webhook", "session_identity": identity, "received_at": utc_now()},
    )

    return {
        "status": "received",
        "message_id": message_id,
        "automations": automations["notifications"],
        "suggested_template": automations["suggested_template"],
        "tone": automations["tone"],
    }


@router.get("/messages")
async def list_messages(session_identity: SessionIdentity, store: DataStore = Depends(get_store)) -> List[Dict[str, Any]]:
    """Inbox messages, oldest first."""
    return await store.query(session_scope(MESSAGES, session_identity))
