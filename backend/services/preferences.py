"""
User preference rules - append-only corrections folded into every prompt.

Rules are never updated or deleted. Newer rules come last and the model is
told to let them take precedence.
"""

import logging
from typing import List

from services.store import PREFERENCES, DataStore, session_scope, utc_now

logger = logging.getLogger(__name__)


async def add_rule(store: DataStore, session_identity: str, rule: str) -> str:
    """Append a rule for a session. Returns the record id."""
    record = {"session_identity": session_identity, "rule": rule.strip(), "created_at": utc_now()}
    rule_id = await store.append(session_scope(PREFERENCES, session_identity), record)
    logger.info(f"Saved preference rule {rule_id} for {session_identity}")
    return rule_id


async def list_rules(store: DataStore, session_identity: str) -> List[str]:
    """Rule texts for a session in creation order."""
    records = await store.query(session_scope(PREFERENCES, session_identity))
    return [r["rule"] for r in records if r.get("rule")]
