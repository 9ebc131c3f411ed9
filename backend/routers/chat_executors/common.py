"""
Nyx Chat Executors - Common Utilities

Shared helpers used by multiple executor modules.
"""

import logging

from services.store import ACTIVITY, DataStore, session_scope, utc_now

logger = logging.getLogger(__name__)


async def record_activity(store: DataStore, session_identity: str, description: str) -> str:
    """Append an entry to the session's activity log. Returns the entry id."""
    entry = {"description": description, "session_identity": session_identity, "timestamp": utc_now()}
    entry_id = await store.append(session_scope(ACTIVITY, session_identity), entry)
    logger.debug(f"Activity logged for {session_identity}: {description}")
    return entry_id


def normalize_part_name(part_name: str) -> str:
    """Inventory keys are lower-cased and whitespace-collapsed."""
    return " ".join(part_name.lower().split())
