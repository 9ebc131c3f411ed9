"""
Demo inventory and persona for a fresh data store.
"""

import logging
from typing import Any, Dict, List

from services.store import INVENTORY, PERSONALITIES, DataStore, utc_now

logger = logging.getLogger(__name__)

DEMO_INVENTORY: List[Dict[str, Any]] = [
    {"part_name": "faros led", "display_name": "Faros LED para Jetta 2019", "stock": 5, "price": 2450},
    {"part_name": "motor v8", "display_name": "Motor V8 para Mustang", "stock": 0, "price": 98000},
    {"part_name": "kit de suspension 4x4", "display_name": "Kit de Suspensión 4x4", "stock": 2, "price": 15800},
    {"part_name": "filtro de aceite", "display_name": "Filtro de aceite", "stock": 40, "price": 180},
    {"part_name": "pastillas de freno", "display_name": "Pastillas de freno delanteras", "stock": 12, "price": 890},
]


async def seed_demo_data(store: DataStore, persona_id: str) -> int:
    """Seed inventory and the persona when their collections are empty.

    Returns the number of records written.
    """
    from routers.chat_prompts import DEFAULT_PERSONA

    written = 0
    if not await store.query(INVENTORY, limit=1):
        for part in DEMO_INVENTORY:
            await store.append(INVENTORY, dict(part))
            written += 1
        logger.info(f"Seeded {len(DEMO_INVENTORY)} inventory parts")

    if not await store.query(PERSONALITIES, {"persona_id": persona_id}, limit=1):
        await store.append(
            PERSONALITIES, {"persona_id": persona_id, "prompt": DEFAULT_PERSONA, "created_at": utc_now()}
        )
        written += 1
        logger.info(f"Seeded persona {persona_id}")

    return written
