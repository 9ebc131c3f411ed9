"""
Nyx Chat Prompts - system instruction composition

Contains:
- FALLBACK_PERSONA: generic persona used when the persona record is missing
- DEFAULT_PERSONA: the Nyx persona seeded into a fresh store
- DIRECTIVES_SECTION: fixed behavioural directives (workflow, reporting, tone, language)
- compose_instructions(): pure persona + rules + directives composition
- build_instructions(): loads persona and rules from the store, then composes
"""

import logging
from typing import Optional, Sequence

from errors import PersistenceError, log_error
from services.preferences import list_rules
from services.store import PERSONALITIES, DataStore

logger = logging.getLogger(__name__)


FALLBACK_PERSONA = "You are a helpful AI assistant."

DEFAULT_PERSONA = (
    "You are Nyx, the assistant of an auto parts shop. You help the owner and the counter staff "
    "identify parts, check stock, quote prices and keep the shop's tasks and expenses in order. "
    "You are practical, warm and brief, and you know cars."
)

RULES_HEADER = "Additionally, follow these rules for this user (newer rules take precedence):"

DIRECTIVES_SECTION = """OPERATING DIRECTIVES:
- Your main goal is to help the user identify, quote and manage auto parts on your own. Deciding which tool to use is up to you.
- When the user asks about availability or price of a part, use get_inventory_status.
- Conditional workflow: if get_inventory_status shows no stock, you MUST use check_special_order to open a special order task. Do not ask for confirmation, just tell the user you created the task.
- When the user shows clear purchase intent ("I'll take it", "send me the quote"), use generate_quote.
- When the user attaches an image, ALWAYS use analyze_image to identify the part, then tell the user what you found.
- Automatic reporting: after an important action (creating a task, generating a quote, starting a special order), use log_activity to record it.
- Tone: read the emotion of the user's last message (frustrated, satisfied, neutral) and adapt. If frustrated, be more empathetic and direct. If satisfied, be more upbeat.
- Active learning: when the user corrects you or gives a standing instruction, use save_user_preference to remember it.
- Self-development: when the user asks for a new feature or integration, you MUST use handle_development_request to record it.
- Prompt self-improvement: if you notice a recurring inefficiency or misunderstanding, use suggest_prompt_improvement to propose a change to these instructions.
- Do not make up information. If you do not know something, say so.
- Always reply in the language the user writes in."""


def compose_instructions(persona: Optional[str], rules: Sequence[str]) -> str:
    """Build the system instruction.

    Persona first, then the user's rules one per line (creation order), then
    the fixed directives. Same inputs always give the same string.
    """
    sections = [(persona or "").strip() or FALLBACK_PERSONA]

    rule_lines = [f"- {rule.strip()}" for rule in rules if rule and rule.strip()]
    if rule_lines:
        sections.append(RULES_HEADER + "\n" + "\n".join(rule_lines))

    sections.append(DIRECTIVES_SECTION)
    return "\n\n".join(sections)


async def load_persona(store: DataStore, persona_id: str) -> str:
    """Persona prompt from the store, or FALLBACK_PERSONA on a missing record or lookup failure."""
    try:
        records = await store.query(PERSONALITIES, {"persona_id": persona_id}, limit=1)
    except PersistenceError as e:
        log_error(logger, e, context="load-persona", include_traceback=False)
        return FALLBACK_PERSONA

    if not records or not records[0].get("prompt"):
        logger.warning(f"Persona {persona_id} not found, using fallback")
        return FALLBACK_PERSONA
    return records[0]["prompt"]


async def build_instructions(store: DataStore, session_identity: str, persona_id: Optional[str] = None) -> str:
    """Load persona and the session's rules, then compose the instruction."""
    from config import runtime_config

    persona = await load_persona(store, persona_id or runtime_config.persona_id)
    try:
        rules = await list_rules(store, session_identity)
    except PersistenceError as e:
        log_error(logger, e, context="load-rules", include_traceback=False)
        rules = []
    return compose_instructions(persona, rules)
