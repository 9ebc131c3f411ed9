"""
Tool Registry - name -> ToolDefinition mapping for Nyx.

Each tool is a self-contained definition (schema + executor) registered once
at startup. The schema list handed to the model is generated from the same
mapping, so declarations and executors cannot drift apart.

Registration rejects duplicate names and required params that the schema
does not declare. Dispatch rejects unknown names with UnknownToolError.
"""

import inspect
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from errors import (
    ToolExecutionError,
    ToolRegistrationError,
    UnknownToolError,
    ValidationError,
    error_response,
)

logger = logging.getLogger(__name__)

Outcome = Dict[str, Any]


class ToolCategory(Enum):
    """Tool categories for grouping and logging."""

    WORKSPACE = "workspace"  # Tasks, expenses, activity log
    INVENTORY = "inventory"  # Stock lookups, special orders
    SALES = "sales"  # Quotes
    VISION = "vision"  # Image analysis
    META = "meta"  # Preferences, development requests


@dataclass
class ToolDefinition:
    """Definition of a tool for the registry."""

    name: str
    description: str
    parameters: Dict[str, Any]
    required_params: List[str]
    executor: Callable[..., Any]
    category: ToolCategory
    friendly_name: str = ""
    halts_round_trip: Optional[Callable[[Outcome], bool]] = None  # Skip the model's follow-up for this outcome

    def to_schema(self) -> Dict[str, Any]:
        """OpenAI-compatible function declaration."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": {
                    "type": "object",
                    "properties": self.parameters,
                    "required": self.required_params,
                },
            },
        }


def _filter_kwargs_for_executor(executor: Callable[..., Any], all_kwargs: Dict[str, Any]) -> Dict[str, Any]:
    """Filter kwargs to only those accepted by the executor function.

    This allows us to pass a unified context to all executors, and each
    executor only receives the parameters it actually accepts.
    """
    sig = inspect.signature(executor)
    accepts_var_keyword = any(p.kind == inspect.Parameter.VAR_KEYWORD for p in sig.parameters.values())

    if accepts_var_keyword:
        return all_kwargs

    accepted_params = set(sig.parameters.keys())
    return {k: v for k, v in all_kwargs.items() if k in accepted_params}


class ToolRegistry:
    """
    Registry of Nyx tools.

    Usage:
        registry = get_tool_registry()
        registry.register(ToolDefinition(...))
        tools_schema = registry.get_tools_schema()
        outcome = await registry.execute("create_task", {"title": "..."}, store=store)
    """

    def __init__(self):
        self._tools: Dict[str, ToolDefinition] = {}

    def register(self, tool: ToolDefinition) -> None:
        """Register a tool definition.

        Raises:
            ToolRegistrationError: duplicate name, undeclared required param,
                or a non-callable executor
        """
        if tool.name in self._tools:
            raise ToolRegistrationError(f"Tool already registered: {tool.name}")
        missing = [p for p in tool.required_params if p not in tool.parameters]
        if missing:
            raise ToolRegistrationError(
                f"Tool {tool.name} requires undeclared parameters",
                details=", ".join(missing),
            )
        if not callable(tool.executor):
            raise ToolRegistrationError(f"Tool {tool.name} has no callable executor")

        self._tools[tool.name] = tool
        logger.debug(f"Registered tool: {tool.name}")

    def get_tool(self, name: str) -> Optional[ToolDefinition]:
        return self._tools.get(name)

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    @property
    def names(self) -> List[str]:
        return list(self._tools)

    def get_tools_schema(self) -> List[Dict[str, Any]]:
        """Generate OpenAI-compatible tools schema for function calling."""
        return [tool.to_schema() for tool in self._tools.values()]

    def halts_round_trip(self, name: str, outcome: Outcome) -> bool:
        """Whether this outcome ends the turn without a second model call."""
        tool = self._tools.get(name)
        if tool is None or tool.halts_round_trip is None:
            return False
        return bool(tool.halts_round_trip(outcome))

    async def execute(self, name: str, args: Dict[str, Any], **context) -> Outcome:
        """
        Execute a tool by name.

        Args:
            name: Tool name
            args: Tool arguments (already merged with session identity)
            context: Extra values executors may ask for by parameter name
                (store, image_data, vision)

        Returns:
            Outcome dict with at least ``success`` and ``message``. Executor
            failures become failed outcomes rather than exceptions.

        Raises:
            UnknownToolError: no tool registered under name
        """
        tool = self._tools.get(name)
        if tool is None:
            raise UnknownToolError(name)

        missing = [p for p in tool.required_params if args.get(p) in (None, "")]
        if missing:
            return error_response(
                ValidationError(
                    f"Missing required parameter for {name}: {', '.join(missing)}",
                    parameter=missing[0],
                ),
                tool=name,
            )

        try:
            filtered = _filter_kwargs_for_executor(tool.executor, {**args, **context})
            result = tool.executor(**filtered)
            if inspect.isawaitable(result):
                result = await result
        except Exception as e:
            logger.error(f"Tool {name} failed: {e}", exc_info=True)
            return error_response(ToolExecutionError(f"{name} could not complete.", tool=name), tool=name)

        if not isinstance(result, dict):
            logger.error(f"Tool {name} returned {type(result).__name__}, expected dict")
            return error_response(ToolExecutionError(f"{name} returned an invalid outcome", tool=name), tool=name)

        outcome = dict(result)
        outcome.setdefault("success", not outcome.get("error"))
        outcome.setdefault("message", "Done." if outcome["success"] else f"{name} failed.")
        return outcome

    def clear(self) -> None:
        """Clear all registered tools (for testing)."""
        self._tools.clear()


def _inventory_halts(outcome: Outcome) -> bool:
    from config import runtime_config

    if not runtime_config.inventory_halt_on_out_of_stock or not outcome.get("success"):
        return False
    return (outcome.get("data") or {}).get("stock", 0) == 0


def register_all_tools(registry: "ToolRegistry") -> None:
    """Register the built-in Nyx tools."""
    from routers.chat_executors import (
        execute_analyze_image,
        execute_check_special_order,
        execute_create_expense,
        execute_create_task,
        execute_generate_quote,
        execute_get_inventory_status,
        execute_handle_development_request,
        execute_log_activity,
        execute_save_user_preference,
        execute_suggest_prompt_improvement,
    )

    registry.register(
        ToolDefinition(
            name="create_task",
            friendly_name="Tasks",
            description="Create a task on the user's task list. Use when the user asks to remember or schedule something to do.",
            parameters={
                "title": {"type": "string", "description": "Short task title"},
                "priority": {
                    "type": "string",
                    "enum": ["low", "medium", "high"],
                    "description": "Task priority (default medium)",
                },
            },
            required_params=["title"],
            executor=execute_create_task,
            category=ToolCategory.WORKSPACE,
        )
    )

    registry.register(
        ToolDefinition(
            name="create_expense",
            friendly_name="Expenses",
            description="Log a business expense with its category and amount.",
            parameters={
                "category": {"type": "string", "description": "Expense category, e.g. rent, supplies, fuel"},
                "amount": {"type": "number", "description": "Amount in dollars"},
            },
            required_params=["category", "amount"],
            executor=execute_create_expense,
            category=ToolCategory.WORKSPACE,
        )
    )

    registry.register(
        ToolDefinition(
            name="get_inventory_status",
            friendly_name="Inventory",
            description="Look up stock and price for an auto part. ALWAYS use this before answering availability questions.",
            parameters={
                "part_name": {"type": "string", "description": "Part name as the customer said it"},
            },
            required_params=["part_name"],
            executor=execute_get_inventory_status,
            category=ToolCategory.INVENTORY,
            halts_round_trip=_inventory_halts,
        )
    )

    registry.register(
        ToolDefinition(
            name="check_special_order",
            friendly_name="Special Orders",
            description="Open a high-priority task to check a special order for a part that is out of stock.",
            parameters={
                "part_name": {"type": "string", "description": "Part to special order"},
            },
            required_params=["part_name"],
            executor=execute_check_special_order,
            category=ToolCategory.INVENTORY,
        )
    )

    registry.register(
        ToolDefinition(
            name="generate_quote",
            friendly_name="Quotes",
            description="Generate a price quote for a part in stock. The quote is shown to the user for confirmation.",
            parameters={
                "part_name": {"type": "string", "description": "Part to quote"},
                "quantity": {"type": "integer", "description": "Number of units (default 1)"},
            },
            required_params=["part_name"],
            executor=execute_generate_quote,
            category=ToolCategory.SALES,
        )
    )

    registry.register(
        ToolDefinition(
            name="analyze_image",
            friendly_name="Part Vision",
            description="Identify the auto part in the image the user attached to this message.",
            parameters={},
            required_params=[],
            executor=execute_analyze_image,
            category=ToolCategory.VISION,
        )
    )

    registry.register(
        ToolDefinition(
            name="log_activity",
            friendly_name="Activity Log",
            description="Record an important event in the business activity log.",
            parameters={
                "description": {"type": "string", "description": "What happened"},
            },
            required_params=["description"],
            executor=execute_log_activity,
            category=ToolCategory.WORKSPACE,
        )
    )

    registry.register(
        ToolDefinition(
            name="save_user_preference",
            friendly_name="Preferences",
            description="Save a rule or correction the user wants you to follow from now on.",
            parameters={
                "preference": {"type": "string", "description": "The rule, stated as an instruction"},
            },
            required_params=["preference"],
            executor=execute_save_user_preference,
            category=ToolCategory.META,
        )
    )

    registry.register(
        ToolDefinition(
            name="handle_development_request",
            friendly_name="Dev Requests",
            description="Record a request to build or change a feature of this assistant or its dashboard.",
            parameters={
                "type": {
                    "type": "string",
                    "enum": ["feature", "bug", "ui-change"],
                    "description": "Kind of request",
                },
                "task": {"type": "string", "description": "What should be built or changed"},
            },
            required_params=["type", "task"],
            executor=execute_handle_development_request,
            category=ToolCategory.META,
        )
    )

    registry.register(
        ToolDefinition(
            name="suggest_prompt_improvement",
            friendly_name="Prompt Feedback",
            description="Suggest a change to your own instructions when you notice a recurring inefficiency.",
            parameters={
                "inefficiency_description": {"type": "string", "description": "What went wrong"},
                "suggested_change": {"type": "string", "description": "Proposed change to the instructions"},
            },
            required_params=["inefficiency_description", "suggested_change"],
            executor=execute_suggest_prompt_improvement,
            category=ToolCategory.META,
        )
    )

    logger.info(f"Registered {len(registry)} tools")


# Singleton instance
_registry: Optional[ToolRegistry] = None


def get_tool_registry() -> ToolRegistry:
    """Get the process-wide registry, registering built-in tools on first use."""
    global _registry
    if _registry is None:
        _registry = ToolRegistry()
        register_all_tools(_registry)
    return _registry
