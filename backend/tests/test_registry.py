"""
Tests for the tool registry: registration checks, schema generation, dispatch.
"""

import pytest

from errors import ToolRegistrationError, UnknownToolError
from tools.registry import ToolCategory, ToolDefinition, ToolRegistry

BUILT_IN_TOOLS = {
    "create_task",
    "create_expense",
    "get_inventory_status",
    "check_special_order",
    "generate_quote",
    "analyze_image",
    "log_activity",
    "save_user_preference",
    "handle_development_request",
    "suggest_prompt_improvement",
}


def _tool(name="echo", executor=None, required=None, parameters=None, halts=None):
    return ToolDefinition(
        name=name,
        description="Echo the text back",
        parameters=parameters if parameters is not None else {"text": {"type": "string"}},
        required_params=required if required is not None else ["text"],
        executor=executor or (lambda text: {"success": True, "message": text}),
        category=ToolCategory.META,
        halts_round_trip=halts,
    )


class TestRegistration:
    def test_built_in_tools(self, registry):
        assert set(registry.names) == BUILT_IN_TOOLS
        assert len(registry) == len(BUILT_IN_TOOLS)

    def test_duplicate_name_rejected(self):
        reg = ToolRegistry()
        reg.register(_tool())
        with pytest.raises(ToolRegistrationError):
            reg.register(_tool())

    def test_undeclared_required_param_rejected(self):
        with pytest.raises(ToolRegistrationError):
            ToolRegistry().register(_tool(required=["missing"]))

    def test_non_callable_executor_rejected(self):
        tool = _tool()
        tool.executor = "not callable"
        with pytest.raises(ToolRegistrationError):
            ToolRegistry().register(tool)

    def test_schema_matches_definitions(self, registry):
        schemas = {s["function"]["name"]: s for s in registry.get_tools_schema()}
        assert set(schemas) == BUILT_IN_TOOLS
        quote = schemas["generate_quote"]
        assert quote["type"] == "function"
        assert quote["function"]["parameters"]["required"] == ["part_name"]
        assert "quantity" in quote["function"]["parameters"]["properties"]
        # Context values are never declared to the model
        for schema in schemas.values():
            props = schema["function"]["parameters"]["properties"]
            assert "session_identity" not in props
            assert "store" not in props


class TestExecute:
    def test_unknown_tool_raises(self, run):
        with pytest.raises(UnknownToolError) as exc:
            run(ToolRegistry().execute("teleport", {}))
        assert exc.value.tool_name == "teleport"

    def test_sync_executor(self, run):
        reg = ToolRegistry()
        reg.register(_tool())
        assert run(reg.execute("echo", {"text": "hi"})) == {"success": True, "message": "hi"}

    def test_missing_required_param_is_failed_outcome(self, run):
        reg = ToolRegistry()
        reg.register(_tool())
        outcome = run(reg.execute("echo", {"text": ""}))
        assert outcome["success"] is False
        assert outcome["error"]["code"] == "VALIDATION_MISSING_PARAM"

    def test_executor_exception_is_failed_outcome(self, run):
        def boom(text):
            raise RuntimeError("kaput")

        reg = ToolRegistry()
        reg.register(_tool(executor=boom))
        outcome = run(reg.execute("echo", {"text": "x"}))
        assert outcome["success"] is False
        assert outcome["error"]["code"] == "TOOL_EXECUTION_FAILED"
        assert outcome["message"] == "echo could not complete."
        assert "kaput" not in str(outcome)

    def test_non_dict_result_is_failed_outcome(self, run):
        reg = ToolRegistry()
        reg.register(_tool(executor=lambda text: "plain string"))
        assert run(reg.execute("echo", {"text": "x"}))["success"] is False

    def test_kwargs_filtered_and_context_wins(self, run):
        seen = {}

        async def executor(text, store):
            seen.update(text=text, store=store)
            return {"message": "ok"}

        reg = ToolRegistry()
        reg.register(_tool(executor=executor))
        outcome = run(reg.execute("echo", {"text": "x", "store": "from-model", "extra": 1}, store="real"))
        assert seen == {"text": "x", "store": "real"}
        assert outcome == {"message": "ok", "success": True}

    def test_halts_round_trip_predicate(self):
        reg = ToolRegistry()
        reg.register(_tool(halts=lambda outcome: outcome.get("stop", False)))
        reg.register(_tool(name="plain"))
        assert reg.halts_round_trip("echo", {"stop": True})
        assert not reg.halts_round_trip("echo", {})
        assert not reg.halts_round_trip("plain", {"stop": True})
        assert not reg.halts_round_trip("unknown", {})


class TestInventoryHalt:
    def test_off_by_default(self, registry):
        assert not registry.halts_round_trip("get_inventory_status", {"success": True, "data": {"stock": 0}})

    def test_out_of_stock_halts_when_enabled(self, registry, halt_on_out_of_stock):
        assert registry.halts_round_trip("get_inventory_status", {"success": True, "data": {"stock": 0}})
        assert not registry.halts_round_trip("get_inventory_status", {"success": True, "data": {"stock": 3}})
        assert not registry.halts_round_trip("get_inventory_status", {"success": False})
