"""
Tests for ToolExecutor (identity merge, audit records) and ResultRouter.
"""

import pytest

from errors import UnknownToolError
from routers.chat_orchestration import ResultRouter, ToolCallFragment, ToolExecutor
from routers.chat_orchestration.result_router import DEFAULT_HANDLERS, route_default
from routers.chat_orchestration.tool_dispatch import merge_arguments
from services.store import TASKS, TOOL_INVOCATIONS, session_scope


def test_merge_arguments_identity_wins():
    merged = merge_arguments({"title": "x", "session_identity": "attacker"}, "u1")
    assert merged == {"title": "x", "session_identity": "u1"}


class TestToolExecutor:
    def test_identity_from_session_not_model(self, run, registry, store):
        executor = ToolExecutor(registry, store)
        call = ToolCallFragment("create_task", {"title": "Call supplier", "session_identity": "u2"}, "c0")
        outcome, record = run(executor.execute(call, "u1"))

        assert outcome["success"] is True
        assert record.arguments["session_identity"] == "u1"
        assert len(run(store.query(session_scope(TASKS, "u1")))) == 1
        assert run(store.query(session_scope(TASKS, "u2"))) == []

    def test_invocation_is_audited(self, run, registry, store):
        executor = ToolExecutor(registry, store)
        call = ToolCallFragment("get_inventory_status", {"part_name": "faros led"}, "c0")
        outcome, record = run(executor.execute(call, "u1"))

        audit = run(store.query(session_scope(TOOL_INVOCATIONS, "u1")))
        assert len(audit) == 1
        assert audit[0]["name"] == "get_inventory_status"
        assert audit[0]["arguments"] == {"part_name": "faros led", "session_identity": "u1"}
        assert audit[0]["result"] == outcome
        assert audit[0]["timestamp"] == record.timestamp

    def test_unknown_tool_audited_then_raised(self, run, registry, store):
        executor = ToolExecutor(registry, store)
        with pytest.raises(UnknownToolError):
            run(executor.execute(ToolCallFragment("teleport", {}, "c0"), "u1"))

        audit = run(store.query(session_scope(TOOL_INVOCATIONS, "u1")))
        assert audit[0]["name"] == "teleport"
        assert audit[0]["result"]["success"] is False
        assert audit[0]["result"]["error"]["code"] == "TOOL_UNKNOWN"

    def test_record_is_immutable(self, run, registry, store):
        _, record = run(ToolExecutor(registry, store).execute(ToolCallFragment("log_activity", {"description": "x"}), "u1"))
        with pytest.raises(AttributeError):
            record.name = "other"


class TestResultRouter:
    def test_router_requires_default(self):
        with pytest.raises(ValueError):
            ResultRouter(handlers={"create_task": route_default})

    def test_default_route(self):
        outcome = {"success": True, "message": "Task created.", "task_id": "1"}
        routed = ResultRouter().route("create_task", outcome)
        assert routed.event == "notification"
        assert routed.payload == {"type": "success", "message": "Task created."}
        assert routed.model_payload == outcome
        assert routed.success

    def test_failure_route(self):
        outcome = {"success": False, "message": "Invalid amount", "error": {"code": "VALIDATION_MISSING_PARAM"}}
        routed = ResultRouter().route("create_expense", outcome)
        assert routed.event == "notification"
        assert routed.payload == {"type": "error", "message": "Invalid amount"}
        assert routed.model_payload == {"success": False, "message": "Invalid amount"}
        assert not routed.success

    def test_quote_route_hides_quote_from_model(self):
        outcome = {
            "success": True,
            "message": "Quote 3 generated.",
            "quote_id": "3",
            "data": {"id": "3", "part_name": "faros led", "total": 2450.0},
        }
        routed = ResultRouter().route("generate_quote", outcome)
        assert routed.event == "quote-generated"
        assert routed.payload == outcome["data"]
        assert routed.model_payload == {
            "success": True,
            "quote_id": "3",
            "message": "Quote 3 generated and shown to the user.",
        }

    def test_image_route(self):
        outcome = {"success": True, "message": "Image analyzed.", "analysis": {"part_type": "alternator"}}
        routed = ResultRouter().route("analyze_image", outcome)
        assert routed.event == "image-analysis-result"
        assert routed.payload == {"part_type": "alternator"}

    def test_dev_request_route(self):
        outcome = {"success": True, "message": "Recorded with ID 2.", "request_id": "2"}
        routed = ResultRouter().route("handle_development_request", outcome)
        assert routed.event == "development-request-received"
        assert routed.payload == {"type": "info", "message": "Recorded with ID 2."}

    @pytest.mark.parametrize("name", sorted(DEFAULT_HANDLERS))
    def test_model_payload_keys_come_from_outcome(self, name):
        outcome = {
            "success": True,
            "message": "ok",
            "quote_id": "1",
            "request_id": "1",
            "analysis": {},
            "data": {"stock": 1},
        }
        routed = ResultRouter().route(name, outcome)
        assert set(routed.model_payload) <= set(outcome)

    def test_halt_predicate_marks_result(self):
        router = ResultRouter(halts=lambda name, outcome: name == "get_inventory_status")
        assert router.route("get_inventory_status", {"success": True}).halts_round_trip
        assert not router.route("create_task", {"success": True}).halts_round_trip
