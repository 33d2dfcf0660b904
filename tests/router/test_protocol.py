"""Tests for the Manager and Worker output contracts."""

import pytest

from arbiter.router.protocol import (
    MANAGER_OUTPUT_SCHEMA,
    WORKER_OUTPUT_SCHEMA,
    Intent,
    ManagerOutput,
    WorkerOutput,
    parse_manager_output,
    parse_worker_output,
)


class TestManagerOutput:
    def test_parse_valid(self):
        output = parse_manager_output(
            {"intent": "summon_orchestrator", "message": "Another is summoned."}
        )
        assert isinstance(output, ManagerOutput)
        assert output.intent == Intent.SUMMON_ORCHESTRATOR
        assert output.message == "Another is summoned."

    def test_unknown_intent_is_dropped(self):
        assert parse_manager_output({"intent": "dance", "message": "x"}) is None

    def test_missing_intent_is_dropped(self):
        assert parse_manager_output({"message": "x"}) is None

    def test_missing_message_is_dropped(self):
        assert parse_manager_output({"intent": "address_orchestrator"}) is None

    def test_extra_key_is_dropped(self):
        output = {"intent": "musings", "message": "x", "target": "human"}
        assert parse_manager_output(output) is None

    def test_non_string_message_is_dropped(self):
        assert parse_manager_output({"intent": "musings", "message": 42}) is None

    def test_none_is_dropped(self):
        assert parse_manager_output(None) is None

    def test_schema_lists_every_intent(self):
        enum = MANAGER_OUTPUT_SCHEMA["properties"]["intent"]["enum"]
        assert set(enum) == {intent.value for intent in Intent}


class TestWorkerOutput:
    def test_parse_valid(self):
        output = parse_worker_output({"expects_response": False, "message": "step"})
        assert isinstance(output, WorkerOutput)
        assert output.expects_response is False

    def test_missing_flag_is_dropped(self):
        assert parse_worker_output({"message": "step"}) is None

    def test_wrong_type_is_dropped(self):
        assert parse_worker_output({"expects_response": [], "message": "x"}) is None

    @pytest.mark.parametrize("flag", ["no", "yes", "true", 0, 1])
    def test_non_boolean_flag_is_dropped(self, flag):
        assert parse_worker_output({"expects_response": flag, "message": "x"}) is None

    def test_extra_key_is_dropped(self):
        output = {"expects_response": True, "message": "x", "urgent": True}
        assert parse_worker_output(output) is None

    def test_schema_requires_both_fields(self):
        assert set(WORKER_OUTPUT_SCHEMA["required"]) == {"expects_response", "message"}
