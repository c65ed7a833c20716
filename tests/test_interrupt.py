"""Tests for flowdesk.agents.interrupt."""

from __future__ import annotations

import json

from flowdesk.agents.interrupt import (
    FALLBACK_RATIONALE,
    MISSING_RATIONALE,
    _parse_response,
    classify_interrupt,
)
from flowdesk.errors import LLMError
from flowdesk.models import DayPlan


class TestParseResponse:
    def test_valid_response(self):
        text = json.dumps({
            "priority": "URGENT",
            "suggestedAction": "START_NOW",
            "suggestedBlockId": "block-2",
            "rationale": "Production checkout is failing.",
        })
        decision = _parse_response(text)
        assert decision.priority == "URGENT"
        assert decision.suggested_action == "START_NOW"
        assert decision.suggested_block_id == "block-2"
        assert decision.rationale == "Production checkout is failing."

    def test_invalid_enums_default(self):
        decision = _parse_response('{"priority": "ASAP", "suggestedAction": "PANIC"}')
        assert decision.priority == "LATER"
        assert decision.suggested_action == "IGNORE"
        assert decision.rationale == MISSING_RATIONALE
        assert decision.suggested_block_id is None

    def test_numeric_block_id_becomes_string(self):
        decision = _parse_response('{"priority": "LATER", "suggestedBlockId": 3}')
        assert decision.suggested_block_id == "3"


class TestClassifyInterrupt:
    def test_prompt_includes_notification_and_plan(self, llm, sample_plan):
        llm.complete.return_value = '{"priority": "IGNORE", "suggestedAction": "IGNORE", "rationale": "FYI"}'
        decision = classify_interrupt("<@U1> lunch at noon?", sample_plan, llm)
        prompt = llm.complete.call_args[0][0]
        assert "<@U1> lunch at noon?" in prompt
        assert "block-1" in prompt
        assert decision.priority == "IGNORE"

    def test_unparseable_output_falls_back(self, llm):
        llm.complete.return_value = "Sorry, I can't help with that."
        decision = classify_interrupt("hi", DayPlan(date="2024-06-15"), llm)
        assert decision.priority == "LATER"
        assert decision.suggested_action == "IGNORE"
        assert decision.rationale == FALLBACK_RATIONALE

    def test_model_error_falls_back(self, llm):
        llm.complete.side_effect = LLMError("rate limited")
        decision = classify_interrupt("hi", DayPlan(date="2024-06-15"), llm)
        assert decision.rationale == FALLBACK_RATIONALE
