"""Interrupt classification: how should an incoming notification affect the day?

The classifier never raises. Anything it cannot make sense of becomes a
low-priority "ignore for now" decision so a polling batch keeps going.
"""

from __future__ import annotations

import json
import logging

from flowdesk.agents.json_extract import extract_json_object
from flowdesk.models import ACTIONS, PRIORITIES, DayPlan, InterruptDecision

logger = logging.getLogger(__name__)

MISSING_RATIONALE = "Model did not provide a rationale."
FALLBACK_RATIONALE = "Fallback decision because the model response could not be parsed."

CLASSIFY_PROMPT = """\
You are an interrupt management agent for a software developer.
Your job is to classify an incoming notification and suggest how it should be \
integrated into the current day plan.

Consider:
- The notification may describe new work, a change in priority, an incident, or just FYI.
- The day plan shows existing deep work, shallow work, and meeting blocks.
- Avoid unnecessary context switching; only disrupt deep work for truly urgent items.

You must decide:
- "priority": how urgent this is for the developer ("URGENT" | "LATER" | "IGNORE").
- "suggestedAction": how to integrate this work into the day
  - "START_NOW": interrupt the current work and handle immediately.
  - "ADD_TO_EXISTING_BLOCK": map it to one of the existing blocks in the plan.
  - "CREATE_NEW_BLOCK": create a new dedicated block later in the day.
  - "IGNORE": no scheduling change needed.
- "suggestedBlockId": only when ADD_TO_EXISTING_BLOCK or CREATE_NEW_BLOCK makes sense.
- "rationale": a brief explanation of the decision.

## Notification

{notification}

## Current day plan (JSON)

{plan}

## Instructions

Respond with a JSON object of this shape:
{{
  "priority": "URGENT" | "LATER" | "IGNORE",
  "suggestedAction": "START_NOW" | "ADD_TO_EXISTING_BLOCK" | "CREATE_NEW_BLOCK" | "IGNORE",
  "suggestedBlockId": "optional block id",
  "rationale": "why"
}}

Respond ONLY with valid JSON, no other text.
"""


def fallback_decision() -> InterruptDecision:
    return InterruptDecision(
        priority="LATER",
        suggested_action="IGNORE",
        rationale=FALLBACK_RATIONALE,
    )


def classify_interrupt(notification_text: str, current_plan: DayPlan, llm) -> InterruptDecision:
    """Ask the model how to handle ``notification_text`` given ``current_plan``."""
    prompt = CLASSIFY_PROMPT.format(
        notification=notification_text,
        plan=json.dumps(current_plan.to_dict(), indent=2),
    )
    try:
        text = llm.complete(prompt, max_tokens=512)
        return _parse_response(text)
    except Exception as e:
        logger.error(f"Interrupt classification failed, using fallback: {e}")
        return fallback_decision()


def _parse_response(text: str) -> InterruptDecision:
    data = extract_json_object(text)

    priority = data.get("priority")
    if priority not in PRIORITIES:
        priority = "LATER"

    action = data.get("suggestedAction")
    if action not in ACTIONS:
        action = "IGNORE"

    rationale = data.get("rationale")
    if not isinstance(rationale, str) or not rationale.strip():
        rationale = MISSING_RATIONALE

    block_id = data.get("suggestedBlockId")
    return InterruptDecision(
        priority=priority,
        suggested_action=action,
        rationale=rationale,
        suggested_block_id=str(block_id) if block_id else None,
    )
