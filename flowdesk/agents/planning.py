"""Day planning agent.

The model arranges tasks and calendar events into focus blocks. Its output
is untrusted: malformed blocks are dropped, missing fields are filled in,
and MEETING blocks are always relabelled from the real calendar afterwards.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field, replace

from flowdesk.agents.json_extract import extract_json_object
from flowdesk.errors import ExtractionError, LLMError
from flowdesk.models import (
    BLOCK_MODES,
    MEETING,
    CalendarEvent,
    DayPlan,
    PlanBlock,
    Task,
    now_iso,
    parse_iso,
)

logger = logging.getLogger(__name__)


@dataclass
class PlanningInput:
    date: str  # YYYY-MM-DD
    timezone: str
    work_start: str  # HH:MM
    work_end: str  # HH:MM
    tasks: list[Task] = field(default_factory=list)
    events: list[CalendarEvent] = field(default_factory=list)


PLANNING_PROMPT = """\
You are a planning agent. Your job is to help a software developer plan their \
workday into focused blocks.

Guidelines:
- Respect the working hours exactly: from {work_start} to {work_end} in timezone {timezone}.
- Use exactly three kinds of blocks: "DEEP_WORK", "SHALLOW", and "MEETING".
- Meetings are fixed: MEETING blocks must match the given calendar events of type \
"MEETING", one block per event, at the event's time.
- Blocks must never overlap.
- Tasks may carry a "dueDate" (YYYY-MM-DD). The sooner the due date, the earlier and \
more generously the task should be scheduled. Tasks due today or already overdue come first.
- Tasks whose labels include "slack" were requested via Slack. Schedule them in their own \
dedicated blocks (for example labeled "Slack: ..."), separate from Jira or GitHub work.
- The only exception: if a Slack task's title/description and a Jira task's title clearly \
describe the same underlying work (same feature or bug, similar key phrases), you may \
group them into the same block. Decide this from the natural-language text alone. Do NOT \
use ids or labels (such as "JIRA_KEY:ABC-123") to make this decision.
- Batch related tasks into deep work blocks when possible.
- Leave short breaks between long deep work blocks.
- For blocks derived from calendar events (MEETING/BLOCKED/INFO), use the event's title \
as the label and put a concise description in "notes" when helpful.

## Context

- Date: {date}
- Timezone: {timezone}
- Working hours: {work_start} - {work_end}

## Tasks (JSON)

Each task has "id", "title", "source" ("GITHUB" | "JIRA" | "LOCAL"), and optionally \
"description", "url", "labels", and "dueDate".

{tasks}

## Calendar events (JSON)

{events}

## Instructions

Respond with a single JSON object of this shape (no extra fields):
{{
  "date": "{date}",
  "generatedAt": "ISO-8601 timestamp",
  "blocks": [
    {{
      "id": "unique block id",
      "start": "ISO-8601 timestamp within the working hours of {date}",
      "end": "ISO-8601 timestamp within the working hours of {date}",
      "label": "human-readable description",
      "mode": "DEEP_WORK" | "SHALLOW" | "MEETING",
      "taskIds": ["ids of tasks assigned to this block"],
      "notes": "optional"
    }}
  ]
}}

Respond ONLY with valid JSON, no other text. All timestamps must be valid ISO-8601.
"""


def empty_plan(date: str) -> DayPlan:
    return DayPlan(date=date, blocks=[], generated_at=now_iso())


def plan_day(planning_input: PlanningInput, llm) -> DayPlan:
    """Ask the model for a day plan. Never raises; failure yields an empty plan."""
    prompt = PLANNING_PROMPT.format(
        date=planning_input.date,
        timezone=planning_input.timezone,
        work_start=planning_input.work_start,
        work_end=planning_input.work_end,
        tasks=json.dumps([t.to_dict() for t in planning_input.tasks], indent=2),
        events=json.dumps([e.to_dict() for e in planning_input.events], indent=2),
    )

    try:
        text = llm.complete(prompt, max_tokens=4096)
    except LLMError as e:
        logger.error(f"Planning call failed for {planning_input.date}: {e}")
        return empty_plan(planning_input.date)

    try:
        return _parse_response(text, planning_input)
    except (ExtractionError, TypeError, ValueError) as e:
        logger.error(f"Failed to parse day plan for {planning_input.date}: {e}")
        return empty_plan(planning_input.date)


def _parse_block(data: object, index: int) -> PlanBlock | None:
    if not isinstance(data, dict):
        return None
    start, end, mode = data.get("start"), data.get("end"), data.get("mode")
    if not isinstance(start, str) or not isinstance(end, str) or mode not in BLOCK_MODES:
        return None
    block = PlanBlock.from_dict(data)
    if not block.id:
        block.id = f"block-{index + 1}"
    return block


def _parse_response(text: str, planning_input: PlanningInput) -> DayPlan:
    data = extract_json_object(text)

    raw_blocks = data.get("blocks")
    if not isinstance(raw_blocks, list):
        raw_blocks = []

    blocks = []
    for i, raw in enumerate(raw_blocks):
        block = _parse_block(raw, i)
        if block is None:
            logger.warning(f"Dropping malformed plan block: {str(raw)[:200]}")
            continue
        blocks.append(block)

    generated_at = data.get("generatedAt")
    return DayPlan(
        date=planning_input.date,
        blocks=apply_meeting_overrides(blocks, planning_input.events),
        generated_at=generated_at if isinstance(generated_at, str) and generated_at else now_iso(),
    )


def apply_meeting_overrides(
    blocks: list[PlanBlock], events: list[CalendarEvent]
) -> list[PlanBlock]:
    """Relabel MEETING blocks from the calendar event nearest in start time.

    The earliest event wins ties. A block's notes are only filled from the
    event description when it has none. Pure and idempotent.
    """
    timed = [(parse_iso(e.start), e) for e in events]
    timed = sorted(((t, e) for t, e in timed if t is not None), key=lambda pair: pair[0])
    if not timed:
        return list(blocks)

    result = []
    for block in blocks:
        block_start = parse_iso(block.start) if block.mode == MEETING else None
        if block_start is None:
            result.append(block)
            continue

        best_time, best = timed[0]
        best_diff = abs((best_time - block_start).total_seconds())
        for event_time, event in timed[1:]:
            diff = abs((event_time - block_start).total_seconds())
            if diff < best_diff:
                best_diff, best = diff, event

        updated = replace(block, task_ids=list(block.task_ids))
        if best.title:
            updated.label = best.title
        if not updated.notes and best.description:
            updated.notes = best.description
        result.append(updated)
    return result
