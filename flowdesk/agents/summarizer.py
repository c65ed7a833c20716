"""Session summarization agent.

Produces a narrative summary, key decisions, next steps and optional risk
flags for a finished work session. Known hard facts (an issue closed, Slack
tasks cleaned up) are appended deterministically by ``append_hard_facts``
so they never depend on what the model chose to mention.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field

from flowdesk.agents.json_extract import extract_json_object
from flowdesk.errors import ExtractionError
from flowdesk.models import IssueDelta, RemovedTask, SessionEvent, SessionSummary

logger = logging.getLogger(__name__)

MISSING_SUMMARY = "Session summary not provided by model."
PARSE_FAILURE_SUMMARY = (
    "Automatic summary unavailable due to parsing error. Review session events manually."
)
CLEANUP_MARKER = "Slack-derived tasks were removed from your backlog"
VERIFY_STEP = "Verify the fix in staging/production and monitor for regressions."


@dataclass
class SummaryInput:
    task_title: str
    task_description: str | None = None
    previous_summary: str | None = None
    events: list[SessionEvent] = field(default_factory=list)
    slack_summary: str | None = None
    pr_diff_summary: str | None = None
    issue: IssueDelta | None = None


SUMMARY_PROMPT = """\
You are a coding session summarization agent.
Read the session context below and produce:
- A concise session summary.
- A list of key decisions made.
- A list of concrete next steps for the developer.
- Optional risk flags (uncertainties, blockers, or concerns).

SYSTEM events were recorded automatically and describe facts that definitely \
happened (for example an issue being closed); treat them as ground truth.

## Task

- Title: {title}
- Description: {description}

## Previous session summary

{previous}

## Session events (JSON)

{events}

## Linked issue (JSON)

{issue}

## Slack thread

{slack}

## PR diff summary

{pr_diff}

## Instructions

Respond with a JSON object of this shape:
{{
  "sessionSummary": "concise narrative of what happened",
  "keyDecisions": ["decision", "..."],
  "nextSteps": ["actionable follow-up", "..."],
  "riskFlags": "optional notes about risks or uncertainties"
}}

Respond ONLY with valid JSON, no other text.
"""


def summarize_session(summary_input: SummaryInput, llm) -> SessionSummary:
    """Summarize a session.

    Unparseable output yields a fixed placeholder summary. Errors from the
    model call itself (LLMError) propagate to the caller.
    """
    prompt = SUMMARY_PROMPT.format(
        title=summary_input.task_title,
        description=summary_input.task_description or "(none provided)",
        previous=summary_input.previous_summary or "(none)",
        events=json.dumps([e.to_dict() for e in summary_input.events], indent=2),
        issue=json.dumps(summary_input.issue.to_dict(), indent=2) if summary_input.issue else "(none)",
        slack=summary_input.slack_summary or "(none)",
        pr_diff=summary_input.pr_diff_summary or "(none)",
    )
    text = llm.complete(prompt, max_tokens=2048)

    try:
        return _parse_response(text)
    except ExtractionError as e:
        logger.error(f"Failed to parse session summary: {e}")
        return SessionSummary(session_summary=PARSE_FAILURE_SUMMARY)


def _clean_list(value: object) -> list[str]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, str) and item.strip()]


def _parse_response(text: str) -> SessionSummary:
    data = extract_json_object(text)

    summary = data.get("sessionSummary")
    if not isinstance(summary, str) or not summary.strip():
        summary = MISSING_SUMMARY

    risk_flags = data.get("riskFlags")
    if not isinstance(risk_flags, str) or not risk_flags.strip():
        risk_flags = None

    return SessionSummary(
        session_summary=summary,
        key_decisions=_clean_list(data.get("keyDecisions")),
        next_steps=_clean_list(data.get("nextSteps")),
        risk_flags=risk_flags,
    )


def append_hard_facts(
    summary: SessionSummary,
    issue: IssueDelta | None,
    removed: list[RemovedTask],
) -> SessionSummary:
    """Return a copy of ``summary`` with issue closure and Slack cleanup spelled out."""
    text = summary.session_summary or ""
    decisions = list(summary.key_decisions)
    next_steps = list(summary.next_steps)

    if issue is not None and issue.closed_during_session:
        sentence = f'The linked {issue.source} issue "{issue.title}" was closed during this session.'
        if not text:
            text = sentence
        elif issue.title not in text:
            text = f"{text} {sentence}"
        decisions.append(f"Closed the {issue.source} issue: {issue.title}")
        next_steps.append(VERIFY_STEP)

    titles = [t.title.strip() for t in removed if t.title and t.title.strip()]
    if titles:
        quoted = ", ".join(f'"{t}"' for t in titles)
        sentence = (
            f"The following {CLEANUP_MARKER} because the linked Jira issue "
            f"was completed: {quoted}."
        )
        if not text:
            text = sentence
        elif CLEANUP_MARKER not in text:
            text = f"{text} {sentence}"
        decisions.append(f"Cleaned up related Slack tasks: {', '.join(titles)}")

    return SessionSummary(
        session_summary=text,
        key_decisions=decisions,
        next_steps=next_steps,
        risk_flags=summary.risk_flags,
    )
