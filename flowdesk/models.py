"""Core data models for flowdesk.

Everything that crosses the store or the HTTP boundary is serialized with
camelCase keys via ``to_dict``; ``from_dict`` is tolerant of missing fields
because stored records may predate a field or come from a model response.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

GITHUB = "GITHUB"
JIRA = "JIRA"
LOCAL = "LOCAL"
TASK_SOURCES = (GITHUB, JIRA, LOCAL)

DEEP_WORK = "DEEP_WORK"
SHALLOW = "SHALLOW"
MEETING = "MEETING"
BLOCK_MODES = (DEEP_WORK, SHALLOW, MEETING)

SESSION_ACTIVE = "active"
SESSION_COMPLETED = "completed"

EVENT_TYPES = ("NOTE", "TEST_RESULT", "SYSTEM")

PRIORITIES = ("URGENT", "LATER", "IGNORE")
ACTIONS = ("START_NOW", "ADD_TO_EXISTING_BLOCK", "CREATE_NEW_BLOCK", "IGNORE")

SLACK_LABEL = "slack"
JIRA_KEY_PREFIX = "JIRA_KEY:"


def now_iso() -> str:
    """Current UTC time as an ISO-8601 string with a ``Z`` suffix."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def today_str() -> str:
    return datetime.now(timezone.utc).date().isoformat()


def parse_iso(value: Any) -> datetime | None:
    """Parse an ISO timestamp; naive values are taken as UTC. Returns None if unparseable."""
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def to_iso(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _compact(data: dict) -> dict:
    return {k: v for k, v in data.items() if v is not None}


def _str_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, str)]


@dataclass
class Task:
    id: str  # unique only within its source
    title: str
    source: str  # GITHUB | JIRA | LOCAL
    description: str | None = None
    url: str | None = None
    labels: list[str] | None = None
    due_date: str | None = None  # YYYY-MM-DD

    def is_slack(self) -> bool:
        return SLACK_LABEL in (self.labels or [])

    def jira_key(self) -> str | None:
        """The Jira key cross-referenced by a ``JIRA_KEY:<KEY>`` label, if any."""
        for label in self.labels or []:
            if label.startswith(JIRA_KEY_PREFIX):
                return label[len(JIRA_KEY_PREFIX):]
        return None

    def to_dict(self) -> dict:
        return _compact({
            "id": self.id,
            "title": self.title,
            "source": self.source,
            "description": self.description,
            "url": self.url,
            "labels": self.labels,
            "dueDate": self.due_date,
        })


@dataclass
class PlanBlock:
    id: str
    start: str
    end: str
    label: str
    mode: str  # DEEP_WORK | SHALLOW | MEETING
    task_ids: list[str] = field(default_factory=list)
    notes: str | None = None

    def to_dict(self) -> dict:
        return _compact({
            "id": self.id,
            "start": self.start,
            "end": self.end,
            "label": self.label,
            "mode": self.mode,
            "taskIds": list(self.task_ids),
            "notes": self.notes,
        })

    @classmethod
    def from_dict(cls, data: dict) -> PlanBlock:
        notes, task_ids = data.get("notes"), data.get("taskIds")
        return cls(
            id=str(data.get("id", "")),
            start=str(data.get("start", "")),
            end=str(data.get("end", "")),
            label=str(data.get("label", "")),
            mode=str(data.get("mode", SHALLOW)),
            task_ids=[str(t) for t in task_ids if t is not None] if isinstance(task_ids, list) else [],
            notes=notes if isinstance(notes, str) and notes else None,
        )


@dataclass
class DayPlan:
    date: str  # YYYY-MM-DD
    blocks: list[PlanBlock] = field(default_factory=list)
    generated_at: str = field(default_factory=now_iso)

    def to_dict(self) -> dict:
        return {
            "date": self.date,
            "blocks": [b.to_dict() for b in self.blocks],
            "generatedAt": self.generated_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> DayPlan:
        blocks = data.get("blocks")
        return cls(
            date=str(data.get("date", "")),
            blocks=[PlanBlock.from_dict(b) for b in blocks or [] if isinstance(b, dict)],
            generated_at=str(data.get("generatedAt") or now_iso()),
        )


@dataclass
class CalendarEvent:
    id: str
    title: str
    start: str
    end: str
    type: str  # MEETING | BLOCKED | INFO
    description: str = ""

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "start": self.start,
            "end": self.end,
            "type": self.type,
            "description": self.description,
        }


@dataclass
class IssueDetails:
    """Current state of an upstream issue, as returned by a detail fetch."""

    title: str
    description: str
    url: str
    state: str | None = None  # GitHub "open"/"closed", or Jira status name


@dataclass
class InterruptDecision:
    priority: str  # URGENT | LATER | IGNORE
    suggested_action: str  # START_NOW | ADD_TO_EXISTING_BLOCK | CREATE_NEW_BLOCK | IGNORE
    rationale: str
    suggested_block_id: str | None = None

    def to_dict(self) -> dict:
        return _compact({
            "priority": self.priority,
            "suggestedAction": self.suggested_action,
            "suggestedBlockId": self.suggested_block_id,
            "rationale": self.rationale,
        })

    @classmethod
    def from_dict(cls, data: dict) -> InterruptDecision:
        return cls(
            priority=data.get("priority", "LATER"),
            suggested_action=data.get("suggestedAction", "IGNORE"),
            rationale=data.get("rationale", ""),
            suggested_block_id=data.get("suggestedBlockId"),
        )


@dataclass
class Notification:
    id: str
    user_id: str
    source: str  # SLACK | GITHUB | JIRA | CALENDAR
    raw_text: str
    created_at: str
    processed: bool = False
    interrupt_decision: InterruptDecision | None = None

    def to_dict(self) -> dict:
        return _compact({
            "id": self.id,
            "userId": self.user_id,
            "source": self.source,
            "rawText": self.raw_text,
            "createdAt": self.created_at,
            "processed": self.processed,
            "interruptDecision": (
                self.interrupt_decision.to_dict() if self.interrupt_decision else None
            ),
        })

    @classmethod
    def from_dict(cls, data: dict, default_id: str = "", default_user: str = "") -> Notification:
        decision = data.get("interruptDecision")
        return cls(
            id=data.get("id") or default_id,
            user_id=data.get("userId") or default_user,
            source=data.get("source") or "SLACK",
            raw_text=data.get("rawText") or "",
            created_at=data.get("createdAt") or now_iso(),
            processed=bool(data.get("processed")),
            interrupt_decision=(
                InterruptDecision.from_dict(decision) if isinstance(decision, dict) else None
            ),
        )


@dataclass
class SessionEvent:
    id: str
    session_id: str
    type: str  # NOTE | TEST_RESULT | SYSTEM
    timestamp: str
    payload: Any = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sessionId": self.session_id,
            "type": self.type,
            "timestamp": self.timestamp,
            "payload": self.payload if self.payload is not None else {},
        }


@dataclass
class Session:
    id: str
    user_id: str
    task_id: str
    status: str  # active | completed
    start_time: str
    end_time: str | None = None
    summary: str | None = None
    key_decisions: list[str] | None = None
    next_steps: list[str] | None = None
    slack_summary: str | None = None
    risk_flags: str | None = None
    task_source: str | None = None
    task_url: str | None = None
    issue_state_at_start: str | None = None
    planned_block_id: str | None = None
    created_at: str | None = None
    updated_at: str | None = None

    def to_dict(self) -> dict:
        return _compact({
            "id": self.id,
            "userId": self.user_id,
            "taskId": self.task_id,
            "status": self.status,
            "startTime": self.start_time,
            "endTime": self.end_time,
            "summary": self.summary,
            "keyDecisions": self.key_decisions,
            "nextSteps": self.next_steps,
            "slackSummary": self.slack_summary,
            "riskFlags": self.risk_flags,
            "taskSource": self.task_source,
            "taskUrl": self.task_url,
            "issueStateAtStart": self.issue_state_at_start,
            "plannedBlockId": self.planned_block_id,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        })

    @classmethod
    def from_dict(cls, data: dict) -> Session:
        return cls(
            id=data.get("id", ""),
            user_id=data.get("userId", ""),
            task_id=data.get("taskId", ""),
            status=data.get("status", SESSION_ACTIVE),
            start_time=data.get("startTime", ""),
            end_time=data.get("endTime"),
            summary=data.get("summary"),
            key_decisions=_str_list(data["keyDecisions"]) if "keyDecisions" in data else None,
            next_steps=_str_list(data["nextSteps"]) if "nextSteps" in data else None,
            slack_summary=data.get("slackSummary"),
            risk_flags=data.get("riskFlags"),
            task_source=data.get("taskSource"),
            task_url=data.get("taskUrl"),
            issue_state_at_start=data.get("issueStateAtStart"),
            planned_block_id=data.get("plannedBlockId"),
            created_at=data.get("createdAt"),
            updated_at=data.get("updatedAt"),
        )


@dataclass
class IssueDelta:
    """Upstream issue state at both ends of a session."""

    source: str  # GITHUB | JIRA
    title: str
    description: str
    url: str
    state_before: str | None = None
    state_after: str | None = None
    closed_during_session: bool = False

    def to_dict(self) -> dict:
        return _compact({
            "source": self.source,
            "title": self.title,
            "description": self.description,
            "url": self.url,
            "stateBefore": self.state_before,
            "stateAfter": self.state_after,
            "closedDuringSession": self.closed_during_session,
        })


@dataclass
class RemovedTask:
    """A Slack task deleted by the reconciler."""

    id: str
    title: str

    def to_dict(self) -> dict:
        return {"id": self.id, "title": self.title}


@dataclass
class SessionSummary:
    session_summary: str
    key_decisions: list[str] = field(default_factory=list)
    next_steps: list[str] = field(default_factory=list)
    risk_flags: str | None = None
