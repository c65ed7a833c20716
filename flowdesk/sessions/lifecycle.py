"""Work session lifecycle: start, log events, end with an AI summary.

Ending a session is a pipeline of optional enrichment stages (upstream
issue state, Slack cleanup, thread digest). Each stage is best-effort: a
failure is logged and the stage contributes nothing. Only a missing
session or a failed store write aborts an operation.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, Callable, TypeVar

from flowdesk.agents.summarizer import SummaryInput, append_hard_facts, summarize_session
from flowdesk.errors import ConflictError, NotFoundError, ValidationError
from flowdesk.integrations.github import parse_github_issue_url
from flowdesk.integrations.jira import JIRA_KEY_RE, parse_jira_key_from_url
from flowdesk.models import (
    EVENT_TYPES,
    GITHUB,
    JIRA,
    LOCAL,
    SESSION_ACTIVE,
    SESSION_COMPLETED,
    TASK_SOURCES,
    IssueDelta,
    Notification,
    RemovedTask,
    Session,
    SessionEvent,
    SessionSummary,
    Task,
    now_iso,
)
from flowdesk.sessions.reconcile import SlackTaskReconciler
from flowdesk.storage.repository import Repository
from flowdesk.tasks.service import TaskService

logger = logging.getLogger(__name__)

T = TypeVar("T")

DONE_MARKERS = ("done", "resolved", "closed", "complete")
SUMMARY_ERROR_FALLBACK = "Automatic AI summary unavailable due to an error."


def is_done(status: str | None) -> bool:
    """Whether a Jira/GitHub status name reads as terminal."""
    if not status:
        return False
    lowered = status.lower()
    return any(marker in lowered for marker in DONE_MARKERS)


def _best_effort(stage: str, fn: Callable[..., T], *args: Any) -> T | None:
    try:
        return fn(*args)
    except Exception as e:
        logger.warning(f"{stage} skipped: {e}")
        return None


class SessionManager:
    def __init__(
        self,
        repo: Repository,
        tasks: TaskService,
        reconciler: SlackTaskReconciler,
        llm,
        github=None,
        jira=None,
        slack=None,
    ) -> None:
        self._repo = repo
        self._tasks = tasks
        self._reconciler = reconciler
        self._llm = llm
        self._github = github
        self._jira = jira
        self._slack = slack

    # -- Start --

    def start_session(
        self,
        task_id: str,
        source: str | None = None,
        planned_block_id: str | None = None,
    ) -> Session:
        if not task_id:
            raise ValidationError("taskId is required")
        if source is not None and source not in TASK_SOURCES:
            raise ValidationError(f"Unknown task source: {source}")

        existing = self._repo.find_active_session(task_id)
        if existing is not None:
            raise ConflictError(
                "An active session already exists for this task", existing.id
            )

        task = self._tasks.find_task(task_id, source)
        if task is None:
            raise NotFoundError(f"Task {task_id} not found. It may have been deleted.")

        state = _best_effort("Issue state at start", self._current_issue_state, task)

        now = now_iso()
        session = Session(
            id=self._repo.new_session_id(),
            user_id=self._repo.user_id,
            task_id=task_id,
            status=SESSION_ACTIVE,
            start_time=now,
            summary=f"Working on: {task.title}",
            task_source=source or task.source,
            task_url=task.url,
            issue_state_at_start=state,
            planned_block_id=planned_block_id,
            created_at=now,
            updated_at=now,
        )
        self._repo.save_session(session)
        logger.info(f"Started session {session.id} for {session.task_source} task {task_id}")
        return session

    def _current_issue_state(self, task: Task) -> str | None:
        if task.source == GITHUB:
            ref = parse_github_issue_url(task.url)
            if ref and self._github is not None:
                return self._github.fetch_details(*ref).state
        elif task.source == JIRA:
            key = parse_jira_key_from_url(task.url)
            if key is None and JIRA_KEY_RE.match(task.id):
                key = task.id
            if key and self._jira is not None:
                return self._jira.fetch_details(key).state
        elif task.source == LOCAL:
            key = task.jira_key()
            if key and self._jira is not None:
                return self._jira.fetch_details(key).state
        return None

    # -- Events --

    def append_event(self, session_id: str, event_type: str, payload: Any = None) -> SessionEvent:
        if not session_id:
            raise ValidationError("sessionId is required")
        if not event_type:
            raise ValidationError("type is required")
        if event_type not in EVENT_TYPES:
            raise ValidationError(
                f"Unknown event type {event_type!r}; expected one of {', '.join(EVENT_TYPES)}"
            )
        if self._repo.get_session(session_id) is None:
            raise NotFoundError("Session not found")

        event = SessionEvent(
            id=self._repo.new_event_id(session_id),
            session_id=session_id,
            type=event_type,
            timestamp=now_iso(),
            payload=payload if payload is not None else {},
        )
        self._repo.add_event(event)
        return event

    # -- End --

    def end_session(self, session_id: str) -> Session:
        if not session_id:
            raise ValidationError("sessionId is required")
        session = self._repo.get_session(session_id)
        if session is None:
            raise NotFoundError("Session not found")
        if session.status == SESSION_COMPLETED:
            raise ValidationError("Session is already completed")

        events = self._repo.list_events(session_id)

        task = _best_effort(
            "Task lookup", self._tasks.find_task, session.task_id, session.task_source
        )
        if task is None:
            logger.warning(
                f"Task {session.task_id} not found when ending session {session_id}. "
                "It may have been deleted."
            )

        removed: list[RemovedTask] = []
        cleanup_ran = False

        # A Slack task linked to a finished Jira issue cleans up its siblings.
        if task is not None and task.source == LOCAL and task.is_slack():
            key = task.jira_key()
            if key:
                outcome = _best_effort("Slack task cleanup", self._cleanup_if_jira_done, key)
                if outcome is not None:
                    cleanup_ran, removed = outcome
            _best_effort("Slack task removal", self._tasks.delete_local_task, task.id)

        issue = _best_effort("Issue state at end", self._issue_delta, session, task)

        if issue is not None and issue.source == JIRA and is_done(issue.state_after) and not cleanup_ran:
            key = self._jira_key(session, task)
            found = _best_effort(
                "Slack task cleanup", self._reconciler.reconcile, issue.title, issue.description, key
            )
            if found:
                removed = found
                _best_effort("Cleanup notification", self._notify_cleanup, key or issue.title, removed)

        slack_summary = _best_effort("Slack thread summary", self._slack_summary, events)

        augmented = list(events)
        if issue is not None and issue.closed_during_session:
            augmented.append(SessionEvent(
                id=f"issue-closed-{session_id}",
                session_id=session_id,
                type="SYSTEM",
                timestamp=now_iso(),
                payload={
                    "kind": "ISSUE_CLOSED",
                    "source": issue.source,
                    "title": issue.title,
                    "url": issue.url,
                },
            ))
        if removed:
            augmented.append(SessionEvent(
                id=f"slack-cleanup-{session_id}",
                session_id=session_id,
                type="SYSTEM",
                timestamp=now_iso(),
                payload={
                    "kind": "SLACK_TASKS_REMOVED_FOR_JIRA",
                    "tasks": [t.to_dict() for t in removed],
                },
            ))

        summary_input = SummaryInput(
            task_title=task.title if task else "Untitled task",
            task_description=task.description if task else None,
            previous_summary=session.summary,
            events=augmented,
            slack_summary=slack_summary,
            issue=issue,
        )
        try:
            summary = summarize_session(summary_input, self._llm)
        except Exception as e:
            logger.error(f"Failed to summarize session {session_id}: {e}")
            summary = SessionSummary(
                session_summary=session.summary or SUMMARY_ERROR_FALLBACK,
                key_decisions=list(session.key_decisions or []),
                next_steps=list(session.next_steps or []),
            )

        summary = append_hard_facts(summary, issue, removed)

        now = now_iso()
        session.status = SESSION_COMPLETED
        session.end_time = now
        session.updated_at = now
        session.summary = summary.session_summary or session.summary
        session.key_decisions = summary.key_decisions
        session.next_steps = summary.next_steps
        if slack_summary:
            session.slack_summary = slack_summary
        if summary.risk_flags:
            session.risk_flags = summary.risk_flags

        self._repo.save_session(session)
        logger.info(f"Ended session {session_id} ({len(events)} events, {len(removed)} Slack tasks removed)")
        return session

    def _cleanup_if_jira_done(self, jira_key: str) -> tuple[bool, list[RemovedTask]]:
        """Reconcile Slack tasks against ``jira_key`` if that issue is finished."""
        if self._jira is None:
            return False, []
        details = self._jira.fetch_details(jira_key)
        if not is_done(details.state):
            return False, []
        removed = self._reconciler.reconcile(details.title, details.description, jira_key)
        if removed:
            _best_effort("Cleanup notification", self._notify_cleanup, jira_key, removed)
        return True, removed

    def _notify_cleanup(self, jira_key: str, removed: list[RemovedTask]) -> None:
        titles = ", ".join(t.title.strip() for t in removed if t.title and t.title.strip())
        if titles:
            text = f"Removed Slack tasks [{titles}] because Jira issue {jira_key} was completed."
        else:
            text = f"Removed Slack tasks linked to Jira issue {jira_key} because it was completed."
        self._repo.save_notification(Notification(
            id=str(uuid.uuid4()),
            user_id=self._repo.user_id,
            source="SLACK",
            raw_text=text,
            created_at=now_iso(),
            processed=False,
        ))

    def _issue_delta(self, session: Session, task: Task | None) -> IssueDelta | None:
        url = (task.url if task else None) or session.task_url
        before = session.issue_state_at_start

        if session.task_source == GITHUB and self._github is not None:
            ref = parse_github_issue_url(url)
            if not ref:
                return None
            details = self._github.fetch_details(*ref)
            return IssueDelta(
                source=GITHUB,
                title=details.title,
                description=details.description,
                url=details.url,
                state_before=before,
                state_after=details.state,
                closed_during_session=details.state == "closed",
            )

        if session.task_source == JIRA and self._jira is not None:
            key = self._jira_key(session, task)
            if not key:
                return None
            details = self._jira.fetch_details(key)
            return IssueDelta(
                source=JIRA,
                title=details.title,
                description=details.description,
                url=details.url or url or "",
                state_before=before,
                state_after=details.state,
                closed_during_session=is_done(details.state),
            )
        return None

    @staticmethod
    def _jira_key(session: Session, task: Task | None) -> str | None:
        # API "self" URLs end in the numeric id, so fall back to the task id.
        url = (task.url if task else None) or session.task_url
        key = parse_jira_key_from_url(url)
        if key is None and JIRA_KEY_RE.match(session.task_id or ""):
            key = session.task_id
        return key

    def _slack_summary(self, events: list[SessionEvent]) -> str | None:
        if self._slack is None:
            return None
        for event in events:
            payload = event.payload
            if not isinstance(payload, dict):
                continue
            channel_id, thread_ts = payload.get("channelId"), payload.get("threadTs")
            if isinstance(channel_id, str) and isinstance(thread_ts, str):
                return self._slack.thread_summary(channel_id, thread_ts) or None
        return None

    # -- Reads --

    def list_sessions(self, status: str | None = None) -> list[Session]:
        return self._repo.list_sessions(status)

    def get_session_with_events(self, session_id: str) -> tuple[Session, list[SessionEvent]]:
        session = self._repo.get_session(session_id)
        if session is None:
            raise NotFoundError("Session not found")
        return session, self._repo.list_events(session_id)
