"""Slack mention polling and notification triage.

Each new mention is classified against a single snapshot of today's plan
and stored under an id derived from its channel and timestamp, so
re-polling an overlapping range never duplicates a notification.

    URGENT  -> stored unprocessed, waiting for the user
    LATER   -> stored processed, plus a Slack task due tomorrow
    IGNORE  -> stored processed
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from flowdesk.agents.interrupt import classify_interrupt
from flowdesk.errors import NotFoundError
from flowdesk.models import (
    JIRA_KEY_PREFIX,
    SLACK_LABEL,
    Notification,
    Task,
    now_iso,
)
from flowdesk.planning.service import PlanningService
from flowdesk.storage.repository import Repository
from flowdesk.tasks.service import TaskService

logger = logging.getLogger(__name__)

UNSAFE_ID_CHARS_RE = re.compile(r"[.#$/\[\]]")
SLACK_MENTION_RE = re.compile(r"<@[^>]+>")
JIRA_KEY_IN_TEXT_RE = re.compile(r"\b([A-Z][A-Z0-9]+-\d+)\b")
MAX_TITLE_TEXT = 120


def make_safe_id(raw: str) -> str:
    return UNSAFE_ID_CHARS_RE.sub("_", raw)


def strip_slack_mentions(text: str | None) -> str:
    if not text:
        return ""
    return " ".join(SLACK_MENTION_RE.sub("", text).split())


def _day(now: datetime, offset_days: int = 0) -> str:
    return (now.astimezone(timezone.utc) + timedelta(days=offset_days)).date().isoformat()


@dataclass
class PollResult:
    created: list[Notification] = field(default_factory=list)
    last_ts: str | None = None

    def to_dict(self) -> dict:
        return {
            "created": [n.to_dict() for n in self.created],
            "lastTs": self.last_ts,
        }


class NotificationService:
    def __init__(
        self,
        repo: Repository,
        tasks: TaskService,
        planning: PlanningService,
        llm,
        slack=None,
    ) -> None:
        self._repo = repo
        self._tasks = tasks
        self._planning = planning
        self._llm = llm
        self._slack = slack

    def poll_slack(self, now: datetime | None = None) -> PollResult:
        """Fetch mentions since the last poll, classify and store the new ones."""
        now = now or datetime.now(timezone.utc)
        since_ts = self._repo.get_slack_last_ts()
        if self._slack is None:
            return PollResult(created=[], last_ts=since_ts)

        mentions = self._slack.fetch_mentions(since_ts)
        if not mentions:
            return PollResult(created=[], last_ts=since_ts)

        current_plan = self._planning.plan_or_empty(_day(now))
        created: list[Notification] = []

        for mention in mentions:
            notification_id = make_safe_id(f"{mention.channel_id}-{mention.ts}")
            if self._repo.get_notification(notification_id) is not None:
                logger.debug(f"Mention {notification_id} already recorded, skipping")
                continue

            decision = classify_interrupt(mention.text, current_plan, self._llm)
            logger.info(
                f"Slack mention {notification_id}: {decision.priority} / {decision.suggested_action}"
            )

            notification = Notification(
                id=notification_id,
                user_id=self._repo.user_id,
                source="SLACK",
                raw_text=mention.text,
                created_at=now_iso(),
                processed=decision.priority != "URGENT",
                interrupt_decision=decision,
            )
            self._repo.save_notification(notification)
            created.append(notification)

            if decision.priority == "LATER":
                self.ensure_local_task_for_notification(notification, _day(now, 1))

        last_ts = max((m.ts for m in mentions if m.ts), default=None)
        if last_ts:
            self._repo.set_slack_last_ts(last_ts)
        logger.info(f"Slack poll: {len(mentions)} mentions, {len(created)} new")
        return PollResult(created=created, last_ts=last_ts or since_ts)

    def list_notifications(self, processed: bool | None = None) -> list[Notification]:
        """Notifications newest first, optionally filtered by processed state."""
        notifications = self._repo.list_notifications()
        if processed is not None:
            notifications = [n for n in notifications if n.processed == processed]
        notifications.sort(key=lambda n: n.created_at, reverse=True)
        return notifications

    def _require(self, notification_id: str) -> Notification:
        notification = self._repo.get_notification(notification_id)
        if notification is None:
            raise NotFoundError("Notification not found")
        return notification

    def mark_processed(self, notification_id: str) -> Notification:
        notification = self._require(notification_id)
        self._repo.mark_notification_processed(notification_id)
        notification.processed = True
        return notification

    def schedule_now(
        self, notification_id: str, now: datetime | None = None
    ) -> tuple[Notification, Task]:
        """Turn a notification into a task due today and slot it into today's plan."""
        now = now or datetime.now(timezone.utc)
        notification = self._require(notification_id)
        task = self.ensure_local_task_for_notification(notification, _day(now))
        self._planning.insert_task_into_plan(task, now=now)
        self._repo.mark_notification_processed(notification_id)
        notification.processed = True
        return notification, task

    def schedule_later(
        self, notification_id: str, now: datetime | None = None
    ) -> tuple[Notification, Task]:
        now = now or datetime.now(timezone.utc)
        notification = self._require(notification_id)
        task = self.ensure_local_task_for_notification(notification, _day(now, 1))
        self._repo.mark_notification_processed(notification_id)
        notification.processed = True
        return notification, task

    def ensure_local_task_for_notification(
        self, notification: Notification, due_date: str | None = None
    ) -> Task:
        """Return the Slack task for this notification, creating it if needed.

        An existing Slack-labeled local task with the same cleaned text is
        reused as-is.
        """
        due_date = due_date or _day(datetime.now(timezone.utc))
        cleaned = strip_slack_mentions(notification.raw_text)

        for task in self._tasks.local_tasks():
            if task.is_slack() and (task.description or "").strip() == cleaned:
                if not task.due_date:
                    task.due_date = due_date
                return task

        if len(cleaned) > MAX_TITLE_TEXT:
            base = f"{cleaned[:MAX_TITLE_TEXT - 3]}..."
        else:
            base = cleaned or "Slack task"

        labels = [SLACK_LABEL]
        if notification.interrupt_decision:
            labels.append(notification.interrupt_decision.priority.lower())
        match = JIRA_KEY_IN_TEXT_RE.search(notification.raw_text or "")
        if match:
            labels.append(f"{JIRA_KEY_PREFIX}{match.group(1)}")

        return self._tasks.create_local_task(
            title=f"Slack: {base}",
            description=cleaned,
            labels=labels,
            due_date=due_date,
            task_id=self._repo.new_local_task_id(),
        )
