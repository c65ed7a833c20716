"""Typed access to the flowdesk store.

Every path in the tree is built here; services only ever talk in terms of
sessions, events, local tasks, plans, notifications and settings.
"""

from __future__ import annotations

from typing import Any

from flowdesk.models import (
    SESSION_ACTIVE,
    DayPlan,
    Notification,
    Session,
    SessionEvent,
    Task,
)
from flowdesk.storage.db import Store
from flowdesk.tasks.normalize import normalize_local_task

SECRET_FIELDS = ("githubToken", "slackToken")
SETTINGS_FIELDS = SECRET_FIELDS + ("timezone", "workStart", "workEnd")


def mask_token(token: str) -> str:
    if len(token) <= 4:
        return "****"
    return f"{token[:4]}****"


class Repository:
    """Data access layer for one user's slice of the store."""

    def __init__(self, store: Store, user_id: str) -> None:
        self._store = store
        self.user_id = user_id

    # -- Sessions --

    def _session_path(self, session_id: str = "") -> str:
        return f"sessions/{self.user_id}/{session_id}"

    def new_session_id(self) -> str:
        return self._store.push_key(self._session_path())

    def save_session(self, session: Session) -> None:
        self._store.set(self._session_path(session.id), session.to_dict())

    def update_session(self, session_id: str, fields: dict[str, Any]) -> None:
        self._store.update(self._session_path(session_id), fields)

    def get_session(self, session_id: str) -> Session | None:
        data = self._store.get(self._session_path(session_id))
        if not isinstance(data, dict):
            return None
        data.setdefault("id", session_id)
        return Session.from_dict(data)

    def list_sessions(self, status: str | None = None) -> list[Session]:
        """All sessions for the user, newest start first."""
        raw = self._store.get(self._session_path()) or {}
        sessions = []
        for session_id, data in raw.items():
            if not isinstance(data, dict):
                continue
            data.setdefault("id", session_id)
            session = Session.from_dict(data)
            if status and session.status != status:
                continue
            sessions.append(session)
        sessions.sort(key=lambda s: s.start_time, reverse=True)
        return sessions

    def find_active_session(self, task_id: str) -> Session | None:
        for session in self.list_sessions(status=SESSION_ACTIVE):
            if session.task_id == task_id:
                return session
        return None

    # -- Events --

    def new_event_id(self, session_id: str) -> str:
        return self._store.push_key(f"events/{session_id}")

    def add_event(self, event: SessionEvent) -> None:
        self._store.set(f"events/{event.session_id}/{event.id}", event.to_dict())

    def list_events(self, session_id: str) -> list[SessionEvent]:
        """Events for a session ordered by timestamp."""
        raw = self._store.get(f"events/{session_id}") or {}
        events = []
        for event_id, data in raw.items():
            if not isinstance(data, dict):
                continue
            events.append(
                SessionEvent(
                    id=data.get("id") or event_id,
                    session_id=data.get("sessionId") or session_id,
                    type=data.get("type", "NOTE"),
                    timestamp=data.get("timestamp", ""),
                    payload=data.get("payload") or {},
                )
            )
        events.sort(key=lambda e: e.timestamp)
        return events

    # -- Local tasks --

    def _tasks_path(self, task_id: str = "") -> str:
        return f"tasks/{self.user_id}/local/{task_id}"

    def new_local_task_id(self) -> str:
        return self._store.push_key(self._tasks_path())

    def save_local_task(self, task: Task) -> None:
        self._store.set(self._tasks_path(task.id), task.to_dict())

    def get_local_task(self, task_id: str) -> Task | None:
        data = self._store.get(self._tasks_path(task_id))
        if not isinstance(data, dict):
            return None
        return normalize_local_task(data, default_id=task_id)

    def list_local_tasks(self) -> list[Task]:
        raw = self._store.get(self._tasks_path()) or {}
        return [
            normalize_local_task(data, default_id=task_id)
            for task_id, data in raw.items()
            if isinstance(data, dict)
        ]

    def delete_local_tasks(self, task_ids: list[str]) -> None:
        """Remove several local tasks in a single update."""
        if task_ids:
            self._store.update(self._tasks_path(), {task_id: None for task_id in task_ids})

    # -- Plans --

    def get_plan(self, date: str) -> DayPlan | None:
        data = self._store.get(f"plans/{self.user_id}/{date}")
        if not isinstance(data, dict):
            return None
        data.setdefault("date", date)
        return DayPlan.from_dict(data)

    def save_plan(self, plan: DayPlan) -> None:
        self._store.set(f"plans/{self.user_id}/{plan.date}", plan.to_dict())

    # -- Notifications --

    def _notification_path(self, notification_id: str = "") -> str:
        return f"notifications/{self.user_id}/{notification_id}"

    def get_notification(self, notification_id: str) -> Notification | None:
        data = self._store.get(self._notification_path(notification_id))
        if not isinstance(data, dict):
            return None
        return Notification.from_dict(data, default_id=notification_id, default_user=self.user_id)

    def save_notification(self, notification: Notification) -> None:
        self._store.set(self._notification_path(notification.id), notification.to_dict())

    def mark_notification_processed(self, notification_id: str) -> None:
        self._store.update(self._notification_path(notification_id), {"processed": True})

    def list_notifications(self) -> list[Notification]:
        raw = self._store.get(self._notification_path()) or {}
        return [
            Notification.from_dict(data, default_id=notification_id, default_user=self.user_id)
            for notification_id, data in raw.items()
            if isinstance(data, dict)
        ]

    def get_slack_last_ts(self) -> str | None:
        meta = self._store.get(f"notificationMeta/{self.user_id}") or {}
        value = meta.get("slackLastTs") if isinstance(meta, dict) else None
        return value if isinstance(value, str) and value else None

    def set_slack_last_ts(self, ts: str) -> None:
        self._store.update(f"notificationMeta/{self.user_id}", {"slackLastTs": ts})

    # -- Settings --

    def get_settings(self, include_secrets: bool = False) -> dict:
        """Stored settings. Plain token copies are only returned on request."""
        data = self._store.get(f"settings/{self.user_id}")
        if not isinstance(data, dict):
            return {}
        if include_secrets:
            return data
        return {k: v for k, v in data.items() if not k.endswith("Plain")}

    def save_settings(self, payload: dict) -> dict:
        """Merge known settings fields; tokens are kept masked and plain."""
        fields: dict[str, Any] = {}
        for key in SETTINGS_FIELDS:
            if key not in payload or payload[key] is None:
                continue
            value = str(payload[key])
            if key in SECRET_FIELDS:
                fields[key] = mask_token(value) if value else None
                fields[f"{key}Plain"] = value or None
            else:
                fields[key] = value
        if fields:
            self._store.update(f"settings/{self.user_id}", fields)
        return self.get_settings()
