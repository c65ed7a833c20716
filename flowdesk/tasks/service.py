"""Task aggregation across GitHub, Jira and the local store."""

from __future__ import annotations

import logging

from flowdesk.errors import FlowdeskError, ValidationError
from flowdesk.models import GITHUB, JIRA, LOCAL, Task
from flowdesk.storage.repository import Repository
from flowdesk.tasks.normalize import normalize_github_issue, normalize_jira_issue

logger = logging.getLogger(__name__)


class TaskService:
    """Upstream fetch failures degrade to "no tasks from that source"."""

    def __init__(self, repo: Repository, github=None, jira=None) -> None:
        self._repo = repo
        self._github = github
        self._jira = jira

    def github_tasks(self) -> list[Task]:
        if self._github is None:
            return []
        try:
            raw = self._github.fetch_assigned()
        except FlowdeskError as e:
            logger.warning(f"GitHub tasks unavailable: {e.message}")
            return []
        return [normalize_github_issue(item) for item in raw if isinstance(item, dict)]

    def jira_tasks(self) -> list[Task]:
        if self._jira is None:
            return []
        try:
            raw = self._jira.fetch_assigned()
        except FlowdeskError as e:
            logger.warning(f"Jira tasks unavailable: {e.message}")
            return []
        return [normalize_jira_issue(item) for item in raw if isinstance(item, dict)]

    def local_tasks(self) -> list[Task]:
        return self._repo.list_local_tasks()

    def all_tasks(self) -> list[Task]:
        return self.github_tasks() + self.jira_tasks() + self.local_tasks()

    def create_local_task(
        self,
        title: str,
        description: str | None = None,
        url: str | None = None,
        labels: list[str] | None = None,
        due_date: str | None = None,
        task_id: str | None = None,
    ) -> Task:
        if not title or not isinstance(title, str) or not title.strip():
            raise ValidationError("Title is required for a local task")
        task = Task(
            id=task_id or self._repo.new_local_task_id(),
            title=title,
            source=LOCAL,
            description=description,
            url=url,
            labels=labels,
            due_date=due_date,
        )
        self._repo.save_local_task(task)
        return task

    def find_task(self, task_id: str, source: str | None = None) -> Task | None:
        """Resolve a task by id within its source. LOCAL is the default."""
        if not task_id:
            return None
        if source == GITHUB:
            candidates = self.github_tasks()
        elif source == JIRA:
            candidates = self.jira_tasks()
        else:
            return self._repo.get_local_task(task_id)
        return next((t for t in candidates if t.id == task_id), None)

    def delete_local_task(self, task_id: str) -> None:
        self._repo.delete_local_tasks([task_id])
