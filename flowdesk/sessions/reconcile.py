"""Match Slack-derived local tasks against a completed Jira issue.

Exact ``JIRA_KEY:<key>`` labels win. Only when no task carries the key does
a lexical token-overlap heuristic run, and only if the Jira text has at
least three distinct tokens; sparse Jira text never removes anything.
"""

from __future__ import annotations

import logging
import re

from flowdesk.models import RemovedTask, Task
from flowdesk.storage.repository import Repository

logger = logging.getLogger(__name__)

NON_ALNUM_RE = re.compile(r"[^a-z0-9\s]")
MIN_TOKEN_LENGTH = 3
MIN_JIRA_TOKENS = 3  # below this, only exact key matches count
MIN_OVERLAP = 2
SHORT_TEXT_TOKENS = 2  # both sides this short: one shared token is enough


def normalize_tokens(text: str | None) -> set[str]:
    if not text:
        return set()
    words = NON_ALNUM_RE.sub(" ", text.lower()).split()
    return {w for w in words if len(w) >= MIN_TOKEN_LENGTH}


def token_overlap(a: set[str], b: set[str]) -> int:
    return len(a & b)


def is_similar(jira_tokens: set[str], task_tokens: set[str]) -> bool:
    if not jira_tokens or not task_tokens:
        return False
    if len(jira_tokens) <= SHORT_TEXT_TOKENS and len(task_tokens) <= SHORT_TEXT_TOKENS:
        needed = 1
    else:
        needed = MIN_OVERLAP
    return token_overlap(jira_tokens, task_tokens) >= needed


class SlackTaskReconciler:
    def __init__(self, repo: Repository) -> None:
        self._repo = repo

    def matching_tasks(
        self, jira_title: str, jira_description: str, jira_key: str | None
    ) -> list[Task]:
        slack_tasks = [t for t in self._repo.list_local_tasks() if t.is_slack()]

        if jira_key:
            exact = [t for t in slack_tasks if t.jira_key() == jira_key]
            if exact:
                return exact

        jira_tokens = normalize_tokens(f"{jira_title or ''} {jira_description or ''}")
        if len(jira_tokens) < MIN_JIRA_TOKENS:
            return []

        return [
            t for t in slack_tasks
            if is_similar(jira_tokens, normalize_tokens(f"{t.title} {t.description or ''}"))
        ]

    def reconcile(
        self, jira_title: str, jira_description: str, jira_key: str | None
    ) -> list[RemovedTask]:
        """Delete the Slack tasks that represent this Jira issue and report them."""
        matches = self.matching_tasks(jira_title, jira_description, jira_key)
        if not matches:
            return []
        self._repo.delete_local_tasks([t.id for t in matches])
        logger.info(f"Removed {len(matches)} Slack tasks for Jira issue {jira_key or jira_title!r}")
        return [RemovedTask(id=t.id, title=t.title) for t in matches]
