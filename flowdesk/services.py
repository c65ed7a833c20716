"""Wire config, store, clients and services together."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from flowdesk.agents.llm import LLMClient
from flowdesk.config import Config
from flowdesk.integrations.calendar import CalendarClient
from flowdesk.integrations.github import GitHubClient
from flowdesk.integrations.jira import JiraClient
from flowdesk.integrations.slack import SlackClient
from flowdesk.notifications.service import NotificationService
from flowdesk.planning.service import PlanningService
from flowdesk.sessions.lifecycle import SessionManager
from flowdesk.sessions.reconcile import SlackTaskReconciler
from flowdesk.storage.db import Store, get_connection
from flowdesk.storage.repository import Repository
from flowdesk.tasks.service import TaskService

logger = logging.getLogger(__name__)


@dataclass
class Services:
    config: Config
    repo: Repository
    tasks: TaskService
    planning: PlanningService
    notifications: NotificationService
    sessions: SessionManager
    clients: list  # upstream clients to close on shutdown

    def close(self) -> None:
        for client in self.clients:
            client.close()


def build_services(
    config: Config,
    llm=None,
    github=None,
    jira=None,
    slack=None,
    calendar=None,
    store: Store | None = None,
) -> Services:
    """Build the service graph. Unconfigured integrations are left out.

    Any collaborator can be passed in explicitly (tests pass mocks).
    """
    if store is None:
        store = Store(get_connection(config.db_path))
    repo = Repository(store, config.user_id)

    clients = []
    if llm is None:
        llm = LLMClient(config.anthropic_api_key, model=config.model)
    if github is None and config.github_token:
        github = GitHubClient(config.github_token, timeout=config.http_timeout)
        clients.append(github)
    if jira is None and config.jira_configured:
        jira = JiraClient(
            config.jira_base_url,
            config.jira_email,
            config.jira_api_token,
            timeout=config.http_timeout,
        )
        clients.append(jira)
    if slack is None and config.slack_configured:
        slack = SlackClient(
            config.slack_bot_token,
            user_id=config.slack_user_id,
            channel_ids=config.slack_channel_ids,
            timeout=config.http_timeout,
        )
    if calendar is None and config.calendar_configured:
        calendar = CalendarClient(
            config.google_calendar_id,
            config.google_calendar_api_key,
            timeout=config.http_timeout,
        )
        clients.append(calendar)

    tasks = TaskService(repo, github=github, jira=jira)
    planning = PlanningService(repo, tasks, llm, config, calendar=calendar)
    notifications = NotificationService(repo, tasks, planning, llm, slack=slack)
    sessions = SessionManager(
        repo,
        tasks,
        SlackTaskReconciler(repo),
        llm,
        github=github,
        jira=jira,
        slack=slack,
    )
    return Services(
        config=config,
        repo=repo,
        tasks=tasks,
        planning=planning,
        notifications=notifications,
        sessions=sessions,
        clients=clients,
    )
