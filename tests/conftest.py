"""Shared test fixtures for flowdesk."""

from __future__ import annotations

import sqlite3
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from flowdesk.config import Config
from flowdesk.models import (
    DEEP_WORK,
    GITHUB,
    JIRA,
    LOCAL,
    MEETING,
    DayPlan,
    IssueDetails,
    PlanBlock,
    Task,
)
from flowdesk.storage.db import Store, get_connection
from flowdesk.storage.repository import Repository


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "test.db"


@pytest.fixture
def db_conn(db_path: Path) -> sqlite3.Connection:
    conn = get_connection(db_path)
    yield conn
    conn.close()


@pytest.fixture
def store(db_conn: sqlite3.Connection) -> Store:
    return Store(db_conn)


@pytest.fixture
def repo(store: Store) -> Repository:
    return Repository(store, "demoUser")


@pytest.fixture
def config(db_path: Path) -> Config:
    return Config(anthropic_api_key="sk-ant-test", db_path=db_path)


@pytest.fixture
def llm() -> MagicMock:
    """Stand-in for LLMClient. Set ``llm.complete.return_value`` per test."""
    client = MagicMock()
    client.complete.return_value = "{}"
    return client


@pytest.fixture
def github_task() -> Task:
    return Task(
        id="1001",
        title="Fix login redirect loop",
        source=GITHUB,
        description="Users bounce between /login and /home after SSO.",
        url="https://github.com/acme/webapp/issues/42",
        labels=["bug"],
    )


@pytest.fixture
def jira_task() -> Task:
    return Task(
        id="PAY-12",
        title="Payment webhook retries",
        source=JIRA,
        description="Retry failed payment webhooks with exponential backoff",
        url="https://acme.atlassian.net/browse/PAY-12",
        labels=["JIRA_KEY:PAY-12"],
    )


@pytest.fixture
def slack_task() -> Task:
    return Task(
        id="slack-1",
        title="Slack: can you look at the payment webhook retries?",
        source=LOCAL,
        description="can you look at the payment webhook retries?",
        labels=["slack", "later", "JIRA_KEY:PAY-12"],
        due_date="2024-06-16",
    )


@pytest.fixture
def sample_plan() -> DayPlan:
    return DayPlan(
        date="2024-06-15",
        blocks=[
            PlanBlock(
                id="block-1",
                start="2024-06-15T09:00:00Z",
                end="2024-06-15T10:00:00Z",
                label="Login bug",
                mode=DEEP_WORK,
                task_ids=["1001"],
            ),
            PlanBlock(
                id="block-2",
                start="2024-06-15T10:30:00Z",
                end="2024-06-15T11:30:00Z",
                label="Sync",
                mode=MEETING,
            ),
        ],
        generated_at="2024-06-15T08:00:00.000Z",
    )


def make_jira(state: str = "In Progress", title: str = "Payment webhook retries") -> MagicMock:
    """A JiraClient mock whose issue details report ``state``."""
    jira = MagicMock()
    jira.fetch_assigned.return_value = []
    jira.fetch_details.return_value = IssueDetails(
        title=title,
        description="Retry failed payment webhooks with exponential backoff",
        url="https://acme.atlassian.net/browse/PAY-12",
        state=state,
    )
    return jira


def make_github(state: str = "open") -> MagicMock:
    github = MagicMock()
    github.fetch_assigned.return_value = []
    github.fetch_details.return_value = IssueDetails(
        title="Fix login redirect loop",
        description="Users bounce between /login and /home after SSO.",
        url="https://github.com/acme/webapp/issues/42",
        state=state,
    )
    return github
