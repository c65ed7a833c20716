"""Tests for flowdesk.notifications.service."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from flowdesk.errors import NotFoundError
from flowdesk.integrations.slack import SlackMention
from flowdesk.models import DayPlan, InterruptDecision, Notification, PlanBlock
from flowdesk.notifications.service import (
    NotificationService,
    make_safe_id,
    strip_slack_mentions,
)
from flowdesk.planning.service import PlanningService
from flowdesk.tasks.service import TaskService

NOW = datetime(2024, 6, 15, 9, 15, tzinfo=timezone.utc)


def _decision(priority: str) -> str:
    return json.dumps({"priority": priority, "suggestedAction": "IGNORE", "rationale": "because"})


@pytest.fixture
def slack() -> MagicMock:
    client = MagicMock()
    client.fetch_mentions.return_value = []
    return client


@pytest.fixture
def service(repo, llm, config, slack) -> NotificationService:
    tasks = TaskService(repo)
    planning = PlanningService(repo, tasks, llm, config)
    return NotificationService(repo, tasks, planning, llm, slack=slack)


class TestHelpers:
    def test_make_safe_id(self):
        assert make_safe_id("C1-1718445600.0001") == "C1-1718445600_0001"
        assert make_safe_id("a#b$c[d]/e") == "a_b_c_d__e"

    def test_strip_mentions(self):
        assert strip_slack_mentions("<@U123>  please   check <@U9>PAY-12") == "please check PAY-12"
        assert strip_slack_mentions(None) == ""


class TestPollSlack:
    def test_no_client(self, repo, llm, config):
        tasks = TaskService(repo)
        svc = NotificationService(repo, tasks, PlanningService(repo, tasks, llm, config), llm)
        result = svc.poll_slack(now=NOW)
        assert result.created == []
        assert result.last_ts is None

    def test_triage_by_priority(self, service, repo, llm, slack):
        slack.fetch_mentions.return_value = [
            SlackMention(channel_id="C1", text="<@U1> prod is down", ts="100.1"),
            SlackMention(channel_id="C1", text="<@U1> can you look at PAY-12 later", ts="100.2"),
            SlackMention(channel_id="C1", text="<@U1> fyi lunch moved", ts="100.3"),
        ]
        llm.complete.side_effect = [_decision("URGENT"), _decision("LATER"), _decision("IGNORE")]

        result = service.poll_slack(now=NOW)

        assert [n.id for n in result.created] == ["C1-100_1", "C1-100_2", "C1-100_3"]
        assert [n.processed for n in result.created] == [False, True, True]
        assert result.last_ts == "100.3"
        assert repo.get_slack_last_ts() == "100.3"

        [task] = repo.list_local_tasks()
        assert task.title == "Slack: can you look at PAY-12 later"
        assert task.description == "can you look at PAY-12 later"
        assert task.labels == ["slack", "later", "JIRA_KEY:PAY-12"]
        assert task.due_date == "2024-06-16"

    def test_repoll_is_idempotent(self, service, repo, llm, slack):
        mention = SlackMention(channel_id="C1", text="<@U1> later please", ts="200.5")
        slack.fetch_mentions.return_value = [mention]
        llm.complete.return_value = _decision("LATER")

        first = service.poll_slack(now=NOW)
        second = service.poll_slack(now=NOW)

        assert len(first.created) == 1
        assert second.created == []
        assert len(repo.list_notifications()) == 1
        assert len(repo.list_local_tasks()) == 1
        assert llm.complete.call_count == 1
        slack.fetch_mentions.assert_called_with("200.5")

    def test_uses_one_plan_snapshot(self, service, repo, llm, slack):
        repo.save_plan(DayPlan(date="2024-06-15", blocks=[
            PlanBlock(id="focus", start="2024-06-15T09:00:00Z", end="2024-06-15T11:00:00Z",
                      label="Focus", mode="DEEP_WORK"),
        ]))
        slack.fetch_mentions.return_value = [
            SlackMention(channel_id="C1", text="a", ts="1.1"),
            SlackMention(channel_id="C1", text="b", ts="1.2"),
        ]
        llm.complete.return_value = _decision("IGNORE")
        service.poll_slack(now=NOW)
        for call in llm.complete.call_args_list:
            assert '"focus"' in call[0][0]

    def test_long_text_is_truncated_in_title(self, service, repo, llm, slack):
        text = "x" * 200
        slack.fetch_mentions.return_value = [SlackMention(channel_id="C2", text=text, ts="3.0")]
        llm.complete.return_value = _decision("LATER")
        service.poll_slack(now=NOW)
        [task] = repo.list_local_tasks()
        assert task.title == "Slack: " + "x" * 117 + "..."
        assert task.description == text


class TestNotificationActions:
    def _store(self, repo, text="<@U1> please review the PR", priority="URGENT") -> Notification:
        notification = Notification(
            id="C1-9_9",
            user_id="demoUser",
            source="SLACK",
            raw_text=text,
            created_at="2024-06-15T09:00:00.000Z",
            interrupt_decision=InterruptDecision(
                priority=priority, suggested_action="START_NOW", rationale="r"
            ),
        )
        repo.save_notification(notification)
        return notification

    def test_schedule_now_inserts_block(self, service, repo):
        self._store(repo)
        repo.save_plan(DayPlan(date="2024-06-15", blocks=[]))

        notification, task = service.schedule_now("C1-9_9", now=NOW)

        assert notification.processed
        assert repo.get_notification("C1-9_9").processed
        assert task.due_date == "2024-06-15"
        assert "urgent" in task.labels
        [block] = repo.get_plan("2024-06-15").blocks
        assert block.task_ids == [task.id]

    def test_schedule_later_reuses_existing_task(self, service, repo):
        self._store(repo)
        _, first = service.schedule_later("C1-9_9", now=NOW)
        _, second = service.schedule_later("C1-9_9", now=NOW)
        assert first.id == second.id
        assert first.due_date == "2024-06-16"
        assert len(repo.list_local_tasks()) == 1

    def test_mark_processed(self, service, repo):
        self._store(repo)
        assert service.mark_processed("C1-9_9").processed

    def test_unknown_notification(self, service):
        with pytest.raises(NotFoundError):
            service.mark_processed("missing")

    def test_list_filters_and_orders(self, service, repo):
        for nid, created, processed in [("a", "2024-06-15T08:00:00Z", True), ("b", "2024-06-15T09:00:00Z", False)]:
            repo.save_notification(Notification(
                id=nid, user_id="demoUser", source="SLACK", raw_text=nid,
                created_at=created, processed=processed,
            ))
        assert [n.id for n in service.list_notifications()] == ["b", "a"]
        assert [n.id for n in service.list_notifications(processed=False)] == ["b"]
