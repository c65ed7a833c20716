"""Tests for flowdesk.sessions.reconcile."""

from __future__ import annotations

from flowdesk.models import LOCAL, Task
from flowdesk.sessions.reconcile import (
    SlackTaskReconciler,
    is_similar,
    normalize_tokens,
)
from flowdesk.storage.repository import Repository


def _slack(task_id: str, title: str, labels=None, description=None) -> Task:
    return Task(
        id=task_id,
        title=title,
        source=LOCAL,
        description=description,
        labels=["slack"] + list(labels or []),
    )


class TestTokens:
    def test_normalize_drops_short_words_and_punctuation(self):
        assert normalize_tokens("Fix the DB-pool, ok?") == {"fix", "the", "pool"}

    def test_empty(self):
        assert normalize_tokens(None) == set()

    def test_similarity_needs_two_shared_tokens(self):
        jira = {"payment", "webhook", "retries"}
        assert is_similar(jira, {"payment", "webhook"})
        assert not is_similar(jira, {"payment", "refund", "flow"})

    def test_short_texts_need_one_token(self):
        assert is_similar({"deploy", "api"}, {"api"})


class TestSlackTaskReconciler:
    def test_exact_key_match_wins(self, repo: Repository):
        repo.save_local_task(_slack("a", "Slack: unrelated words", ["JIRA_KEY:PAY-12"]))
        repo.save_local_task(_slack("b", "Slack: payment webhook retries"))
        removed = SlackTaskReconciler(repo).reconcile(
            "Payment webhook retries", "Retry failed webhooks", "PAY-12"
        )
        assert [r.id for r in removed] == ["a"]
        assert {t.id for t in repo.list_local_tasks()} == {"b"}

    def test_fuzzy_match_when_no_key_match(self, repo: Repository):
        repo.save_local_task(_slack("a", "Slack: payment webhook keeps failing"))
        repo.save_local_task(_slack("b", "Slack: update the onboarding docs"))
        removed = SlackTaskReconciler(repo).reconcile(
            "Payment webhook retries", "Retry failed webhooks", "PAY-12"
        )
        assert [r.id for r in removed] == ["a"]

    def test_sparse_jira_text_only_exact(self, repo: Repository):
        repo.save_local_task(_slack("a", "Slack: fix api"))
        removed = SlackTaskReconciler(repo).reconcile("Fix API", "", "OPS-1")
        assert removed == []
        assert len(repo.list_local_tasks()) == 1

    def test_non_slack_tasks_are_never_removed(self, repo: Repository):
        repo.save_local_task(Task(
            id="mine", title="Payment webhook retries", source=LOCAL, labels=["JIRA_KEY:PAY-12"],
        ))
        removed = SlackTaskReconciler(repo).reconcile("Payment webhook retries", "", "PAY-12")
        assert removed == []

    def test_nothing_to_remove(self, repo: Repository):
        assert SlackTaskReconciler(repo).reconcile("Anything at all here", "", None) == []
