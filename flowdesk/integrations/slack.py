"""Slack Web API integration: mentions of one user and thread digests."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from slack_sdk import WebClient
from slack_sdk.errors import SlackClientError

from flowdesk.config import DEFAULT_HTTP_TIMEOUT
from flowdesk.errors import UpstreamError

logger = logging.getLogger(__name__)


@dataclass
class SlackMention:
    channel_id: str
    text: str
    ts: str


class SlackClient:
    def __init__(
        self,
        token: str,
        user_id: str = "",
        channel_ids: list[str] | None = None,
        timeout: float = DEFAULT_HTTP_TIMEOUT,
    ) -> None:
        self._client = WebClient(token=token, timeout=int(timeout))
        self.user_id = user_id
        self.channel_ids = list(channel_ids or [])

    def fetch_mentions(self, since_ts: str | None = None) -> list[SlackMention]:
        """Top-level messages in the watched channels that mention the user.

        A channel whose history call fails is skipped with a warning.
        """
        token = f"<@{self.user_id}>" if self.user_id else None
        mentions: list[SlackMention] = []
        for channel_id in self.channel_ids:
            try:
                response = self._client.conversations_history(
                    channel=channel_id, oldest=since_ts, limit=100
                )
            except (SlackClientError, OSError) as e:
                logger.warning(f"conversations.history failed for channel {channel_id}: {e}")
                continue

            for msg in response.get("messages") or []:
                text, ts = msg.get("text"), msg.get("ts")
                if not text or not ts or msg.get("subtype"):
                    continue
                if token and token not in text:
                    continue
                mentions.append(SlackMention(channel_id=channel_id, text=text, ts=ts))
        return mentions

    def thread_summary(self, channel_id: str, thread_ts: str) -> str:
        """All reply texts in a thread, one per line."""
        try:
            response = self._client.conversations_replies(
                channel=channel_id, ts=thread_ts, limit=100
            )
        except (SlackClientError, OSError) as e:
            raise UpstreamError(f"Failed to fetch Slack thread {channel_id}/{thread_ts}: {e}") from e

        lines = [
            m.get("text") or ""
            for m in response.get("messages") or []
            if (m.get("text") or "").strip()
        ]
        if not lines:
            return "No messages found in this thread."
        return "\n".join(lines)
