"""Configuration loading for flowdesk.

Config sources (in priority order):
1. Explicit arguments passed to functions
2. Environment variables (ANTHROPIC_API_KEY, GITHUB_TOKEN, etc.)
3. .env file in current directory

Only the Anthropic key is required. Each integration that is left
unconfigured simply contributes nothing (no tasks, no events, no mentions).
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

DEFAULT_DB_PATH = Path("flowdesk.db")
DEFAULT_MODEL = "claude-sonnet-4-20250514"
DEFAULT_USER_ID = "demoUser"
DEFAULT_TIMEZONE = "UTC"
DEFAULT_WORK_START = "09:00"
DEFAULT_WORK_END = "17:00"
DEFAULT_HTTP_TIMEOUT = 10.0  # seconds, per upstream request


def _split_csv(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


@dataclass
class Config:
    anthropic_api_key: str = ""
    model: str = DEFAULT_MODEL
    db_path: Path = DEFAULT_DB_PATH
    user_id: str = DEFAULT_USER_ID

    github_token: str = ""

    jira_base_url: str = ""
    jira_email: str = ""
    jira_api_token: str = ""

    slack_bot_token: str = ""
    slack_user_id: str = ""
    slack_channel_ids: list[str] = field(default_factory=list)

    google_calendar_id: str = ""
    google_calendar_api_key: str = ""

    default_timezone: str = DEFAULT_TIMEZONE
    default_work_start: str = DEFAULT_WORK_START
    default_work_end: str = DEFAULT_WORK_END

    http_timeout: float = DEFAULT_HTTP_TIMEOUT
    environment: str = "development"  # "production" hides stack traces
    log_level: str = "INFO"

    @classmethod
    def load(cls) -> Config:
        return cls(
            anthropic_api_key=os.getenv("ANTHROPIC_API_KEY", ""),
            model=os.getenv("FLOWDESK_MODEL", DEFAULT_MODEL),
            db_path=Path(os.getenv("FLOWDESK_DB_PATH", str(DEFAULT_DB_PATH))),
            user_id=os.getenv("FLOWDESK_USER_ID", DEFAULT_USER_ID),
            github_token=os.getenv("GITHUB_TOKEN", ""),
            jira_base_url=os.getenv("JIRA_BASE_URL", ""),
            jira_email=os.getenv("JIRA_EMAIL", ""),
            jira_api_token=os.getenv("JIRA_API_TOKEN", ""),
            slack_bot_token=os.getenv("SLACK_BOT_TOKEN", ""),
            slack_user_id=os.getenv("SLACK_USER_ID", ""),
            slack_channel_ids=_split_csv(os.getenv("SLACK_CHANNEL_IDS", "")),
            google_calendar_id=os.getenv("GOOGLE_CALENDAR_ID", ""),
            google_calendar_api_key=os.getenv("GOOGLE_CALENDAR_API_KEY", ""),
            default_timezone=os.getenv("DEFAULT_TIMEZONE") or DEFAULT_TIMEZONE,
            default_work_start=os.getenv("DEFAULT_WORK_START") or DEFAULT_WORK_START,
            default_work_end=os.getenv("DEFAULT_WORK_END") or DEFAULT_WORK_END,
            http_timeout=float(os.getenv("FLOWDESK_HTTP_TIMEOUT") or DEFAULT_HTTP_TIMEOUT),
            environment=os.getenv("FLOWDESK_ENV", "development"),
            log_level=os.getenv("FLOWDESK_LOG_LEVEL", "INFO").upper(),
        )

    @property
    def jira_configured(self) -> bool:
        return bool(self.jira_base_url and self.jira_email and self.jira_api_token)

    @property
    def slack_configured(self) -> bool:
        return bool(self.slack_bot_token)

    @property
    def calendar_configured(self) -> bool:
        return bool(self.google_calendar_id and self.google_calendar_api_key)

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    def validate(self) -> list[str]:
        """Return a list of config issues. Only the first one is fatal."""
        issues = []
        if not self.anthropic_api_key:
            issues.append("Anthropic API key not set (ANTHROPIC_API_KEY)")
        if not self.github_token:
            issues.append("GitHub token not set (GITHUB_TOKEN); GitHub tasks disabled")
        if not self.jira_configured:
            issues.append(
                "Jira not configured (JIRA_BASE_URL, JIRA_EMAIL, JIRA_API_TOKEN); Jira tasks disabled"
            )
        if not self.slack_configured:
            issues.append("Slack bot token not set (SLACK_BOT_TOKEN); Slack polling disabled")
        elif not self.slack_channel_ids:
            issues.append("No Slack channels to scan (SLACK_CHANNEL_IDS)")
        if not self.calendar_configured:
            issues.append(
                "Calendar not configured (GOOGLE_CALENDAR_ID, GOOGLE_CALENDAR_API_KEY); no events"
            )
        return issues
