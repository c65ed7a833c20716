"""Day plan generation, storage, and ad hoc block insertion."""

from __future__ import annotations

import logging
from datetime import date as date_cls, datetime, timedelta, timezone

from flowdesk.agents.planning import PlanningInput, apply_meeting_overrides, plan_day
from flowdesk.config import Config
from flowdesk.errors import FlowdeskError, NotFoundError, ValidationError
from flowdesk.models import (
    SHALLOW,
    CalendarEvent,
    DayPlan,
    PlanBlock,
    Task,
    now_iso,
    parse_iso,
    to_iso,
    today_str,
)
from flowdesk.storage.repository import Repository
from flowdesk.tasks.service import TaskService

logger = logging.getLogger(__name__)

INSERTED_BLOCK_MINUTES = 30


def _plan_date(date) -> str:
    """Validated YYYY-MM-DD for ``date``, defaulting to today."""
    if date is None or date == "":
        return today_str()
    if not isinstance(date, str):
        raise ValidationError("date must be a YYYY-MM-DD string")
    try:
        return date_cls.fromisoformat(date).isoformat()
    except ValueError:
        raise ValidationError(f"Invalid date: {date}") from None


def find_gap(blocks: list[PlanBlock], earliest: datetime, duration: timedelta) -> datetime:
    """Earliest start at or after ``earliest`` where ``duration`` fits between blocks.

    Blocks with unparseable times are ignored.
    """
    intervals = []
    for block in blocks:
        start, end = parse_iso(block.start), parse_iso(block.end)
        if start is None or end is None:
            continue
        intervals.append((start, end))
    intervals.sort(key=lambda pair: pair[0])

    candidate = earliest
    for start, end in intervals:
        if candidate + duration <= start:
            break
        if candidate >= end:
            continue
        candidate = end
    return candidate


class PlanningService:
    def __init__(
        self,
        repo: Repository,
        tasks: TaskService,
        llm,
        config: Config,
        calendar=None,
    ) -> None:
        self._repo = repo
        self._tasks = tasks
        self._llm = llm
        self._config = config
        self._calendar = calendar

    def working_hours(self) -> tuple[str, str, str]:
        """(timezone, work_start, work_end) from stored settings, else config defaults."""
        settings = self._repo.get_settings()
        return (
            settings.get("timezone") or self._config.default_timezone,
            settings.get("workStart") or self._config.default_work_start,
            settings.get("workEnd") or self._config.default_work_end,
        )

    def day_events(self, date: str, tz: str, work_start: str, work_end: str) -> list[CalendarEvent]:
        if self._calendar is None:
            return []
        try:
            return self._calendar.fetch_day_events(date, tz, work_start, work_end)
        except FlowdeskError as e:
            logger.warning(f"Calendar unavailable for {date}: {e.message}")
            return []

    def plan_day(self, date: str | None = None) -> DayPlan:
        """Generate and store a fresh plan for ``date`` (default today), replacing any existing one."""
        date = _plan_date(date)
        tz, work_start, work_end = self.working_hours()
        events = self.day_events(date, tz, work_start, work_end)

        planning_input = PlanningInput(
            date=date,
            timezone=tz,
            work_start=work_start,
            work_end=work_end,
            tasks=self._tasks.all_tasks(),
            events=events,
        )
        plan = plan_day(planning_input, self._llm)
        plan.blocks = apply_meeting_overrides(plan.blocks, events)

        self._repo.save_plan(plan)
        logger.info(f"Planned {date}: {len(plan.blocks)} blocks from {len(planning_input.tasks)} tasks")
        return plan

    def get_plan(self, date: str | None = None) -> DayPlan:
        date = _plan_date(date)
        plan = self._repo.get_plan(date)
        if plan is None:
            raise NotFoundError("No plan found for this date")
        return plan

    def plan_or_empty(self, date: str | None = None) -> DayPlan:
        date = _plan_date(date)
        return self._repo.get_plan(date) or DayPlan(date=date, blocks=[], generated_at=now_iso())

    def insert_task_into_plan(self, task: Task, now: datetime | None = None) -> PlanBlock | None:
        """Add a 30-minute SHALLOW block for ``task`` to today's plan.

        Placed in the first gap at or after ``now``. Does nothing, and
        returns None, when today has no stored plan.
        """
        now = now or datetime.now(timezone.utc)
        today = now.astimezone(timezone.utc).date().isoformat()
        plan = self._repo.get_plan(today)
        if plan is None:
            logger.info(f"No plan for {today}; not inserting task {task.id}")
            return None

        duration = timedelta(minutes=INSERTED_BLOCK_MINUTES)
        start = find_gap(plan.blocks, now, duration)
        block = PlanBlock(
            id=f"slack-{task.id}-{int(now.timestamp() * 1000)}",
            start=to_iso(start),
            end=to_iso(start + duration),
            label=task.title or "Slack task",
            mode=SHALLOW,
            task_ids=[task.id],
            notes=task.description or None,
        )
        plan.blocks.append(block)
        plan.generated_at = now_iso()
        self._repo.save_plan(plan)
        return block
