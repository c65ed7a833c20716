"""Google Calendar events for one day, classified for planning."""

from __future__ import annotations

import logging
from datetime import date as date_cls
from datetime import datetime, time
from urllib.parse import quote
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import httpx

from flowdesk.config import DEFAULT_HTTP_TIMEOUT, DEFAULT_WORK_END, DEFAULT_WORK_START
from flowdesk.errors import UpstreamError
from flowdesk.models import CalendarEvent, parse_iso

logger = logging.getLogger(__name__)

EVENTS_URL = "https://www.googleapis.com/calendar/v3/calendars/{calendar_id}/events"

BLOCKED_MARKERS = ("ooo", "out of office", "vacation", "pto")
INFO_MARKERS = ("reminder", "hold")
FULL_DAY_RATIO = 0.75  # of the working day


def _hours(hhmm: str) -> float:
    hours, _, minutes = hhmm.partition(":")
    return int(hours) + int(minutes or 0) / 60


def classify_event(
    item: dict,
    work_start: str = DEFAULT_WORK_START,
    work_end: str = DEFAULT_WORK_END,
) -> CalendarEvent | None:
    """Turn a raw Google event into a CalendarEvent, or None if it is incomplete."""
    start_raw = item.get("start") or {}
    end_raw = item.get("end") or {}
    start = start_raw.get("dateTime") or (
        f"{start_raw['date']}T00:00:00" if start_raw.get("date") else None
    )
    end = end_raw.get("dateTime") or (
        f"{end_raw['date']}T23:59:59" if end_raw.get("date") else None
    )

    title = (item.get("summary") or "").strip()
    description = item.get("description") or ""
    text = f"{title.lower()} {description.lower()}"

    if item.get("eventType") == "outOfOffice":
        event_type = "BLOCKED"
    elif any(marker in text for marker in BLOCKED_MARKERS):
        event_type = "BLOCKED"
    elif any(marker in text for marker in INFO_MARKERS):
        event_type = "INFO"
    else:
        event_type = "MEETING"
        start_dt, end_dt = parse_iso(start), parse_iso(end)
        if start_dt and end_dt:
            duration = (end_dt - start_dt).total_seconds() / 3600
            workday = _hours(work_end) - _hours(work_start)
            if duration >= workday * FULL_DAY_RATIO:
                event_type = "BLOCKED"

    if not title or title.lower() == "busy":
        title = description.strip() or "Busy"

    event_id = item.get("id")
    if not event_id or not start or not end:
        return None
    return CalendarEvent(
        id=str(event_id),
        title=title,
        start=start,
        end=end,
        type=event_type,
        description=description,
    )


class CalendarClient:
    def __init__(
        self,
        calendar_id: str,
        api_key: str,
        timeout: float = DEFAULT_HTTP_TIMEOUT,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._calendar_id = calendar_id
        self._api_key = api_key
        self._http = httpx.Client(timeout=timeout, transport=transport)

    def fetch_day_events(
        self,
        day: str,
        timezone: str = "UTC",
        work_start: str = DEFAULT_WORK_START,
        work_end: str = DEFAULT_WORK_END,
    ) -> list[CalendarEvent]:
        """Single (expanded) events on ``day`` in ``timezone``, ordered by start."""
        try:
            tz = ZoneInfo(timezone)
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning(f"Unknown timezone {timezone!r}, using UTC")
            tz, timezone = ZoneInfo("UTC"), "UTC"

        d = date_cls.fromisoformat(day)
        time_min = datetime.combine(d, time(0, 0, 0), tzinfo=tz)
        time_max = datetime.combine(d, time(23, 59, 59), tzinfo=tz)

        try:
            response = self._http.get(
                EVENTS_URL.format(calendar_id=quote(self._calendar_id, safe="")),
                params={
                    "key": self._api_key,
                    "timeMin": time_min.isoformat(),
                    "timeMax": time_max.isoformat(),
                    "singleEvents": "true",
                    "orderBy": "startTime",
                    "timeZone": timezone,
                },
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise UpstreamError(f"Failed to fetch calendar events for {day}: {e}") from e

        try:
            data = response.json()
        except ValueError as e:
            raise UpstreamError(f"Calendar returned a non-JSON response for {day}") from e
        items = data.get("items") if isinstance(data, dict) else None

        events = []
        for item in items or []:
            event = classify_event(item, work_start, work_end)
            if event is not None:
                events.append(event)
        return events

    def close(self) -> None:
        self._http.close()
