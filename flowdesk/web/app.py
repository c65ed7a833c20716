"""HTTP API for flowdesk.

All routes live under ``/api``. Service calls block on upstream I/O, so
every handler runs them in the thread pool. Errors come back as
``{"message": ...}`` with the status code of the FlowdeskError raised.
"""

from __future__ import annotations

import json
import logging
import traceback

import uvicorn
from starlette.applications import Starlette
from starlette.concurrency import run_in_threadpool
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Mount, Route

from flowdesk.errors import ConflictError, FlowdeskError, ValidationError
from flowdesk.services import Services

logger = logging.getLogger(__name__)


def _services(request: Request) -> Services:
    return request.app.state.services


async def _body(request: Request) -> dict:
    raw = await request.body()
    if not raw:
        return {}
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ValidationError("Request body must be valid JSON") from e
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def _bool_param(value: str | None) -> bool | None:
    if value is None:
        return None
    return value.lower() == "true"


# ── Handlers ──────────────────────────────────────────────────────────────────


async def health(request: Request):
    return JSONResponse({"status": "ok"})


async def api_github_tasks(request: Request):
    tasks = await run_in_threadpool(_services(request).tasks.github_tasks)
    return JSONResponse([t.to_dict() for t in tasks])


async def api_jira_tasks(request: Request):
    tasks = await run_in_threadpool(_services(request).tasks.jira_tasks)
    return JSONResponse([t.to_dict() for t in tasks])


async def api_local_tasks(request: Request):
    tasks = await run_in_threadpool(_services(request).tasks.local_tasks)
    return JSONResponse([t.to_dict() for t in tasks])


async def api_create_local_task(request: Request):
    body = await _body(request)
    title = body.get("title")
    if not isinstance(title, str):
        raise ValidationError("Title is required for a local task")
    task = await run_in_threadpool(
        _services(request).tasks.create_local_task,
        title,
        body.get("description"),
        body.get("url"),
        body.get("labels"),
        body.get("dueDate"),
    )
    return JSONResponse(task.to_dict(), status_code=201)


async def api_plan_day(request: Request):
    body = await _body(request)
    plan = await run_in_threadpool(_services(request).planning.plan_day, body.get("date"))
    return JSONResponse(plan.to_dict())


async def api_get_plan(request: Request):
    date = request.query_params.get("date")
    plan = await run_in_threadpool(_services(request).planning.get_plan, date)
    return JSONResponse(plan.to_dict())


async def api_start_session(request: Request):
    body = await _body(request)
    session = await run_in_threadpool(
        _services(request).sessions.start_session,
        body.get("taskId"),
        body.get("source"),
        body.get("plannedBlockId"),
    )
    return JSONResponse(session.to_dict(), status_code=201)


async def api_session_event(request: Request):
    body = await _body(request)
    event = await run_in_threadpool(
        _services(request).sessions.append_event,
        body.get("sessionId"),
        body.get("type"),
        body.get("payload"),
    )
    return JSONResponse(event.to_dict(), status_code=201)


async def api_end_session(request: Request):
    body = await _body(request)
    session = await run_in_threadpool(
        _services(request).sessions.end_session, body.get("sessionId")
    )
    return JSONResponse(session.to_dict())


async def api_list_sessions(request: Request):
    status = request.query_params.get("status")
    sessions = await run_in_threadpool(_services(request).sessions.list_sessions, status)
    return JSONResponse([s.to_dict() for s in sessions])


async def api_get_session(request: Request):
    session_id = request.path_params["session_id"]
    session, events = await run_in_threadpool(
        _services(request).sessions.get_session_with_events, session_id
    )
    return JSONResponse({
        "session": session.to_dict(),
        "events": [e.to_dict() for e in events],
    })


async def api_poll_slack(request: Request):
    result = await run_in_threadpool(_services(request).notifications.poll_slack)
    return JSONResponse(result.to_dict())


async def api_list_notifications(request: Request):
    processed = _bool_param(request.query_params.get("processed"))
    notifications = await run_in_threadpool(
        _services(request).notifications.list_notifications, processed
    )
    return JSONResponse([n.to_dict() for n in notifications])


async def api_mark_processed(request: Request):
    notification = await run_in_threadpool(
        _services(request).notifications.mark_processed, request.path_params["notification_id"]
    )
    return JSONResponse(notification.to_dict())


async def api_schedule_now(request: Request):
    notification, task = await run_in_threadpool(
        _services(request).notifications.schedule_now, request.path_params["notification_id"]
    )
    return JSONResponse({"notification": notification.to_dict(), "task": task.to_dict()})


async def api_schedule_later(request: Request):
    notification, task = await run_in_threadpool(
        _services(request).notifications.schedule_later, request.path_params["notification_id"]
    )
    return JSONResponse({"notification": notification.to_dict(), "task": task.to_dict()})


async def api_get_settings(request: Request):
    settings = await run_in_threadpool(_services(request).repo.get_settings)
    return JSONResponse(settings)


async def api_save_settings(request: Request):
    body = await _body(request)
    settings = await run_in_threadpool(_services(request).repo.save_settings, body)
    return JSONResponse(settings)


# ── Errors ────────────────────────────────────────────────────────────────────


async def handle_flowdesk_error(request: Request, exc: FlowdeskError):
    content = {"message": exc.message}
    if isinstance(exc, ConflictError):
        content["existingSessionId"] = exc.existing_session_id
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(content, status_code=exc.status_code)


async def handle_unexpected_error(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    content = {"message": str(exc) or "Internal Server Error"}
    if not _services(request).config.is_production:
        content["stack"] = "".join(traceback.format_exception(exc))
    return JSONResponse(content, status_code=500)


# ── App ───────────────────────────────────────────────────────────────────────


def create_app(services: Services) -> Starlette:
    api_routes = [
        Route("/tasks/github", api_github_tasks, methods=["GET"]),
        Route("/tasks/jira", api_jira_tasks, methods=["GET"]),
        Route("/tasks/local", api_local_tasks, methods=["GET"]),
        Route("/tasks/local", api_create_local_task, methods=["POST"]),
        Route("/plan-day", api_plan_day, methods=["POST"]),
        Route("/plan-day", api_get_plan, methods=["GET"]),
        Route("/session/start", api_start_session, methods=["POST"]),
        Route("/session/event", api_session_event, methods=["POST"]),
        Route("/session/end", api_end_session, methods=["POST"]),
        Route("/sessions", api_list_sessions, methods=["GET"]),
        Route("/sessions/{session_id}", api_get_session, methods=["GET"]),
        Route("/notifications/slack/poll", api_poll_slack, methods=["POST"]),
        Route("/notifications", api_list_notifications, methods=["GET"]),
        Route("/notifications/{notification_id}/mark-processed", api_mark_processed, methods=["POST"]),
        Route("/notifications/{notification_id}/schedule-now", api_schedule_now, methods=["POST"]),
        Route("/notifications/{notification_id}/schedule-later", api_schedule_later, methods=["POST"]),
        Route("/settings", api_get_settings, methods=["GET"]),
        Route("/settings", api_save_settings, methods=["POST"]),
    ]
    routes = [
        Route("/health", health),
        Mount("/api", routes=api_routes),
    ]
    app = Starlette(
        routes=routes,
        exception_handlers={
            FlowdeskError: handle_flowdesk_error,
            Exception: handle_unexpected_error,
        },
    )
    app.state.services = services
    return app


def run_server(services: Services, host: str = "127.0.0.1", port: int = 4000):
    app = create_app(services)
    uvicorn.run(app, host=host, port=port)
