"""MCP server for flowdesk.

Lets an AI coding agent read the day plan, see tasks and notifications,
and drive work sessions (start, log notes and test results, end) via the
Model Context Protocol.

Usage:
    flowdesk mcp
    python -m flowdesk.mcp_server

Configure in an MCP client:
    {
      "mcpServers": {
        "flowdesk": {"command": "flowdesk", "args": ["mcp"]}
      }
    }
"""

from __future__ import annotations

import json
import logging

import mcp.server.stdio
import mcp.types as types
from mcp.server import Server

from flowdesk.config import Config
from flowdesk.errors import ConflictError, FlowdeskError
from flowdesk.services import Services, build_services

logger = logging.getLogger(__name__)

server = Server("flowdesk")

_services: Services | None = None


def _get_services() -> Services:
    global _services
    if _services is None:
        _services = build_services(Config.load())
    return _services


def _text(payload) -> list[types.TextContent]:
    if isinstance(payload, str):
        return [types.TextContent(type="text", text=payload)]
    return [types.TextContent(type="text", text=json.dumps(payload, indent=2, default=str))]


@server.list_tools()
async def list_tools() -> list[types.Tool]:
    return [
        types.Tool(
            name="get_day_plan",
            description="Get the stored day plan (focus blocks) for a date. Defaults to today.",
            inputSchema={
                "type": "object",
                "properties": {
                    "date": {"type": "string", "description": "YYYY-MM-DD"},
                },
            },
        ),
        types.Tool(
            name="plan_day",
            description=(
                "Generate a fresh day plan from GitHub, Jira and local tasks plus "
                "calendar events. Replaces any existing plan for that date."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "date": {"type": "string", "description": "YYYY-MM-DD"},
                },
            },
        ),
        types.Tool(
            name="list_tasks",
            description="List tasks from one source (GITHUB, JIRA or LOCAL), or all of them.",
            inputSchema={
                "type": "object",
                "properties": {
                    "source": {"type": "string", "enum": ["GITHUB", "JIRA", "LOCAL"]},
                },
            },
        ),
        types.Tool(
            name="start_session",
            description=(
                "Start a work session on a task. Fails if one is already active "
                "for that task and returns its id."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "task_id": {"type": "string"},
                    "source": {"type": "string", "enum": ["GITHUB", "JIRA", "LOCAL"]},
                    "planned_block_id": {"type": "string"},
                },
                "required": ["task_id"],
            },
        ),
        types.Tool(
            name="log_session_event",
            description=(
                "Record a NOTE or TEST_RESULT in an active session. Include "
                "channelId and threadTs in the payload to attach a Slack thread."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "session_id": {"type": "string"},
                    "type": {"type": "string", "enum": ["NOTE", "TEST_RESULT"]},
                    "payload": {"type": "object"},
                },
                "required": ["session_id", "type"],
            },
        ),
        types.Tool(
            name="end_session",
            description=(
                "End a work session. Checks the linked issue, cleans up Slack tasks "
                "for finished Jira work, and returns the AI summary."
            ),
            inputSchema={
                "type": "object",
                "properties": {"session_id": {"type": "string"}},
                "required": ["session_id"],
            },
        ),
        types.Tool(
            name="poll_slack",
            description="Fetch new Slack mentions and triage them into notifications.",
            inputSchema={"type": "object", "properties": {}},
        ),
        types.Tool(
            name="list_notifications",
            description="List notifications, newest first. Filter by processed state if given.",
            inputSchema={
                "type": "object",
                "properties": {"processed": {"type": "boolean"}},
            },
        ),
    ]


@server.call_tool()
async def call_tool(name: str, arguments: dict) -> list[types.TextContent]:
    try:
        return _dispatch_tool(name, arguments or {}, _get_services())
    except ConflictError as e:
        return _text({"error": e.message, "existingSessionId": e.existing_session_id})
    except FlowdeskError as e:
        return _text(f"Error: {e.message}")
    except Exception as e:
        logger.exception(f"Tool {name} failed")
        return _text(f"Error: {e}")


def _dispatch_tool(name: str, arguments: dict, services: Services) -> list[types.TextContent]:
    """Route a tool call to the appropriate handler."""
    if name == "get_day_plan":
        return _text(services.planning.get_plan(arguments.get("date")).to_dict())
    elif name == "plan_day":
        return _text(services.planning.plan_day(arguments.get("date")).to_dict())
    elif name == "list_tasks":
        return _handle_list_tasks(services, arguments.get("source"))
    elif name == "start_session":
        session = services.sessions.start_session(
            arguments["task_id"],
            arguments.get("source"),
            arguments.get("planned_block_id"),
        )
        return _text(session.to_dict())
    elif name == "log_session_event":
        event = services.sessions.append_event(
            arguments["session_id"], arguments["type"], arguments.get("payload")
        )
        return _text(event.to_dict())
    elif name == "end_session":
        return _text(services.sessions.end_session(arguments["session_id"]).to_dict())
    elif name == "poll_slack":
        return _text(services.notifications.poll_slack().to_dict())
    elif name == "list_notifications":
        notifications = services.notifications.list_notifications(arguments.get("processed"))
        return _text([n.to_dict() for n in notifications])
    else:
        return _text(f"Unknown tool: {name}")


def _handle_list_tasks(services: Services, source: str | None) -> list[types.TextContent]:
    if source == "GITHUB":
        tasks = services.tasks.github_tasks()
    elif source == "JIRA":
        tasks = services.tasks.jira_tasks()
    elif source == "LOCAL":
        tasks = services.tasks.local_tasks()
    else:
        tasks = services.tasks.all_tasks()
    if not tasks:
        return _text("No tasks found.")
    return _text([t.to_dict() for t in tasks])


async def main() -> None:
    async with mcp.server.stdio.stdio_server() as (read_stream, write_stream):
        await server.run(
            read_stream,
            write_stream,
            server.create_initialization_options(),
        )


if __name__ == "__main__":
    import asyncio
    asyncio.run(main())
