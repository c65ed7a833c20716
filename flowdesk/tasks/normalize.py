"""Map raw GitHub, Jira and local records onto the canonical Task."""

from __future__ import annotations

from typing import Any

from flowdesk.models import GITHUB, JIRA, JIRA_KEY_PREFIX, LOCAL, Task


def adf_to_text(doc: Any) -> str:
    """Flatten an Atlassian Document Format tree to plain text.

    Text nodes are collected in document order and joined with single
    spaces. Plain strings are returned unchanged.
    """
    if doc is None:
        return ""
    if isinstance(doc, str):
        return doc
    if not isinstance(doc, (dict, list)):
        return str(doc)

    parts: list[str] = []

    def walk(node: Any) -> None:
        if isinstance(node, str):
            parts.append(node)
        elif isinstance(node, list):
            for child in node:
                walk(child)
        elif isinstance(node, dict):
            if node.get("type") == "text" and isinstance(node.get("text"), str):
                parts.append(node["text"])
            elif isinstance(node.get("content"), list):
                walk(node["content"])

    walk(doc)
    return " ".join(p for p in parts if p).strip()


def _flatten_labels(labels: Any) -> list[str] | None:
    if not isinstance(labels, list):
        return None
    names = []
    for label in labels:
        name = label if isinstance(label, str) else (label or {}).get("name") if isinstance(label, dict) else None
        if isinstance(name, str) and name.strip():
            names.append(name)
    return names


def normalize_github_issue(raw: dict) -> Task:
    if raw.get("id") is not None:
        task_id = str(raw["id"])
    elif raw.get("number") is not None:
        task_id = str(raw["number"])
    else:
        task_id = ""

    description = raw.get("body")
    if description is None:
        description = raw.get("description")

    return Task(
        id=task_id,
        title=raw.get("title") or "Untitled issue",
        source=GITHUB,
        description=description,
        url=raw.get("html_url") or raw.get("url"),
        labels=_flatten_labels(raw.get("labels")),
    )


def normalize_jira_issue(raw: dict) -> Task:
    fields = raw.get("fields") or {}
    key = raw.get("key")

    if key:
        task_id = str(key)
    elif raw.get("id") is not None:
        task_id = str(raw["id"])
    else:
        task_id = ""

    if "description" in fields:
        description = adf_to_text(fields["description"])
    elif "description" in raw:
        description = adf_to_text(raw["description"])
    else:
        description = None

    due_date = (
        fields.get("duedate")
        or fields.get("dueDate")
        or raw.get("dueDate")
        or raw.get("duedate")
    )

    return Task(
        id=task_id,
        title=fields.get("summary") or raw.get("title") or "Untitled Jira issue",
        source=JIRA,
        description=description,
        url=raw.get("url") or raw.get("browserUrl") or raw.get("self"),
        labels=[f"{JIRA_KEY_PREFIX}{key}"] if key else None,
        due_date=due_date or None,
    )


def normalize_local_task(raw: dict, default_id: str = "") -> Task:
    labels = raw.get("labels")
    return Task(
        id=str(raw.get("id") or default_id),
        title=raw.get("title") or "Untitled task",
        source=LOCAL,
        description=raw.get("description"),
        url=raw.get("url"),
        labels=[l for l in labels if isinstance(l, str)] if isinstance(labels, list) else None,
        due_date=raw.get("dueDate"),
    )


def normalize(raw: dict, source: str) -> Task:
    """Normalize one raw record from ``source`` (GITHUB, JIRA or LOCAL)."""
    if source == GITHUB:
        return normalize_github_issue(raw)
    if source == JIRA:
        return normalize_jira_issue(raw)
    if source == LOCAL:
        return normalize_local_task(raw)
    raise ValueError(f"Unknown task source: {source}")
