"""Field-level business rules for time entries.

These checks are pure: they read the already loaded project graph and raise
``ValidationError`` naming the offending wire field(s). They never look at the
workflow status; that is the state machine's job.
"""

from __future__ import annotations

import datetime as dt
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from .errors import ValidationError
from .models import Project, ProjectTask, TimeEntry

ISSUE_ID_MAX_LENGTH = 30

Tag = Dict[str, str]


def normalize_tags(tags: Optional[Iterable[Any]]) -> List[Tag]:
    normalized: List[Tag] = []
    for tag in tags or ():
        if isinstance(tag, Mapping):
            name, value = tag.get("name"), tag.get("value")
        else:
            name, value = getattr(tag, "name", None), getattr(tag, "value", None)
        if not isinstance(name, str) or not isinstance(value, str):
            raise ValidationError("Tags must have a name and a value", "tags")
        normalized.append({"name": name, "value": value})
    return normalized


def _valid_hours(value: Optional[Decimal]) -> bool:
    if value is None:
        return False
    number = Decimal(value)
    return number.is_finite() and number >= 0


def validate_hours(standard_hours: Decimal, overtime_hours: Decimal) -> None:
    if not _valid_hours(standard_hours):
        raise ValidationError("StandardHours must be greater than or equal to 0", "standardHours")
    if not _valid_hours(overtime_hours):
        raise ValidationError("OvertimeHours must be greater than or equal to 0", "overtimeHours")


def validate_date_range(start_date: dt.date, completion_date: dt.date) -> None:
    if start_date is None or completion_date is None:
        raise ValidationError("StartDate and CompletionDate are required", "startDate", "completionDate")
    if start_date > completion_date:
        raise ValidationError(
            "StartDate must be less than or equal to CompletionDate",
            "startDate",
            "completionDate",
        )


def validate_project(project: Optional[Project], project_code: str) -> Project:
    if project is None:
        raise ValidationError(f"Project '{project_code}' does not exist", "projectCode")
    if not project.is_active:
        raise ValidationError(f"Project '{project_code}' is inactive", "projectCode")
    return project


def validate_task(project: Project, task_name: str) -> ProjectTask:
    task = project.find_task(task_name) if task_name else None
    if task is None or not task.is_active:
        raise ValidationError(
            f"Task '{task_name}' is not available for project '{project.code}'",
            "task",
        )
    return task


def validate_tags(project: Project, tags: Optional[Iterable[Any]]) -> List[Tag]:
    normalized = normalize_tags(tags)
    allowed = project.allowed_tag_values()
    for tag in normalized:
        values = allowed.get(tag["name"])
        if values is None:
            raise ValidationError(
                f"Tag '{tag['name']}' is not configured for project '{project.code}'",
                "tags",
            )
        if tag["value"] not in values:
            raise ValidationError(
                f"Value '{tag['value']}' is not allowed for tag '{tag['name']}'. "
                f"Allowed values: {', '.join(values)}",
                "tags",
            )
    return normalized


def partition_tags(project: Project, tags: Optional[Iterable[Any]]) -> Tuple[List[Tag], List[Tag]]:
    """Split tags into those legal in ``project`` and those that are not."""
    allowed = project.allowed_tag_values()
    kept: List[Tag] = []
    dropped: List[Tag] = []
    for tag in normalize_tags(tags):
        if tag["value"] in allowed.get(tag["name"], ()):
            kept.append(tag)
        else:
            dropped.append(tag)
    return kept, dropped


def validate_comment(comment: Optional[str]) -> str:
    if comment is None or not comment.strip():
        raise ValidationError("Decline comment is required", "comment")
    return comment.strip()


def validate_issue_id(issue_id: Optional[str]) -> None:
    if issue_id is not None and len(issue_id) > ISSUE_ID_MAX_LENGTH:
        raise ValidationError(
            f"IssueId must be at most {ISSUE_ID_MAX_LENGTH} characters",
            "issueId",
        )


def validate_entry(entry: TimeEntry, project: Optional[Project]) -> None:
    """Re-check every stored field of ``entry`` against the current project setup."""
    validate_hours(entry.standard_hours, entry.overtime_hours)
    validate_date_range(entry.start_date, entry.completion_date)
    project = validate_project(project, entry.project_code)
    validate_task(project, entry.task_name or "")
    validate_tags(project, entry.tags)
    validate_issue_id(entry.issue_id)
