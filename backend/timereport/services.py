from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session, selectinload

from . import validation
from .acl import Capability, has_capability, project_path
from .config import settings
from .database import commit
from .errors import ForbiddenError, NotFoundError, ValidationError
from .identity import IdentityContext
from .models import EntryStatus, Project, TimeEntry
from .workflow import MOVE_TARGET_CAPABILITY, Transition, apply_transition, check_transition, rule_for

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = (
    "task",
    "standard_hours",
    "overtime_hours",
    "start_date",
    "completion_date",
    "description",
    "issue_id",
    "tags",
)


@dataclass
class MoveResult:
    entry: TimeEntry
    dropped_tags: List[Dict[str, str]] = field(default_factory=list)


def _to_decimal(value: Any, field_name: str) -> Decimal:
    if isinstance(value, bool):
        raise ValidationError(f"{field_name} must be a number", field_name)
    try:
        number = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field_name} must be a number", field_name) from None
    if not number.is_finite():
        raise ValidationError(f"{field_name} must be a finite number", field_name)
    return number


def _load_entry(db: Session, entry_id: str) -> TimeEntry:
    entry = db.get(TimeEntry, entry_id)
    if entry is None:
        raise NotFoundError("TimeEntry", entry_id)
    return entry


def _authorize(identity: IdentityContext, entry: TimeEntry, transition: Transition) -> str:
    """Check ``transition`` against the persisted project of ``entry``; return the resource path."""
    rule = rule_for(transition)
    path = project_path(entry.project_code)
    is_owner = identity.owns(entry.owner_id)
    if not rule.authorizes(identity, path, is_owner):
        logger.info(
            "Denied %s on %s (required capability %s, owner=%s)",
            transition.value,
            path,
            rule.capability,
            is_owner,
        )
        raise ForbiddenError(path, rule.capability, owner_required=rule.owner_required and not is_owner)
    return path


def _require_capability(identity: IdentityContext, path: str, capability: str) -> None:
    if not identity.has_capability(path, capability):
        logger.info("Denied access to %s (required capability %s)", path, capability)
        raise ForbiddenError(path, capability)


def _persist(db: Session, entry: TimeEntry, transition: Transition) -> TimeEntry:
    db.add(entry)
    commit(db)
    db.refresh(entry)
    logger.info("Applied %s to time entry %s (status %s)", transition.value, entry.id, entry.status)
    return entry


def create_entry(db: Session, identity: IdentityContext, fields: Dict[str, Any]) -> TimeEntry:
    project_code = fields.get("project_code") or ""
    _require_capability(identity, project_path(project_code), rule_for(Transition.CREATE).capability)

    standard_hours = _to_decimal(fields.get("standard_hours"), "standardHours")
    overtime_hours = _to_decimal(fields.get("overtime_hours") or 0, "overtimeHours")
    validation.validate_hours(standard_hours, overtime_hours)
    validation.validate_date_range(fields.get("start_date"), fields.get("completion_date"))
    validation.validate_issue_id(fields.get("issue_id"))
    project = validation.validate_project(db.get(Project, project_code), project_code)
    task = validation.validate_task(project, fields.get("task") or "")
    tags = validation.validate_tags(project, fields.get("tags"))

    entry = TimeEntry(
        project=project,
        project_code=project.code,
        task=task,
        standard_hours=standard_hours,
        overtime_hours=overtime_hours,
        start_date=fields["start_date"],
        completion_date=fields["completion_date"],
        description=fields.get("description"),
        issue_id=fields.get("issue_id"),
        tags=tags,
        owner_id=identity.user_id,
        owner_email=identity.email,
        owner_name=identity.name,
    )
    apply_transition(entry, Transition.CREATE)
    return _persist(db, entry, Transition.CREATE)


def update_entry(
    db: Session,
    identity: IdentityContext,
    entry_id: str,
    changes: Dict[str, Any],
) -> TimeEntry:
    """Apply a sparse update; omitted or ``None`` fields keep their stored values."""
    entry = _load_entry(db, entry_id)
    _authorize(identity, entry, Transition.EDIT)

    if changes.get("project_code") not in (None, entry.project_code):
        raise ValidationError("Use the move operation to change the project of an entry", "projectCode")
    supplied = {key: value for key, value in changes.items() if key in EDITABLE_FIELDS and value is not None}

    standard_hours = _to_decimal(supplied.get("standard_hours", entry.standard_hours), "standardHours")
    overtime_hours = _to_decimal(supplied.get("overtime_hours", entry.overtime_hours), "overtimeHours")
    validation.validate_hours(standard_hours, overtime_hours)
    start_date: dt.date = supplied.get("start_date", entry.start_date)
    completion_date: dt.date = supplied.get("completion_date", entry.completion_date)
    if "start_date" in supplied or "completion_date" in supplied:
        validation.validate_date_range(start_date, completion_date)
    if "issue_id" in supplied:
        validation.validate_issue_id(supplied["issue_id"])
    task = None
    if "task" in supplied:
        project = validation.validate_project(entry.project, entry.project_code)
        task = validation.validate_task(project, supplied["task"])
    tags = None
    if "tags" in supplied:
        tags = validation.validate_tags(entry.project, supplied["tags"])

    check_transition(Transition.EDIT, entry.status)

    if task is not None:
        entry.task = task
    if "standard_hours" in supplied:
        entry.standard_hours = standard_hours
    if "overtime_hours" in supplied:
        entry.overtime_hours = overtime_hours
    if "start_date" in supplied:
        entry.start_date = start_date
    if "completion_date" in supplied:
        entry.completion_date = completion_date
    if "description" in supplied:
        entry.description = supplied["description"]
    if "issue_id" in supplied:
        entry.issue_id = supplied["issue_id"]
    if tags is not None:
        entry.tags = tags

    apply_transition(entry, Transition.EDIT)
    return _persist(db, entry, Transition.EDIT)


def update_tags(
    db: Session,
    identity: IdentityContext,
    entry_id: str,
    tags: Optional[Iterable[Any]],
) -> TimeEntry:
    """Replace the tags of an entry; an empty list clears them."""
    return update_entry(db, identity, entry_id, {"tags": list(tags or [])})


def submit_entry(db: Session, identity: IdentityContext, entry_id: str) -> TimeEntry:
    entry = _load_entry(db, entry_id)
    _authorize(identity, entry, Transition.SUBMIT)
    # Project setup may have changed since the entry was logged.
    validation.validate_entry(entry, entry.project)
    apply_transition(entry, Transition.SUBMIT)
    return _persist(db, entry, Transition.SUBMIT)


def approve_entry(db: Session, identity: IdentityContext, entry_id: str) -> TimeEntry:
    entry = _load_entry(db, entry_id)
    # A decision on an entry that is not Submitted conflicts before permissions are checked.
    check_transition(Transition.APPROVE, entry.status)
    _authorize(identity, entry, Transition.APPROVE)
    apply_transition(entry, Transition.APPROVE)
    return _persist(db, entry, Transition.APPROVE)


def decline_entry(db: Session, identity: IdentityContext, entry_id: str, comment: Optional[str]) -> TimeEntry:
    entry = _load_entry(db, entry_id)
    check_transition(Transition.DECLINE, entry.status)
    _authorize(identity, entry, Transition.DECLINE)
    reason = validation.validate_comment(comment)
    apply_transition(entry, Transition.DECLINE, comment=reason)
    return _persist(db, entry, Transition.DECLINE)


def move_entry(
    db: Session,
    identity: IdentityContext,
    entry_id: str,
    new_project_code: str,
    new_task_name: str,
) -> MoveResult:
    """Move an entry to another project and/or task.

    Tags that the destination project does not allow are dropped and reported
    back instead of failing the move.
    """
    entry = _load_entry(db, entry_id)
    _authorize(identity, entry, Transition.MOVE)
    new_project_code = (new_project_code or "").strip()
    _require_capability(identity, project_path(new_project_code), MOVE_TARGET_CAPABILITY)

    project = validation.validate_project(db.get(Project, new_project_code), new_project_code)
    task = validation.validate_task(project, new_task_name)
    kept, dropped = validation.partition_tags(project, entry.tags)

    check_transition(Transition.MOVE, entry.status)

    entry.project = project
    entry.project_code = project.code
    entry.task = task
    entry.tags = kept
    apply_transition(entry, Transition.MOVE)
    _persist(db, entry, Transition.MOVE)
    if dropped:
        logger.info("Dropped %d tag(s) while moving time entry %s to %s", len(dropped), entry.id, project.code)
    return MoveResult(entry=entry, dropped_tags=dropped)


def delete_entry(db: Session, identity: IdentityContext, entry_id: str) -> bool:
    entry = _load_entry(db, entry_id)
    _authorize(identity, entry, Transition.DELETE)
    check_transition(Transition.DELETE, entry.status)
    db.delete(entry)
    commit(db)
    logger.info("Deleted time entry %s", entry_id)
    return True


def get_entry(db: Session, identity: IdentityContext, entry_id: str) -> TimeEntry:
    """Load an entry the caller may see; hidden entries are reported as missing."""
    entry = _load_entry(db, entry_id)
    if identity.owns(entry.owner_id):
        return entry
    path = project_path(entry.project_code)
    if not identity.has_capability(path, Capability.VIEW):
        logger.info("Hid time entry %s on %s (required capability %s)", entry_id, path, Capability.VIEW)
        raise NotFoundError("TimeEntry", entry_id)
    return entry


def _viewable_project_codes(db: Session, identity: IdentityContext) -> List[str]:
    access = identity.access_entries()
    if not access:
        return []
    codes = [code for (code,) in db.query(Project.code).all()]
    return [code for code in codes if has_capability(access, project_path(code), Capability.VIEW)]


def list_entries(
    db: Session,
    identity: IdentityContext,
    project_code: Optional[str] = None,
    status: Optional[EntryStatus] = None,
    mine: bool = False,
    limit: Optional[int] = None,
    offset: int = 0,
) -> List[TimeEntry]:
    """Entries visible to ``identity``: its own, plus those on projects it may view."""
    limit = settings.default_page_size if limit is None else limit
    limit = max(0, min(limit, settings.max_page_size))
    offset = max(0, offset)

    query = db.query(TimeEntry)
    if project_code:
        query = query.filter(TimeEntry.project_code == project_code)
    if status is not None:
        query = query.filter(TimeEntry.status == EntryStatus(status).value)
    if mine:
        if not identity.user_id:
            return []
        query = query.filter(TimeEntry.owner_id == identity.user_id)
    else:
        visible = []
        if identity.user_id:
            visible.append(TimeEntry.owner_id == identity.user_id)
        viewable = _viewable_project_codes(db, identity)
        if viewable:
            visible.append(TimeEntry.project_code.in_(viewable))
        if not visible:
            return []
        query = query.filter(or_(*visible))
    query = query.order_by(TimeEntry.created_at.desc(), TimeEntry.id)
    return query.offset(offset).limit(limit).all()


def list_projects(db: Session, include_inactive: bool = False) -> List[Project]:
    query = db.query(Project).options(
        selectinload(Project.tasks),
        selectinload(Project.tag_configurations),
    )
    if not include_inactive:
        query = query.filter(Project.is_active.is_(True))
    return query.order_by(Project.code).all()
