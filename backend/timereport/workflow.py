"""Time-entry workflow.

The whole transition table lives in ``TRANSITIONS``: which statuses a
transition may start from, where it leads, which capability it needs on the
entry's project path, how ownership counts, and the side effect it applies.

    NotReported --submit--> Submitted --approve--> Approved
                            Submitted --decline--> Declined
    Declined --edit--> NotReported
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any, Callable, Dict, FrozenSet, Optional

from .acl import Capability
from .errors import ConflictError
from .identity import IdentityContext
from .models import EntryStatus, TimeEntry, utcnow


class Transition(str, enum.Enum):
    CREATE = "create"
    EDIT = "edit"
    SUBMIT = "submit"
    APPROVE = "approve"
    DECLINE = "decline"
    MOVE = "move"
    DELETE = "delete"


Effect = Callable[[TimeEntry, Dict[str, Any]], None]


@dataclass(frozen=True)
class TransitionRule:
    transition: Transition
    allowed_from: FrozenSet[EntryStatus]
    target: Optional[EntryStatus]
    capability: str
    owner_substitutes: bool = False
    owner_required: bool = False
    effect: Optional[Effect] = None

    def authorizes(self, identity: IdentityContext, resource_path: str, is_owner: bool) -> bool:
        if self.owner_required and not is_owner:
            return False
        if self.owner_substitutes and is_owner:
            return True
        return identity.has_capability(resource_path, self.capability)


def _reopen_declined(entry: TimeEntry, params: Dict[str, Any]) -> None:
    if entry.status == EntryStatus.DECLINED.value:
        entry.decline_reason = None


def _record_decline(entry: TimeEntry, params: Dict[str, Any]) -> None:
    entry.decline_reason = params["comment"]


_EDITABLE = frozenset({EntryStatus.NOT_REPORTED, EntryStatus.DECLINED})
_OPEN = frozenset({EntryStatus.NOT_REPORTED})
_AWAITING_DECISION = frozenset({EntryStatus.SUBMITTED})

TRANSITIONS: Dict[Transition, TransitionRule] = {
    Transition.CREATE: TransitionRule(
        Transition.CREATE, frozenset(), EntryStatus.NOT_REPORTED, Capability.TRACK,
    ),
    Transition.EDIT: TransitionRule(
        Transition.EDIT, _EDITABLE, EntryStatus.NOT_REPORTED, Capability.EDIT,
        owner_substitutes=True, effect=_reopen_declined,
    ),
    Transition.SUBMIT: TransitionRule(
        Transition.SUBMIT, _OPEN, EntryStatus.SUBMITTED, Capability.TRACK,
        owner_required=True,
    ),
    Transition.APPROVE: TransitionRule(
        Transition.APPROVE, _AWAITING_DECISION, EntryStatus.APPROVED, Capability.APPROVE,
    ),
    Transition.DECLINE: TransitionRule(
        Transition.DECLINE, _AWAITING_DECISION, EntryStatus.DECLINED, Capability.APPROVE,
        effect=_record_decline,
    ),
    Transition.MOVE: TransitionRule(
        Transition.MOVE, _OPEN, EntryStatus.NOT_REPORTED, Capability.EDIT,
        owner_substitutes=True,
    ),
    Transition.DELETE: TransitionRule(
        Transition.DELETE, _OPEN, None, Capability.MANAGE,
        owner_substitutes=True,
    ),
}

# Capability the mover needs on the destination project.
MOVE_TARGET_CAPABILITY = Capability.TRACK


def rule_for(transition: Transition) -> TransitionRule:
    return TRANSITIONS[transition]


def required_capability(transition: Transition) -> str:
    return TRANSITIONS[transition].capability


def allowed_transitions(status: EntryStatus) -> list[Transition]:
    return [rule.transition for rule in TRANSITIONS.values() if status in rule.allowed_from]


def check_transition(transition: Transition, current: EntryStatus | str) -> None:
    rule = TRANSITIONS[transition]
    if transition is Transition.CREATE:
        return
    status = EntryStatus(current)
    if status in rule.allowed_from:
        return
    expected = sorted(state.value for state in rule.allowed_from)
    if status is EntryStatus.APPROVED:
        message = (
            f"Cannot {transition.value} time entry in {status.value} status. "
            "Approved entries are immutable."
        )
    else:
        message = (
            f"Cannot {transition.value} time entry in {status.value} status. "
            f"Expected status: {', '.join(expected)}"
        )
    raise ConflictError(message, status.value, expected)


def apply_transition(entry: TimeEntry, transition: Transition, **params: Any) -> TimeEntry:
    """Guard and apply ``transition`` to ``entry`` in place."""
    rule = TRANSITIONS[transition]
    if transition is not Transition.CREATE:
        check_transition(transition, entry.status)
    if rule.effect is not None:
        rule.effect(entry, params)
    if rule.target is not None:
        entry.status = rule.target.value
    entry.updated_at = utcnow()
    return entry
