"""Access-control entries carried in the identity token.

A claim looks like ``"Project/INTERNAL=V,A,M"``: a ``/``-delimited resource
path and the capability codes granted on it. Grants are inherited by child
paths, but the nearest ancestor that carries an entry governs: a grant on
``Project/INTERNAL`` that lacks ``A`` denies approval there even when
``Project`` grants it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import FrozenSet, Iterable, List, Optional, Union

logger = logging.getLogger(__name__)


class Capability:
    """Capability codes used in ACL claims."""

    VIEW = "V"
    EDIT = "E"
    APPROVE = "A"
    MANAGE = "M"
    TRACK = "T"

    ALL = (VIEW, EDIT, APPROVE, MANAGE, TRACK)


PATH_SEPARATOR = "/"


@dataclass(frozen=True)
class AccessEntry:
    path: str
    capabilities: FrozenSet[str]

    def grants(self, capability: str) -> bool:
        return capability.strip().upper() in self.capabilities


ClaimSource = Iterable[Union[str, AccessEntry]]


def project_path(project_code: str) -> str:
    return f"Project{PATH_SEPARATOR}{project_code}"


def parse_claim(value: object) -> Optional[AccessEntry]:
    """Parse a single ``Path=Cap1,Cap2`` claim; malformed values yield ``None``."""
    if not isinstance(value, str):
        return None
    path, sep, raw_caps = value.partition("=")
    path = path.strip()
    if not sep or not path:
        return None
    capabilities = frozenset(
        cap.strip().upper() for cap in raw_caps.split(",") if cap.strip()
    )
    return AccessEntry(path=path, capabilities=capabilities)


def parse_claims(values: ClaimSource) -> List[AccessEntry]:
    entries: List[AccessEntry] = []
    for value in values or ():
        if isinstance(value, AccessEntry):
            entries.append(value)
            continue
        entry = parse_claim(value)
        if entry is None:
            logger.debug("Skipping malformed ACL claim %r", value)
            continue
        entries.append(entry)
    return entries


def _find_entry(entries: List[AccessEntry], path: str) -> Optional[AccessEntry]:
    lowered = path.lower()
    for entry in entries:
        if entry.path.lower() == lowered:
            return entry
    return None


def governing_entry(claims: ClaimSource, resource_path: str) -> Optional[AccessEntry]:
    """Return the entry of the longest prefix of ``resource_path`` that has one."""
    if not resource_path:
        return None
    entries = parse_claims(claims)
    if not entries:
        return None
    segments = resource_path.strip(PATH_SEPARATOR).split(PATH_SEPARATOR)
    for i in range(len(segments), 0, -1):
        candidate = PATH_SEPARATOR.join(segments[:i])
        entry = _find_entry(entries, candidate)
        if entry is not None:
            return entry
    return None


def has_capability(claims: ClaimSource, resource_path: str, capability: str) -> bool:
    if not capability or not capability.strip():
        return False
    entry = governing_entry(claims, resource_path)
    if entry is None:
        return False
    return entry.grants(capability)


def has_any_capability(claims: ClaimSource, resource_path: str, *capabilities: str) -> bool:
    entries = parse_claims(claims)
    return any(has_capability(entries, resource_path, cap) for cap in capabilities)


def has_all_capabilities(claims: ClaimSource, resource_path: str, *capabilities: str) -> bool:
    entries = parse_claims(claims)
    if not capabilities:
        return False
    return all(has_capability(entries, resource_path, cap) for cap in capabilities)
