"""The authenticated actor, passed explicitly into every service call."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from fastapi import Request

from . import acl
from .config import settings
from .errors import UnauthenticatedError


def _first_claim(claims: Dict[str, Any], *names: str) -> Optional[str]:
    for name in names:
        value = claims.get(name)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def _acl_values(raw: Any) -> Tuple[str, ...]:
    if raw is None:
        return ()
    if isinstance(raw, str):
        return (raw,)
    if isinstance(raw, (list, tuple)):
        return tuple(value for value in raw if isinstance(value, str))
    return ()


@dataclass(frozen=True)
class IdentityContext:
    user_id: Optional[str]
    email: Optional[str] = None
    name: Optional[str] = None
    claims: Tuple[str, ...] = field(default_factory=tuple)

    def access_entries(self) -> List[acl.AccessEntry]:
        return acl.parse_claims(self.claims)

    def has_capability(self, resource_path: str, capability: str) -> bool:
        return acl.has_capability(self.claims, resource_path, capability)

    def has_any_capability(self, resource_path: str, *capabilities: str) -> bool:
        return acl.has_any_capability(self.claims, resource_path, *capabilities)

    def has_all_capabilities(self, resource_path: str, *capabilities: str) -> bool:
        return acl.has_all_capabilities(self.claims, resource_path, *capabilities)

    def owns(self, owner_id: Optional[str]) -> bool:
        return bool(self.user_id) and owner_id == self.user_id


def _display_name(claims: Dict[str, Any]) -> Optional[str]:
    name = _first_claim(claims, "name", "preferred_username")
    if name:
        return name
    parts = [_first_claim(claims, "given_name"), _first_claim(claims, "family_name")]
    joined = " ".join(part for part in parts if part)
    return joined or None


def identity_from_claims(claims: Dict[str, Any], acl_claim: Optional[str] = None) -> IdentityContext:
    claim_name = acl_claim or settings.acl_claim
    return IdentityContext(
        user_id=_first_claim(claims, "oid", "sub"),
        email=_first_claim(claims, "email"),
        name=_display_name(claims),
        claims=_acl_values(claims.get(claim_name)),
    )


def get_identity(request: Request) -> IdentityContext:
    identity = getattr(request.state, "identity", None)
    if identity is None:
        raise UnauthenticatedError("Authentication required")
    return identity
