from __future__ import annotations

import base64
import datetime as dt
import hashlib
import hmac
import json
from typing import Any, Dict, Optional

from .config import settings


def _now() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def _b64encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode("utf-8").rstrip("=")


def _b64decode(value: str) -> bytes:
    padding = "=" * (-len(value) % 4)
    return base64.urlsafe_b64decode(value + padding)


def token_signature(body: str, secret: Optional[str] = None) -> str:
    key = (secret if secret is not None else settings.token_secret).encode()
    digest = hmac.new(key, msg=body.encode(), digestmod=hashlib.sha256)
    return digest.hexdigest()


def issue_identity_token(
    claims: Dict[str, Any],
    ttl_minutes: Optional[int] = None,
    secret: Optional[str] = None,
) -> str:
    payload = dict(claims)
    if ttl_minutes:
        expires_at = _now() + dt.timedelta(minutes=ttl_minutes)
        payload["exp"] = int(expires_at.timestamp())
    body = _b64encode(json.dumps(payload, separators=(",", ":"), sort_keys=True).encode("utf-8"))
    return f"{body}.{token_signature(body, secret)}"


def decode_identity_token(token: str, secret: Optional[str] = None) -> Optional[Dict[str, Any]]:
    """Return the claims of a valid token, or ``None`` if it is malformed, forged or expired."""
    if not token or token.count(".") != 1:
        return None
    body, signature = token.split(".", 1)
    if not (body.isascii() and signature.isascii()):
        return None
    expected = token_signature(body, secret)
    if not hmac.compare_digest(expected, signature):
        return None
    try:
        payload = json.loads(_b64decode(body))
    except ValueError:
        return None
    if not isinstance(payload, dict):
        return None
    expires = payload.get("exp")
    if expires is not None:
        try:
            expires_at = dt.datetime.fromtimestamp(int(expires), tz=dt.timezone.utc)
        except (TypeError, ValueError, OverflowError):
            return None
        if expires_at < _now():
            return None
    return payload
