from __future__ import annotations

from timereport.identity import identity_from_claims
from timereport.tokens import decode_identity_token, issue_identity_token, token_signature


def test_issued_token_decodes_to_its_claims() -> None:
    token = issue_identity_token({"sub": "alice", "acl": ["Project/INTERNAL=T"]})
    claims = decode_identity_token(token)
    assert claims == {"sub": "alice", "acl": ["Project/INTERNAL=T"]}


def test_tampered_token_is_rejected() -> None:
    token = issue_identity_token({"sub": "alice", "acl": ["Project/INTERNAL=T"]})
    forged = issue_identity_token({"sub": "alice", "acl": ["Project=A,M"]}, secret="other-secret")
    body, _ = forged.split(".")
    _, signature = token.split(".")
    assert decode_identity_token(f"{body}.{signature}") is None
    assert decode_identity_token(forged) is None


def test_expired_token_is_rejected() -> None:
    token = issue_identity_token({"sub": "alice"}, ttl_minutes=-5)
    assert decode_identity_token(token) is None


def test_token_with_future_expiry_is_accepted() -> None:
    token = issue_identity_token({"sub": "alice"}, ttl_minutes=5)
    claims = decode_identity_token(token)
    assert claims is not None
    assert claims["sub"] == "alice"
    assert "exp" in claims


def test_garbage_tokens_are_rejected() -> None:
    assert decode_identity_token("") is None
    assert decode_identity_token("not-a-token") is None
    assert decode_identity_token("a.b.c") is None


def test_identity_prefers_object_id_over_subject() -> None:
    identity = identity_from_claims({"oid": "object-id", "sub": "subject", "acl": ["Project=V"]})
    assert identity.user_id == "object-id"
    assert identity.claims == ("Project=V",)


def test_identity_name_falls_back_to_given_and_family_name() -> None:
    identity = identity_from_claims({"sub": "x", "given_name": "Ada", "family_name": "Lovelace"})
    assert identity.name == "Ada Lovelace"
    assert identity_from_claims({"sub": "x", "preferred_username": "ada@example.com"}).name == "ada@example.com"


def test_identity_accepts_single_string_acl_claim() -> None:
    identity = identity_from_claims({"sub": "x", "acl": "Project/INTERNAL=A"})
    assert identity.has_capability("Project/INTERNAL", "A")
    assert not identity.has_capability("Project/CLIENT-A", "A")


def test_identity_ignores_non_string_acl_values() -> None:
    identity = identity_from_claims({"sub": "x", "acl": ["Project=V", 7, None]})
    assert identity.claims == ("Project=V",)
    assert identity_from_claims({"sub": "x", "acl": {"Project": "V"}}).claims == ()


def test_non_ascii_tokens_are_rejected() -> None:
    token = issue_identity_token({"sub": "alice"})
    body, _ = token.split(".")
    assert decode_identity_token("x.é") is None
    assert decode_identity_token(f"{body}.é") is None
    assert decode_identity_token(f"é{body}.{token_signature('é' + body)}") is None
