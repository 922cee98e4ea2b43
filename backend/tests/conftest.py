from __future__ import annotations

import datetime as dt
import tempfile
from pathlib import Path
from typing import Callable, Dict, Generator, Iterable, Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session, sessionmaker

from timereport import models
from timereport.database import build_engine, get_db
from timereport.identity import IdentityContext
from timereport.main import app
from timereport.tokens import issue_identity_token

ALICE = "alice-oid"
BOB = "bob-oid"


@pytest.fixture(scope="session")
def temp_db_path() -> Generator[Path, None, None]:
    with tempfile.TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / "test.db"
        yield path


@pytest.fixture(scope="session")
def engine(temp_db_path: Path):
    engine = build_engine(f"sqlite:///{temp_db_path}")
    models.Base.metadata.create_all(bind=engine)
    return engine


@pytest.fixture(scope="function")
def session(engine) -> Generator[Session, None, None]:
    connection = engine.connect()
    transaction = connection.begin()
    SessionTesting = sessionmaker(bind=connection, autoflush=False, autocommit=False, future=True)
    session = SessionTesting()
    try:
        yield session
    finally:
        session.close()
        transaction.rollback()
        connection.close()


@pytest.fixture(scope="function")
def client(session: Session) -> Generator[TestClient, None, None]:
    def override_get_db():
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture()
def projects(session: Session) -> Dict[str, models.Project]:
    internal = models.Project(code="INTERNAL", name="Internal work", is_active=True)
    internal.tasks = [
        models.ProjectTask(name="Development", is_active=True),
        models.ProjectTask(name="Meetings", is_active=True),
        models.ProjectTask(name="Legacy", is_active=False),
    ]
    internal.tag_configurations = [
        models.TagConfiguration(tag_name="Type", allowed_values=["Feature", "Bug"]),
        models.TagConfiguration(tag_name="Billable", allowed_values=["Yes", "No"]),
        models.TagConfiguration(tag_name="Retired", allowed_values=["Old"], is_active=False),
    ]
    client_a = models.Project(code="CLIENT-A", name="Client A", is_active=True)
    client_a.tasks = [
        models.ProjectTask(name="Development", is_active=True),
        models.ProjectTask(name="Support", is_active=True),
    ]
    client_a.tag_configurations = [
        models.TagConfiguration(tag_name="Type", allowed_values=["Feature"]),
    ]
    archive = models.Project(code="ARCHIVE", name="Archived", is_active=False)
    archive.tasks = [models.ProjectTask(name="Development", is_active=True)]
    session.add_all([internal, client_a, archive])
    session.commit()
    return {"INTERNAL": internal, "CLIENT-A": client_a, "ARCHIVE": archive}


def token_for(user_id: str, acl: Iterable[str], **claims: object) -> str:
    payload: Dict[str, object] = {"sub": user_id, "acl": list(acl)}
    payload.update(claims)
    return issue_identity_token(payload)


@pytest.fixture()
def auth() -> Callable[..., Dict[str, str]]:
    def _headers(user_id: str, acl: Iterable[str] = (), **claims: object) -> Dict[str, str]:
        return {"Authorization": f"Bearer {token_for(user_id, acl, **claims)}"}

    return _headers


@pytest.fixture()
def identity() -> Callable[..., IdentityContext]:
    def _identity(user_id: Optional[str] = ALICE, *acl: str) -> IdentityContext:
        return IdentityContext(user_id=user_id, claims=tuple(acl))

    return _identity


@pytest.fixture()
def entry_payload() -> Dict[str, object]:
    return {
        "projectCode": "INTERNAL",
        "task": "Development",
        "standardHours": 7.5,
        "overtimeHours": 0,
        "startDate": dt.date(2025, 3, 3).isoformat(),
        "completionDate": dt.date(2025, 3, 3).isoformat(),
        "description": "Workflow engine",
        "issueId": "TR-42",
        "tags": [{"name": "Type", "value": "Feature"}],
    }
