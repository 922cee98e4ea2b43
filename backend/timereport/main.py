from __future__ import annotations

import logging
from typing import Optional

from fastapi import Depends, FastAPI, Query, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from . import models
from .config import settings
from .database import TRANSIENT_ERRORS, engine, get_db
from .errors import ErrorCodes, TimeReportError, TransientError
from .identity import IdentityContext, get_identity
from .middleware import BearerAuthMiddleware
from .models import EntryStatus
from .schemas import (
    AccessEntryResponse,
    DeclineRequest,
    DeleteResponse,
    ErrorResponse,
    IdentityResponse,
    LogTimeRequest,
    MoveRequest,
    MoveResponse,
    ProjectResponse,
    TimeEntryResponse,
    UpdateTagsRequest,
    UpdateTimeEntryRequest,
)
from .services import (
    approve_entry,
    create_entry,
    decline_entry,
    delete_entry,
    get_entry,
    list_entries,
    list_projects,
    move_entry,
    submit_entry,
    update_entry,
    update_tags,
)

logger = logging.getLogger(__name__)

models.Base.metadata.create_all(bind=engine)

app = FastAPI(title=settings.app_name)
app.add_middleware(BearerAuthMiddleware)


@app.exception_handler(TimeReportError)
async def time_report_error_handler(request: Request, exc: TimeReportError) -> JSONResponse:
    return JSONResponse(exc.to_dict(), status_code=exc.status_code)


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    fields = []
    for error in exc.errors():
        location = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
        if location and location[0] not in fields:
            fields.append(location[0])
    body = ErrorResponse(
        error="Request validation failed",
        code=ErrorCodes.VALIDATION_ERROR,
        details={"fields": fields},
    )
    return JSONResponse(body.model_dump(), status_code=status.HTTP_400_BAD_REQUEST)


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    if isinstance(exc, TRANSIENT_ERRORS):
        error: TimeReportError = TransientError("The storage backend is temporarily unavailable; retry the request")
        return JSONResponse(error.to_dict(), status_code=error.status_code)
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    body = ErrorResponse(error="An unexpected error occurred", code=ErrorCodes.INTERNAL_ERROR)
    return JSONResponse(body.model_dump(), status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)


@app.get("/healthz")
def healthz() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/me", response_model=IdentityResponse)
def whoami(identity: IdentityContext = Depends(get_identity)) -> IdentityResponse:
    return IdentityResponse(
        user_id=identity.user_id,
        email=identity.email,
        name=identity.name,
        access=[
            AccessEntryResponse(path=entry.path, capabilities=sorted(entry.capabilities))
            for entry in identity.access_entries()
        ],
    )


@app.get("/projects", response_model=list[ProjectResponse], dependencies=[Depends(get_identity)])
def get_projects(
    include_inactive: bool = Query(False, alias="includeInactive"),
    db: Session = Depends(get_db),
) -> list[ProjectResponse]:
    return [ProjectResponse.model_validate(project) for project in list_projects(db, include_inactive)]


@app.get("/entries", response_model=list[TimeEntryResponse])
def get_entries(
    project_code: Optional[str] = Query(None, alias="projectCode"),
    status: Optional[EntryStatus] = None,
    mine: bool = False,
    limit: Optional[int] = None,
    offset: int = 0,
    identity: IdentityContext = Depends(get_identity),
    db: Session = Depends(get_db),
) -> list[TimeEntryResponse]:
    entries = list_entries(db, identity, project_code, status, mine, limit, offset)
    return [TimeEntryResponse.model_validate(entry) for entry in entries]


@app.get("/entries/{entry_id}", response_model=TimeEntryResponse)
def get_time_entry(
    entry_id: str,
    identity: IdentityContext = Depends(get_identity),
    db: Session = Depends(get_db),
) -> TimeEntryResponse:
    return TimeEntryResponse.model_validate(get_entry(db, identity, entry_id))


@app.post("/entries", response_model=TimeEntryResponse, status_code=status.HTTP_201_CREATED)
def log_time(
    payload: LogTimeRequest,
    identity: IdentityContext = Depends(get_identity),
    db: Session = Depends(get_db),
) -> TimeEntryResponse:
    entry = create_entry(db, identity, payload.model_dump())
    return TimeEntryResponse.model_validate(entry)


@app.patch("/entries/{entry_id}", response_model=TimeEntryResponse)
def update_time_entry(
    entry_id: str,
    payload: UpdateTimeEntryRequest,
    identity: IdentityContext = Depends(get_identity),
    db: Session = Depends(get_db),
) -> TimeEntryResponse:
    changes = payload.model_dump(exclude_unset=True)
    entry = update_entry(db, identity, entry_id, changes)
    return TimeEntryResponse.model_validate(entry)


@app.put("/entries/{entry_id}/tags", response_model=TimeEntryResponse)
def replace_entry_tags(
    entry_id: str,
    payload: UpdateTagsRequest,
    identity: IdentityContext = Depends(get_identity),
    db: Session = Depends(get_db),
) -> TimeEntryResponse:
    entry = update_tags(db, identity, entry_id, [tag.model_dump() for tag in payload.tags])
    return TimeEntryResponse.model_validate(entry)


@app.post("/entries/{entry_id}/submit", response_model=TimeEntryResponse)
def submit_time_entry(
    entry_id: str,
    identity: IdentityContext = Depends(get_identity),
    db: Session = Depends(get_db),
) -> TimeEntryResponse:
    return TimeEntryResponse.model_validate(submit_entry(db, identity, entry_id))


@app.post("/entries/{entry_id}/approve", response_model=TimeEntryResponse)
def approve_time_entry(
    entry_id: str,
    identity: IdentityContext = Depends(get_identity),
    db: Session = Depends(get_db),
) -> TimeEntryResponse:
    return TimeEntryResponse.model_validate(approve_entry(db, identity, entry_id))


@app.post("/entries/{entry_id}/decline", response_model=TimeEntryResponse)
def decline_time_entry(
    entry_id: str,
    payload: DeclineRequest,
    identity: IdentityContext = Depends(get_identity),
    db: Session = Depends(get_db),
) -> TimeEntryResponse:
    return TimeEntryResponse.model_validate(decline_entry(db, identity, entry_id, payload.comment))


@app.post("/entries/{entry_id}/move", response_model=MoveResponse)
def move_time_entry(
    entry_id: str,
    payload: MoveRequest,
    identity: IdentityContext = Depends(get_identity),
    db: Session = Depends(get_db),
) -> MoveResponse:
    result = move_entry(db, identity, entry_id, payload.project_code, payload.task)
    return MoveResponse(
        entry=TimeEntryResponse.model_validate(result.entry),
        dropped_tags=result.dropped_tags,
    )


@app.delete("/entries/{entry_id}", response_model=DeleteResponse)
def delete_time_entry(
    entry_id: str,
    identity: IdentityContext = Depends(get_identity),
    db: Session = Depends(get_db),
) -> DeleteResponse:
    return DeleteResponse(deleted=delete_entry(db, identity, entry_id))
