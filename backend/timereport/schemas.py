from __future__ import annotations

import datetime as dt
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer
from pydantic.alias_generators import to_camel

from .models import EntryStatus


def _serialize_datetime(value: dt.datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=dt.timezone.utc)
    else:
        value = value.astimezone(dt.timezone.utc)
    return value.isoformat()


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class TagInput(CamelModel):
    name: str
    value: str


class TagResponse(CamelModel):
    name: str
    value: str


class LogTimeRequest(CamelModel):
    project_code: str
    task: str
    standard_hours: Decimal
    overtime_hours: Decimal = Decimal("0")
    start_date: dt.date
    completion_date: dt.date
    description: Optional[str] = None
    issue_id: Optional[str] = None
    tags: List[TagInput] = Field(default_factory=list)


class UpdateTimeEntryRequest(CamelModel):
    task: Optional[str] = None
    standard_hours: Optional[Decimal] = None
    overtime_hours: Optional[Decimal] = None
    start_date: Optional[dt.date] = None
    completion_date: Optional[dt.date] = None
    description: Optional[str] = None
    issue_id: Optional[str] = None
    tags: Optional[List[TagInput]] = None


class UpdateTagsRequest(CamelModel):
    tags: List[TagInput] = Field(default_factory=list)


class DeclineRequest(CamelModel):
    comment: Optional[str] = None


class MoveRequest(CamelModel):
    project_code: str
    task: str


class TimeEntryResponse(CamelModel):
    model_config = ConfigDict(from_attributes=True, alias_generator=to_camel, populate_by_name=True)
    id: str
    project_code: str
    task: str = Field(validation_alias="task_name")
    standard_hours: Decimal
    overtime_hours: Decimal
    start_date: dt.date
    completion_date: dt.date
    description: Optional[str] = None
    issue_id: Optional[str] = None
    tags: List[TagResponse] = Field(default_factory=list)
    status: EntryStatus
    decline_reason: Optional[str] = None
    owner_id: Optional[str] = None
    owner_email: Optional[str] = None
    owner_name: Optional[str] = None
    created_at: dt.datetime
    updated_at: dt.datetime

    @field_serializer("standard_hours", "overtime_hours")
    def _serialize_hours(self, value: Decimal) -> float:
        return float(value)

    @field_serializer("created_at", "updated_at")
    def _serialize_timestamps(self, value: dt.datetime) -> str:
        return _serialize_datetime(value)


class MoveResponse(CamelModel):
    entry: TimeEntryResponse
    dropped_tags: List[TagResponse] = Field(default_factory=list)


class DeleteResponse(CamelModel):
    deleted: bool


class ProjectTaskResponse(CamelModel):
    model_config = ConfigDict(from_attributes=True, alias_generator=to_camel, populate_by_name=True)
    id: int
    name: str
    is_active: bool


class TagConfigurationResponse(CamelModel):
    model_config = ConfigDict(from_attributes=True, alias_generator=to_camel, populate_by_name=True)
    id: int
    tag_name: str
    allowed_values: List[str]
    is_active: bool


class ProjectResponse(CamelModel):
    model_config = ConfigDict(from_attributes=True, alias_generator=to_camel, populate_by_name=True)
    code: str
    name: str
    is_active: bool
    tasks: List[ProjectTaskResponse] = Field(default_factory=list)
    tag_configurations: List[TagConfigurationResponse] = Field(default_factory=list)


class AccessEntryResponse(CamelModel):
    path: str
    capabilities: List[str]


class IdentityResponse(CamelModel):
    user_id: Optional[str]
    email: Optional[str] = None
    name: Optional[str] = None
    access: List[AccessEntryResponse] = Field(default_factory=list)


class ErrorResponse(BaseModel):
    error: str
    code: str
    details: Dict[str, Any] = Field(default_factory=dict)
