from __future__ import annotations

import datetime as dt
import enum
import uuid

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.sqlite import JSON as SQLiteJSON
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


def utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def new_entry_id() -> str:
    return str(uuid.uuid4())


class EntryStatus(str, enum.Enum):
    NOT_REPORTED = "NotReported"
    SUBMITTED = "Submitted"
    APPROVED = "Approved"
    DECLINED = "Declined"


class Project(Base):
    __tablename__ = "projects"

    code = Column(String(10), primary_key=True)
    name = Column(String(200), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    tasks = relationship(
        "ProjectTask",
        back_populates="project",
        cascade="all, delete-orphan",
        order_by="ProjectTask.name",
    )
    tag_configurations = relationship(
        "TagConfiguration",
        back_populates="project",
        cascade="all, delete-orphan",
        order_by="TagConfiguration.tag_name",
    )

    def find_task(self, name: str) -> "ProjectTask | None":
        for task in self.tasks:
            if task.name == name:
                return task
        return None

    def allowed_tag_values(self) -> dict[str, list[str]]:
        return {
            config.tag_name: list(config.allowed_values or [])
            for config in self.tag_configurations
            if config.is_active
        }


class ProjectTask(Base):
    __tablename__ = "project_tasks"
    __table_args__ = (UniqueConstraint("project_code", "name", name="uq_project_task_name"),)

    id = Column(Integer, primary_key=True)
    project_code = Column(String(10), ForeignKey("projects.code", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)

    project = relationship("Project", back_populates="tasks")


class TagConfiguration(Base):
    __tablename__ = "tag_configurations"
    __table_args__ = (UniqueConstraint("project_code", "tag_name", name="uq_project_tag_name"),)

    id = Column(Integer, primary_key=True)
    project_code = Column(String(10), ForeignKey("projects.code", ondelete="CASCADE"), nullable=False, index=True)
    tag_name = Column(String(20), nullable=False)
    allowed_values = Column(SQLiteJSON, nullable=False, default=list)
    is_active = Column(Boolean, nullable=False, default=True)

    project = relationship("Project", back_populates="tag_configurations")


class TimeEntry(Base):
    __tablename__ = "time_entries"

    id = Column(String(36), primary_key=True, default=new_entry_id)
    project_code = Column(String(10), ForeignKey("projects.code"), nullable=False, index=True)
    task_id = Column(Integer, ForeignKey("project_tasks.id"), nullable=False)
    standard_hours = Column(Numeric(10, 2), nullable=False, default=0)
    overtime_hours = Column(Numeric(10, 2), nullable=False, default=0)
    start_date = Column(Date, nullable=False)
    completion_date = Column(Date, nullable=False)
    description = Column(Text, nullable=True)
    issue_id = Column(String(30), nullable=True)
    tags = Column(SQLiteJSON, nullable=False, default=list)
    status = Column(String(20), nullable=False, default=EntryStatus.NOT_REPORTED.value, index=True)
    decline_reason = Column(Text, nullable=True)
    owner_id = Column(String(100), nullable=True, index=True)
    owner_email = Column(String(255), nullable=True)
    owner_name = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    project = relationship("Project")
    task = relationship("ProjectTask")

    @property
    def task_name(self) -> str | None:
        return self.task.name if self.task is not None else None
