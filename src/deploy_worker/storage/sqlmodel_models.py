"""SQLModel ORM tables for the job store."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Column, DateTime, Index, Text
from sqlmodel import Field, SQLModel


class Deployment(SQLModel, table=True):
    __tablename__ = "deployments"  # type: ignore[bad-override]
    __table_args__ = (Index("idx_deployments_queue", "status", "created_at"),)

    id: str = Field(primary_key=True)
    user_id: str | None = Field(default=None, index=True)
    project_id: str | None = Field(default=None, index=True)
    repository_url: str
    branch: str | None = None
    stage: str | None = None
    status: str = Field(index=True)
    error_message: str | None = Field(default=None, sa_column=Column(Text))
    deployed_url: str | None = None
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
