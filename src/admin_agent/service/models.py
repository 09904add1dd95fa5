"""Data models for service layer."""

from typing import Any

from pydantic import BaseModel, Field
from sqlalchemy import JSON, Column, DateTime, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import declarative_base

Base = declarative_base()

# JSONB on Postgres, plain JSON elsewhere (SQLite for local runs and tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


# ============================================================================
# Pydantic Models (API/Validation)
# ============================================================================


class ChatRequest(BaseModel):
    """Trigger request: one operator message."""

    message: str = Field(..., min_length=1)
    thread_id: str | None = None
    resource_id: str | None = None
    context: dict[str, Any] = Field(default_factory=dict)


class ResumeRequest(BaseModel):
    """Resume request for a suspended run."""

    step: str | None = None
    resume_data: dict[str, Any] = Field(default_factory=dict)


# ============================================================================
# SQLAlchemy Models (Database)
# ============================================================================


class RunModel(Base):
    """SQLAlchemy model for the agent_runs table.

    `state` holds RunState.model_dump(mode="json"); status and timestamps are
    duplicated into columns for filtering.
    """

    __tablename__ = "agent_runs"

    run_id = Column(String(64), primary_key=True)
    mode = Column(String(16), nullable=False)
    status = Column(String(16), nullable=False, index=True)
    state = Column(JSONType, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False, index=True)
