"""Payload models for collaborator services.

Collaborators speak camelCase JSON; these models accept either form and
expose snake_case attributes.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _UpstreamModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class Submission(_UpstreamModel):
    id: str = Field(min_length=1)
    writer_id: str = Field(min_length=1)
    competition_id: str = Field(min_length=1)
    project_id: str = Field(min_length=1)
    status: str = "pending"
    created_at: AwareDatetime
    updated_at: AwareDatetime


class Placement(_UpstreamModel):
    id: str = Field(min_length=1)
    submission_id: str = Field(min_length=1)
    status: str
    verification_state: str = "pending"
    created_at: AwareDatetime
    updated_at: AwareDatetime


class Competition(_UpstreamModel):
    id: str = Field(min_length=1)
    title: str = Field(min_length=1)
    format: str | None = None
    genre: str | None = None


class ProjectOwner(_UpstreamModel):
    owner_user_id: str = Field(min_length=1)


class NotificationEvent(_UpstreamModel):
    event_id: str
    event_type: str
    occurred_at: datetime
    actor_user_id: str | None = None
    target_user_id: str
    resource_type: str
    resource_id: str
    payload: dict[str, Any] = {}
