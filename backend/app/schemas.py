from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from .models import DeletionJobStatus


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class TribeSummary(BaseModel):
    id: str
    owner: str
    cover_url: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class EventSummary(BaseModel):
    id: str
    tribe_id: str
    banner_url: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class DeleteTribeRequest(CamelModel):
    tribe_id: Optional[str] = None
    dry_run: bool = False

    @field_validator("tribe_id", mode="before")
    @classmethod
    def blank_to_none(cls, value):
        if isinstance(value, str):
            value = value.strip()
            return value or None
        return value


class PlannedDeletionJob(CamelModel):
    tribe_id: str
    event_id: Optional[str] = None
    bucket: str
    object_path: str
    status: DeletionJobStatus = DeletionJobStatus.pending
    created_by: Optional[str] = None


class DeletionJobResponse(CamelModel):
    id: int
    tribe_id: str
    event_id: Optional[str] = None
    bucket: str
    object_path: str
    status: DeletionJobStatus
    attempts: int
    last_error: Optional[str] = None
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class EnqueueDeletionResponse(CamelModel):
    ok: bool = True
    dry_run: bool = False
    planned: int
    inserted: int
    removals_by_bucket: Optional[dict[str, list[str]]] = None
    planned_jobs: Optional[list[PlannedDeletionJob]] = None
    jobs: Optional[list[DeletionJobResponse]] = None


class DirectDeleteResponse(CamelModel):
    ok: bool = True
    tribe_id: str
    files_deleted: int
    events_processed: int
    buckets_failed: list[str] = Field(default_factory=list)


class DeletionJobListResponse(CamelModel):
    tribe_id: str
    counts: dict[str, int]
    items: list[DeletionJobResponse]


class GeocodeRequest(BaseModel):
    location: Optional[Any] = None
