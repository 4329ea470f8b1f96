"""Job schemas."""
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from tradiepay.models.job import JobStatus


class JobCreate(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    tradie_id: int


class JobAssign(BaseModel):
    helper_id: int


class JobRead(BaseModel):
    id: int
    title: str
    tradie_id: int
    assigned_helper_id: int | None
    status: JobStatus
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)
