"""Change events recorded by State for the persistence adapter.

State appends one event per successful mutation, in order. The log is a
notification for storage only; State never reads it back.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Union

from models import ProjectId, WorkSliceId
from payment import Payment


@dataclass(frozen=True)
class ProjectCreated:
    name: str
    description: str
    id: ProjectId


@dataclass(frozen=True)
class ProjectDeleted:
    id: ProjectId


@dataclass(frozen=True)
class WorkSliceStarted:
    project_id: ProjectId
    work_slice_id: WorkSliceId
    start_time: datetime
    payment: Payment


@dataclass(frozen=True)
class WorkSliceCompleted:
    project_id: ProjectId
    work_slice_id: WorkSliceId
    end_time: datetime


@dataclass(frozen=True)
class WorkSliceDeleted:
    project_id: ProjectId
    work_slice_id: WorkSliceId


Change = Union[
    ProjectCreated,
    ProjectDeleted,
    WorkSliceStarted,
    WorkSliceCompleted,
    WorkSliceDeleted,
]
