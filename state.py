"""The State aggregate: every project, id allocation and the change log."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable

import structlog

from changes import (
    Change,
    ProjectCreated,
    ProjectDeleted,
    WorkSliceCompleted,
    WorkSliceDeleted,
    WorkSliceStarted,
)
from errors import (
    DuplicateProjectId,
    DuplicateWorkSliceId,
    IdSpaceExhausted,
    InvalidProjectId,
    NaiveTimestamp,
    ProjectLoadError,
    ProjectNotFound,
    TrackWorkError,
    WorkSliceNotFound,
)
from models import (
    Clock,
    CompleteWorkSlice,
    IncompleteWorkSlice,
    Project,
    ProjectId,
    WorkSlice,
    WorkSliceId,
)
from payment import Payment
from utils import utc_now

log = structlog.get_logger("track_work.state")

MAX_ID = 2**64 - 1


def _require_aware(time: datetime) -> None:
    if time.tzinfo is None or time.utcoffset() is None:
        raise NaiveTimestamp(f"Timestamp has no timezone: {time.isoformat()}")


# --- Snapshot records ---


@dataclass
class IncompleteWorkSliceData:
    start: datetime
    payment: Payment
    id: int


@dataclass
class CompleteWorkSliceData:
    start: datetime
    end: datetime
    payment: Payment
    id: int


@dataclass
class ProjectData:
    """A persisted project as handed over by a loader. Not trusted."""

    name: str
    description: str
    id: int
    work_slices: list[CompleteWorkSliceData] = field(default_factory=list)
    current_slice: IncompleteWorkSliceData | None = None

    @classmethod
    def from_project(cls, project: Project) -> ProjectData:
        current = project.current_work_slice
        return cls(
            name=project.name,
            description=project.description,
            id=project.id.value,
            work_slices=[
                CompleteWorkSliceData(s.start, s.end, s.payment, s.id.value)
                for s in project.complete_work_slices()
            ],
            current_slice=(
                IncompleteWorkSliceData(current.start, current.payment, current.id.value)
                if current
                else None
            ),
        )

    def into_project(self, now: datetime) -> Project:
        """Rebuild the project, re-checking every work slice invariant."""
        work_slices = [
            IncompleteWorkSlice.create(
                data.start, data.payment, WorkSliceId(data.id), now=now
            ).complete(data.end)
            for data in self.work_slices
        ]
        current = None
        if self.current_slice is not None:
            current = IncompleteWorkSlice.create(
                self.current_slice.start,
                self.current_slice.payment,
                WorkSliceId(self.current_slice.id),
                now=now,
            )
        return Project(self.name, self.description, ProjectId(self.id), work_slices, current)


class State:
    """Creates, modifies and deletes projects.

    Every successful mutation appends one Change to an internal buffer which
    the persistence adapter empties with ``drain_changes``. Failed operations
    leave both the projects and the buffer untouched.
    """

    def __init__(self, initial_data: Iterable[ProjectData] = (), clock: Clock = utc_now):
        self._clock = clock
        now = clock()

        projects: list[Project] = []
        for data in initial_data:
            try:
                projects.append(data.into_project(now))
            except (TrackWorkError, ValueError, TypeError) as exc:
                raise ProjectLoadError(f"Project {data.id} could not be loaded: {exc}") from exc

        seen_projects: set[ProjectId] = set()
        for project in projects:
            if project.id in seen_projects:
                raise DuplicateProjectId(f"Project id {project.id} appears more than once")
            seen_projects.add(project.id)

        seen_slices: set[WorkSliceId] = set()
        for project in projects:
            for work_slice_id in project.work_slice_ids():
                if work_slice_id in seen_slices:
                    raise DuplicateWorkSliceId(
                        f"Work slice id {work_slice_id} appears more than once"
                    )
                seen_slices.add(work_slice_id)

        self._last_project_id = max((p.value for p in seen_projects), default=0)
        self._last_work_slice_id = max((s.value for s in seen_slices), default=0)
        self._projects: dict[ProjectId, Project] = {p.id: p for p in projects}
        self._changes: list[Change] = []

        log.debug(
            "state.loaded",
            projects=len(self._projects),
            work_slices=len(seen_slices),
        )

    def now(self) -> datetime:
        """Read the clock this State compares start and end times against."""
        return self._clock()

    # --- Id allocation ---

    def _new_project_id(self) -> ProjectId:
        if self._last_project_id >= MAX_ID:
            raise IdSpaceExhausted("No project ids left")
        self._last_project_id += 1
        return ProjectId(self._last_project_id)

    def _peek_work_slice_id(self) -> WorkSliceId:
        if self._last_work_slice_id >= MAX_ID:
            raise IdSpaceExhausted("No work slice ids left")
        return WorkSliceId(self._last_work_slice_id + 1)

    def _record(self, change: Change) -> None:
        self._changes.append(change)
        log.debug("state.change", change=type(change).__name__)

    # --- Queries ---

    def all_project_ids(self) -> list[ProjectId]:
        return list(self._projects)

    def all_projects(self) -> tuple[Project, ...]:
        return tuple(self._projects.values())

    def project_from_id(self, id: ProjectId) -> Project | None:
        """The project with ``id``, or None if it never existed or was deleted."""
        return self._projects.get(id)

    def project_exists(self, id: ProjectId) -> bool:
        return id in self._projects

    def project_id_from_work_slice(self, work_slice_id: WorkSliceId) -> ProjectId | None:
        for project in self._projects.values():
            if project.work_slice_from_id(work_slice_id) is not None:
                return project.id
        return None

    def work_slice_from_id(self, id: WorkSliceId) -> WorkSlice | None:
        for project in self._projects.values():
            work_slice = project.work_slice_from_id(id)
            if work_slice is not None:
                return work_slice
        return None

    def snapshot(self) -> list[ProjectData]:
        """Every project as snapshot records, for sinks writing a full copy."""
        return [ProjectData.from_project(p) for p in self._projects.values()]

    # --- Mutations ---

    def new_project(self, name: str, description: str) -> ProjectId:
        """Create an empty project and return its id."""
        id = self._new_project_id()
        self._projects[id] = Project(name, description, id)
        self._record(ProjectCreated(name=name, description=description, id=id))
        log.info("project.created", project_id=id.value, name=name)
        return id

    def start_work(self, project_id: ProjectId, payment: Payment, time: datetime) -> WorkSliceId:
        """Open a work slice on a project starting at ``time``.

        Raises InvalidProjectId, NaiveTimestamp, InvalidStartTime or
        AlreadyStarted. A work slice id is only used up when the slice is
        actually opened.
        """
        project = self._projects.get(project_id)
        if project is None:
            raise InvalidProjectId(f"No project with id {project_id}")
        _require_aware(time)
        now = self._clock()
        work_slice_id = self._peek_work_slice_id()
        work_slice = IncompleteWorkSlice.create(time, payment, work_slice_id, now=now)
        project.start_work(work_slice, now=now)
        self._last_work_slice_id = work_slice_id.value
        self._record(
            WorkSliceStarted(
                project_id=project_id,
                work_slice_id=work_slice_id,
                start_time=time,
                payment=payment,
            )
        )
        log.info("work.started", project_id=project_id.value, work_slice_id=work_slice_id.value)
        return work_slice_id

    def start_work_now(self, project_id: ProjectId, payment: Payment) -> WorkSliceId:
        return self.start_work(project_id, payment, self._clock())

    def end_work(self, project_id: ProjectId, time: datetime) -> CompleteWorkSlice:
        """Close the open work slice of a project at ``time``.

        Raises InvalidProjectId, NaiveTimestamp, NoWorkToComplete or
        EndTimeTooEarly.
        """
        project = self._projects.get(project_id)
        if project is None:
            raise InvalidProjectId(f"No project with id {project_id}")
        _require_aware(time)
        completed = project.complete_work(time)
        self._record(
            WorkSliceCompleted(
                project_id=project_id,
                work_slice_id=completed.id,
                end_time=time,
            )
        )
        log.info("work.completed", project_id=project_id.value, work_slice_id=completed.id.value)
        return completed

    def end_work_now(self, project_id: ProjectId) -> CompleteWorkSlice:
        # Can still raise EndTimeTooEarly if the clock has not moved since the start.
        return self.end_work(project_id, self._clock())

    def delete_project(self, id: ProjectId) -> Project:
        """Remove a project with all of its work slices."""
        project = self._projects.pop(id, None)
        if project is None:
            raise InvalidProjectId(f"No project with id {id}")
        self._record(ProjectDeleted(id=id))
        log.info("project.deleted", project_id=id.value)
        return project

    def delete_work_slice_from_project(
        self, project_id: ProjectId, work_slice_id: WorkSliceId
    ) -> WorkSlice:
        project = self._projects.get(project_id)
        if project is None:
            raise ProjectNotFound(f"No project with id {project_id}")
        removed = project.delete_work_slice(work_slice_id)
        self._record(WorkSliceDeleted(project_id=project_id, work_slice_id=work_slice_id))
        log.info(
            "work_slice.deleted",
            project_id=project_id.value,
            work_slice_id=work_slice_id.value,
        )
        return removed

    def delete_work_slice(self, work_slice_id: WorkSliceId) -> WorkSlice:
        """Delete a work slice from whichever project holds it."""
        project_id = self.project_id_from_work_slice(work_slice_id)
        if project_id is None:
            raise WorkSliceNotFound(f"No work slice with id {work_slice_id}")
        return self.delete_work_slice_from_project(project_id, work_slice_id)

    # --- Change log ---

    @property
    def pending_changes(self) -> tuple[Change, ...]:
        return tuple(self._changes)

    def drain_changes(self) -> list[Change]:
        """Return every change since the last drain and clear the buffer."""
        changes, self._changes = self._changes, []
        return changes
