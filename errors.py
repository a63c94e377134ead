"""Error hierarchy for the work tracker.

Every recoverable failure raised by the domain model derives from
``TrackWorkError``. The grouping bases (``WorkStartError``, ``WorkEndError``,
``CompleteWorkError``, ``NotFoundError``, ``StateLoadError``) let callers catch
the whole taxonomy of a single operation.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from models import IncompleteWorkSlice


class TrackWorkError(Exception):
    """Base class for all recoverable work tracker errors."""


class WorkStartError(TrackWorkError):
    """Starting work on a project failed."""


class CompleteWorkError(TrackWorkError):
    """Completing the open work slice of a project failed."""


class WorkEndError(TrackWorkError):
    """Ending work on a project failed."""


class NotFoundError(TrackWorkError):
    """A referenced project or work slice does not exist."""


class InvalidAmount(TrackWorkError, ValueError):
    """A money value was negative."""

    def __init__(self, value: object):
        super().__init__(f"Amount must not be negative: {value!r}")
        self.value = value


class InvalidStartTime(WorkStartError):
    """Work cannot start in the future."""


class AlreadyStarted(WorkStartError):
    """The project already has an open work slice."""


class InvalidProjectId(WorkStartError, WorkEndError):
    """No project exists with the given id."""


class NaiveTimestamp(WorkStartError, WorkEndError):
    """A start or end time carries no timezone."""


class EndTimeTooEarly(CompleteWorkError, WorkEndError):
    """The end time is not strictly after the start time.

    ``work_slice`` holds the original, unchanged open slice.
    """

    def __init__(self, work_slice: IncompleteWorkSlice):
        super().__init__(f"End time must be after {work_slice.start.isoformat()}")
        self.work_slice = work_slice


class NoWorkToComplete(CompleteWorkError, WorkEndError):
    """The project has no open work slice."""


class ProjectNotFound(NotFoundError):
    """The project does not exist."""


class WorkSliceNotFound(NotFoundError):
    """The work slice does not exist (in the given project)."""


class StateLoadError(TrackWorkError):
    """A persisted snapshot could not be turned into a State."""


class DuplicateProjectId(StateLoadError):
    pass


class DuplicateWorkSliceId(StateLoadError):
    pass


class ProjectLoadError(StateLoadError):
    """A project record in the snapshot is invalid."""


class SnapshotFormatError(StateLoadError):
    """A JSON snapshot document is malformed."""


class IdSpaceExhausted(RuntimeError):
    """An id counter reached its maximum. Not recoverable."""
