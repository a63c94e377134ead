from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Union

from errors import (
    AlreadyStarted,
    EndTimeTooEarly,
    InvalidStartTime,
    NoWorkToComplete,
    WorkSliceNotFound,
)
from payment import Money, MoneyExact, Payment
from utils import utc_now

Clock = Callable[[], datetime]


@dataclass(frozen=True, order=True)
class ProjectId:
    value: int

    def __post_init__(self):
        if self.value < 0:
            raise ValueError(f"Project id must not be negative: {self.value}")

    def __str__(self) -> str:
        return str(self.value)


@dataclass(frozen=True, order=True)
class WorkSliceId:
    value: int

    def __post_init__(self):
        if self.value < 0:
            raise ValueError(f"Work slice id must not be negative: {self.value}")

    def __str__(self) -> str:
        return str(self.value)


class _WorkSliceIdentity:
    """Work slices compare and hash by id only."""

    id: WorkSliceId

    def __eq__(self, other):
        if not isinstance(other, _WorkSliceIdentity):
            return NotImplemented
        return self.id == other.id

    def __hash__(self):
        return hash(self.id)


@dataclass(frozen=True, eq=False)
class IncompleteWorkSlice(_WorkSliceIdentity):
    """A work slice which has started but not ended."""

    start: datetime
    payment: Payment
    id: WorkSliceId

    @classmethod
    def create(
        cls,
        start: datetime,
        payment: Payment,
        id: WorkSliceId,
        now: datetime | None = None,
    ) -> IncompleteWorkSlice:
        """Open a work slice, refusing start times in the future."""
        now = now or utc_now()
        if start > now:
            raise InvalidStartTime(
                f"Start time {start.isoformat()} is after {now.isoformat()}"
            )
        return cls(start, payment, id)

    def duration(self, now: datetime | None = None) -> timedelta:
        """Time elapsed since the slice started, never negative."""
        # A wall clock stepped back behind the start reads as zero.
        return max((now or utc_now()) - self.start, timedelta(0))

    def calculate_payment_so_far(self, now: datetime | None = None) -> MoneyExact:
        return self.payment.calculate(self.duration(now))

    def complete(self, end: datetime) -> CompleteWorkSlice:
        """Close this slice at ``end``.

        Raises EndTimeTooEarly, carrying this slice unchanged, unless
        ``end`` is strictly after the start.
        """
        if end <= self.start:
            raise EndTimeTooEarly(self)
        return CompleteWorkSlice(self.start, end, self.payment, self.id)

    def complete_now(self, now: datetime | None = None) -> CompleteWorkSlice:
        # Fails if the clock has not moved on since start.
        return self.complete(now or utc_now())


@dataclass(frozen=True, eq=False)
class CompleteWorkSlice(_WorkSliceIdentity):
    """A work slice with a fixed end. Only ``start`` is guaranteed not to be in the future."""

    start: datetime
    end: datetime
    payment: Payment
    id: WorkSliceId

    def __post_init__(self):
        if self.end <= self.start:
            raise ValueError("A complete work slice must end after it starts")

    def completion(self) -> datetime:
        return self.end

    def duration(self) -> timedelta:
        return self.end - self.start

    def calculate_payment(self) -> MoneyExact:
        return self.payment.calculate(self.duration())


WorkSlice = Union[IncompleteWorkSlice, CompleteWorkSlice]


def payment_of(work_slice: WorkSlice, now: datetime | None = None) -> MoneyExact:
    """Total for a complete slice, or the total so far for an open one."""
    if isinstance(work_slice, CompleteWorkSlice):
        return work_slice.calculate_payment()
    return work_slice.calculate_payment_so_far(now)


class Project:
    """A named group of work slices with at most one open slice at a time."""

    def __init__(
        self,
        name: str,
        description: str,
        id: ProjectId,
        work_slices: list[CompleteWorkSlice] | None = None,
        current_slice: IncompleteWorkSlice | None = None,
    ):
        self._name = name
        self._description = description
        self._id = id
        self._work_slices = list(work_slices or [])
        self._current_slice = current_slice

    def __eq__(self, other):
        if not isinstance(other, Project):
            return NotImplemented
        return self._id == other._id

    def __hash__(self):
        return hash(self._id)

    def __repr__(self) -> str:
        return f"Project(id={self._id.value}, name={self._name!r})"

    @property
    def name(self) -> str:
        return self._name

    @property
    def description(self) -> str:
        return self._description

    @property
    def id(self) -> ProjectId:
        return self._id

    @property
    def current_work_slice(self) -> IncompleteWorkSlice | None:
        return self._current_slice

    @property
    def is_working(self) -> bool:
        return self._current_slice is not None

    def complete_work_slices(self) -> tuple[CompleteWorkSlice, ...]:
        """The completed slices in the order they were completed."""
        return tuple(self._work_slices)

    def work_slice_ids(self) -> list[WorkSliceId]:
        ids = [s.id for s in self._work_slices]
        if self._current_slice is not None:
            ids.append(self._current_slice.id)
        return ids

    def work_slice_from_id(self, id: WorkSliceId) -> WorkSlice | None:
        if self._current_slice is not None and self._current_slice.id == id:
            return self._current_slice
        for work_slice in self._work_slices:
            if work_slice.id == id:
                return work_slice
        return None

    def total_payment(self) -> MoneyExact:
        """Money earned by the completed slices, ignoring any open slice."""
        return sum((s.calculate_payment() for s in self._work_slices), MoneyExact())

    def total_payment_so_far(self, now: datetime | None = None) -> MoneyExact:
        total = self.total_payment()
        if self._current_slice is not None:
            total = total + self._current_slice.calculate_payment_so_far(now)
        return total

    def start_work(self, work_slice: IncompleteWorkSlice, now: datetime | None = None) -> None:
        """Make ``work_slice`` the open slice.

        Raises AlreadyStarted if a slice is open, or InvalidStartTime if the
        slice starts after ``now``.
        """
        if self._current_slice is not None:
            raise AlreadyStarted(f"Project {self._id} already has work in progress")
        now = now or utc_now()
        if work_slice.start > now:
            raise InvalidStartTime(
                f"Start time {work_slice.start.isoformat()} is after {now.isoformat()}"
            )
        self._current_slice = work_slice

    def start_work_now(
        self, payment: Payment, id: WorkSliceId, now: datetime | None = None
    ) -> None:
        now = now or utc_now()
        self.start_work(IncompleteWorkSlice.create(now, payment, id, now=now), now=now)

    def complete_work(self, end: datetime) -> CompleteWorkSlice:
        """Close the open slice at ``end``. The open slice is kept on failure."""
        if self._current_slice is None:
            raise NoWorkToComplete(f"Project {self._id} has no work in progress")
        completed = self._current_slice.complete(end)
        self._work_slices.append(completed)
        self._current_slice = None
        return completed

    def complete_work_now(self, now: datetime | None = None) -> CompleteWorkSlice:
        return self.complete_work(now or utc_now())

    def delete_work_slice(self, id: WorkSliceId) -> WorkSlice:
        """Remove and return the slice with ``id``, open slice first."""
        if self._current_slice is not None and self._current_slice.id == id:
            removed: WorkSlice = self._current_slice
            self._current_slice = None
            return removed
        for i, work_slice in enumerate(self._work_slices):
            if work_slice.id == id:
                return self._work_slices.pop(i)
        raise WorkSliceNotFound(f"Work slice {id} is not in project {self._id}")


@dataclass
class Config:
    default_hourly_rate: Money = field(default_factory=lambda: Money(9700))
    currency: str = "GBP"
