"""Tests for state.py - the State aggregate and its change log."""

import time
from datetime import timedelta

import pytest

import state as state_module
from changes import (
    ProjectCreated,
    ProjectDeleted,
    WorkSliceCompleted,
    WorkSliceDeleted,
    WorkSliceStarted,
)
from errors import (
    AlreadyStarted,
    DuplicateProjectId,
    DuplicateWorkSliceId,
    EndTimeTooEarly,
    IdSpaceExhausted,
    InvalidProjectId,
    InvalidStartTime,
    NaiveTimestamp,
    NoWorkToComplete,
    NotFoundError,
    ProjectLoadError,
    ProjectNotFound,
    StateLoadError,
    WorkEndError,
    WorkSliceNotFound,
    WorkStartError,
)
from models import CompleteWorkSlice, IncompleteWorkSlice, ProjectId, WorkSliceId
from payment import Money, Payment
from state import (
    CompleteWorkSliceData,
    IncompleteWorkSliceData,
    ProjectData,
    State,
)


def almost_equal(a: float, b: float) -> bool:
    return abs(a - b) <= 0.0001


class TestNewProject:
    """Tests for State.new_project."""

    def test_first_ids(self, state):
        first = state.new_project("Website", "Rebuild")
        second = state.new_project("Audit", "")
        assert first == ProjectId(1)
        assert second == ProjectId(2)
        assert state.all_project_ids() == [first, second]

    def test_project_is_empty(self, state):
        id = state.new_project("Website", "Rebuild")
        project = state.project_from_id(id)
        assert project.name == "Website"
        assert project.description == "Rebuild"
        assert project.complete_work_slices() == ()
        assert project.current_work_slice is None

    def test_records_change(self, state):
        id = state.new_project("Website", "Rebuild")
        assert state.pending_changes == (
            ProjectCreated(name="Website", description="Rebuild", id=id),
        )


class TestStartWork:
    """Tests for State.start_work."""

    def test_start_work(self, state, clock, hourly_payment):
        project_id = state.new_project("Website", "")
        slice_id = state.start_work(project_id, hourly_payment, clock() - timedelta(hours=1))

        current = state.project_from_id(project_id).current_work_slice
        assert current.id == slice_id
        assert current.start == clock() - timedelta(hours=1)
        assert state.project_id_from_work_slice(slice_id) == project_id

    def test_start_work_now(self, state, clock, hourly_payment):
        project_id = state.new_project("Website", "")
        slice_id = state.start_work_now(project_id, hourly_payment)
        assert state.work_slice_from_id(slice_id).start == clock()

    def test_unknown_project(self, state, clock, hourly_payment):
        with pytest.raises(InvalidProjectId):
            state.start_work(ProjectId(42), hourly_payment, clock())

    def test_future_start(self, state, clock, hourly_payment):
        project_id = state.new_project("Website", "")
        with pytest.raises(InvalidStartTime):
            state.start_work(project_id, hourly_payment, clock() + timedelta(minutes=1))

    def test_already_started(self, state, clock, hourly_payment, fixed_payment):
        project_id = state.new_project("Website", "")
        first = state.start_work_now(project_id, hourly_payment)
        with pytest.raises(AlreadyStarted):
            state.start_work_now(project_id, fixed_payment)
        assert state.project_from_id(project_id).current_work_slice.id == first

    @pytest.mark.parametrize(
        "error",
        [AlreadyStarted, InvalidProjectId, InvalidStartTime, NaiveTimestamp],
    )
    def test_errors_share_a_base(self, error):
        assert issubclass(error, WorkStartError)

    def test_failures_do_not_use_ids(self, state, clock, hourly_payment):
        """A rejected start leaves the next slice id unchanged."""
        project_id = state.new_project("Website", "")
        with pytest.raises(InvalidStartTime):
            state.start_work(project_id, hourly_payment, clock() + timedelta(days=1))
        with pytest.raises(InvalidProjectId):
            state.start_work(ProjectId(99), hourly_payment, clock())

        assert state.start_work_now(project_id, hourly_payment) == WorkSliceId(1)

    def test_naive_start(self, state, clock, hourly_payment):
        """A start time without a timezone is refused before anything changes."""
        project_id = state.new_project("Website", "")
        state.drain_changes()
        with pytest.raises(NaiveTimestamp):
            state.start_work(project_id, hourly_payment, clock().replace(tzinfo=None))

        assert not state.project_from_id(project_id).is_working
        assert state.pending_changes == ()
        assert state.start_work_now(project_id, hourly_payment) == WorkSliceId(1)

    def test_clock_set_back(self, state, clock, hourly_payment):
        """Open work reads as nothing earned when the clock goes backwards."""
        project_id = state.new_project("Website", "")
        state.start_work_now(project_id, hourly_payment)
        clock.advance(seconds=-1)

        project = state.project_from_id(project_id)
        assert project.current_work_slice.duration(state.now()) == timedelta(0)
        assert project.total_payment_so_far(state.now()).as_pence() == 0.0

    def test_failures_record_nothing(self, state, clock, hourly_payment):
        project_id = state.new_project("Website", "")
        state.drain_changes()
        with pytest.raises(InvalidStartTime):
            state.start_work(project_id, hourly_payment, clock() + timedelta(days=1))
        assert state.pending_changes == ()

    def test_records_change(self, state, clock, hourly_payment):
        project_id = state.new_project("Website", "")
        state.drain_changes()
        slice_id = state.start_work_now(project_id, hourly_payment)
        assert state.drain_changes() == [
            WorkSliceStarted(
                project_id=project_id,
                work_slice_id=slice_id,
                start_time=clock(),
                payment=hourly_payment,
            )
        ]


class TestEndWork:
    """Tests for State.end_work."""

    def test_end_work(self, state, clock, hourly_payment):
        project_id = state.new_project("Website", "")
        slice_id = state.start_work_now(project_id, hourly_payment)
        end = clock.advance(hours=2)

        completed = state.end_work(project_id, end)

        assert isinstance(completed, CompleteWorkSlice)
        assert completed.id == slice_id
        project = state.project_from_id(project_id)
        assert project.current_work_slice is None
        assert project.complete_work_slices() == (completed,)
        assert almost_equal(project.total_payment().as_pence(), 2500.0)

    def test_end_work_now(self, state, clock, hourly_payment):
        project_id = state.new_project("Website", "")
        state.start_work_now(project_id, hourly_payment)
        clock.advance(minutes=30)
        completed = state.end_work_now(project_id)
        assert completed.duration() == timedelta(minutes=30)

    def test_end_work_now_without_clock_moving(self, state, hourly_payment):
        """Ending at the instant work started is rejected."""
        project_id = state.new_project("Website", "")
        state.start_work_now(project_id, hourly_payment)
        with pytest.raises(EndTimeTooEarly):
            state.end_work_now(project_id)
        assert state.project_from_id(project_id).is_working

    def test_unknown_project(self, state, clock):
        with pytest.raises(InvalidProjectId):
            state.end_work(ProjectId(7), clock())

    def test_no_work(self, state, clock):
        project_id = state.new_project("Website", "")
        with pytest.raises(NoWorkToComplete):
            state.end_work(project_id, clock())

    def test_too_early_keeps_open_slice(self, state, clock, hourly_payment):
        project_id = state.new_project("Website", "")
        slice_id = state.start_work_now(project_id, hourly_payment)
        state.drain_changes()

        with pytest.raises(EndTimeTooEarly) as exc_info:
            state.end_work(project_id, clock() - timedelta(seconds=1))

        assert exc_info.value.work_slice.id == slice_id
        assert state.project_from_id(project_id).current_work_slice.id == slice_id
        assert state.pending_changes == ()

    def test_naive_end(self, state, clock, hourly_payment):
        project_id = state.new_project("Website", "")
        slice_id = state.start_work_now(project_id, hourly_payment)
        end = clock.advance(hours=1)
        state.drain_changes()

        with pytest.raises(NaiveTimestamp):
            state.end_work(project_id, end.replace(tzinfo=None))

        assert state.project_from_id(project_id).current_work_slice.id == slice_id
        assert state.pending_changes == ()

    @pytest.mark.parametrize(
        "error",
        [EndTimeTooEarly, NoWorkToComplete, InvalidProjectId, NaiveTimestamp],
    )
    def test_errors_share_a_base(self, error):
        assert issubclass(error, WorkEndError)

    def test_records_change(self, state, clock, hourly_payment):
        project_id = state.new_project("Website", "")
        slice_id = state.start_work_now(project_id, hourly_payment)
        end = clock.advance(hours=1)
        state.drain_changes()

        state.end_work(project_id, end)

        assert state.drain_changes() == [
            WorkSliceCompleted(project_id=project_id, work_slice_id=slice_id, end_time=end)
        ]


class TestDelete:
    """Tests for deleting projects and work slices."""

    def test_delete_project(self, sample_project_data, clock):
        state = State(sample_project_data, clock=clock)
        removed = state.delete_project(ProjectId(3))

        assert removed.name == "Website"
        assert not state.project_exists(ProjectId(3))
        assert state.project_from_id(ProjectId(3)) is None
        assert state.all_project_ids() == [ProjectId(5)]
        assert state.pending_changes == (ProjectDeleted(id=ProjectId(3)),)

    def test_delete_project_orphans_slice_ids(self, sample_project_data, clock):
        """Slice ids of a deleted project are no longer found."""
        state = State(sample_project_data, clock=clock)
        state.delete_project(ProjectId(3))

        assert state.project_id_from_work_slice(WorkSliceId(4)) is None
        assert state.work_slice_from_id(WorkSliceId(7)) is None
        with pytest.raises(WorkSliceNotFound):
            state.delete_work_slice(WorkSliceId(4))

        # The other project is untouched
        assert state.project_id_from_work_slice(WorkSliceId(9)) == ProjectId(5)
        assert state.project_from_id(ProjectId(5)).is_working

    def test_delete_missing_project(self, state):
        with pytest.raises(InvalidProjectId):
            state.delete_project(ProjectId(1))
        assert state.pending_changes == ()

    def test_deleted_project_id_not_reused(self, state):
        first = state.new_project("Website", "")
        state.delete_project(first)
        assert state.new_project("Audit", "") == ProjectId(2)

    def test_delete_work_slice_from_project(self, sample_project_data, clock):
        state = State(sample_project_data, clock=clock)
        removed = state.delete_work_slice_from_project(ProjectId(3), WorkSliceId(4))

        assert removed.id == WorkSliceId(4)
        assert [s.id for s in state.project_from_id(ProjectId(3)).complete_work_slices()] == [
            WorkSliceId(7)
        ]
        assert state.pending_changes == (
            WorkSliceDeleted(project_id=ProjectId(3), work_slice_id=WorkSliceId(4)),
        )

    def test_delete_open_slice(self, sample_project_data, clock):
        state = State(sample_project_data, clock=clock)
        removed = state.delete_work_slice_from_project(ProjectId(5), WorkSliceId(9))
        assert isinstance(removed, IncompleteWorkSlice)
        assert not state.project_from_id(ProjectId(5)).is_working

    def test_delete_from_missing_project(self, sample_project_data, clock):
        state = State(sample_project_data, clock=clock)
        with pytest.raises(ProjectNotFound):
            state.delete_work_slice_from_project(ProjectId(1), WorkSliceId(4))

    def test_delete_slice_from_wrong_project(self, sample_project_data, clock):
        """The slice exists, but not in this project."""
        state = State(sample_project_data, clock=clock)
        with pytest.raises(WorkSliceNotFound):
            state.delete_work_slice_from_project(ProjectId(5), WorkSliceId(4))
        assert state.work_slice_from_id(WorkSliceId(4)) is not None

    def test_not_found_errors_share_a_base(self):
        assert issubclass(ProjectNotFound, NotFoundError)
        assert issubclass(WorkSliceNotFound, NotFoundError)

    def test_delete_work_slice_finds_owner(self, sample_project_data, clock):
        state = State(sample_project_data, clock=clock)
        state.delete_work_slice(WorkSliceId(7))
        assert state.pending_changes == (
            WorkSliceDeleted(project_id=ProjectId(3), work_slice_id=WorkSliceId(7)),
        )


class TestLoad:
    """Tests for building a State from snapshot records."""

    def test_load(self, sample_project_data, clock):
        state = State(sample_project_data, clock=clock)

        assert state.all_project_ids() == [ProjectId(3), ProjectId(5)]
        website = state.project_from_id(ProjectId(3))
        assert [s.id for s in website.complete_work_slices()] == [WorkSliceId(4), WorkSliceId(7)]
        assert almost_equal(website.total_payment().as_pence(), 3750.0 + 8000.0)
        audit = state.project_from_id(ProjectId(5))
        assert audit.current_work_slice.id == WorkSliceId(9)
        assert state.pending_changes == ()

    def test_counters_continue_after_loaded_ids(self, sample_project_data, clock, hourly_payment):
        state = State(sample_project_data, clock=clock)
        assert state.new_project("New", "") == ProjectId(6)
        assert state.start_work_now(ProjectId(3), hourly_payment) == WorkSliceId(10)

    def test_empty_load(self, clock):
        state = State([], clock=clock)
        assert state.all_project_ids() == []
        assert state.new_project("First", "") == ProjectId(1)

    def test_duplicate_project_id(self, clock):
        with pytest.raises(DuplicateProjectId):
            State([ProjectData("A", "", 1), ProjectData("B", "", 1)], clock=clock)

    def test_duplicate_work_slice_id_across_projects(self, start_time, hourly_payment, clock):
        data = [
            ProjectData(
                "A",
                "",
                1,
                work_slices=[
                    CompleteWorkSliceData(
                        start_time - timedelta(hours=2), start_time - timedelta(hours=1), hourly_payment, 5
                    )
                ],
            ),
            ProjectData(
                "B",
                "",
                2,
                current_slice=IncompleteWorkSliceData(start_time, hourly_payment, 5),
            ),
        ]
        with pytest.raises(DuplicateWorkSliceId):
            State(data, clock=clock)

    def test_future_start_is_load_error(self, start_time, hourly_payment, clock):
        data = [
            ProjectData(
                "A",
                "",
                1,
                current_slice=IncompleteWorkSliceData(
                    start_time + timedelta(hours=1), hourly_payment, 1
                ),
            )
        ]
        with pytest.raises(ProjectLoadError) as exc_info:
            State(data, clock=clock)
        assert isinstance(exc_info.value.__cause__, InvalidStartTime)

    def test_end_before_start_is_load_error(self, start_time, hourly_payment, clock):
        data = [
            ProjectData(
                "A",
                "",
                1,
                work_slices=[
                    CompleteWorkSliceData(
                        start_time - timedelta(hours=1), start_time - timedelta(hours=2), hourly_payment, 1
                    )
                ],
            )
        ]
        with pytest.raises(ProjectLoadError):
            State(data, clock=clock)

    def test_negative_id_is_load_error(self, clock):
        with pytest.raises(ProjectLoadError):
            State([ProjectData("A", "", -3)], clock=clock)

    @pytest.mark.parametrize(
        "error",
        [DuplicateProjectId, DuplicateWorkSliceId, ProjectLoadError],
    )
    def test_load_errors_share_a_base(self, error):
        assert issubclass(error, StateLoadError)


class TestSnapshot:
    """Tests for exporting State back to snapshot records."""

    def test_round_trip(self, sample_project_data, clock):
        """Snapshot then reload keeps ids, payments and timestamps."""
        original = State(sample_project_data, clock=clock)
        reloaded = State(original.snapshot(), clock=clock)

        assert reloaded.all_project_ids() == original.all_project_ids()
        for project in original.all_projects():
            copy = reloaded.project_from_id(project.id)
            assert copy.name == project.name
            assert copy.description == project.description
            assert copy.work_slice_ids() == project.work_slice_ids()
            for before, after in zip(project.complete_work_slices(), copy.complete_work_slices()):
                assert after.start == before.start
                assert after.end == before.end
                assert after.payment == before.payment
            assert almost_equal(
                copy.total_payment().as_pence(), project.total_payment().as_pence()
            )
        assert reloaded.work_slice_from_id(WorkSliceId(9)).start == (
            original.work_slice_from_id(WorkSliceId(9)).start
        )

    def test_snapshot_after_mutations(self, state, clock, hourly_payment):
        project_id = state.new_project("Website", "")
        state.start_work_now(project_id, hourly_payment)
        clock.advance(hours=1)
        state.end_work_now(project_id)
        state.start_work_now(project_id, hourly_payment)

        (data,) = state.snapshot()
        assert data.id == 1
        assert [s.id for s in data.work_slices] == [1]
        assert data.current_slice.id == 2


class TestChangeLog:
    """Tests for the change log."""

    def test_changes_in_mutation_order(self, state, clock, hourly_payment):
        project_id = state.new_project("Website", "")
        slice_id = state.start_work_now(project_id, hourly_payment)
        clock.advance(hours=1)
        state.end_work_now(project_id)
        state.delete_work_slice(slice_id)
        state.delete_project(project_id)

        assert [type(c) for c in state.drain_changes()] == [
            ProjectCreated,
            WorkSliceStarted,
            WorkSliceCompleted,
            WorkSliceDeleted,
            ProjectDeleted,
        ]

    def test_drain_clears(self, state):
        state.new_project("Website", "")
        assert len(state.drain_changes()) == 1
        assert state.drain_changes() == []
        assert state.pending_changes == ()


class TestIdSpace:
    """Tests for id exhaustion."""

    def test_project_ids_exhausted(self, clock):
        state = State([ProjectData("Last", "", state_module.MAX_ID)], clock=clock)
        with pytest.raises(IdSpaceExhausted):
            state.new_project("One too many", "")

    def test_work_slice_ids_exhausted(self, start_time, hourly_payment, clock):
        data = [
            ProjectData(
                "A",
                "",
                1,
                work_slices=[
                    CompleteWorkSliceData(
                        start_time - timedelta(hours=2),
                        start_time - timedelta(hours=1),
                        hourly_payment,
                        state_module.MAX_ID,
                    )
                ],
            )
        ]
        state = State(data, clock=clock)
        with pytest.raises(IdSpaceExhausted):
            state.start_work_now(ProjectId(1), hourly_payment)
        assert not state.project_from_id(ProjectId(1)).is_working


class TestRealClock:
    """End to end on the real clock."""

    def test_five_seconds_of_hourly_work(self):
        state = State()
        project_id = state.new_project("Timing", "Real time check")
        state.start_work_now(project_id, Payment.hourly(Money(800)))
        time.sleep(5)
        state.end_work_now(project_id)

        (completed,) = state.project_from_id(project_id).complete_work_slices()
        assert completed.duration() >= timedelta(seconds=5)
        earned = completed.calculate_payment().as_pence()
        assert earned >= 800 * 5 / 3600.0
        assert round(earned, 2) >= 1.11
        assert earned < 800 * 6 / 3600.0
