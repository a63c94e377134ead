#!/usr/bin/env python3
"""Work tracker TUI application."""

from __future__ import annotations

import sqlite3
import sys
from datetime import datetime

import structlog
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Container
from textual.coordinate import Coordinate
from textual.widgets import DataTable, Footer
from rich.text import Text

import storage
from errors import (
    AlreadyStarted,
    EndTimeTooEarly,
    InvalidProjectId,
    InvalidStartTime,
    NaiveTimestamp,
    NoWorkToComplete,
    ProjectNotFound,
    StateLoadError,
    TrackWorkError,
    WorkSliceNotFound,
)
from logging_config import configure_app_logging
from models import (
    CompleteWorkSlice,
    Config,
    Project,
    ProjectId,
    WorkSlice,
    WorkSliceId,
    payment_of,
)
from payment import Payment
from screens import ConfirmDeleteScreen, NewProjectScreen, StartWorkScreen
from state import State
from utils import format_duration
from widgets import CurrentWorkStatus, EarningsSummary, ProjectHeader

log = structlog.get_logger("track_work.app")

ERROR_MESSAGES: dict[type[TrackWorkError], str] = {
    AlreadyStarted: "Work is already in progress on this project",
    NoWorkToComplete: "No work in progress to end",
    EndTimeTooEarly: "End time must be after the start time",
    InvalidStartTime: "Work cannot start in the future",
    NaiveTimestamp: "Times must include a timezone",
    InvalidProjectId: "That project no longer exists",
    ProjectNotFound: "That project no longer exists",
    WorkSliceNotFound: "That work slice no longer exists",
}


def describe_error(exc: TrackWorkError) -> str:
    """User-facing message for a domain error."""
    for error_type in type(exc).__mro__:
        if error_type in ERROR_MESSAGES:
            return ERROR_MESSAGES[error_type]
    return str(exc)


def project_losses(project: Project, now: datetime) -> list[str]:
    """What deleting ``project`` throws away, one line per item."""
    count = len(project.complete_work_slices())
    losses = [
        f"{count} completed work slice{'s' if count != 1 else ''} worth {project.total_payment()}"
    ]
    current = project.current_work_slice
    if current is not None:
        losses.append(
            f"work in progress for {format_duration(current.duration(now))}, "
            f"{current.calculate_payment_so_far(now)} so far"
        )
    return losses


def work_slice_losses(work_slice: WorkSlice, now: datetime) -> list[str]:
    if isinstance(work_slice, CompleteWorkSlice):
        duration = work_slice.duration()
    else:
        duration = work_slice.duration(now)
    return [
        f"{format_duration(duration)}, paid {work_slice.payment}",
        f"{payment_of(work_slice, now)} earned",
    ]


class TrackWorkApp(App):
    """Main work tracker application."""

    TITLE = "Track Work"

    CSS = """
    Screen {
        background: $surface;
    }

    #project-header {
        height: auto;
        background: $primary;
        color: $text;
        padding: 0 1;
        text-style: bold;
    }

    #current-work {
        height: auto;
        padding: 0 2;
        color: $text;
    }

    #projects-table, #slices-table {
        height: 1fr;
        margin: 1 2;
    }

    #earnings-summary {
        height: auto;
        padding: 1 2;
        color: $text;
    }

    .hidden {
        display: none;
    }

    DataTable {
        height: 100%;
    }

    DataTable > .datatable--cursor {
        background: $secondary;
    }
    """

    BINDINGS = [
        Binding("q", "quit", "Quit"),
        Binding("n", "new_project", "New"),
        Binding("s", "start_work", "Start"),
        Binding("e", "end_work", "End"),
        Binding("d", "delete", "Delete"),
        Binding("escape", "back", "Back"),
    ]

    def __init__(self, state: State, config: Config | None = None):
        super().__init__()
        self.state = state
        self.config = config or Config()

        # View mode: "projects" or "slices"
        self.view_mode = "projects"
        # Project shown in the slices view
        self.open_project_id: ProjectId | None = None

    def compose(self) -> ComposeResult:
        yield ProjectHeader(id="project-header")
        yield CurrentWorkStatus(id="current-work", classes="hidden")
        yield Container(DataTable(id="projects-table"), id="projects-table-container")
        yield Container(DataTable(id="slices-table"), id="slices-table-container", classes="hidden")
        yield EarningsSummary(id="earnings-summary")
        yield Footer()

    def on_mount(self):
        self._setup_projects_table()
        self._setup_slices_table()
        self._refresh_display()
        self.query_one("#projects-table", DataTable).focus()
        # Keep running totals ticking
        self.set_interval(1.0, self._refresh_live)

    def _setup_projects_table(self):
        table = self.query_one("#projects-table", DataTable)
        table.cursor_type = "row"
        table.add_column("ID", width=5)
        table.add_column("Project", width=24)
        table.add_column("Status", width=12)
        table.add_column("Slices", width=6)
        table.add_column("Earned", width=12)
        table.add_column("So far", width=12)

    def _setup_slices_table(self):
        table = self.query_one("#slices-table", DataTable)
        table.cursor_type = "row"
        table.add_column("ID", width=5)
        table.add_column("Start", width=17)
        table.add_column("End", width=17)
        table.add_column("Duration", width=10)
        table.add_column("Payment", width=18)
        table.add_column("Amount", width=12)

    # --- Display ---

    def _refresh_display(self):
        if self.view_mode == "projects":
            self._refresh_projects_display()
        else:
            self._refresh_slices_display()
        self._refresh_live()

    def _refresh_live(self):
        """Update the widgets that change as the clock runs."""
        now = self.state.now()
        project = self._open_project()
        self.query_one("#project-header", ProjectHeader).update_display(
            project, len(self.state.all_projects())
        )
        self.query_one("#current-work", CurrentWorkStatus).update_display(project, now)
        projects = [project] if project is not None else list(self.state.all_projects())
        self.query_one("#earnings-summary", EarningsSummary).update_display(projects, now)

    def _refresh_projects_display(self):
        table = self.query_one("#projects-table", DataTable)
        cursor_row = table.cursor_row
        table.clear()
        now = self.state.now()

        for project in self.state.all_projects():
            if project.is_working:
                status = Text("working", style="bold green")
            else:
                status = Text("idle", style="dim")
            table.add_row(
                str(project.id),
                project.name,
                status,
                str(len(project.complete_work_slices())),
                str(project.total_payment()),
                str(project.total_payment_so_far(now)),
                key=str(project.id.value),
            )

        if table.row_count:
            table.move_cursor(row=min(cursor_row, table.row_count - 1))

    def _refresh_slices_display(self):
        table = self.query_one("#slices-table", DataTable)
        table.clear()
        project = self._open_project()
        if project is None:
            return
        now = self.state.now()

        rows = list(project.complete_work_slices())
        if project.current_work_slice is not None:
            rows.append(project.current_work_slice)

        for work_slice in rows:
            start = work_slice.start.astimezone().strftime("%d %b %Y %H:%M")
            if isinstance(work_slice, CompleteWorkSlice):
                end = work_slice.completion().astimezone().strftime("%d %b %Y %H:%M")
                duration = work_slice.duration()
            else:
                end = Text("in progress", style="bold green")
                duration = work_slice.duration(now)
            table.add_row(
                str(work_slice.id),
                start,
                end,
                format_duration(duration),
                str(work_slice.payment),
                str(payment_of(work_slice, now)),
                key=str(work_slice.id.value),
            )

    def _set_view_mode(self, mode: str):
        """Switch between the project list and one project's slices."""
        self.view_mode = mode

        projects_widgets = ["#projects-table-container"]
        slices_widgets = ["#current-work", "#slices-table-container"]

        for widget_id in projects_widgets:
            widget = self.query_one(widget_id)
            if mode == "projects":
                widget.remove_class("hidden")
            else:
                widget.add_class("hidden")

        for widget_id in slices_widgets:
            widget = self.query_one(widget_id)
            if mode == "slices":
                widget.remove_class("hidden")
            else:
                widget.add_class("hidden")

        self.refresh_bindings()
        self._refresh_display()

        if mode == "projects":
            self.query_one("#projects-table", DataTable).focus()
        else:
            self.query_one("#slices-table", DataTable).focus()

    def check_action(self, action: str, parameters: tuple[object, ...]) -> bool | None:
        """Check if an action is available based on current view mode."""
        if action == "back":
            return True if self.view_mode == "slices" else None
        elif action == "new_project":
            return self.view_mode == "projects"
        return True

    # --- Selection ---

    def _open_project(self):
        if self.view_mode != "slices" or self.open_project_id is None:
            return None
        return self.state.project_from_id(self.open_project_id)

    def _selected_row_key(self, table_id: str) -> str | None:
        table = self.query_one(table_id, DataTable)
        if table.row_count == 0:
            return None
        row_key = table.coordinate_to_cell_key(Coordinate(table.cursor_row, 0)).row_key
        return str(row_key.value) if row_key else None

    def _selected_project_id(self) -> ProjectId | None:
        """Project under the cursor, or the open project in the slices view."""
        if self.view_mode == "slices":
            return self.open_project_id
        key = self._selected_row_key("#projects-table")
        return ProjectId(int(key)) if key else None

    def _selected_work_slice_id(self) -> WorkSliceId | None:
        key = self._selected_row_key("#slices-table")
        return WorkSliceId(int(key)) if key else None

    # --- Commands ---

    def _persist(self) -> bool:
        """Write every change made since the last save.

        Changes stay pending when the write fails and go out with the next save.
        """
        changes = self.state.pending_changes
        try:
            storage.apply_changes(changes)
        except sqlite3.Error as exc:
            log.error("storage.write_failed", error=str(exc), pending=len(changes))
            self.notify(f"Could not save changes: {exc}", severity="error")
            return False
        self.state.drain_changes()
        return True

    def _report(self, exc: TrackWorkError) -> None:
        log.info("command.rejected", error=type(exc).__name__)
        self.notify(describe_error(exc), severity="error")

    def create_project(self, name: str, description: str) -> ProjectId:
        project_id = self.state.new_project(name, description)
        if self._persist():
            self.notify(f"Created project {name}")
        self._refresh_display()
        return project_id

    def start_work(self, project_id: ProjectId, payment: Payment) -> bool:
        try:
            self.state.start_work_now(project_id, payment)
        except TrackWorkError as exc:
            self._report(exc)
            return False
        if self._persist():
            self.notify(f"Started work at {payment}")
        self._refresh_display()
        return True

    def end_work(self, project_id: ProjectId) -> bool:
        try:
            completed = self.state.end_work_now(project_id)
        except TrackWorkError as exc:
            self._report(exc)
            return False
        if self._persist():
            self.notify(
                f"Worked {format_duration(completed.duration())} for {completed.calculate_payment()}"
            )
        self._refresh_display()
        return True

    def delete_project(self, project_id: ProjectId) -> bool:
        try:
            project = self.state.delete_project(project_id)
        except TrackWorkError as exc:
            self._report(exc)
            return False
        if self._persist():
            self.notify(f"Deleted project {project.name}")
        if self.open_project_id == project_id:
            self.open_project_id = None
            self._set_view_mode("projects")
        else:
            self._refresh_display()
        return True

    def delete_work_slice(self, project_id: ProjectId, work_slice_id: WorkSliceId) -> bool:
        try:
            self.state.delete_work_slice_from_project(project_id, work_slice_id)
        except TrackWorkError as exc:
            self._report(exc)
            return False
        if self._persist():
            self.notify(f"Deleted work slice {work_slice_id}")
        self._refresh_display()
        return True

    # --- Actions ---

    def action_new_project(self):
        self.push_screen(NewProjectScreen(), self._on_new_project)

    def _on_new_project(self, result: tuple[str, str] | None) -> None:
        if result:
            name, description = result
            self.create_project(name, description)

    def action_start_work(self):
        project_id = self._selected_project_id()
        project = self.state.project_from_id(project_id) if project_id is not None else None
        if project is None:
            self.notify("No project selected", severity="warning")
            return
        if project.is_working:
            self.notify(describe_error(AlreadyStarted()), severity="warning")
            return
        self.push_screen(
            StartWorkScreen(project.name, self.config.default_hourly_rate),
            lambda payment: self._on_payment_chosen(payment, project.id),
        )

    def _on_payment_chosen(self, payment: Payment | None, project_id: ProjectId) -> None:
        if payment:
            self.start_work(project_id, payment)

    def action_end_work(self):
        project_id = self._selected_project_id()
        if project_id is None:
            self.notify("No project selected", severity="warning")
            return
        self.end_work(project_id)

    def action_delete(self):
        """Delete the selected project, or the selected slice in the slices view."""
        if self.view_mode == "slices":
            project_id = self.open_project_id
            work_slice_id = self._selected_work_slice_id()
            work_slice = (
                self.state.work_slice_from_id(work_slice_id) if work_slice_id is not None else None
            )
            if project_id is None or work_slice is None:
                self.notify("No work slice selected", severity="warning")
                return
            self.push_screen(
                ConfirmDeleteScreen(
                    f"work slice {work_slice_id}", work_slice_losses(work_slice, self.state.now())
                ),
                lambda confirmed: self._on_delete_slice_confirmed(
                    confirmed, project_id, work_slice_id
                ),
            )
            return

        project_id = self._selected_project_id()
        project = self.state.project_from_id(project_id) if project_id is not None else None
        if project is None:
            self.notify("No project selected", severity="warning")
            return
        self.push_screen(
            ConfirmDeleteScreen(
                f"project {project.name}", project_losses(project, self.state.now())
            ),
            lambda confirmed: self._on_delete_project_confirmed(confirmed, project.id),
        )

    def _on_delete_project_confirmed(self, confirmed: bool | None, project_id: ProjectId) -> None:
        if confirmed:
            self.delete_project(project_id)

    def _on_delete_slice_confirmed(
        self, confirmed: bool | None, project_id: ProjectId, work_slice_id: WorkSliceId
    ) -> None:
        if confirmed:
            self.delete_work_slice(project_id, work_slice_id)

    def action_back(self):
        if self.view_mode == "slices":
            self.open_project_id = None
            self._set_view_mode("projects")

    def on_data_table_row_selected(self, event: DataTable.RowSelected) -> None:
        """Enter on a project opens its work slices."""
        if event.control.id != "projects-table" or self.view_mode != "projects":
            return
        if event.row_key:
            self.open_project_id = ProjectId(int(str(event.row_key.value)))
            self._set_view_mode("slices")


def main() -> int:
    configure_app_logging()
    storage.init_db()
    try:
        state = storage.load_state()
    except StateLoadError as exc:
        log.error("state.load_failed", error=str(exc))
        print(f"Could not load {storage.DB_PATH}: {exc}", file=sys.stderr)
        return 1
    app = TrackWorkApp(state, storage.get_config())
    app.run()
    return 0


if __name__ == "__main__":
    sys.exit(main())
