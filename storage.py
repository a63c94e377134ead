from __future__ import annotations

import os
import sqlite3
from datetime import datetime
from pathlib import Path
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
from errors import ProjectLoadError
from models import Clock, Config
from payment import Money, Payment
from state import CompleteWorkSliceData, IncompleteWorkSliceData, ProjectData, State
from utils import utc_now

log = structlog.get_logger("track_work.storage")


def _get_db_path() -> Path:
    """Get database path from environment variable or default location."""
    if env_path := os.environ.get("TRACK_WORK_DB"):
        return Path(env_path)
    return Path(__file__).parent / "data" / "track_work.db"


DB_PATH = _get_db_path()


def get_connection() -> sqlite3.Connection:
    DB_PATH.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(DB_PATH)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


def init_db():
    """Create tables if they don't exist."""
    conn = get_connection()
    conn.executescript("""
        CREATE TABLE IF NOT EXISTS projects (
            id INTEGER PRIMARY KEY,
            name TEXT NOT NULL,
            description TEXT NOT NULL
        );

        CREATE TABLE IF NOT EXISTS work_slices (
            id INTEGER PRIMARY KEY,
            project_id INTEGER NOT NULL,
            start_time TEXT NOT NULL,
            end_time TEXT,
            payment_kind TEXT NOT NULL,
            payment_pence INTEGER NOT NULL,
            FOREIGN KEY (project_id) REFERENCES projects(id) ON DELETE CASCADE
        );

        CREATE TABLE IF NOT EXISTS config (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL
        );

        CREATE INDEX IF NOT EXISTS idx_slices_project ON work_slices(project_id);
    """)
    conn.commit()
    conn.close()


def _format_time(t: datetime) -> str:
    return t.isoformat()


def _parse_time(val: str) -> datetime:
    parsed = datetime.fromisoformat(val)
    if parsed.tzinfo is None:
        raise ValueError(f"Timestamp has no timezone: {val!r}")
    return parsed


def _row_to_payment(row: sqlite3.Row) -> Payment:
    return Payment(row["payment_kind"], Money(row["payment_pence"]))


def _row_to_work_slice(row: sqlite3.Row) -> IncompleteWorkSliceData | CompleteWorkSliceData:
    if row["end_time"] is None:
        return IncompleteWorkSliceData(
            start=_parse_time(row["start_time"]),
            payment=_row_to_payment(row),
            id=row["id"],
        )
    return CompleteWorkSliceData(
        start=_parse_time(row["start_time"]),
        end=_parse_time(row["end_time"]),
        payment=_row_to_payment(row),
        id=row["id"],
    )


def load_projects() -> list[ProjectData]:
    """Read every project and its work slices as snapshot records."""
    conn = get_connection()
    project_rows = conn.execute("SELECT * FROM projects ORDER BY id").fetchall()
    slice_rows = conn.execute("SELECT * FROM work_slices ORDER BY id").fetchall()
    conn.close()

    projects = {
        row["id"]: ProjectData(name=row["name"], description=row["description"], id=row["id"])
        for row in project_rows
    }
    for row in slice_rows:
        project = projects.get(row["project_id"])
        if project is None:
            raise ProjectLoadError(
                f"Work slice {row['id']} belongs to missing project {row['project_id']}"
            )
        try:
            work_slice = _row_to_work_slice(row)
        except (TypeError, ValueError) as exc:
            raise ProjectLoadError(f"Work slice {row['id']} could not be read: {exc}") from exc
        if isinstance(work_slice, IncompleteWorkSliceData):
            if project.current_slice is not None:
                raise ProjectLoadError(f"Project {project.id} has more than one open work slice")
            project.current_slice = work_slice
        else:
            project.work_slices.append(work_slice)

    log.debug("storage.loaded", path=str(DB_PATH), projects=len(projects))
    return list(projects.values())


def load_state(clock: Clock = utc_now) -> State:
    """Build a State from the database. Raises StateLoadError on bad data."""
    return State(load_projects(), clock=clock)


def _apply_change(conn: sqlite3.Connection, change: Change) -> None:
    if isinstance(change, ProjectCreated):
        conn.execute(
            "INSERT INTO projects (id, name, description) VALUES (?, ?, ?)",
            (change.id.value, change.name, change.description),
        )
    elif isinstance(change, ProjectDeleted):
        conn.execute("DELETE FROM work_slices WHERE project_id = ?", (change.id.value,))
        conn.execute("DELETE FROM projects WHERE id = ?", (change.id.value,))
    elif isinstance(change, WorkSliceStarted):
        conn.execute(
            """
            INSERT INTO work_slices
            (id, project_id, start_time, end_time, payment_kind, payment_pence)
            VALUES (?, ?, ?, NULL, ?, ?)
            """,
            (
                change.work_slice_id.value,
                change.project_id.value,
                _format_time(change.start_time),
                change.payment.kind,
                change.payment.amount.pence,
            ),
        )
    elif isinstance(change, WorkSliceCompleted):
        conn.execute(
            "UPDATE work_slices SET end_time = ? WHERE id = ? AND project_id = ?",
            (
                _format_time(change.end_time),
                change.work_slice_id.value,
                change.project_id.value,
            ),
        )
    elif isinstance(change, WorkSliceDeleted):
        conn.execute(
            "DELETE FROM work_slices WHERE id = ? AND project_id = ?",
            (change.work_slice_id.value, change.project_id.value),
        )
    else:
        raise TypeError(f"Unknown change: {change!r}")


def apply_changes(changes: Iterable[Change]) -> int:
    """Apply changes in order, in one transaction. Returns the count applied."""
    changes = list(changes)
    if not changes:
        return 0
    conn = get_connection()
    try:
        with conn:
            for change in changes:
                _apply_change(conn, change)
    finally:
        conn.close()
    log.debug("storage.applied", changes=len(changes))
    return len(changes)


def replace_all(projects: Iterable[ProjectData]) -> None:
    """Overwrite every project and work slice with a full snapshot."""
    conn = get_connection()
    try:
        with conn:
            conn.execute("DELETE FROM work_slices")
            conn.execute("DELETE FROM projects")
            for project in projects:
                conn.execute(
                    "INSERT INTO projects (id, name, description) VALUES (?, ?, ?)",
                    (project.id, project.name, project.description),
                )
                rows = [
                    (s.id, project.id, _format_time(s.start), _format_time(s.end),
                     s.payment.kind, s.payment.amount.pence)
                    for s in project.work_slices
                ]
                if project.current_slice is not None:
                    current = project.current_slice
                    rows.append(
                        (current.id, project.id, _format_time(current.start), None,
                         current.payment.kind, current.payment.amount.pence)
                    )
                conn.executemany(
                    """
                    INSERT INTO work_slices
                    (id, project_id, start_time, end_time, payment_kind, payment_pence)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    rows,
                )
    finally:
        conn.close()
    log.info("storage.replaced", path=str(DB_PATH))


def get_config() -> Config:
    """Load config from database."""
    conn = get_connection()
    rows = conn.execute("SELECT key, value FROM config").fetchall()
    conn.close()

    config = Config()
    for row in rows:
        if row["key"] == "default_hourly_rate":
            config.default_hourly_rate = Money(int(row["value"]))
        elif row["key"] == "currency":
            config.currency = row["value"]

    return config


def save_config(config: Config):
    """Save config to database."""
    conn = get_connection()
    conn.execute("INSERT OR REPLACE INTO config (key, value) VALUES (?, ?)",
                 ("default_hourly_rate", str(config.default_hourly_rate.pence)))
    conn.execute("INSERT OR REPLACE INTO config (key, value) VALUES (?, ?)",
                 ("currency", config.currency))
    conn.commit()
    conn.close()
