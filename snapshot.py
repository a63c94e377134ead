#!/usr/bin/env python3
"""Export and import projects as a JSON snapshot."""

from __future__ import annotations

import json
import sys
from datetime import datetime
from pathlib import Path
from typing import Iterable

import storage
from errors import SnapshotFormatError, StateLoadError
from logging_config import configure_logging, verbose_from_env
from payment import Money, Payment
from state import CompleteWorkSliceData, IncompleteWorkSliceData, ProjectData, State

FORMAT_VERSION = 1


def _payment_to_json(payment: Payment) -> dict:
    return {"kind": payment.kind, "pence": payment.amount.pence}


def _parse_payment(val: dict) -> Payment:
    return Payment(val["kind"], Money(val["pence"]))


def _parse_time(val: str) -> datetime:
    """Parse an ISO-8601 timestamp, which must carry a UTC offset."""
    parsed = datetime.fromisoformat(val)
    if parsed.tzinfo is None:
        raise ValueError(f"Timestamp has no timezone: {val!r}")
    return parsed


def projects_to_json(projects: Iterable[ProjectData]) -> dict:
    """Convert snapshot records to a JSON-compatible document."""
    data = []
    for project in projects:
        current = project.current_slice
        data.append({
            "id": project.id,
            "name": project.name,
            "description": project.description,
            "work_slices": [
                {
                    "id": s.id,
                    "start": s.start.isoformat(),
                    "end": s.end.isoformat(),
                    "payment": _payment_to_json(s.payment),
                }
                for s in project.work_slices
            ],
            "current_slice": (
                {
                    "id": current.id,
                    "start": current.start.isoformat(),
                    "payment": _payment_to_json(current.payment),
                }
                if current
                else None
            ),
        })
    return {"version": FORMAT_VERSION, "projects": data}


def projects_from_json(document: dict) -> list[ProjectData]:
    """Parse a snapshot document. Raises SnapshotFormatError if it is malformed."""
    try:
        if document.get("version") != FORMAT_VERSION:
            raise SnapshotFormatError(f"Unsupported snapshot version: {document.get('version')!r}")

        projects = []
        for item in document["projects"]:
            current = item.get("current_slice")
            projects.append(ProjectData(
                name=item["name"],
                description=item.get("description", ""),
                id=int(item["id"]),
                work_slices=[
                    CompleteWorkSliceData(
                        start=_parse_time(s["start"]),
                        end=_parse_time(s["end"]),
                        payment=_parse_payment(s["payment"]),
                        id=int(s["id"]),
                    )
                    for s in item.get("work_slices", [])
                ],
                current_slice=(
                    IncompleteWorkSliceData(
                        start=_parse_time(current["start"]),
                        payment=_parse_payment(current["payment"]),
                        id=int(current["id"]),
                    )
                    if current
                    else None
                ),
            ))
    except SnapshotFormatError:
        raise
    except (KeyError, TypeError, ValueError, AttributeError) as exc:
        raise SnapshotFormatError(f"Malformed snapshot: {exc}") from exc
    return projects


def export_to_json(state: State, json_path: Path) -> int:
    """Write every project in ``state`` to ``json_path``. Returns the project count."""
    projects = state.snapshot()
    with open(json_path, "w", encoding="utf-8") as f:
        json.dump(projects_to_json(projects), f, indent=2, ensure_ascii=False)
    return len(projects)


def import_from_json(json_path: Path) -> list[ProjectData]:
    """Read snapshot records from ``json_path``."""
    try:
        with open(json_path, encoding="utf-8") as f:
            document = json.load(f)
    except json.JSONDecodeError as exc:
        raise SnapshotFormatError(f"{json_path} is not valid JSON: {exc}") from exc
    if not isinstance(document, dict):
        raise SnapshotFormatError(f"{json_path} does not contain a snapshot object")
    return projects_from_json(document)


def main(argv: list[str]) -> int:
    if len(argv) != 2 or argv[0] not in ("export", "import"):
        print("usage: snapshot.py export|import <path>", file=sys.stderr)
        return 2

    configure_logging(verbose=verbose_from_env())
    command, json_path = argv[0], Path(argv[1])
    storage.init_db()

    if command == "export":
        count = export_to_json(storage.load_state(), json_path)
        print(f"Exported {count} projects to {json_path}")
        return 0

    try:
        projects = import_from_json(json_path)
        # Validate before touching the database.
        State(projects)
    except StateLoadError as exc:
        print(f"Import failed: {exc}", file=sys.stderr)
        return 1
    storage.replace_all(projects)
    print(f"Imported {len(projects)} projects from {json_path}")
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
