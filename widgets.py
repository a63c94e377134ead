"""Custom widgets for the work tracker."""

from __future__ import annotations

from datetime import datetime

from textual.widgets import Static
from rich.text import Text

from models import Project
from payment import MoneyExact
from utils import format_duration


class ProjectHeader(Static):
    """Shows the view title on the left and the project count on the right."""

    def update_display(self, project: Project | None, project_count: int):
        if project is None:
            title = "PROJECTS"
            right = f"{project_count} project{'s' if project_count != 1 else ''}"
        else:
            title = f"PROJECT {project.id}: {project.name}"
            slices = len(project.complete_work_slices())
            right = f"{slices} completed slice{'s' if slices != 1 else ''}"

        text = Text()
        text.append(title, style="bold")
        # Right-align to column 74, matching the summary width
        spacing = 74 - len(title) - len(right)
        text.append(" " * spacing if spacing > 0 else "  ")
        text.append(right, style="bold")
        self.update(text)


class CurrentWorkStatus(Static):
    """Shows the open work slice of a project, if any."""

    def update_display(self, project: Project | None, now: datetime):
        text = Text()
        if project is None:
            self.update(text)
            return
        if project.description:
            text.append(f"{project.description}\n", style="italic")

        current = project.current_work_slice
        if current is None:
            text.append("No work in progress", style="dim")
        else:
            started = current.start.astimezone().strftime("%a %d %b %H:%M")
            text.append("Working since ", style="bold")
            text.append(started)
            text.append(f"  ({format_duration(current.duration(now))})")
            text.append(f"  at {current.payment}")
            text.append(f"  {current.calculate_payment_so_far(now)} so far", style="bold green")
        self.update(text)


class EarningsSummary(Static):
    """Shows the money earned across the given projects."""

    def update_display(self, projects: list[Project] | tuple[Project, ...], now: datetime):
        earned = sum((p.total_payment() for p in projects), MoneyExact())
        so_far = sum((p.total_payment_so_far(now) for p in projects), MoneyExact())
        in_progress = MoneyExact(max(so_far.pence - earned.pence, 0.0))
        working = sum(1 for p in projects if p.is_working)

        text = Text()
        text.append(f"{'Earned':>50}  {str(earned):>12}\n")
        # In progress - dim if nothing is running
        text.append(
            f"{'In progress':>50}  {str(in_progress):>12}   ({working} open)\n",
            style="dim" if working == 0 else "",
        )
        text.append(f"{'TOTAL':>50}  {str(so_far):>12}", style="bold")
        self.update(text)
