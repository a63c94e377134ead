"""Modal screens for the work tracker."""

from __future__ import annotations

from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, Vertical
from textual.widgets import Button, Input, Label
from textual.screen import ModalScreen

from payment import HOURLY, Money, Payment
from utils import parse_money, payment_kind_from_code


class ConfirmDeleteScreen(ModalScreen[bool]):
    """Asks before deleting a project or work slice, listing what goes with it."""

    CSS = """
    ConfirmDeleteScreen {
        align: center middle;
    }

    #delete-dialog {
        width: 60;
        height: auto;
        padding: 1 2;
        background: $surface;
        border: heavy $error;
    }

    #delete-title {
        width: 100%;
        text-style: bold;
        color: $error;
    }

    .delete-loss {
        padding-left: 2;
    }

    #delete-hint {
        margin-top: 1;
        color: $text-muted;
    }

    #delete-buttons {
        width: 100%;
        height: auto;
        margin-top: 1;
        align: center middle;
    }

    #delete-buttons Button {
        min-width: 14;
        margin: 0 2;
    }
    """

    BINDINGS = [
        Binding("escape", "keep", "Keep"),
        Binding("n", "keep", "Keep"),
        Binding("y", "delete", "Delete"),
    ]

    def __init__(self, subject: str, losses: list[str]):
        super().__init__()
        self.subject = subject
        self.losses = losses

    def compose(self) -> ComposeResult:
        with Vertical(id="delete-dialog"):
            yield Label(f"Delete {self.subject}?", id="delete-title")
            for loss in self.losses:
                yield Label(f"- {loss}", classes="delete-loss")
            yield Label("Deleted work cannot be recovered.", id="delete-hint")
            with Horizontal(id="delete-buttons"):
                yield Button("Delete (Y)", variant="error", id="delete")
                yield Button("Keep (N)", variant="primary", id="keep")

    def on_mount(self) -> None:
        self.query_one("#keep", Button).focus()

    def on_button_pressed(self, event: Button.Pressed) -> None:
        self.dismiss(event.button.id == "delete")

    def action_delete(self) -> None:
        self.dismiss(True)

    def action_keep(self) -> None:
        self.dismiss(False)


_FORM_CSS = """
    {screen} {{
        align: center middle;
    }}

    #form-dialog {{
        width: 64;
        height: auto;
        padding: 1 2;
        background: $surface;
        border: thick $primary;
    }}

    #form-title {{
        width: 100%;
        text-align: center;
        text-style: bold;
        margin-bottom: 1;
    }}

    .field-label {{
        height: 1;
        color: $text-muted;
    }}

    #form-dialog Input {{
        width: 100%;
        margin-bottom: 1;
    }}

    #form-buttons {{
        width: 100%;
        height: auto;
        align: center middle;
    }}

    #form-buttons Button {{
        width: auto;
        min-width: 12;
        margin: 0 2;
    }}
"""


class NewProjectScreen(ModalScreen[tuple[str, str] | None]):
    """Modal screen asking for a new project's name and description."""

    CSS = _FORM_CSS.format(screen="NewProjectScreen")

    BINDINGS = [
        Binding("escape", "cancel", "Cancel"),
    ]

    def compose(self) -> ComposeResult:
        with Vertical(id="form-dialog"):
            yield Label("New Project", id="form-title")
            yield Label("Name", classes="field-label")
            yield Input(placeholder="Client website", id="project-name")
            yield Label("Description", classes="field-label")
            yield Input(placeholder="Optional", id="project-description")
            with Horizontal(id="form-buttons"):
                yield Button("Create", variant="primary", id="save")
                yield Button("Cancel", variant="default", id="cancel")

    def on_mount(self) -> None:
        self.query_one("#project-name", Input).focus()

    def on_input_submitted(self, event: Input.Submitted) -> None:
        """Move to next field or save."""
        if event.input.id == "project-name":
            self.query_one("#project-description", Input).focus()
        else:
            self._save()

    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "cancel":
            self.dismiss(None)
        elif event.button.id == "save":
            self._save()

    def action_cancel(self) -> None:
        self.dismiss(None)

    def _save(self) -> None:
        name = self.query_one("#project-name", Input).value.strip()
        description = self.query_one("#project-description", Input).value.strip()

        if not name:
            self.app.notify("Project name is required", severity="error")
            return

        self.dismiss((name, description))


class StartWorkScreen(ModalScreen[Payment | None]):
    """Modal screen choosing the payment policy for a new work slice."""

    CSS = _FORM_CSS.format(screen="StartWorkScreen")

    BINDINGS = [
        Binding("escape", "cancel", "Cancel"),
    ]

    def __init__(self, project_name: str, default_rate: Money):
        super().__init__()
        self.project_name = project_name
        self.default_rate = default_rate

    def compose(self) -> ComposeResult:
        default_amount = f"{self.default_rate.pence // 100}.{self.default_rate.pence % 100:02d}"
        with Vertical(id="form-dialog"):
            yield Label(f"Start work: {self.project_name}", id="form-title")
            yield Label("Payment (H = hourly, F = fixed)", classes="field-label")
            yield Input(value="H", max_length=1, id="payment-kind")
            yield Label("Amount (£)", classes="field-label")
            yield Input(value=default_amount, id="payment-amount")
            with Horizontal(id="form-buttons"):
                yield Button("Start", variant="primary", id="save")
                yield Button("Cancel", variant="default", id="cancel")

    def on_mount(self) -> None:
        self.query_one("#payment-amount", Input).focus()

    def on_input_submitted(self, event: Input.Submitted) -> None:
        if event.input.id == "payment-kind":
            self.query_one("#payment-amount", Input).focus()
        else:
            self._save()

    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "cancel":
            self.dismiss(None)
        elif event.button.id == "save":
            self._save()

    def action_cancel(self) -> None:
        self.dismiss(None)

    def _save(self) -> None:
        kind = payment_kind_from_code(self.query_one("#payment-kind", Input).value)
        if kind is None:
            self.app.notify("Invalid payment type. Use H or F", severity="error")
            return

        amount = parse_money(self.query_one("#payment-amount", Input).value)
        if amount is None:
            self.app.notify("Invalid amount, e.g. 12.50", severity="error")
            return

        payment = Payment.hourly(amount) if kind == HOURLY else Payment.fixed(amount)
        self.dismiss(payment)
