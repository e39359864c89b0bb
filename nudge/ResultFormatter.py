"""Result formatting and display utilities."""

from typing import Optional
from datetime import datetime
import json
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from nudge.Email import EmailDraft
from nudge.Mailer import EmailSendResult
from nudge.Reminder import ReminderRequest
from nudge.Scheduler import ScheduledReminder

# Valid output formats
OUTPUT_FORMATS = ("table", "json")


class ResultFormatter:
    """Handles formatting and displaying pipeline results."""

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console()

    @staticmethod
    def _timestamp(value: datetime) -> str:
        return value.isoformat(timespec="seconds")

    @staticmethod
    def _local(value: datetime) -> str:
        return value.astimezone().strftime("%Y-%m-%d %H:%M %Z").strip()

    @staticmethod
    def reminder_to_dict(reminder: ScheduledReminder) -> dict:
        """Serialize a ScheduledReminder to a plain dict (for JSON export)."""
        return {
            "id": reminder.id,
            "task": reminder.task,
            "when": ResultFormatter._timestamp(reminder.when),
            "platform": reminder.platform,
            "unit": reminder.unit,
            "artifacts": list(reminder.artifacts),
        }

    @staticmethod
    def request_to_dict(request: ReminderRequest) -> dict:
        return {"task": request.task, "when": ResultFormatter._timestamp(request.when)}

    @staticmethod
    def draft_to_dict(draft: EmailDraft) -> dict:
        return {
            "subject": draft.subject,
            "body": draft.body,
            "structured": draft.structured,
        }

    def _print_json(self, data) -> None:
        self.console.print(
            json.dumps(data, indent=2), markup=False, highlight=False, soft_wrap=True
        )

    def print_reminder(self, reminder: ScheduledReminder, output_format: str = "table"):
        """Print a scheduled reminder as a table or JSON."""
        if output_format == "json":
            self._print_json(self.reminder_to_dict(reminder))
            return

        table = Table(title="Reminder scheduled", show_header=False)
        table.add_column("Field", style="dim", no_wrap=True)
        table.add_column("Value", style="bold")
        table.add_row("Task", escape(reminder.task))
        table.add_row("When", f"[green]{self._local(reminder.when)}[/green]")
        table.add_row("Platform", reminder.platform)
        table.add_row("Unit", escape(reminder.unit))
        table.add_row("ID", f"[dim]{reminder.id}[/dim]")
        for path in reminder.artifacts:
            table.add_row("File", f"[dim]{escape(path)}[/dim]")
        self.console.print(table)

    def print_request(self, request: ReminderRequest, output_format: str = "table"):
        """Print a parsed (not scheduled) reminder."""
        if output_format == "json":
            self._print_json(self.request_to_dict(request))
            return
        self.console.print(
            f"[yellow]Dry run:[/yellow] would remind [bold]{escape(request.task)}[/bold] "
            f"at [green]{self._local(request.when)}[/green]"
        )

    def print_draft(self, draft: EmailDraft, output_format: str = "table"):
        """Print a generated draft."""
        if output_format == "json":
            self._print_json(self.draft_to_dict(draft))
            return
        title = f"Subject: {draft.subject}"
        if not draft.structured:
            title += " (unstructured)"
        self.console.print(Panel(Text(draft.body), title=escape(title), title_align="left"))

    def print_send_result(self, result: EmailSendResult, output_format: str = "table"):
        if output_format == "json":
            self._print_json({"success": result.success, "recipient": result.recipient})
            return
        if result.success:
            self.console.print(f"[green]Email sent to[/green] {escape(result.recipient)}")
        else:
            self.console.print(f"[red]Email not sent to[/red] {escape(result.recipient)}")
