"""Main CLI interface for nudge."""

import logging
from typing import List, Optional
import typer
from rich.console import Console
from rich.markup import escape

from nudge import config
from nudge.config import load_settings
from nudge.Email import generate_email
from nudge.errors import NudgeError, ValidationError
from nudge.LLMHandler import LLMHandler
from nudge.Mailer import Mailer, is_email_address
from nudge.Reminder import (
    build_request,
    parse_reminder_text,
    parse_reminder_with_llm,
    validate_request,
)
from nudge.ResultFormatter import ResultFormatter, OUTPUT_FORMATS
from nudge.Scheduler import select_scheduler


app = typer.Typer()
console = Console()
err_console = Console(stderr=True)
formatter = ResultFormatter(console)


@app.callback()
def callback(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
):
    """
    nudge - draft and send emails, schedule desktop reminders
    """
    settings = load_settings()
    config.setup_logging(verbose or settings.verbose)
    ctx.obj = settings


def _fail(e: Exception):
    err_console.print(f"[red]Error: {escape(str(e))}[/red]")
    raise typer.Exit(code=1)


def _check_format(output_format: str):
    if output_format not in OUTPUT_FORMATS:
        err_console.print(
            f"[red]Error: unknown format '{escape(output_format)}'. Choose from: {', '.join(OUTPUT_FORMATS)}[/red]"
        )
        raise typer.Exit(code=1)


def _reminder_request(settings, text, task, at, minutes, use_llm):
    """Build the request from free text or from explicit fields."""
    if task:
        return build_request(task, at=at, minutes=minutes)
    if at is not None or minutes is not None:
        raise ValidationError("--at and --in need --task")
    if not text:
        raise ValidationError(
            "provide reminder text, or --task with --at or --in"
        )
    if use_llm:
        return parse_reminder_with_llm(text, LLMHandler(settings))
    return parse_reminder_text(text)


@app.command()
def remind(
    ctx: typer.Context,
    text: Optional[List[str]] = typer.Argument(
        None,
        help="Free text, e.g. 'remind me to stretch in 5 minutes' or 'schedule backup for 2025-12-01T09:00:00Z'",
    ),
    task: Optional[str] = typer.Option(None, "--task", "-t", help="Task text (skips parsing)"),
    at: Optional[str] = typer.Option(
        None, "--at", help="When to fire: ISO timestamp or natural date (with --task)"
    ),
    minutes: Optional[int] = typer.Option(
        None, "--in", help="Fire in N minutes (with --task)"
    ),
    use_llm: bool = typer.Option(
        False, "--llm", help="Let the language model parse the text"
    ),
    dry_run: bool = typer.Option(
        False, "--dry-run", help="Parse and validate only, don't schedule"
    ),
    output_format: str = typer.Option(
        "table", "--format", "-f", help="Output format: table, json"
    ),
):
    """Schedule a one-shot desktop notification."""
    _check_format(output_format)
    settings = ctx.obj
    raw = " ".join(text or []).strip()
    try:
        request = _reminder_request(settings, raw, task, at, minutes, use_llm)
        logging.debug(f"reminder request: {request}")
        if dry_run:
            validate_request(request)
            formatter.print_request(request, output_format)
            return
        scheduler = select_scheduler(settings)
        reminder = scheduler.schedule(request)
    except NudgeError as e:
        _fail(e)

    formatter.print_reminder(reminder, output_format)


@app.command()
def draft(
    ctx: typer.Context,
    recipient: str = typer.Argument(..., help="Recipient email address or name"),
    topic: str = typer.Argument(..., help="What the email is about"),
    tone: Optional[str] = typer.Option(None, "--tone", help="e.g. friendly, formal"),
    output_format: str = typer.Option(
        "table", "--format", "-f", help="Output format: table, json"
    ),
):
    """Generate an email draft without sending it."""
    _check_format(output_format)
    try:
        result = generate_email(recipient, topic, LLMHandler(ctx.obj), tone=tone)
    except NudgeError as e:
        _fail(e)
    formatter.print_draft(result, output_format)


@app.command()
def send(
    ctx: typer.Context,
    recipient: str = typer.Argument(..., help="Recipient email address"),
    subject: str = typer.Argument(..., help="Subject line"),
    body: str = typer.Argument(..., help="Message body"),
    html: bool = typer.Option(False, "--html", help="Send the body as HTML"),
):
    """Send an email over SMTP."""
    try:
        result = Mailer(ctx.obj).send(recipient, subject, body, html=html)
    except NudgeError as e:
        _fail(e)
    formatter.print_send_result(result)


@app.command()
def email(
    ctx: typer.Context,
    recipient: str = typer.Argument(..., help="Recipient email address"),
    topic: str = typer.Argument(..., help="What the email is about"),
    tone: Optional[str] = typer.Option(None, "--tone", help="e.g. friendly, formal"),
    html: bool = typer.Option(False, "--html", help="Send the body as HTML"),
    dry_run: bool = typer.Option(
        False, "--dry-run", help="Show the draft, don't send it"
    ),
):
    """Generate an email with the language model and send it."""
    settings = ctx.obj
    try:
        if not is_email_address(recipient):
            raise ValidationError(f"not an email address: {recipient!r}")
        result = generate_email(recipient, topic, LLMHandler(settings), tone=tone)
        formatter.print_draft(result)
        if dry_run:
            return
        sent = Mailer(settings).send(recipient, result.subject, result.body, html=html)
    except NudgeError as e:
        _fail(e)
    formatter.print_send_result(sent)


def main():
    app(prog_name="nudge")


if __name__ == "__main__":
    main()
