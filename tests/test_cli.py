"""Tests for the nudge command line."""

import pytest
from datetime import datetime, timezone
from unittest.mock import patch, MagicMock
from typer.testing import CliRunner

from nudge.config import Settings
from nudge.Email import RawTextDraft, StructuredDraft
from nudge.errors import GenerationError, SchedulingError, SendError, UnsupportedPlatformError
from nudge.Mailer import EmailSendResult
from nudge.main import app
from nudge.Reminder import ReminderRequest
from nudge.Scheduler import ScheduledReminder

runner = CliRunner()

WHEN = datetime(2030, 12, 1, 9, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def settings(tmp_path):
    """Never read the user's real config."""
    settings = Settings(storage_dir=str(tmp_path / "store"), smtp_from="bot@example.com")
    with patch("nudge.main.load_settings", return_value=settings):
        yield settings


def _mock_scheduler(task="water plants"):
    scheduler = MagicMock()
    scheduler.schedule.side_effect = lambda request: ScheduledReminder(
        id="reminder-1-abcdef",
        task=request.task,
        when=request.when,
        platform="linux",
        unit="reminder-1-abcdef.timer",
        artifacts=[],
    )
    return scheduler


class TestRemindCommand:
    """Test the remind command."""

    @patch("nudge.main.select_scheduler")
    def test_free_text(self, mock_select):
        scheduler = _mock_scheduler()
        mock_select.return_value = scheduler

        result = runner.invoke(app, ["remind", "remind", "me", "to", "stretch", "in", "5", "minutes"])
        assert result.exit_code == 0, result.output
        request = scheduler.schedule.call_args.args[0]
        assert request.task == "stretch"
        assert "Reminder scheduled" in result.output

    @patch("nudge.main.select_scheduler")
    def test_quoted_text(self, mock_select):
        scheduler = _mock_scheduler()
        mock_select.return_value = scheduler

        result = runner.invoke(app, ["remind", "schedule water plants for 2030-12-01T09:00:00Z"])
        assert result.exit_code == 0, result.output
        assert scheduler.schedule.call_args.args[0] == ReminderRequest("water plants", WHEN)

    @patch("nudge.main.select_scheduler")
    def test_explicit_fields(self, mock_select):
        scheduler = _mock_scheduler()
        mock_select.return_value = scheduler

        result = runner.invoke(app, ["remind", "--task", "backup", "--at", "2030-12-01T09:00:00Z"])
        assert result.exit_code == 0, result.output
        assert scheduler.schedule.call_args.args[0] == ReminderRequest("backup", WHEN)

    @patch("nudge.main.select_scheduler")
    def test_explicit_minutes(self, mock_select):
        scheduler = _mock_scheduler()
        mock_select.return_value = scheduler

        result = runner.invoke(app, ["remind", "--task", "tea", "--in", "3"])
        assert result.exit_code == 0, result.output
        assert scheduler.schedule.call_args.args[0].task == "tea"

    @patch("nudge.main.select_scheduler")
    def test_unrecognized_text(self, mock_select):
        result = runner.invoke(app, ["remind", "hello", "world"])
        assert result.exit_code == 1
        assert "unrecognized reminder syntax" in result.output
        mock_select.assert_not_called()

    @patch("nudge.main.select_scheduler")
    def test_no_input(self, mock_select):
        result = runner.invoke(app, ["remind"])
        assert result.exit_code == 1
        mock_select.assert_not_called()

    @patch("nudge.main.select_scheduler")
    def test_at_without_task(self, mock_select):
        result = runner.invoke(app, ["remind", "--at", "2030-12-01T09:00:00Z"])
        assert result.exit_code == 1
        assert "--task" in result.output

    @patch("nudge.main.select_scheduler")
    def test_dry_run_does_not_schedule(self, mock_select):
        result = runner.invoke(
            app, ["remind", "--dry-run", "schedule water plants for 2030-12-01T09:00:00Z"]
        )
        assert result.exit_code == 0, result.output
        assert "Dry run" in result.output
        mock_select.assert_not_called()

    @patch("nudge.main.select_scheduler")
    def test_dry_run_rejects_past(self, mock_select):
        result = runner.invoke(
            app, ["remind", "--dry-run", "schedule water plants for 2001-01-01T09:00:00Z"]
        )
        assert result.exit_code == 1
        assert "past" in result.output

    @patch("nudge.main.select_scheduler")
    def test_out_of_range_offset(self, mock_select):
        result = runner.invoke(
            app, ["remind", "--dry-run", "remind me to x in 99999999 days"]
        )
        assert result.exit_code == 1
        assert "out of range" in result.output
        assert not isinstance(result.exception, OverflowError)

    @patch("nudge.main.select_scheduler")
    def test_unsupported_platform(self, mock_select):
        mock_select.side_effect = UnsupportedPlatformError("Unsupported platform: aix")
        result = runner.invoke(app, ["remind", "--task", "x", "--in", "5"])
        assert result.exit_code == 1
        assert "Unsupported platform" in result.output

    @patch("nudge.main.select_scheduler")
    def test_scheduling_error(self, mock_select):
        scheduler = MagicMock()
        scheduler.schedule.side_effect = SchedulingError("Failed to enable systemd timer")
        mock_select.return_value = scheduler
        result = runner.invoke(app, ["remind", "--task", "x", "--in", "5"])
        assert result.exit_code == 1
        assert "Failed to enable" in result.output

    @patch("nudge.main.parse_reminder_with_llm")
    @patch("nudge.main.select_scheduler")
    def test_llm_parsing(self, mock_select, mock_llm_parse):
        mock_select.return_value = _mock_scheduler()
        mock_llm_parse.return_value = ReminderRequest("water plants", WHEN)
        result = runner.invoke(app, ["remind", "--llm", "water", "plants", "tomorrow"])
        assert result.exit_code == 0, result.output
        assert mock_llm_parse.call_args.args[0] == "water plants tomorrow"

    def test_unknown_format(self):
        result = runner.invoke(app, ["remind", "--format", "xml", "--task", "x", "--in", "5"])
        assert result.exit_code == 1
        assert "unknown format" in result.output


class TestDraftCommand:
    """Test the draft command."""

    @patch("nudge.main.generate_email")
    def test_draft(self, mock_generate):
        mock_generate.return_value = StructuredDraft("Launch", "It is live.")
        result = runner.invoke(app, ["draft", "alice@example.com", "launch", "--tone", "friendly"])
        assert result.exit_code == 0, result.output
        assert "Launch" in result.output
        args, kwargs = mock_generate.call_args
        assert args[:2] == ("alice@example.com", "launch")
        assert kwargs["tone"] == "friendly"

    @patch("nudge.main.generate_email")
    def test_draft_generation_error(self, mock_generate):
        mock_generate.side_effect = GenerationError("text generation failed: timeout")
        result = runner.invoke(app, ["draft", "alice@example.com", "launch"])
        assert result.exit_code == 1
        assert "text generation failed" in result.output


class TestSendCommand:
    """Test the send command."""

    @patch("nudge.main.Mailer")
    def test_send(self, mock_mailer_cls):
        mock_mailer_cls.return_value.send.return_value = EmailSendResult(True, "a@example.com")
        result = runner.invoke(app, ["send", "a@example.com", "Hi", "Body"])
        assert result.exit_code == 0, result.output
        assert "Email sent to" in result.output
        mock_mailer_cls.return_value.send.assert_called_once_with(
            "a@example.com", "Hi", "Body", html=False
        )

    @patch("nudge.main.Mailer")
    def test_send_failure(self, mock_mailer_cls):
        mock_mailer_cls.return_value.send.side_effect = SendError("failed to send email")
        result = runner.invoke(app, ["send", "a@example.com", "Hi", "Body"])
        assert result.exit_code == 1
        assert "failed to send email" in result.output


class TestEmailCommand:
    """Test the generate-then-send pipeline."""

    @patch("nudge.main.Mailer")
    @patch("nudge.main.generate_email")
    def test_generates_and_sends(self, mock_generate, mock_mailer_cls):
        mock_generate.return_value = RawTextDraft("Plain body")
        mock_mailer_cls.return_value.send.return_value = EmailSendResult(True, "a@example.com")

        result = runner.invoke(app, ["email", "a@example.com", "launch"])
        assert result.exit_code == 0, result.output
        mock_mailer_cls.return_value.send.assert_called_once_with(
            "a@example.com", "Draft email", "Plain body", html=False
        )

    @patch("nudge.main.Mailer")
    @patch("nudge.main.generate_email")
    def test_dry_run_skips_send(self, mock_generate, mock_mailer_cls):
        mock_generate.return_value = StructuredDraft("S", "B")
        result = runner.invoke(app, ["email", "a@example.com", "launch", "--dry-run"])
        assert result.exit_code == 0, result.output
        mock_mailer_cls.assert_not_called()

    @patch("nudge.main.Mailer")
    @patch("nudge.main.generate_email")
    def test_invalid_recipient_stops_before_generation(self, mock_generate, mock_mailer_cls):
        result = runner.invoke(app, ["email", "alice", "launch"])
        assert result.exit_code == 1
        assert "not an email address" in result.output
        mock_generate.assert_not_called()

    @patch("nudge.main.Mailer")
    @patch("nudge.main.generate_email")
    def test_generation_error_stops_pipeline(self, mock_generate, mock_mailer_cls):
        mock_generate.side_effect = GenerationError("text generation failed")
        result = runner.invoke(app, ["email", "a@example.com", "launch"])
        assert result.exit_code == 1
        mock_mailer_cls.return_value.send.assert_not_called()
