"""One-shot OS notification scheduling, one class per platform."""

import logging
import os
import plistlib
import shlex
import subprocess
import sys
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Optional

from nudge.config import Settings
from nudge.errors import SchedulingError, UnsupportedPlatformError
from nudge.Reminder import ReminderRequest, validate_request
from nudge.template_helpers import render_template

logger = logging.getLogger(__name__)

COMMAND_TIMEOUT = 30
SYSTEMD_USER_DIR = "~/.config/systemd/user"
LAUNCH_AGENTS_DIR = "~/Library/LaunchAgents"

Runner = Callable[[list], subprocess.CompletedProcess]


def run_command(args: list) -> subprocess.CompletedProcess:
    """Run a registration command, capturing its output."""
    logger.debug(f"running: {' '.join(args)}")
    return subprocess.run(
        args, capture_output=True, text=True, timeout=COMMAND_TIMEOUT
    )


def new_reminder_id() -> str:
    """Time-derived identifier, unique even for calls within the same clock tick."""
    return f"reminder-{time.time_ns()}-{uuid.uuid4().hex[:6]}"


def _escape_applescript(s: str) -> str:
    """Quote a string as an AppleScript string literal."""
    return '"' + s.replace("\\", "\\\\").replace('"', '\\"') + '"'


def _escape_powershell(s: str) -> str:
    """Quote a string as a single-quoted PowerShell literal."""
    return "'" + s.replace("'", "''") + "'"


def _escape_systemd(s: str) -> str:
    """Quote a single argument for a systemd Exec line."""
    return '"' + s.replace("\\", "\\\\").replace('"', '\\"') + '"'


@dataclass
class ScheduledReminder:
    """A reminder registered with the OS scheduler."""

    id: str
    task: str
    when: datetime
    platform: str
    unit: str
    artifacts: list[str] = field(default_factory=list)


class PlatformScheduler:
    """
    Base class for the per-platform scheduling backends.

    Subclasses implement _register(), which writes descriptor files and runs
    the registration command(s) for one reminder.
    """

    platform = ""

    def __init__(self, settings: Settings, runner: Optional[Runner] = None):
        self.settings = settings
        self.runner = runner or run_command
        self._written: list = []

    @property
    def storage_dir(self) -> Path:
        return Path(self.settings.storage_dir).expanduser()

    @property
    def title(self) -> str:
        return self.settings.notification_title

    def schedule(
        self, request: ReminderRequest, now: Optional[datetime] = None
    ) -> ScheduledReminder:
        """
        Register a one-shot notification for the request.

        Raises:
            ValidationError: if the request time is not in the future
            SchedulingError: if files cannot be written or a command fails
        """
        validate_request(request, now)
        reminder_id = new_reminder_id()
        logger.info(
            f"Scheduling {reminder_id} via {self.platform} for {request.when.isoformat()}"
        )
        self._written = []
        try:
            reminder = self._register(reminder_id, request)
        except SchedulingError:
            self._remove_written()
            raise
        logger.debug(f"artifacts: {reminder.artifacts}")
        return reminder

    def _register(self, reminder_id: str, request: ReminderRequest) -> ScheduledReminder:
        raise NotImplementedError

    def _write(self, path: Path, content: str, mode: int = 0o644) -> str:
        """Create a new file; never overwrite an existing one."""
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "x", encoding="utf-8") as fh:
                self._written.append(path)
                fh.write(content)
            os.chmod(path, mode)
        except FileExistsError as e:
            raise SchedulingError(f"refusing to overwrite existing file: {path}") from e
        except OSError as e:
            raise SchedulingError(f"cannot write {path}: {e}") from e
        return str(path)

    def _remove_written(self) -> None:
        """Delete the files written for a registration that failed."""
        for path in reversed(self._written):
            try:
                path.unlink(missing_ok=True)
            except OSError as e:
                logger.warning(f"could not remove {path}: {e}")
        self._written = []

    def _run(self, args: list, what: str) -> subprocess.CompletedProcess:
        """Run a command through the runner; non-zero exit is fatal."""
        try:
            result = self.runner(args)
        except FileNotFoundError as e:
            raise SchedulingError(f"{what}: command not found: {args[0]}") from e
        except subprocess.TimeoutExpired as e:
            raise SchedulingError(f"{what}: {args[0]} timed out") from e
        if result.returncode != 0:
            detail = (result.stderr or result.stdout or "").strip()
            raise SchedulingError(
                f"{what} failed (exit {result.returncode}): {detail or 'no output'}"
            )
        return result

    def _notify_script(self, reminder_id: str, task: str) -> str:
        script = render_template(
            "notify-send.sh", title=shlex.quote(self.title), message=shlex.quote(task)
        )
        return self._write(self.storage_dir / f"{reminder_id}.sh", script, 0o755)


class SystemdScheduler(PlatformScheduler):
    """Linux: oneshot service plus calendar timer under systemd --user."""

    platform = "linux"

    def __init__(self, settings, runner=None, unit_dir: Optional[str] = None):
        super().__init__(settings, runner)
        self.unit_dir = Path(os.path.expanduser(unit_dir or SYSTEMD_USER_DIR))

    def _remove_written(self) -> None:
        removed_units = any(p.parent == self.unit_dir for p in self._written)
        super()._remove_written()
        if not removed_units:
            return
        # forget units loaded by an earlier daemon-reload
        try:
            self.runner(["systemctl", "--user", "daemon-reload"])
        except (OSError, subprocess.TimeoutExpired) as e:
            logger.warning(f"daemon-reload after cleanup failed: {e}")

    def _register(self, reminder_id, request):
        script = self._notify_script(reminder_id, request.task)
        service = self._write(
            self.unit_dir / f"{reminder_id}.service",
            render_template(
                "reminder.service", id=reminder_id, script=_escape_systemd(script)
            ),
        )
        on_calendar = request.when.astimezone(timezone.utc).strftime(
            "%Y-%m-%d %H:%M:%S UTC"
        )
        timer_name = f"{reminder_id}.timer"
        timer = self._write(
            self.unit_dir / timer_name,
            render_template("reminder.timer", id=reminder_id, on_calendar=on_calendar),
        )

        self._run(
            ["systemctl", "--user", "daemon-reload"],
            "Failed to reload systemd --user",
        )
        self._run(
            ["systemctl", "--user", "enable", "--now", timer_name],
            "Failed to enable systemd timer",
        )
        return ScheduledReminder(
            id=reminder_id,
            task=request.task,
            when=request.when,
            platform=self.platform,
            unit=timer_name,
            artifacts=[script, service, timer],
        )


class AtScheduler(PlatformScheduler):
    """Linux: notifier script queued with at(1)."""

    platform = "linux"

    def _register(self, reminder_id, request):
        script = self._notify_script(reminder_id, request.task)
        stamp = request.when.astimezone().strftime("%Y%m%d%H%M")
        result = self._run(["at", "-f", script, "-t", stamp], "Failed to queue at job")
        # at reports "job N at <date>" on stderr
        job = (result.stderr or result.stdout or "").strip().splitlines()
        logger.debug(f"at: {job[-1] if job else 'no output'}")
        return ScheduledReminder(
            id=reminder_id,
            task=request.task,
            when=request.when,
            platform=self.platform,
            unit=reminder_id,
            artifacts=[script],
        )


class LaunchdScheduler(PlatformScheduler):
    """macOS: per-user LaunchAgent keyed by calendar fields."""

    platform = "darwin"

    def __init__(self, settings, runner=None, agents_dir: Optional[str] = None):
        super().__init__(settings, runner)
        self.agents_dir = Path(os.path.expanduser(agents_dir or LAUNCH_AGENTS_DIR))

    def _register(self, reminder_id, request):
        applescript = (
            f"display notification {_escape_applescript(request.task)} "
            f"with title {_escape_applescript(self.title)}"
        )
        label = f"com.local.{reminder_id}"
        plist_path = self.agents_dir / f"{label}.plist"
        # launchd ignores Year; the agent removes itself after firing
        script = self._write(
            self.storage_dir / f"{reminder_id}.sh",
            render_template(
                "osascript.sh",
                script=shlex.quote(applescript),
                plist=shlex.quote(str(plist_path)),
                label=shlex.quote(label),
            ),
            0o755,
        )

        local = request.when.astimezone()
        payload = {
            "Label": label,
            "ProgramArguments": ["/bin/bash", script],
            "StartCalendarInterval": {
                "Year": local.year,
                "Month": local.month,
                "Day": local.day,
                "Hour": local.hour,
                "Minute": local.minute,
            },
            "RunAtLoad": False,
        }
        plist = self._write(plist_path, plistlib.dumps(payload).decode("utf-8"))

        self._run(["launchctl", "load", "-w", plist], "Failed to load LaunchAgent")
        return ScheduledReminder(
            id=reminder_id,
            task=request.task,
            when=request.when,
            platform=self.platform,
            unit=label,
            artifacts=[script, plist],
        )


class SchtasksScheduler(PlatformScheduler):
    """Windows: one-time scheduled task showing a message box."""

    platform = "win32"

    def _register(self, reminder_id, request):
        script = self._write(
            self.storage_dir / f"{reminder_id}.ps1",
            render_template(
                "messagebox.ps1",
                message=_escape_powershell(request.task),
                title=_escape_powershell(self.title),
            ),
        )
        local = request.when.astimezone()
        task_name = f"Reminder_{reminder_id}"
        self._run(
            [
                "schtasks", "/Create",
                "/SC", "ONCE",
                "/TN", task_name,
                "/TR", f'powershell -ExecutionPolicy Bypass -File "{script}"',
                "/ST", local.strftime("%H:%M"),
                "/SD", local.strftime("%m/%d/%Y"),
                "/F",
            ],
            "Failed to create scheduled task",
        )
        return ScheduledReminder(
            id=reminder_id,
            task=request.task,
            when=request.when,
            platform=self.platform,
            unit=task_name,
            artifacts=[script],
        )


LINUX_SCHEDULERS = {"systemd": SystemdScheduler, "at": AtScheduler}
PLATFORM_SCHEDULERS = {"darwin": LaunchdScheduler, "win32": SchtasksScheduler}


def select_scheduler(
    settings: Settings, platform: Optional[str] = None, runner: Optional[Runner] = None
) -> PlatformScheduler:
    """
    Pick the scheduling backend for a platform (sys.platform by default).

    Raises:
        UnsupportedPlatformError: for anything but linux, darwin and win32
    """
    platform = platform or sys.platform
    if platform.startswith("linux"):
        cls = LINUX_SCHEDULERS.get(settings.linux_backend, SystemdScheduler)
    elif platform in PLATFORM_SCHEDULERS:
        cls = PLATFORM_SCHEDULERS[platform]
    else:
        raise UnsupportedPlatformError(f"Unsupported platform: {platform}")
    logger.debug(f"using {cls.__name__} for {platform}")
    return cls(settings, runner=runner)
