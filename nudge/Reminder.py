from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional, Union
import logging
import re

import dateparser

from nudge.errors import ParseError, ValidationError

logger = logging.getLogger(__name__)

UNRECOGNIZED = "unrecognized reminder syntax"

# "remind me to <task> in <N> <unit>"
RELATIVE_RE = re.compile(
    r"remind me to\s+(.+?)\s+in\s+(\d+)\s*(minutes?|mins?|hours?|hrs?|days?)\b",
    re.IGNORECASE,
)
# "schedule|set <task> for <date-string>"
SCHEDULE_RE = re.compile(r"\b(?:schedule|set)\s+(.+?)\s+for\s+(.+)", re.IGNORECASE)
ISO_TS_RE = re.compile(
    r"\d{4}-\d{2}-\d{2}T\d{2}:\d{2}(?::\d{2}(?:\.\d+)?)?(?:Z|[+-]\d{2}:\d{2})?"
)
LEADING_FILLER_RE = re.compile(r"^\s*remind me(?:\s+to)?\b", re.IGNORECASE)
TRAILING_FILLER_RE = re.compile(r"(?:^|\s+)(?:at|on|by)\s*$", re.IGNORECASE)

UNIT_MINUTES = {"m": 1, "h": 60, "d": 24 * 60}

DATEPARSER_SETTINGS = {"PREFER_DATES_FROM": "future"}


def _as_aware(value: datetime) -> datetime:
    """Interpret naive datetimes as local time."""
    if value.tzinfo is None:
        return value.astimezone()
    return value


def _now(now: Optional[datetime]) -> datetime:
    return _as_aware(now) if now is not None else datetime.now(timezone.utc)


def _minutes_after(current: datetime, minutes: int) -> datetime:
    try:
        return current + timedelta(minutes=minutes)
    except (OverflowError, ValueError) as e:
        raise ValidationError("time is out of range") from e


@dataclass(frozen=True)
class ReminderRequest:
    """A task paired with the moment it should fire."""

    task: str
    when: datetime

    def __post_init__(self):
        object.__setattr__(self, "when", _as_aware(self.when))


def parse_iso_timestamp(value: str) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp (trailing Z allowed), or return None."""
    value = value.strip()
    if value.endswith(("Z", "z")):
        value = value[:-1] + "+00:00"
    try:
        return _as_aware(datetime.fromisoformat(value))
    except ValueError:
        return None


def parse_when(value: str, now: Optional[datetime] = None) -> Optional[datetime]:
    """Parse a date string: ISO first, then natural language via dateparser."""
    parsed = parse_iso_timestamp(value)
    if parsed is not None:
        return parsed
    settings = dict(DATEPARSER_SETTINGS)
    if now is not None:
        settings["RELATIVE_BASE"] = _as_aware(now).astimezone().replace(tzinfo=None)
    parsed = dateparser.parse(value, settings=settings)
    if parsed is None:
        return None
    return _as_aware(parsed)


def _strip_filler(text: str) -> str:
    text = LEADING_FILLER_RE.sub("", text)
    text = " ".join(text.split())
    return TRAILING_FILLER_RE.sub("", text).strip(" ,.")


def parse_reminder_text(text: str, now: Optional[datetime] = None) -> ReminderRequest:
    """
    Parse free text into a ReminderRequest.

    Patterns are tried in order and the first match wins:
        remind me to stretch in 5 minutes
        schedule water plants for 2025-12-01T09:00:00Z
        remind me to call mom at 2025-12-01T18:30

    Raises:
        ParseError: if no pattern matches
        ValidationError: if the relative offset is out of range
    """
    raw = (text or "").strip()
    if not raw:
        raise ParseError(UNRECOGNIZED)
    current = _now(now)

    match = RELATIVE_RE.search(raw)
    if match:
        task = match.group(1).strip()
        amount = int(match.group(2))
        unit = match.group(3).lower()[0]
        when = _minutes_after(current, amount * UNIT_MINUTES[unit])
        logger.debug(f"relative reminder: {task!r} in {amount}{unit}")
        return ReminderRequest(task=task, when=when)

    match = SCHEDULE_RE.search(raw)
    if match:
        task = match.group(1).strip()
        when = parse_when(match.group(2).strip(), current)
        if when is not None and task:
            logger.debug(f"scheduled reminder: {task!r} for {when.isoformat()}")
            return ReminderRequest(task=task, when=when)
        logger.debug(f"could not parse date {match.group(2)!r}, trying ISO search")

    match = ISO_TS_RE.search(raw)
    if match:
        when = parse_iso_timestamp(match.group(0))
        task = _strip_filler(raw[: match.start()] + " " + raw[match.end() :])
        if when is not None and task:
            return ReminderRequest(task=task, when=when)

    raise ParseError(UNRECOGNIZED)


def build_request(
    task: str,
    at: Union[str, datetime, None] = None,
    minutes: Optional[int] = None,
    now: Optional[datetime] = None,
) -> ReminderRequest:
    """Build a ReminderRequest from explicit fields: task plus either `at` or `minutes`."""
    task = (task or "").strip()
    if not task:
        raise ValidationError("task is required")
    if at is not None and minutes is not None:
        raise ValidationError("give either a date/time or a number of minutes, not both")
    if at is None and minutes is None:
        raise ValidationError("a date/time or a number of minutes is required")

    current = _now(now)
    if minutes is not None:
        if minutes <= 0:
            raise ValidationError("minutes must be a positive number")
        return ReminderRequest(task=task, when=_minutes_after(current, minutes))

    if isinstance(at, datetime):
        return ReminderRequest(task=task, when=at)
    when = parse_when(at, current)
    if when is None:
        raise ParseError(f"could not parse date/time: {at}")
    return ReminderRequest(task=task, when=when)


def validate_request(request: ReminderRequest, now: Optional[datetime] = None) -> None:
    """Reject requests whose time is not strictly in the future."""
    if not request.task.strip():
        raise ValidationError("task is required")
    current = _now(now)
    if request.when <= current:
        raise ValidationError(
            f"scheduled time is in the past: {request.when.isoformat()}"
        )


def parse_reminder_with_llm(
    text: str, handler, now: Optional[datetime] = None
) -> ReminderRequest:
    """
    Ask the text-generation service to extract {task, datetime} from free text.

    Raises:
        ParseError: if the model answer is not a task plus an ISO timestamp
        GenerationError: if the service call fails
    """
    from nudge.LLMHandler import extract_json

    raw = (text or "").strip()
    if not raw:
        raise ParseError(UNRECOGNIZED)
    current = _now(now).astimezone(timezone.utc)
    prompt = handler.render_prompt(
        "reminder_prompt.txt",
        now=current.isoformat(timespec="seconds").replace("+00:00", "Z"),
        text=raw,
    )
    answer = handler.complete(prompt, json_mode=True)
    payload = extract_json(answer)
    if not isinstance(payload, dict):
        raise ParseError(f"{UNRECOGNIZED}: model did not return JSON")
    task = payload.get("task")
    stamp = payload.get("datetime")
    if not isinstance(task, str) or not task.strip() or not isinstance(stamp, str):
        raise ParseError(f"{UNRECOGNIZED}: model answer lacks task or datetime")
    when = parse_iso_timestamp(stamp)
    if when is None:
        raise ParseError(f"{UNRECOGNIZED}: model returned invalid datetime {stamp!r}")
    return ReminderRequest(task=task.strip(), when=when)
