"""Error types raised by nudge operations."""


class NudgeError(Exception):
    """Base class for every error nudge reports to the user."""


class ParseError(NudgeError):
    """Free text could not be turned into a reminder."""


class ValidationError(NudgeError):
    """Input is well-formed but not acceptable (past timestamp, missing field)."""


class UnsupportedPlatformError(NudgeError):
    """No scheduling backend exists for the running platform."""


class GenerationError(NudgeError):
    """The text-generation service call failed."""


class SendError(NudgeError):
    """The mail transport refused or failed to deliver a message."""


class SchedulingError(NudgeError):
    """The OS scheduler rejected a registration or its files could not be written."""
