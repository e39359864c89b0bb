from dataclasses import dataclass
from typing import ClassVar, Optional, Union
import logging

from nudge.errors import ValidationError
from nudge.LLMHandler import LLMHandler, extract_json

logger = logging.getLogger(__name__)

PLACEHOLDER_SUBJECT = "Draft email"
EMPTY_BODY = "Could not generate email content."


@dataclass(frozen=True)
class StructuredDraft:
    """Draft parsed from a well-formed JSON answer."""

    subject: str
    body: str
    structured: ClassVar[bool] = True


@dataclass(frozen=True)
class RawTextDraft:
    """Draft built from raw model text when the answer was not usable JSON."""

    body: str
    subject: str = PLACEHOLDER_SUBJECT
    structured: ClassVar[bool] = False


EmailDraft = Union[StructuredDraft, RawTextDraft]


def build_email_prompt(recipient: str, topic: str, tone: Optional[str] = None) -> str:
    """Build the instruction sent to the text-generation service."""
    return LLMHandler.render_prompt(
        "email_prompt.txt",
        recipient=recipient,
        topic=topic,
        tone_line=f"Tone: {tone}" if tone else "",
    )


def interpret_response(text: Optional[str]) -> EmailDraft:
    """Turn model output into a draft. Never raises."""
    if not text or not text.strip():
        return RawTextDraft(body=EMPTY_BODY)
    payload = extract_json(text)
    if isinstance(payload, dict):
        subject = _non_blank(payload.get("subject"))
        body = _non_blank(payload.get("body"))
        if subject and body:
            return StructuredDraft(subject=subject, body=body)
        if body:
            logger.info("Model answer has no usable subject, using placeholder")
            return RawTextDraft(body=body)
    logger.info("Model answer was not a subject/body object, using raw text")
    return RawTextDraft(body=text.strip())


def _non_blank(value) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def generate_email(
    recipient: str, topic: str, handler: LLMHandler, tone: Optional[str] = None
) -> EmailDraft:
    """
    Generate a draft email about `topic` for `recipient`.

    Raises:
        ValidationError: if recipient or topic is empty
        GenerationError: if the service call itself fails
    """
    if not (recipient or "").strip():
        raise ValidationError("recipient is required")
    if not (topic or "").strip():
        raise ValidationError("topic is required")
    prompt = build_email_prompt(recipient.strip(), topic.strip(), tone)
    return interpret_response(handler.complete(prompt))
