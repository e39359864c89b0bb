import json
import logging
import re
from typing import Any, Optional

from openai import OpenAI, OpenAIError

from nudge.config import Settings
from nudge.errors import GenerationError
from nudge.template_helpers import render_template

logger = logging.getLogger(__name__)

MAX_TOKENS = 500
CODE_FENCE_RE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL | re.IGNORECASE)


def extract_json(text: Optional[str]) -> Optional[Any]:
    """Parse model output as JSON, tolerating a ```json fence. None if it isn't JSON."""
    if not text:
        return None
    text = text.strip()
    fenced = CODE_FENCE_RE.match(text)
    if fenced:
        text = fenced.group(1)
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        logger.debug(f"model output is not JSON: {e}")
        return None


class LLMHandler:
    """
    LLMHandler sends prompts to an OpenAI-compatible chat completion API.
    """

    def __init__(self, settings: Settings, client=None):
        self.settings = settings
        self._client = client

    @property
    def client(self):
        if self._client is None:
            if not self.settings.openai_api_key:
                raise GenerationError("OPENAI_API_KEY is not set")
            self._client = OpenAI(
                api_key=self.settings.openai_api_key,
                base_url=self.settings.openai_base_url,
            )
        return self._client

    @staticmethod
    def render_prompt(filename: str, **params: str) -> str:
        """Load a prompt template from the package and fill it in."""
        return render_template(filename, **params)

    def complete(self, prompt: str, json_mode: bool = False) -> str:
        """
        Send a single user prompt and return the generated text.

        Returns an empty string when the model produced no content.

        Raises:
            GenerationError: if the API call fails
        """
        extra = {"response_format": {"type": "json_object"}} if json_mode else {}
        logger.debug(f"completion request to {self.settings.model} ({len(prompt)} chars)")
        try:
            response = self.client.chat.completions.create(
                model=self.settings.model,
                messages=[{"role": "user", "content": prompt}],
                max_tokens=MAX_TOKENS,
                **extra,
            )
        except OpenAIError as e:
            logger.error(f"Text generation failed: {e}")
            raise GenerationError(f"text generation failed: {e}") from e

        if not response.choices:
            return ""
        content = response.choices[0].message.content
        return (content or "").strip()
