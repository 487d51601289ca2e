"""
Generation service: sends the prompt to OpenAI and pulls the exam JSON
out of whatever text comes back.
"""

import json
import logging
import re
from typing import Any, Dict, Optional

from openai import OpenAI

from errors import (
    ExamGenerationError,
    UnparseableResponse,
    UpstreamAuthFailure,
    UpstreamOther,
    UpstreamRequestRejected,
    UpstreamSchemaMismatch,
)
from exam_config import ExamConfig
from prompt_builder import build_prompt

logger = logging.getLogger(__name__)

# First "{" through the last "}" of the reply
_JSON_SPAN = re.compile(r"\{.*\}", re.DOTALL)

EXCERPT_LENGTH = 400


def make_client(api_key: str, timeout: float = 60.0) -> Optional[OpenAI]:
    """OpenAI client with a bounded timeout and no automatic retries."""
    if not api_key:
        return None
    return OpenAI(api_key=api_key, timeout=timeout, max_retries=0)


# ═══════════════════════════════════════════════════════════════════════
# REPLY PARSING
# ═══════════════════════════════════════════════════════════════════════

def collect_reply_text(response: Any) -> str:
    """Concatenate every text block of every message item, in order."""
    chunks = []
    for item in getattr(response, "output", None) or []:
        if getattr(item, "type", None) != "message":
            continue
        for block in getattr(item, "content", None) or []:
            if getattr(block, "type", None) == "output_text":
                chunks.append(block.text or "")
    return "".join(chunks)


def extract_json(text: str) -> Any:
    """
    Parse the JSON object embedded in a model reply.

    The whole reply is tried first; otherwise the greedy span from the
    first "{" to the last "}" is parsed. Raises UnparseableResponse.
    """
    stripped = (text or "").strip()
    if stripped.startswith("{"):
        try:
            return json.loads(stripped)
        except ValueError:
            pass

    match = _JSON_SPAN.search(stripped)
    if match:
        try:
            return json.loads(match.group(0))
        except ValueError as e:
            logger.error("JSON span in reply did not parse (%s): %s", e, (text or "")[:EXCERPT_LENGTH])
    else:
        logger.error("No JSON found in reply: %s", (text or "")[:EXCERPT_LENGTH])

    raise UnparseableResponse("AI returned an unexpected format. Please try again.")


def check_result_shape(data: Any) -> Dict[str, Any]:
    """Require top-level ``exam`` and ``markScheme`` objects; the rest passes through."""
    if not isinstance(data, dict):
        raise UpstreamSchemaMismatch("AI returned an incomplete exam. Please try again.")
    missing = [k for k in ("exam", "markScheme") if not isinstance(data.get(k), dict)]
    if missing:
        logger.error("Reply JSON lacks %s (keys: %s)", ", ".join(missing), sorted(data)[:10])
        raise UpstreamSchemaMismatch("AI returned an incomplete exam. Please try again.")
    return data


# ═══════════════════════════════════════════════════════════════════════
# ERROR CLASSIFICATION
# ═══════════════════════════════════════════════════════════════════════

def classify_upstream_error(exc: Exception) -> ExamGenerationError:
    status = getattr(exc, "status_code", None)
    message = getattr(exc, "message", None) or str(exc)

    if status == 401:
        return UpstreamAuthFailure(
            "Invalid OpenAI API key. Check your OPENAI_API_KEY environment variable."
        )
    if status == 400:
        return UpstreamRequestRejected(f"OpenAI API error: {message or 'Bad request format'}")
    return UpstreamOther(f"Failed to generate exam: {message or 'Unknown error'}")


# ═══════════════════════════════════════════════════════════════════════
# SERVICE
# ═══════════════════════════════════════════════════════════════════════

class ExamGenerator:
    """One request to the model per ``generate`` call; never retried."""

    def __init__(self, client: Optional[OpenAI], model: str, max_output_tokens: int = 8000):
        self.client = client
        self.model = model
        self.max_output_tokens = max_output_tokens

    @property
    def configured(self) -> bool:
        return self.client is not None

    def complete(self, prompt: str) -> str:
        if self.client is None:
            raise UpstreamAuthFailure(
                "OpenAI API key not configured. Please set the OPENAI_API_KEY environment variable."
            )
        try:
            response = self.client.responses.create(
                model=self.model,
                max_output_tokens=self.max_output_tokens,
                input=[{"role": "user", "content": prompt}],
            )
        except Exception as e:
            logger.exception(
                "Error calling OpenAI (status=%s): %s",
                getattr(e, "status_code", None), getattr(e, "message", e),
            )
            raise classify_upstream_error(e) from e
        return collect_reply_text(response)

    def generate(self, config: ExamConfig) -> Dict[str, Any]:
        """Return ``{"exam": ..., "markScheme": ...}`` for a validated config."""
        raw = self.complete(build_prompt(config))
        logger.info("Model replied with %d characters", len(raw))
        return check_result_shape(extract_json(raw))
