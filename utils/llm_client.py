"""
Gemini LLM client used for story analysis and assisted theme matching.

All transport failures are turned into one of three error types here, so
callers never have to inspect exception messages themselves:

- RateLimitError: the API refused the call because of request/token quotas
- TransientLLMError: timeouts, server errors, dropped connections
- FatalLLMError: the request itself is wrong (bad key, bad argument)
"""
from __future__ import annotations

import re
from typing import Any, Dict, Optional

import google.generativeai as genai
from google.api_core import exceptions as google_exceptions

from config.settings import settings
from utils.logger import get_logger

logger = get_logger(__name__)

# Phrases APIs use to say how long to wait, e.g. "Please try again in 7.5s",
# "retry after 20s", or Gemini's "retry_delay { seconds: 31 }"
RETRY_AFTER_PATTERNS = [
    re.compile(r"(?:try again|retry) (?:in|after) ([\d.]+)\s*s", re.IGNORECASE),
    re.compile(r"retry_delay\s*\{\s*seconds:\s*([\d.]+)", re.IGNORECASE),
    re.compile(r"retry-after:?\s*([\d.]+)", re.IGNORECASE),
]

RATE_LIMIT_MARKERS = ("429", "rate limit", "quota", "resourceexhausted", "resource exhausted", "too many requests")


class LLMError(Exception):
    """Base class for failures talking to the language model"""


class RateLimitError(LLMError):
    """The API rejected the call because a rate limit or quota was hit"""

    def __init__(self, message: str, retry_after: Optional[float] = None):
        super().__init__(message)
        self.retry_after = retry_after


class TransientLLMError(LLMError):
    """A failure that may succeed on retry (timeouts, 5xx, network)"""


class FatalLLMError(LLMError):
    """The request was rejected as invalid (auth, permissions, bad input)"""


def extract_retry_after(message: str) -> Optional[float]:
    """
    Pull an explicit wait time (seconds) out of an error message

    Args:
        message: Error text returned by the API

    Returns:
        Seconds to wait, or None if the message doesn't say
    """
    for pattern in RETRY_AFTER_PATTERNS:
        match = pattern.search(message or "")
        if match:
            try:
                return float(match.group(1))
            except ValueError:
                continue
    return None


def classify_error(exc: Exception) -> LLMError:
    """
    Map an exception raised by the Gemini SDK onto the LLMError hierarchy

    Args:
        exc: Exception raised while calling the API

    Returns:
        The matching LLMError instance (not raised)
    """
    if isinstance(exc, LLMError):
        return exc

    message = str(exc)
    lowered = message.lower()
    code = getattr(exc, "code", None)

    if isinstance(exc, (google_exceptions.ResourceExhausted, google_exceptions.TooManyRequests)) or code == 429:
        return RateLimitError(message, retry_after=extract_retry_after(message))
    if any(marker in lowered for marker in RATE_LIMIT_MARKERS):
        return RateLimitError(message, retry_after=extract_retry_after(message))

    if isinstance(exc, (
        google_exceptions.Unauthenticated,
        google_exceptions.PermissionDenied,
        google_exceptions.InvalidArgument,
        google_exceptions.NotFound,
    )):
        return FatalLLMError(message)
    if isinstance(code, int) and 400 <= code < 500:
        return FatalLLMError(message)

    # Timeouts, 5xx and anything we don't recognise are worth another try
    return TransientLLMError(message or exc.__class__.__name__)


class LLMClient:
    """Wrapper around the Gemini text generation endpoint"""

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        generation_config: Dict[str, Any] | None = None,
        timeout: float | None = None,
    ):
        self.api_key = api_key or settings.GEMINI_API_KEY
        if not self.api_key:
            raise ValueError("GEMINI_API_KEY is not set; cannot initialize LLM client.")

        genai.configure(api_key=self.api_key)

        self.model_name = model or settings.GEMINI_MODEL
        self.timeout = timeout or settings.LLM_REQUEST_TIMEOUT
        self.generation_config = generation_config or {
            "temperature": settings.LLM_TEMPERATURE,
            "max_output_tokens": settings.LLM_MAX_OUTPUT_TOKENS,
        }
        self.model = genai.GenerativeModel(
            model_name=self.model_name,
            generation_config=genai.types.GenerationConfig(**self.generation_config),
        )

    def generate(self, prompt: str, system_instruction: str | None = None) -> str:
        """
        Generate raw text from the Gemini model

        Args:
            prompt: User prompt
            system_instruction: Optional role/behaviour text placed before the prompt

        Returns:
            Model text ("" when the model returned no usable candidate)

        Raises:
            RateLimitError, TransientLLMError, FatalLLMError
        """
        contents = f"{system_instruction}\n\n{prompt}" if system_instruction else prompt
        try:
            response = self.model.generate_content(
                contents,
                request_options={"timeout": self.timeout},
            )
        except Exception as exc:
            error = classify_error(exc)
            logger.debug("Gemini call failed (%s): %s", error.__class__.__name__, exc)
            raise error from exc

        try:
            return response.text or ""
        except ValueError:
            # Raised by the SDK when the candidate was blocked or empty
            logger.warning("Gemini returned no text candidate (finish reason: %s)", _finish_reason(response))
            return ""


def _finish_reason(response: Any) -> str:
    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        return "no candidates"
    return str(getattr(candidates[0], "finish_reason", "unknown"))
