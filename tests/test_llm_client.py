"""
Unit tests for the Gemini LLM client
Tests error classification, retry-after parsing and the generate call
"""
import sys
import os
from unittest.mock import MagicMock, patch

import pytest
from google.api_core import exceptions as google_exceptions

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from utils.llm_client import (
    LLMClient,
    LLMError,
    RateLimitError,
    TransientLLMError,
    FatalLLMError,
    classify_error,
    extract_retry_after,
)
from utils.logger import get_logger

logger = get_logger(__name__)


class _BlockedResponse:
    """Response whose .text raises, like a safety-blocked candidate"""
    candidates = []

    @property
    def text(self):
        raise ValueError("no text")


class TestRetryAfter:
    """Test parsing wait times out of error messages"""

    def test_patterns(self):
        assert extract_retry_after("Rate limit reached. Please try again in 7.5s.") == 7.5
        assert extract_retry_after("429 Quota exceeded, retry after 20s") == 20.0
        assert extract_retry_after("retry_delay {\n  seconds: 31\n}") == 31.0
        assert extract_retry_after("Retry-After: 4") == 4.0

    def test_no_hint(self):
        assert extract_retry_after("Internal error") is None
        assert extract_retry_after("") is None


class TestClassifyError:
    """Test mapping SDK exceptions onto the error hierarchy"""

    def test_resource_exhausted_is_rate_limit(self):
        error = classify_error(google_exceptions.ResourceExhausted("Quota exceeded. Please try again in 9s"))
        assert isinstance(error, RateLimitError)
        assert error.retry_after == 9.0

    def test_rate_limit_message(self):
        """Plain exceptions that mention rate limits are still rate limits"""
        error = classify_error(RuntimeError("HTTP 429 Too Many Requests"))
        assert isinstance(error, RateLimitError)
        assert error.retry_after is None

    def test_fatal_errors(self):
        for exc in (
            google_exceptions.Unauthenticated("bad key"),
            google_exceptions.PermissionDenied("no access"),
            google_exceptions.InvalidArgument("bad request"),
        ):
            assert isinstance(classify_error(exc), FatalLLMError)

    def test_transient_errors(self):
        for exc in (
            google_exceptions.ServiceUnavailable("overloaded"),
            google_exceptions.DeadlineExceeded("timed out"),
            TimeoutError("read timed out"),
            ConnectionError("reset by peer"),
        ):
            assert isinstance(classify_error(exc), TransientLLMError)

    def test_llm_errors_pass_through(self):
        original = FatalLLMError("already classified")
        assert classify_error(original) is original


class TestLLMClient:
    """Test the client wrapper (Gemini SDK mocked)"""

    def test_requires_api_key(self):
        with patch('utils.llm_client.settings') as mock_settings:
            mock_settings.GEMINI_API_KEY = ""
            with pytest.raises(ValueError):
                LLMClient()

    def test_generate(self):
        """Prompt and system text are sent with the request timeout"""
        with patch('utils.llm_client.genai') as mock_genai:
            model = MagicMock()
            model.generate_content.return_value = MagicMock(text='{"themes": []}')
            mock_genai.GenerativeModel.return_value = model

            client = LLMClient(api_key="test-key", model="gemini-test", timeout=15)
            reply = client.generate("Analyse this", system_instruction="Be brief")

            assert reply == '{"themes": []}'
            mock_genai.configure.assert_called_once_with(api_key="test-key")
            args, kwargs = model.generate_content.call_args
            assert args[0] == "Be brief\n\nAnalyse this"
            assert kwargs["request_options"] == {"timeout": 15}
            assert client.model_name == "gemini-test"

    def test_generate_classifies_errors(self):
        """SDK exceptions come out as LLMError subclasses"""
        with patch('utils.llm_client.genai') as mock_genai:
            model = MagicMock()
            model.generate_content.side_effect = google_exceptions.ResourceExhausted("retry after 3s")
            mock_genai.GenerativeModel.return_value = model

            client = LLMClient(api_key="test-key")
            with pytest.raises(RateLimitError) as exc_info:
                client.generate("Analyse this")
            assert exc_info.value.retry_after == 3.0
            assert isinstance(exc_info.value, LLMError)

    def test_blocked_response(self):
        """A response without text gives an empty string"""
        with patch('utils.llm_client.genai') as mock_genai:
            model = MagicMock()
            model.generate_content.return_value = _BlockedResponse()
            mock_genai.GenerativeModel.return_value = model

            client = LLMClient(api_key="test-key")
            assert client.generate("Analyse this") == ""


if __name__ == "__main__":
    sys.exit(pytest.main([__file__, "-v"]))
