"""Unit tests for LLMClient."""

import asyncio
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from backend_stubs import create_mock_client, create_mock_response, openai_body
from lexicard.models.config import LLMConfig, RetryConfig
from lexicard.services.exceptions import AuthenticationError, BackendError, EnrichmentCancelled
from lexicard.services.llm_client import (
    LLMClient,
    _extract_content_from_ollama_response,
    _extract_content_from_openai_response,
)
from lexicard.utils.cancellation import CancelToken


class TestLLMClient:
    """Test LLMClient request handling."""

    @pytest.fixture
    def llm_client(self, llm_config, fast_retry):
        """Create LLM client with test config."""
        return LLMClient(llm_config, retry=fast_retry)

    def test_client_initialization(self, llm_client, llm_config):
        """Test LLM client initializes correctly."""
        assert llm_client.config == llm_config
        assert llm_client.timeout.read == 60.0
        assert llm_client.timeout.connect == 10.0

    @pytest.mark.asyncio
    async def test_complete_success(self, llm_client):
        """Test a successful request returns the content blob."""
        mock_client = create_mock_client(create_mock_response(openai_body('{"processed_words": []}')))

        with patch('httpx.AsyncClient', return_value=mock_client):
            content = await llm_client.complete("system", "prompt")

        assert content == '{"processed_words": []}'
        mock_client.post.assert_called_once()
        url = mock_client.post.call_args[0][0]
        kwargs = mock_client.post.call_args[1]
        assert url == "https://api.test.com/v1/chat/completions"
        assert kwargs["headers"]["Authorization"] == "Bearer test-key"
        assert kwargs["json"]["model"] == "test-model"
        assert kwargs["json"]["response_format"] == {"type": "json_object"}
        assert kwargs["json"]["messages"][0] == {"role": "system", "content": "system"}

    @pytest.mark.asyncio
    async def test_complete_without_json_mode(self, llm_client):
        """Test json_mode=False omits the response format."""
        mock_client = create_mock_client(create_mock_response(openai_body("Привет, мир")))

        with patch('httpx.AsyncClient', return_value=mock_client):
            content = await llm_client.complete("system", "prompt", json_mode=False)

        assert content == "Привет, мир"
        assert "response_format" not in mock_client.post.call_args[1]["json"]

    @pytest.mark.asyncio
    async def test_empty_content_returns_empty_string(self, llm_client):
        """Test a reply without content yields an empty blob."""
        mock_client = create_mock_client(create_mock_response({"choices": []}))

        with patch('httpx.AsyncClient', return_value=mock_client):
            content = await llm_client.complete("system", "prompt")

        assert content == ""

    @pytest.mark.asyncio
    async def test_retries_timeout_then_succeeds(self, llm_client):
        """Test a transport timeout is retried."""
        mock_client = create_mock_client(
            httpx.ReadTimeout("timed out"),
            create_mock_response(openai_body("ok")),
        )

        with patch('httpx.AsyncClient', return_value=mock_client):
            content = await llm_client.complete("system", "prompt")

        assert content == "ok"
        assert mock_client.post.call_count == 2

    @pytest.mark.asyncio
    async def test_retries_rate_limit_and_server_error(self, llm_client):
        """Test 429 and 5xx responses are retried."""
        mock_client = create_mock_client(
            create_mock_response(status_code=429),
            create_mock_response(status_code=503),
            create_mock_response(openai_body("ok")),
        )

        with patch('httpx.AsyncClient', return_value=mock_client):
            content = await llm_client.complete("system", "prompt")

        assert content == "ok"
        assert mock_client.post.call_count == 3

    @pytest.mark.asyncio
    async def test_retry_bound(self, llm_client):
        """Test at most max_retries + 1 attempts are made."""
        mock_client = create_mock_client(*[create_mock_response(status_code=500) for _ in range(5)])

        with patch('httpx.AsyncClient', return_value=mock_client):
            with pytest.raises(BackendError) as exc_info:
                await llm_client.complete("system", "prompt")

        assert mock_client.post.call_count == 3
        assert exc_info.value.attempts == 3
        assert exc_info.value.retriable
        assert exc_info.value.status_code == 500

    @pytest.mark.asyncio
    async def test_transport_errors_exhausted(self, llm_client):
        """Test exhausted transport errors raise a retriable BackendError."""
        mock_client = create_mock_client(*[httpx.ConnectError("refused") for _ in range(3)])

        with patch('httpx.AsyncClient', return_value=mock_client):
            with pytest.raises(BackendError) as exc_info:
                await llm_client.complete("system", "prompt")

        assert exc_info.value.status_code is None
        assert mock_client.post.call_count == 3

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status_code", [401, 403])
    async def test_authentication_error_not_retried(self, llm_client, status_code):
        """Test 401/403 raise AuthenticationError after one attempt."""
        mock_client = create_mock_client(
            create_mock_response(status_code=status_code),
            create_mock_response(openai_body("ok")),
        )

        with patch('httpx.AsyncClient', return_value=mock_client):
            with pytest.raises(AuthenticationError) as exc_info:
                await llm_client.complete("system", "prompt")

        assert exc_info.value.status_code == status_code
        assert mock_client.post.call_count == 1

    @pytest.mark.asyncio
    async def test_client_error_not_retried(self, llm_client):
        """Test other 4xx responses fail at once."""
        mock_client = create_mock_client(
            create_mock_response(status_code=400),
            create_mock_response(openai_body("ok")),
        )

        with patch('httpx.AsyncClient', return_value=mock_client):
            with pytest.raises(BackendError) as exc_info:
                await llm_client.complete("system", "prompt")

        assert not exc_info.value.retriable
        assert exc_info.value.status_code == 400
        assert mock_client.post.call_count == 1

    @pytest.mark.asyncio
    async def test_backoff_delays(self, llm_config):
        """Test waits follow the exponential schedule and stay under the cap."""
        retry = RetryConfig(max_retries=4, base_delay=1.0, max_delay=5.0, backoff_multiplier=2.0)
        client = LLMClient(llm_config, retry=retry)
        mock_client = create_mock_client(*[create_mock_response(status_code=502) for _ in range(5)])

        with patch('httpx.AsyncClient', return_value=mock_client), \
                patch.object(CancelToken, "sleep", new_callable=AsyncMock) as mock_sleep:
            with pytest.raises(BackendError):
                await client.complete("system", "prompt")

        delays = [call.args[0] for call in mock_sleep.call_args_list]
        assert delays == [1.0, 2.0, 4.0, 5.0]
        assert sum(delays) <= retry.max_retries * retry.max_delay

    @pytest.mark.asyncio
    async def test_cancelled_token_prevents_request(self, llm_client):
        """Test a fired token stops the call before any request."""
        token = CancelToken()
        token.cancel()
        mock_client = create_mock_client(create_mock_response(openai_body("ok")))

        with patch('httpx.AsyncClient', return_value=mock_client):
            with pytest.raises(EnrichmentCancelled):
                await llm_client.complete("system", "prompt", token=token)

        mock_client.post.assert_not_called()

    @pytest.mark.asyncio
    async def test_cancel_during_backoff(self, llm_config):
        """Test cancelling while waiting between attempts aborts the call."""
        retry = RetryConfig(max_retries=3, base_delay=10.0, max_delay=10.0)
        client = LLMClient(llm_config, retry=retry)
        token = CancelToken()
        mock_client = create_mock_client(*[create_mock_response(status_code=503) for _ in range(4)])

        with patch('httpx.AsyncClient', return_value=mock_client):
            call = asyncio.create_task(client.complete("system", "prompt", token=token))
            await asyncio.sleep(0.05)
            token.cancel()
            with pytest.raises(EnrichmentCancelled):
                await asyncio.wait_for(call, timeout=1.0)

        assert mock_client.post.call_count == 1


class TestOllamaRequests:
    """Test Ollama native API handling."""

    @pytest.fixture
    def ollama_client(self, fast_retry):
        config = LLMConfig(
            endpoint="http://localhost:11434/v1",
            api_key="",
            model="llama3",
            provider="ollama",
        )
        return LLMClient(config, retry=fast_retry)

    @pytest.mark.asyncio
    async def test_ollama_request(self, ollama_client):
        """Test Ollama requests go to /api/chat without a bearer header."""
        body = {"model": "llama3", "message": {"role": "assistant", "content": "[]"}, "done": True}
        mock_client = create_mock_client(create_mock_response(body))

        with patch('httpx.AsyncClient', return_value=mock_client):
            content = await ollama_client.complete("system", "prompt")

        assert content == "[]"
        url = mock_client.post.call_args[0][0]
        kwargs = mock_client.post.call_args[1]
        assert url == "http://localhost:11434/api/chat"
        assert "Authorization" not in kwargs["headers"]
        assert kwargs["json"]["format"] == "json"

    @pytest.mark.asyncio
    async def test_auto_detects_ollama(self, fast_retry):
        """Test auto provider checks /api/version once and caches the result."""
        config = LLMConfig(endpoint="http://localhost:11434/v1", api_key="", model="llama3", provider="auto")
        client = LLMClient(config, retry=fast_retry)
        mock_client = create_mock_client()
        mock_client.get = AsyncMock(return_value=create_mock_response({"version": "0.1"}))

        with patch('httpx.AsyncClient', return_value=mock_client):
            assert await client._detect_ollama() is True
            assert await client._detect_ollama() is True

        mock_client.get.assert_called_once_with("http://localhost:11434/api/version")

    @pytest.mark.asyncio
    async def test_auto_falls_back_to_openai(self, fast_retry):
        """Test a failed version check assumes an OpenAI-compatible endpoint."""
        config = LLMConfig(endpoint="https://api.test.com/v1", api_key="k", model="m", provider="auto")
        client = LLMClient(config, retry=fast_retry)
        mock_client = create_mock_client()
        mock_client.get = AsyncMock(side_effect=httpx.ConnectError("refused"))

        with patch('httpx.AsyncClient', return_value=mock_client):
            assert await client._detect_ollama() is False


class TestContentExtraction:
    """Test response body extraction helpers."""

    def test_openai_content(self):
        assert _extract_content_from_openai_response(openai_body("x")) == "x"

    def test_openai_tool_call_arguments(self):
        """Test function-call replies fall back to the arguments."""
        data = {
            "choices": [{
                "message": {
                    "content": None,
                    "tool_calls": [{"function": {"name": "f", "arguments": '{"a": 1}'}}],
                }
            }]
        }
        assert _extract_content_from_openai_response(data) == '{"a": 1}'

    def test_openai_missing_choices(self):
        assert _extract_content_from_openai_response({}) is None

    def test_ollama_content(self):
        assert _extract_content_from_ollama_response({"message": {"content": "y"}}) == "y"

    def test_ollama_missing_message(self):
        assert _extract_content_from_ollama_response({"done": True}) is None
