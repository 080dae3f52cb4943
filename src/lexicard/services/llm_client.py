"""LLM client: one chat completion per attempt, retried with exponential backoff."""

import httpx
from typing import Any, Dict, Optional
import asyncio

from lexicard.utils.cancellation import CancelToken
from lexicard.utils.logging import get_logger
from lexicard.models.config import LLMConfig, RetryConfig
from lexicard.services.exceptions import AuthenticationError, BackendError


logger = get_logger(__name__)

AUTH_STATUS_CODES = frozenset({401, 403})


def _extract_content_from_openai_response(data: Dict[str, Any]) -> str | None:
    """
    Extract the text blob from an OpenAI-style chat completion.

    OpenAI/OpenRouter return:
    {
        "choices": [{
            "message": {"content": "...", "tool_calls": [...]},
            "finish_reason": "stop"
        }]
    }

    Some models answer through a function call instead of content; the
    function arguments are the JSON body in that case.

    Args:
        data: Parsed JSON response

    Returns:
        Content string if present, None otherwise
    """
    try:
        message = data["choices"][0]["message"]
    except (KeyError, IndexError, TypeError):
        return None

    content = message.get("content")
    if content:
        return content

    try:
        return message["tool_calls"][0]["function"]["arguments"]
    except (KeyError, IndexError, TypeError):
        return None


def _extract_content_from_ollama_response(data: Dict[str, Any]) -> str | None:
    """
    Extract the text blob from an Ollama native chat response.

    Ollama's /api/chat returns:
    {
        "model": "...",
        "message": {"role": "assistant", "content": "..."},
        "done": true
    }
    """
    try:
        return data["message"]["content"]
    except (KeyError, TypeError):
        return None


def _is_retriable_status(status_code: int) -> bool:
    return status_code == 429 or status_code >= 500


class LLMClient:
    """
    HTTP client for the text-generation backend.

    Supports OpenAI-compatible APIs (OpenRouter, OpenAI) and Ollama's native
    chat endpoint, with retry on transport errors, 429 and 5xx responses.
    """

    def __init__(self, config: LLMConfig, retry: Optional[RetryConfig] = None):
        """
        Initialize LLM client.

        Args:
            config: LLM configuration (endpoint, API key, model)
            retry: Backoff policy applied to every call (defaults to RetryConfig())
        """
        self.config = config
        self.retry = retry or RetryConfig()
        self.timeout = httpx.Timeout(
            connect=10.0,
            read=config.timeout,
            write=10.0,
            pool=10.0
        )
        self._is_ollama: bool | None = None
        if config.provider != "auto":
            self._is_ollama = config.provider == "ollama"

    def _base_url(self) -> str:
        return str(self.config.endpoint).rstrip("/")

    def _ollama_base_url(self) -> str:
        base_url = self._base_url()
        for suffix in ("/v1", "/api"):
            if base_url.endswith(suffix):
                return base_url[:-len(suffix)]
        return base_url

    async def _detect_ollama(self) -> bool:
        """
        Detect if the endpoint is Ollama by requesting /api/version.

        Skipped when the provider is configured explicitly; cached after the
        first check.

        Returns:
            True if Ollama detected, False otherwise
        """
        if self._is_ollama is not None:
            return self._is_ollama

        version_url = f"{self._ollama_base_url()}/api/version"
        try:
            async with httpx.AsyncClient(timeout=httpx.Timeout(5.0)) as client:
                logger.debug("llm_provider_detection", version_url=version_url)
                response = await client.get(version_url)
                if response.status_code == 200:
                    logger.info("llm_provider_detected", provider="ollama", version_url=version_url)
                    self._is_ollama = True
                    return True
        except httpx.HTTPError as e:
            logger.debug(
                "llm_provider_detection_failed",
                error=str(e),
                assumed_provider="openai",
            )

        logger.info("llm_provider_detected", provider="openai")
        self._is_ollama = False
        return False

    def _build_request(
        self,
        system_prompt: str,
        prompt: str,
        is_ollama: bool,
        json_mode: bool
    ) -> tuple[str, Dict[str, Any]]:
        messages = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": prompt}
        ]

        if is_ollama:
            payload: Dict[str, Any] = {
                "model": self.config.model,
                "messages": messages,
                "stream": False,
                "options": {"temperature": self.config.temperature},
            }
            if json_mode:
                payload["format"] = "json"
            return f"{self._ollama_base_url()}/api/chat", payload

        payload = {
            "model": self.config.model,
            "messages": messages,
            "stream": False,
            "temperature": self.config.temperature,
        }
        if json_mode:
            payload["response_format"] = {"type": "json_object"}
        return f"{self._base_url()}/chat/completions", payload

    async def _send(
        self,
        url: str,
        payload: Dict[str, Any],
        headers: Dict[str, str]
    ) -> httpx.Response:
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.post(url, json=payload, headers=headers)
            response.raise_for_status()
            return response

    async def complete(
        self,
        system_prompt: str,
        prompt: str,
        token: Optional[CancelToken] = None,
        json_mode: bool = True,
        request_id: Optional[str] = None
    ) -> str:
        """
        Send one logical chat request and return the model's text blob.

        Each attempt is one HTTP request. Transport errors, HTTP 429 and 5xx
        are retried after ``retry.delay_for(attempt)`` seconds, for at most
        ``retry.max_retries + 1`` attempts in total.

        Args:
            system_prompt: System prompt for the LLM
            prompt: User prompt for the LLM
            token: Cancel token checked before every attempt and during waits
            json_mode: Ask the backend to constrain output to JSON
            request_id: Optional identifier for this request (for logging/tracing)

        Returns:
            Raw text content of the reply ("" when the reply carries none)

        Raises:
            AuthenticationError: On HTTP 401/403 (never retried)
            BackendError: On other 4xx, or when retries are exhausted
            EnrichmentCancelled: When the token fires
        """
        if token is None:
            token = CancelToken()

        if not request_id:
            current_task = asyncio.current_task()
            task_name = current_task.get_name() if current_task else None
            request_id = task_name if task_name and task_name != "None" else "unknown"

        is_ollama = await self._detect_ollama()
        url, payload = self._build_request(system_prompt, prompt, is_ollama, json_mode)
        headers = {}
        if self.config.api_key:
            headers["Authorization"] = f"Bearer {self.config.api_key}"

        logger.info(
            "llm_request_started",
            request_id=request_id,
            model=self.config.model,
            endpoint=url,
            provider="ollama" if is_ollama else "openai",
            prompt_length=len(prompt),
            system_prompt_length=len(system_prompt),
        )
        logger.debug("llm_request_payload", request_id=request_id, payload=payload)

        attempt = 0
        while True:
            token.raise_if_cancelled()
            status_code: int | None = None

            try:
                response = await token.run(self._send(url, payload, headers))
                try:
                    data = response.json()
                except ValueError as e:
                    raise BackendError(
                        f"Backend returned a non-JSON body: {e}",
                        status_code=response.status_code,
                        retriable=False,
                        attempts=attempt + 1,
                    ) from e

                if is_ollama:
                    content = _extract_content_from_ollama_response(data)
                else:
                    content = _extract_content_from_openai_response(data)

                logger.info(
                    "llm_request_completed",
                    request_id=request_id,
                    attempts=attempt + 1,
                    content_length=len(content or ""),
                )
                logger.debug("llm_response_content", request_id=request_id, content=content)
                return content or ""

            except httpx.HTTPStatusError as e:
                status_code = e.response.status_code
                if status_code in AUTH_STATUS_CODES:
                    logger.error(
                        "llm_authentication_failed",
                        request_id=request_id,
                        status_code=status_code,
                    )
                    raise AuthenticationError(status_code) from e

                if not _is_retriable_status(status_code):
                    logger.error(
                        "llm_http_error",
                        request_id=request_id,
                        status_code=status_code,
                        error=str(e)
                    )
                    raise BackendError(
                        f"Backend rejected the request (HTTP {status_code})",
                        status_code=status_code,
                        retriable=False,
                        attempts=attempt + 1,
                    ) from e
                last_error: Exception = e

            except httpx.TransportError as e:
                last_error = e

            if attempt >= self.retry.max_retries:
                logger.error(
                    "llm_request_failed",
                    request_id=request_id,
                    attempts=attempt + 1,
                    status_code=status_code,
                    error=str(last_error)
                )
                raise BackendError(
                    f"Backend request failed after {attempt + 1} attempts: {last_error}",
                    status_code=status_code,
                    retriable=True,
                    attempts=attempt + 1,
                ) from last_error

            delay = self.retry.delay_for(attempt)
            logger.warning(
                "llm_request_retry",
                request_id=request_id,
                attempt=attempt + 1,
                max_retries=self.retry.max_retries,
                status_code=status_code,
                error=str(last_error),
                retry_delay=delay
            )
            await token.sleep(delay)
            attempt += 1
