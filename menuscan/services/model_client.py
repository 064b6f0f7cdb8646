"""
Client for the OpenAI-compatible model API.

Every call goes through the process-wide concurrency manager and the retry
policy: transient failures (timeouts, transport errors, 408/429/5xx) are
retried with backoff, anything else fails on the first attempt. The client
returns raw text or URLs; it never interprets model output.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx

from menuscan.config.settings import ModelApiSettings
from menuscan.core.concurrency_manager import ConcurrencyManager
from menuscan.core.exceptions import UpstreamFatalError
from menuscan.core.metrics import record_latency
from menuscan.core.retry import (
    RetryPolicy,
    call_with_retry,
    classify_http_error,
    classify_transport_error,
)
from menuscan.models.internal_models import ModelRequest
from menuscan.services.prompt_builder import IMAGE_OPERATION

logger = logging.getLogger(__name__)


class ModelApiClient:
    """
    Async client for ``/chat/completions`` and ``/images/generations``.

    ``transport`` lets tests plug in ``httpx.MockTransport``; ``sleep`` and
    ``rng`` are handed to the retry loop.
    """

    def __init__(
        self,
        config: ModelApiSettings,
        retry_policy: RetryPolicy,
        concurrency: ConcurrencyManager,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: Optional[Callable[[], float]] = None
    ):
        self.config = config
        self.retry_policy = retry_policy
        self.concurrency = concurrency
        self._transport = transport
        self._sleep = sleep
        self._rng = rng
        self._client: Optional[httpx.AsyncClient] = None

    async def initialize(self) -> None:
        if self._client is not None:
            return

        headers = {"Content-Type": "application/json"}
        if self.config.api_key:
            headers["Authorization"] = f"Bearer {self.config.api_key}"

        self._client = httpx.AsyncClient(
            base_url=self.config.base_url,
            headers=headers,
            timeout=httpx.Timeout(
                self.config.extraction_timeout_seconds,
                connect=self.config.connect_timeout_seconds
            ),
            transport=self._transport,
        )
        logger.info(f"Initialized model API client: {self.config.base_url}")

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def chat_completion(
        self,
        request: ModelRequest,
        timeout_seconds: float,
        request_id: Optional[str] = None
    ) -> str:
        """
        Send a chat completion and return the first choice's message text.

        Raises:
            UpstreamTransientError: After retries are exhausted
            UpstreamFatalError: On a non-retryable reply, or a reply with no content
        """
        data = await self._post(
            request.operation,
            "/chat/completions",
            request.to_payload(),
            timeout_seconds,
            request_id,
        )
        content = self._message_content(data)
        if not content:
            raise UpstreamFatalError(
                operation=request.operation,
                reason="completion contained no message content",
            )
        return content

    async def generate_image(self, prompt: str, request_id: Optional[str] = None) -> str:
        """Generate one image and return its URL."""
        body = {
            "model": self.config.image_model,
            "prompt": prompt,
            "n": 1,
            "size": self.config.image_size,
            "response_format": "url",
        }
        data = await self._post(
            IMAGE_OPERATION,
            "/images/generations",
            body,
            self.config.image_timeout_seconds,
            request_id,
        )
        try:
            url = data["data"][0]["url"]
        except (KeyError, IndexError, TypeError):
            url = None
        if not url:
            raise UpstreamFatalError(operation=IMAGE_OPERATION, reason="no image URL returned")
        return url

    async def _post(
        self,
        operation: str,
        path: str,
        body: Dict[str, Any],
        timeout_seconds: float,
        request_id: Optional[str]
    ) -> Dict[str, Any]:
        if not self.config.is_configured:
            raise UpstreamFatalError(operation=operation, reason="model API key is not configured")

        await self.initialize()

        async def attempt() -> Dict[str, Any]:
            return await self.concurrency.run(
                operation,
                lambda: self._post_once(operation, path, body, timeout_seconds),
                request_id=request_id,
            )

        with record_latency(operation):
            return await call_with_retry(
                operation,
                attempt,
                self.retry_policy,
                sleep=self._sleep,
                rng=self._rng,
                request_id=request_id,
            )

    async def _post_once(
        self,
        operation: str,
        path: str,
        body: Dict[str, Any],
        timeout_seconds: float
    ) -> Dict[str, Any]:
        timeout = httpx.Timeout(timeout_seconds, connect=self.config.connect_timeout_seconds)
        try:
            response = await self._client.post(path, json=body, timeout=timeout)
        except httpx.TransportError as e:
            # covers TimeoutException as well as connect/read failures
            raise classify_transport_error(operation, e)

        if response.status_code >= 400:
            raise classify_http_error(operation, response)

        try:
            data = response.json()
        except ValueError:
            raise UpstreamFatalError(
                operation=operation,
                reason="response body is not JSON",
                upstream_status=response.status_code,
            )
        if not isinstance(data, dict):
            raise UpstreamFatalError(
                operation=operation,
                reason="response body is not a JSON object",
                upstream_status=response.status_code,
            )
        return data

    @staticmethod
    def _message_content(data: Dict[str, Any]) -> str:
        choices = data.get("choices") or [{}]
        message = (choices[0] or {}).get("message") or {}
        content = message.get("content") or ""
        if isinstance(content, list):
            # some providers return content parts
            content = "".join(
                part.get("text", "") for part in content if isinstance(part, dict)
            )
        return content.strip() if isinstance(content, str) else ""


class ExtractionClient:
    """Sends a built extraction request and returns the raw model text"""

    def __init__(self, api_client: ModelApiClient, config: ModelApiSettings):
        self.api_client = api_client
        self.config = config

    async def extract(self, request: ModelRequest, request_id: Optional[str] = None) -> str:
        logger.info(
            "Requesting menu extraction",
            extra={'request_id': request_id, 'model': request.model}
        )
        raw = await self.api_client.chat_completion(
            request,
            timeout_seconds=self.config.extraction_timeout_seconds,
            request_id=request_id,
        )
        logger.debug(
            "Extraction response received",
            extra={'request_id': request_id, 'response_length': len(raw)}
        )
        return raw
