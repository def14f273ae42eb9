"""Pass-through client for the chat completion API."""

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any

import aiohttp

from ..config.settings import CompletionsConfig

logger = logging.getLogger(__name__)


class CompletionsConfigError(RuntimeError):
    """Raised when the completion API key is not configured."""


class CompletionsUpstreamError(RuntimeError):
    """Raised when the completion API could not be reached."""


@dataclass
class ForwardedResponse:
    status: int
    body: bytes
    content_type: str


class CompletionsProxy:
    """Forwards one request body to the completion API and returns its response untouched."""

    def __init__(self, config: CompletionsConfig):
        self.config = config

    @property
    def url(self) -> str:
        return f"{self.config.base_url}{self.config.path}"

    async def forward(self, payload: Any) -> ForwardedResponse:
        if not self.config.api_key:
            raise CompletionsConfigError("Server misconfig: OPENAI_API_KEY not set")

        headers = {
            "Authorization": f"Bearer {self.config.api_key}",
            "Content-Type": "application/json",
        }
        timeout = aiohttp.ClientTimeout(total=self.config.request_timeout_seconds)

        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.post(
                    self.url, data=json.dumps(payload or {}), headers=headers
                ) as response:
                    body = await response.read()
                    content_type = response.headers.get("Content-Type", "application/json")
                    logger.info(f"Completion API responded with {response.status}")
                    return ForwardedResponse(
                        status=response.status, body=body, content_type=content_type
                    )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise CompletionsUpstreamError(
                f"Proxy upstream error: {str(e) or type(e).__name__}"
            ) from e
