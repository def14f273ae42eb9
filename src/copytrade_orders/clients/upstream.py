"""Single-shot POST client for the Binance web API."""

import asyncio
import json
import logging
from typing import Any, Dict, Iterable, Optional

import aiohttp

from ..config.settings import UpstreamConfig
from ..models import AttemptOutcome, OutcomeKind

logger = logging.getLogger(__name__)


class UpstreamCaller:
    """
    Issues one POST per ``call`` and reports the result as an ``AttemptOutcome``.

    Transport errors, bad status codes, unparseable bodies and missing business
    codes are all returned as outcome fields; nothing is retried here.
    """

    def __init__(
        self,
        request_timeout_seconds: float = 15,
        business_success_code: str = "000000",
        fatal_status_codes: Iterable[int] = (403, 451),
        body_snippet_chars: int = 200
    ):
        self.request_timeout_seconds = request_timeout_seconds
        self.business_success_code = business_success_code
        self.fatal_status_codes = frozenset(fatal_status_codes)
        self.body_snippet_chars = body_snippet_chars
        self.session: Optional[aiohttp.ClientSession] = None

    @classmethod
    def from_config(cls, config: UpstreamConfig) -> "UpstreamCaller":
        return cls(
            request_timeout_seconds=config.request_timeout_seconds,
            business_success_code=config.business_success_code,
            fatal_status_codes=config.fatal_status_codes,
            body_snippet_chars=config.body_snippet_chars,
        )

    async def __aenter__(self):
        """Async context manager entry."""
        self.session = aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=self.request_timeout_seconds)
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        if self.session:
            await self.session.close()
            self.session = None

    async def call(
        self,
        base_url: str,
        path: str,
        json_body: Dict[str, Any],
        headers: Optional[Dict[str, str]] = None
    ) -> AttemptOutcome:
        """Send one request and classify the response."""
        if not self.session:
            raise RuntimeError("Caller not initialized. Use async context manager.")

        url = f"{base_url}{path}"

        try:
            async with self.session.post(
                url,
                data=json.dumps(json_body),
                headers=headers,
                allow_redirects=True
            ) as response:
                status = response.status
                text = await response.text(errors="replace")
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            reason = str(e) or type(e).__name__
            logger.debug(f"Transport failure calling {url}: {reason}")
            return AttemptOutcome(kind=OutcomeKind.RETRYABLE, failure_reason=reason)

        return self.classify(status, text)

    def classify(self, status: int, text: str) -> AttemptOutcome:
        """Turn a raw status and body into a tagged outcome."""
        prefix = text[:self.body_snippet_chars]

        try:
            parsed = json.loads(text)
        except ValueError:
            parsed = None

        if status in self.fatal_status_codes:
            return AttemptOutcome(
                kind=OutcomeKind.FATAL,
                status_code=status,
                parsed_body=parsed,
                raw_body_prefix=prefix,
                failure_reason=f"HTTP {status}: access forbidden or region restricted",
            )

        if not 200 <= status < 300:
            reason = f"HTTP {status}"
        elif parsed is None:
            reason = "Response body is not valid JSON"
        elif not isinstance(parsed, dict) or parsed.get("code") != self.business_success_code:
            code = parsed.get("code") if isinstance(parsed, dict) else None
            reason = f"Unexpected business code: {code!r}"
        elif not _is_page_shaped(parsed.get("data")):
            reason = "Malformed page: unexpected data shape"
        else:
            return AttemptOutcome(
                kind=OutcomeKind.SUCCESS,
                status_code=status,
                parsed_body=parsed,
                raw_body_prefix=prefix,
            )

        return AttemptOutcome(
            kind=OutcomeKind.RETRYABLE,
            status_code=status,
            parsed_body=parsed,
            raw_body_prefix=prefix,
            failure_reason=reason,
        )


def _is_page_shaped(data: Any) -> bool:
    """``data`` may be absent; when present it must be an object whose ``list`` is a list."""
    if data is None:
        return True
    if not isinstance(data, dict):
        return False
    rows = data.get("list")
    return rows is None or isinstance(rows, list)
