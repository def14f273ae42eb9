"""Retry with randomized delay and ordered host fallback."""

import asyncio
import random
import logging
from typing import Any, Dict, List, Optional, Sequence

from ..clients.fingerprint import FingerprintProvider
from ..config.settings import RetryConfig, UpstreamConfig
from ..models import (
    ORIGIN_DIRECT, ORIGIN_PROXY, Endpoint, ErrorRecord, FetchResult, OutcomeKind
)

logger = logging.getLogger(__name__)


def build_endpoints(config: UpstreamConfig) -> List[Endpoint]:
    """Primary host first, then the proxy hop when one is configured."""
    endpoints = [Endpoint(name="primary", base_url=config.primary_base_url, origin=ORIGIN_DIRECT)]
    if config.fallback_base_url:
        endpoints.append(
            Endpoint(name="fallback", base_url=config.fallback_base_url, origin=ORIGIN_PROXY)
        )
    return endpoints


class RetryOrchestrator:
    """
    Execute an upstream call against an ordered list of endpoints.

    Each endpoint gets up to ``max_attempts_per_host`` attempts separated by a
    random delay. A fatal outcome (forbidden / region restricted) abandons the
    current endpoint at once and moves on to the next one.
    """

    def __init__(
        self,
        caller,
        endpoints: Sequence[Endpoint],
        fingerprints: FingerprintProvider,
        retry_config: RetryConfig,
        rng: Optional[random.Random] = None
    ):
        if not endpoints:
            raise ValueError("At least one endpoint is required")
        self.caller = caller
        self.endpoints = list(endpoints)
        self.fingerprints = fingerprints
        self.retry_config = retry_config
        self.rng = rng or random.Random()

    def _next_delay(self) -> float:
        return self.rng.uniform(
            self.retry_config.min_delay_seconds,
            self.retry_config.max_delay_seconds
        )

    async def fetch(
        self,
        path: str,
        json_body: Dict[str, Any],
        max_attempts_per_host: Optional[int] = None
    ) -> FetchResult:
        """
        Fetch ``path`` until one endpoint returns a business success.

        Args:
            path: Upstream path appended to each endpoint's base URL
            json_body: Request body, sent unchanged on every attempt
            max_attempts_per_host: Overrides the configured attempt count

        Returns:
            FetchResult carrying the parsed body and serving endpoint on success,
            and every attempt error accumulated along the way
        """
        attempts = (
            self.retry_config.max_attempts_per_host
            if max_attempts_per_host is None else max_attempts_per_host
        )
        errors: List[ErrorRecord] = []

        for endpoint in self.endpoints:
            for attempt in range(attempts):
                if attempt > 0:
                    await asyncio.sleep(self._next_delay())

                outcome = await self.caller.call(
                    endpoint.base_url, path, json_body, self.fingerprints.generate()
                )

                if outcome.kind is OutcomeKind.SUCCESS:
                    if attempt > 0 or errors:
                        logger.info(
                            f"{endpoint.name} succeeded on attempt {attempt + 1}/{attempts} "
                            f"after {len(errors)} failed attempts"
                        )
                    return FetchResult(
                        succeeded=True,
                        result=outcome.parsed_body,
                        endpoint=endpoint,
                        errors=errors
                    )

                errors.append(ErrorRecord.from_outcome(endpoint, outcome))

                if outcome.kind is OutcomeKind.FATAL:
                    logger.warning(
                        f"{endpoint.name} returned {outcome.status_code}, "
                        f"abandoning host after attempt {attempt + 1}/{attempts}"
                    )
                    break

                logger.warning(
                    f"{endpoint.name} attempt {attempt + 1}/{attempts} failed: "
                    f"{outcome.failure_reason}"
                )

        logger.error(f"All endpoints exhausted for {path} with {len(errors)} errors")
        return FetchResult(succeeded=False, errors=errors)
