"""Per-portfolio walk over the paginated order history."""

import asyncio
import logging
from dataclasses import replace
from typing import Any, Dict, Optional

from .config.settings import PaginationConfig
from .models import ContinuationToken, PortfolioId, TimeRange, WalkResult
from .utils.retry import RetryOrchestrator

logger = logging.getLogger(__name__)


class PaginationWalker:
    """Follows ``indexValue`` continuation tokens for a single portfolio."""

    def __init__(
        self,
        orchestrator: RetryOrchestrator,
        path: str,
        config: PaginationConfig
    ):
        self.orchestrator = orchestrator
        self.path = path
        self.config = config

    def build_body(
        self,
        portfolio_id: PortfolioId,
        time_range: TimeRange,
        page_size: int,
        token: ContinuationToken
    ) -> Dict[str, Any]:
        body = {
            "portfolioId": str(portfolio_id),
            "startTime": time_range.start_ms,
            "endTime": time_range.end_ms,
            "pageSize": page_size,
        }
        return token.apply(body)

    async def walk(
        self,
        portfolio_id: PortfolioId,
        time_range: TimeRange,
        page_cap: Optional[int] = None,
        page_size: Optional[int] = None
    ) -> WalkResult:
        """
        Collect up to ``page_cap`` pages of orders for ``portfolio_id``.

        The walk stops early on an empty page, a missing continuation token or
        a failed fetch. A failed fetch keeps the records from earlier pages.
        """
        page_cap = self.config.page_cap if page_cap is None else page_cap
        page_size = self.config.page_size if page_size is None else page_size

        result = WalkResult()
        token: Optional[ContinuationToken] = ContinuationToken.first()

        while token is not None and result.pages_requested < page_cap:
            await asyncio.sleep(self.config.page_delay_seconds)

            body = self.build_body(portfolio_id, time_range, page_size, token)
            result.pages_requested += 1
            fetched = await self.orchestrator.fetch(self.path, body)

            if not fetched.succeeded:
                logger.warning(
                    f"Portfolio {portfolio_id}: page {result.pages_requested} failed, "
                    f"keeping {len(result.records)} records"
                )
                result.errors = [replace(e, portfolio_id=portfolio_id) for e in fetched.errors]
                return result

            result.origins.add(fetched.endpoint.origin)
            page = (fetched.result or {}).get("data")
            if not isinstance(page, dict):
                page = {}
            rows = page.get("list")
            if not isinstance(rows, list):
                rows = []

            if not rows:
                logger.debug(f"Portfolio {portfolio_id}: empty page {result.pages_requested}")
                break

            result.records.extend(rows)
            token = ContinuationToken.from_page(page)

        logger.debug(
            f"Portfolio {portfolio_id}: {len(result.records)} records "
            f"over {result.pages_requested} pages"
        )
        return result
