"""Batch windowing over a list of portfolio identifiers."""

import logging
from typing import Sequence

from .models import BatchResult, BatchWindow, IdentifierFailure, PortfolioId, TimeRange
from .pagination import PaginationWalker

logger = logging.getLogger(__name__)

MAX_PER_CALL_CAP = 35


def compute_window(
    total: int,
    cursor: int,
    max_per_call: int,
    cap: int = MAX_PER_CALL_CAP
) -> BatchWindow:
    """Slice of the identifier list starting at ``cursor``, at most ``cap`` long."""
    per_call = max(1, min(cap, max_per_call))
    start = max(0, cursor)
    end = min(total, start + per_call)
    return BatchWindow(start_index=start, end_index=end, total=total, max_per_call=per_call)


class BatchCoordinator:
    """Walks a window of portfolios one after another."""

    def __init__(self, walker: PaginationWalker, cap: int = MAX_PER_CALL_CAP):
        self.walker = walker
        self.cap = cap

    async def run_batch(
        self,
        identifiers: Sequence[PortfolioId],
        time_range: TimeRange,
        window_cursor: int,
        max_per_call: int
    ) -> BatchResult:
        """Process ``identifiers[start:end]`` sequentially and collect results."""
        window = compute_window(len(identifiers), window_cursor, max_per_call, self.cap)
        result = BatchResult(records_by_identifier=[], failures=[], window=window)

        logger.info(
            f"Processing portfolios [{window.start_index}, {window.end_index}) "
            f"of {window.total}"
        )

        # Sequential on purpose: parallel walks defeat the upstream pacing
        for uid in identifiers[window.start_index:window.end_index]:
            walk = await self.walker.walk(uid, time_range)

            if walk.failed:
                result.failures.append(IdentifierFailure(uid=uid, errors=walk.errors))

            result.records_by_identifier.append((uid, list(walk.records)))
            result.origins.update(walk.origins)

            logger.info(
                f"Portfolio {uid}: {len(walk.records)} records, "
                f"{walk.pages_requested} pages, failed={walk.failed}"
            )

        return result

