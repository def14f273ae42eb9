"""Final response payload assembly."""

import logging
from typing import Any, Dict, Iterable, List, Optional

from .models import ORIGIN_PROXY, BatchResult, OrderRecord, TimeRange

logger = logging.getLogger(__name__)

SOURCE_DIRECT = "binance"
SOURCE_PROXY = "proxy->binance"

FATAL_NOTICE = (
    "Binance rejected every request with an access-forbidden or region-restricted "
    "status (403/451). Route traffic through an allowed region by setting "
    "BINANCE_PROXY_BASE, or run the service from a permitted location."
)


def _tag(record, uid) -> OrderRecord:
    # Non-object rows are wrapped so they can still carry the source identifier
    if isinstance(record, dict):
        return {**record, "_uid": uid}
    return {"value": record, "_uid": uid}


class ResponseAggregator:
    """Merges per-portfolio results into the JSON payload returned to callers."""

    # A batch succeeds when at least one record came back, regardless of how
    # many identifiers failed.
    SUCCESS_POLICY = "any_record"

    def __init__(
        self,
        fatal_status_codes: Iterable[int] = (403, 451),
        pages_per_portfolio: int = 3,
        page_size: int = 30
    ):
        self.fatal_status_codes = frozenset(fatal_status_codes)
        self.pages_per_portfolio = pages_per_portfolio
        self.page_size = page_size

    @staticmethod
    def flatten(batch: BatchResult) -> List[OrderRecord]:
        """Records in processing order, each copied and tagged with ``_uid``."""
        data = []
        for uid, records in batch.records_by_identifier:
            data.extend(_tag(record, uid) for record in records)
        return data

    def notice_for(self, batch: BatchResult) -> Optional[str]:
        """Remediation notice when every recorded failure is forbidden/region restricted."""
        records = [record for failure in batch.failures for record in failure.errors]
        if not records:
            return None
        if all(record.is_fatal_class(self.fatal_status_codes) for record in records):
            return FATAL_NOTICE
        return None

    def assemble(
        self,
        batch: BatchResult,
        time_range: TimeRange,
        limit_used: Any = None
    ) -> Dict[str, Any]:
        data = self.flatten(batch)
        page = batch.window.to_dict()
        page["limitUsed"] = limit_used

        payload: Dict[str, Any] = {
            "success": len(data) > 0,
            "page": page,
            "meta": {
                "source": SOURCE_PROXY if ORIGIN_PROXY in batch.origins else SOURCE_DIRECT,
                "pagesPerPortfolio": self.pages_per_portfolio,
                "pageSize": self.page_size,
                "startTime": time_range.start_ms,
                "endTime": time_range.end_ms,
            },
            "data": data,
        }

        if batch.failures:
            payload["errors"] = [failure.to_dict() for failure in batch.failures]

        notice = self.notice_for(batch)
        if notice:
            payload["notice"] = notice
            logger.warning("Every upstream failure was forbidden or region restricted")

        return payload
