"""Data model shared by the fetch orchestrator components."""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

PortfolioId = str
OrderRecord = Dict[str, Any]

DAY_MS = 24 * 60 * 60 * 1000

ORIGIN_DIRECT = "direct"
ORIGIN_PROXY = "proxy"


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class TimeRange:
    """Millisecond epoch range forwarded verbatim to the upstream."""
    start_ms: int
    end_ms: int

    @classmethod
    def last_days(cls, days: int, end_ms: Optional[int] = None) -> "TimeRange":
        end = now_ms() if end_ms is None else end_ms
        return cls(start_ms=end - days * DAY_MS, end_ms=end)


@dataclass(frozen=True)
class ContinuationToken:
    """
    Pagination position for a single portfolio walk.

    A token without a value is the first page; a token with a value resumes
    from the upstream's ``indexValue``.
    """
    value: Optional[str] = None

    @classmethod
    def first(cls) -> "ContinuationToken":
        return cls()

    @classmethod
    def resume(cls, value: Any) -> "ContinuationToken":
        return cls(value=str(value))

    @classmethod
    def from_page(cls, page: Dict[str, Any]) -> Optional["ContinuationToken"]:
        """Token for the next page, or None when the upstream signalled exhaustion."""
        value = page.get("indexValue")
        if value is None or value == "":
            return None
        return cls.resume(value)

    @property
    def is_first_page(self) -> bool:
        return self.value is None

    def apply(self, body: Dict[str, Any]) -> Dict[str, Any]:
        if not self.is_first_page:
            body["indexValue"] = self.value
        return body


class OutcomeKind(Enum):
    """Classification of a single upstream attempt."""
    SUCCESS = "success"
    RETRYABLE = "retryable"
    FATAL = "fatal"


@dataclass
class AttemptOutcome:
    """Result of one upstream call."""
    kind: OutcomeKind
    status_code: Optional[int] = None
    parsed_body: Optional[Any] = None
    raw_body_prefix: Optional[str] = None
    failure_reason: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.kind is OutcomeKind.SUCCESS


@dataclass(frozen=True)
class Endpoint:
    """One host in the ordered fallback chain."""
    name: str
    base_url: str
    origin: str = ORIGIN_DIRECT


@dataclass
class ErrorRecord:
    """Diagnostic entry for a failed attempt."""
    origin: str
    host: str
    status_code: Optional[int] = None
    body_snippet: Optional[str] = None
    message: Optional[str] = None
    portfolio_id: Optional[PortfolioId] = None

    @classmethod
    def from_outcome(cls, endpoint: Endpoint, outcome: AttemptOutcome) -> "ErrorRecord":
        return cls(
            origin=endpoint.origin,
            host=endpoint.name,
            status_code=outcome.status_code,
            body_snippet=outcome.raw_body_prefix,
            message=outcome.failure_reason,
        )

    def is_fatal_class(self, fatal_codes: Iterable[int]) -> bool:
        return self.status_code is not None and self.status_code in set(fatal_codes)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "origin": self.origin,
            "host": self.host,
            "status": self.status_code,
            "body": self.body_snippet,
            "error": self.message,
        }
        return {key: value for key, value in data.items() if value is not None}


@dataclass
class FetchResult:
    """Outcome of a retried, host-fallback fetch."""
    succeeded: bool
    result: Optional[Dict[str, Any]] = None
    endpoint: Optional[Endpoint] = None
    errors: List[ErrorRecord] = field(default_factory=list)


@dataclass
class WalkResult:
    """Records gathered for one portfolio, plus the failure that stopped the walk."""
    records: List[OrderRecord] = field(default_factory=list)
    errors: Optional[List[ErrorRecord]] = None
    pages_requested: int = 0
    origins: Set[str] = field(default_factory=set)

    @property
    def failed(self) -> bool:
        return self.errors is not None


@dataclass
class IdentifierFailure:
    uid: PortfolioId
    errors: List[ErrorRecord]

    def to_dict(self) -> Dict[str, Any]:
        return {"uid": self.uid, "error": [record.to_dict() for record in self.errors]}


@dataclass(frozen=True)
class BatchWindow:
    """Slice ``[start_index, end_index)`` of the identifier list processed by one call."""
    start_index: int
    end_index: int
    total: int
    max_per_call: int

    @property
    def next_cursor(self) -> Optional[str]:
        return str(self.end_index) if self.end_index < self.total else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "start": self.start_index,
            "end": self.end_index,
            "total": self.total,
            "maxPerCall": self.max_per_call,
            "nextCursor": self.next_cursor,
        }


@dataclass
class BatchResult:
    records_by_identifier: List[Tuple[PortfolioId, List[OrderRecord]]]
    failures: List[IdentifierFailure]
    window: BatchWindow
    origins: Set[str] = field(default_factory=set)
