"""Pytest configuration and shared fixtures."""

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

import pytest

from copytrade_orders.clients.fingerprint import BrowserFingerprintProvider
from copytrade_orders.config.settings import ServiceConfig, load_config
from copytrade_orders.models import AttemptOutcome, OutcomeKind
from copytrade_orders.pagination import PaginationWalker
from copytrade_orders.utils.retry import RetryOrchestrator, build_endpoints


PRIMARY = "https://www.binance.com"
PROXY = "https://proxy.example.net"


@dataclass
class RecordedCall:
    base_url: str
    path: str
    body: Dict[str, Any]
    headers: Optional[Dict[str, str]]


class FakeCaller:
    """Stands in for ``UpstreamCaller``; answers through a responder callable."""

    def __init__(self, responder: Callable[[str, Dict[str, Any]], AttemptOutcome]):
        self.responder = responder
        self.calls: List[RecordedCall] = []
        self.entered = 0

    async def __aenter__(self):
        self.entered += 1
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        return False

    async def call(self, base_url, path, json_body, headers=None):
        self.calls.append(RecordedCall(base_url, path, dict(json_body), headers))
        return self.responder(base_url, json_body)

    def calls_to(self, base_url: str) -> List[RecordedCall]:
        return [call for call in self.calls if call.base_url == base_url]


def page_outcome(rows: List[Dict[str, Any]], index_value: Optional[str] = None) -> AttemptOutcome:
    data: Dict[str, Any] = {"list": rows}
    if index_value is not None:
        data["indexValue"] = index_value
    return AttemptOutcome(
        kind=OutcomeKind.SUCCESS,
        status_code=200,
        parsed_body={"code": "000000", "data": data, "success": True},
    )


def status_outcome(status: int, body: str = "denied") -> AttemptOutcome:
    kind = OutcomeKind.FATAL if status in (403, 451) else OutcomeKind.RETRYABLE
    return AttemptOutcome(
        kind=kind,
        status_code=status,
        raw_body_prefix=body,
        failure_reason=f"HTTP {status}",
    )


def scripted(*outcomes: AttemptOutcome):
    """Responder replaying ``outcomes`` in order, repeating the last one."""
    queue = list(outcomes)

    def responder(base_url, body):
        if len(queue) > 1:
            return queue.pop(0)
        return queue[0]

    return responder


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("BINANCE_PROXY_BASE", "PROXY_INTERNAL_API_KEY", "OPENAI_API_KEY", "PORT"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def service_config() -> ServiceConfig:
    """Default configuration with all pacing delays disabled."""
    config = load_config()
    config.retry.min_delay_seconds = 0
    config.retry.max_delay_seconds = 0
    config.pagination.page_delay_seconds = 0
    return config


@pytest.fixture
def proxy_config(service_config) -> ServiceConfig:
    service_config.upstream.fallback_base_url = PROXY
    return service_config


@pytest.fixture
def make_walker():
    def factory(caller: FakeCaller, config: ServiceConfig) -> PaginationWalker:
        orchestrator = RetryOrchestrator(
            caller=caller,
            endpoints=build_endpoints(config.upstream),
            fingerprints=BrowserFingerprintProvider(),
            retry_config=config.retry,
        )
        return PaginationWalker(
            orchestrator, config.upstream.order_history_path, config.pagination
        )

    return factory
