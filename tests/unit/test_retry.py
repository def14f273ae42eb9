"""Tests for retry with host fallback."""

from types import SimpleNamespace

import pytest

from conftest import PRIMARY, PROXY, FakeCaller, page_outcome, scripted, status_outcome
from copytrade_orders.clients.fingerprint import BrowserFingerprintProvider
from copytrade_orders.models import ORIGIN_DIRECT, ORIGIN_PROXY, Endpoint
from copytrade_orders.utils import retry as retry_module
from copytrade_orders.utils.retry import RetryOrchestrator, build_endpoints


PATH = "/bapi/orders"


def _orchestrator(caller, config):
    return RetryOrchestrator(
        caller=caller,
        endpoints=build_endpoints(config.upstream),
        fingerprints=BrowserFingerprintProvider(),
        retry_config=config.retry,
    )


@pytest.mark.unit
class TestBuildEndpoints:

    def test_primary_only_without_fallback(self, service_config):
        endpoints = build_endpoints(service_config.upstream)

        assert endpoints == [Endpoint("primary", PRIMARY, ORIGIN_DIRECT)]

    def test_fallback_follows_primary(self, proxy_config):
        endpoints = build_endpoints(proxy_config.upstream)

        assert [e.base_url for e in endpoints] == [PRIMARY, PROXY]
        assert endpoints[1].origin == ORIGIN_PROXY

    def test_requires_an_endpoint(self, service_config):
        with pytest.raises(ValueError):
            RetryOrchestrator(FakeCaller(scripted(page_outcome([]))), [],
                              BrowserFingerprintProvider(), service_config.retry)


@pytest.mark.unit
class TestRetryOrchestrator:

    async def test_first_attempt_success(self, service_config):
        caller = FakeCaller(scripted(page_outcome([{"id": 1}])))

        result = await _orchestrator(caller, service_config).fetch(PATH, {"a": 1})

        assert result.succeeded
        assert result.endpoint.name == "primary"
        assert result.result["data"]["list"] == [{"id": 1}]
        assert result.errors == []
        assert len(caller.calls) == 1
        assert caller.calls[0].path == PATH
        assert caller.calls[0].body == {"a": 1}

    async def test_retries_until_success(self, service_config):
        caller = FakeCaller(scripted(status_outcome(500), status_outcome(429), page_outcome([])))

        result = await _orchestrator(caller, service_config).fetch(PATH, {})

        assert result.succeeded
        assert len(caller.calls) == 3
        assert [e.status_code for e in result.errors] == [500, 429]

    async def test_exhausts_attempts_without_fallback(self, service_config):
        caller = FakeCaller(scripted(status_outcome(500)))

        result = await _orchestrator(caller, service_config).fetch(PATH, {})

        assert not result.succeeded
        assert result.result is None
        assert len(caller.calls) == service_config.retry.max_attempts_per_host
        assert all(e.origin == ORIGIN_DIRECT for e in result.errors)
        assert len(result.errors) == 3

    async def test_attempt_override(self, service_config):
        caller = FakeCaller(scripted(status_outcome(500)))

        result = await _orchestrator(caller, service_config).fetch(PATH, {}, max_attempts_per_host=5)

        assert not result.succeeded
        assert len(caller.calls) == 5

    async def test_forbidden_primary_falls_back_to_proxy(self, proxy_config):
        def responder(base_url, body):
            if base_url == PRIMARY:
                return status_outcome(403)
            return page_outcome([{"id": 9}])

        caller = FakeCaller(responder)

        result = await _orchestrator(caller, proxy_config).fetch(PATH, {})

        assert result.succeeded
        assert result.endpoint.origin == ORIGIN_PROXY
        # Fatal status abandons the primary after one attempt
        assert len(caller.calls_to(PRIMARY)) == 1
        assert len(caller.calls_to(PROXY)) == 1
        assert [e.status_code for e in result.errors] == [403]
        assert result.errors[0].origin == ORIGIN_DIRECT

    async def test_fatal_on_every_host(self, proxy_config):
        caller = FakeCaller(scripted(status_outcome(451)))

        result = await _orchestrator(caller, proxy_config).fetch(PATH, {})

        assert not result.succeeded
        assert [e.origin for e in result.errors] == [ORIGIN_DIRECT, ORIGIN_PROXY]
        assert all(e.status_code == 451 for e in result.errors)

    async def test_retryable_primary_then_proxy(self, proxy_config):
        def responder(base_url, body):
            if base_url == PRIMARY:
                return status_outcome(500)
            return page_outcome([])

        caller = FakeCaller(responder)

        result = await _orchestrator(caller, proxy_config).fetch(PATH, {})

        assert result.succeeded
        assert len(caller.calls_to(PRIMARY)) == 3
        assert len(result.errors) == 3

    async def test_fresh_fingerprint_per_attempt(self, service_config):
        caller = FakeCaller(scripted(status_outcome(500)))

        await _orchestrator(caller, service_config).fetch(PATH, {})

        traces = {call.headers["x-ui-request-trace"] for call in caller.calls}
        assert len(traces) == len(caller.calls)

    async def test_delay_only_between_attempts(self, proxy_config, monkeypatch):
        proxy_config.retry.min_delay_seconds = 0.30
        proxy_config.retry.max_delay_seconds = 0.45
        delays = []

        async def fake_sleep(seconds):
            delays.append(seconds)

        monkeypatch.setattr(retry_module, "asyncio", SimpleNamespace(sleep=fake_sleep))
        caller = FakeCaller(scripted(status_outcome(500)))

        await _orchestrator(caller, proxy_config).fetch(PATH, {})

        # Three attempts on each of two hosts; no delay before each host's first attempt
        assert len(caller.calls) == 6
        assert len(delays) == 4
        assert all(0.30 <= d <= 0.45 for d in delays)


@pytest.mark.unit
async def test_zero_attempts_is_not_replaced_by_default(service_config):
    caller = FakeCaller(scripted(page_outcome([{"id": 1}])))

    result = await _orchestrator(caller, service_config).fetch(PATH, {}, max_attempts_per_host=0)

    assert not result.succeeded
    assert caller.calls == []
    assert result.errors == []
