"""HTTP surface for the order-history service."""

import logging
import math
from datetime import datetime, timezone
from typing import Any, Callable, List, Optional

from aiohttp import web, web_request
from aiohttp.web_response import Response

from .aggregator import ResponseAggregator
from .clients.completions import (
    CompletionsConfigError, CompletionsProxy, CompletionsUpstreamError
)
from .clients.fingerprint import build_fingerprint_provider
from .clients.upstream import UpstreamCaller
from .collector import BatchCoordinator
from .config.settings import ServiceConfig
from .models import TimeRange
from .pagination import PaginationWalker
from .utils.logging import log_with_context
from .utils.retry import RetryOrchestrator, build_endpoints


logger = logging.getLogger(__name__)

SERVICE_NAME = "copytrade-orders"
ORDERS_ROUTE = "/api/binance/orders"
COMPLETIONS_ROUTE = "/api/openai-proxy"
UNAUTHORIZED_MESSAGE = "Unauthorized: invalid x-api-key"


def parse_number(value: Optional[str], default: Any) -> Any:
    """Lenient numeric parsing: missing or empty uses the default, garbage becomes 0."""
    if value is None or value == "":
        return default
    try:
        number = float(value)
    except ValueError:
        return 0
    if not math.isfinite(number):
        return 0
    return int(number) if number.is_integer() else number


def parse_uids(value: Optional[str], default: List[str]) -> List[str]:
    if not value:
        return list(default)
    return [uid.strip() for uid in value.split(",") if uid.strip()]


def _utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class OrdersHandler:
    """Order-history endpoint; builds a fresh fetch pipeline for every request."""

    def __init__(
        self,
        config: ServiceConfig,
        caller_factory: Optional[Callable[[], Any]] = None
    ):
        self.config = config
        self.caller_factory = caller_factory or (
            lambda: UpstreamCaller.from_config(config.upstream)
        )
        self.aggregator = ResponseAggregator(
            fatal_status_codes=config.upstream.fatal_status_codes,
            pages_per_portfolio=config.pagination.page_cap,
            page_size=config.pagination.page_size,
        )

    def build_coordinator(self, caller) -> BatchCoordinator:
        orchestrator = RetryOrchestrator(
            caller=caller,
            endpoints=build_endpoints(self.config.upstream),
            fingerprints=build_fingerprint_provider(self.config.fingerprint),
            retry_config=self.config.retry,
        )
        walker = PaginationWalker(
            orchestrator, self.config.upstream.order_history_path, self.config.pagination
        )
        return BatchCoordinator(walker, cap=self.config.batch.max_per_call)

    def parse_time_range(self, request: web_request.Request) -> TimeRange:
        default = TimeRange.last_days(self.config.batch.default_lookback_days)
        return TimeRange(
            start_ms=int(parse_number(request.query.get("startTime"), default.start_ms)),
            end_ms=int(parse_number(request.query.get("endTime"), default.end_ms)),
        )

    async def orders(self, request: web_request.Request) -> Response:
        query = request.query
        batch_config = self.config.batch

        uids = parse_uids(query.get("uids"), batch_config.default_uids)
        cursor = int(parse_number(query.get("cursor"), 0))
        max_per_call = int(parse_number(query.get("max"), batch_config.max_per_call))
        # Accepted for older clients; only echoed back
        limit = parse_number(query.get("limit"), batch_config.default_limit)
        time_range = self.parse_time_range(request)

        async with self.caller_factory() as caller:
            coordinator = self.build_coordinator(caller)
            batch = await coordinator.run_batch(uids, time_range, cursor, max_per_call)

        payload = self.aggregator.assemble(batch, time_range, limit)

        log_with_context(
            logger, logging.INFO,
            f"Served {len(payload['data'])} records for {len(batch.records_by_identifier)} portfolios",
            records=len(payload["data"]),
            failures=len(batch.failures),
            next_cursor=batch.window.next_cursor,
        )
        return web.json_response(payload)

    async def preflight(self, request: web_request.Request) -> Response:
        return web.Response(status=204)


class CompletionsHandler:
    """Forwards completion requests verbatim."""

    def __init__(self, proxy: CompletionsProxy):
        self.proxy = proxy

    async def forward(self, request: web_request.Request) -> Response:
        if request.method != "POST":
            return web.json_response({"error": "Method Not Allowed"}, status=405)

        try:
            payload = await request.json() if request.can_read_body else {}
        except ValueError:
            return web.json_response({"error": "Request body is not valid JSON"}, status=400)

        try:
            forwarded = await self.proxy.forward(payload)
        except CompletionsConfigError as e:
            return web.json_response({"error": str(e)}, status=500)
        except CompletionsUpstreamError as e:
            logger.error(str(e))
            return web.json_response({"error": str(e)}, status=502)

        return web.Response(
            status=forwarded.status,
            body=forwarded.body,
            headers={"Content-Type": forwarded.content_type},
        )


class HealthHandler:
    """Health and liveness probes."""

    def __init__(self, config: ServiceConfig):
        self.config = config

    async def health(self, request: web_request.Request) -> Response:
        upstream = self.config.upstream
        return web.json_response({
            "service": SERVICE_NAME,
            "status": "healthy",
            "timestamp": _utcnow_iso(),
            "components": {
                "upstream": {
                    "primary": upstream.primary_base_url,
                    "fallback_configured": upstream.fallback_base_url is not None,
                },
                "auth": {"enabled": self.config.auth.api_key is not None},
            },
        })

    async def live(self, request: web_request.Request) -> Response:
        return web.json_response({"alive": True, "timestamp": _utcnow_iso()})


@web.middleware
async def cors_middleware(request: web_request.Request, handler):
    """Permissive CORS headers on every response, errors included."""
    try:
        response = await handler(request)
    except web.HTTPException as ex:
        _apply_cors(ex.headers)
        raise
    _apply_cors(response.headers)
    return response


def _apply_cors(headers) -> None:
    headers['Access-Control-Allow-Origin'] = '*'
    headers['Access-Control-Allow-Methods'] = 'GET, POST, OPTIONS'
    headers['Access-Control-Allow-Headers'] = 'Content-Type, x-api-key'


@web.middleware
async def error_middleware(request: web_request.Request, handler):
    """Turn unhandled faults into a JSON 500."""
    try:
        return await handler(request)
    except web.HTTPException:
        raise
    except Exception as e:
        logger.error(f"Unhandled error serving {request.path}: {e}", exc_info=True)
        return web.json_response({"success": False, "error": str(e)}, status=500)


def auth_middleware(api_key: Optional[str]):
    """Shared-secret gate on ``/api/`` routes when a key is configured."""

    @web.middleware
    async def middleware(request: web_request.Request, handler):
        if (
            api_key
            and request.path.startswith("/api/")
            and request.method != "OPTIONS"
            and request.headers.get("x-api-key", "") != api_key
        ):
            logger.warning(f"Rejected unauthorized request to {request.path}")
            return web.json_response(
                {"success": False, "error": UNAUTHORIZED_MESSAGE}, status=401
            )
        return await handler(request)

    return middleware


def create_app(
    config: ServiceConfig,
    caller_factory: Optional[Callable[[], Any]] = None,
    completions_proxy: Optional[CompletionsProxy] = None
) -> web.Application:
    """Build the aiohttp application with all routes and middlewares."""
    app = web.Application(middlewares=[
        cors_middleware,
        error_middleware,
        auth_middleware(config.auth.api_key),
    ])

    orders = OrdersHandler(config, caller_factory)
    completions = CompletionsHandler(completions_proxy or CompletionsProxy(config.completions))
    health = HealthHandler(config)

    app.router.add_get(ORDERS_ROUTE, orders.orders)
    app.router.add_post(ORDERS_ROUTE, orders.orders)
    app.router.add_route('OPTIONS', ORDERS_ROUTE, orders.preflight)
    app.router.add_route('*', COMPLETIONS_ROUTE, completions.forward)
    app.router.add_get('/health', health.health)
    app.router.add_get('/live', health.live)

    return app


class OrderProxyServer:
    """HTTP server wrapper around the application."""

    def __init__(self, config: ServiceConfig):
        self.config = config
        self.host = config.server.host
        self.port = config.server.port
        self.app: Optional[web.Application] = None
        self.runner: Optional[web.AppRunner] = None
        self.site: Optional[web.TCPSite] = None

    async def start(self):
        logger.info(f"Starting order proxy server on {self.host}:{self.port}")

        self.app = create_app(self.config)
        self.runner = web.AppRunner(self.app)
        await self.runner.setup()

        self.site = web.TCPSite(self.runner, self.host, self.port)
        await self.site.start()

        logger.info(f"Order proxy server started on http://{self.host}:{self.port}")

    async def stop(self):
        logger.info("Stopping order proxy server")

        if self.site:
            await self.site.stop()

        if self.runner:
            await self.runner.cleanup()

        logger.info("Order proxy server stopped")
