"""HTTP surface for checkout intake.

One `POST /payment-service` request becomes one record on the payment topic.
The shared producer is connected by the app lifespan; a failed connect aborts
startup so the process exits instead of serving without a producer.
"""

import json
from contextlib import asynccontextmanager
from time import perf_counter
from typing import Any
from uuid import uuid4

import uvicorn
from fastapi import APIRouter, FastAPI, Header, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from cartpay.common.config import settings
from cartpay.common.errors import (
    CartPayError,
    CartValidationError,
    ClusterConnectionError,
    MalformedBodyError,
    PublishError,
    PublishTimeoutError,
)
from cartpay.common.events import KafkaBus
from cartpay.common.logging import configure_logging, logger, trace_id_ctx, user_id_ctx
from cartpay.common.metrics import (
    http_request_duration_seconds,
    http_requests_total,
    metrics_response,
    payment_latency_seconds,
    payment_requests_total,
)
from cartpay.common.startup import log_startup_config
from cartpay.common.tracing import instrument_app, setup_tracing
from cartpay.services.payment.schemas import ErrorResponse, PaymentConfirmation
from cartpay.services.payment.service import PaymentService

configure_logging()
setup_tracing(settings.service_name)
log_startup_config(
    settings.service_name,
    [
        "kafka_bootstrap_servers",
        "kafka_acks",
        "payment_topic",
        "cors_origin",
        "response_delay_seconds",
        "publish_timeout_seconds",
    ],
)
router = APIRouter()


async def metrics_middleware(request: Request, call_next):
    """Record request count and latency for every HTTP call."""

    start = perf_counter()
    route = request.url.path
    method = request.method
    status_code = 500
    try:
        response = await call_next(request)
        status_code = response.status_code
        route_obj = request.scope.get("route")
        if route_obj is not None and getattr(route_obj, "path", None):
            route = route_obj.path
        return response
    finally:
        elapsed = max(0.0, perf_counter() - start)
        http_request_duration_seconds.labels(
            service=settings.service_name,
            route=route,
            method=method,
        ).observe(elapsed)
        http_requests_total.labels(
            service=settings.service_name,
            route=route,
            method=method,
            status_code=str(status_code),
        ).inc()


def origin_guard(allowed_origins: list[str]):
    """Build a middleware that refuses requests from origins outside the allow-list.

    `CORSMiddleware` only withholds CORS headers on simple requests; this guard
    stops them before any handler runs. Requests without an Origin header pass.
    """

    async def guard(request: Request, call_next):
        origin = request.headers.get("origin")
        if origin is not None and origin not in allowed_origins:
            logger.warning("origin_rejected origin=%s path=%s", origin, request.url.path)
            return JSONResponse(status_code=403, content={"error": "Origin not allowed"})
        return await call_next(request)

    return guard


async def read_json_body(request: Request) -> Any:
    """Decode the request body; an empty body reads as an empty object."""

    raw = await request.body()
    if not raw.strip():
        return {}
    try:
        return json.loads(raw)
    except ValueError as exc:
        raise MalformedBodyError("Malformed JSON body", details=str(exc)) from exc


@router.post(
    "/payment-service",
    response_model=PaymentConfirmation,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}, 504: {"model": ErrorResponse}},
)
async def create_payment(
    request: Request,
    x_user_id: str | None = Header(default=None),
    x_correlation_id: str | None = Header(default=None),
):
    """Publish a payment event for the submitted cart.

    The user id comes from `X-User-Id` (set by an upstream auth layer) and falls
    back to the configured placeholder.
    """

    trace_id_ctx.set(x_correlation_id or str(uuid4()))
    user_id = (x_user_id or "").strip() or settings.default_user_id
    user_id_ctx.set(user_id)
    service: PaymentService = request.app.state.service

    payment_requests_total.labels(service=settings.service_name).inc()
    with payment_latency_seconds.labels(service=settings.service_name).time():
        try:
            body = await read_json_body(request)
            return await service.handle_payment(body, user_id)
        except CartValidationError as exc:
            logger.warning("payment_rejected error=%s details=%s", exc.message, exc.details)
            return JSONResponse(status_code=exc.status_code, content={"error": exc.message})
        except PublishError as exc:
            logger.error("payment_publish_failed error=%s details=%s", exc.message, exc.details)
            error = "Publish timed out" if isinstance(exc, PublishTimeoutError) else "Internal server error"
            return JSONResponse(status_code=exc.status_code, content={"error": error, "details": exc.details})
        except Exception as exc:
            logger.exception("payment_failed type=%s error=%s", type(exc).__name__, exc)
            return JSONResponse(status_code=500, content={"error": "Internal server error", "details": str(exc)})


@router.get("/metrics")
def metrics():
    """Prometheus scrape endpoint."""

    return metrics_response()


@router.get("/health")
def health(request: Request):
    """Container health probe endpoint."""

    return {"ok": True, "producer_connected": request.app.state.service.bus.connected}


async def cartpay_error_handler(_: Request, exc: CartPayError) -> JSONResponse:
    """Render taxonomy errors that escaped a route."""

    logger.error("request_failed error=%s details=%s", exc.message, exc.details)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message, "details": exc.details})


async def unhandled_error_handler(_: Request, exc: Exception) -> JSONResponse:
    """Last line of defense for anything outside the error taxonomy."""

    logger.error("unhandled_error type=%s error=%s", type(exc).__name__, exc)
    status_code = getattr(exc, "status_code", None)
    if not (isinstance(status_code, int) and 400 <= status_code < 600):
        status_code = 500
    return JSONResponse(status_code=status_code, content={"error": "Internal server error", "details": str(exc)})


def create_app(service: PaymentService | None = None, cors_origin: str | None = None) -> FastAPI:
    """Assemble the payment service app around one shared producer."""

    service = service or PaymentService(KafkaBus())
    allowed_origins = [cors_origin or settings.cors_origin]

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        """Connect the producer before serving and close it on shutdown."""

        try:
            await service.bus.start()
        except ClusterConnectionError as exc:
            logger.critical(
                "producer_connect_failed bootstrap=%s details=%s",
                service.bus.bootstrap_servers,
                exc.details,
            )
            raise
        yield
        await service.bus.close()

    app = FastAPI(title="Cart Payment Service", lifespan=lifespan)
    app.state.service = service
    # Last added runs first: metrics, then CORS preflight, then the origin guard.
    app.middleware("http")(origin_guard(allowed_origins))
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_methods=["*"],
        allow_headers=["*"],
        allow_credentials=False,
    )
    app.middleware("http")(metrics_middleware)
    app.add_exception_handler(CartPayError, cartpay_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
    app.include_router(router)
    instrument_app(app)
    return app


app = create_app()


def main() -> None:
    """Serve the app; uvicorn exits nonzero when the lifespan startup fails."""

    uvicorn.run(app, host=settings.host, port=settings.port, log_config=None)


if __name__ == "__main__":
    main()
