"""FastAPI relay for Microsoft Graph calendar change notifications."""

import json
from contextlib import asynccontextmanager
from typing import Any

import httpx
from fastapi import FastAPI, HTTPException, Request, Response
from fastapi.responses import StreamingResponse

from src.config import (
    BROADCAST_SUBSCRIBER_QUEUE_MAX,
    CLIENT_STATE_CONFIG_PATH,
    RELAY_ENDPOINT_PATH,
    RELAY_FORWARD_BASE_DELAY,
    RELAY_FORWARD_MAX_ATTEMPTS,
    RELAY_FORWARD_TIMEOUT,
    RELAY_FORWARD_URL,
    RELAY_INFLIGHT_GRACE,
    RELAY_QUEUE_MAX,
    RELAY_SHUTDOWN_TIMEOUT,
    RELAY_WORKER_COUNT,
    WEBHOOK_CLIENT_STATE,
)
from src.relay.acknowledgment import RequestOutcome, accepted_response
from src.relay.client_state import ClientStateRegistry
from src.relay.dispatch import DispatchQueue
from src.relay.intake import NotificationIntake, parse_body
from src.relay.retry import RetryPolicy
from src.relay.sinks import BroadcastSink, EventCacheSink, ForwardingSink, LoggingSink, Sink
from src.relay.stats import RelayStats
from src.relay.validation import extract_validation_token, validation_response
from src.utils.logger import get_logger, request_context

logger = get_logger("calendar_relay.relay.server")

ENDPOINT_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"]


def _default_sinks(app: FastAPI, forward_url: str | None) -> list[Sink]:
    """Log, cache and live push; forwarding only when a URL is configured."""
    sinks: list[Sink] = [
        LoggingSink(),
        EventCacheSink(),
        BroadcastSink(subscriber_queue_max=BROADCAST_SUBSCRIBER_QUEUE_MAX),
    ]
    if forward_url:
        forward_http_client = httpx.AsyncClient(
            timeout=httpx.Timeout(RELAY_FORWARD_TIMEOUT),
            limits=httpx.Limits(max_keepalive_connections=10, max_connections=20),
        )
        app.state._forward_http_client = forward_http_client
        sinks.append(
            ForwardingSink(
                forward_url,
                http_client=forward_http_client,
                retry_policy=RetryPolicy(
                    max_attempts=RELAY_FORWARD_MAX_ATTEMPTS,
                    base_delay=RELAY_FORWARD_BASE_DELAY,
                ),
            )
        )
    return sinks


async def _shutdown_tasks(app: FastAPI) -> None:
    """Flush the dispatch queue, then close the forwarding HTTP client."""
    queue: DispatchQueue = app.state.dispatch_queue
    await queue.stop(
        drain_timeout=app.state.shutdown_timeout,
        inflight_grace=app.state.inflight_grace,
    )

    forward_client = getattr(app.state, "_forward_http_client", None)
    if forward_client is not None:
        try:
            await forward_client.aclose()
        except Exception as e:
            logger.debug("relay.lifespan.forward_client_close_error", error=str(e))
        app.state._forward_http_client = None


@asynccontextmanager
async def _lifespan(app: FastAPI):
    """Run dispatch workers in the server's event loop for the app's lifetime."""
    app.state.dispatch_queue.start()
    logger.info("relay.lifespan.started", endpoint=app.state.endpoint_path)
    yield
    await _shutdown_tasks(app)
    logger.info("relay.lifespan.stopped", stats=app.state.stats.snapshot())


def create_app(
    client_states: ClientStateRegistry | None = None,
    sinks: list[Sink] | None = None,
    endpoint_path: str = RELAY_ENDPOINT_PATH,
    queue_max: int = RELAY_QUEUE_MAX,
    worker_count: int = RELAY_WORKER_COUNT,
    shutdown_timeout: float = RELAY_SHUTDOWN_TIMEOUT,
    inflight_grace: float = RELAY_INFLIGHT_GRACE,
    forward_url: str | None = RELAY_FORWARD_URL,
) -> FastAPI:
    """
    Create the relay app. Collaborators are injected; when omitted, client states come
    from WEBHOOK_CLIENT_STATE + CLIENT_STATE_CONFIG_PATH and the default sinks are used.
    """
    app = FastAPI(
        title="Graph Calendar Notification Relay",
        version="0.1.0",
        lifespan=_lifespan,
    )
    if client_states is None:
        client_states = ClientStateRegistry.from_config(WEBHOOK_CLIENT_STATE, CLIENT_STATE_CONFIG_PATH)
    if sinks is None:
        sinks = _default_sinks(app, forward_url)

    stats = RelayStats()
    queue = DispatchQueue(maxsize=queue_max, worker_count=worker_count, stats=stats)
    for sink in sinks:
        queue.register(sink)

    app.state.stats = stats
    app.state.dispatch_queue = queue
    app.state.client_states = client_states
    app.state.intake = NotificationIntake(queue, client_states, stats)
    app.state.endpoint_path = endpoint_path
    app.state.shutdown_timeout = shutdown_timeout
    app.state.inflight_grace = inflight_grace
    app.state.event_cache = next((s for s in sinks if isinstance(s, EventCacheSink)), None)
    app.state.broadcaster = next((s for s in sinks if isinstance(s, BroadcastSink)), None)

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/stats")
    async def relay_stats() -> dict[str, Any]:
        """Counters since startup plus current queue depth."""
        return {
            **stats.snapshot(),
            "queue_size": queue.qsize(),
            "queue_max": queue.maxsize,
            "workers": queue.worker_count,
            "sinks": [s.name for s in queue.sinks],
        }

    @app.get("/events")
    async def cached_events() -> dict[str, Any]:
        """Calendar events known from notifications (requires the cache sink)."""
        cache: EventCacheSink | None = app.state.event_cache
        if cache is None:
            raise HTTPException(status_code=404, detail="Event cache sink is not enabled")
        return {"events": cache.snapshot()}

    @app.get("/events/stream")
    async def stream_events() -> StreamingResponse:
        """Server-sent events: one 'data:' frame per accepted notification."""
        broadcaster: BroadcastSink | None = app.state.broadcaster
        if broadcaster is None:
            raise HTTPException(status_code=404, detail="Broadcast sink is not enabled")

        async def event_source():
            async for payload in broadcaster.listen():
                yield f"data: {json.dumps(payload)}\n\n"

        return StreamingResponse(
            event_source(),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache"},
        )

    @app.api_route(endpoint_path, methods=ENDPOINT_METHODS, response_model=None)
    async def notifications(request: Request) -> Response:
        with request_context(method=request.method):
            # Subscription validation: Graph sends validationToken as query param
            token = extract_validation_token(request)
            if token is not None:
                logger.info(
                    "relay.request.responded",
                    outcome=RequestOutcome.VALIDATED.value,
                    token_length=len(token),
                )
                return validation_response(token)

            batch = parse_body(await request.body())
            report = app.state.intake.process(batch)
            if not report.received:
                logger.info("relay.request.responded", outcome=RequestOutcome.EMPTY.value)
                return accepted_response()

            logger.info(
                "relay.request.responded",
                outcome=RequestOutcome.ENQUEUED.value,
                accepted=report.accepted,
                dropped=report.received - report.accepted,
                queue_size=queue.qsize(),
            )
            return accepted_response()

    return app
