import asyncio
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from . import config
from .errors import (
    ConflictError,
    InvalidInputError,
    InvalidStateError,
    MatchError,
    NotFoundError,
)
from .event_consumer import RequestEventConsumer
from .rabbitmq import RabbitPublisher
from .redis_client import get_redis
from .routes import router
from .sweeper import expiry_loop
from .wiring import build_coordinator

logging.basicConfig(
    level=config.LOG_LEVEL,
    format=f"[{config.SERVICE_NAME}] %(levelname)s %(name)s: %(message)s",
)
log = logging.getLogger(__name__)

_STATUS_BY_ERROR = {
    InvalidInputError: 400,
    NotFoundError: 404,
    ConflictError: 409,
    InvalidStateError: 409,
}


def create_app(coordinator=None, publisher=None, run_sweeper: bool = True) -> FastAPI:
    if publisher is None:
        publisher = RabbitPublisher()
    if coordinator is None:
        coordinator = build_coordinator(publisher=publisher)

    app = FastAPI(title="Match Service")
    app.include_router(router)
    app.state.coordinator = coordinator
    app.state.publisher = publisher

    stop_event = asyncio.Event()
    background = {"sweeper": None, "consumer": None}

    @app.exception_handler(MatchError)
    async def match_error_handler(request: Request, exc: MatchError):
        status = _STATUS_BY_ERROR.get(type(exc), 400)
        body = {"detail": str(exc), "error": exc.kind}
        if isinstance(exc, InvalidStateError):
            body["state"] = exc.state
        return JSONResponse(status_code=status, content=body)

    @app.get("/health")
    async def health():
        return {
            "status": "ok",
            "service": config.SERVICE_NAME,
            "events_enabled": publisher.enabled,
        }

    @app.on_event("startup")
    async def startup():
        stop_event.clear()

        # Never crash service if RabbitMQ is temporarily unavailable
        try:
            await publisher.connect()
        except Exception as e:
            log.warning("RabbitMQ connect failed at startup; continuing without events: %s", e)

        if config.RABBIT_URL and config.REDIS_URL:
            consumer = RequestEventConsumer(coordinator, get_redis(config.REDIS_URL))
            background["consumer"] = asyncio.create_task(consumer.start_with_retry(stop_event))

        if run_sweeper:
            background["sweeper"] = asyncio.create_task(expiry_loop(coordinator, stop_event))

    @app.on_event("shutdown")
    async def shutdown():
        stop_event.set()
        if background["sweeper"]:
            await background["sweeper"]

        conn = None
        if background["consumer"]:
            conn = await background["consumer"]
        try:
            if conn and not conn.is_closed:
                await conn.close()
        except Exception as e:
            log.warning("consumer close failed: %s", e)

        await publisher.close()

    return app


app = create_app()
