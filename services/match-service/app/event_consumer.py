import asyncio
import logging

import aio_pika
from aio_pika import ExchangeType

from .errors import MatchError
from .events import REQUEST_CANCELLED, REQUEST_CREATED, parse_event
from .rabbitmq import connect, EXCHANGE_NAME

log = logging.getLogger(__name__)

QUEUE_NAME = "match_service_request_events"

ROUTING_KEYS = [
    REQUEST_CREATED,
    REQUEST_CANCELLED,
]

IDEMPOTENCY_TTL_SECONDS = 60 * 60  # 1 hour
RETRY_SECONDS = 5


class RequestEventConsumer:
    """
    Feeds request lifecycle events from the requests service into the
    coordinator. Each event id is handled at most once (Redis marker).
    """

    def __init__(self, coordinator, redis_client):
        self.coordinator = coordinator
        self.redis = redis_client

    async def _already_processed(self, event_id: str) -> bool:
        # SET NX: only the first consumer to see an event id claims it
        claimed = await self.redis.set(
            f"processed_event:{event_id}",
            "1",
            ex=IDEMPOTENCY_TTL_SECONDS,
            nx=True,
        )
        return not claimed

    async def handle_payload(self, payload: dict):
        event_id = payload.get("event_id")
        event_type = payload.get("event_type")
        data = payload.get("data") or {}

        if not event_id or not event_type:
            return None

        if event_type not in set(ROUTING_KEYS):
            return None

        request_id = data.get("request_id")
        if not request_id:
            return None

        if await self._already_processed(event_id):
            return None

        try:
            if event_type == REQUEST_CREATED:
                return await self.coordinator.start_matching(request_id)

            if event_type == REQUEST_CANCELLED:
                return await self.coordinator.cancel_matching(request_id)
        except MatchError as e:
            log.info("event %s (%s) for request %s not applied: %s", event_id, event_type, request_id, e)
        return None

    async def handle_message(self, message: aio_pika.IncomingMessage):
        async with message.process(requeue=False):
            payload = parse_event(message.body)
            if payload is None:
                log.warning("dropping malformed message %s", message.message_id)
                return

            await self.handle_payload(payload)

    async def _connect_and_consume(self, rabbit_url: str | None = None):
        connection = await connect(rabbit_url)
        if connection is None:
            raise RuntimeError("RABBIT_URL not set; cannot start consumer")

        channel = await connection.channel()
        await channel.set_qos(prefetch_count=50)

        exchange = await channel.declare_exchange(
            EXCHANGE_NAME,
            ExchangeType.TOPIC,
            durable=True,
        )

        queue = await channel.declare_queue(
            QUEUE_NAME,
            durable=True,
        )

        for rk in ROUTING_KEYS:
            await queue.bind(exchange, routing_key=rk)

        await queue.consume(self.handle_message)

        log.info("request event consumer started")
        return connection

    async def start_with_retry(self, stop_event: asyncio.Event, rabbit_url: str | None = None):
        while not stop_event.is_set():
            try:
                return await self._connect_and_consume(rabbit_url)
            except Exception as e:
                log.warning("consumer connect failed, retrying in %ss: %s", RETRY_SECONDS, e)
                try:
                    await asyncio.wait_for(stop_event.wait(), timeout=RETRY_SECONDS)
                except asyncio.TimeoutError:
                    continue

        return None
