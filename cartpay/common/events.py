"""Payment event model + the shared Kafka producer handle.

The payment service owns exactly one `KafkaBus` per process. It is started by
the app lifespan, shared by every in-flight request, and closed on shutdown.
"""

import asyncio
import json
from typing import Any

from aiokafka import AIOKafkaProducer
from aiokafka.errors import KafkaError, KafkaTimeoutError
from aiokafka.structs import RecordMetadata
from pydantic import BaseModel, ConfigDict, Field

from cartpay.common.config import settings
from cartpay.common.errors import ClusterConnectionError, PublishError, PublishTimeoutError
from cartpay.common.logging import logger


class PaymentEvent(BaseModel):
    """Record value published for every accepted checkout."""

    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(alias="userId", min_length=1)
    cart: list[Any]

    def to_bytes(self) -> bytes:
        return json.dumps(self.model_dump(by_alias=True)).encode("utf-8")


class KafkaBus:
    """Long-lived producer wrapper shared by all request handlers.

    Connect and disconnect are serialized through a lock; publishes are not,
    since the event loop already serializes the producer's callbacks.
    """

    def __init__(
        self,
        bootstrap_servers: str | None = None,
        client_id: str | None = None,
        producer_factory=AIOKafkaProducer,
    ) -> None:
        self.bootstrap_servers = bootstrap_servers or settings.kafka_bootstrap_servers
        self.client_id = client_id or settings.kafka_client_id
        self._producer_factory = producer_factory
        self._producer: AIOKafkaProducer | None = None
        self._lifecycle_lock = asyncio.Lock()

    @property
    def connected(self) -> bool:
        return self._producer is not None

    async def start(self) -> None:
        """Connect the producer once; raises `ClusterConnectionError` on failure."""

        async with self._lifecycle_lock:
            if self._producer is not None:
                return
            producer = self._producer_factory(
                bootstrap_servers=self.bootstrap_servers,
                client_id=self.client_id,
                acks=settings.kafka_acks,
            )
            try:
                await producer.start()
            except (KafkaError, OSError) as exc:
                try:
                    await producer.stop()
                except Exception as stop_exc:
                    logger.warning("producer_stop_after_failed_start error=%s", stop_exc)
                raise ClusterConnectionError(
                    f"Unable to connect producer to {self.bootstrap_servers}",
                    details=str(exc),
                ) from exc
            self._producer = producer
            logger.info("producer_connected bootstrap=%s client_id=%s", self.bootstrap_servers, self.client_id)

    async def publish(
        self,
        topic: str,
        event: PaymentEvent,
        *,
        key: str | None = None,
        headers: dict[str, str] | None = None,
        timeout: float | None = None,
    ) -> RecordMetadata:
        """Send one record and wait for the broker acknowledgement."""

        producer = self._producer
        if producer is None:
            raise PublishError(f"Publish to {topic} failed", details="producer is not connected")
        record_headers = [(name, value.encode("utf-8")) for name, value in (headers or {}).items()]
        try:
            return await asyncio.wait_for(
                producer.send_and_wait(
                    topic,
                    event.to_bytes(),
                    key=key.encode("utf-8") if key is not None else None,
                    headers=record_headers or None,
                ),
                timeout,
            )
        except (asyncio.TimeoutError, KafkaTimeoutError) as exc:
            raise PublishTimeoutError(
                f"Publish to {topic} timed out",
                details=str(exc) or f"no acknowledgement within {timeout}s",
            ) from exc
        except (KafkaError, OSError) as exc:
            raise PublishError(f"Publish to {topic} failed", details=str(exc)) from exc

    async def close(self) -> None:
        async with self._lifecycle_lock:
            if self._producer is None:
                return
            producer, self._producer = self._producer, None
            await producer.stop()
            logger.info("producer_closed bootstrap=%s", self.bootstrap_servers)
