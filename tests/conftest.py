"""In-memory stand-ins for the aiokafka producer and admin client."""

import asyncio
from types import SimpleNamespace

import pytest

from cartpay.common.events import KafkaBus
from cartpay.services.payment.service import PaymentService


class FakeProducer:
    """Records sent messages; can be told to fail on start or send."""

    def __init__(self, fail_start=None, fail_send=None, send_delay: float = 0.0) -> None:
        self.fail_start = fail_start
        self.fail_send = fail_send
        self.send_delay = send_delay
        self.config: dict = {}
        self.started = False
        self.stopped = False
        self.sent: list[dict] = []

    async def start(self) -> None:
        if self.fail_start is not None:
            raise self.fail_start
        self.started = True

    async def stop(self) -> None:
        self.stopped = True

    async def send_and_wait(self, topic, value, key=None, headers=None):
        if self.send_delay:
            await asyncio.sleep(self.send_delay)
        if self.fail_send is not None:
            raise self.fail_send
        self.sent.append({"topic": topic, "value": value, "key": key, "headers": dict(headers or [])})
        return SimpleNamespace(topic=topic, partition=0, offset=len(self.sent) - 1)


class FakeAdmin:
    """Cluster topic state held in a dict of name -> (partitions, replication_factor)."""

    def __init__(
        self,
        topics=None,
        brokers: int = 3,
        fail_start=None,
        fail_create=None,
        fail_list=None,
        topic_errors=None,
        leaderless_polls: int = 0,
    ) -> None:
        self.topics = dict(topics or {})
        self.brokers = brokers
        self.fail_start = fail_start
        self.fail_create = fail_create
        self.fail_list = fail_list
        self.topic_errors = dict(topic_errors or {})
        self.leaderless_polls = leaderless_polls
        self.starts = 0
        self.closes = 0
        self.create_calls: list[list[str]] = []
        self.describe_calls = 0

    @property
    def open(self) -> bool:
        return self.starts > self.closes

    async def start(self) -> None:
        self.starts += 1
        if self.fail_start is not None:
            raise self.fail_start

    async def close(self) -> None:
        self.closes += 1

    async def list_topics(self):
        if self.fail_list is not None:
            raise self.fail_list
        return list(self.topics)

    async def describe_cluster(self):
        return {"brokers": [{"node_id": i, "host": "localhost", "port": 9094 + i} for i in range(self.brokers)]}

    async def create_topics(self, new_topics, timeout_ms=None, validate_only=False):
        if self.fail_create is not None:
            raise self.fail_create
        self.create_calls.append([t.name for t in new_topics])
        errors = []
        for topic in new_topics:
            code = self.topic_errors.get(topic.name, 0)
            if code == 0:
                self.topics[topic.name] = (topic.num_partitions, topic.replication_factor)
            errors.append((topic.name, code, None))
        return SimpleNamespace(topic_errors=errors)

    async def describe_topics(self, topics=None):
        self.describe_calls += 1
        leader = -1 if self.describe_calls <= self.leaderless_polls else 0
        return [
            {
                "topic": name,
                "error_code": 0,
                "partitions": [{"partition": p, "leader": leader} for p in range(self.topics[name][0])],
            }
            for name in topics
            if name in self.topics
        ]


@pytest.fixture
def producer() -> FakeProducer:
    return FakeProducer()


@pytest.fixture
def bus(producer) -> KafkaBus:
    def factory(**config):
        producer.config = config
        return producer

    return KafkaBus(bootstrap_servers="broker-1:9092", client_id="test", producer_factory=factory)


@pytest.fixture
def payment_service(bus) -> PaymentService:
    return PaymentService(bus, response_delay_seconds=0, publish_timeout_seconds=1.0)


@pytest.fixture
def make_producer():
    return FakeProducer


@pytest.fixture
def make_admin():
    return FakeAdmin
