"""HTTP tests for the payment service app."""

import asyncio
import json

import pytest
from aiokafka.errors import KafkaConnectionError, KafkaTimeoutError
from fastapi.testclient import TestClient

from cartpay.common.errors import ClusterConnectionError
from cartpay.common.events import KafkaBus
from cartpay.services.payment.main import create_app, unhandled_error_handler
from cartpay.services.payment.service import PaymentService

ORIGIN = "http://localhost:3000"


@pytest.fixture
def client(payment_service):
    with TestClient(create_app(payment_service, cors_origin=ORIGIN)) as test_client:
        yield test_client


def test_valid_checkout_publishes_and_confirms(client, producer):
    cart = [{"sku": "A1", "qty": 2}]

    resp = client.post("/payment-service", json={"cart": cart}, headers={"origin": ORIGIN})

    assert resp.status_code == 200
    body = resp.json()
    assert isinstance(body["token"], str) and body["token"]
    assert body["message"]
    assert resp.headers["access-control-allow-origin"] == ORIGIN
    assert len(producer.sent) == 1
    value = json.loads(producer.sent[0]["value"])
    assert value == {"userId": "123", "cart": cart}


def test_user_id_header_is_used(client, producer):
    resp = client.post("/payment-service", json={"cart": []}, headers={"x-user-id": "u-7"})

    assert resp.status_code == 200
    assert json.loads(producer.sent[0]["value"])["userId"] == "u-7"
    assert producer.sent[0]["key"] == b"u-7"


@pytest.mark.parametrize("payload", [{}, {"cart": "oops"}, {"cart": 5}])
def test_invalid_cart_is_rejected(payment_service, producer, payload):
    payment_service.response_delay_seconds = 30
    with TestClient(create_app(payment_service, cors_origin=ORIGIN)) as client:
        resp = client.post("/payment-service", json=payload)

    assert resp.status_code == 400
    assert resp.json() == {"error": "Invalid or missing cart"}
    assert producer.sent == []


def test_malformed_json_is_rejected(client, producer):
    resp = client.post(
        "/payment-service",
        content=b'{"cart": [',
        headers={"content-type": "application/json"},
    )

    assert resp.status_code == 400
    assert resp.json() == {"error": "Malformed JSON body"}
    assert producer.sent == []


def test_publish_failure_returns_500(client, producer):
    producer.fail_send = KafkaConnectionError("Unable to connect to broker-1:9092")

    resp = client.post("/payment-service", json={"cart": [{"sku": "A1"}]})

    assert resp.status_code == 500
    body = resp.json()
    assert body["error"] == "Internal server error"
    assert "broker-1" in body["details"]


def test_publish_timeout_returns_504(client, producer):
    producer.fail_send = KafkaTimeoutError()

    resp = client.post("/payment-service", json={"cart": []})

    assert resp.status_code == 504
    assert set(resp.json()) == {"error", "details"}


def test_disallowed_origin_is_blocked(client, producer):
    resp = client.post("/payment-service", json={"cart": []}, headers={"origin": "http://evil.example"})

    assert resp.status_code == 403
    assert "access-control-allow-origin" not in resp.headers
    assert producer.sent == []


def test_preflight_from_allowed_origin(client):
    resp = client.options(
        "/payment-service",
        headers={"origin": ORIGIN, "access-control-request-method": "POST"},
    )

    assert resp.status_code == 200
    assert resp.headers["access-control-allow-origin"] == ORIGIN


def test_preflight_from_disallowed_origin(client):
    resp = client.options(
        "/payment-service",
        headers={"origin": "http://evil.example", "access-control-request-method": "POST"},
    )

    assert resp.status_code == 400


def test_unexpected_handler_error_returns_500_with_details(payment_service):
    class BrokenService(PaymentService):
        async def handle_payment(self, body, user_id):
            raise RuntimeError("boom")

    service = BrokenService(payment_service.bus)
    with TestClient(create_app(service, cors_origin=ORIGIN), raise_server_exceptions=False) as client:
        resp = client.post("/payment-service", json={"cart": []}, headers={"origin": ORIGIN})

    assert resp.status_code == 500
    assert resp.json() == {"error": "Internal server error", "details": "boom"}
    assert resp.headers["access-control-allow-origin"] == ORIGIN


def test_socket_error_from_producer_keeps_cors_headers(client, producer):
    producer.fail_send = ConnectionResetError("socket reset by broker")

    resp = client.post("/payment-service", json={"cart": [{"sku": "A1"}]}, headers={"origin": ORIGIN})

    assert resp.status_code == 500
    body = resp.json()
    assert body["error"] == "Internal server error"
    assert "socket reset by broker" in body["details"]
    assert resp.headers["access-control-allow-origin"] == ORIGIN


def test_fallback_handler_includes_details():
    resp = asyncio.run(unhandled_error_handler(None, ValueError("bad state")))

    assert resp.status_code == 500
    assert json.loads(resp.body) == {"error": "Internal server error", "details": "bad state"}


def test_producer_connect_failure_aborts_startup(make_producer):
    producer = make_producer(fail_start=KafkaConnectionError("Unable to bootstrap"))
    bus = KafkaBus(bootstrap_servers="b:9092", producer_factory=lambda **config: producer)

    with pytest.raises(ClusterConnectionError):
        with TestClient(create_app(PaymentService(bus))):
            pass


def test_lifespan_closes_producer(payment_service, producer):
    with TestClient(create_app(payment_service)) as client:
        assert client.get("/health").json() == {"ok": True, "producer_connected": True}

    assert producer.stopped


def test_metrics_endpoint(client):
    client.post("/payment-service", json={"cart": []})

    resp = client.get("/metrics")

    assert resp.status_code == 200
    assert "payment_requests_total" in resp.text
