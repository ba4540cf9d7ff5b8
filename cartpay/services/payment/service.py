"""Checkout-to-event bridge.

Validates the cart, publishes one `PaymentEvent` per accepted request and
answers with a synthetic confirmation token after a simulated processing delay.
"""

import asyncio
from typing import Any
from uuid import uuid4

from cartpay.common.config import settings
from cartpay.common.errors import CartValidationError, PublishError, PublishTimeoutError
from cartpay.common.events import KafkaBus, PaymentEvent
from cartpay.common.logging import logger, token_ctx, trace_id_ctx
from cartpay.common.metrics import events_published_total, payment_failure_total, payment_success_total
from cartpay.services.payment.schemas import PaymentConfirmation

CONFIRMATION_MESSAGE = "Payment successful"


class PaymentService:
    """Owns the publish path from request body to confirmation."""

    def __init__(
        self,
        bus: KafkaBus,
        topic: str | None = None,
        response_delay_seconds: float | None = None,
        publish_timeout_seconds: float | None = None,
        service_name: str | None = None,
    ) -> None:
        self.bus = bus
        self.topic = topic or settings.payment_topic
        self.response_delay_seconds = (
            settings.response_delay_seconds if response_delay_seconds is None else response_delay_seconds
        )
        self.publish_timeout_seconds = (
            settings.publish_timeout_seconds if publish_timeout_seconds is None else publish_timeout_seconds
        )
        self.service_name = service_name or settings.service_name

    @staticmethod
    def extract_cart(body: Any) -> list[Any]:
        """Return the cart list from a decoded JSON body or raise `CartValidationError`."""

        cart = body.get("cart") if isinstance(body, dict) else None
        if not isinstance(cart, list):
            raise CartValidationError("Invalid or missing cart")
        return cart

    async def handle_payment(self, body: Any, user_id: str) -> PaymentConfirmation:
        """Publish one payment event for `user_id` and confirm after the delay.

        Nothing is published when the cart is invalid. Publish failures propagate
        as `PublishError` before any delay is applied.
        """

        try:
            cart = self.extract_cart(body)
        except CartValidationError:
            payment_failure_total.labels(service=self.service_name, reason="invalid_cart").inc()
            raise

        event = PaymentEvent(user_id=user_id, cart=cart)
        token = uuid4().hex
        token_ctx.set(token)
        headers = {"confirmation-token": token}
        trace_id = trace_id_ctx.get()
        if trace_id:
            headers["trace-id"] = trace_id

        try:
            metadata = await self.bus.publish(
                self.topic,
                event,
                key=user_id,
                headers=headers,
                timeout=self.publish_timeout_seconds,
            )
        except PublishError as exc:
            reason = "publish_timeout" if isinstance(exc, PublishTimeoutError) else "publish_error"
            payment_failure_total.labels(service=self.service_name, reason=reason).inc()
            raise

        events_published_total.labels(service=self.service_name, topic=self.topic).inc()
        logger.info(
            "payment_published topic=%s partition=%s offset=%s items=%s",
            self.topic,
            getattr(metadata, "partition", None),
            getattr(metadata, "offset", None),
            len(cart),
        )

        await asyncio.sleep(self.response_delay_seconds)
        payment_success_total.labels(service=self.service_name).inc()
        return PaymentConfirmation(token=token, message=CONFIRMATION_MESSAGE)
