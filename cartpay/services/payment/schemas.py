"""Response schemas for the checkout endpoint."""

from pydantic import BaseModel


class PaymentConfirmation(BaseModel):
    """Body returned once the payment event is durably published."""

    token: str
    message: str


class ErrorResponse(BaseModel):
    """Body returned for rejected or failed checkouts."""

    error: str
    details: str | None = None
