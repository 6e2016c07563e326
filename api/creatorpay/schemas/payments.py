from datetime import datetime
from pydantic import BaseModel, Field, AliasChoices, field_validator

from creatorpay.models.ledger import PaymentMethod


class StarsInvoiceRequest(BaseModel):
    """Body sent to the create-stars-invoice function."""
    amount: int = Field(..., ge=1)
    user_id: int
    to_user_id: int
    reference_type: str
    reference_id: str
    description: str | None = None


class StarsInvoiceResponse(BaseModel):
    """Provider invoice. transaction_id is provider-side, not a ledger id."""
    invoice_url: str = Field(validation_alias=AliasChoices('invoice_url', 'invoice_link'))
    transaction_id: str
    amount: int | None = None

    @field_validator('transaction_id', mode='before')
    @classmethod
    def _stringify(cls, value):
        return str(value) if value is not None else value


class SubscriptionPaymentRequest(BaseModel):
    subscriber_id: int
    creator_id: int
    price: int = Field(..., ge=0)
    method: PaymentMethod = PaymentMethod.TOKENS


class ContentPurchaseRequest(BaseModel):
    user_id: int
    post_id: int
    method: PaymentMethod = PaymentMethod.TOKENS


class TipRequest(BaseModel):
    sender_id: int
    recipient_id: int
    amount: int = Field(..., ge=1)
    method: PaymentMethod = PaymentMethod.TOKENS


class TicketRequest(BaseModel):
    user_id: int
    method: PaymentMethod = PaymentMethod.TOKENS


class PaymentResultResponse(BaseModel):
    success: bool
    transaction_id: int | None = None
    message_id: int | None = None


class TransactionEntry(BaseModel):
    """Single ledger entry response."""
    id: int
    user_id: int
    amount: int
    balance_after: int | None
    type: str
    status: str
    payment_method: str
    description: str | None
    reference_type: str
    reference_id: str | None
    created_at: datetime

    class Config:
        from_attributes = True


class BalanceResponse(BaseModel):
    user_id: int
    balance: int


class LivestreamGiftRequest(BaseModel):
    user_id: int
    gift_id: int
    method: PaymentMethod = PaymentMethod.STARS
