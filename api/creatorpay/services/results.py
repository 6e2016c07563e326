"""Closed result type returned by every payment orchestrator."""
from dataclasses import dataclass
from enum import Enum


class PaymentErrorKind(str, Enum):
    INSUFFICIENT_BALANCE = 'insufficient_balance'
    RECORD_WRITE_FAILED = 'record_write_failed'
    INVOICE_CREATION_FAILED = 'invoice_creation_failed'
    PAYMENT_CANCELLED = 'payment_cancelled'
    NOT_FOUND = 'not_found'
    UNAUTHORIZED = 'unauthorized'
    ALREADY_PURCHASED = 'already_purchased'
    ALREADY_UNLOCKED = 'already_unlocked'
    INVALID_REQUEST = 'invalid_request'


@dataclass(frozen=True)
class PaymentResult:
    """Outcome of one logical payment.

    A failed result means nothing moved from the payer's point of view,
    except on the Stars rail where a paid invoice is never refunded here.
    """
    success: bool
    transaction_id: int | None = None
    error_kind: PaymentErrorKind | None = None
    message: str | None = None

    @classmethod
    def ok(cls, transaction_id: int | None = None) -> 'PaymentResult':
        return cls(success=True, transaction_id=transaction_id)

    @classmethod
    def fail(cls, kind: PaymentErrorKind, message: str) -> 'PaymentResult':
        return cls(success=False, error_kind=kind, message=message)

    @property
    def error(self) -> str | None:
        return None if self.success else self.message


@dataclass(frozen=True)
class ChatResult(PaymentResult):
    """PaymentResult that also carries the message the operation wrote."""
    message_id: int | None = None

    @classmethod
    def sent(cls, message_id: int, transaction_id: int | None = None) -> 'ChatResult':
        return cls(success=True, transaction_id=transaction_id, message_id=message_id)
