from creatorpay.schemas.payments import (
    StarsInvoiceRequest,
    StarsInvoiceResponse,
    PaymentResultResponse,
    TransactionEntry,
    BalanceResponse,
)
from creatorpay.schemas.chat import MessageResponse
from creatorpay.schemas.access import PostAccessResponse, LivestreamAccessResponse

__all__ = [
    'StarsInvoiceRequest',
    'StarsInvoiceResponse',
    'PaymentResultResponse',
    'TransactionEntry',
    'BalanceResponse',
    'MessageResponse',
    'PostAccessResponse',
    'LivestreamAccessResponse',
]
