"""Shared route dependencies and result-to-HTTP translation."""
from fastapi import Depends, HTTPException, status

from creatorpay.db.database import async_session
from creatorpay.services.host_bridge import HostBridge, UnavailableHostBridge
from creatorpay.services.notifier import NotificationDispatcher
from creatorpay.services.realtime import hub
from creatorpay.services.results import PaymentResult, PaymentErrorKind
from creatorpay.services.stars_bridge import StarsInvoiceBridge

dispatcher = NotificationDispatcher(async_session, hub)

ERROR_STATUS = {
    PaymentErrorKind.INSUFFICIENT_BALANCE: status.HTTP_402_PAYMENT_REQUIRED,
    PaymentErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    PaymentErrorKind.UNAUTHORIZED: status.HTTP_403_FORBIDDEN,
    PaymentErrorKind.ALREADY_PURCHASED: status.HTTP_409_CONFLICT,
    PaymentErrorKind.ALREADY_UNLOCKED: status.HTTP_409_CONFLICT,
    PaymentErrorKind.INVOICE_CREATION_FAILED: status.HTTP_502_BAD_GATEWAY,
}


def get_notifier() -> NotificationDispatcher:
    return dispatcher


def get_host_bridge() -> HostBridge:
    # Server-side there is no Telegram WebApp; Stars payments fail until one is attached
    return UnavailableHostBridge()


def get_stars_bridge(host: HostBridge = Depends(get_host_bridge)) -> StarsInvoiceBridge:
    return StarsInvoiceBridge(host)


def raise_for_result(result: PaymentResult) -> None:
    """Turn a failed result into an HTTPException carrying its kind."""
    if result.success:
        return
    raise HTTPException(
        status_code=ERROR_STATUS.get(result.error_kind, status.HTTP_400_BAD_REQUEST),
        detail={'kind': result.error_kind.value, 'message': result.message},
    )
