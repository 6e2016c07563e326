"""Host environment capabilities (Telegram WebApp), injected rather than global."""
import asyncio
import logging
from enum import Enum
from typing import Callable, Protocol

from creatorpay.models.ledger import PaymentMethod

logger = logging.getLogger(__name__)


class InvoiceStatus(str, Enum):
    PAID = 'paid'
    CANCELLED = 'cancelled'
    FAILED = 'failed'
    PENDING = 'pending'


class HostBridge(Protocol):
    """What the orchestration layer needs from the Mini App host."""

    def open_invoice(self, url: str, callback: Callable[[str], None]) -> None:
        ...

    def show_popup(
        self,
        message: str,
        title: str | None = None,
        buttons: list[dict] | None = None,
        callback: Callable[[str], None] | None = None,
    ) -> None:
        ...

    def show_alert(self, message: str, callback: Callable[[], None] | None = None) -> None:
        ...

    def show_confirm(self, message: str, callback: Callable[[bool], None]) -> None:
        ...

    def viewport_height(self) -> int:
        ...

    @property
    def available(self) -> bool:
        ...


class UnavailableHostBridge:
    """Stand-in when no Telegram WebApp is attached: every invoice fails."""

    available = False

    def open_invoice(self, url: str, callback: Callable[[str], None]) -> None:
        logger.error('Telegram WebApp not available')
        callback(InvoiceStatus.FAILED.value)

    def show_popup(self, message, title=None, buttons=None, callback=None) -> None:
        logger.info(f'[popup] {title or ""} {message}')

    def show_alert(self, message, callback=None) -> None:
        logger.info(f'[alert] {message}')
        if callback:
            callback()

    def show_confirm(self, message, callback) -> None:
        logger.info(f'[confirm] {message}')
        callback(False)

    def viewport_height(self) -> int:
        return 0


async def select_payment_method(
    host: HostBridge,
    amount: int,
    balance: int,
) -> PaymentMethod | None:
    """Ask the user to confirm paying with tokens.

    Falls back to tokens when no host is attached. Returns None when the
    user declines or cannot afford it.
    """
    if not host.available:
        return PaymentMethod.TOKENS

    if balance < amount:
        host.show_alert(
            f'Insufficient balance. You need {amount} tokens but have {balance}.'
        )
        return None

    loop = asyncio.get_running_loop()
    answer: asyncio.Future[bool] = loop.create_future()

    def _on_confirm(confirmed: bool) -> None:
        if not answer.done():
            answer.set_result(bool(confirmed))

    host.show_confirm(f'Pay {amount} tokens from your balance?', _on_confirm)
    return PaymentMethod.TOKENS if await answer else None
