"""Telegram Stars invoices: the secondary payment rail.

Invoices are created by the backend's ``create-stars-invoice`` function,
shown to the user through the host's native payment sheet, then confirmed
best-effort through ``confirm-stars-payment``. Final truth arrives later via
the provider webhook, which lives outside this service.
"""
import asyncio
import logging
from typing import Callable

import httpx
from pydantic import ValidationError

from creatorpay.config import settings
from creatorpay.schemas.payments import StarsInvoiceRequest, StarsInvoiceResponse
from creatorpay.services.host_bridge import HostBridge, InvoiceStatus

logger = logging.getLogger(__name__)


class InvoiceCreationFailed(Exception):
    pass


class PaymentCancelled(Exception):
    pass


class StarsInvoiceBridge:
    def __init__(
        self,
        host: HostBridge,
        client: httpx.AsyncClient | None = None,
        functions_url: str | None = None,
    ):
        self.host = host
        self.client = client
        self.functions_url = (functions_url or settings.functions_url).rstrip('/')

    async def create_invoice(self, request: StarsInvoiceRequest) -> StarsInvoiceResponse:
        """Ask the backend for an invoice link. Raises InvoiceCreationFailed."""
        try:
            data = await self._call('create-stars-invoice', request.model_dump(mode='json'))
        except httpx.HTTPError as e:
            logger.warning(f'Invoice API unreachable: {e}')
            raise InvoiceCreationFailed('Failed to create invoice') from e

        if data.get('error'):
            raise InvoiceCreationFailed(str(data['error']))
        try:
            return StarsInvoiceResponse.model_validate(data)
        except ValidationError as e:
            logger.warning(f'Unexpected invoice response: {data}')
            raise InvoiceCreationFailed('Failed to create invoice') from e

    def open_invoice(
        self,
        url: str,
        on_paid: Callable[[], None] | None = None,
        on_failed: Callable[[], None] | None = None,
        on_pending: Callable[[], None] | None = None,
    ) -> None:
        """Hand the invoice to the host payment sheet and route its status."""

        def _on_status(status: str) -> None:
            logger.info(f'Invoice status: {status}')
            if status == InvoiceStatus.PAID.value:
                if on_paid:
                    on_paid()
            elif status in (InvoiceStatus.CANCELLED.value, InvoiceStatus.FAILED.value):
                if on_failed:
                    on_failed()
            elif status == InvoiceStatus.PENDING.value:
                if on_pending:
                    on_pending()
            else:
                logger.warning(f'Unknown invoice status: {status}')

        self.host.open_invoice(url, _on_status)

    async def wait_for_payment(self, url: str) -> InvoiceStatus:
        """Open the invoice and wait for its terminal status (paid or failed)."""
        loop = asyncio.get_running_loop()
        outcome: asyncio.Future[InvoiceStatus] = loop.create_future()

        def _settle(status: InvoiceStatus) -> None:
            if not outcome.done():
                outcome.set_result(status)

        self.open_invoice(
            url,
            on_paid=lambda: _settle(InvoiceStatus.PAID),
            on_failed=lambda: _settle(InvoiceStatus.FAILED),
            on_pending=lambda: logger.info('Payment pending...'),
        )
        return await outcome

    async def confirm_payment(self, transaction_id: str) -> bool:
        """Best-effort server-side confirmation. Never raises."""
        try:
            data = await self._call('confirm-stars-payment', {'transaction_id': transaction_id})
        except httpx.HTTPError as e:
            logger.warning(f'Stars confirmation failed for {transaction_id}: {e}')
            return False
        if data.get('error'):
            logger.warning(f'Stars confirmation rejected for {transaction_id}: {data["error"]}')
            return False
        return True

    async def pay(self, request: StarsInvoiceRequest) -> StarsInvoiceResponse:
        """Create, present and confirm an invoice end to end.

        Raises InvoiceCreationFailed or PaymentCancelled; returns the invoice
        (carrying the provider transaction id) once the host reports paid.
        """
        invoice = await self.create_invoice(request)
        status = await self.wait_for_payment(invoice.invoice_url)
        if status != InvoiceStatus.PAID:
            raise PaymentCancelled('Payment was cancelled')
        await self.confirm_payment(invoice.transaction_id)
        return invoice

    async def _call(self, function: str, body: dict) -> dict:
        headers = {'Content-Type': 'application/json'}
        if settings.supabase_anon_key:
            headers['apikey'] = settings.supabase_anon_key
            headers['Authorization'] = f'Bearer {settings.supabase_anon_key}'
        url = f'{self.functions_url}/{function}'

        if self.client is not None:
            response = await self.client.post(url, json=body, headers=headers)
        else:
            async with httpx.AsyncClient(timeout=settings.invoice_api_timeout) as client:
                response = await client.post(url, json=body, headers=headers)

        try:
            return response.json()
        except ValueError:
            response.raise_for_status()
            raise httpx.DecodingError('Invoice API returned a non-JSON body')
