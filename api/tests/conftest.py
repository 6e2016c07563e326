import asyncio
import json

import httpx
import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession

from creatorpay.main import app
from creatorpay.db.database import Base, get_db
from creatorpay.models.user import User
from creatorpay.routes.deps import get_notifier
from creatorpay.services.host_bridge import InvoiceStatus
from creatorpay.services.notifier import NotificationDispatcher
from creatorpay.services.realtime import ChannelHub
from creatorpay.services.stars_bridge import StarsInvoiceBridge
import creatorpay.models  # noqa: F401

FUNCTIONS_URL = 'http://backend.test/functions/v1'


class FakeHostBridge:
    """Host that answers every invoice with a fixed status, or a list of them in order."""

    available = True

    def __init__(self, invoice_status: str | list[str] = InvoiceStatus.PAID.value, confirm: bool = True):
        self.invoice_status = invoice_status
        self.confirm = confirm
        self.opened: list[str] = []
        self.alerts: list[str] = []

    def open_invoice(self, url, callback):
        self.opened.append(url)
        statuses = self.invoice_status if isinstance(self.invoice_status, list) else [self.invoice_status]
        loop = asyncio.get_running_loop()
        for status in statuses:
            loop.call_soon(callback, status)

    def show_popup(self, message, title=None, buttons=None, callback=None):
        pass

    def show_alert(self, message, callback=None):
        self.alerts.append(message)
        if callback:
            callback()

    def show_confirm(self, message, callback):
        callback(self.confirm)

    def viewport_height(self):
        return 640


class FakeInvoiceAPI:
    """Stands in for the create/confirm Stars invoice functions."""

    def __init__(
        self,
        create_status: int = 200,
        create_body: dict | None = None,
        confirm_status: int = 200,
        confirm_body: dict | None = None,
    ):
        self.create_status = create_status
        self.create_body = create_body
        self.confirm_status = confirm_status
        self.confirm_body = confirm_body
        self.calls: list[tuple[str, dict]] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        function = request.url.path.rsplit('/', 1)[-1]
        self.calls.append((function, body))
        if function == 'create-stars-invoice':
            payload = self.create_body if self.create_body is not None else {
                'invoice_link': 'https://t.me/invoice/abc',
                'transaction_id': 'stars-tx-1',
                'amount': body['amount'],
            }
            return httpx.Response(self.create_status, json=payload)
        return httpx.Response(self.confirm_status, json=self.confirm_body or {'success': True})


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f'sqlite+aiosqlite:///{tmp_path}/test.db', echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(session_factory):
    """Database session for direct queries in tests."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def hub():
    return ChannelHub()


@pytest.fixture
async def notifier(session_factory, hub):
    dispatcher = NotificationDispatcher(session_factory, hub)
    yield dispatcher
    await dispatcher.drain()


@pytest.fixture
def make_user(db_session):
    """Insert a user with the given Telegram id and balance."""

    async def _make_user(user_id: int, balance: int = 0, **kwargs) -> int:
        db_session.add(User(id=user_id, balance=balance, username=f'user{user_id}', **kwargs))
        await db_session.commit()
        return user_id

    return _make_user


@pytest.fixture
def stars_factory():
    """Build a Stars bridge over a fake host and a fake invoice API."""

    def _make(
        invoice_status: str | list[str] = InvoiceStatus.PAID.value,
        create_status: int = 200,
        create_body: dict | None = None,
        confirm_status: int = 200,
        confirm_body: dict | None = None,
    ):
        host = FakeHostBridge(invoice_status)
        api = FakeInvoiceAPI(create_status, create_body, confirm_status, confirm_body)
        client = httpx.AsyncClient(transport=httpx.MockTransport(api))
        return StarsInvoiceBridge(host, client=client, functions_url=FUNCTIONS_URL), host, api

    return _make


@pytest.fixture
async def client(session_factory, notifier):
    """Async HTTP client for testing."""

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notifier] = lambda: notifier
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url='http://test') as ac:
        yield ac
    app.dependency_overrides.clear()
