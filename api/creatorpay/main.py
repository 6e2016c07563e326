import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from creatorpay.config import settings
from creatorpay.db.database import init_db
from creatorpay.routes import users, payments, chat, livestreams, posts, notifications
from creatorpay.routes.deps import dispatcher

logging.basicConfig(
    level=settings.log_level,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize and cleanup resources."""
    await init_db()
    yield
    await dispatcher.drain()


app = FastAPI(
    title='CreatorPay API',
    description='Payments and ledger for the creator Mini App',
    version='0.1.0',
    lifespan=lifespan,
)

# CORS for the Mini App frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=['*'],
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)

# Routes
app.include_router(users.router, prefix='/api/users', tags=['users'])
app.include_router(payments.router, prefix='/api/payments', tags=['payments'])
app.include_router(chat.router, prefix='/api/chat', tags=['chat'])
app.include_router(livestreams.router, prefix='/api/livestreams', tags=['livestreams'])
app.include_router(posts.router, prefix='/api/posts', tags=['posts'])
app.include_router(notifications.router, prefix='/api/notifications', tags=['notifications'])


@app.get('/health')
async def health_check():
    """Health check endpoint."""
    return {'status': 'ok', 'service': 'creatorpay-api'}
