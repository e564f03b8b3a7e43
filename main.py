import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from quickfund.core.config import settings
from quickfund.core.database import Base, async_engine, close_redis, get_redis
from quickfund.core.exceptions import QuickFundError
from quickfund.core.logging_config import configure_logging
from quickfund.core.queue import JobQueue
from quickfund.modules.auth.sessions import SessionStore
from quickfund.modules.notifications.dispatcher import NotificationDispatcher
from quickfund.modules.notifications.gateway import ConnectionManager, relay_broadcasts
from quickfund.modules.auth.router import router as auth_router
from quickfund.modules.accounts.router import router as accounts_router
from quickfund.modules.loans.router import router as loans_router
from quickfund.modules.payments.router import router as payments_router
from quickfund.modules.notifications.router import router as notifications_router
from quickfund.modules.notifications.router import ws_router as notifications_ws_router
from quickfund.modules.admin.router import router as admin_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup and shutdown events"""
    # Startup
    configure_logging()

    async with async_engine.begin() as conn:
        # Create all tables (for development - use Alembic in production)
        await conn.run_sync(Base.metadata.create_all)

    session_store = SessionStore()
    session_store.start()
    app.state.session_store = session_store

    redis = await get_redis()
    app.state.scoring_queue = JobQueue(redis, settings.LOAN_SCORING_QUEUE)
    app.state.dispatcher = NotificationDispatcher(JobQueue(redis, settings.NOTIFICATION_QUEUE))

    app.state.connection_manager = ConnectionManager()
    relay = asyncio.create_task(relay_broadcasts(redis, app.state.connection_manager))

    logger.info(f"{settings.APP_NAME} API started ({settings.ENVIRONMENT})")

    yield

    # Shutdown
    relay.cancel()
    try:
        await relay
    except asyncio.CancelledError:
        pass
    await session_store.stop()
    await close_redis()
    await async_engine.dispose()


app = FastAPI(
    title="QuickFund API",
    description="Micro-lending platform: loans, credit scoring, repayments",
    version=settings.APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# CORS Configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=settings.CORS_ALLOW_CREDENTIALS,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(QuickFundError)
async def quickfund_error_handler(request: Request, exc: QuickFundError):
    """Translate domain errors into JSON responses"""
    logger.info(f"{request.method} {request.url.path} -> {exc.status_code} {exc.error_code}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "error_code": exc.error_code},
    )


# Include routers
app.include_router(auth_router)
app.include_router(accounts_router)
app.include_router(loans_router)
app.include_router(payments_router)
app.include_router(notifications_router)
app.include_router(notifications_ws_router)
app.include_router(admin_router)


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "ok",
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT
    }


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "message": f"Welcome to {settings.APP_NAME} API",
        "version": settings.APP_VERSION,
        "docs": "/docs"
    }
