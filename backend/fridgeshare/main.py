from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from .core.config import settings
from .core.errors import FridgeShareError
from .core.logging import setup_logging, get_logger
from .db.base import Base, engine
from .services.chat_relay import ConnectionRegistry
from .api import (
    users, items, offers, handoffs, transactions, chat, messages, confirmations, assistant, payments,
    realtime,
)

setup_logging(settings.LOG_LEVEL, settings.LOG_FILE)
logger = get_logger(__name__)

# Defer DB initialization to application startup to avoid import-time failures
def _init_db():
    try:
        Base.metadata.create_all(bind=engine)
    except Exception as e:
        # The app still serves /health when the database is unreachable
        logger.error("Database init failed: %s: %s", type(e).__name__, e)

app = FastAPI(
    title=settings.PROJECT_NAME,
    version="1.0.0",
    description="Neighbourhood surplus-food sharing API",
)
app.state.chat_registry = ConnectionRegistry()

@app.on_event("startup")
async def on_startup():
    _init_db()

@app.exception_handler(FridgeShareError)
async def fridgeshare_error_handler(request: Request, exc: FridgeShareError):
    if exc.status_code >= 500:
        logger.warning("%s %s failed: %s", request.method, request.url.path, exc.detail)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})

@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})

# Set up CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.BACKEND_CORS_ORIGINS,
    allow_origin_regex=settings.BACKEND_CORS_ORIGIN_REGEX,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routers
app.include_router(users.router, prefix="/users", tags=["users"])
app.include_router(items.router, prefix="/items", tags=["items"])
app.include_router(offers.router, prefix="/api/offers", tags=["offers"])
app.include_router(handoffs.router, prefix="/api", tags=["handoff"])
app.include_router(transactions.router, prefix="/api/transactions", tags=["transactions"])
app.include_router(chat.router, prefix="/api/chat", tags=["chat"])
app.include_router(messages.router, prefix="/api/messages", tags=["messages"])
app.include_router(confirmations.router, prefix="/api/confirmations", tags=["confirmations"])
app.include_router(assistant.router, prefix="/api", tags=["assistant"])
app.include_router(payments.router, prefix="/payments", tags=["payments"])
app.include_router(realtime.router, tags=["realtime"])

@app.get("/")
async def root():
    return {
        "message": "FridgeShare API",
        "version": "1.0.0",
        "docs": "/docs"
    }

@app.get("/health")
async def health_check():
    return {"status": "healthy", "timestamp": datetime.now(timezone.utc).isoformat()}

@app.get("/db/ping")
async def db_ping():
    try:
        with engine.connect() as conn:
            conn.execute(text("select 1"))
        url = engine.url
        safe = {
            "driver": url.drivername,
            "host": url.host,
            "port": url.port,
            "database": url.database,
        }
        return {"ok": True, "db": safe}
    except Exception as e:
        return {"ok": False, "error": str(e)}
