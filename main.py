from contextlib import asynccontextmanager
import logging
import os
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, RedirectResponse
from fastapi.middleware.cors import CORSMiddleware
from errors import (
    TradeError,
    ValidationError,
    NotFoundError,
    AuthorizationError,
    BookUnavailableError,
    TradeStateConflict,
)
from routes import trade_routes, rating_routes, notification_routes
from services import build_mongo_engine
from log_config import setup_logging

logger = logging.getLogger(__name__)

CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

STATUS_CODES = {
    ValidationError: 400,
    AuthorizationError: 403,
    NotFoundError: 404,
    BookUnavailableError: 409,
    TradeStateConflict: 409,
}

@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    if getattr(app.state, "engine", None) is None:
        from dataBase import db
        app.state.engine = build_mongo_engine(db)
        await app.state.engine.ensure_indexes()
    logger.info("Trade engine ready")
    yield
    await app.state.engine.shutdown()

app = FastAPI(title="BookWise Trades API", version="2.0.0", lifespan=lifespan)
app.state.engine = None

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(trade_routes)
app.include_router(rating_routes)
app.include_router(notification_routes)

@app.exception_handler(TradeError)
async def trade_error_handler(request: Request, exc: TradeError):
    status_code = 500
    for error_type, code in STATUS_CODES.items():
        if isinstance(exc, error_type):
            status_code = code
            break
    if status_code == 500:
        logger.error("Unhandled trade error on %s: %s", request.url.path, exc.message)
    return JSONResponse(status_code=status_code, content={"detail": exc.message, "code": exc.code})

@app.get("/")
def root():
    return RedirectResponse(url="/docs")
