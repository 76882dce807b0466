import logging
import math
import sys
import asyncio
from contextlib import asynccontextmanager, suppress

import asyncpg
import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from datapusher.config import (
    DATABASE_URL,
    PORT,
    TOKEN_HEADER,
    EVENT_ID_HEADER,
    settings,
    log_environment_status,
)
from datapusher.api import health, ingest, logs
from datapusher.core.database import init_models
from datapusher.core.middleware import RequestLoggingMiddleware
from datapusher.core.ratelimit import RATE_LIMIT_MESSAGE, RateLimitExceeded

logging.basicConfig(
    stream=sys.stdout,
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
)
logger = logging.getLogger("datapusher.main")


async def _probe_database_with_retry(app: FastAPI, database_url: str) -> None:
    """Track DB connectivity in the background without crashing the server."""
    _asyncpg_url = database_url.replace("postgresql+asyncpg", "postgresql")

    app.state.db_status = "connecting"

    while True:
        try:
            conn = await asyncpg.connect(_asyncpg_url, timeout=5)
            if app.state.db_status != "connected":
                logger.info("Database connection established.")
            app.state.db_status = "connected"
            await conn.close()
            await asyncio.sleep(30)
        except asyncio.CancelledError:
            break
        except Exception as e:
            app.state.db_status = "disconnected"
            logger.warning(f"DB probe failed: {e}. Retrying in 5s...")
            await asyncio.sleep(5)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Initializing Data Pusher components...")
    log_environment_status()

    app.state.db_status = "unknown"
    probe_task = None

    if DATABASE_URL:
        if settings.create_tables_on_startup:
            try:
                await init_models()
            except Exception as e:
                logger.error(f"Could not ensure database schema: {e}")
        probe_task = asyncio.create_task(
            _probe_database_with_retry(app, DATABASE_URL), name="db_probe"
        )
    else:
        app.state.db_status = "not_configured"
        logger.warning("DATABASE_URL not set, skipping DB probe")

    yield

    logger.info("Shutting down Data Pusher components...")
    if probe_task is not None:
        probe_task.cancel()
        with suppress(asyncio.CancelledError):
            await probe_task


app = FastAPI(
    title="Data Pusher",
    description="Receives inbound events per account secret token and records one delivery per configured destination.",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(RequestLoggingMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", TOKEN_HEADER, EVENT_ID_HEADER, "*"],
)

app.include_router(health.router)
app.include_router(ingest.router, prefix="/server")
app.include_router(logs.router)


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    return JSONResponse(
        status_code=429,
        content={"success": False, "message": RATE_LIMIT_MESSAGE},
        headers={
            "Retry-After": str(max(1, math.ceil(exc.decision.reset_after))),
            "X-RateLimit-Limit": str(exc.decision.limit),
            "X-RateLimit-Remaining": "0",
        },
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Last-resort handler keeping the response envelope consistent."""
    logger.error(
        f"Unhandled Server Error routing request '{request.method} {request.url}': {exc}"
    )
    return JSONResponse(
        status_code=500,
        content={"success": False, "message": str(exc)},
    )


if __name__ == "__main__":
    uvicorn.run("datapusher.main:app", host="0.0.0.0", port=PORT, reload=True)
