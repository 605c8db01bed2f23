"""
main.py
-------
Entry point del motor de riesgo GuardianAI.

Startup:  conecta Redis (perfiles) y, en DEBUG, crea las tablas del ledger.
Shutdown: drena las escrituras pendientes del ledger y cierra Redis.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from guardian.api.dependencies import risk_orchestrator
from guardian.api.routers import risk
from guardian.core.config import settings
from guardian.core.exceptions import GuardianException, InvalidTransactionException
from guardian.infrastructure.cache.redis_client import redis_manager
from guardian.infrastructure.database.session import init_db

logging.basicConfig(
    level  = logging.DEBUG if settings.DEBUG else logging.INFO,
    format = "%(asctime)s %(levelname)s %(name)s %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # ── Startup ───────────────────────────────────────────────────────
    await redis_manager.connect()
    if settings.DEBUG:
        await init_db()
    yield
    # ── Shutdown ──────────────────────────────────────────────────────
    await risk_orchestrator.drain()
    await redis_manager.disconnect()


app = FastAPI(
    title    = "GuardianAI Risk Engine",
    version  = "1.0.0",
    docs_url = "/docs"  if settings.DEBUG else None,
    redoc_url= "/redoc" if settings.DEBUG else None,
    lifespan = lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins     = settings.ALLOWED_ORIGINS,
    allow_credentials = True,
    allow_methods     = ["GET", "POST"],
    allow_headers     = ["Authorization", "Content-Type"],
)

app.include_router(risk.router)


# ── Handler global de excepciones ────────────────────────────────────
@app.exception_handler(GuardianException)
async def guardian_exception_handler(
    request: Request, exc: GuardianException
) -> JSONResponse:
    content = {"error": exc.message}
    if isinstance(exc, InvalidTransactionException) and exc.errors:
        content["details"] = exc.errors
    return JSONResponse(status_code=exc.status_code, content=content)


# ── Health check ──────────────────────────────────────────────────────
@app.get("/health")
async def health_check():
    redis_ok = await redis_manager.ping()
    return {
        "status":      "ok",
        "environment": settings.ENVIRONMENT,
        "redis":       "ok" if redis_ok else "degraded",
    }
