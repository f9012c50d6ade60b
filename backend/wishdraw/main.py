from time import perf_counter
import asyncio
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import select
from sqlalchemy.engine import make_url

from wishdraw.api.routes import cron, draws
from wishdraw.core.config import settings
from wishdraw.core.draw_metrics import draw_metrics, request_metrics
from wishdraw.core.logger import configure_logging
from wishdraw.db.session import Base, async_session_factory, engine
from wishdraw.models import models as _models  # noqa: F401


logger = configure_logging()

app = FastAPI(
    title=settings.app_name,
    description="Secret Santa draws for gift groups",
    version="0.1.0",
)

cors_origins = settings.backend_cors_origins or [settings.frontend_url]
logger.info("CORS origins=%s", cors_origins)

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["*"],
    max_age=600,
)


@app.middleware("http")
async def tracing_middleware(request: Request, call_next):
    request_id = request.headers.get("X-Request-Id") or str(uuid4())
    path = request.url.path
    start = perf_counter()
    try:
        response = await call_next(request)
    except Exception:
        duration_ms = (perf_counter() - start) * 1000.0
        request_metrics.record(path, duration_ms, failed=True)
        logger.exception(
            "Request failed id=%s method=%s path=%s duration_ms=%.2f",
            request_id,
            request.method,
            path,
            duration_ms,
        )
        raise

    duration_ms = (perf_counter() - start) * 1000.0
    request_metrics.record(path, duration_ms, failed=response.status_code >= 500)
    logger.info(
        "Request completed id=%s method=%s path=%s status=%s duration_ms=%.2f",
        request_id,
        request.method,
        path,
        response.status_code,
        duration_ms,
    )
    response.headers["X-Request-Id"] = request_id
    return response


@app.middleware("http")
async def security_headers_middleware(request: Request, call_next):
    response = await call_next(request)
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["Referrer-Policy"] = "no-referrer"
    response.headers["Cache-Control"] = "no-store"
    return response


def _handle_async_exception(loop, context) -> None:
    exc = context.get("exception")
    logger.error("Async error: %s", context.get("message", "Async error"), exc_info=exc)


@app.on_event("startup")
async def on_startup() -> None:
    asyncio.get_running_loop().set_exception_handler(_handle_async_exception)

    db_url = make_url(settings.postgres_dsn)
    logger.info(
        "Starting %s env=%s db=%s redis=%s",
        settings.app_name,
        settings.environment,
        db_url.get_backend_name(),
        "on" if settings.redis_dsn else "off",
    )
    if not settings.cron_secret:
        logger.warning("CRON_SECRET is not set; cron endpoints only accept calls in the local environment")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    response = JSONResponse(status_code=500, content={"detail": "Internal server error"})
    origin = request.headers.get("origin")
    if origin and origin in cors_origins:
        response.headers["Access-Control-Allow-Origin"] = origin
        response.headers["Access-Control-Allow-Credentials"] = "true"
    return response


app.include_router(draws.router)
app.include_router(cron.router)


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/health/db")
async def health_db():
    try:
        async with async_session_factory() as session:
            result = await session.execute(select(1))
            return {"status": "ok", "database": str(result.scalar())}
    except Exception:
        logger.exception("DB health check failed")
        return JSONResponse(status_code=500, content={"status": "error"})


@app.get("/metrics")
async def get_metrics() -> dict[str, object]:
    return {**request_metrics.snapshot(), "draws": draw_metrics.snapshot()}
