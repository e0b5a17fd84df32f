import time
import logging
import structlog
from fastapi import FastAPI, Request
from sqlalchemy import text

from .config import settings
from .infrastructure.db import engine
from .infrastructure.models import Base
from .infrastructure.mailer import build_mailer
from .infrastructure.metrics import (
    metrics_endpoint,
    http_requests_total,
    http_request_duration_seconds
)
from .infrastructure.rate_limit import limiter
from .infrastructure.security import PasswordHasher, TokenService
from .interfaces.http.errors import register_exception_handlers
from .interfaces.http.routers import auth as auth_router
from .interfaces.http.routers import teachers as teachers_router

# Настройка структурированного логирования
log_level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)
structlog.configure(
    processors=[
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.add_log_level,
        structlog.processors.format_exc_info,
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.make_filtering_bound_logger(log_level),
    context_class=dict,
    logger_factory=structlog.PrintLoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger()

app = FastAPI(title="Auth Service", version="0.2.0")

# shared collaborators, built once per process
app.state.settings = settings
app.state.hasher = PasswordHasher(rounds=settings.BCRYPT_ROUNDS)
app.state.tokens = TokenService(
    secret=settings.SECRET_KEY,
    algorithm=settings.JWT_ALGORITHM,
    expire_minutes=settings.JWT_EXPIRE_MINUTES,
)
app.state.mailer = build_mailer(settings)
app.state.limiter = limiter

register_exception_handlers(app)


@app.middleware("http")
async def add_charset_header(request: Request, call_next):
    start_time = time.time()
    method = request.method
    path = request.url.path

    response = await call_next(request)

    if response.headers.get("content-type", "").startswith("application/json"):
        response.headers["content-type"] = "application/json; charset=utf-8"

    # Метрики
    duration = time.time() - start_time
    status_code = response.status_code
    route = request.scope.get("route")
    endpoint = getattr(route, "path", path)
    http_requests_total.labels(method=method, endpoint=endpoint, status=status_code).inc()
    http_request_duration_seconds.labels(method=method, endpoint=endpoint).observe(duration)

    # путь логируем по шаблону маршрута, чтобы токены из URL не попадали в логи
    logger.info(
        "http_request",
        method=method,
        path=endpoint,
        status_code=status_code,
        duration_ms=round(duration * 1000, 2)
    )

    return response


@app.on_event("startup")
def on_startup():
    logger.info("Starting auth service", version=app.version)
    if settings.SECRET_KEY == "dev-secret-auth" and not settings.DEBUG:
        logger.warning("default_secret_key", hint="set SECRET_KEY before deploying")
    Base.metadata.create_all(bind=engine)

    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))
    logger.info("Database connection established")


@app.get("/health")
def health():
    return {"status": "ok"}


@app.get("/metrics")
def metrics():
    """Prometheus metrics endpoint"""
    return metrics_endpoint()


app.include_router(auth_router.router)
app.include_router(teachers_router.router)
