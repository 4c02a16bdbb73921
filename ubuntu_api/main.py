import asyncio
import logging
import time

from fastapi import FastAPI, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.trustedhost import TrustedHostMiddleware

from ubuntu_shared import OTPError, RedisRateLimiter, SlidingWindowLimiter

from .config import settings
from .database import engine
from .errors import (
    AppError,
    app_error_handler,
    http_exception_handler,
    otp_error_handler,
    unhandled_exception_handler,
    validation_exception_handler,
)
from .metrics import HTTP_DURATION, HTTP_REQUESTS
from .middleware_request_id import RequestIDMiddleware
from .models import Base
from .otp_utils import OtpService, build_otp_service
from .routers import activities as activities_router
from .routers import auth as auth_router
from .routers import locations as locations_router
from .routers import users as users_router
from .routers import vouches as vouches_router
from .utils.security_headers import SecurityHeadersMiddleware

logger = logging.getLogger("ubuntu.app")


def create_app(otp_service: OtpService = None) -> FastAPI:
    app = FastAPI(title="Ubuntu Network API", version="0.1.0", docs_url="/docs")
    app.state.otp = otp_service or build_otp_service()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS or ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    # Request ID + JSON request log
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.ALLOWED_HOSTS or ["*"])
    app.add_middleware(SecurityHeadersMiddleware)

    # Rate limiting
    common_excludes = ["/health", "/metrics", "/openapi.json", "/docs"]
    if settings.RATE_LIMIT_BACKEND.lower() == "redis":
        app.add_middleware(
            RedisRateLimiter,
            redis_url=settings.REDIS_URL,
            limit_per_minute=settings.RATE_LIMIT_PER_MINUTE,
            auth_boost=settings.RATE_LIMIT_AUTH_BOOST,
            prefix=settings.RATE_LIMIT_REDIS_PREFIX,
            exclude_paths=common_excludes,
        )
    else:
        app.add_middleware(
            SlidingWindowLimiter,
            limit_per_minute=settings.RATE_LIMIT_PER_MINUTE,
            auth_boost=settings.RATE_LIMIT_AUTH_BOOST,
            exclude_paths=common_excludes,
        )

    if settings.AUTO_CREATE_SCHEMA:
        Base.metadata.create_all(bind=engine)

    @app.get("/health")
    def health():
        with engine.connect() as conn:
            conn.exec_driver_sql("SELECT 1")
        return {"status": "ok", "env": settings.ENV, "otp_pending": len(app.state.otp.store)}

    @app.middleware("http")
    async def _metrics_mw(request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        duration = time.perf_counter() - start
        # Templated route keeps label cardinality bounded
        route = getattr(request.scope.get("route"), "path", None) or request.url.path
        HTTP_REQUESTS.labels(request.method, route, str(response.status_code)).inc()
        HTTP_DURATION.labels(request.method, route).observe(duration)
        return response

    @app.get("/metrics")
    def metrics():
        return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)

    app.include_router(auth_router.router)
    app.include_router(users_router.router)
    app.include_router(vouches_router.router)
    app.include_router(activities_router.router)
    app.include_router(locations_router.router)

    # Error handlers
    app.add_exception_handler(OTPError, otp_error_handler)
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    sweep_every = app.state.otp.config.sweep_interval_secs
    if sweep_every > 0:
        @app.on_event("startup")
        async def _start_otp_sweeper():
            async def _loop():
                while True:
                    await asyncio.sleep(sweep_every)
                    try:
                        app.state.otp.sweep()
                    except Exception:
                        logger.exception("OTP sweep failed")
            app.state.otp_sweeper = asyncio.create_task(_loop())

        @app.on_event("shutdown")
        async def _stop_otp_sweeper():
            task = getattr(app.state, "otp_sweeper", None)
            if task is not None:
                task.cancel()

    return app


app = create_app()


def run() -> None:
    import uvicorn

    uvicorn.run(app, host=settings.APP_HOST, port=settings.APP_PORT)


if __name__ == "__main__":
    run()
