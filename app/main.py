import time
from contextlib import asynccontextmanager
from typing import Optional

import structlog
import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

# Import our modules
from app.config import Settings, get_settings
from app.core.logging import setup_logging
from app.database import create_db_engine, create_session_factory, create_tables
from app.exceptions import register_exception_handlers
from app.routers import appointments, auth, health, profiles
from app.security import HostedIdentityProvider, IdentityProvider
from app.services.pricing import PricingPolicy, random_consultation_cost

logger = structlog.get_logger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    identity_provider: Optional[IdentityProvider] = None,
    pricing_policy: Optional[PricingPolicy] = None,
) -> FastAPI:
    """Build the API from one settings object; every collaborator lives on ``app.state``."""
    settings = settings or get_settings()
    setup_logging(settings)

    engine = create_db_engine(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        create_tables(engine)
        logger.info(
            "startup",
            app=settings.app_name,
            environment=settings.environment,
            api_prefix=settings.api_prefix,
            local_token_verification=settings.local_token_verification,
            enforce_status_transitions=settings.enforce_status_transitions,
        )
        yield
        app.state.identity_provider.close()
        engine.dispose()
        logger.info("shutdown")

    app = FastAPI(title=settings.app_name, version=settings.app_version, debug=settings.debug, lifespan=lifespan)

    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = create_session_factory(engine)
    app.state.identity_provider = identity_provider or HostedIdentityProvider(settings)
    app.state.pricing_policy = pricing_policy or random_consultation_cost(
        settings.consultation_cost_min, settings.consultation_cost_max
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials="*" not in settings.cors_origins,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        started = time.perf_counter()
        response = await call_next(request)
        logger.info(
            "http_request",
            method=request.method,
            path=request.url.path,
            status=response.status_code,
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
        )
        return response

    register_exception_handlers(app)

    app.include_router(auth.router, prefix=settings.api_prefix)
    app.include_router(profiles.router, prefix=settings.api_prefix)
    app.include_router(appointments.router, prefix=settings.api_prefix)
    app.include_router(health.router, prefix=settings.api_prefix)

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run("app.main:app", host="0.0.0.0", port=8000, reload=True)
