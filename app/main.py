"""
MediaGen API - FastAPI application entry point.
"""
import asyncio
from contextlib import asynccontextmanager, suppress

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import Settings, get_settings
from .database import Base, SessionLocal
from .limiter import limiter
from .logging_config import api_logger
from .middleware import SecurityHeadersMiddleware, RequestLoggingMiddleware
from .responses import register_exception_handlers
from .routes import (
    generate_router,
    history_router,
    media_router,
    prompt_router,
    health_router,
)
from .routes.health import VERSION
from .worker.bedrock_client import BedrockClient
from .worker.generation import GenerationOrchestrator
from .worker.jobs import JobRegistry
from .worker.materializer import ResultMaterializer
from .worker.media_store import MediaStore


def create_app(settings: Settings = None, provider=None, session_factory=None) -> FastAPI:
    """Build the application and its services.

    provider: object with the BedrockClient coroutine interface
        (invoke_model, start_async_invoke, get_async_invoke_status,
        validate_credentials) plus a blocking open_object(bucket, key).
    session_factory: callable returning a SQLAlchemy session, used by
        the history routes and by background jobs recording history.
    """
    settings = settings or get_settings()
    provider = provider or BedrockClient(settings)
    session_factory = session_factory or SessionLocal

    store = MediaStore(settings.media_path, settings.max_file_size_mb)
    registry = JobRegistry()
    materializer = ResultMaterializer(store, provider.open_object)
    orchestrator = GenerationOrchestrator(provider, registry, materializer, session_factory, settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Manage application lifecycle - startup and shutdown"""
        # Startup
        Base.metadata.create_all(bind=session_factory.kw["bind"])

        if not settings.debug and not (settings.aws_access_key_id and settings.aws_secret_access_key):
            api_logger.warning("aws_credentials_not_configured_using_default_chain", region=settings.aws_region)
        await provider.validate_credentials()

        housekeeping = asyncio.create_task(orchestrator.run_housekeeping(), name="job-housekeeping")
        api_logger.info("startup_complete", environment=settings.environment, media_path=str(store.root))

        yield  # App is running

        # Shutdown
        housekeeping.cancel()
        with suppress(asyncio.CancelledError):
            await housekeeping
        await orchestrator.shutdown()

    app = FastAPI(
        title=settings.app_name,
        description="Generate videos and images from text or image prompts",
        version=VERSION,
        docs_url="/api/docs" if settings.debug else None,
        redoc_url="/api/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.provider = provider
    app.state.session_factory = session_factory
    app.state.media_store = store
    app.state.registry = registry
    app.state.orchestrator = orchestrator
    app.state.limiter = limiter

    register_exception_handlers(app)

    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=[
            "Content-Type",
            "Accept",
            "Origin",
            "X-Requested-With",
        ],
        max_age=3600,  # Cache preflight requests for 1 hour
    )

    app.include_router(generate_router)
    app.include_router(history_router)
    app.include_router(media_router)
    app.include_router(prompt_router)
    app.include_router(health_router)

    return app


app = create_app()
