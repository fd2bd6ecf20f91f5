import time

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from tenant_authz.auth.jwt import TokenValidator
from tenant_authz.configs.logging_config import get_logger, setup_logging
from tenant_authz.configs.settings import Settings, get_settings
from tenant_authz.errors import AppError
from tenant_authz.permissions.matrix import StaticPermissionMatrix
from tenant_authz.permissions.resolver import PermissionResolver
from tenant_authz.repositories.audit_repository import AuditRepository
from tenant_authz.repositories.memory import InMemoryAuditRepository, InMemoryOverrideRepository
from tenant_authz.repositories.mongo import get_mongo_client, get_mongo_db
from tenant_authz.repositories.override_cache import CachedOverrideStore
from tenant_authz.repositories.override_repository import OverrideRepository
from tenant_authz.repositories.redis_client import RedisClient
from tenant_authz.routers.audit_router import router as audit_router
from tenant_authz.routers.authz_router import router as authz_router
from tenant_authz.routers.health_router import router as health_router
from tenant_authz.routers.override_router import router as override_router
from tenant_authz.routers.record_router import router as record_router
from tenant_authz.services.audit_service import AuditRecorder
from tenant_authz.services.override_service import OverrideService
from tenant_authz.services.record_service import RecordService
from tenant_authz.utils.response import failure

log = get_logger(__name__)


def _cors_origins(settings: Settings) -> list[str]:
    # .env can provide a comma-separated string
    raw_origins = settings.CORS_ORIGINS
    if isinstance(raw_origins, str):
        return [o.strip() for o in raw_origins.split(",") if o.strip()]
    if isinstance(raw_origins, (list, tuple, set)):
        return list(raw_origins)
    return []


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()
    app = FastAPI(title="tenant_authz", version="0.1.0")
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=_cors_origins(settings),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def request_logging_middleware(request: Request, call_next):
        start = time.perf_counter()
        method = request.method
        path = request.url.path
        request_id = request.headers.get("x-request-id") or request.headers.get("x-correlation-id")

        log.info("request.start method=%s path=%s request_id=%s", method, path, request_id)
        status_code = "unknown"
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            elapsed_ms = int((time.perf_counter() - start) * 1000)
            log.info(
                "request.end method=%s path=%s status=%s request_id=%s elapsed_ms=%s",
                method,
                path,
                status_code,
                request_id,
                elapsed_ms,
            )

    app.include_router(health_router)
    app.include_router(authz_router)
    app.include_router(override_router)
    app.include_router(audit_router)
    app.include_router(record_router)

    @app.exception_handler(AppError)
    async def app_error_handler(_: Request, exc: AppError) -> JSONResponse:
        log.info(
            "request.error type=%s status=%s message=%s",
            type(exc).__name__,
            exc.http_status,
            exc.message,
        )
        return JSONResponse(
            status_code=exc.http_status,
            content=failure(exc.message, code=type(exc).__name__),
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(_: Request, exc: Exception) -> JSONResponse:
        log.exception("Unhandled error: %s", str(exc))
        return JSONResponse(status_code=500, content=failure("internal server error"))

    @app.on_event("startup")
    async def startup() -> None:
        setup_logging(settings.log_level)
        log.info(
            "startup.begin service=%s env=%s storage_backend=%s",
            settings.SERVICE_NAME,
            settings.ENVIRONMENT,
            settings.storage_backend,
        )

        if settings.storage_backend == "memory":
            override_store = InMemoryOverrideRepository()
            audit_sink = InMemoryAuditRepository()
        else:
            mongo_client = get_mongo_client(settings)
            mongo_db = get_mongo_db(mongo_client, settings)
            app.state.mongo_client = mongo_client

            override_repo = OverrideRepository(mongo_db, settings)
            audit_repo = AuditRepository(mongo_db, settings)
            await override_repo.ensure_indexes()
            await audit_repo.ensure_indexes()
            override_store = override_repo
            audit_sink = audit_repo

            if settings.override_cache_enabled:
                redis_client = RedisClient(settings)
                await redis_client.connect()
                app.state.redis_client = redis_client
                override_store = CachedOverrideStore(
                    override_repo,
                    redis_client.client,
                    ttl_seconds=settings.override_cache_ttl_seconds,
                    prefix=settings.override_cache_prefix,
                )
                log.info("startup.override_cache ttl_seconds=%s", settings.override_cache_ttl_seconds)

        recorder = AuditRecorder(audit_sink, settings)
        resolver = PermissionResolver(override_store, StaticPermissionMatrix())

        app.state.token_validator = TokenValidator(settings)
        app.state.override_store = override_store
        app.state.audit_recorder = recorder
        app.state.resolver = resolver
        app.state.override_service = OverrideService(override_store, recorder)
        app.state.record_service = RecordService(resolver, recorder)
        log.info("startup.done")

    @app.on_event("shutdown")
    async def shutdown() -> None:
        log.info("shutdown.begin")
        redis_client = getattr(app.state, "redis_client", None)
        if redis_client is not None:
            await redis_client.close()
        mongo_client = getattr(app.state, "mongo_client", None)
        if mongo_client is not None:
            mongo_client.close()
        log.info("shutdown.done")

    return app


app = create_app()
