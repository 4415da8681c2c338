import logging
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse

from config import Settings, get_settings
from modules.signing.controllers.session_controller import router as session_router
from modules.signing.controllers.signer_controller import router as signer_router
from modules.signing.exceptions import (
    DocumentNotFound,
    InvalidDocument,
    NotReady,
    PayloadTooLarge,
    SessionNotFound,
    StorageFailure,
    UnsupportedOperation,
)
from modules.signing.job import DeletionJobs
from modules.signing.services import (
    DocumentStore,
    RetentionSweeper,
    SessionRegistry,
    SigningProtocol,
)
from modules.signing.services.session_registry import Clock, utc_now

logger = logging.getLogger("relay")


def configure_logging(settings: Settings):
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def _error(status_code: int, error: str, exc: Exception, **extra) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": error, "message": str(exc), **extra},
    )


def register_exception_handlers(app: FastAPI):
    @app.exception_handler(SessionNotFound)
    async def session_not_found(request: Request, exc: SessionNotFound):
        return _error(404, "session_not_found", exc)

    @app.exception_handler(DocumentNotFound)
    async def document_not_found(request: Request, exc: DocumentNotFound):
        return _error(404, "document_not_found", exc)

    @app.exception_handler(NotReady)
    async def not_ready(request: Request, exc: NotReady):
        return _error(404, "not_ready", exc, status=exc.status)

    @app.exception_handler(PayloadTooLarge)
    async def payload_too_large(request: Request, exc: PayloadTooLarge):
        return _error(413, "payload_too_large", exc)

    @app.exception_handler(InvalidDocument)
    async def invalid_document(request: Request, exc: InvalidDocument):
        return _error(400, "invalid_document", exc)

    @app.exception_handler(UnsupportedOperation)
    async def unsupported_operation(request: Request, exc: UnsupportedOperation):
        return _error(400, "unsupported_operation", exc)

    @app.exception_handler(StorageFailure)
    async def storage_failure(request: Request, exc: StorageFailure):
        logger.error("Error de almacenamiento en %s: %s", request.url.path, exc)
        return _error(500, "storage_failure", exc)

    @app.exception_handler(Exception)
    async def unhandled(request: Request, exc: Exception):
        logger.exception("Error no controlado en %s", request.url.path)
        return JSONResponse(
            status_code=500,
            content={"error": "internal_server_error", "message": "An unexpected error occurred"},
        )


def create_app(settings: Optional[Settings] = None, clock: Clock = utc_now) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings)

    registry = SessionRegistry(clock)
    store = DocumentStore(
        max_size=settings.max_payload_bytes,
        directory=settings.STORAGE_DIR,
        spill_threshold=settings.spill_threshold_bytes,
        validate_pdf=settings.VALIDATE_PDF,
    )
    sweeper = RetentionSweeper(
        registry,
        store,
        session_ttl=timedelta(minutes=settings.SESSION_TTL_MINUTES),
        prestorage_ttl=timedelta(minutes=settings.PRESTORAGE_TTL_MINUTES),
        grace=timedelta(seconds=settings.DOWNLOAD_GRACE_SECONDS),
        clock=clock,
    )
    jobs = DeletionJobs(sweeper, settings)
    protocol = SigningProtocol(
        registry, store, settings.SIGNED_SUFFIX, schedule_removal=jobs.schedule_removal
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # --- Startup logic ---
        logger.info("🚀 Iniciando relay de firma en el puerto %d", settings.PORT)
        jobs.start()
        yield
        # --- Shutdown logic ---
        jobs.shutdown()
        logger.info("🛑 Relay detenido")

    app = FastAPI(
        title="Relay de Firma",
        description="Puente entre el navegador y el firmador local (AutoFirma)",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.registry = registry
    app.state.store = store
    app.state.sweeper = sweeper
    app.state.jobs = jobs
    app.state.protocol = protocol

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_methods=["GET", "POST", "PUT", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["Content-Disposition"],
        max_age=86400,
    )

    # Routers
    app.include_router(session_router, prefix="/sessions", tags=["sessions"])
    app.include_router(signer_router, prefix="/afirma", tags=["signer"])
    register_exception_handlers(app)

    @app.get("/health", tags=["Health"])
    def health_check():
        return {
            "status": "OK",
            "time": clock().isoformat(),
            "sessions": len(registry),
        }

    @app.get("/", tags=["Health"])
    def root():
        return PlainTextResponse("Servidor AutoFirma funcionando")

    return app


def run():
    settings = get_settings()
    uvicorn.run("main:create_app", factory=True, host=settings.HOST, port=settings.PORT)


if __name__ == "__main__":
    run()
