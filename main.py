# backend/main.py

import logging
import traceback
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from auth import build_verifier
from config import Settings, get_settings
from db import init_db, make_engine, make_session_factory
from errors import ChatAppError
from generator import build_generator
from models import utcnow
from schemas import as_utc
from service import ConversationService
from store import ConversationStore

logger = logging.getLogger(__name__)


def configure_logging(level: str):
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="[%(asctime)s] %(levelname)s - %(name)s - %(message)s",
    )


def create_app(settings: Settings = None, verifier=None, generator=None) -> FastAPI:
    """Build the application and wire its components.

    ``verifier`` and ``generator`` default to the ones selected by
    ``settings``; tests pass their own.
    """
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    engine = make_engine(settings.database_url)
    store = ConversationStore(make_session_factory(engine))
    service = ConversationService(
        store,
        generator or build_generator(settings),
        generator_timeout=settings.generator_timeout_seconds,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Create tables (chats, messages)
        init_db(engine)
        logger.info("Database ready at %s", engine.url.render_as_string(hide_password=True))
        yield
        service.close()
        engine.dispose()

    app = FastAPI(title="Chat Backend", version="1.0.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.engine = engine
    app.state.store = store
    app.state.service = service
    app.state.verifier = verifier or build_verifier(settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_error_handlers(app, settings)

    @app.get("/")
    def root():
        return {"message": "Backend is running"}

    @app.get("/health")
    def health_check():
        return {"status": "ok", "timestamp": as_utc(utcnow()).isoformat()}

    # Include authentication, chat and message routers
    from auth import router as auth_router
    from conversation_router import router as conv_router
    from chat_router import router as chat_router

    app.include_router(auth_router)
    app.include_router(conv_router)
    app.include_router(chat_router)
    return app


def register_error_handlers(app: FastAPI, settings: Settings):
    @app.exception_handler(ChatAppError)
    async def app_error_handler(request: Request, exc: ChatAppError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(exc.to_body()))

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=400,
            content={"error": "Invalid request body", "details": jsonable_encoder(exc.errors())},
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": str(exc.detail)},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
        content = {"error": "Internal server error"}
        if settings.is_development:
            content["details"] = repr(exc)
            content["stack"] = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        return JSONResponse(status_code=500, content=content)


# Run with: uvicorn main:create_app --factory
if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run("main:create_app", factory=True, host=settings.host, port=settings.port)
