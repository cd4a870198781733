import logging
import sys
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request

from core.settings import SETTINGS
from di.container import ApplicationContainer as DependencyContainer
from di.container import build_container, init_storage, shutdown_storage
from api.shared.dtos import HealthCheckResponse
from api.shared.exceptions import ChatRelayException, StorageUnavailableError

# Configure logging
logging.basicConfig(
    level=SETTINGS.APP.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)

logger = logging.getLogger("chat_relay")


class CustomFastAPI(FastAPI):
    container: DependencyContainer


@asynccontextmanager
async def lifespan(_app: CustomFastAPI):
    logger.info("Starting application initialization...")
    start_time = time.time()

    try:
        await init_storage(_app.container)
        logger.info(
            f"✅ Application startup completed in {time.time() - start_time:.2f}s"
        )
    except Exception as e:
        logger.exception(f"❌ Failed to initialize application: {str(e)}")
        raise

    yield

    try:
        await shutdown_storage(_app.container)
        logger.info("Application shutdown complete")
    except Exception:
        logger.exception("Error during shutdown")


def create_fastapi_app() -> CustomFastAPI:
    _app = CustomFastAPI(
        title="Chat Relay API",
        description="Relays chat messages to a hosted language model and keeps per-conversation history",
        version="0.1.0",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # Initialize dependency container
    _app.container = build_container()
    _app.container.wire()

    # Every route is open to every origin
    _app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )

    # Include feature routers
    from api.features.analysis.router import router as analysis_router
    from api.features.chat.router import router as chat_router
    from api.features.conversation.router import router as conversation_router

    _app.include_router(chat_router, prefix="/api", tags=["Chat"])
    _app.include_router(conversation_router, prefix="/api", tags=["Conversation"])
    _app.include_router(analysis_router, prefix="/api", tags=["Analysis"])

    register_routes(_app)
    register_exception_handlers(_app)
    return _app


def register_routes(_app: FastAPI) -> None:
    @_app.get("/")
    async def root():
        return {"message": "Chat Relay API is running", "status": "ok"}

    @_app.get("/health", response_model=HealthCheckResponse)
    async def health():
        return HealthCheckResponse(
            status="ok",
            dependencies={"store": SETTINGS.STORE.STORE_BACKEND},
        )


def register_exception_handlers(_app: FastAPI) -> None:
    @_app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "error": "Not Found" if exc.status_code == 404 else "HTTP Error",
                "detail": f"{exc.detail} : {request.url}",
                "status_code": exc.status_code,
            },
        )

    @_app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ):
        return JSONResponse(
            status_code=400,
            content={
                "error": "VALIDATION_ERROR",
                "detail": jsonable_encoder(exc.errors()),
                "status_code": 400,
            },
        )

    @_app.exception_handler(StorageUnavailableError)
    async def storage_exception_handler(request: Request, exc: StorageUnavailableError):
        logger.error(f"Storage failure on {request.url.path}: {exc.message}")
        return JSONResponse(
            status_code=500,
            content={
                "error": "Internal Server Error",
                "detail": "Internal server error",
                "status_code": 500,
            },
        )

    @_app.exception_handler(ChatRelayException)
    async def chat_relay_exception_handler(request: Request, exc: ChatRelayException):
        if exc.status_code >= 500:
            logger.error(f"{exc.error_code} on {request.url.path}: {exc.message}")
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "error": exc.error_code,
                "detail": exc.message,
                "status_code": exc.status_code,
            },
        )

    @_app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled exception")
        return JSONResponse(
            status_code=500,
            content={
                "error": "Internal Server Error",
                "detail": "An unexpected error occurred",
                "status_code": 500,
            },
        )


app = create_fastapi_app()
