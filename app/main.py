import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from app.config import settings
from app.connections.errors import ConflictExpired, ConnectionStageError
from app.connections.stages import Stage
from app.database import engine
from app.routers import auth, connections, rpc

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


async def connection_error_handler(request: Request, exc: ConnectionStageError) -> JSONResponse:
    logger.warning(
        "%s on %s: %s", exc.error_type, request.url.path, exc.message
    )
    content = {"error": exc.message}
    if isinstance(exc, ConflictExpired):
        content["stage"] = Stage.EXPIRED.value
    return JSONResponse(status_code=exc.status_code, content=content)


async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = exc.errors()
    message = errors[0].get("msg", "Invalid request.") if errors else "Invalid request."
    return JSONResponse(status_code=422, content={"error": message})


def create_app() -> FastAPI:
    application = FastAPI(title="ARMY Ticket Board Connections API")

    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    application.add_exception_handler(ConnectionStageError, connection_error_handler)
    application.add_exception_handler(RequestValidationError, request_validation_handler)

    application.include_router(auth.router)
    application.include_router(connections.router)
    application.include_router(rpc.router)

    @application.get("/health")
    def health():
        try:
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return {"status": "healthy"}
        except Exception:
            logger.exception("Health check failed")
            return JSONResponse(status_code=503, content={"status": "unhealthy"})

    return application


app = create_app()
