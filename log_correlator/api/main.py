"""
FastAPI Main Application
Entry point for the API server
"""

from dotenv import load_dotenv
load_dotenv()

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from log_correlator import __version__
from log_correlator.errors import ConfigurationError, TransportError
from .routes import router
from log_correlator.utils.logger import get_logger

logger = get_logger("main")


def create_app() -> FastAPI:
    """Create and configure FastAPI application"""

    app = FastAPI(
        title="Loki Log Correlation API",
        description="Correlates Loki logs into a root-cause diagnosis",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc"
    )

    app.include_router(router)

    @app.exception_handler(ConfigurationError)
    async def configuration_error_handler(request: Request, exc: ConfigurationError):
        logger.warning("Rejected request", extra={"action": "config_error", "extra": str(exc)})
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @app.exception_handler(TransportError)
    async def transport_error_handler(request: Request, exc: TransportError):
        logger.error("Log backend failure", extra={
            "action": "transport_error",
            "extra": {"status_code": exc.status_code, "error": str(exc)},
        })
        return JSONResponse(status_code=502, content={"detail": str(exc)})

    logger.info("API application created", extra={"action": "startup"})
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "log_correlator.api.main:app",
        host="0.0.0.0",
        port=8000,
        log_level="info"
    )
