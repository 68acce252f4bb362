"""Review Forge API Server.

FastAPI server exposing the review gate, feature flags and the feedback
endpoints that feed the learning loop.

Usage:
    python -m review_forge.api.server

    # Or with uvicorn directly:
    uvicorn --factory review_forge.api.server:create_app --host 0.0.0.0 --port 8765
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from review_forge import __version__
from review_forge.api.routes import router
from review_forge.api.services import Services, build_services
from review_forge.config import ServiceConfig
from review_forge.errors import GateUnavailableError

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = structlog.get_logger(__name__)


def create_app(
    services: Services | None = None,
    service_config: ServiceConfig | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        services: Pre-built services; built from config at startup when None
        service_config: Configuration used to build services
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        owned = services is None
        if owned:
            cfg = service_config or ServiceConfig.from_env()
            logger.info(
                "Starting Review Forge API Server",
                model=cfg.default_model,
                learning=cfg.learning_enabled,
                db=cfg.db_path,
            )
            app.state.services = await build_services(cfg)
        else:
            app.state.services = services

        yield

        logger.info("Shutting down Review Forge API Server")
        if owned:
            await app.state.services.close()

    app = FastAPI(
        title="Review Forge API",
        description="Automated pull request review with a learning loop",
        version=__version__,
        lifespan=lifespan,
    )

    @app.exception_handler(GateUnavailableError)
    async def gate_unavailable(request: Request, exc: GateUnavailableError) -> JSONResponse:
        logger.error("Gate unavailable", path=request.url.path, error=str(exc))
        return JSONResponse(status_code=503, content={"detail": str(exc)})

    app.include_router(router)
    return app


def run(
    host: str = "0.0.0.0",
    port: int = 8765,
    reload: bool = False,
) -> None:
    """Run the Review Forge API server.

    Args:
        host: Host to bind to
        port: Port to listen on
        reload: Enable auto-reload for development
    """
    logger.info("Starting server", url=f"http://{host}:{port}")
    uvicorn.run(
        "review_forge.api.server:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
        log_level="info",
    )


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Review Forge API Server")
    parser.add_argument("--host", default="0.0.0.0", help="Host to bind to")
    parser.add_argument("--port", type=int, default=8765, help="Port to listen on")
    parser.add_argument("--reload", action="store_true", help="Enable auto-reload")

    args = parser.parse_args()
    run(host=args.host, port=args.port, reload=args.reload)
