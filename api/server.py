# api/server.py
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
from loguru import logger
from prometheus_client import make_asgi_app

from api.routes.deploy import router as deploy_router
from api.schemas import INVALID_PAYLOAD, INVALID_URL
from core.config import Settings
from core.orchestrator import DeployOrchestrator


def _is_url_error(exc: RequestValidationError) -> bool:
    for err in exc.errors():
        loc = tuple(err.get("loc", ()))
        if loc[-1:] == ("url",) and err.get("type") == "value_error":
            return True
    return False


def create_app(
    settings: Optional[Settings] = None,
    orchestrator: Optional[DeployOrchestrator] = None,
) -> FastAPI:
    settings = settings or Settings()
    orchestrator = orchestrator or DeployOrchestrator.from_settings(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"Starting server on :{settings.http_port}")
        yield
        logger.info("Shutting down server")

    app = FastAPI(title="easy-deploy", lifespan=lifespan)
    app.state.settings = settings
    app.state.orchestrator = orchestrator

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(RequestValidationError)
    async def validation_handler(request: Request, exc: RequestValidationError):
        detail = INVALID_URL if _is_url_error(exc) else INVALID_PAYLOAD
        logger.warning(f"Rejected request to {request.url.path}: {detail}")
        return PlainTextResponse(detail, status_code=400)

    # Mount Prometheus Metrics Endpoint
    app.mount("/metrics", make_asgi_app())

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    app.include_router(deploy_router)
    return app
