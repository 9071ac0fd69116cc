"""Trigger route: run the deploy pipeline for a repository URL."""
from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import PlainTextResponse
from loguru import logger

from api.schemas import INTERNAL_ERROR, SUCCESS_MESSAGE, DeployPayload
from core.errors import DeployError
from core.metrics import (
    DEPLOYMENT_COUNTER,
    DEPLOYMENT_FAILURE_COUNTER,
    DEPLOYMENT_SUCCESS_COUNTER,
)
from core.orchestrator import DeployOrchestrator

router = APIRouter()


def get_orchestrator(request: Request) -> DeployOrchestrator:
    return request.app.state.orchestrator


@router.post("/deploy", response_class=PlainTextResponse)
def deploy(
    payload: DeployPayload,
    orchestrator: DeployOrchestrator = Depends(get_orchestrator),
):
    """
    Synchronous on purpose: FastAPI runs it on its worker thread pool, so each
    trigger occupies one worker for the whole pipeline.
    """
    DEPLOYMENT_COUNTER.inc()
    log = logger.bind(repo_url=payload.url)
    log.info("Received request")

    try:
        deployment = orchestrator.deploy(payload)
    except DeployError as e:
        DEPLOYMENT_FAILURE_COUNTER.labels(stage=e.stage).inc()
        log.bind(stage=e.stage).error(f"clone and build: {e}")
        return PlainTextResponse(INTERNAL_ERROR, status_code=500)
    except Exception as e:
        DEPLOYMENT_FAILURE_COUNTER.labels(stage="unknown").inc()
        log.exception(f"clone and build: {e}")
        return PlainTextResponse(INTERNAL_ERROR, status_code=500)

    DEPLOYMENT_SUCCESS_COUNTER.inc()
    log.bind(port=deployment.host_port, image=deployment.image.full).success(
        f"Deployed {deployment.image.full} on port {deployment.host_port}"
    )
    return PlainTextResponse(SUCCESS_MESSAGE, status_code=200)
