"""HTTP endpoint receiving GitHub webhooks."""

from __future__ import annotations

import logging

import uvicorn
from fastapi import BackgroundTasks, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse, PlainTextResponse

from ..config import ServerConfig
from ..core.exceptions import MalformedPayloadError, UnsupportedEventError, WebhookVerificationError
from ..package.loader import Registry
from .auth import AppCredentials, InstallationTokenCache
from .client import GitHubAppClient
from .orchestrator import Orchestrator
from .webhook import parse_event, verify_signature

logger = logging.getLogger(__name__)

HOOK_PATH = "/github-hook"


def build_orchestrator(config: ServerConfig) -> Orchestrator:
    client = GitHubAppClient()
    credentials = AppCredentials(app_id=config.app_id, private_key=config.private_key)
    tokens = InstallationTokenCache(credentials, client)
    return Orchestrator(client, tokens, Registry(config.packages_dir))


def create_app(config: ServerConfig, orchestrator: Orchestrator | None = None) -> FastAPI:
    """Build the webhook application.

    The signature is checked before the body is even parsed; nothing else
    happens for a delivery that fails verification.
    """
    owns_orchestrator = orchestrator is None
    if orchestrator is None:
        orchestrator = build_orchestrator(config)

    app = FastAPI(
        title="typst-package-check",
        description="Checks Typst packages submitted to the package repository",
    )
    app.state.orchestrator = orchestrator

    @app.on_event("shutdown")
    async def shutdown_event():
        """Close the GitHub client when the server created it."""
        if owns_orchestrator:
            await orchestrator.client.aclose()

    @app.get("/", response_class=PlainTextResponse)
    async def index() -> str:
        return "typst-package-check is running"

    @app.post(HOOK_PATH)
    async def github_hook(request: Request, background_tasks: BackgroundTasks):
        body = await request.body()
        try:
            verify_signature(config.webhook_secret, body, request.headers)
        except WebhookVerificationError as e:
            logger.warning(f"Rejected webhook delivery {request.headers.get('X-GitHub-Delivery')}: {e}")
            raise HTTPException(status_code=401, detail=str(e)) from e

        event = request.headers.get("X-GitHub-Event", "")
        delivery_id = request.headers.get("X-GitHub-Delivery")
        try:
            check_request = parse_event(event, body, delivery_id)
        except (MalformedPayloadError, UnsupportedEventError) as e:
            logger.info(f"Refused webhook delivery {delivery_id} ({event}): {e}")
            raise HTTPException(status_code=400, detail=str(e)) from e

        if check_request is None:
            logger.debug(f"Nothing to do for {event} delivery {delivery_id}")
            return JSONResponse({"status": "ignored"}, status_code=200)

        background_tasks.add_task(orchestrator.handle, check_request)
        return JSONResponse(
            {"status": "accepted", "repository": check_request.repository.full_name, "sha": check_request.head_sha},
            status_code=202,
        )

    return app


def run_server(config: ServerConfig) -> None:
    if not config.packages_dir.is_dir():
        logger.warning(f"PACKAGES_DIR {config.packages_dir} is not a directory, every package will be missing")
    logger.info(f"Starting webhook server on {config.host}:{config.port}")
    uvicorn.run(
        create_app(config),
        host=config.host,
        port=config.port,
        log_level=config.log_level.lower(),
        log_config=None,
    )
