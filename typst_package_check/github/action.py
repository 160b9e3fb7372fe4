"""CI action mode: check the commit being built, once."""

from __future__ import annotations

import asyncio
import logging

from ..config import ActionConfig
from ..package.loader import Registry
from .auth import AppCredentials, InstallationTokenCache
from .client import GitHubAppClient
from .models import Repository
from .orchestrator import DeliveryState, Orchestrator
from .webhook import CheckRequest

logger = logging.getLogger(__name__)


def build_request(config: ActionConfig) -> CheckRequest:
    return CheckRequest(
        installation_id=config.installation_id,
        repository=Repository(full_name=config.repository),
        head_sha=config.head_sha,
        pull_number=config.pull_number,
        event="action",
    )


async def run_action_async(config: ActionConfig, client: GitHubAppClient | None = None) -> DeliveryState:
    owns_client = client is None
    client = client or GitHubAppClient()
    try:
        credentials = AppCredentials(app_id=config.app_id, private_key=config.private_key)
        orchestrator = Orchestrator(client, InstallationTokenCache(credentials, client), Registry(config.packages_dir))
        return await orchestrator.handle(build_request(config))
    finally:
        if owns_client:
            await client.aclose()


def run_action(config: ActionConfig) -> int:
    """Process the CI commit; non-zero exit status if the delivery failed."""
    logger.info(f"Checking {config.repository}@{config.head_sha} (pull request {config.pull_number})")
    state = asyncio.run(run_action_async(config))
    return 0 if state is DeliveryState.DONE else 1
