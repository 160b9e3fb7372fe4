"""GitHub App integration: webhooks, credentials and Check Runs."""

from .auth import AppCredentials, InstallationTokenCache
from .client import GitHubAppClient
from .orchestrator import CheckLedger, DeliveryState, Orchestrator
from .webhook import CheckRequest, parse_event, verify_signature

__all__ = [
    "AppCredentials",
    "CheckLedger",
    "CheckRequest",
    "DeliveryState",
    "GitHubAppClient",
    "InstallationTokenCache",
    "Orchestrator",
    "parse_event",
    "verify_signature",
]
