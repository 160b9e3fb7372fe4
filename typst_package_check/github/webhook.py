"""Webhook signature verification and event parsing."""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass

from pydantic import ValidationError

from ..core.exceptions import MalformedPayloadError, UnsupportedEventError, WebhookVerificationError
from .models import CheckRun, CheckRunEvent, CheckSuiteEvent, PullRequestEvent, Repository

logger = logging.getLogger(__name__)

SIGNATURE_HEADERS = (
    ("x-hub-signature-256", "sha256", hashlib.sha256),
    ("x-hub-signature", "sha1", hashlib.sha1),
)

PULL_REQUEST_ACTIONS = frozenset({"opened", "reopened", "synchronize", "ready_for_review"})
CHECK_SUITE_ACTIONS = frozenset({"requested", "rerequested"})
CHECK_RUN_ACTIONS = frozenset({"rerequested"})
IGNORED_EVENTS = frozenset({
    "ping",
    "installation",
    "installation_repositories",
    "installation_target",
    "github_app_authorization",
})


def verify_signature(secret: str | bytes, body: bytes, headers: Mapping[str, str]) -> None:
    """Check the HMAC signature of a webhook delivery.

    ``X-Hub-Signature-256`` is used when present, ``X-Hub-Signature`` (SHA-1)
    otherwise. Header lookup is case-insensitive.

    Raises:
        WebhookVerificationError: The signature is missing, malformed or wrong.
    """
    if not secret:
        raise WebhookVerificationError("No webhook secret is configured")
    key = secret.encode() if isinstance(secret, str) else secret
    lowered = {name.lower(): value for name, value in headers.items()}

    for header, prefix, digest in SIGNATURE_HEADERS:
        value = lowered.get(header)
        if value is None:
            continue
        algorithm, _, signature = value.strip().partition("=")
        if algorithm != prefix or not signature:
            raise WebhookVerificationError(f"Malformed {header} header")
        expected = hmac.new(key, body, digest).hexdigest()
        if not hmac.compare_digest(expected, signature.lower()):
            raise WebhookVerificationError("Webhook signature does not match")
        return

    raise WebhookVerificationError("Webhook delivery is not signed")


@dataclass(frozen=True)
class CheckRequest:
    """Work requested by a webhook delivery: check the PR at ``head_sha``.

    ``pull_number`` is ``None`` when the event did not name a pull request
    (check suites created for a push), ``check_run`` is the run GitHub asked
    to re-run, if any.
    """

    installation_id: int
    repository: Repository
    head_sha: str
    pull_number: int | None = None
    check_run: CheckRun | None = None
    rerequested: bool = False
    event: str = ""
    delivery_id: str | None = None

    @property
    def key(self) -> tuple[str, str]:
        return (self.repository.full_name, self.head_sha)


def parse_event(event: str, body: bytes, delivery_id: str | None = None) -> CheckRequest | None:
    """Turn a verified webhook delivery into a ``CheckRequest``.

    Returns ``None`` for deliveries that need no work.

    Raises:
        UnsupportedEventError: Unknown event type.
        MalformedPayloadError: The body is not the expected JSON document.
    """
    if event in IGNORED_EVENTS:
        return None
    if event not in ("pull_request", "check_suite", "check_run"):
        raise UnsupportedEventError(f"Unsupported event type: {event or '<missing>'}")

    try:
        payload = json.loads(body)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise MalformedPayloadError(f"Webhook body is not valid JSON: {e}") from e
    if not isinstance(payload, dict):
        raise MalformedPayloadError("Webhook body must be a JSON object")

    try:
        if event == "pull_request":
            pr_event = PullRequestEvent.model_validate(payload)
            if pr_event.action not in PULL_REQUEST_ACTIONS:
                return None
            return CheckRequest(
                installation_id=pr_event.installation.id,
                repository=pr_event.repository,
                head_sha=pr_event.pull_request.head.sha,
                pull_number=pr_event.pull_request.number,
                event=event,
                delivery_id=delivery_id,
            )

        if event == "check_suite":
            suite_event = CheckSuiteEvent.model_validate(payload)
            if suite_event.action not in CHECK_SUITE_ACTIONS:
                return None
            pulls = suite_event.check_suite.pull_requests
            return CheckRequest(
                installation_id=suite_event.installation.id,
                repository=suite_event.repository,
                head_sha=suite_event.check_suite.head_sha,
                pull_number=pulls[0].number if pulls else None,
                rerequested=suite_event.action == "rerequested",
                event=event,
                delivery_id=delivery_id,
            )

        run_event = CheckRunEvent.model_validate(payload)
        if run_event.action not in CHECK_RUN_ACTIONS:
            return None
        check_run = run_event.check_run
        suite = check_run.check_suite
        head_sha = check_run.head_sha or (suite.head_sha if suite else None)
        if not head_sha:
            raise MalformedPayloadError("check_run event without a head SHA")
        pulls = suite.pull_requests if suite else []
        return CheckRequest(
            installation_id=run_event.installation.id,
            repository=run_event.repository,
            head_sha=head_sha,
            pull_number=pulls[0].number if pulls else None,
            check_run=check_run,
            rerequested=True,
            event=event,
            delivery_id=delivery_id,
        )
    except ValidationError as e:
        raise MalformedPayloadError(f"Invalid {event} payload: {e.error_count()} validation error(s)") from e
