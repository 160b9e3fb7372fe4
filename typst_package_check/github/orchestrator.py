"""Webhook orchestration.

Each (repository, head SHA) pair has a ``CheckRecord`` that moves through

    RECEIVED -> AUTHENTICATING -> FETCHING -> ANALYZING -> REPORTING -> DONE
                                                                 \\-> FAILED

The record remembers the Check Runs created for the commit, so a redelivered
webhook never creates a second run: it is ignored once the record is DONE,
and it reuses the existing runs while an analysis is still going on.
"""

from __future__ import annotations

import asyncio
import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from ..check.pipeline import CheckResult, check_registry_package
from ..core.exceptions import (
    APIError,
    AuthenticationError,
    ClientError,
    InvalidPackageSpec,
)
from ..logging_config import get_delivery_logger
from ..package.loader import Registry
from ..package.spec import PackageSpec, PackageVersion
from .annotations import build_outputs, conclusion_for
from .auth import InstallationTokenCache
from .client import GitHubAppClient
from .models import CheckRunOutput, PullRequestFile
from .webhook import CheckRequest

logger = logging.getLogger(__name__)
delivery_logger = get_delivery_logger()

PACKAGES_PREFIX = "packages"

TOO_MANY_THINGS = CheckRunOutput(
    title="This PR does too many things",
    summary="A PR should either change packages/, or the rest of the repository, but not both.",
)
FATAL_ERROR = CheckRunOutput(
    title="The checks could not be completed",
    summary=(
        "An internal error prevented the automated checks from running to completion. "
        "They will run again on the next push, or you can re-run them from this page."
    ),
)


class DeliveryState(str, Enum):
    RECEIVED = "received"
    AUTHENTICATING = "authenticating"
    FETCHING = "fetching"
    ANALYZING = "analyzing"
    REPORTING = "reporting"
    DONE = "done"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (DeliveryState.DONE, DeliveryState.FAILED)


_PROGRESSION = [
    DeliveryState.RECEIVED,
    DeliveryState.AUTHENTICATING,
    DeliveryState.FETCHING,
    DeliveryState.ANALYZING,
    DeliveryState.REPORTING,
    DeliveryState.DONE,
]


@dataclass
class CheckRecord:
    """Local view of the Check Runs of one (repository, SHA) pair."""

    key: tuple[str, str]
    state: DeliveryState = DeliveryState.RECEIVED
    check_runs: dict[str, int] = field(default_factory=dict)
    reason: str | None = None
    attempts: int = 0
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    def restart(self, request: CheckRequest) -> None:
        """Start a new attempt, keeping the known Check Runs unless GitHub asked for new ones."""
        if request.rerequested:
            self.check_runs.clear()
        if request.check_run is not None:
            self.check_runs[request.check_run.name] = request.check_run.id
        self.state = DeliveryState.RECEIVED
        self.reason = None
        self.attempts += 1

    def advance(self, state: DeliveryState, reason: str | None = None) -> None:
        """Move forward within the current attempt. Terminal states are final."""
        if self.state.terminal:
            raise ValueError(f"Check record {self.key} is already {self.state.value}")
        if state is not DeliveryState.FAILED and _PROGRESSION.index(state) <= _PROGRESSION.index(self.state):
            raise ValueError(f"Cannot go from {self.state.value} to {state.value}")
        self.state = state
        self.reason = reason


class CheckLedger:
    """In-memory records keyed by (repository, SHA).

    ``claim`` runs without suspension points, so it is atomic with respect
    to other deliveries handled by the same event loop.
    """

    def __init__(self, max_records: int = 10_000):
        self.max_records = max_records
        self._records: OrderedDict[tuple[str, str], CheckRecord] = OrderedDict()

    def __len__(self) -> int:
        return len(self._records)

    def get(self, key: tuple[str, str]) -> CheckRecord | None:
        return self._records.get(key)

    def claim(self, request: CheckRequest) -> CheckRecord | None:
        """Record for the request, or ``None`` if the work is already done."""
        record = self._records.get(request.key)
        if record is None:
            record = CheckRecord(key=request.key)
            self._records[request.key] = record
            self._evict()
            return record

        self._records.move_to_end(request.key)
        if record.state is DeliveryState.DONE and not request.rerequested:
            return None
        return record

    def _evict(self) -> None:
        while len(self._records) > self.max_records:
            for key, record in self._records.items():
                if record.state.terminal and not record.lock.locked():
                    del self._records[key]
                    break
            else:
                return


def touched_packages(files: list[PullRequestFile]) -> tuple[list[PackageSpec], bool]:
    """Packages changed by a pull request, and whether it changes anything else."""
    specs: set[PackageSpec] = set()
    outside = False
    for changed in files:
        for path in filter(None, (changed.filename, changed.previous_filename)):
            parts = path.split("/")
            if parts[0] != PACKAGES_PREFIX:
                outside = True
                continue
            if len(parts) < 5:
                continue
            try:
                version = PackageVersion.parse(parts[3])
            except InvalidPackageSpec:
                continue
            specs.add(PackageSpec(namespace=parts[1], name=parts[2], version=version))
    return sorted(specs, key=str), outside


def package_overlay(spec: PackageSpec, files: list[PullRequestFile]) -> dict[str, str | None]:
    """Map package-relative paths to the PR path to fetch, ``None`` when deleted."""
    prefix = spec.registry_path() + "/"
    overlay: dict[str, str | None] = {}
    for changed in files:
        if changed.previous_filename and changed.previous_filename.startswith(prefix):
            overlay[changed.previous_filename[len(prefix):]] = None
        if changed.filename.startswith(prefix):
            relative = changed.filename[len(prefix):]
            overlay[relative] = None if changed.removed else changed.filename
    return overlay


class Orchestrator:
    """Drives one webhook delivery from credentials to Check Run report."""

    def __init__(
        self,
        client: GitHubAppClient,
        tokens: InstallationTokenCache,
        registry: Registry,
        ledger: CheckLedger | None = None,
    ):
        self.client = client
        self.tokens = tokens
        self.registry = registry
        self.ledger = ledger or CheckLedger()

    def _log(self, request: CheckRequest, state: DeliveryState, message: str, **fields: Any) -> None:
        extra = {
            "event": request.event,
            "delivery": request.delivery_id,
            "repository": request.repository.full_name,
            "sha": request.head_sha,
            "state": state.value,
        }
        extra.update({k: v for k, v in fields.items() if v is not None})
        level = logging.WARNING if state is DeliveryState.FAILED else logging.INFO
        delivery_logger.log(level, message, extra=extra)

    def _advance(self, record: CheckRecord, request: CheckRequest, state: DeliveryState, reason: str | None = None) -> None:
        record.advance(state, reason)
        self._log(request, state, f"{request.repository.full_name}@{request.head_sha[:12]} is {state.value}", reason=reason)

    async def handle(self, request: CheckRequest) -> DeliveryState:
        """Process a delivery. Never raises; returns the final state."""
        record = self.ledger.claim(request)
        if record is None:
            self._log(request, DeliveryState.DONE, "Duplicate delivery ignored, checks are already done")
            return DeliveryState.DONE

        async with record.lock:
            # A duplicate that waited for the lock finds the work already done.
            if record.state is DeliveryState.DONE and not request.rerequested:
                self._log(request, DeliveryState.DONE, "Duplicate delivery ignored, checks are already done")
                return DeliveryState.DONE
            record.restart(request)
            self._log(request, record.state, "Delivery accepted")
            token: str | None = None
            try:
                self._advance(record, request, DeliveryState.AUTHENTICATING)
                token = await self.tokens.get_token(request.installation_id)
                await self._run(record, request, token)
            except Exception as e:
                await self._fail(record, request, token, e)
            return record.state

    async def _run(self, record: CheckRecord, request: CheckRequest, token: str) -> None:
        self._advance(record, request, DeliveryState.FETCHING)
        pull_number = request.pull_number
        if pull_number is None:
            pulls = await self.client.list_pull_requests_for_commit(token, request.repository, request.head_sha)
            pull_number = pulls[0].number if pulls else None
        if pull_number is None:
            self._advance(record, request, DeliveryState.DONE, reason="no pull request for this commit")
            return

        changed = await self.client.list_pull_request_files(token, request.repository, pull_number)
        specs, outside = touched_packages(changed)
        if not specs:
            self._advance(record, request, DeliveryState.DONE, reason="no package changed")
            return

        for spec in specs:
            await self._ensure_check_run(record, request, token, str(spec))

        if outside:
            for spec in specs:
                await self.client.update_check_run(
                    token, request.repository, record.check_runs[str(spec)], TOO_MANY_THINGS, conclusion="failure"
                )
            self._advance(record, request, DeliveryState.DONE, reason="pull request changes files outside packages/")
            return

        overlays = {spec: await self._fetch_overlay(token, request, spec, changed) for spec in specs}

        self._advance(record, request, DeliveryState.ANALYZING)
        results: dict[PackageSpec, CheckResult] = {}
        for spec in specs:
            results[spec] = await asyncio.to_thread(check_registry_package, self.registry, spec, overlays[spec])

        self._advance(record, request, DeliveryState.REPORTING)
        for spec, result in results.items():
            await self._report(record, request, token, spec, result)

        self._advance(record, request, DeliveryState.DONE)

    async def _ensure_check_run(self, record: CheckRecord, request: CheckRequest, token: str, name: str) -> int:
        existing = record.check_runs.get(name)
        if existing is not None:
            return existing
        check_run = await self.client.create_check_run(token, request.repository, name, request.head_sha)
        record.check_runs[name] = check_run.id
        self._log(request, record.state, "Check run created", package=name, check_run=check_run.id)
        return check_run.id

    async def _fetch_overlay(
        self, token: str, request: CheckRequest, spec: PackageSpec, changed: list[PullRequestFile]
    ) -> dict[str, bytes | None]:
        overlay: dict[str, bytes | None] = {}
        for relative, remote in package_overlay(spec, changed).items():
            if remote is None:
                overlay[relative] = None
            else:
                overlay[relative] = await self.client.get_file_content(
                    token, request.repository, remote, request.head_sha
                )
        return overlay

    async def _report(
        self, record: CheckRecord, request: CheckRequest, token: str, spec: PackageSpec, result: CheckResult
    ) -> None:
        check_run_id = record.check_runs[str(spec)]
        report = result.report
        outputs = build_outputs(report, spec, result.package.files)
        conclusion = conclusion_for(report)
        # Earlier batches leave the run in progress, even a completed run that
        # is being reused; the last batch completes it.
        for index, output in enumerate(outputs):
            last = index == len(outputs) - 1
            await self.client.update_check_run(
                token, request.repository, check_run_id, output, conclusion=conclusion if last else None
            )
        self._log(
            request,
            record.state,
            "Check run completed",
            package=str(spec),
            check_run=check_run_id,
            conclusion=conclusion,
        )

    async def _fail(self, record: CheckRecord, request: CheckRequest, token: str | None, error: Exception) -> None:
        reason = f"{type(error).__name__}: {error}"
        if isinstance(error, ClientError):
            logger.warning(f"Delivery for {request.repository.full_name}@{request.head_sha} failed: {reason}")
        else:
            logger.exception(f"Unexpected error while handling {request.repository.full_name}@{request.head_sha}")

        if isinstance(error, AuthenticationError) or (isinstance(error, APIError) and error.status_code == 401):
            await self.tokens.invalidate(request.installation_id)

        if not record.state.terminal:
            record.advance(DeliveryState.FAILED, reason)
        self._log(request, DeliveryState.FAILED, "Delivery failed", reason=reason, error=type(error).__name__)

        if token is None:
            return
        for name, check_run_id in record.check_runs.items():
            try:
                await self.client.update_check_run(
                    token, request.repository, check_run_id, FATAL_ERROR, conclusion="neutral"
                )
            except ClientError as e:
                logger.warning(f"Could not mark check run {name} ({check_run_id}) as failed: {e}")
