"""Async GitHub REST client for the GitHub App.

Idempotent GET requests are retried on network errors and server errors;
POST/PATCH requests that create or change Check Runs are sent once so that a
retry can never produce a duplicate.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any
from urllib.parse import quote

import httpx

from ..core.exceptions import APIError, AuthenticationError, NetworkError, RateLimitError
from .models import (
    CheckRun,
    CheckRunOutput,
    InstallationToken,
    PullRequest,
    PullRequestFile,
    Repository,
)

logger = logging.getLogger(__name__)

USER_AGENT = "typst-package-check"

# Scope of the installation tokens requested for the package repository.
TOKEN_PERMISSIONS = {
    "metadata": "read",
    "issues": "write",
    "pull_requests": "write",
    "checks": "write",
}


class GitHubAppClient:
    BASE_URL = "https://api.github.com"
    MAX_RETRIES = 3
    RETRY_BACKOFF = 0.5
    PER_PAGE = 100

    def __init__(self, timeout: int = 30, base_url: str | None = None) -> None:
        self.base_url = (base_url or self.BASE_URL).rstrip("/")
        self.headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
            "User-Agent": USER_AGENT,
        }
        self.client = httpx.AsyncClient(timeout=timeout, headers=self.headers)

    async def __aenter__(self) -> GitHubAppClient:
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self.client.aclose()

    def _url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    @staticmethod
    def _auth(token: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {token}"}

    async def _send(self, method: str, path: str, token: str, **kwargs: Any) -> httpx.Response:
        headers = {**self._auth(token), **kwargs.pop("headers", {})}
        try:
            response = await self.client.request(method, self._url(path), headers=headers, **kwargs)
        except httpx.TransportError as e:
            raise NetworkError(f"{method} {path} failed: {e}") from e
        self._raise_for_status(method, path, response)
        return response

    def _raise_for_status(self, method: str, path: str, response: httpx.Response) -> None:
        if response.is_success:
            return

        status = response.status_code
        if status == 429 or (status == 403 and response.headers.get("X-RateLimit-Remaining") == "0"):
            retry_after = response.headers.get("Retry-After")
            raise RateLimitError(
                f"GitHub rate limit exceeded on {method} {path}",
                retry_after=float(retry_after) if retry_after and retry_after.isdigit() else None,
                status_code=status,
            )
        raise APIError(
            f"{method} {path} returned HTTP {status}",
            status_code=status,
            response_body=response.text[:1000],
        )

    async def _get(self, path: str, token: str, **kwargs: Any) -> httpx.Response:
        """GET with bounded retries on network errors and 5xx responses."""
        attempt = 1
        while True:
            try:
                return await self._send("GET", path, token, **kwargs)
            except NetworkError as e:
                error: Exception = e
            except APIError as e:
                if isinstance(e, RateLimitError) or e.status_code is None or e.status_code < 500:
                    raise
                error = e
            if attempt >= self.MAX_RETRIES:
                raise error
            logger.warning(f"GET {path} failed (attempt {attempt}/{self.MAX_RETRIES}): {error}")
            await asyncio.sleep(self.RETRY_BACKOFF * 2 ** (attempt - 1))
            attempt += 1

    # -------------------------------------------------------------------------
    # App authentication
    # -------------------------------------------------------------------------

    async def create_installation_token(
        self, jwt: str, installation_id: int, repositories: list[str] | None = None
    ) -> InstallationToken:
        """Exchange an App JWT for an installation access token. Not retried."""
        body: dict[str, Any] = {"permissions": TOKEN_PERMISSIONS}
        if repositories:
            body["repositories"] = repositories
        path = f"app/installations/{installation_id}/access_tokens"
        try:
            response = await self._send("POST", path, jwt, json=body)
        except RateLimitError:
            raise
        except APIError as e:
            if e.status_code in (401, 403, 404):
                raise AuthenticationError(
                    f"Installation {installation_id} refused the token exchange (HTTP {e.status_code})"
                ) from e
            raise
        return InstallationToken(**response.json())

    # -------------------------------------------------------------------------
    # Pull requests
    # -------------------------------------------------------------------------

    async def get_pull_request(self, token: str, repository: Repository, number: int) -> PullRequest:
        response = await self._get(f"repos/{repository.full_name}/pulls/{number}", token)
        return PullRequest(**response.json())

    async def list_pull_requests_for_commit(self, token: str, repository: Repository, sha: str) -> list[PullRequest]:
        response = await self._get(f"repos/{repository.full_name}/commits/{sha}/pulls", token)
        return [PullRequest(**item) for item in response.json()]

    async def list_pull_request_files(self, token: str, repository: Repository, number: int) -> list[PullRequestFile]:
        files: list[PullRequestFile] = []
        page = 1
        while True:
            response = await self._get(
                f"repos/{repository.full_name}/pulls/{number}/files",
                token,
                params={"per_page": self.PER_PAGE, "page": page},
            )
            batch = response.json()
            files.extend(PullRequestFile(**item) for item in batch)
            if len(batch) < self.PER_PAGE:
                return files
            page += 1

    async def get_file_content(self, token: str, repository: Repository, path: str, ref: str) -> bytes:
        response = await self._get(
            f"repos/{repository.full_name}/contents/{quote(path)}",
            token,
            params={"ref": ref},
            headers={"Accept": "application/vnd.github.raw+json"},
        )
        return response.content

    # -------------------------------------------------------------------------
    # Check runs
    # -------------------------------------------------------------------------

    async def create_check_run(self, token: str, repository: Repository, name: str, head_sha: str) -> CheckRun:
        """Create an ``in_progress`` check run. Never retried."""
        response = await self._send(
            "POST",
            f"repos/{repository.full_name}/check-runs",
            token,
            json={"name": name, "head_sha": head_sha, "status": "in_progress"},
        )
        return CheckRun(**response.json())

    async def update_check_run(
        self,
        token: str,
        repository: Repository,
        check_run_id: int,
        output: CheckRunOutput,
        conclusion: str | None = None,
    ) -> CheckRun:
        """Update a check run; completes it when ``conclusion`` is given.

        Annotations are additive on GitHub's side, so this is not retried.
        """
        body: dict[str, Any] = {"output": output.to_payload()}
        if conclusion is None:
            body["status"] = "in_progress"
        else:
            body["status"] = "completed"
            body["conclusion"] = conclusion
        response = await self._send(
            "PATCH",
            f"repos/{repository.full_name}/check-runs/{check_run_id}",
            token,
            json=body,
        )
        return CheckRun(**response.json())
