"""Pydantic models for GitHub webhook payloads and REST responses.

Only the fields the service uses are declared; everything else GitHub sends
is ignored.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, SecretStr


class Repository(BaseModel):
    full_name: str

    @property
    def owner(self) -> str:
        return self.full_name.split("/", 1)[0]

    @property
    def name(self) -> str:
        return self.full_name.split("/", 1)[-1]


class Installation(BaseModel):
    id: int


class CommitRef(BaseModel):
    sha: str
    ref: str | None = None


class PullRequest(BaseModel):
    number: int
    head: CommitRef
    title: str = ""
    state: str = "open"


class PullRequestFile(BaseModel):
    filename: str
    status: str
    previous_filename: str | None = None

    @property
    def removed(self) -> bool:
        return self.status == "removed"


class CheckSuite(BaseModel):
    id: int | None = None
    head_sha: str
    pull_requests: list[PullRequest] = Field(default_factory=list)


class CheckRun(BaseModel):
    id: int
    name: str
    head_sha: str | None = None
    status: str | None = None
    conclusion: str | None = None
    check_suite: CheckSuite | None = None


class InstallationToken(BaseModel):
    token: SecretStr
    expires_at: datetime


class Annotation(BaseModel):
    """A Check Run annotation; columns only apply to single-line spans."""

    path: str
    start_line: int
    end_line: int
    start_column: int | None = None
    end_column: int | None = None
    annotation_level: str
    message: str
    title: str | None = None


class CheckRunOutput(BaseModel):
    title: str
    summary: str
    annotations: list[Annotation] = Field(default_factory=list)

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


# Webhook payloads


class _Event(BaseModel):
    model_config = ConfigDict(extra="ignore")

    action: str | None = None
    installation: Installation
    repository: Repository


class PullRequestEvent(_Event):
    number: int
    pull_request: PullRequest


class CheckSuiteEvent(_Event):
    check_suite: CheckSuite


class CheckRunEvent(_Event):
    check_run: CheckRun
