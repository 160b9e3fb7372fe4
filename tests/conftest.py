"""Shared fixtures: package builders, a registry clone and App credentials."""

from pathlib import Path
from unittest.mock import AsyncMock

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from typst_package_check.github.client import GitHubAppClient
from typst_package_check.github.models import CheckRun, InstallationToken

from .helpers import published_package, write_tree


@pytest.fixture
def registry_root(tmp_path):
    """A registry clone root with an empty ``packages/`` directory."""
    (tmp_path / "packages").mkdir()
    return tmp_path


@pytest.fixture
def add_registry_package(registry_root):
    def add(namespace: str, name: str, version: str, files: dict[str, str | bytes] | None = None) -> Path:
        directory = registry_root / "packages" / namespace / name / version
        directory.mkdir(parents=True)
        return write_tree(directory, files or published_package(name, version))

    return add


@pytest.fixture(scope="session")
def private_key_pem() -> str:
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode()


@pytest.fixture(scope="session")
def public_key_pem(private_key_pem) -> str:
    key = serialization.load_pem_private_key(private_key_pem.encode(), password=None)
    return key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode()


@pytest.fixture
def mock_client():
    """A GitHubAppClient double that records every call."""
    client = AsyncMock(spec=GitHubAppClient)
    client.create_installation_token.return_value = InstallationToken(
        token="ghs_test", expires_at="2099-01-01T00:00:00Z"
    )
    client.create_check_run.side_effect = lambda token, repo, name, sha: CheckRun(
        id=1000 + client.create_check_run.call_count, name=name, head_sha=sha, status="in_progress"
    )
    client.update_check_run.return_value = CheckRun(id=1, name="check", status="completed")
    client.list_pull_requests_for_commit.return_value = []
    client.list_pull_request_files.return_value = []
    client.get_file_content.return_value = b""
    return client
