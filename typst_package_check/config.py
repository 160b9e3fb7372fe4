"""Configuration read from the environment (and optionally a ``.env`` file)."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

from .core.exceptions import InvalidConfigError, MissingConfigError

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 7878
DEFAULT_REPOSITORY = "typst/packages"


def load_environment(env_file: str | os.PathLike[str] | None = None) -> bool:
    """Load a ``.env`` file without overriding variables already set."""
    if env_file is not None and not Path(env_file).is_file():
        raise InvalidConfigError(f"Environment file {env_file} does not exist")
    return load_dotenv(env_file, override=False)


def normalize_private_key(value: str) -> str:
    """Restore a PEM key stored on one line with ``&`` in place of newlines."""
    return value.replace("&", "\n").strip() + "\n"


def _require(env: Mapping[str, str], names: list[str]) -> dict[str, str]:
    missing = [name for name in names if not env.get(name)]
    if missing:
        raise MissingConfigError(missing)
    return {name: env[name] for name in names}


def _parse_int(name: str, value: str) -> int:
    try:
        return int(value)
    except ValueError as e:
        raise InvalidConfigError(f"{name} must be a number, got {value!r}") from e


@dataclass(frozen=True)
class ServerConfig:
    """Settings of the webhook server. Secrets are hidden from ``repr``."""

    packages_dir: Path
    app_id: int
    webhook_secret: str = field(repr=False)
    private_key: str = field(repr=False)
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> ServerConfig:
        env = os.environ if env is None else env
        values = _require(env, [
            "PACKAGES_DIR",
            "GITHUB_APP_IDENTIFIER",
            "GITHUB_WEBHOOK_SECRET",
            "GITHUB_PRIVATE_KEY",
        ])
        return cls(
            packages_dir=Path(values["PACKAGES_DIR"]),
            app_id=_parse_int("GITHUB_APP_IDENTIFIER", values["GITHUB_APP_IDENTIFIER"]),
            webhook_secret=values["GITHUB_WEBHOOK_SECRET"],
            private_key=normalize_private_key(values["GITHUB_PRIVATE_KEY"]),
            host=env.get("HOST") or DEFAULT_HOST,
            port=_parse_int("PORT", env["PORT"]) if env.get("PORT") else DEFAULT_PORT,
            log_level=(env.get("LOG_LEVEL") or "INFO").upper(),
        )


@dataclass(frozen=True)
class ActionConfig:
    """Settings of the CI action: one check of the commit being built."""

    installation_id: int
    app_id: int
    private_key: str = field(repr=False)
    head_sha: str
    repository: str = DEFAULT_REPOSITORY
    pull_number: int | None = None
    packages_dir: Path = Path(".")

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> ActionConfig:
        env = os.environ if env is None else env
        values = _require(env, [
            "GITHUB_INSTALLATION",
            "GITHUB_APP_IDENTIFIER",
            "GITHUB_PRIVATE_KEY",
            "GITHUB_SHA",
        ])

        pull_number = None
        ref_name = env.get("GITHUB_REF_NAME", "")
        number, _, suffix = ref_name.partition("/")
        if suffix == "merge" and number.isdigit():
            pull_number = int(number)

        packages_dir = env.get("PACKAGES_DIR") or env.get("GITHUB_WORKSPACE") or "."
        return cls(
            installation_id=_parse_int("GITHUB_INSTALLATION", values["GITHUB_INSTALLATION"]),
            app_id=_parse_int("GITHUB_APP_IDENTIFIER", values["GITHUB_APP_IDENTIFIER"]),
            private_key=normalize_private_key(values["GITHUB_PRIVATE_KEY"]),
            head_sha=values["GITHUB_SHA"],
            repository=env.get("GITHUB_REPOSITORY") or DEFAULT_REPOSITORY,
            pull_number=pull_number,
            packages_dir=Path(packages_dir),
        )
