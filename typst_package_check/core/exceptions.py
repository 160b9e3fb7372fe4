"""Exception hierarchy for typst-package-check.

Package content errors (manifest, imports, registry lookups) are always
converted into diagnostics before they reach a report. Infrastructure errors
(credentials, transport, webhook verification) abort the current delivery
but never the server process.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ..package.spec import PackageSpec


class PackageCheckError(Exception):
    """Base exception for all typst-package-check errors."""
    pass


# =============================================================================
# Package Errors
# =============================================================================

class PackageError(PackageCheckError):
    """Base exception for problems found in the checked package itself."""
    pass


class ManifestError(PackageError):
    """Base exception for typst.toml problems."""
    pass


class ManifestMalformed(ManifestError):
    """typst.toml could not be parsed at all."""

    def __init__(self, reason: str):
        super().__init__(f"Malformed manifest: {reason}")
        self.reason = reason


class ManifestInvalid(ManifestError):
    """typst.toml parsed but required fields are missing or invalid.

    Each problem is a ``(table, key, message)`` triple, ``key`` being
    ``None`` when the problem concerns a whole table.
    """

    def __init__(self, problems: list[tuple[str, str | None, str]]):
        super().__init__("; ".join(message for _, _, message in problems))
        self.problems = problems


class PackageNotFound(PackageError):
    """A package version is absent from the local registry clone."""

    def __init__(self, spec: PackageSpec):
        super().__init__(f"Package {spec} was not found in the local package repository")
        self.spec = spec


class InvalidPackageSpec(PackageError, ValueError):
    """String is not a valid `@namespace/name:version` specification."""
    pass


# =============================================================================
# Client Errors (API/Network)
# =============================================================================

class ClientError(PackageCheckError):
    """Base exception for GitHub API client errors."""
    pass


class ApiTransportError(ClientError):
    """A GitHub API call did not produce a usable response."""
    pass


class NetworkError(ApiTransportError):
    """Network connectivity or request error."""
    pass


class APIError(ApiTransportError):
    """Error status returned by the GitHub API."""

    def __init__(self, message: str, status_code: int | None = None, response_body: str | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body


class RateLimitError(APIError):
    """API rate limit exceeded."""

    def __init__(self, message: str, retry_after: float | None = None, status_code: int | None = None):
        super().__init__(message, status_code=status_code)
        self.retry_after = retry_after


class AuthenticationError(ClientError):
    """GitHub App authentication failed (JWT signing or token exchange)."""
    pass


# =============================================================================
# Webhook Errors
# =============================================================================

class WebhookError(PackageCheckError):
    """Base exception for inbound webhook problems."""
    pass


class WebhookVerificationError(WebhookError):
    """Missing, malformed or mismatched webhook signature."""
    pass


class MalformedPayloadError(WebhookError):
    """Webhook body is not the JSON document GitHub is expected to send."""
    pass


class UnsupportedEventError(WebhookError):
    """Webhook event type is not handled."""
    pass


# =============================================================================
# Configuration Errors
# =============================================================================

class ConfigurationError(PackageCheckError):
    """Base exception for configuration errors."""
    pass


class InvalidConfigError(ConfigurationError):
    """A configuration value is present but unusable."""
    pass


class MissingConfigError(ConfigurationError):
    """Required configuration is missing."""

    def __init__(self, names: list[str]):
        super().__init__(f"Missing required environment variable(s): {', '.join(names)}")
        self.names = names
