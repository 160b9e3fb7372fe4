"""Core utilities shared by the checker and the GitHub service."""

from .exceptions import (
    APIError,
    ApiTransportError,
    AuthenticationError,
    ClientError,
    ConfigurationError,
    InvalidConfigError,
    InvalidPackageSpec,
    MalformedPayloadError,
    ManifestError,
    ManifestInvalid,
    ManifestMalformed,
    MissingConfigError,
    NetworkError,
    PackageCheckError,
    PackageError,
    PackageNotFound,
    RateLimitError,
    UnsupportedEventError,
    WebhookError,
    WebhookVerificationError,
)

__all__ = [
    "PackageCheckError",
    # Package
    "PackageError",
    "ManifestError",
    "ManifestMalformed",
    "ManifestInvalid",
    "PackageNotFound",
    "InvalidPackageSpec",
    # Client
    "ClientError",
    "ApiTransportError",
    "NetworkError",
    "APIError",
    "RateLimitError",
    "AuthenticationError",
    # Webhook
    "WebhookError",
    "WebhookVerificationError",
    "MalformedPayloadError",
    "UnsupportedEventError",
    # Configuration
    "ConfigurationError",
    "InvalidConfigError",
    "MissingConfigError",
]
