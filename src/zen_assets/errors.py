"""Error taxonomy shared by the asset client and the template engine.

Every error carries a stable ``code`` that callers (and the CLI's JSON
output) can switch on, a human readable ``message`` and optional structured
``details``. Rate limit errors additionally carry ``retry_after_seconds``.
"""

from __future__ import annotations

from typing import Any


class AssetErrorCode:
    """Stable error codes surfaced by the asset layer."""

    ASSET_NOT_FOUND = "asset_not_found"
    AUTHENTICATION_FAILED = "authentication_failed"
    NETWORK_ERROR = "network_error"
    CACHE_ERROR = "cache_error"
    INTEGRITY_ERROR = "integrity_error"
    RATE_LIMITED = "rate_limited"
    REPOSITORY_ERROR = "repository_error"
    CONFIGURATION_ERROR = "configuration_error"


class TemplateErrorCode:
    """Stable error codes surfaced by the template engine."""

    TEMPLATE_NOT_FOUND = "template_not_found"
    COMPILATION_FAILED = "compilation_failed"
    RENDERING_FAILED = "rendering_failed"
    VALIDATION_FAILED = "validation_failed"
    VARIABLE_REQUIRED = "variable_required"
    VARIABLE_INVALID = "variable_invalid"
    ASSET_CLIENT_ERROR = "asset_client_error"
    CACHE_ERROR = "cache_error"
    CONFIGURATION_ERROR = "configuration_error"


class AssetClientError(RuntimeError):
    """Base class for every error raised by the asset layer."""

    default_code = AssetErrorCode.REPOSITORY_ERROR

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        details: Any = None,
        retry_after_seconds: int | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code or self.default_code
        self.message = message
        self.details = details
        self.retry_after_seconds = retry_after_seconds

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details is not None:
            payload["details"] = self.details
        if self.retry_after_seconds is not None:
            payload["retry_after_seconds"] = self.retry_after_seconds
        return payload


class AssetNotFoundError(AssetClientError):
    default_code = AssetErrorCode.ASSET_NOT_FOUND


class AuthenticationError(AssetClientError):
    default_code = AssetErrorCode.AUTHENTICATION_FAILED


class CredentialsNotFoundError(AuthenticationError):
    """No credential is configured for a provider.

    Callers treat this as a request to fall back to anonymous access.
    """


class RateLimitedError(AssetClientError):
    default_code = AssetErrorCode.RATE_LIMITED


class NetworkError(AssetClientError):
    default_code = AssetErrorCode.NETWORK_ERROR


class OperationCancelled(NetworkError):
    """The caller's cancellation scope was cancelled or timed out."""


class RepositoryError(AssetClientError):
    default_code = AssetErrorCode.REPOSITORY_ERROR


class CacheError(AssetClientError):
    default_code = AssetErrorCode.CACHE_ERROR


class IntegrityError(AssetClientError):
    default_code = AssetErrorCode.INTEGRITY_ERROR


class ConfigurationError(AssetClientError):
    default_code = AssetErrorCode.CONFIGURATION_ERROR


class TemplateEngineError(RuntimeError):
    """Raised by the template engine; ``code`` is a ``TemplateErrorCode``."""

    def __init__(self, code: str, message: str, details: Any = None) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details is not None:
            details = self.details
            if hasattr(details, "model_dump"):
                details = details.model_dump(mode="json")
            elif isinstance(details, BaseException):
                details = str(details)
            payload["details"] = details
        return payload
