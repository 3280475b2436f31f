"""Consolidated exception hierarchy for Social Connect.

All exceptions use proper exception chaining with the `from` keyword.
Error types use StrEnum for type safety and autocompletion.
"""

from enum import StrEnum
from typing import Any

from starlette import status


class ErrorType(StrEnum):
    """Error type codes for API responses."""

    INVALID_REQUEST = "invalid_request_error"
    INVALID_STATE = "invalid_state_error"
    PERMISSION = "permission_error"
    NOT_FOUND = "not_found_error"
    CONFLICT = "conflict_error"
    PROVIDER_REJECTED = "provider_rejected_error"
    PROVIDER_UNAVAILABLE = "provider_unavailable_error"
    DECRYPTION_FAILED = "decryption_failed_error"
    RECONNECT_REQUIRED = "reconnect_required_error"
    CONFIGURATION = "configuration_error"
    INTERNAL_SERVER = "internal_server_error"


# ============================================================================
# Base Exceptions
# ============================================================================


class SocialConnectError(Exception):
    """Base exception for all Social Connect errors.

    Supports HTTP status codes and structured error details so the HTTP
    adapter can render any subclass without special-casing it.
    """

    def __init__(
        self,
        message: str,
        *,
        error_type: ErrorType = ErrorType.INTERNAL_SERVER,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.error_type = error_type
        self.status_code = status_code
        self.details = details or {}


# ============================================================================
# Configuration Errors
# ============================================================================


class InvalidConfigurationError(SocialConnectError):
    """Provider or security configuration is missing or malformed."""

    def __init__(self, message: str = "Invalid configuration") -> None:
        super().__init__(
            message,
            error_type=ErrorType.CONFIGURATION,
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )


# ============================================================================
# OAuth Flow Errors
# ============================================================================


class InvalidRequestError(SocialConnectError):
    """Caller supplied malformed input (400)."""

    def __init__(self, message: str = "Invalid request") -> None:
        super().__init__(
            message,
            error_type=ErrorType.INVALID_REQUEST,
            status_code=status.HTTP_400_BAD_REQUEST,
        )


class InvalidStateError(SocialConnectError):
    """Callback state is missing, expired, or already consumed."""

    def __init__(
        self, message: str = "Connection failed or expired, please retry"
    ) -> None:
        super().__init__(
            message,
            error_type=ErrorType.INVALID_STATE,
            status_code=status.HTTP_400_BAD_REQUEST,
        )


class StateConflictError(SocialConnectError):
    """A state key that is already stored was written again."""

    def __init__(self, message: str = "OAuth state already exists") -> None:
        super().__init__(
            message,
            error_type=ErrorType.CONFLICT,
            status_code=status.HTTP_409_CONFLICT,
        )


class StateOwnershipError(SocialConnectError):
    """A pending authorization was inspected by a different user (403)."""

    def __init__(self, message: str = "State does not belong to current user") -> None:
        super().__init__(
            message,
            error_type=ErrorType.PERMISSION,
            status_code=status.HTTP_403_FORBIDDEN,
        )


class UnsupportedPlatformError(SocialConnectError):
    """Requested platform is not served by the configured provider."""

    def __init__(self, platform_id: int) -> None:
        super().__init__(
            f"Platform {platform_id} is not supported",
            error_type=ErrorType.INVALID_REQUEST,
            status_code=status.HTTP_400_BAD_REQUEST,
            details={"platform_id": platform_id},
        )


# ============================================================================
# Provider Errors
# ============================================================================


class ProviderError(SocialConnectError):
    """Base exception for failures talking to the OAuth provider."""

    def __init__(
        self,
        message: str,
        *,
        error_type: ErrorType,
        status_code: int,
        provider_status: int | None = None,
        response_text: str | None = None,
    ) -> None:
        super().__init__(
            message,
            error_type=error_type,
            status_code=status_code,
            details={"provider_status": provider_status} if provider_status else None,
        )
        self.provider_status = provider_status
        self.response_text = response_text


class ProviderRejectedError(ProviderError):
    """Provider returned a definitive 4xx. Never retried automatically."""

    def __init__(
        self,
        message: str = "Provider rejected the request",
        *,
        provider_status: int | None = None,
        response_text: str | None = None,
    ) -> None:
        super().__init__(
            message,
            error_type=ErrorType.PROVIDER_REJECTED,
            status_code=status.HTTP_400_BAD_REQUEST,
            provider_status=provider_status,
            response_text=response_text,
        )


class ProviderUnavailableError(ProviderError):
    """Network failure, timeout or provider 5xx. Retryable when idempotent."""

    def __init__(
        self,
        message: str = "Provider temporarily unavailable",
        *,
        provider_status: int | None = None,
        response_text: str | None = None,
    ) -> None:
        super().__init__(
            message,
            error_type=ErrorType.PROVIDER_UNAVAILABLE,
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            provider_status=provider_status,
            response_text=response_text,
        )


class StateStoreUnavailableError(ProviderUnavailableError):
    """The pending-state key/value store could not be reached in time."""

    def __init__(self, message: str = "Could not start connection, try again") -> None:
        super().__init__(message)


class AccountStoreUnavailableError(ProviderUnavailableError):
    """The account database failed or did not answer in time."""

    def __init__(self, message: str = "Account storage is temporarily unavailable") -> None:
        super().__init__(message)


# ============================================================================
# Account Errors
# ============================================================================


class DecryptionFailedError(SocialConnectError):
    """Stored ciphertext could not be authenticated or decrypted."""

    def __init__(self, message: str = "Stored token could not be decrypted") -> None:
        super().__init__(
            message,
            error_type=ErrorType.DECRYPTION_FAILED,
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )


class AccountNotFoundError(SocialConnectError):
    """Social account not found (404)."""

    def __init__(self, account_id: str) -> None:
        super().__init__(
            f"Social account {account_id} not found",
            error_type=ErrorType.NOT_FOUND,
            status_code=status.HTTP_404_NOT_FOUND,
        )
        self.account_id = account_id


class ReconnectRequiredError(SocialConnectError):
    """Account can no longer obtain tokens without a fresh connect flow."""

    def __init__(
        self,
        account_id: str,
        connection_status: str,
        message: str = "Reconnect your account to continue",
    ) -> None:
        super().__init__(
            message,
            error_type=ErrorType.RECONNECT_REQUIRED,
            status_code=status.HTTP_409_CONFLICT,
            details={"account_id": account_id, "connection_status": connection_status},
        )
        self.account_id = account_id
        self.connection_status = connection_status


__all__ = [
    "AccountNotFoundError",
    "AccountStoreUnavailableError",
    "DecryptionFailedError",
    "ErrorType",
    "InvalidConfigurationError",
    "InvalidRequestError",
    "InvalidStateError",
    "ProviderError",
    "ProviderRejectedError",
    "ProviderUnavailableError",
    "ReconnectRequiredError",
    "SocialConnectError",
    "StateConflictError",
    "StateOwnershipError",
    "StateStoreUnavailableError",
    "UnsupportedPlatformError",
]
