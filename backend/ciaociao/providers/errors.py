from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import httpx


@dataclass(frozen=True)
class ErrorClassification:
    error_code: str
    reason_code: str
    severity: str
    status_code: int | None = None


class ProviderError(Exception):
    def __init__(
        self,
        message: str,
        *,
        error_code: str,
        reason_code: str,
        severity: str,
        upstream_payload: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.error_code = error_code
        self.reason_code = reason_code
        self.severity = severity
        self.upstream_payload = upstream_payload


class ProviderTimeoutError(ProviderError):
    def __init__(self, message: str = "Provider request timed out.", *, upstream_payload: dict[str, Any] | None = None) -> None:
        super().__init__(
            message,
            error_code="provider_timeout",
            reason_code="timeout",
            severity="error",
            upstream_payload=upstream_payload,
        )


class ProviderConnectionError(ProviderError):
    def __init__(self, message: str = "Provider connection failed.", *, upstream_payload: dict[str, Any] | None = None) -> None:
        super().__init__(
            message,
            error_code="provider_connection",
            reason_code="connection_error",
            severity="error",
            upstream_payload=upstream_payload,
        )


class ProviderHttpStatusError(ProviderError):
    def __init__(
        self,
        status_code: int,
        message: str | None = None,
        *,
        upstream_payload: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            message or f"Provider responded with HTTP {status_code}.",
            error_code="provider_http_status",
            reason_code="rate_limited" if status_code == 429 else "http_status",
            severity="warning" if status_code == 429 else "error",
            upstream_payload=upstream_payload,
        )
        self.status_code = status_code


class ProviderAuthError(ProviderError):
    def __init__(self, message: str = "Provider authentication failed.", *, upstream_payload: dict[str, Any] | None = None) -> None:
        super().__init__(
            message,
            error_code="provider_auth",
            reason_code="auth_failed",
            severity="critical",
            upstream_payload=upstream_payload,
        )


class ProviderResponseFormatError(ProviderError):
    def __init__(self, message: str = "Provider response format is invalid.", *, upstream_payload: dict[str, Any] | None = None) -> None:
        super().__init__(
            message,
            error_code="provider_response_invalid",
            reason_code="response_invalid",
            severity="error",
            upstream_payload=upstream_payload,
        )


class ProviderCircuitOpenError(ProviderError):
    def __init__(self, message: str = "Provider circuit breaker is open.", *, upstream_payload: dict[str, Any] | None = None) -> None:
        super().__init__(
            message,
            error_code="provider_circuit_open",
            reason_code="circuit_open",
            severity="warning",
            upstream_payload=upstream_payload,
        )


class ProviderQuotaExceededError(ProviderError):
    def __init__(self, message: str = "Provider quota exhausted.", *, upstream_payload: dict[str, Any] | None = None) -> None:
        super().__init__(
            message,
            error_code="provider_quota_exhausted",
            reason_code="quota_exhausted",
            severity="warning",
            upstream_payload=upstream_payload,
        )


def classification_from_exception(exc: Exception) -> ErrorClassification:
    if isinstance(exc, ProviderError):
        return ErrorClassification(
            error_code=exc.error_code,
            reason_code=exc.reason_code,
            severity=exc.severity,
            status_code=getattr(exc, "status_code", None),
        )
    if isinstance(exc, TimeoutError | httpx.TimeoutException):
        return ErrorClassification("provider_timeout", "timeout", "error")
    if isinstance(exc, ConnectionError | httpx.ConnectError):
        return ErrorClassification("provider_connection", "connection_error", "error")
    if isinstance(exc, httpx.HTTPStatusError):
        status_code = exc.response.status_code if exc.response is not None else 0
        if status_code in {401, 403}:
            return ErrorClassification("provider_auth", "auth_failed", "critical", status_code)
        if status_code == 429:
            return ErrorClassification("provider_http_status", "rate_limited", "warning", status_code)
        return ErrorClassification("provider_http_status", "http_status", "error", status_code)
    if isinstance(exc, httpx.HTTPError):
        return ErrorClassification("provider_connection", "connection_error", "error")
    if isinstance(exc, ValueError | KeyError | TypeError | ArithmeticError):
        return ErrorClassification("provider_response_invalid", "response_invalid", "error")
    return ErrorClassification("provider_internal_error", "internal_error", "critical")


def classify_provider_error(exc: Exception) -> ProviderError:
    if isinstance(exc, ProviderError):
        return exc
    classification = classification_from_exception(exc)
    message = str(exc) or classification.reason_code
    if classification.error_code == "provider_timeout":
        return ProviderTimeoutError(message)
    if classification.error_code == "provider_connection":
        return ProviderConnectionError(message)
    if classification.error_code == "provider_auth":
        return ProviderAuthError(message)
    if classification.error_code == "provider_http_status" and classification.status_code is not None:
        return ProviderHttpStatusError(classification.status_code, message)
    if classification.error_code == "provider_response_invalid":
        return ProviderResponseFormatError(message)
    return ProviderError(
        message,
        error_code=classification.error_code,
        reason_code=classification.reason_code,
        severity=classification.severity,
    )
