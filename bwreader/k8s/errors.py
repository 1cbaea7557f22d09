"""Backend error types raised by the Kubernetes store adapters.

The adapters translate ``kubernetes.client.ApiException`` and transport
failures into these so that callers never depend on client internals.
"""

from __future__ import annotations

import json

from kubernetes.client.exceptions import ApiException


class StoreError(Exception):
    """A backend call failed.

    Attributes:
        status:  HTTP status code, or None for transport-level failures.
        reason:  Kubernetes ``Status.reason`` or the HTTP reason phrase.
        message: Human-readable message, preferring ``Status.message``.
    """

    def __init__(self, message: str, status: int | None = None, reason: str = "") -> None:
        super().__init__(message)
        self.message = message
        self.status = status
        self.reason = reason

    def __str__(self) -> str:
        if self.status is None:
            return self.message
        return f"{self.message} (status {self.status})"


class NotFoundError(StoreError):
    """The requested object does not exist (HTTP 404)."""


def from_api_exception(exc: ApiException) -> StoreError:
    """Translate an ApiException, extracting the Status message from its body."""
    status = exc.status or None
    reason = exc.reason or ""
    message = reason or "Kubernetes API error"
    if exc.body:
        try:
            body = json.loads(exc.body)
        except (TypeError, ValueError):
            body = None
        if isinstance(body, dict):
            message = str(body.get("message") or message)
            reason = str(body.get("reason") or reason)
    if status == 404:
        return NotFoundError(message, status=status, reason=reason)
    return StoreError(message, status=status, reason=reason)
