from __future__ import annotations

from enum import Enum
from typing import Optional


class SyncErrorKind(str, Enum):
    NOT_CONNECTED = "not_connected"
    TRANSIENT = "transient"
    PROVIDER = "provider"
    INVALID_RESPONSE = "invalid_response"
    INTERNAL = "internal"


class SyncError(Exception):
    """Base error carrying a discriminated kind, raised where the failure happens."""

    kind: SyncErrorKind = SyncErrorKind.INTERNAL

    def __init__(self, message: str, kind: Optional[SyncErrorKind] = None) -> None:
        super().__init__(message)
        self.message = message
        if kind is not None:
            self.kind = kind


class NotConnectedError(SyncError):
    """The owner has no usable credential for the provider."""

    kind = SyncErrorKind.NOT_CONNECTED


class ProviderRequestError(SyncError):
    """An outbound provider call failed for good (after any retries)."""

    def __init__(
        self,
        message: str,
        kind: SyncErrorKind = SyncErrorKind.PROVIDER,
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(message, kind)
        self.status_code = status_code


class CredentialError(SyncError):
    """A credential is stored but cannot be decrypted (encryption key changed)."""

    kind = SyncErrorKind.INTERNAL


class WebhookVerificationError(Exception):
    """Webhook rejected at the gateway boundary."""

    def __init__(self, message: str, status_code: int = 400) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
