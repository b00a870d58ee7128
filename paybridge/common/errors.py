"""Error taxonomy shared by the credential cache, gateway client, store and coordinator."""

from typing import Any


class PayBridgeError(Exception):
    """Base error with a caller-safe message and optional upstream details."""

    def __init__(self, message: str, details: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_payload(self) -> dict[str, Any]:
        """JSON failure shape returned by API-facing flows."""

        payload: dict[str, Any] = {"success": False, "message": self.message}
        if self.details is not None:
            payload["details"] = self.details
        return payload


class ConfigurationError(PayBridgeError):
    """Required gateway secrets are missing."""


class AuthError(PayBridgeError):
    """Token exchange failed or exhausted its retries."""


class ValidationError(PayBridgeError):
    """Caller input was rejected before any gateway call."""


class GatewayError(PayBridgeError):
    """Gateway answered non-2xx, or could not be reached in time."""

    def __init__(self, message: str, status: int | None = None, body: Any = None) -> None:
        super().__init__(message, details=body)
        self.status = status
        self.body = body


class ProtocolError(PayBridgeError):
    """Gateway answered 2xx with a body missing required fields."""


class StoreError(PayBridgeError):
    """Persistence layer failure."""


class NotFoundError(StoreError):
    """No payment record exists for the requested order id."""


class DuplicateKeyError(StoreError):
    """A payment record with this order id already exists."""


class InvalidTransitionError(PayBridgeError):
    """A status change is not allowed by the transition policy."""
