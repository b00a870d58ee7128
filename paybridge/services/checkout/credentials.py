"""OAuth credential cache for gateway calls.

Holds one client-credentials access token per process, refreshes it when it is
within the safety margin of expiry, and retries rejected exchanges with
exponential backoff. The read-check-refresh sequence is guarded by an
`asyncio.Lock` so concurrent callers that all see an expiring token collapse
into a single token exchange.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

import httpx

from paybridge.common.config import CommonSettings, settings
from paybridge.common.errors import AuthError, ConfigurationError
from paybridge.common.logging import logger, mask
from paybridge.common.metrics import retries_total, token_refresh_total


@dataclass(frozen=True)
class Credential:
    access_token: str
    expiry_epoch_seconds: int

    def usable_at(self, now: float, safety_margin_seconds: int) -> bool:
        return self.expiry_epoch_seconds - safety_margin_seconds > now


class _Unauthorized(Exception):
    """Internal signal: the identity endpoint answered 401."""

    def __init__(self, detail: Any) -> None:
        super().__init__(str(detail))
        self.detail = detail


def _error_detail(resp: httpx.Response) -> Any:
    try:
        body = resp.json()
    except ValueError:
        return resp.text
    if isinstance(body, dict) and body.get("message"):
        return body["message"]
    return body


class CredentialCache:
    """Process-wide holder of the gateway access token."""

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        client_version: str,
        identity_url: str,
        timeout: float = 10.0,
        safety_margin_seconds: int = 300,
        max_retries: int = 3,
        retry_base_delay_seconds: float = 1.0,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        service_name: str = settings.service_name,
    ) -> None:
        self.client_id = client_id
        self.client_secret = client_secret
        self.client_version = client_version or "1"
        self.identity_url = identity_url.rstrip("/")
        self.timeout = timeout
        self.safety_margin_seconds = safety_margin_seconds
        self.max_retries = max_retries
        self.retry_base_delay_seconds = retry_base_delay_seconds
        self.service_name = service_name
        self.retry_count = 0
        self._transport = transport
        self._clock = clock
        self._sleep = sleep
        self._credential: Credential | None = None
        self._generation = 0
        self._lock = asyncio.Lock()

    @classmethod
    def from_settings(cls, cfg: CommonSettings = settings, **overrides: Any) -> "CredentialCache":
        kwargs: dict[str, Any] = {
            "client_id": cfg.phonepe_client_id,
            "client_secret": cfg.phonepe_client_secret,
            "client_version": cfg.phonepe_client_version,
            "identity_url": cfg.phonepe_identity_url,
            "timeout": cfg.http_timeout_seconds,
            "safety_margin_seconds": cfg.token_safety_margin_seconds,
            "max_retries": cfg.token_max_retries,
            "retry_base_delay_seconds": cfg.token_retry_base_delay_seconds,
            "service_name": cfg.service_name,
        }
        kwargs.update(overrides)
        return cls(**kwargs)

    @property
    def credential(self) -> Credential | None:
        return self._credential

    def _cached_token(self) -> str | None:
        credential = self._credential
        if credential and credential.usable_at(self._clock(), self.safety_margin_seconds):
            return credential.access_token
        return None

    async def get_token(self, force_refresh: bool = False) -> str:
        """Return a usable access token, exchanging credentials only when needed."""

        if not force_refresh:
            token = self._cached_token()
            if token:
                logger.debug("using cached token expiry=%s", self._credential.expiry_epoch_seconds)
                return token

        seen_generation = self._generation
        async with self._lock:
            # Another caller refreshed while this one waited on the lock.
            if self._generation != seen_generation or not force_refresh:
                token = self._cached_token()
                if token:
                    return token
            return await self._refresh_with_retry()

    async def _refresh_with_retry(self) -> str:
        attempt = 0
        while True:
            try:
                token = await self._exchange()
            except _Unauthorized as exc:
                if attempt >= self.max_retries:
                    token_refresh_total.labels(service=self.service_name, outcome="exhausted").inc()
                    raise AuthError(f"Failed to obtain auth token: {exc.detail}", details=exc.detail) from exc
                attempt += 1
                self.retry_count = attempt
                delay = self.retry_base_delay_seconds * (2 ** (attempt - 1))
                retries_total.labels(service=self.service_name, dependency="identity").inc()
                logger.warning("token rejected attempt=%s backoff_s=%s", attempt, delay)
                await self._sleep(delay)
                continue
            self.retry_count = 0
            return token

    async def _exchange(self) -> str:
        if not self.client_id or not self.client_secret:
            raise ConfigurationError("Gateway API credentials are missing. Check PHONEPE_CLIENT_ID/PHONEPE_CLIENT_SECRET.")

        url = f"{self.identity_url}/v1/oauth/token"
        logger.info("requesting auth token url=%s client_id=%s", url, mask(self.client_id))
        form = {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "client_version": self.client_version,
            "grant_type": "client_credentials",
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.post(url, data=form)
        except httpx.HTTPError as exc:
            token_refresh_total.labels(service=self.service_name, outcome="error").inc()
            raise AuthError(f"Failed to obtain auth token: {exc}") from exc

        if resp.status_code == 401:
            token_refresh_total.labels(service=self.service_name, outcome="unauthorized").inc()
            raise _Unauthorized(_error_detail(resp))
        if resp.status_code >= 400:
            token_refresh_total.labels(service=self.service_name, outcome="error").inc()
            detail = _error_detail(resp)
            raise AuthError(f"Failed to obtain auth token: {detail}", details=detail)

        try:
            body = resp.json()
        except ValueError as exc:
            token_refresh_total.labels(service=self.service_name, outcome="error").inc()
            raise AuthError("Invalid response from authentication server: body is not JSON") from exc
        if not isinstance(body, dict) or not body.get("access_token"):
            token_refresh_total.labels(service=self.service_name, outcome="error").inc()
            raise AuthError("Invalid response from authentication server: Missing access token")

        credential = Credential(
            access_token=body["access_token"],
            expiry_epoch_seconds=int(body.get("expires_at") or 0),
        )
        self._credential = credential
        self._generation += 1
        token_refresh_total.labels(service=self.service_name, outcome="success").inc()
        logger.info("obtained auth token expiry=%s", credential.expiry_epoch_seconds)
        return credential.access_token
