"""Platform adapter interface and shared HTTP plumbing."""

import logging
from datetime import datetime, timedelta, timezone
from abc import ABC, abstractmethod
from typing import Any

import httpx
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

from creatorpulse.adapters.types import (
    Platform,
    PlatformPostResult,
    PostPayload,
    RawMetrics,
    TokenPair,
)
from creatorpulse.core.config import settings
from creatorpulse.core.exceptions import AdapterError

logger = logging.getLogger(__name__)


class PlatformAdapter(ABC):
    """One implementation per external platform.

    Adapters make a single attempt for writes (publish, upload). Idempotent
    reads may retry internally.
    """

    platform: Platform

    @abstractmethod
    async def publish(self, access_token: str, payload: PostPayload) -> PlatformPostResult: ...

    @abstractmethod
    async def upload_media(
        self,
        access_token: str,
        data: bytes,
        mime_type: str,
        author_id: str | None = None,
    ) -> str: ...

    async def release_media(self) -> None:
        """Drop any temporary copies made by ``upload_media``. Called after publish."""

    @abstractmethod
    async def refresh_tokens(self, refresh_token: str) -> TokenPair:
        """Raises CredentialError when the refresh token is revoked or invalid."""

    @abstractmethod
    async def fetch_metrics(self, access_token: str, platform_post_id: str) -> RawMetrics: ...

    @abstractmethod
    async def fetch_follower_count(self, access_token: str, platform_user_id: str) -> int: ...

    # ------------------------------------------------------------------
    # HTTP helpers
    # ------------------------------------------------------------------

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=settings.http_timeout_seconds)

    async def _request(
        self,
        method: str,
        url: str,
        *,
        access_token: str | None = None,
        headers: dict[str, str] | None = None,
        **kwargs: Any,
    ) -> httpx.Response:
        """Send a request and turn transport or HTTP errors into AdapterError."""
        all_headers = dict(headers or {})
        if access_token:
            all_headers["Authorization"] = f"Bearer {access_token}"
        try:
            async with self._client() as client:
                resp = await client.request(method, url, headers=all_headers, **kwargs)
        except httpx.HTTPError as exc:
            logger.error("%s %s %s failed: %s", self.platform, method, url, exc)
            raise AdapterError(self.platform, f"{self.platform} request failed: {exc}") from exc

        if resp.status_code >= 400:
            detail = _error_detail(resp)
            logger.error("%s API error %d on %s: %s", self.platform, resp.status_code, url, detail)
            raise AdapterError(
                self.platform,
                f"{self.platform} API error ({resp.status_code}): {detail}",
                status_code=resp.status_code,
            )
        return resp


def _error_detail(resp: httpx.Response) -> str:
    try:
        data = resp.json()
    except ValueError:
        return resp.reason_phrase or resp.text[:200]
    if isinstance(data, dict):
        for key in ("detail", "message", "error_description", "title"):
            if data.get(key):
                return str(data[key])
        error = data.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if error:
            return str(error)
    return resp.reason_phrase or "Unknown error"


def _is_transient(exc: BaseException) -> bool:
    """Network failures, 5xx and 429 are worth another attempt; 4xx are not."""
    if not isinstance(exc, AdapterError):
        return False
    return exc.status_code is None or exc.status_code == 429 or exc.status_code >= 500


# Applied to idempotent reads only (metrics, follower counts)
read_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception(_is_transient),
    reraise=True,
)


def token_pair_from_response(data: dict) -> TokenPair:
    """Build a TokenPair from a standard OAuth2 token response body."""
    expires_in = data.get("expires_in")
    return TokenPair(
        access_token=data["access_token"],
        refresh_token=data.get("refresh_token"),
        expires_at=(
            datetime.now(timezone.utc) + timedelta(seconds=int(expires_in)) if expires_in else None
        ),
    )
