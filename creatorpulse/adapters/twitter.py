"""X / Twitter API v2 adapter."""

import logging
from datetime import datetime, timezone

import httpx

from creatorpulse.adapters.base import PlatformAdapter, read_retry, token_pair_from_response
from creatorpulse.adapters.types import (
    Platform,
    PlatformPostResult,
    PostPayload,
    RawMetrics,
    TokenPair,
)
from creatorpulse.core.config import settings
from creatorpulse.core.exceptions import AdapterError, CredentialError

logger = logging.getLogger(__name__)

API_BASE = "https://api.x.com/2"
TOKEN_URL = "https://api.x.com/2/oauth2/token"
MEDIA_UPLOAD_URL = "https://api.x.com/2/media/upload"


class TwitterAdapter(PlatformAdapter):
    platform = Platform.TWITTER

    async def publish(self, access_token: str, payload: PostPayload) -> PlatformPostResult:
        body: dict = {"text": payload.text}
        if payload.media_ids:
            body["media"] = {"media_ids": payload.media_ids}

        resp = await self._request("POST", f"{API_BASE}/tweets", access_token=access_token, json=body)
        tweet_id = resp.json().get("data", {}).get("id")
        if not tweet_id:
            raise AdapterError(self.platform, "Publish response did not include a tweet id")

        return PlatformPostResult(
            platform_post_id=tweet_id,
            platform_url=f"https://x.com/i/web/status/{tweet_id}",
            published_at=datetime.now(timezone.utc),
        )

    async def upload_media(
        self,
        access_token: str,
        data: bytes,
        mime_type: str,
        author_id: str | None = None,
    ) -> str:
        category = "tweet_gif" if mime_type == "image/gif" else "tweet_image"
        resp = await self._request(
            "POST",
            MEDIA_UPLOAD_URL,
            access_token=access_token,
            files={"media": ("upload", data, mime_type)},
            data={"media_category": category},
        )
        media_id = resp.json().get("data", {}).get("id")
        if not media_id:
            raise AdapterError(self.platform, "Media upload response did not include a media id")
        return str(media_id)

    async def refresh_tokens(self, refresh_token: str) -> TokenPair:
        try:
            resp = await self._request(
                "POST",
                TOKEN_URL,
                data={
                    "grant_type": "refresh_token",
                    "refresh_token": refresh_token,
                    "client_id": settings.twitter_client_id,
                },
                auth=httpx.BasicAuth(settings.twitter_client_id, settings.twitter_client_secret),
            )
        except AdapterError as exc:
            if exc.status_code in (400, 401):
                raise CredentialError(self.platform, f"Token refresh rejected: {exc}") from exc
            raise
        return token_pair_from_response(resp.json())

    @read_retry
    async def fetch_metrics(self, access_token: str, platform_post_id: str) -> RawMetrics:
        resp = await self._request(
            "GET",
            f"{API_BASE}/tweets/{platform_post_id}",
            access_token=access_token,
            params={"tweet.fields": "public_metrics,non_public_metrics"},
        )
        data = resp.json().get("data", {})
        public = data.get("public_metrics", {})
        private = data.get("non_public_metrics", {})
        return RawMetrics(
            impressions=public.get("impression_count"),
            likes=public.get("like_count"),
            replies=public.get("reply_count"),
            reposts=public.get("retweet_count"),
            quotes=public.get("quote_count"),
            bookmarks=public.get("bookmark_count"),
            clicks=private.get("url_link_clicks"),
            profile_visits=private.get("user_profile_clicks"),
        )

    @read_retry
    async def fetch_follower_count(self, access_token: str, platform_user_id: str) -> int:
        resp = await self._request(
            "GET",
            f"{API_BASE}/users/{platform_user_id}",
            access_token=access_token,
            params={"user.fields": "public_metrics"},
        )
        return int(resp.json().get("data", {}).get("public_metrics", {}).get("followers_count", 0))
