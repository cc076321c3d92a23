"""Threads Graph API adapter.

Threads only accepts media by public URL, so ``upload_media`` stages the
bytes in our bucket and returns a short-lived signed URL as the media handle.
The staged copies are removed by ``release_media`` once the post is out.
"""

import logging
from datetime import datetime, timezone

from creatorpulse.adapters.base import PlatformAdapter, read_retry, token_pair_from_response
from creatorpulse.adapters.types import (
    Platform,
    PlatformPostResult,
    PostPayload,
    RawMetrics,
    TokenPair,
)
from creatorpulse.core.exceptions import AdapterError, CredentialError
from creatorpulse.services import media

logger = logging.getLogger(__name__)

GRAPH_BASE = "https://graph.threads.net/v1.0"
REFRESH_URL = "https://graph.threads.net/refresh_access_token"
POST_METRICS = "views,likes,replies,reposts,quotes"
STAGING_PREFIX = "threads-staging"


class ThreadsAdapter(PlatformAdapter):
    platform = Platform.THREADS

    def __init__(self) -> None:
        self._staged_keys: list[str] = []

    async def _create_container(self, access_token: str, user_id: str, params: dict) -> str:
        resp = await self._request(
            "POST", f"{GRAPH_BASE}/{user_id}/threads", access_token=access_token, params=params
        )
        container_id = resp.json().get("id")
        if not container_id:
            raise AdapterError(self.platform, "Container creation returned no id")
        return container_id

    async def publish(self, access_token: str, payload: PostPayload) -> PlatformPostResult:
        if not payload.author_id:
            raise AdapterError(self.platform, "Threads publishing needs the author's user id")
        user_id = payload.author_id

        if not payload.media_ids:
            creation_id = await self._create_container(
                access_token, user_id, {"media_type": "TEXT", "text": payload.text}
            )
        elif len(payload.media_ids) == 1:
            creation_id = await self._create_container(
                access_token,
                user_id,
                {"media_type": "IMAGE", "image_url": payload.media_ids[0], "text": payload.text},
            )
        else:
            children = [
                await self._create_container(
                    access_token,
                    user_id,
                    {"media_type": "IMAGE", "image_url": url, "is_carousel_item": "true"},
                )
                for url in payload.media_ids
            ]
            creation_id = await self._create_container(
                access_token,
                user_id,
                {"media_type": "CAROUSEL", "children": ",".join(children), "text": payload.text},
            )

        resp = await self._request(
            "POST",
            f"{GRAPH_BASE}/{user_id}/threads_publish",
            access_token=access_token,
            params={"creation_id": creation_id},
        )
        media_id = resp.json().get("id")
        if not media_id:
            raise AdapterError(self.platform, "Publish response did not include a media id")

        permalink = await self._permalink(access_token, media_id)
        return PlatformPostResult(
            platform_post_id=media_id,
            platform_url=permalink or f"https://www.threads.net/post/{media_id}",
            published_at=datetime.now(timezone.utc),
        )

    async def _permalink(self, access_token: str, media_id: str) -> str | None:
        try:
            resp = await self._request(
                "GET",
                f"{GRAPH_BASE}/{media_id}",
                access_token=access_token,
                params={"fields": "permalink"},
            )
        except AdapterError:
            logger.warning("Could not resolve permalink for Threads post %s", media_id)
            return None
        return resp.json().get("permalink")

    async def upload_media(
        self,
        access_token: str,
        data: bytes,
        mime_type: str,
        author_id: str | None = None,
    ) -> str:
        extension = mime_type.split("/")[-1].replace("jpeg", "jpg")
        key = await media.upload_image(STAGING_PREFIX, data, extension, mime_type)
        self._staged_keys.append(key)
        return await media.signed_url(key)

    async def release_media(self) -> None:
        if not self._staged_keys:
            return
        keys, self._staged_keys = self._staged_keys, []
        deleted = await media.cleanup_media(keys)
        logger.info("Removed %d/%d staged Threads media objects", deleted, len(keys))

    async def refresh_tokens(self, refresh_token: str) -> TokenPair:
        # Threads long-lived tokens refresh themselves; the "refresh token" is the current token
        try:
            resp = await self._request(
                "GET",
                REFRESH_URL,
                params={"grant_type": "th_refresh_token", "access_token": refresh_token},
            )
        except AdapterError as exc:
            if exc.status_code in (400, 401):
                raise CredentialError(self.platform, f"Token refresh rejected: {exc}") from exc
            raise
        tokens = token_pair_from_response(resp.json())
        return TokenPair(
            access_token=tokens.access_token,
            refresh_token=tokens.access_token,
            expires_at=tokens.expires_at,
        )

    @read_retry
    async def fetch_metrics(self, access_token: str, platform_post_id: str) -> RawMetrics:
        resp = await self._request(
            "GET",
            f"{GRAPH_BASE}/{platform_post_id}/insights",
            access_token=access_token,
            params={"metric": POST_METRICS},
        )
        values = {
            item.get("name"): (item.get("values") or [{}])[0].get("value")
            for item in resp.json().get("data", [])
        }
        return RawMetrics(
            impressions=values.get("views"),
            likes=values.get("likes"),
            replies=values.get("replies"),
            reposts=values.get("reposts"),
            quotes=values.get("quotes"),
        )

    @read_retry
    async def fetch_follower_count(self, access_token: str, platform_user_id: str) -> int:
        resp = await self._request(
            "GET",
            f"{GRAPH_BASE}/{platform_user_id}/threads_insights",
            access_token=access_token,
            params={"metric": "followers_count"},
        )
        data = resp.json().get("data") or [{}]
        return int(data[0].get("total_value", {}).get("value", 0))
