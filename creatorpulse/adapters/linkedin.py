"""LinkedIn REST (versioned) adapter."""

import logging
from datetime import datetime, timezone
from urllib.parse import quote

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

TOKEN_URL = "https://www.linkedin.com/oauth/v2/accessToken"
POSTS_URL = "https://api.linkedin.com/rest/posts"
IMAGES_URL = "https://api.linkedin.com/rest/images"
POST_ANALYTICS_URL = "https://api.linkedin.com/rest/memberCreatorPostAnalytics"
FOLLOWERS_URL = "https://api.linkedin.com/rest/memberFollowersCount"
API_VERSION = "202601"

# One API call per metric type
POST_METRIC_TYPES = ("IMPRESSION", "MEMBERS_REACHED", "REACTION", "COMMENT", "RESHARE")


def _version_headers() -> dict[str, str]:
    return {"LinkedIn-Version": API_VERSION, "X-Restli-Protocol-Version": "2.0.0"}


def _person_urn(author_id: str | None) -> str:
    if not author_id:
        raise AdapterError(Platform.LINKEDIN, "LinkedIn requests need the member id of the author")
    return author_id if author_id.startswith("urn:") else f"urn:li:person:{author_id}"


class LinkedInAdapter(PlatformAdapter):
    platform = Platform.LINKEDIN

    async def publish(self, access_token: str, payload: PostPayload) -> PlatformPostResult:
        body: dict = {
            "author": _person_urn(payload.author_id),
            "commentary": payload.text,
            "visibility": "PUBLIC",
            "distribution": {
                "feedDistribution": "MAIN_FEED",
                "targetEntities": [],
                "thirdPartyDistributionChannels": [],
            },
            "lifecycleState": "PUBLISHED",
        }
        if len(payload.media_ids) == 1:
            body["content"] = {"media": {"id": payload.media_ids[0]}}
        elif payload.media_ids:
            body["content"] = {"multiImage": {"images": [{"id": m} for m in payload.media_ids]}}

        resp = await self._request(
            "POST", POSTS_URL, access_token=access_token, headers=_version_headers(), json=body
        )
        post_urn = resp.headers.get("x-restli-id")
        if not post_urn:
            raise AdapterError(self.platform, "Publish response did not include x-restli-id")

        return PlatformPostResult(
            platform_post_id=post_urn,
            platform_url=f"https://www.linkedin.com/feed/update/{post_urn}",
            published_at=datetime.now(timezone.utc),
        )

    async def upload_media(
        self,
        access_token: str,
        data: bytes,
        mime_type: str,
        author_id: str | None = None,
    ) -> str:
        init = await self._request(
            "POST",
            f"{IMAGES_URL}?action=initializeUpload",
            access_token=access_token,
            headers=_version_headers(),
            json={"initializeUploadRequest": {"owner": _person_urn(author_id)}},
        )
        value = init.json().get("value", {})
        upload_url, image_urn = value.get("uploadUrl"), value.get("image")
        if not upload_url or not image_urn:
            raise AdapterError(self.platform, "Image upload init returned no upload URL")

        await self._request(
            "PUT",
            upload_url,
            access_token=access_token,
            headers={"Content-Type": mime_type},
            content=data,
        )
        return image_urn

    async def refresh_tokens(self, refresh_token: str) -> TokenPair:
        try:
            resp = await self._request(
                "POST",
                TOKEN_URL,
                data={
                    "grant_type": "refresh_token",
                    "refresh_token": refresh_token,
                    "client_id": settings.linkedin_client_id,
                    "client_secret": settings.linkedin_client_secret,
                },
            )
        except AdapterError as exc:
            if exc.status_code in (400, 401):
                raise CredentialError(self.platform, f"Token refresh rejected: {exc}") from exc
            raise
        return token_pair_from_response(resp.json())

    @read_retry
    async def fetch_metrics(self, access_token: str, platform_post_id: str) -> RawMetrics:
        encoded = quote(platform_post_id, safe="")
        counts: dict[str, int] = {}
        for metric_type in POST_METRIC_TYPES:
            resp = await self._request(
                "GET",
                f"{POST_ANALYTICS_URL}?q=entity&entity=(share:{encoded})"
                f"&queryType={metric_type}&aggregation=TOTAL",
                access_token=access_token,
                headers=_version_headers(),
            )
            elements = resp.json().get("elements") or [{}]
            counts[metric_type] = int(elements[0].get("count", 0))

        return RawMetrics(
            impressions=counts["IMPRESSION"],
            unique_reach=counts["MEMBERS_REACHED"],
            likes=counts["REACTION"],
            replies=counts["COMMENT"],
            reposts=counts["RESHARE"],
            api_calls_used=len(POST_METRIC_TYPES),
        )

    @read_retry
    async def fetch_follower_count(self, access_token: str, platform_user_id: str) -> int:
        resp = await self._request(
            "GET", f"{FOLLOWERS_URL}?q=me", access_token=access_token, headers=_version_headers()
        )
        elements = resp.json().get("elements") or [{}]
        return int(elements[0].get("memberFollowersCount", 0))
