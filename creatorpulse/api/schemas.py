from datetime import date, datetime, timezone

from pydantic import BaseModel, Field, field_validator

from creatorpulse.adapters.types import Platform

# ---------------------------------------------------------------------------
# Posts
# ---------------------------------------------------------------------------


class PostCreate(BaseModel):
    body: str = Field(min_length=1)
    platforms: list[Platform] = Field(min_length=1)
    tags: list[str] = []
    media_paths: list[str] = []
    intent: str | None = None
    content_type: str | None = None


class PostUpdate(BaseModel):
    body: str | None = Field(default=None, min_length=1)
    platforms: list[Platform] | None = None
    tags: list[str] | None = None
    media_paths: list[str] | None = None


class SchedulePostRequest(BaseModel):
    scheduled_at: datetime

    @field_validator("scheduled_at")
    @classmethod
    def _assume_utc(cls, v: datetime) -> datetime:
        return v if v.tzinfo else v.replace(tzinfo=timezone.utc)


class PublicationResponse(BaseModel):
    id: int
    platform: str
    status: str
    platform_post_id: str | None
    platform_url: str | None
    published_at: datetime | None
    error_message: str | None

    model_config = {"from_attributes": True}


class PostResponse(BaseModel):
    id: int
    body: str
    tags: list[str]
    media_paths: list[str]
    status: str
    scheduled_at: datetime | None
    published_at: datetime | None
    intent: str | None
    content_type: str | None
    created_at: datetime
    publications: list[PublicationResponse] = []

    model_config = {"from_attributes": True}


class PlatformPublishResultResponse(BaseModel):
    publication_id: int
    platform: str
    success: bool
    platform_post_id: str | None = None
    platform_url: str | None = None
    error: str | None = None

    model_config = {"from_attributes": True}


class PublishOutcomeResponse(BaseModel):
    post_id: int
    status: str
    results: list[PlatformPublishResultResponse]

    model_config = {"from_attributes": True}


# ---------------------------------------------------------------------------
# Analytics
# ---------------------------------------------------------------------------


class MetricsRefreshResponse(BaseModel):
    refreshed: int
    failed: int
    skipped_budget: int


class DashboardMetricsResponse(BaseModel):
    total_impressions: int
    total_likes: int
    total_replies: int
    total_reposts: int
    total_engagement: int
    average_engagement_rate: float
    post_count: int

    model_config = {"from_attributes": True}


class PlatformStatsResponse(BaseModel):
    platform: str
    posts_count: int
    total_impressions: int
    total_reach: int
    total_reactions: int
    total_comments: int
    total_shares: int
    total_quotes: int
    total_bookmarks: int
    avg_engagement_rate: float
    follower_count: int
    follower_growth: int
    follower_growth_rate: float

    model_config = {"from_attributes": True}


class CombinedStatsResponse(BaseModel):
    total_posts: int
    total_impressions: int
    total_engagements: int
    avg_engagement_rate: float
    total_follower_growth: int

    model_config = {"from_attributes": True}


class PlatformOverviewResponse(BaseModel):
    platforms: list[PlatformStatsResponse]
    combined: CombinedStatsResponse

    model_config = {"from_attributes": True}


class TimeSeriesPointResponse(BaseModel):
    date: date
    impressions: int
    likes: int
    replies: int
    reposts: int
    engagement: int

    model_config = {"from_attributes": True}


class TopPostResponse(BaseModel):
    publication_id: int
    post_id: int
    platform: str
    body: str
    platform_url: str | None
    published_at: datetime | None
    impressions: int | None
    likes: int | None
    replies: int | None
    reposts: int | None
    engagement_rate: float | None
    observed_at: datetime

    model_config = {"from_attributes": True}


class FollowerSnapshotResponse(BaseModel):
    snapshot_date: date
    follower_count: int
    new_followers: int | None

    model_config = {"from_attributes": True}


class FollowerGrowthResponse(BaseModel):
    current_count: int
    start_count: int
    net_growth: int
    growth_rate: float
    daily: list[FollowerSnapshotResponse]

    model_config = {"from_attributes": True}


class MetricEventResponse(BaseModel):
    id: int
    post_publication_id: int
    platform: str
    impressions: int | None
    likes: int | None
    replies: int | None
    reposts: int | None
    clicks: int | None
    profile_visits: int | None
    follows_from_post: int | None
    engagement_rate: float | None
    hours_since_publish: int
    observed_at: datetime

    model_config = {"from_attributes": True}


class PostMetricsResponse(BaseModel):
    post_id: int
    latest: list[MetricEventResponse]
    history: list[MetricEventResponse]


class MetricSnapshotResponse(BaseModel):
    platform: str
    platform_post_id: str
    post_id: int | None
    impressions: int | None
    unique_reach: int | None
    reactions: int | None
    comments: int | None
    shares: int | None
    quotes: int | None
    bookmarks: int | None
    video_plays: int | None
    video_watch_time_ms: int | None
    video_unique_viewers: int | None
    fetched_at: datetime

    model_config = {"from_attributes": True}


class LatestSnapshotsRequest(BaseModel):
    platform_post_ids: list[str] = Field(max_length=200)


class SnapshotSeriesResponse(BaseModel):
    latest: MetricSnapshotResponse | None
    series: list[MetricSnapshotResponse]
