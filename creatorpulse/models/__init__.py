from creatorpulse.models.user import User
from creatorpulse.models.platform_connection import PlatformConnection
from creatorpulse.models.post import Post, PostPublication
from creatorpulse.models.metric_snapshot import MetricSnapshot
from creatorpulse.models.metric_event import MetricEvent
from creatorpulse.models.metric_fetch_log import MetricFetchLog
from creatorpulse.models.follower_snapshot import FollowerSnapshot

__all__ = [
    "User",
    "PlatformConnection",
    "Post",
    "PostPublication",
    "MetricSnapshot",
    "MetricEvent",
    "MetricFetchLog",
    "FollowerSnapshot",
]
