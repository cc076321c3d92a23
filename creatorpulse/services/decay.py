"""Age-based decay schedule for metrics polling. Pure logic, no DB access.

Fresh posts are polled often; the interval widens as a post ages. Each
platform declares its bands and, explicitly, what happens past the oldest
band: stop polling (``terminal=None``) or keep a catch-all cadence.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from creatorpulse.adapters.platform_config import ensure_total
from creatorpulse.adapters.types import Platform

MINUTE = timedelta(minutes=1)
HOUR = timedelta(hours=1)
DAY = timedelta(days=1)


@dataclass(frozen=True)
class DecayBand:
    max_age: timedelta
    interval: timedelta


@dataclass(frozen=True)
class DecaySchedule:
    bands: tuple[DecayBand, ...]
    # Interval for posts older than the last band; None stops polling
    terminal: timedelta | None

    def __post_init__(self) -> None:
        if not self.bands:
            raise ValueError("A decay schedule needs at least one band")
        for prev, band in zip(self.bands, self.bands[1:]):
            if band.max_age <= prev.max_age:
                raise ValueError("Decay bands must be ordered by increasing max_age")
            if band.interval < prev.interval:
                raise ValueError("Decay intervals must not shrink as posts age")
        if self.terminal is not None and self.terminal < self.bands[-1].interval:
            raise ValueError("Terminal interval must not be shorter than the last band")

    @property
    def horizon(self) -> timedelta | None:
        """Oldest age still polled, or None when polling never stops."""
        return self.bands[-1].max_age if self.terminal is None else None


_FAST_FEED_BANDS = (
    DecayBand(2 * HOUR, 15 * MINUTE),
    DecayBand(6 * HOUR, 30 * MINUTE),
    DecayBand(24 * HOUR, 1 * HOUR),
    DecayBand(3 * DAY, 6 * HOUR),
    DecayBand(7 * DAY, 12 * HOUR),
    DecayBand(30 * DAY, 1 * DAY),
    DecayBand(90 * DAY, 3 * DAY),
)

DECAY_SCHEDULES: dict[Platform, DecaySchedule] = {
    # Professional feed: slower attention curve, stop after 90 days
    Platform.LINKEDIN: DecaySchedule(
        bands=(
            DecayBand(2 * HOUR, 30 * MINUTE),
            DecayBand(6 * HOUR, 1 * HOUR),
            DecayBand(24 * HOUR, 3 * HOUR),
            DecayBand(3 * DAY, 12 * HOUR),
            DecayBand(7 * DAY, 1 * DAY),
            DecayBand(30 * DAY, 3 * DAY),
            DecayBand(90 * DAY, 7 * DAY),
        ),
        terminal=None,
    ),
    # Old tweets keep resurfacing via search/quotes: keep a weekly cadence forever
    Platform.TWITTER: DecaySchedule(bands=_FAST_FEED_BANDS, terminal=7 * DAY),
    # Threads stops after the last band instead of polling weekly forever like Twitter.
    # Its reach concentrates in the first week and the API budget is the smallest.
    Platform.THREADS: DecaySchedule(bands=_FAST_FEED_BANDS, terminal=None),
}
ensure_total(DECAY_SCHEDULES, "DECAY_SCHEDULES")


def decay_interval(
    published_at: datetime,
    platform: Platform | str,
    now: datetime | None = None,
) -> timedelta | None:
    """Return how long to wait between polls for a post of this age.

    None means the post is past its platform's horizon and is no longer polled.
    """
    schedule = DECAY_SCHEDULES[Platform(platform)]
    age = (now or datetime.now(timezone.utc)) - published_at

    for band in schedule.bands:
        if age < band.max_age:
            return band.interval
    return schedule.terminal


def polling_horizon(platform: Platform | str) -> timedelta | None:
    return DECAY_SCHEDULES[Platform(platform)].horizon


def max_polling_horizon() -> timedelta | None:
    """Widest horizon across platforms; None if any platform polls indefinitely."""
    horizons = [schedule.horizon for schedule in DECAY_SCHEDULES.values()]
    if any(h is None for h in horizons):
        return None
    return max(horizons)
