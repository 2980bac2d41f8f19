"""playstats API endpoints."""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Final, Optional

from attrs import define, field
from starlette.requests import Request
from starlette.responses import Response

from playstats.cache import CacheLayer

from .database import QueryExecutor, Row
from .errors import EntityNotFound, ValidationError, api_errors
from .responses import json_response, preflight_response
from .routing import Router

logger = logging.getLogger(__name__)

# Seconds a successful response stays cached, per endpoint
CACHE_TTL: Final[dict[str, int]] = {
    "dashboard_stats": 300,
    "play_counts_by_source": 300,
    "trend": 60,
    "top_artists": 300,
    "top_albums": 300,
    "top_genres": 300,
    "recent_plays": 10,
    "track": 3600,
    "track_play_counts": 300,
    "track_play_counts_period": 300,
    "unscrobbled_records": 10,
    "unscrobbled_records_count": 10,
}

PERIOD_DAYS: Final[dict[str, int]] = {"month": 30, "year": 365}
DEFAULT_PERIOD_DAYS: Final = 7

# top-albums switches to all-time totals past this window
ALL_TIME_DAYS: Final = 3650

# Largest value SQLite binds as an INTEGER
MAX_SQL_INTEGER: Final = 2**63 - 1

# Longest trend window, keeps `now - range` within datetime bounds
MAX_WINDOW_DAYS: Final = 36500

# Play times are stored in UTC, trend buckets use the listener's UTC+8 day
LOCAL_TIME_OFFSET: Final = "+8 hours"

HOURS: Final = tuple(f"{hour:02d}" for hour in range(24))

SOURCE_NAMES: Final[dict[str, str]] = {
    "apple music": "Apple Music",
    "applemusic": "Apple Music",
    "audirvana": "Audirvana",
    "roon": "Roon",
}

STATS_QUERIES: Final = (
    ("totalPlays", "SELECT SUM(play_count) AS count FROM tracks"),
    ("totalTracks", "SELECT COUNT(*) AS count FROM tracks"),
    ("totalArtists", "SELECT COUNT(DISTINCT artist) AS count FROM tracks"),
    ("totalAlbums", "SELECT COUNT(DISTINCT album) AS count FROM tracks"),
)

TREND_QUERY: Final = f"""
    SELECT strftime('%Y-%m-%d', datetime(play_time, '{LOCAL_TIME_OFFSET}')) AS date,
           strftime('%H', datetime(play_time, '{LOCAL_TIME_OFFSET}')) AS hour,
           COUNT(*) AS count
    FROM track_play_records
    WHERE play_time >= ?
    GROUP BY date, hour
    ORDER BY date, hour
"""

TOP_GENRES_QUERY: Final = """
    SELECT tg.track_genre_name, tg.track_genre_count,
           g.name_zh AS genre_name_zh, g.play_count AS genre_count
    FROM (
        SELECT genre AS track_genre_name, SUM(play_count) AS track_genre_count
        FROM tracks
        WHERE genre != ''
        GROUP BY genre
        ORDER BY track_genre_count DESC
        LIMIT ?
    ) AS tg
    LEFT JOIN genres AS g ON tg.track_genre_name = g.name
"""


def utcnow() -> datetime:
    """Current time, timezone aware."""
    return datetime.now(timezone.utc)


def isoformat_utc(value: datetime) -> str:
    """Format as ``YYYY-MM-DDTHH:MM:SS.mmmZ``, the stored play_time format."""
    value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def int_param(
    request: Request,
    name: str,
    default: int,
    minimum: int = 0,
    maximum: int = MAX_SQL_INTEGER,
) -> int:
    """Read an integer query parameter.

    Raises:
        ValidationError: if the value is not an integer or outside
            `minimum`..`maximum`
    """
    raw = request.query_params.get(name)
    if not raw:
        return default

    try:
        value = int(raw)
    except ValueError as e:
        raise ValidationError(f"Invalid parameter '{name}': {raw!r}") from e

    if value < minimum:
        raise ValidationError(f"Invalid parameter '{name}': must be >= {minimum}")

    if value > maximum:
        raise ValidationError(f"Invalid parameter '{name}': must be <= {maximum}")

    return value


def period_days(period: Optional[str]) -> int:
    """Window length for a track-play-counts period."""
    return PERIOD_DAYS.get(period or "", DEFAULT_PERIOD_DAYS)


def normalize_source(source: Optional[str]) -> str:
    """Canonical player name for a play record source."""
    if not source:
        return "Unknown"
    return SOURCE_NAMES.get(source.lower(), source)


def count_of(row: Optional[Row]) -> Any:
    """`count` column of a single-row aggregate, 0 when absent or NULL."""
    if not row:
        return 0
    return row.get("count") or 0


def group_hourly(rows: list[Row], max_dates: int) -> dict[str, dict[str, Any]]:
    """Group (date, hour, count) rows into per-date buckets of 24 hourly slots.

    Only the `max_dates` most recent dates are kept.
    """
    buckets: dict[str, dict[str, Any]] = {}
    for row in rows:
        date, hour = row.get("date"), row.get("hour")
        if date is None or hour is None:
            continue

        bucket = buckets.get(date)
        if bucket is None:
            bucket = buckets[date] = {"total": 0, "hourly": dict.fromkeys(HOURS, 0)}

        count = row.get("count") or 0
        bucket["hourly"][hour] = count
        bucket["total"] += count

    return {date: buckets[date] for date in sorted(buckets)[-max_dates:]}


@define(kw_only=True)
class PlayStatsFactory:
    """Register the listening statistics endpoints on a router."""

    database: QueryExecutor
    cache: CacheLayer

    router: Router = field(factory=Router)

    clock: Callable[[], datetime] = field(default=utcnow)

    add_preflight: bool = field(default=True)

    def __attrs_post_init__(self):
        """Post Init: register routes."""
        self.register_routes()

    def register_routes(self):
        """This Method register routes to the router."""
        # Registered first so it answers every OPTIONS request under /api/
        if self.add_preflight:
            self.preflight()

        self.dashboard()
        self.recent_plays()
        self.track()
        self.track_play_counts()
        self.unscrobbled_records()
        self.unsupported()

    def since(self, days: int) -> str:
        """Stored-format timestamp `days` days before now."""
        return isoformat_utc(self.clock() - timedelta(days=days))

    def preflight(self):
        """Register OPTIONS /api/.* endpoint."""

        @self.router.options("/api/.*")
        async def preflight(request: Request) -> Response:
            """CORS preflight."""
            return preflight_response()

    def dashboard(self):
        """Register /api/dashboard/* endpoints."""
        db = self.database

        @self.router.get("/api/dashboard/stats")
        @self.cache.cached(ttl=CACHE_TTL["dashboard_stats"])
        @api_errors
        async def dashboard_stats(request: Request) -> Response:
            """Play, track, artist and album totals."""
            rows = await asyncio.gather(
                *(db.prepare(query).first() for _, query in STATS_QUERIES)
            )
            result = {
                name: count_of(row) for (name, _), row in zip(STATS_QUERIES, rows)
            }
            logger.debug(f"Stats query result: {result}")
            return json_response(result)

        @self.router.get("/api/dashboard/play-counts-by-source")
        @self.cache.cached(ttl=CACHE_TTL["play_counts_by_source"])
        @api_errors
        async def play_counts_by_source(request: Request) -> Response:
            """Play counts per player."""
            rows = await db.prepare(
                "SELECT source, COUNT(source) AS count FROM track_play_records GROUP BY source"
            ).all()

            counts: dict[str, int] = {}
            for row in rows:
                key = normalize_source(row.get("source"))
                counts[key] = counts.get(key, 0) + (row.get("count") or 0)

            return json_response(counts)

        @self.router.get("/api/dashboard/trend")
        @self.cache.cached(ttl=CACHE_TTL["trend"])
        @api_errors
        async def trend(request: Request) -> Response:
            """Hourly play counts per day over the last `range` days."""
            days = int_param(request, "range", 30, minimum=1, maximum=MAX_WINDOW_DAYS)
            rows = await db.prepare(TREND_QUERY).bind(self.since(days)).all()
            return json_response({"hourly": group_hourly(rows, days)})

        @self.router.get("/api/dashboard/top-artists/:type")
        @self.cache.cached(ttl=CACHE_TTL["top_artists"])
        @api_errors
        async def top_artists(request: Request) -> Response:
            """Artists ranked by track count (`tracks`) or by play count."""
            limit = int_param(request, "limit", 10)

            if request.path_params["type"] == "tracks":
                query = (
                    "SELECT artist, COUNT(*) AS track_count FROM tracks "
                    "GROUP BY artist ORDER BY track_count DESC LIMIT ?"
                )
            else:
                query = (
                    "SELECT artist, SUM(play_count) AS play_count FROM tracks "
                    "GROUP BY artist ORDER BY play_count DESC LIMIT ?"
                )

            return json_response(await db.prepare(query).bind(limit).all())

        @self.router.get("/api/dashboard/top-albums")
        @self.cache.cached(ttl=CACHE_TTL["top_albums"])
        @api_errors
        async def top_albums(request: Request) -> Response:
            """Albums ranked by plays, all-time or over the last `days` days."""
            limit = int_param(request, "limit", 10)
            days = int_param(request, "days", 30)

            if days > ALL_TIME_DAYS:
                statement = db.prepare(
                    "SELECT album, artist, SUM(play_count) AS play_count FROM tracks "
                    "GROUP BY album, artist ORDER BY play_count DESC LIMIT ?"
                ).bind(limit)
            else:
                statement = db.prepare(
                    "SELECT album, album_artist AS artist, COUNT(*) AS play_count "
                    "FROM track_play_records WHERE play_time >= ? "
                    "GROUP BY album, album_artist ORDER BY play_count DESC LIMIT ?"
                ).bind(self.since(days), limit)

            return json_response(await statement.all())

        @self.router.get("/api/dashboard/top-genres")
        @self.cache.cached(ttl=CACHE_TTL["top_genres"])
        @api_errors
        async def top_genres(request: Request) -> Response:
            """Genres ranked by play count with their localized names."""
            limit = int_param(request, "limit", 10)
            return json_response(await db.prepare(TOP_GENRES_QUERY).bind(limit).all())

    def recent_plays(self):
        """Register /api/recent-plays endpoint."""
        db = self.database

        @self.router.get("/api/recent-plays")
        @self.cache.cached(ttl=CACHE_TTL["recent_plays"])
        @api_errors
        async def recent_plays(request: Request) -> Response:
            """Latest play records."""
            limit = int_param(request, "limit", 10)
            offset = int_param(request, "offset", 0)
            rows = (
                await db.prepare(
                    "SELECT artist, album, track, play_time, source FROM track_play_records "
                    "ORDER BY play_time DESC LIMIT ? OFFSET ?"
                )
                .bind(limit, offset)
                .all()
            )
            return json_response(rows)

    def track(self):
        """Register /api/track endpoint."""
        db = self.database

        @self.router.get("/api/track")
        @self.cache.cached(ttl=CACHE_TTL["track"])
        @api_errors
        async def track_detail(request: Request) -> Response:
            """Track row by artist and track name."""
            artist = request.query_params.get("artist")
            track_name = request.query_params.get("trackName")
            if not artist or not track_name:
                raise ValidationError("Missing parameters")

            row = (
                await db.prepare(
                    "SELECT * FROM tracks WHERE artist = ? AND track = ? LIMIT 1"
                )
                .bind(artist, track_name)
                .first()
            )
            if row is None:
                raise EntityNotFound("Track not found")

            return json_response(row)

    def track_play_counts(self):
        """Register /api/track-play-counts endpoints."""
        db = self.database

        @self.router.get("/api/track-play-counts")
        @self.cache.cached(ttl=CACHE_TTL["track_play_counts"])
        @api_errors
        async def track_play_counts(request: Request) -> Response:
            """Tracks ranked by total play count."""
            limit = int_param(request, "limit", 10)
            offset = int_param(request, "offset", 0)
            rows = (
                await db.prepare(
                    "SELECT artist, album, track, play_count FROM tracks "
                    "ORDER BY play_count DESC LIMIT ? OFFSET ?"
                )
                .bind(limit, offset)
                .all()
            )
            return json_response(rows)

        @self.router.get("/api/track-play-counts/period")
        @self.cache.cached(ttl=CACHE_TTL["track_play_counts_period"])
        @api_errors
        async def track_play_counts_period(request: Request) -> Response:
            """Tracks ranked by plays over the last week, month or year."""
            limit = int_param(request, "limit", 10)
            offset = int_param(request, "offset", 0)
            days = period_days(request.query_params.get("period"))
            rows = (
                await db.prepare(
                    "SELECT artist, album, track, COUNT(*) AS play_count "
                    "FROM track_play_records WHERE play_time >= ? "
                    "GROUP BY artist, album, track ORDER BY play_count DESC LIMIT ? OFFSET ?"
                )
                .bind(self.since(days), limit, offset)
                .all()
            )
            return json_response(rows)

    def unscrobbled_records(self):
        """Register /api/unscrobbled-records endpoints."""
        db = self.database

        @self.router.get("/api/unscrobbled-records/count")
        @self.cache.cached(ttl=CACHE_TTL["unscrobbled_records_count"])
        @api_errors
        async def unscrobbled_count(request: Request) -> Response:
            """Number of play records not yet scrobbled."""
            row = await db.prepare(
                "SELECT COUNT(*) AS count FROM track_play_records WHERE scrobbled = 0"
            ).first()
            return json_response({"count": count_of(row)})

        @self.router.get("/api/unscrobbled-records")
        @self.cache.cached(ttl=CACHE_TTL["unscrobbled_records"])
        @api_errors
        async def unscrobbled_records(request: Request) -> Response:
            """Play records not yet scrobbled, newest first."""
            limit = int_param(request, "limit", 10)
            offset = int_param(request, "offset", 0)
            rows = (
                await db.prepare(
                    "SELECT * FROM track_play_records WHERE scrobbled = 0 "
                    "ORDER BY play_time DESC LIMIT ? OFFSET ?"
                )
                .bind(limit, offset)
                .all()
            )
            return json_response(rows)

    def unsupported(self):
        """Register write endpoints the edge API does not implement."""

        async def not_supported(request: Request) -> Response:
            return json_response({"message": "Not supported"})

        self.router.post("/api/unscrobbled-records/sync", not_supported)
        self.router.post("/api/favorite", not_supported)
