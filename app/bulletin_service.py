"""
Bulletin Service

Fetches the yearly tide bulletin, keeps it in an injected cache, and serves
per-day tide events to the API. When a day cannot be read from the bulletin
a fixed fallback day is substituted and marked as such.
"""
import logging
import time
import urllib.request
from datetime import date, datetime, timedelta
from typing import Callable, Dict, List, Optional, Tuple

from . import config
from .bulletin import TideEvent, TideKind, parse_day_tides
from .tide_model import TideSample, current_state

logger = logging.getLogger(__name__)

# Shown when the bulletin has no usable data for a day
FALLBACK_TIDES = [
    TideEvent(time=datetime.strptime("01:20", "%H:%M").time(), level_cm=70, kind=TideKind.LOW),
    TideEvent(time=datetime.strptime("06:30", "%H:%M").time(), level_cm=180, kind=TideKind.HIGH),
    TideEvent(time=datetime.strptime("12:45", "%H:%M").time(), level_cm=65, kind=TideKind.LOW),
    TideEvent(time=datetime.strptime("19:15", "%H:%M").time(), level_cm=175, kind=TideKind.HIGH),
]

SOURCE_BULLETIN = "bulletin"
SOURCE_FALLBACK = "fallback"


def safe_read_response(response, max_size: int = config.MAX_RESPONSE_SIZE) -> bytes:
    """
    Safely read HTTP response with size limit to prevent memory exhaustion.

    Args:
        response: urllib response object
        max_size: Maximum allowed response size in bytes

    Returns:
        Response body as bytes

    Raises:
        ValueError: If response exceeds size limit
    """
    content_length = response.headers.get('Content-Length')
    if content_length and int(content_length) > max_size:
        raise ValueError(f"Response too large: {content_length} bytes (max: {max_size})")

    # Read one extra byte to detect overflow
    data = response.read(max_size + 1)
    if len(data) > max_size:
        raise ValueError(f"Response exceeded size limit of {max_size} bytes")

    return data


class BulletinCache:
    """
    Key -> (value, stored_at) store.

    Freshness is decided by the caller on every read, so one cache can serve
    entries with different lifetimes.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._entries: Dict[str, Tuple[str, float]] = {}

    def get(self, key: str, max_age_seconds: float) -> Optional[str]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, stored_at = entry
        if self._clock() - stored_at < max_age_seconds:
            return value
        return None

    def set(self, key: str, value: str) -> None:
        self._entries[key] = (value, self._clock())

    def clear(self) -> None:
        self._entries.clear()


def fetch_url_text(url: str, timeout: int = config.API_TIMEOUT_SECONDS) -> str:
    """Download a bulletin as text."""
    with urllib.request.urlopen(url, timeout=timeout) as response:
        return safe_read_response(response).decode('utf-8', errors='replace')


class BulletinService:
    """Serves tide events for calendar dates from a station's yearly bulletin."""

    def __init__(
        self,
        cache: Optional[BulletinCache] = None,
        station: str = config.STATION_CODE,
        url_template: str = config.BULLETIN_URL_TEMPLATE,
        ttl_seconds: int = config.CACHE_TTL_SECONDS,
        fetcher: Callable[[str], str] = fetch_url_text,
    ):
        self.cache = cache if cache is not None else BulletinCache()
        self.station = station
        self.url_template = url_template
        self.ttl_seconds = ttl_seconds
        self.fetcher = fetcher

    def bulletin_url(self, year: int) -> str:
        return self.url_template.format(year=year, station=self.station)

    def fetch_bulletin(self, year: int) -> Optional[str]:
        """
        Get the bulletin text for a year, from cache while it is fresh.

        Returns:
            Bulletin text, or None when it could not be downloaded
        """
        cache_key = f"tide_data_{year}"
        cached = self.cache.get(cache_key, self.ttl_seconds)
        if cached is not None:
            logger.info(f"Bulletin {year} served from cache")
            return cached

        url = self.bulletin_url(year)
        logger.info(f"Fetching tide bulletin: {url}")
        try:
            text = self.fetcher(url)
        except Exception as e:
            logger.warning(f"Bulletin fetch failed for {year}: {e}")
            return None

        self.cache.set(cache_key, text)
        return text

    def get_day_events(self, target: date) -> Optional[List[TideEvent]]:
        """
        Tide events for a date straight from the bulletin.

        Returns:
            None if the bulletin or the day is unavailable, otherwise the
            decoded events (possibly empty)
        """
        text = self.fetch_bulletin(target.year)
        if text is None:
            return None
        return parse_day_tides(text, target, station=self.station)

    def get_day_tides(self, target: date) -> Dict:
        """
        Tide events for a date, substituting fallback data when needed.

        Returns:
            Dictionary with keys:
            - date: ISO date string
            - source: 'bulletin' or 'fallback'
            - tides: list of {type, time, level_cm}
        """
        events, source = self.day_events_with_source(target)
        return {
            "date": target.isoformat(),
            "source": source,
            "tides": [e.to_dict() for e in events],
        }

    def get_week(self, start: date, days: int = 7) -> List[Dict]:
        """Tide days for ``days`` consecutive dates starting at ``start``."""
        if days < 1:
            raise ValueError("days must be at least 1")
        return [self.get_day_tides(start + timedelta(days=offset)) for offset in range(days)]

    def current_tide(self, target: date, now) -> Optional[Tuple[TideSample, str]]:
        """
        Tide state for ``now`` on ``target`` along with the data source.

        Returns:
            (TideSample, source), or None when the level is not computable
        """
        events, source = self.day_events_with_source(target)
        sample = current_state(events, now)
        if sample is None:
            return None
        return sample, source

    def day_events_with_source(self, target: date) -> Tuple[List[TideEvent], str]:
        events = self.get_day_events(target)
        if events:
            return events, SOURCE_BULLETIN
        logger.warning(f"Using fallback tide data for {target.isoformat()}")
        return list(FALLBACK_TIDES), SOURCE_FALLBACK
