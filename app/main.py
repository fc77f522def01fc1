import logging
import uuid
from datetime import date, datetime
from typing import Literal, Optional
from zoneinfo import ZoneInfo

from fastapi import FastAPI, HTTPException, Query, Request
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

from . import config
from .bulletin_service import BulletinService
from .tide_model import split_by_kind, tide_curve


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses."""

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Permissions-Policy"] = "geolocation=(), microphone=(), camera=()"
        return response


app = FastAPI(
    title="Tide Bulletin API",
    description="Daily high/low tides and current tide level from the JMA tide bulletin",
    version="1.0.0",
)

# Set up rate limiter
limiter = Limiter(key_func=get_remote_address)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# Add security headers middleware
app.add_middleware(SecurityHeadersMiddleware)

# Initialize services
bulletin_service = BulletinService()
LOCAL_TZ = ZoneInfo(config.TIMEZONE)


def _parse_date(value: Optional[str]) -> date:
    """Parse YYYY-MM-DD, defaulting to today on the local wall clock."""
    if not value:
        return datetime.now(LOCAL_TZ).date()
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise HTTPException(400, "Invalid date format. Please use YYYY-MM-DD")


def _parse_time(value: Optional[str]):
    """Parse HH:MM, defaulting to the current local wall-clock time."""
    if not value:
        return datetime.now(LOCAL_TZ).time()
    try:
        return datetime.strptime(value, "%H:%M").time()
    except ValueError:
        raise HTTPException(400, "Invalid time format. Please use HH:MM")


@app.get("/api/v1/tides")
async def get_tides(
    date: Optional[str] = Query(
        None,
        description="Date (YYYY-MM-DD). If not provided, today's local date is used.",
    ),
):
    """
    Get the high and low tides for one day.

    `source` is `bulletin` when the day was read from the tide bulletin and
    `fallback` when default tides were substituted.
    """
    try:
        target = _parse_date(date)
        return bulletin_service.get_day_tides(target)
    except ValueError as e:
        raise HTTPException(400, detail=str(e))
    except HTTPException:
        raise
    except Exception:
        error_id = uuid.uuid4().hex[:8]
        logger.exception(f"Error {error_id} in get_tides")
        raise HTTPException(500, detail=f"Internal error (ref: {error_id})")


@app.get("/api/v1/tides/week")
@limiter.limit("30/minute")
async def get_tides_week(
    request: Request,
    date: Optional[str] = Query(
        None,
        description="First day (YYYY-MM-DD). If not provided, today's local date is used.",
    ),
    days: int = Query(7, ge=1, le=7, description="Number of days (1-7)"),
):
    """
    Get high and low tides for several consecutive days.

    Rate limited to 30 requests per minute per IP.
    """
    try:
        start = _parse_date(date)
        return bulletin_service.get_week(start, days=days)
    except ValueError as e:
        raise HTTPException(400, detail=str(e))
    except HTTPException:
        raise
    except Exception:
        error_id = uuid.uuid4().hex[:8]
        logger.exception(f"Error {error_id} in get_tides_week")
        raise HTTPException(500, detail=f"Internal error (ref: {error_id})")


@app.get("/api/v1/tides/current")
async def get_current_tide(
    date: Optional[str] = Query(
        None,
        description="Date (YYYY-MM-DD). If not provided, today's local date is used.",
    ),
    time: Optional[str] = Query(
        None,
        description="Time of day (HH:MM). If not provided, the current local time is used.",
    ),
):
    """
    Get the estimated tide level, direction, and the next high or low tide.

    The countdown always runs forward to the next occurrence of the next
    tide's clock time, wrapping past midnight.
    """
    try:
        target = _parse_date(date)
        now = _parse_time(time)
        result = bulletin_service.current_tide(target, now)
        if result is None:
            raise HTTPException(404, "Not enough tide events to estimate the level")

        sample, source = result
        data = sample.to_dict()
        data.update({
            "date": target.isoformat(),
            "time": now.strftime("%H:%M"),
            "source": source,
        })
        return data
    except ValueError as e:
        raise HTTPException(400, detail=str(e))
    except HTTPException:
        raise
    except Exception:
        error_id = uuid.uuid4().hex[:8]
        logger.exception(f"Error {error_id} in get_current_tide")
        raise HTTPException(500, detail=f"Internal error (ref: {error_id})")


@app.get("/api/v1/tides/curve")
async def get_tide_curve(
    date: Optional[str] = Query(
        None,
        description="Date (YYYY-MM-DD). If not provided, today's local date is used.",
    ),
    interval: Literal["15", "30", "60"] = Query(
        "30",
        description="Minutes between samples (15, 30, or 60)",
    ),
):
    """
    Get the interpolated tide curve for a day, for charting.

    Returns the sampled levels along with the day's high and low tides.
    """
    try:
        target = _parse_date(date)
        events, source = bulletin_service.day_events_with_source(target)
        curve = tide_curve(events, interval_minutes=int(interval))
        if curve is None:
            raise HTTPException(404, "Not enough tide events to draw a curve")

        highs, lows = split_by_kind(events)
        return {
            "date": target.isoformat(),
            "source": source,
            "interval_minutes": int(interval),
            "curve": curve,
            "highs": [e.to_dict() for e in highs],
            "lows": [e.to_dict() for e in lows],
        }
    except ValueError as e:
        raise HTTPException(400, detail=str(e))
    except HTTPException:
        raise
    except Exception:
        error_id = uuid.uuid4().hex[:8]
        logger.exception(f"Error {error_id} in get_tide_curve")
        raise HTTPException(500, detail=f"Internal error (ref: {error_id})")


@app.get("/health")
async def health():
    return {"status": "healthy", "station": bulletin_service.station, "source": "JMA tide bulletin"}
