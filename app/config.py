"""
Service configuration.

Values come from environment variables, optionally loaded from a .env file
in the project root.
"""
import os
from pathlib import Path

from dotenv import load_dotenv

env_path = Path(__file__).parent.parent / '.env'
if env_path.exists():
    load_dotenv(env_path)


def _get_int_env(key: str, default: int) -> int:
    """Get an int value from environment variable or use default."""
    value = os.environ.get(key)
    if value is not None:
        try:
            return int(value)
        except ValueError:
            pass
    return default


# =============================================================================
# Bulletin Source
# =============================================================================

# Station code printed after each day's date (IS = Ishigaki)
# Environment variable: TIDE_STATION_CODE
STATION_CODE = os.environ.get('TIDE_STATION_CODE', 'IS')

# Yearly bulletin location, formatted with {year} and {station}
# Environment variable: TIDE_BULLETIN_URL
BULLETIN_URL_TEMPLATE = os.environ.get(
    'TIDE_BULLETIN_URL',
    'https://www.data.jma.go.jp/kaiyou/data/db/tide/suisan/txt/{year}/{station}.txt',
)


# =============================================================================
# Fetch Settings
# =============================================================================

# How long a downloaded bulletin stays fresh (in seconds)
# Environment variable: TIDE_CACHE_TTL_SECONDS
CACHE_TTL_SECONDS = _get_int_env('TIDE_CACHE_TTL_SECONDS', 24 * 60 * 60)

# Timeout for bulletin downloads (in seconds)
# Environment variable: TIDE_API_TIMEOUT
API_TIMEOUT_SECONDS = _get_int_env('TIDE_API_TIMEOUT', 10)

# Maximum bulletin size accepted (1 MB)
# Environment variable: TIDE_MAX_RESPONSE_BYTES
MAX_RESPONSE_SIZE = _get_int_env('TIDE_MAX_RESPONSE_BYTES', 1 * 1024 * 1024)


# =============================================================================
# Clock
# =============================================================================

# Wall-clock zone used by the API when the client omits date/time
# Environment variable: TIDE_TIMEZONE
TIMEZONE = os.environ.get('TIDE_TIMEZONE', 'Asia/Tokyo')
