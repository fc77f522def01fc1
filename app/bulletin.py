"""
Tide Bulletin Parser - JMA fixed-format tide tables

This module reads the yearly tide-prediction bulletin published per station
(one text line per day) and turns a single day's record into high/low tide
events.

A day line carries 24 hourly heights, the date as three space-padded 2-digit
fields, the 2-character station code, then the high and low tide groups.
Once whitespace is removed the groups collapse into an undelimited digit
stream, so every (time, height) pair has to be recovered by width:

- 7 chars: HHMM time + 3-digit height      e.g. 1728171 -> 17:28, 171cm
- 6 chars: HMM time + 3-digit height       e.g. 507162  -> 05:07, 162cm
- 6 chars: HHMM time + 2-digit height      e.g. 112448  -> 11:24, 48cm

The widths are tried in that order at every offset. The order matters for
digit runs that satisfy more than one width and must not be changed.

Nothing in here raises for bad data: a missing day gives None, a day that
decodes to nothing gives an empty list.
"""
import logging
import re
from dataclasses import dataclass
from datetime import date, time
from enum import Enum
from typing import List, Optional, Tuple

logger = logging.getLogger(__name__)

# Six nines close a day's data
END_SENTINEL = "999999"

# Bulletins carry at most 4 highs + 4 lows per day
MAX_EVENTS_PER_DAY = 8

# Heights at or above this are high tides
HIGH_TIDE_THRESHOLD_CM = 100

DEFAULT_STATION_CODE = "IS"

_DIGITS = re.compile(r"[0-9]+")
_SIGNED_DIGITS = re.compile(r"-?[0-9]+")


class TideKind(str, Enum):
    """High or low water."""
    HIGH = "high"
    LOW = "low"


@dataclass(frozen=True)
class TideEvent:
    """A single high or low tide on the wall clock, without a date."""
    time: time
    level_cm: int
    kind: TideKind

    @property
    def minutes(self) -> int:
        """Minutes since midnight."""
        return self.time.hour * 60 + self.time.minute

    @property
    def time_label(self) -> str:
        return self.time.strftime("%H:%M")

    def to_dict(self) -> dict:
        return {
            "type": self.kind.value,
            "time": self.time_label,
            "level_cm": self.level_cm,
        }


@dataclass(frozen=True)
class DayRecord:
    """The digit stream found after one day's marker in the bulletin."""
    year: int  # 2-digit year as printed in the bulletin
    month: int
    day: int
    raw_digit_stream: str


def classify_level(level_cm: int) -> TideKind:
    """Height is the only discriminant; neighbours are never consulted."""
    return TideKind.HIGH if level_cm >= HIGH_TIDE_THRESHOLD_CM else TideKind.LOW


def _day_patterns(year: int, month: int, day: int, station: str) -> List[re.Pattern]:
    """
    Build the day-marker patterns, most common layout first.

    Observed layouts for 2025-11-03 at station IS:
        "... 2511 3IS..."   year and month run together
        "... 25 11  3IS..." every field separated
        "25 1 3IS..."       fixed-width, month padded with a space
    """
    st = re.escape(station)
    return [
        re.compile(rf"\s{year}{month}\s+{day}{st}"),
        re.compile(rf"\s{year}\s+{month}\s+{day}{st}"),
        re.compile(rf"{year}{month:>2}\s+{day}{st}"),
        # Exact column layout, covers two-digit days after a one-digit month ("25 113IS")
        re.compile(rf"{year:2d}{month:2d}{day:2d}{st}"),
    ]


def _log_near_misses(lines: List[str], year: int, month: int, day: int, station: str) -> None:
    if not logger.isEnabledFor(logging.DEBUG):
        return
    probes = (
        f"{month} {day}{station}",
        f"{month}{day}{station}",
        f"{year}{month} {day}{station}",
        f"{year} {month} {day}{station}",
    )
    similar = [line for line in lines if any(p in line for p in probes)]
    for line in similar[:3]:
        logger.debug(f"Similar bulletin line: ...{line[-80:]}")


def find_day_record(
    text: str,
    month: int,
    day: int,
    year: int,
    station: str = DEFAULT_STATION_CODE,
) -> Optional[DayRecord]:
    """
    Locate the bulletin line for a day and return what follows its marker.

    Args:
        text: Full bulletin text for one year
        month: Month 1-12
        day: Day of month 1-31
        year: Year as printed in the bulletin (``full_year % 100``); a full
              year is reduced automatically
        station: 2-character station code that ends the date marker

    Returns:
        DayRecord with whitespace removed from the digit stream, or None when
        no line matches or the matched line has nothing after the marker.
    """
    if not 1 <= month <= 12:
        raise ValueError(f"month must be 1-12, got {month}")
    if not 1 <= day <= 31:
        raise ValueError(f"day must be 1-31, got {day}")
    year = year % 100

    patterns = _day_patterns(year, month, day, station)
    lines = text.splitlines()

    for line in lines:
        for index, pattern in enumerate(patterns):
            match = pattern.search(line)
            if match is None:
                continue

            logger.debug(f"Day {year:02d}/{month}/{day} matched pattern [{index}]")
            stream = re.sub(r"\s", "", line[match.end():])
            if not stream:
                logger.warning(
                    f"Malformed bulletin record for {year:02d}/{month}/{day}: "
                    f"no data after '{station}' marker"
                )
                return None
            return DayRecord(year=year, month=month, day=day, raw_digit_stream=stream)

    logger.warning(f"No bulletin line for {year:02d}/{month}/{day} (station {station})")
    _log_near_misses(lines, year, month, day, station)
    return None


def _to_int(digits: str) -> Optional[int]:
    """Heights may carry a minus sign."""
    return int(digits) if _SIGNED_DIGITS.fullmatch(digits) else None


def _digits(text: str) -> Optional[int]:
    """Strict unsigned parse used for clock fields."""
    return int(text) if _DIGITS.fullmatch(text) else None


def _try_seven(chunk: str) -> Optional[Tuple[int, int, int]]:
    """HHMM + hhh"""
    if len(chunk) != 7:
        return None
    hour, minute, level = _digits(chunk[0:2]), _digits(chunk[2:4]), _to_int(chunk[4:7])
    if hour is None or minute is None or level is None:
        return None
    if 0 <= hour <= 23 and 0 <= minute <= 59:
        return hour, minute, level
    return None


def _try_six_time_major(chunk: str) -> Optional[Tuple[int, int, int]]:
    """HMM + hhh"""
    if len(chunk) != 6:
        return None
    hour, minute, level = _digits(chunk[0:1]), _digits(chunk[1:3]), _to_int(chunk[3:6])
    if hour is None or minute is None or level is None:
        return None
    if 0 <= hour <= 9 and 0 <= minute <= 59:
        return hour, minute, level
    return None


def _try_six_height_minor(chunk: str) -> Optional[Tuple[int, int, int]]:
    """HHMM + hh, heights under a metre only"""
    if len(chunk) != 6:
        return None
    hour, minute, level = _digits(chunk[0:2]), _digits(chunk[2:4]), _to_int(chunk[4:6])
    if hour is None or minute is None or level is None:
        return None
    if 0 <= hour <= 23 and 0 <= minute <= 59 and level < 100:
        return hour, minute, level
    return None


# (width, decoder) in precedence order
GROUP_DECODERS = (
    (7, _try_seven),
    (6, _try_six_time_major),
    (6, _try_six_height_minor),
)


def decode_digit_stream(stream: str, max_events: int = MAX_EVENTS_PER_DAY) -> List[TideEvent]:
    """
    Decode one day's digit stream into tide events.

    Walks the stream left to right taking the first width that yields a
    valid clock time. Bytes that fit no width are skipped one at a time.
    Decoding stops at the ``999999`` sentinel, after ``max_events`` events,
    or at the end of the stream.

    Args:
        stream: Digits following the day marker, whitespace already removed
        max_events: Cap on accepted events

    Returns:
        Events in bulletin order (possibly empty)
    """
    events: List[TideEvent] = []
    skipped = 0
    i = 0

    while i < len(stream) and len(events) < max_events:
        if stream[i:i + 6] == END_SENTINEL:
            logger.debug(f"End sentinel at offset {i}")
            break

        decoded = None
        consumed = 0
        chosen = None
        for width, decoder in GROUP_DECODERS:
            decoded = decoder(stream[i:i + width])
            if decoded is not None:
                consumed = width
                chosen = decoder
                break

        if decoded is None:
            logger.debug(f"Unparseable group at offset {i}: '{stream[i:i + 10]}'")
            skipped += 1
            i += 1
            continue

        if logger.isEnabledFor(logging.DEBUG):
            rivals = [
                width for width, decoder in GROUP_DECODERS
                if decoder is not chosen and decoder(stream[i:i + width]) is not None
            ]
            if rivals:
                logger.debug(
                    f"Ambiguous group at offset {i}: took {consumed} chars, "
                    f"{rivals} would also fit"
                )

        hour, minute, level = decoded
        event = TideEvent(time=time(hour, minute), level_cm=level, kind=classify_level(level))
        logger.debug(f"Decoded {event.kind.value} {event.time_label} {event.level_cm}cm")
        events.append(event)
        i += consumed

    if skipped:
        logger.warning(f"Skipped {skipped} unparseable byte(s) while decoding tide stream")

    return events


def parse_day_tides(
    text: str,
    target: date,
    station: str = DEFAULT_STATION_CODE,
) -> Optional[List[TideEvent]]:
    """
    Find and decode the tide events for a calendar date.

    Returns:
        None when the day is not in the bulletin (or its record is malformed),
        otherwise the decoded events, which may be empty.
    """
    record = find_day_record(text, target.month, target.day, target.year % 100, station=station)
    if record is None:
        return None

    events = decode_digit_stream(record.raw_digit_stream)
    if not events:
        logger.warning(f"No tide events decoded for {target.isoformat()}")
    return events
