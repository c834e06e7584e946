"""
Team feed assembly: fetch the team page, extract matches, window and sort
them, and render the calendar.
"""

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional
from urllib.parse import quote, urlsplit

from .extractor import EPOCH, HLTV_BASE, MatchRecord, extract_matches, match_description, match_summary
from .ics import build_calendar

logger = logging.getLogger(__name__)

DEFAULT_DURATION = 120
MIN_DURATION = 1
MAX_DURATION = 24 * 60
DEFAULT_SLUG = 'team'
# Events that ended within this window are still listed.
GRACE = timedelta(minutes=5)


@dataclass
class CalendarEvent:
    uid: str
    start: datetime
    end: datetime
    summary: str = ''
    description: str = ''
    url: Optional[str] = None


def clamp_duration(value) -> int:
    """Event length in minutes from a raw query value.

    The leading integer is used ("150abc" -> 150). Missing, non-numeric or
    zero values fall back to 120; the result is clamped to 1..1440.
    """
    minutes = 0
    if value is not None:
        match = re.match(r'\s*([+-]?)0*(\d+)', str(value))
        if match:
            sign, digits = match.groups()
            # Anything past 9 digits is out of range anyway; skip int() on huge strings.
            magnitude = int(digits) if len(digits) <= 9 else MAX_DURATION + 1
            minutes = -magnitude if sign == '-' else magnitude
    if not minutes:
        minutes = DEFAULT_DURATION
    return max(MIN_DURATION, min(MAX_DURATION, minutes))


def team_url(team_id, slug: Optional[str] = None) -> str:
    """Canonical HLTV team page URL, pointed at the matches tab."""
    team_slug = slug or DEFAULT_SLUG
    return f"{HLTV_BASE}/team/{quote(str(team_id), safe='')}/{quote(str(team_slug), safe='')}#tab-matchesBox"


def calendar_name(url: str) -> str:
    """Calendar display name from the slug segment of a team URL."""
    try:
        segments = [s for s in urlsplit(url).path.split('/') if s]
    except ValueError:
        return 'HLTV'
    if len(segments) < 3:
        return 'HLTV'
    return f"HLTV — {segments[2]}"


def event_uid(record: MatchRecord) -> str:
    if record.match_id:
        return f"match-{record.match_id}"
    millis = (record.start - EPOCH) // timedelta(milliseconds=1)
    return f"match-{millis}"


def to_event(record: MatchRecord, duration_minutes: int) -> CalendarEvent:
    # end > start is guaranteed by the 1 minute floor.
    duration = timedelta(minutes=max(MIN_DURATION, duration_minutes))
    return CalendarEvent(
        uid=event_uid(record),
        start=record.start,
        end=record.start + duration,
        summary=match_summary(record),
        description=match_description(record),
        url=record.url,
    )


def build_events(
    records: Iterable[MatchRecord],
    duration_minutes: int,
    now: Optional[datetime] = None,
) -> list[CalendarEvent]:
    """Turn records into events, dropping finished ones and sorting by start.

    The sort is stable, so matches sharing a start time keep page order.
    """
    now = now or datetime.now(timezone.utc)
    cutoff = now - GRACE
    events = []
    for record in records:
        try:
            events.append(to_event(record, duration_minutes))
        except OverflowError:
            logger.debug(f"Skipping match starting {record.start}: end time out of range")
    upcoming = [event for event in events if event.end >= cutoff]
    upcoming.sort(key=lambda e: e.start)
    return upcoming


async def generate_feed(
    gateway,
    team_id,
    slug: Optional[str] = None,
    duration=None,
    now: Optional[datetime] = None,
) -> str:
    """Fetch a team's match page and render it as an ICS document.

    FetchError from the gateway propagates unchanged.
    """
    minutes = clamp_duration(duration)
    url = team_url(team_id, slug)
    html = await gateway.fetch(url)
    events = build_events(extract_matches(html), minutes, now=now)
    name = calendar_name(url)
    logger.info(f"Built feed for team {team_id} ({name}): {len(events)} events, {minutes} min each")
    return build_calendar(events, name)
