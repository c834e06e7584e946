"""
HLTV team page parsing.

The team page's matches box is a set of ``table.match-table`` elements. Each
table is a sequence of ``thead`` groups (event headers) and ``tbody`` groups
(match rows); an event header applies to every following row until the next
header names a different event.

Rows degrade rather than fail: missing team names or links become empty
values. Only a row without a usable ``data-unix`` timestamp is dropped.
"""

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Iterator, Optional
from urllib.parse import urljoin

from bs4 import BeautifulSoup, Tag

logger = logging.getLogger(__name__)

HLTV_BASE = 'https://www.hltv.org'
EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
# Leaves room for a full day's event after the start.
LATEST_START = datetime.max.replace(tzinfo=timezone.utc) - timedelta(days=1)
MATCH_ID_RE = re.compile(r'/matches/(\d+)/')


@dataclass
class MatchRecord:
    """One upcoming (or just played) match as listed on a team page."""
    team1: str
    team2: str
    event_name: str
    start: datetime
    url: Optional[str] = None
    match_id: Optional[str] = None


def parse_unix_millis(value) -> Optional[datetime]:
    """Convert an epoch-milliseconds attribute value to a UTC datetime."""
    if value is None:
        return None
    value = str(value).strip()
    if not re.fullmatch(r'-?\d+', value):
        return None
    try:
        start = EPOCH + timedelta(milliseconds=int(value))
    except (ValueError, OverflowError):
        return None
    if start > LATEST_START:
        return None
    return start


def extract_match_id(url: Optional[str]) -> Optional[str]:
    """Pull the numeric id out of a /matches/<id>/<slug> link."""
    match = MATCH_ID_RE.search(url or '')
    return match.group(1) if match else None


def _has_classes(node: Tag, *classes: str) -> bool:
    found = node.get('class') or []
    # Trees built with new_tag() keep class as a plain string
    if isinstance(found, str):
        found = found.split()
    return set(classes).issubset(found)


def _find(node: Tag, name: Optional[str], *classes: str) -> Optional[Tag]:
    """First descendant with the given tag name (any if None) and all classes."""
    for child in node.find_all(name or True):
        if _has_classes(child, *classes):
            return child
    return None


def _text(node: Optional[Tag]) -> str:
    return node.get_text(strip=True) if node is not None else ''


def _header_event_name(group: Tag) -> str:
    headers = (tr for tr in group.find_all('tr') if _has_classes(tr, 'event-header-cell'))
    return _text(next((a for tr in headers for a in tr.find_all('a')), None))


def _team_name(row: Tag, slot: str) -> str:
    cell = _find(row, None, 'team-center-cell')
    if cell is None:
        return ''
    return _text(_find(cell, 'a', 'team-name', slot))


def _detail_url(row: Tag) -> Optional[str]:
    cell = _find(row, 'td', 'matchpage-button-cell')
    if cell is None:
        return None
    link = _find(cell, 'a', 'matchpage-button')
    href = link.get('href') if link is not None else None
    if not href:
        return None
    return urljoin(HLTV_BASE, href)


def _row_start(row: Tag) -> Optional[datetime]:
    cell = _find(row, 'td', 'date-cell')
    if cell is None:
        return None
    marker = cell.find('span', attrs={'data-unix': True})
    if marker is None:
        return None
    return parse_unix_millis(marker.get('data-unix'))


def parse_row(row: Tag, event_name: str = '') -> Optional[MatchRecord]:
    """Build a MatchRecord from a ``tr.team-row``; None if it has no start time."""
    start = _row_start(row)
    if start is None:
        logger.debug("Skipping match row without a data-unix timestamp")
        return None

    url = _detail_url(row)
    return MatchRecord(
        team1=_team_name(row, 'team-1'),
        team2=_team_name(row, 'team-2'),
        event_name=event_name,
        start=start,
        url=url,
        match_id=extract_match_id(url),
    )


def iter_match_rows(root: Tag) -> Iterator[MatchRecord]:
    """Walk every match table under root and yield its rows in document order."""
    for table in root.find_all('table'):
        if not _has_classes(table, 'match-table'):
            continue
        event_name = ''
        for group in table.find_all(['thead', 'tbody'], recursive=False):
            if group.name == 'thead':
                name = _header_event_name(group)
                if name:
                    event_name = name
                continue
            for row in group.find_all('tr'):
                if not _has_classes(row, 'team-row'):
                    continue
                record = parse_row(row, event_name)
                if record is not None:
                    yield record


def extract_matches(html: str) -> Iterator[MatchRecord]:
    """Parse a team page and yield its matches."""
    soup = BeautifulSoup(html, 'lxml')
    yield from iter_match_rows(soup)


def match_summary(record: MatchRecord) -> str:
    """'A vs B — Event', leaving out whatever is missing."""
    teams = ' vs '.join(name for name in (record.team1, record.team2) if name)
    if teams and record.event_name:
        return f"{teams} — {record.event_name}"
    return teams or record.event_name


def match_description(record: MatchRecord) -> str:
    parts = []
    if record.event_name:
        parts.append(f"Event: {record.event_name}")
    if record.team1 and record.team2:
        parts.append(f"Match: {record.team1} vs {record.team2}")
    if record.url:
        parts.append(f"HLTV: {record.url}")
    return '\n'.join(parts)
