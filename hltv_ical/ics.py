"""
iCalendar (RFC 5545) encoding for match feeds.

The document is written by hand rather than through a calendar library so the
wire format stays exact: text escaping, 75-character line folding, UTC
timestamps and CRLF terminators.
"""

from datetime import datetime, timezone
from typing import Iterable, Optional

PRODID = '-//hltv-ical//EN'
CRLF = '\r\n'
FOLD_LIMIT = 75


def format_utc(dt: datetime) -> str:
    """Format a datetime as a UTC basic ISO timestamp (YYYYMMDDTHHMMSSZ)."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).strftime('%Y%m%dT%H%M%SZ')


def escape_text(text: Optional[str]) -> str:
    """Escape a TEXT value. Carriage returns are dropped, not escaped."""
    if text is None:
        return ''
    return (str(text)
            .replace('\\', '\\\\')
            .replace('\r', '')
            .replace('\n', '\\n')
            .replace(',', '\\,')
            .replace(';', '\\;'))


def unescape_text(text: str) -> str:
    """Reverse escape_text."""
    out = []
    i = 0
    while i < len(text):
        ch = text[i]
        if ch == '\\' and i + 1 < len(text):
            nxt = text[i + 1]
            out.append('\n' if nxt in 'nN' else nxt)
            i += 2
            continue
        out.append(ch)
        i += 1
    return ''.join(out)


def fold_line(line: str) -> str:
    """Fold a content line longer than 75 characters.

    Continuation lines start with a single space, so each one carries at most
    74 characters of content.
    """
    if len(line) <= FOLD_LIMIT:
        return line
    parts = []
    while len(line) > FOLD_LIMIT:
        parts.append(line[:FOLD_LIMIT])
        line = ' ' + line[FOLD_LIMIT:]
    parts.append(line)
    return CRLF.join(parts)


def unfold_lines(text: str) -> str:
    """Join folded continuation lines back together."""
    return text.replace(CRLF + ' ', '')


def _text_line(name: str, value: str) -> str:
    return fold_line(f"{name}:{escape_text(value)}")


def build_calendar(
    events: Iterable,
    calendar_name: str,
    prod_id: str = PRODID,
    dtstamp: Optional[datetime] = None,
) -> str:
    """Render events as a complete VCALENDAR document.

    Events need ``uid`` and ``start``; ``end``, ``summary``, ``description``
    and ``url`` are written only when set. Every event shares one DTSTAMP.
    """
    lines = [
        'BEGIN:VCALENDAR',
        'VERSION:2.0',
        f'PRODID:{prod_id}',
        'CALSCALE:GREGORIAN',
        'METHOD:PUBLISH',
        _text_line('NAME', calendar_name),
        _text_line('X-WR-CALNAME', calendar_name),
    ]
    stamp = format_utc(dtstamp or datetime.now(timezone.utc))

    for event in events:
        lines.append('BEGIN:VEVENT')
        lines.append(_text_line('UID', event.uid))
        lines.append(f'DTSTAMP:{stamp}')
        lines.append(f'DTSTART:{format_utc(event.start)}')
        if event.end:
            lines.append(f'DTEND:{format_utc(event.end)}')
        if event.summary:
            lines.append(_text_line('SUMMARY', event.summary))
        if event.description:
            lines.append(_text_line('DESCRIPTION', event.description))
        if event.url:
            lines.append(_text_line('URL', event.url))

        # 15 minute reminder
        lines.append('BEGIN:VALARM')
        lines.append('ACTION:DISPLAY')
        lines.append(_text_line('DESCRIPTION', event.summary or 'HLTV Match'))
        lines.append('TRIGGER:-PT15M')
        lines.append('END:VALARM')
        lines.append('END:VEVENT')

    lines.append('END:VCALENDAR')
    return CRLF.join(lines)
