"""HLTV team matches as a subscribable iCalendar feed."""

from .cache import ResponseCache
from .extractor import MatchRecord, extract_matches
from .feed import CalendarEvent, clamp_duration, generate_feed, team_url
from .fetcher import FetchError, FetchGateway, SessionHandle

__version__ = '1.0.0'

__all__ = [
    'CalendarEvent',
    'FetchError',
    'FetchGateway',
    'MatchRecord',
    'ResponseCache',
    'SessionHandle',
    'clamp_duration',
    'extract_matches',
    'generate_feed',
    'team_url',
]
