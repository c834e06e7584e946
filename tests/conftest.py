from datetime import datetime, timedelta, timezone

import pytest

from hltv_ical.cache import ResponseCache
from hltv_ical.fetcher import FetchGateway


class FakeClock:
    def __init__(self, start=1_000_000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class FakeResponse:
    def __init__(self, status_code=200, text='', json_data=None, reason=''):
        self.status_code = status_code
        self.text = text
        self.reason = reason
        self._json = json_data

    def json(self):
        if self._json is None:
            raise ValueError('not JSON')
        return self._json


class FakeHttp:
    """Stands in for curl_cffi's AsyncSession; replays queued responses."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []
        self.session_kwargs = []

    def __call__(self, **kwargs):
        self.session_kwargs.append(kwargs)
        return self

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    async def get(self, url, **kwargs):
        self.calls.append(('GET', url, kwargs))
        return self._next()

    async def post(self, url, **kwargs):
        self.calls.append(('POST', url, kwargs))
        return self._next()

    def _next(self):
        if not self.responses:
            raise AssertionError('unexpected request')
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


def unix_millis(dt):
    return int(dt.timestamp() * 1000)


def event_header(name):
    return (
        '<thead><tr class="event-header-cell"><th colspan="3">'
        f'<a href="/events/7148/x" class="a-reset">{name}</a>'
        '</th></tr></thead>'
    )


def match_row(unix=None, team1='', team2='', href=None):
    date = f'<span data-time-format="dd/MM/yyyy" data-unix="{unix}">date</span>' if unix is not None else '<span>TBA</span>'
    link = f'<a href="{href}" class="matchpage-button">Match</a>' if href else ''
    return (
        '<tr class="team-row">'
        f'<td class="date-cell">{date}</td>'
        '<td class="team-center-cell"><div class="team-flex">'
        f'<a href="/team/1/x" class="team-name team-1">{team1}</a>'
        '<div class="score-cell">-:-</div>'
        f'<a href="/team/2/y" class="team-name team-2">{team2}</a>'
        '</div></td>'
        f'<td class="matchpage-button-cell">{link}</td>'
        '</tr>'
    )


def match_table(*groups):
    """Groups are header HTML or lists of row HTML (one tbody each)."""
    parts = []
    for group in groups:
        if isinstance(group, str):
            parts.append(group)
        else:
            parts.append('<tbody>' + ''.join(group) + '</tbody>')
    return '<table class="table-container match-table">' + ''.join(parts) + '</table>'


def team_page(*tables):
    return (
        '<!DOCTYPE html><html><head><title>Team</title></head><body>'
        '<div class="tab-content" id="matchesBox">'
        + ''.join(tables)
        + '</div></body></html>'
    )


MAJOR_FINAL_PAGE = team_page(match_table(
    event_header('Major Final'),
    [match_row(1700000000000, 'Alpha', 'Beta', '/matches/12345/alpha-vs-beta')],
))


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def future_page():
    """A team page with two matches tomorrow, listed out of order."""
    tomorrow = datetime.now(timezone.utc).replace(microsecond=0) + timedelta(days=1)
    return team_page(match_table(
        event_header('IEM Katowice'),
        [
            match_row(unix_millis(tomorrow + timedelta(hours=3)), 'FaZe', 'NaVi', '/matches/2370001/faze-vs-navi-iem'),
            match_row(unix_millis(tomorrow), 'FaZe', 'G2', '/matches/2370000/faze-vs-g2-iem'),
        ],
    ))


@pytest.fixture
def make_gateway():
    def factory(*responses, mode='direct', **kwargs):
        http = FakeHttp(*responses)
        gateway = FetchGateway(
            ResponseCache(),
            mode=mode,
            flaresolverr_url='http://flaresolverr:8191',
            session_factory=http,
            **kwargs,
        )
        return gateway, http
    return factory
