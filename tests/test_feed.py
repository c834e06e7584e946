import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from conftest import MAJOR_FINAL_PAGE, match_row, match_table, team_page
from hltv_ical.extractor import MatchRecord
from hltv_ical.feed import (
    build_events,
    calendar_name,
    clamp_duration,
    event_uid,
    generate_feed,
    team_url,
)
from hltv_ical.fetcher import FetchError

START = datetime(2023, 11, 14, 22, 13, 20, tzinfo=timezone.utc)
BEFORE_START = START - timedelta(days=1)


class StubGateway:
    def __init__(self, html=None, error=None):
        self.html = html
        self.error = error
        self.urls = []

    async def fetch(self, url):
        self.urls.append(url)
        if self.error:
            raise self.error
        return self.html


def record(start=START, match_id=None, team1='Alpha', team2='Beta'):
    return MatchRecord(team1=team1, team2=team2, event_name='Major Final', start=start, match_id=match_id)


@pytest.mark.parametrize('raw, expected', [
    (None, 120),
    ('', 120),
    ('abc', 120),
    ('0', 120),
    ('90', 90),
    ('150abc', 150),
    (' 45', 45),
    ('1', 1),
    ('-5', 1),
    ('1440', 1440),
    ('99999', 1440),
    ('9' * 5000, 1440),
    ('-' + '9' * 5000, 1),
    ('0000150', 150),
    (60, 60),
])
def test_clamp_duration(raw, expected):
    assert clamp_duration(raw) == expected


def test_team_url():
    assert team_url('6667', 'faze') == 'https://www.hltv.org/team/6667/faze#tab-matchesBox'


def test_team_url_default_slug_and_quoting():
    assert team_url(6667) == 'https://www.hltv.org/team/6667/team#tab-matchesBox'
    assert team_url('1 2', 'a/b') == 'https://www.hltv.org/team/1%202/a%2Fb#tab-matchesBox'


def test_calendar_name():
    assert calendar_name(team_url('6667', 'faze')) == 'HLTV — faze'
    assert calendar_name('https://www.hltv.org/') == 'HLTV'
    assert calendar_name('http://[::1') == 'HLTV'


def test_uid_uses_match_id_only():
    a = record(match_id='12345')
    b = record(start=START + timedelta(days=3), match_id='12345', team1='Other', team2='Teams')
    assert event_uid(a) == event_uid(b) == 'match-12345'


def test_uid_falls_back_to_start_millis():
    assert event_uid(record()) == 'match-1700000000000'


def test_build_events_sets_end_from_duration():
    (event,) = build_events([record(match_id='1')], 90, now=BEFORE_START)
    assert event.start == START
    assert event.end == START + timedelta(minutes=90)
    assert event.summary == 'Alpha vs Beta — Major Final'


def test_drop_rule_keeps_events_inside_grace_window():
    end = START + timedelta(minutes=120)
    just_inside = end + timedelta(minutes=5)
    assert len(build_events([record()], 120, now=just_inside)) == 1
    assert build_events([record()], 120, now=just_inside + timedelta(seconds=1)) == []


def test_events_sorted_by_start_stably():
    later = record(start=START + timedelta(hours=2), match_id='3')
    first_tie = record(match_id='1')
    second_tie = record(match_id='2')
    events = build_events([later, first_tie, second_tie], 120, now=BEFORE_START)
    assert [e.uid for e in events] == ['match-1', 'match-2', 'match-3']


def test_generate_feed_major_final_scenario():
    gateway = StubGateway(MAJOR_FINAL_PAGE)
    ics = asyncio.run(generate_feed(gateway, '6667', 'faze', now=BEFORE_START))
    lines = ics.split('\r\n')

    assert gateway.urls == ['https://www.hltv.org/team/6667/faze#tab-matchesBox']
    assert lines.count('BEGIN:VEVENT') == 1
    assert 'UID:match-12345' in lines
    assert 'SUMMARY:Alpha vs Beta — Major Final' in lines
    assert 'DTSTART:20231114T221320Z' in lines
    assert 'DTEND:20231115T001320Z' in lines
    assert 'X-WR-CALNAME:HLTV — faze' in lines


def test_generate_feed_clamps_duration():
    gateway = StubGateway(MAJOR_FINAL_PAGE)
    ics = asyncio.run(generate_feed(gateway, '6667', 'faze', duration='99999', now=BEFORE_START))
    assert 'DTEND:20231115T221320Z' in ics.split('\r\n')


def test_generate_feed_drops_finished_matches():
    gateway = StubGateway(MAJOR_FINAL_PAGE)
    ics = asyncio.run(generate_feed(gateway, '6667', 'faze', now=START + timedelta(days=1)))
    assert 'BEGIN:VEVENT' not in ics
    assert ics.startswith('BEGIN:VCALENDAR')


def test_generate_feed_propagates_fetch_error():
    gateway = StubGateway(error=FetchError('Failed to fetch: 500'))
    with pytest.raises(FetchError, match='500'):
        asyncio.run(generate_feed(gateway, '6667', 'faze'))


def test_build_events_skips_match_whose_end_overflows():
    near_max = datetime.max.replace(tzinfo=timezone.utc) - timedelta(minutes=30)
    events = build_events([record(start=near_max), record(match_id='1')], 120, now=BEFORE_START)
    assert [e.summary for e in events] == ['Alpha vs Beta — Major Final']
    assert [e.uid for e in events] == ['match-1']


def test_generate_feed_ignores_rows_with_out_of_range_timestamps():
    html = team_page(match_table([
        match_row('9' * 5000, 'Huge', 'Digits'),
        match_row(253402300799000, 'Year', 'Ninethousand'),
        match_row(1700000000000, 'A', 'B'),
    ]))
    ics = asyncio.run(generate_feed(StubGateway(html), '6667', 'faze', now=BEFORE_START))
    lines = ics.split('\r\n')
    assert lines.count('BEGIN:VEVENT') == 1
    assert 'SUMMARY:A vs B' in lines
