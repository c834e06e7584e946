#!/usr/bin/env python3
"""
HLTV Team Matches iCal Subscription Service

A self-contained service that:
1. Fetches a team's page from hltv.org (directly, or through FlareSolverr
   when Cloudflare gets in the way)
2. Extracts the upcoming matches
3. Serves them as an iCal feed any calendar app can subscribe to
4. Caches each team page for an hour so HLTV isn't hammered

Requirements:
    pip install -e .

Usage:
    # Run the service (direct fetching)
    python hltv_ical_service.py --port 3000

    # Route fetches through a local FlareSolverr instance
    python hltv_ical_service.py --mode flaresolverr --flaresolverr-url http://localhost:8191

    # Print one feed and exit
    python hltv_ical_service.py --once 6667 --slug faze

    # Subscribe in your calendar app to:
    # http://YOUR_IP:3000/team/6667/faze.ics?duration=150
"""

import argparse
import asyncio
import logging
import signal
import sys
from datetime import datetime, timezone

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


# Check dependencies
def check_deps():
    missing = []
    try:
        from flask import Flask
    except ImportError:
        missing.append('flask')
    try:
        import asgiref
    except ImportError:
        missing.append('flask[async]')
    try:
        from curl_cffi.requests import AsyncSession
    except ImportError:
        missing.append('curl_cffi')
    try:
        from bs4 import BeautifulSoup
    except ImportError:
        missing.append('beautifulsoup4')
    try:
        import lxml
    except ImportError:
        missing.append('lxml')

    if missing:
        print(f"Missing dependencies: {', '.join(missing)}")
        print(f"Install with: pip install {' '.join(missing)}")
        sys.exit(1)

check_deps()

from flask import Flask, Response, request

from hltv_ical.cache import ResponseCache
from hltv_ical.config import ServiceConfig, load_config
from hltv_ical.feed import generate_feed
from hltv_ical.fetcher import FETCH_MODES, FetchError, FetchGateway

# Longest we wait for FlareSolverr session teardown on exit
SHUTDOWN_TIMEOUT = 10

FEED_CACHE_CONTROL = 's-maxage=300, max-age=120'


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec='milliseconds').replace('+00:00', 'Z')


def create_gateway(config: ServiceConfig) -> FetchGateway:
    """Build the fetch gateway and its page cache from config."""
    cache = ResponseCache(ttl=config.cache_ttl_minutes * 60)
    return FetchGateway(
        cache,
        mode=config.fetch_mode,
        flaresolverr_url=config.flaresolverr_url,
        direct_timeout=config.direct_timeout,
        flaresolverr_timeout=config.flaresolverr_timeout,
    )


def create_app(gateway: FetchGateway):
    """Create Flask app."""
    app = Flask(__name__)

    @app.route('/health')
    def health():
        return {'ok': True, 'time': utc_now_iso()}

    @app.route('/status')
    def status():
        return {
            'status': 'running',
            'fetch_mode': gateway.mode,
            'flaresolverr_session': gateway.session.active,
            'cached_pages': len(gateway.cache),
        }

    @app.route('/team/<team_id>.ics')
    @app.route('/team/<team_id>/<slug>.ics')
    async def team_calendar(team_id, slug=None):
        try:
            ics = await generate_feed(gateway, team_id, slug, request.args.get('duration'))
        except FetchError as e:
            logger.error(f"Feed for team {team_id} failed: {e}")
            return {'error': str(e)}, 502
        except Exception as e:
            logger.exception(f"Feed for team {team_id} failed")
            return {'error': str(e) or e.__class__.__name__}, 502

        return Response(
            ics,
            status=200,
            content_type='text/calendar; charset=utf-8',
            headers={'Cache-Control': FEED_CACHE_CONTROL},
        )

    return app


def shutdown_gateway(gateway: FetchGateway, timeout: float = SHUTDOWN_TIMEOUT):
    """Tear down the FlareSolverr session without letting exit hang."""
    try:
        asyncio.run(asyncio.wait_for(gateway.stop(), timeout))
    except asyncio.TimeoutError:
        logger.warning(f"FlareSolverr session teardown timed out after {timeout}s")


async def _once(gateway: FetchGateway, team_id: str, slug, duration) -> str:
    await gateway.start()
    try:
        return await generate_feed(gateway, team_id, slug, duration)
    finally:
        await gateway.stop()


def main(argv=None):
    parser = argparse.ArgumentParser(description='HLTV Team Matches iCal Subscription Service')
    parser.add_argument('--config', '-c', help='Config file (JSON)')
    parser.add_argument('--port', '-p', type=int, help='HTTP port (default: 3000, or $PORT)')
    parser.add_argument('--host', help='Listen address (default: 0.0.0.0)')
    parser.add_argument('--mode', choices=FETCH_MODES, help='Fetch strategy (default: direct, or $FETCH_MODE)')
    parser.add_argument('--flaresolverr-url', help='FlareSolverr base URL (default: http://localhost:8191)')
    parser.add_argument('--once', metavar='TEAM_ID', help='Print the feed for one team to stdout and exit')
    parser.add_argument('--slug', help='Team slug for --once (e.g. faze)')
    parser.add_argument('--duration', help='Event length in minutes for --once (default: 120)')

    args = parser.parse_args(argv)

    try:
        config = load_config(args.config)
    except (OSError, ValueError) as e:
        parser.error(str(e))

    if args.port:
        config.port = args.port
    if args.host:
        config.host = args.host
    if args.mode:
        config.fetch_mode = args.mode
    if args.flaresolverr_url:
        config.flaresolverr_url = args.flaresolverr_url

    gateway = create_gateway(config)

    # One-shot mode
    if args.once:
        try:
            ics = asyncio.run(_once(gateway, args.once, args.slug, args.duration))
        except FetchError as e:
            logger.error(str(e))
            return 1
        print(ics)
        return 0

    print(f"\nHLTV iCal Subscription Service")
    print(f"   Fetch mode: {config.fetch_mode}")
    if config.fetch_mode == 'flaresolverr':
        print(f"   FlareSolverr: {config.flaresolverr_url}")
    print(f"   Cache TTL: {config.cache_ttl_minutes} minutes")

    asyncio.run(gateway.start())

    # SIGTERM (docker stop) unwinds the same way as Ctrl+C
    signal.signal(signal.SIGTERM, signal.default_int_handler)

    print(f"\n   Subscribe URL: http://localhost:{config.port}/team/<id>/<slug>.ics")
    print(f"   Health: http://localhost:{config.port}/health")
    print(f"\n   Press Ctrl+C to stop\n")

    app = create_app(gateway)
    try:
        app.run(host=config.host, port=config.port, debug=False, threaded=True)
    except KeyboardInterrupt:
        pass
    finally:
        shutdown_gateway(gateway)
        print("\nService stopped.")
    return 0


if __name__ == '__main__':
    sys.exit(main())
