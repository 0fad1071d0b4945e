"""Command-line entry point for haikubot.

Usage:
    haikubot                 # run the bot forever
    haikubot -t 古池や蛙飛び込む水の音   # exit 0 if the text is a haiku or tanka
    haikubot -v              # print version
    haikubot -V              # trace predicate decisions at DEBUG
"""

import argparse
import asyncio
import logging
import sys

from haikubot import __version__
from haikubot.config import Settings, load_settings, read_settings, stream_url
from haikubot.event_filter import EventFilter
from haikubot.exceptions import ConfigurationError
from haikubot.firehose import FirehoseConnection
from haikubot.logging_config import AuditLog, setup_logging
from haikubot.matcher import DEFAULT_PATTERNS, Matcher, PatternMatcher, normalize
from haikubot.poster import ActionPoster
from haikubot.supervisor import Supervisor
from haikubot.watchdog import Heartbeat
from haikubot.xrpc_client import XrpcClient

logger = logging.getLogger(__name__)


def check(text: str, matcher: Matcher) -> int:
    """Evaluate one string against the target patterns.

    Returns:
        Exit code: 0 if any pattern matches, 1 otherwise
    """
    content = normalize(text)
    print(content)
    for pattern in DEFAULT_PATTERNS:
        if matcher.matches(content, pattern):
            print(f"{pattern.name.upper()}!")
            return 0
    return 1


async def run_service(settings: Settings, matcher: Matcher) -> None:
    """Wire the pipeline from settings and run it until cancelled."""
    url = stream_url(settings.bgs)
    audit = AuditLog()
    audit.start()
    try:
        async with XrpcClient(
            settings.host,
            settings.handle,
            settings.password,
            timeout=settings.request_timeout_seconds,
        ) as client:
            poster = ActionPoster(
                client,
                audit=audit,
                max_attempts=settings.post_max_attempts,
                retry_delay=settings.post_retry_delay_seconds,
            )
            supervisor = Supervisor(
                settings,
                connect=lambda: FirehoseConnection.open(url),
                event_filter=EventFilter(settings),
                matcher=matcher,
                poster=poster,
                heartbeat=Heartbeat(
                    settings.heartbeat_url,
                    interval=settings.heartbeat_interval_seconds,
                ),
                audit=audit,
            )
            await supervisor.run_forever()
    finally:
        audit.stop()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="haikubot", description="Bluesky haiku bot")
    parser.add_argument("-v", "--version", action="store_true", help="show version")
    parser.add_argument(
        "-V",
        "--verbose",
        action="store_true",
        help="trace predicate decisions",
    )
    parser.add_argument(
        "-t",
        "--test",
        action="store_true",
        help="check the given text and exit 0 on a match",
    )
    parser.add_argument("text", nargs="*", help="text to check with -t")
    return parser


def main(argv: list[str] | None = None) -> int:
    """CLI entry point.

    Returns:
        Exit code: 0 for success, 1 for failure
    """
    args = build_parser().parse_args(argv)

    if args.version:
        print(__version__)
        return 0

    setup_logging(level="INFO")
    if args.verbose:
        logging.getLogger("haikubot.matcher").setLevel(logging.DEBUG)

    try:
        settings = read_settings() if args.test else load_settings()
    except ConfigurationError as e:
        logger.error(str(e))
        return 1

    matcher = PatternMatcher(user_dictionary=settings.user_dictionary)
    if args.test:
        return check(" ".join(args.text), matcher)

    try:
        asyncio.run(run_service(settings, matcher))
    except KeyboardInterrupt:
        logger.info("Stopped")
    return 0


if __name__ == "__main__":
    sys.exit(main())
