import argparse
import asyncio
import json
import logging
import sys

from .browser import open_page
from .config import DEFAULT_URL, BridgeConfig
from .errors import BridgeError, ConfigurationError
from .locator import Locator
from .log import configure_logging
from .models import WatchTarget
from .sync import run_bridge

logger = logging.getLogger(__name__)


def build_parser():
    parser = argparse.ArgumentParser(
        prog="strudel-sync",
        description="Mirror a local file into the Strudel REPL and re-evaluate it on every save.",
    )
    parser.add_argument("file", nargs="?", help="file to watch")
    parser.add_argument(
        "-v", "--verbose", action="count", default=0,
        help="more output; repeat for more (-vv, -vvv)",
    )
    parser.add_argument("--url", default=DEFAULT_URL, help=f"REPL address (default: {DEFAULT_URL})")
    parser.add_argument("--headless", action="store_true", help="run the browser without a window")
    parser.add_argument(
        "--debounce", type=float, default=None, metavar="SECONDS",
        help="quiet period after a save before syncing (default: 0.15)",
    )
    parser.add_argument(
        "--sync-on-start", action="store_true",
        help="push the file's current content once the editor is ready",
    )
    parser.add_argument(
        "--probe", action="store_true",
        help="report which editor lookup strategies match the page, then exit",
    )
    return parser


async def serve(target, config):
    async with open_page(config) as page:
        await run_bridge(target, page, config)


async def probe(config):
    async with open_page(config) as page:
        return await Locator(config).probe(page)


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.verbose)

    if args.debounce is not None and args.debounce <= 0:
        parser.error("--debounce must be positive")
    config = BridgeConfig.from_args(args)

    try:
        if args.probe:
            print(json.dumps(asyncio.run(probe(config)), indent=2))
            return 0

        if not args.file:
            parser.error("the file argument is required")
        try:
            target = WatchTarget.from_path(args.file)
        except ConfigurationError as e:
            parser.error(str(e))

        print(f"Syncing {target.path} -> {config.url} (Ctrl+C to stop)")
        asyncio.run(serve(target, config))
    except KeyboardInterrupt:
        return 130
    except BridgeError as e:
        logger.debug("Fatal error", exc_info=True)
        print(f"strudel-sync: {e}", file=sys.stderr)
        return 1
    return 0
