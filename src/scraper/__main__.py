"""Command-line entry point: ``python -m src.scraper "query"``."""

import argparse
import asyncio
import json
import logging
import sys

from dotenv import load_dotenv

from .base.config import PROJECT_ROOT, load_engine_settings
from .base.errors import ConfigurationError, InvalidQueryError
from .factory import create_engine


def setup_logging(debug: bool = False, verbose: bool = False) -> None:
    level = logging.DEBUG if debug or verbose else logging.INFO
    if verbose:
        log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    else:
        log_format = "%(levelname)s:%(name)s:%(message)s"
    logging.basicConfig(level=level, format=log_format, stream=sys.stderr, force=True)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pricescout",
        description="Search product listings across configured retailers",
    )
    parser.add_argument("query", help="Search term, e.g. 'iphone 15'")
    parser.add_argument(
        "--config", metavar="PATH", help="Path to scrapers.yaml (default: config/scrapers.yaml)"
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging and save raw payloads, HTML and screenshots",
    )
    parser.add_argument(
        "--verbose", action="store_true", help="Debug logging with timestamps"
    )
    parser.add_argument(
        "--no-browser", action="store_true", help="Only run the HTTP fast path"
    )
    parser.add_argument(
        "--concurrency", type=int, metavar="N", help="Concurrent retailer cascades"
    )
    parser.add_argument(
        "--threshold", type=int, metavar="N", help="Early-exit product count"
    )
    parser.add_argument(
        "--enrich", action="store_true", help="Append an LLM summary of the results"
    )
    return parser


async def run_search(args: argparse.Namespace) -> dict:
    settings = load_engine_settings(args.config)
    overrides: dict = {}
    if args.no_browser:
        overrides["browser_path_enabled"] = False
    if args.concurrency:
        overrides["max_concurrent_retailers"] = args.concurrency
    if args.threshold:
        overrides["early_exit_threshold"] = args.threshold
    if args.enrich:
        overrides["enrichment"] = settings.enrichment.model_copy(update={"enabled": True})
    if overrides:
        settings = settings.model_copy(update=overrides)

    async with create_engine(settings, debug_mode=args.debug or None) as engine:
        result = await engine.search(args.query)
        output = result.to_dict()
        if args.enrich:
            output["summary"] = await engine.enrich(result)
        return output


def main() -> int:
    """Run one search and print the JSON result to stdout."""
    load_dotenv(PROJECT_ROOT / ".env")
    args = build_parser().parse_args()
    setup_logging(args.debug, args.verbose)

    try:
        output = asyncio.run(run_search(args))
    except InvalidQueryError as e:
        print(f"❌ {e}", file=sys.stderr)
        return 2
    except ConfigurationError as e:
        print(f"❌ Configuration error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("⏹️  Search interrupted", file=sys.stderr)
        return 130

    print(json.dumps(output, indent=2, ensure_ascii=False))
    return 0 if output["success"] else 1


if __name__ == "__main__":
    sys.exit(main())
