#!/usr/bin/env python3
"""
HAR Explorer

Loads a HAR file, applies filters and prints the matching requests, with an
optional waterfall view and filtered export.

Usage:
    python explore_har.py capture.har --category fetch --errors-only
    python explore_har.py capture.har --search api.example.com --timeline
    python explore_har.py capture.har --sort-slowest --export
    python explore_har.py capture.har --summary 12
"""

import argparse
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv
from pydantic import ValidationError

# Load environment variables from .env file
load_dotenv()

from har_explorer.classifier import classify_entry, parse_url, url_host
from har_explorer.config import ExplorerConfig
from har_explorer.export import generate_filtered_filename, generate_markdown_summary, save_filtered_har
from har_explorer.ingest import StreamingLoader
from har_explorer.models import TYPE_FILTERS, EntriesAdded, FilterState, LoadComplete, LoadFailed, LoadProgress
from har_explorer.query import evaluate
from har_explorer.timeline import project_timeline

logger = logging.getLogger(__name__)


# ============================================================================
# OUTPUT
# ============================================================================

def truncate(text: str, max_len: int) -> str:
    if len(text) <= max_len:
        return text
    return text[:max_len - 3] + '...'


def describe_entry(entry) -> str:
    parsed = parse_url(entry.request.url)
    host = url_host(parsed) if parsed is not None else ''
    path = parsed.path if parsed is not None else ''
    return (
        f"{entry.request.method:<7} {entry.response.status:>3} "
        f"{truncate(host, 25):<25} {truncate(path, 35):<35} "
        f"{classify_entry(entry).value:<8} {entry.time:>9.1f}ms"
    )


def print_table(entries, positions):
    for position in positions:
        print(f"{position:>5}  {describe_entry(entries[position])}")


def print_timeline(entries, positions, chart_width):
    projection = project_timeline(entries, positions, chart_width)
    if not projection.bars:
        print("No requests with measurable duration to display")
        return

    scale = ''
    for tick in projection.ticks:
        scale = scale.ljust(tick.column) + tick.label
    print(f"{'Time Scale (log):':<40}{scale}")
    print('-' * (40 + chart_width))

    for bar in projection.bars:
        entry = entries[bar.position]
        label = truncate(f"{entry.request.method} {entry.request.url}", 38)
        print(f"{label:<38} |{' ' * bar.offset}{'#' * bar.width} {bar.duration_ms:.1f}ms")


# ============================================================================
# MAIN
# ============================================================================

def main():
    """Main entry point"""
    parser = argparse.ArgumentParser(
        description='Filter and inspect the requests recorded in a HAR file',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python explore_har.py capture.har --category fetch --errors-only
  python explore_har.py capture.har --search api.example.com --timeline
  python explore_har.py capture.har --summary 12
        """
    )
    parser.add_argument('har_file', type=str, help='Path to the HAR file')
    parser.add_argument(
        '--category',
        choices=TYPE_FILTERS,
        default='all',
        help='Only show requests of this category (default: all)'
    )
    parser.add_argument('--search', type=str, default='', help='Case-insensitive text filter')
    parser.add_argument('--errors-only', action='store_true', help='Only show status >= 400 or 0')
    parser.add_argument('--sort-slowest', action='store_true', help='Slowest requests first')
    parser.add_argument('--timeline', action='store_true', help='Print the waterfall view')
    parser.add_argument(
        '--chart-width',
        type=int,
        default=None,
        help='Waterfall width in columns (default: HAR_CHART_WIDTH or 80)'
    )
    parser.add_argument(
        '--summary',
        type=int,
        metavar='POSITION',
        default=None,
        help='Print a Markdown support report for the entry at this position'
    )
    parser.add_argument(
        '--export',
        nargs='?',
        const='',
        default=None,
        help='Save the filtered entries as HAR (optional output path)'
    )
    parser.add_argument('--verbose', action='store_true', help='Debug logging')

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s'
    )

    try:
        config = ExplorerConfig.from_env()
    except ValidationError as e:
        logger.error(f"Invalid configuration: {e}")
        return 1

    if not args.verbose:
        logging.getLogger().setLevel(getattr(logging, config.log_level.upper(), logging.INFO))

    har_path = Path(args.har_file).resolve()
    if not har_path.exists():
        logger.error(f"HAR file not found: {har_path}")
        return 1

    chart_width = args.chart_width if args.chart_width is not None else config.chart_width
    if chart_width < 1:
        logger.error("--chart-width must be at least 1")
        return 1

    state = FilterState(
        text_filter=args.search,
        category_filter=args.category,
        errors_only=args.errors_only,
        sort_by_duration=args.sort_slowest,
    )

    try:
        # ====================================================================
        # STEP 1: Stream the HAR file
        # ====================================================================
        loader = StreamingLoader.from_config(config)
        loader.start(har_path)

        batches = 0
        outcome = None
        for event in loader.events():
            if isinstance(event, EntriesAdded):
                batches += 1
            elif isinstance(event, LoadProgress):
                logger.debug(f"Loaded {event.count} entries")
            else:
                outcome = event

        if isinstance(outcome, LoadFailed):
            logger.error(f"Loading error: {outcome.error}")
            if outcome.count == 0:
                return 1
            logger.warning(f"Continuing with the {outcome.count} entries read before the error")
        elif isinstance(outcome, LoadComplete):
            logger.info(f"Loading complete: {outcome.count} entries in {batches} batches")

        # ====================================================================
        # STEP 2: Filter
        # ====================================================================
        entries = loader.store.entries()
        positions = evaluate(state, entries, loader.store.index, config.body_search_limit)
        logger.info(f"{len(positions)}/{len(entries)} entries match")

        if args.timeline:
            print_timeline(entries, positions, chart_width)
        else:
            print_table(entries, positions)

        if args.summary is not None:
            if not 0 <= args.summary < len(entries):
                logger.error(f"No entry at position {args.summary} (loaded {len(entries)})")
                return 1
            print()
            print(generate_markdown_summary(entries[args.summary]))

        # ====================================================================
        # STEP 3: Export
        # ====================================================================
        if args.export is not None:
            output_path = args.export or generate_filtered_filename(har_path.name, state)
            save_filtered_har(output_path, entries, positions, loader.har_version)

        return 0

    except KeyboardInterrupt:
        logger.warning("\nInterrupted by user")
        return 130
    except Exception as e:
        logger.error(f"Exploration failed: {e}", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
