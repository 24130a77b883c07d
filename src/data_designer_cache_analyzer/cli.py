"""Command-line interface for the cache analyzer.

Commands:
    analyze  Full analysis of a preset file, as text, JSON or an HTML fragment.
    score    One-line cache efficiency score.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from data_designer_cache_analyzer.core import AnalysisOptions, analyze
from data_designer_cache_analyzer.report import NO_PRESET, format_score_report, render_html, render_text
from data_designer_cache_analyzer.sources import AUTO, PROVIDERS, PresetLoadError, load_preset, resolve_provider

logger = logging.getLogger(__name__)


def _run(args: argparse.Namespace) -> tuple[dict, dict] | None:
    try:
        preset = load_preset(args.preset)
    except PresetLoadError as e:
        logger.debug(f"No preset data available: {e}")
        print(f"{NO_PRESET}: {e}", file=sys.stderr)
        return None
    provider = resolve_provider(args.provider, preset)
    logger.debug(f"Analyzing {args.preset} for provider {provider}")
    return preset, analyze(preset, AnalysisOptions(provider=provider))


def run_analyze_command(args: argparse.Namespace) -> int:
    outcome = _run(args)
    if outcome is None:
        return 1
    preset, result = outcome

    if args.format == "json":
        rendered = json.dumps(result, indent=2)
    elif args.format == "html":
        rendered = render_html(result, preset)
    else:
        rendered = render_text(result)

    if args.output:
        Path(args.output).write_text(rendered + "\n", encoding="utf-8")
        print(f"Report written to: {args.output}")
    else:
        print(rendered)
    return 0


def run_score_command(args: argparse.Namespace) -> int:
    outcome = _run(args)
    if outcome is None:
        return 1
    print(format_score_report(outcome[1]))
    return 0


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("preset", help="Path to a preset JSON file")
    parser.add_argument(
        "--provider",
        choices=[AUTO, *PROVIDERS],
        default=AUTO,
        help="Provider to check against (auto reads chat_completion_source)",
    )


def main(argv: list[str] | None = None) -> int:
    """Main entry point for CLI.

    Returns:
        Exit code.
    """
    parser = argparse.ArgumentParser(
        prog="cache-analyzer",
        description="Prompt preset cache analyzer",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    analyze_parser = subparsers.add_parser("analyze", help="Run cache analysis on a preset")
    _add_common_arguments(analyze_parser)
    analyze_parser.add_argument(
        "--format",
        choices=["text", "json", "html"],
        default="text",
        help="Report format",
    )
    analyze_parser.add_argument(
        "--output",
        "-o",
        help="Write the report to this file instead of stdout",
    )

    score_parser = subparsers.add_parser("score", help="Quick cache efficiency score check")
    _add_common_arguments(score_parser)

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if not args.command:
        parser.print_help()
        return 1

    if args.command == "analyze":
        return run_analyze_command(args)
    elif args.command == "score":
        return run_score_command(args)

    return 1


if __name__ == "__main__":
    sys.exit(main())
