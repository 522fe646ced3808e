"""Command-line entry point: ``web-tester scan <url>``."""

import argparse
import asyncio
import sys
from typing import Optional

from pydantic import ValidationError

from web_tester.config import LOG_LEVELS, ScanConfig, get_settings
from web_tester.crawler import CrawlOrchestrator, PlaywrightEngine, PageSessionCollector
from web_tester.errors import WebTesterError
from web_tester.events import ScanEvent
from web_tester.models import Severity
from web_tester.output import ConsoleReporter, IssueFilter, JsonlEventWriter
from web_tester.utils.logging import configure_logging, get_logger

logger = get_logger(__name__)


def _csv(value: Optional[str]) -> Optional[list[str]]:
    if value is None:
        return None
    return [item.strip() for item in value.split(",") if item.strip()]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="web-tester",
        description="Progressive web page tester: crawl a site and report console, network and performance issues",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    scan = subparsers.add_parser("scan", help="Scan a website progressively")
    scan.add_argument("url", help="Base URL to scan")
    scan.add_argument("--output", "-o", help="Output file path (JSONL), '-' for stdout")
    scan.add_argument("--format", choices=["jsonl", "json"], help="Output format (default: jsonl)")
    scan.add_argument("--max-pages", "-m", type=int, default=50, help="Maximum pages to scan (default: 50)")
    scan.add_argument("--parallel", type=int, help="Concurrent page sessions (default: 1)")
    scan.add_argument("--no-progressive", dest="progressive", action="store_false", help="Disable progressive mode")
    scan.add_argument("--no-screenshots", dest="screenshots", action="store_false", help="Disable screenshot capture")
    scan.add_argument("--viewports", default="desktop", help="Viewports to test (comma-separated)")
    scan.add_argument(
        "--wait-strategy",
        default="load",
        choices=["load", "domcontentloaded", "networkidle"],
        help="Page load wait strategy",
    )
    scan.add_argument("--block-external", action="store_true", help="Block resources from other origins")
    scan.add_argument("--allow-domains", help="External domains allowed when blocking (comma-separated)")
    scan.add_argument("--block-resources", help="Block resource types (image,font,media,stylesheet)")
    scan.add_argument("--include", help="URL patterns to include (comma-separated)")
    scan.add_argument("--exclude", help="URL patterns to exclude (comma-separated)")
    scan.add_argument("--critical-only", action="store_true", help="Only report CRITICAL issues")
    scan.add_argument(
        "--min-severity",
        type=str.upper,
        choices=[severity.value for severity in Severity],
        help="Minimum severity to report",
    )
    scan.add_argument("--analyze-patterns", action="store_true", help="Report recurring issue patterns")
    scan.add_argument("--log-level", type=str.upper, choices=LOG_LEVELS, help="Log level (default: INFO)")
    return parser


def config_from_args(args: argparse.Namespace) -> ScanConfig:
    """Map parsed CLI arguments onto a scan configuration."""
    return ScanConfig.from_options(
        base_url=args.url,
        max_pages=args.max_pages,
        parallel_pages=args.parallel,
        progressive=args.progressive,
        capture_screenshots=args.screenshots,
        viewports=_csv(args.viewports),
        output_path=args.output,
        format=args.format,
        wait_strategy=args.wait_strategy,
        block_external_resources=args.block_external,
        allowed_domains=_csv(args.allow_domains),
        blocked_resource_types=_csv(args.block_resources),
        include_patterns=_csv(args.include),
        exclude_patterns=_csv(args.exclude),
        critical_only=args.critical_only,
        min_severity=args.min_severity,
        analyze_patterns=args.analyze_patterns,
    )


async def run_scan_command(config: ScanConfig, output_path: str) -> None:
    settings = get_settings()
    issue_filter = IssueFilter(critical_only=config.critical_only, min_severity=config.min_severity)
    reporter = ConsoleReporter(issue_filter=issue_filter)
    orchestrator = CrawlOrchestrator(
        config,
        engine=PlaywrightEngine(headless=settings.headless),
        collector=PageSessionCollector(config, screenshot_dir=settings.screenshot_dir),
    )

    with JsonlEventWriter(output_path, issue_filter=issue_filter, output_format=config.format) as writer:
        def on_event(event: ScanEvent) -> None:
            writer.write(event)
            reporter.handle(event)

        await orchestrator.run_with_callback(on_event)


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point for the web tester CLI."""
    args = build_parser().parse_args(argv)

    try:
        settings = get_settings()
        config = config_from_args(args)
    except ValidationError as e:
        sys.stderr.write(f"Invalid options: {e}\n")
        return 2

    configure_logging(level=args.log_level or settings.log_level, json_format=settings.log_json)

    output_path = config.output_path or settings.output_path
    sys.stderr.write(f"Output: {output_path}\n")

    try:
        asyncio.run(run_scan_command(config, output_path))
    except WebTesterError as e:
        logger.error("Scan failed", error=str(e))
        sys.stderr.write(f"Scan failed: {e}\n")
        return 1

    if output_path != "-":
        sys.stderr.write(f"Report saved to: {output_path}\n")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
