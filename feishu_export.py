#!/usr/bin/env python3
"""
Feishu to Markdown Export Tool - Main CLI Entry Point

This script provides the command-line interface for discovering every Feishu
document reachable from a root URL and exporting them to a tree of Markdown
files.
"""

import argparse
import logging
import sys
from typing import Optional

from tqdm import tqdm

from config_loader import ConfigLoader, get_nested
from exporters import ManifestError
from feishu_client import FeishuApiError
from fetchers import InvalidResourceUrlError
from logger import log_config, log_section, setup_logging
from models import DiscoverProgressEvent, ExportProgressEvent
from orchestrator import ExportOrchestrator

__version__ = "1.0.0"

TERMINAL_STATUSES = ('success', 'skip', 'warning', 'error')


def create_argument_parser() -> argparse.ArgumentParser:
    """Create and configure the argument parser for CLI."""
    parser = argparse.ArgumentParser(
        prog='feishu-md-export',
        description="Discover Feishu documents from a root URL and export them to Markdown",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Discover and export a wiki tree
  feishu-md-export --url https://my.feishu.cn/wiki/<token> --app-id cli_xxx --app-secret xxx

  # Use a configuration file
  feishu-md-export --config config.yaml

  # Re-export from an existing manifest
  feishu-md-export --config config.yaml --skip-discover

  # Limit the crawl
  feishu-md-export --url https://my.feishu.cn/docx/<token> --max-depth 2 --max-docs 50

  # Verbose logging
  feishu-md-export --config config.yaml -vv
        """
    )

    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')

    parser.add_argument('--url', type=str, help='Root Feishu document or wiki URL')
    parser.add_argument('--app-id', type=str, help='Feishu app id (env: FEISHU_APP_ID)')
    parser.add_argument('--app-secret', type=str, help='Feishu app secret (env: FEISHU_APP_SECRET)')
    parser.add_argument('--config', type=str, help='Path to configuration YAML file')
    parser.add_argument('--output', type=str, help='Output directory for Markdown files (default: output)')
    parser.add_argument('--manifest', type=str,
                        help='Manifest file name or path (default: manifest.json inside the output directory)')
    parser.add_argument('--max-depth', type=int, help='Maximum link depth to follow (default: 10)')
    parser.add_argument('--max-docs', type=int, help='Maximum number of documents to discover (default: 1000)')
    parser.add_argument('--page-size', type=int,
                        help='Page size for paginated API listings, 1-500 (env: FEISHU_PAGE_SIZE, default: 200)')
    parser.add_argument('--skip-discover', action='store_true',
                        help='Skip discovery and export from an existing manifest')
    parser.add_argument('--insecure', action='store_true', help='Disable SSL certificate verification')
    parser.add_argument('--debug', action='store_true',
                        help='Log every API request and crawl step (env: FEISHU_DEBUG)')
    parser.add_argument('-v', '--verbose', action='count', default=0,
                        help='Increase verbosity (-v for INFO, -vv for DEBUG)')
    parser.add_argument('--log-level', choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
                        help='Explicit log level (overrides -v)')
    parser.add_argument('--log-file', type=str, help='Write logs to a rotating file')

    return parser


class ProgressDisplay:
    """Renders discovery and export progress events as tqdm bars."""

    def __init__(self, disable: bool = False):
        self.disable = disable
        self.discover_bar: Optional[tqdm] = None
        self.export_bar: Optional[tqdm] = None

    def on_discover(self, event: DiscoverProgressEvent) -> None:
        if self.discover_bar is None:
            self.discover_bar = tqdm(desc='Discovering', unit='doc', disable=self.disable)

        if event.status == 'processing':
            self.discover_bar.set_description(f"Discovering (depth {event.depth})")
            return

        self.discover_bar.update(1)
        self.discover_bar.set_postfix(discovered=event.discovered, warnings=event.warnings)
        if event.status in ('warning', 'error'):
            self.discover_bar.write(f"[{event.status}] {event.message}")

    def on_export(self, event: ExportProgressEvent) -> None:
        if self.export_bar is None:
            self.export_bar = tqdm(desc='Exporting', unit='doc', disable=self.disable)

        if event.status not in TERMINAL_STATUSES:
            return

        self.export_bar.update(1)
        self.export_bar.set_postfix(written=event.written, skipped=event.skipped)
        if event.status == 'error':
            self.export_bar.write(f"[error] {event.message}")

    def close(self) -> None:
        for bar in (self.discover_bar, self.export_bar):
            if bar is not None:
                bar.close()


def print_summary(report: dict) -> None:
    """Print a short console summary of both phases."""
    discovery = report.get('discovery')
    export_result = report['export']

    print("\n" + "=" * 60)
    print("FEISHU MARKDOWN EXPORT SUMMARY")
    print("=" * 60)
    if discovery is not None:
        print(f"Root URL: {discovery.root_url}")
        print(f"Discovered documents: {discovery.total} ({len(discovery.warnings)} warnings)")
    print(f"Manifest: {report['manifest_path']}")
    print(f"Output directory: {export_result.output_dir_path}")
    print(f"Exported: {export_result.written} written, {export_result.skipped} skipped "
          f"of {export_result.total}")
    if export_result.warnings:
        print("\nWarnings:")
        for warning in export_result.warnings:
            print(f"  - {warning}")
    print("=" * 60)


def run_export(config: dict, logger: logging.Logger) -> int:
    """Run discovery and export, returning a process exit code."""
    display = ProgressDisplay(disable=not sys.stderr.isatty())
    try:
        orchestrator = ExportOrchestrator(
            config,
            on_discover_progress=display.on_discover,
            on_export_progress=display.on_export,
        )
        report = orchestrator.run()
    finally:
        display.close()

    print_summary(report)

    export_result = report['export']
    if export_result.total > 0 and export_result.written == 0:
        logger.warning("No documents were written")
        return 1
    return 0


def main(argv=None) -> int:
    """Main entry point for the CLI."""
    parser = create_argument_parser()
    args = parser.parse_args(argv)

    try:
        logger = setup_logging(verbosity=args.verbose, level=args.log_level)
        log_section("Feishu to Markdown Export Tool")
        logger.info(f"Version: {__version__}")

        if args.config:
            logger.info(f"Loading configuration from {args.config}")
        config = ConfigLoader.resolve(args.config, args)

        # Reconfigure logging with config file settings
        verbosity = args.verbose
        if get_nested(config, 'advanced.debug') and verbosity < 1:
            verbosity = 1
        logger = setup_logging(
            verbosity=verbosity,
            log_file=get_nested(config, 'logging.file'),
            level=args.log_level or get_nested(config, 'logging.level'),
        )
        log_config(config)

        return run_export(config, logger)

    except (FileNotFoundError, ManifestError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 2
    except (ValueError, InvalidResourceUrlError) as e:
        print(f"ERROR: Configuration error: {e}", file=sys.stderr)
        return 2
    except KeyboardInterrupt:
        print("\nExport interrupted by user", file=sys.stderr)
        return 130
    except FeishuApiError as e:
        print(f"ERROR: Feishu API error: {e}", file=sys.stderr)
        return 1
    except Exception as e:
        logging.getLogger('feishu_md_exporter').error(f"Export failed: {e}", exc_info=True)
        print(f"ERROR: Unexpected error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
