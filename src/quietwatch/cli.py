"""
Command-line interface for QuietWatch.
"""

import argparse
import asyncio
import logging
import sys
from rich.console import Console
from rich.table import Table

from .core.config import AppConfig, ConfigError
from .core.application import QuietWatchApplication
from .processing.matcher import match_monitored

console = Console()
logger = logging.getLogger(__name__)


def setup_logging():
    """Setup basic logging."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


async def run_application_with_config(config_path=None):
    """Run the main application with specified config."""
    console.print("[bold green]Starting QuietWatch[/bold green]")

    config = AppConfig.from_yaml(config_path)
    config.validate_for_run()

    if config.status_server.enabled:
        console.print(f"[bold blue]Status:[/bold blue] http://{config.status_server.host}:{config.status_server.port}/status")

    app = QuietWatchApplication(config)
    await app.run()


async def inject_with_config(config_path=None, duration=5.0):
    """Feed the configured dev bulletins through the pipeline and show what was sent."""
    config = AppConfig.from_yaml(config_path)
    config.dev.inject_enabled = True
    if not config.notifications.destinations:
        config.notifications.destinations = ["console"]
    config.validate_for_run()

    app = QuietWatchApplication(config)
    await app.initialize()
    try:
        await app.start()
        await asyncio.sleep(duration)
        await app.reconciler.drain()
        await app.pipeline.wait_idle()
        status = app.get_status()
    finally:
        await app.shutdown()

    table = Table(title="Pending timers")
    table.add_column("Locality")
    table.add_column("Remaining (s)", justify="right")
    table.add_column("Expires at")
    table.add_column("Sub-areas")
    for item in status['pending']:
        table.add_row(item['locality'], str(item['remaining_seconds']), item['expires_at'], ", ".join(item['sub_areas']))
    console.print(table)

    for destination, text in getattr(app.transport, "sent", []):
        console.print(f"[green]→ {destination}[/green] {text}")


def parse_bulletin(path, localities):
    """Classify a bulletin file and print extracted and matched localities."""
    if path == "-":
        text = sys.stdin.read()
    else:
        with open(path, "r", encoding="utf-8") as f:
            text = f.read()

    result = match_monitored(text, localities)
    console.print(f"[bold]Kind:[/bold] {result.kind.value}")
    console.print(f"[bold]Localities ({len(result.alerted_localities)}):[/bold] {', '.join(result.alerted_localities) or 'none'}")

    if localities:
        table = Table(title="Watch-list matches")
        table.add_column("Monitored")
        table.add_column("Matched localities")
        for monitored, matched in result.matches.items():
            table.add_row(monitored, ", ".join(matched))
        console.print(table)


def create_parser():
    """Create argument parser."""
    parser = argparse.ArgumentParser(
        description="QuietWatch stand-down notifier",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s run --config config/default.yaml        Run the service
  %(prog)s parse bulletin.txt -l "עומר" -l "באר שבע"   Inspect a bulletin
  %(prog)s inject --config config/dev.yaml          Replay dev bulletins in memory
        """
    )

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    run_parser = subparsers.add_parser('run', help='Run the service')
    run_parser.add_argument('--config', '-c',
                            help='Configuration file path (default: config/default.yaml)',
                            default='config/default.yaml')

    parse_parser = subparsers.add_parser('parse', help='Classify a bulletin and match localities')
    parse_parser.add_argument('file', help="Bulletin text file ('-' for stdin)")
    parse_parser.add_argument('--locality', '-l', action='append', default=[],
                              help='Monitored locality (repeatable)')

    inject_parser = subparsers.add_parser('inject', help='Run configured dev bulletins through an in-memory channel')
    inject_parser.add_argument('--config', '-c',
                               help='Configuration file path (default: config/default.yaml)',
                               default='config/default.yaml')
    inject_parser.add_argument('--duration', '-d', type=float, default=5.0,
                               help='Seconds to keep timers running before reporting')

    return parser


def main():
    """Main entry point."""
    setup_logging()

    parser = create_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    try:
        if args.command == 'run':
            asyncio.run(run_application_with_config(args.config))
        elif args.command == 'parse':
            parse_bulletin(args.file, args.locality)
        elif args.command == 'inject':
            asyncio.run(inject_with_config(args.config, args.duration))
    except ConfigError as e:
        console.print(f"[red]Configuration error: {e}[/red]")
        sys.exit(2)
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted by user[/yellow]")
        sys.exit(0)
    except Exception as e:
        console.print(f"[red]Error: {e}[/red]")
        logger.exception("Unhandled exception")
        sys.exit(1)


if __name__ == "__main__":
    main()
