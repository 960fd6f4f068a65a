"""Command-line entry points: ``shredcord`` and ``shredcord-import``."""

import argparse
import logging
import signal
import sys
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError

from . import __version__
from .archive import LOG_NAME, ArchiveWriter
from .client import DiscordClient
from .config import load_settings, load_token
from .cursor import SearchCursor
from .errors import ArchiveCorruptError, ShredcordError
from .importer import ArchiveImporter
from .orchestrator import Orchestrator, RunState, RunStats
from .pause import PauseController, self_message_handler
from .policy import DeletionPolicy

logger = logging.getLogger(__name__)


# Console colors (ANSI escape codes, works on most terminals)
class Colors:
    HEADER = '\033[95m'
    CYAN = '\033[96m'
    GREEN = '\033[92m'
    YELLOW = '\033[93m'
    RED = '\033[91m'
    ENDC = '\033[0m'
    BOLD = '\033[1m'


def setup_logging(log_file: Optional[str]) -> None:
    """Configure logging to file and console"""
    log_format = '%(asctime)s [%(levelname)s] %(message)s'
    date_format = '%Y-%m-%d %H:%M:%S'

    handlers = []
    if log_file:
        file_handler = logging.FileHandler(log_file, mode='a')
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(log_format, date_format))
        handlers.append(file_handler)

    # Console handler (less verbose)
    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(logging.Formatter('%(levelname)s: %(message)s'))
    handlers.append(console_handler)

    logging.basicConfig(level=logging.DEBUG, handlers=handlers, force=True)


def build_orchestrator(client: DiscordClient, settings: Dict[str, Any],
                       channel_id: Optional[int], guild_id: Optional[int],
                       add_event_handler: Optional[Callable[[Callable], None]] = None
                       ) -> Orchestrator:
    """Resolve identity and target, then wire the deletion run together.

    ``add_event_handler`` registers a MESSAGE_CREATE callback with whatever
    event transport the caller runs; without one the run never pauses.
    """
    me = client.me()
    self_id = int(me['id'])
    logger.info(f"Logged in as @{me.get('username', '?')} (ID: {self_id})")

    if channel_id:
        channel = client.channel(channel_id)
        if channel.get('guild_id'):
            guild_id = int(channel['guild_id'])

    pause = PauseController(quiet_window=settings['quiet_window'])
    if add_event_handler is not None:
        add_event_handler(self_message_handler(self_id, pause))

    archive = None
    if settings['archive_dir']:
        try:
            archive = ArchiveWriter(settings['archive_dir'])
        except OSError as e:
            raise ShredcordError(f"Error while opening archive directory: {e}") from e

    return Orchestrator(
        cursor=SearchCursor(client, self_id, guild_id=guild_id, channel_id=channel_id),
        policy=DeletionPolicy(client),
        self_id=self_id,
        archive=archive,
        pause=pause,
        dry_run=settings['dry_run'],
        delete_delay=settings['delete_delay'],
        search_delay=settings['search_delay'],
        max_empty_pages=settings['max_empty_pages'],
    )


def print_summary(stats: RunStats, rate_limited: int = 0) -> None:
    """Print execution summary"""
    print(f"\n{Colors.HEADER}{'='*60}{Colors.ENDC}")
    print(f"{Colors.HEADER}SUMMARY{Colors.ENDC}")
    print(f"{Colors.HEADER}{'='*60}{Colors.ENDC}\n")

    duration = (stats.end_time or stats.start_time) - stats.start_time
    hours = int(duration.total_seconds() // 3600)
    minutes = int((duration.total_seconds() % 3600) // 60)
    seconds = int(duration.total_seconds() % 60)

    state_color = Colors.GREEN if stats.state == RunState.DONE else Colors.YELLOW
    print(f"{Colors.BOLD}Result:{Colors.ENDC} {state_color}{stats.state.value}{Colors.ENDC}")
    print(f"{Colors.BOLD}Duration:{Colors.ENDC} {hours}h {minutes}m {seconds}s")
    print(f"{Colors.GREEN}Deleted:{Colors.ENDC} {stats.deleted}")
    print(f"{Colors.GREEN}Archived:{Colors.ENDC} {stats.archived}")
    print(f"{Colors.YELLOW}Skipped:{Colors.ENDC} {stats.skipped} (not authored by you)")
    print(f"{Colors.RED}Failed:{Colors.ENDC} {stats.failed} deletes, {stats.archive_failed} archives")
    print(f"{Colors.CYAN}Rate limited:{Colors.ENDC} {rate_limited} times")
    if stats.cursor is not None:
        print(f"{Colors.CYAN}Cursor:{Colors.ENDC} min_id={stats.cursor}")


def main(argv=None):
    """Main entry point"""
    parser = argparse.ArgumentParser(
        description='shredcord - archive and bulk delete your Discord messages',
    )
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')
    parser.add_argument('--token', '-t', help='Discord auth token (optional, can also use .env or env var)')
    parser.add_argument('--channel', type=int, help='Discord channel ID')
    parser.add_argument('--guild', type=int, help='Discord guild ID')
    parser.add_argument('--archive', help='Directory to log deleted messages in ("" disables archiving)')
    parser.add_argument('--config', '-c', help='Path to config.json file')
    parser.add_argument('--dry-run', action='store_true', default=None, help='Archive without deleting')
    parser.add_argument('--quiet-window', type=float,
                        help='Seconds of inactivity before resuming after a pause. Only applies when an '
                             'event transport is attached; this command has none, so it never pauses')
    args = parser.parse_args(argv)

    if not args.channel and not args.guild:
        parser.error("at least one of --channel and --guild must be specified")

    try:
        settings = load_settings(args.config, archive_dir=args.archive, dry_run=args.dry_run,
                                 quiet_window=args.quiet_window)
    except ShredcordError as e:
        print(f"{Colors.RED}{e}{Colors.ENDC}")
        sys.exit(1)
    setup_logging(settings['log_file'])

    try:
        client = DiscordClient(load_token(args.token), max_retries=settings['max_retries'])
        orchestrator = build_orchestrator(client, settings, args.channel, args.guild)
    except ShredcordError as e:
        logger.error(f"Setup failed: {e}")
        sys.exit(1)

    def signal_handler(signum, frame):
        """Handle graceful shutdown on Ctrl+C"""
        logger.warning("Received interrupt signal, stopping after the current request")
        orchestrator.stop()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        stats = orchestrator.run()
    except ShredcordError as e:
        logger.error(f"Error occurred while searching messages: {e}")
        sys.exit(1)
    finally:
        if orchestrator.archive is not None:
            orchestrator.archive.close()

    print_summary(stats, client.rate_limited)
    sys.exit(0)


def import_main(argv=None):
    """Entry point for loading an archive into SQL"""
    parser = argparse.ArgumentParser(description='Import a shredcord archive into a SQL database')
    parser.add_argument('--archive', '-a', default='archive', help='archive directory')
    parser.add_argument('--database', help='SQLAlchemy URL (default: sqlite:///<archive>/messages.db)')
    parser.add_argument('--log-file', default=None, help='Also log to this file')
    args = parser.parse_args(argv)

    setup_logging(args.log_file)
    archive = Path(args.archive)
    url = args.database or f"sqlite:///{archive / 'messages.db'}"

    try:
        importer = ArchiveImporter.for_url(url)
        stats = importer.import_log(archive / LOG_NAME)
    except (ArchiveCorruptError, SQLAlchemyError, OSError, UnicodeDecodeError) as e:
        logger.error(f"Import failed: {e}")
        sys.exit(1)

    print(f"{Colors.GREEN}Imported {stats.inserted} messages{Colors.ENDC} "
          f"({stats.skipped} already present)")
    sys.exit(0)


if __name__ == '__main__':
    main()
