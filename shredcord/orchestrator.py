"""The deletion run: page, archive, delete, advance, repeat."""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Optional

from .archive import ArchiveWriter
from .cursor import SearchCursor
from .errors import ArchiveError, DeletionError, RequestCancelled
from .models import Message
from .pause import PauseController
from .policy import DeletionPolicy

logger = logging.getLogger(__name__)


class RunState(Enum):
    PAGING = "paging"
    PROCESSING = "processing"
    PAUSED = "paused"
    DONE = "done"
    CANCELLED = "cancelled"


@dataclass
class RunStats:
    state: RunState = RunState.PAGING
    processed: int = 0
    deleted: int = 0
    failed: int = 0
    skipped: int = 0
    archived: int = 0
    archive_failed: int = 0
    pages: int = 0
    start_time: datetime = field(default_factory=datetime.now)
    end_time: Optional[datetime] = None
    cursor: Optional[int] = None


class Orchestrator:
    """Runs one deletion sweep over everything the cursor can find.

    Per-message archive and delete failures are logged and skipped; the
    cursor advances past every message either way. Search failures propagate
    out of :meth:`run`. :meth:`stop` may be called from a signal handler and
    takes effect at the next checkpoint.
    """

    def __init__(self, cursor: SearchCursor, policy: DeletionPolicy, self_id: int,
                 archive: Optional[ArchiveWriter] = None,
                 pause: Optional[PauseController] = None,
                 dry_run: bool = False, delete_delay: float = 0,
                 search_delay: float = 10, max_empty_pages: int = 3,
                 sleep: Callable[[float], None] = time.sleep):
        self.cursor = cursor
        self.policy = policy
        self.self_id = self_id
        self.archive = archive
        self.pause = pause or PauseController()
        self.dry_run = dry_run
        self.delete_delay = delete_delay
        self.search_delay = search_delay
        self.max_empty_pages = max_empty_pages
        self.sleep = sleep
        self.should_stop = False
        self.stats = RunStats()

    @property
    def state(self) -> RunState:
        return self.stats.state

    def stop(self) -> None:
        self.should_stop = True
        self.pause.stop()
        # wake any rate-limit wait in progress
        self.cursor.client.stop()
        if self.policy.client is not self.cursor.client:
            self.policy.client.stop()

    def run(self) -> RunStats:
        self.stats = RunStats(cursor=self.cursor.min_id)
        try:
            return self._run()
        except RequestCancelled as e:
            logger.info(f"Cancelled: {e}")
            return self._finish(RunState.CANCELLED)

    def _run(self) -> RunStats:
        started = time.monotonic()
        empty_pages = 0

        while True:
            if self.should_stop:
                return self._finish(RunState.CANCELLED)

            self.stats.state = RunState.PAGING
            page = self.cursor.next_page()
            self.stats.pages += 1
            logger.info(f"{page.total_results} messages remaining.")
            if self.stats.processed > 0:
                elapsed = time.monotonic() - started
                eta = timedelta(seconds=round(elapsed / self.stats.processed * page.total_results))
                logger.info(f"Estimated remaining time: {eta}")

            if page.is_terminal:
                return self._finish(RunState.DONE)

            if not page.messages:
                # The index can report stale totals after a burst of deletes.
                empty_pages += 1
                if empty_pages >= self.max_empty_pages:
                    logger.warning(f"No messages returned after {empty_pages} pages "
                                   f"despite {page.total_results} reported, stopping")
                    return self._finish(RunState.DONE)
                logger.info(f"Empty page ({empty_pages}/{self.max_empty_pages}), waiting before retry")
                self.sleep(self.search_delay)
                continue
            empty_pages = 0

            self.stats.state = RunState.PROCESSING
            for message in page.messages:
                if not self._process(message):
                    return self._finish(RunState.CANCELLED)

    def _process(self, message: Message) -> bool:
        """Handle one message; ``False`` means the run was cancelled first."""
        if self.should_stop:
            return False
        if self.pause.pending:
            self.stats.state = RunState.PAUSED
        if not self.pause.checkpoint():
            return False
        self.stats.state = RunState.PROCESSING

        if self.archive is not None:
            try:
                self.archive.archive(message)
                self.stats.archived += 1
            except ArchiveError as e:
                self.stats.archive_failed += 1
                logger.error(f"Error logging message {message.url}: {e}")

        if message.author_id != self.self_id:
            self.stats.skipped += 1
            logger.debug(f"Skipping {message.url}, not authored by us")
        elif not self.dry_run:
            if self.should_stop:
                return False
            try:
                self.policy.delete(message)
                self.stats.deleted += 1
            except DeletionError as e:
                self.stats.failed += 1
                logger.error(f"Error deleting {message.url}: {e}")
            if self.delete_delay:
                self.sleep(self.delete_delay)

        self.stats.processed += 1
        self.cursor.advance(message.id)
        self.stats.cursor = self.cursor.min_id
        return True

    def _finish(self, state: RunState) -> RunStats:
        self.stats.state = state
        self.stats.end_time = datetime.now()
        self.stats.cursor = self.cursor.min_id
        logger.info(f"Run finished: {state.value} (deleted={self.stats.deleted}, "
                    f"failed={self.stats.failed}, skipped={self.stats.skipped}, cursor={self.stats.cursor})")
        return self.stats
