"""Archive messages and their attachments to disk before they are deleted.

Layout under the archive directory::

    messages                                   append-only log, one line per message
    attachments/<guild|dm>/<channel>/<message>,<n> <filename>

Each log line is ``"<guild>,<channel>,<message> "`` followed by the message
JSON. The guild field is empty for DMs.
"""

import json
import logging
import os
from pathlib import Path
from typing import Optional, Union

import requests

from .errors import ArchiveError, AttachmentError
from .models import Attachment, Message

LOG_NAME = "messages"
ATTACHMENT_DIR = "attachments"

logger = logging.getLogger(__name__)


def log_header(guild_id: Optional[int], channel_id: int, message_id: int) -> str:
    guild = str(guild_id) if guild_id else ""
    return f"{guild},{channel_id},{message_id} "


def attachment_path(root: Path, message: Message, attachment: Attachment) -> Path:
    guild = str(message.guild_id) if message.guild_id else "dm"
    name = f"{message.id},{attachment.ordinal} {os.path.basename(attachment.filename)}"
    return root / ATTACHMENT_DIR / guild / str(message.channel_id) / name


class AttachmentFetcher:
    """Downloads attachment bytes over HTTP."""

    def __init__(self, session: Optional[requests.Session] = None, timeout: float = 60,
                 chunk_size: int = 64 * 1024):
        self.session = session or requests.Session()
        self.timeout = timeout
        self.chunk_size = chunk_size

    def fetch(self, url: str, dest: Path) -> int:
        """Stream ``url`` into ``dest`` and return the byte count.

        A failed download leaves no file behind.
        """
        written = 0
        try:
            with self.session.get(url, stream=True, timeout=self.timeout) as response:
                response.raise_for_status()
                with open(dest, 'wb') as f:
                    for chunk in response.iter_content(chunk_size=self.chunk_size):
                        f.write(chunk)
                        written += len(chunk)
        except (requests.exceptions.RequestException, OSError) as e:
            if dest.exists():
                dest.unlink()
            raise AttachmentError(f"downloading {url}: {e}") from e
        return written


class ArchiveWriter:
    """Appends observed messages to the archive log."""

    def __init__(self, directory: Union[str, Path], fetcher: Optional[AttachmentFetcher] = None):
        self.directory = Path(directory)
        self.fetcher = fetcher or AttachmentFetcher()
        self.directory.mkdir(parents=True, exist_ok=True)
        self.log_path = self.directory / LOG_NAME
        # Append mode: a crash can at worst leave a torn final line.
        self._drop_torn_tail()
        self._log = open(self.log_path, 'a', encoding='utf-8')

    def _drop_torn_tail(self, chunk_size: int = 64 * 1024) -> None:
        """Truncate an unterminated last line left by an interrupted append."""
        if not self.log_path.exists():
            return
        with open(self.log_path, 'rb+') as f:
            end = f.seek(0, os.SEEK_END)
            if end == 0:
                return
            f.seek(end - 1)
            if f.read(1) == b"\n":
                return

            keep = 0
            pos = end
            while pos > 0:
                start = max(0, pos - chunk_size)
                f.seek(start)
                newline = f.read(pos - start).rfind(b"\n")
                if newline != -1:
                    keep = start + newline + 1
                    break
                pos = start
            f.truncate(keep)
        logger.warning(f"Dropped {end - keep} bytes of torn entry at the end of {self.log_path}")

    def archive(self, message: Message) -> str:
        """Store attachments then log the message; returns its content.

        Raises :class:`ArchiveError` if any attachment cannot be stored, in
        which case nothing is logged for the message.
        """
        for attachment in message.attachments:
            dest = attachment_path(self.directory, message, attachment)
            try:
                dest.parent.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise ArchiveError(f"creating {dest.parent}: {e}") from e
            size = self.fetcher.fetch(attachment.url, dest)
            logger.debug(f"Saved attachment {dest} ({size} bytes)")

        line = log_header(message.guild_id, message.channel_id, message.id)
        line += json.dumps(message.payload, separators=(',', ':'), ensure_ascii=False)
        try:
            self._log.write(line + "\n")
            self._log.flush()
        except OSError as e:
            raise ArchiveError(f"writing log entry for {message.id}: {e}") from e
        return message.content

    def close(self) -> None:
        if not self._log.closed:
            self._log.close()

    def __enter__(self) -> "ArchiveWriter":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
