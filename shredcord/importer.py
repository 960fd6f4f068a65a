"""Loads the archive log into a SQL store, one row per message.

Safe to re-run over a log that has grown since the last import: ids already
in the store are skipped, and the primary key turns any insert race into a
no-op.
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

from sqlalchemy import BigInteger, Column, Text, create_engine, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, declarative_base

from .errors import ArchiveCorruptError

logger = logging.getLogger(__name__)

Base = declarative_base()


class StoredMessage(Base):
    __tablename__ = "Message"

    id = Column(BigInteger, primary_key=True, autoincrement=False)
    author = Column(BigInteger, nullable=False)
    channel = Column(BigInteger, nullable=False)
    guild = Column(BigInteger, nullable=True)
    content = Column(Text, nullable=False)
    json = Column(Text, nullable=False)


@dataclass
class ImportStats:
    inserted: int = 0
    skipped: int = 0
    duplicates: int = 0
    torn: int = 0


@dataclass
class LogEntry:
    guild_id: Optional[int]
    channel_id: int
    message_id: int
    raw_json: str


def parse_line(line: str, line_number: int) -> LogEntry:
    """Split a log line into its header fields and JSON text."""
    header, sep, raw_json = line.partition(" ")
    fields = header.split(",")
    if not sep or len(fields) != 3:
        raise ArchiveCorruptError(line_number, f"bad header {header!r}")
    guild, channel, message = fields
    try:
        return LogEntry(
            guild_id=int(guild) if guild else None,
            channel_id=int(channel),
            message_id=int(message),
            raw_json=raw_json,
        )
    except ValueError as e:
        raise ArchiveCorruptError(line_number, f"bad id in header {header!r}") from e


def split_content(raw_json: str) -> Tuple[str, Dict[str, Any]]:
    """Return the message content and the payload without it."""
    payload = json.loads(raw_json)
    if not isinstance(payload, dict):
        raise ValueError("payload is not a JSON object")
    content = payload.pop("content", "") or ""
    return content, payload


class ArchiveImporter:

    def __init__(self, engine: Engine):
        self.engine = engine
        Base.metadata.create_all(engine)

    @classmethod
    def for_url(cls, url: str) -> "ArchiveImporter":
        return cls(create_engine(url))

    def import_log(self, path: Union[str, Path]) -> ImportStats:
        stats = ImportStats()
        with open(path, "r", encoding="utf-8") as f, Session(self.engine) as session:
            for line_number, line in enumerate(f, start=1):
                complete = line.endswith("\n")
                line = line.rstrip("\n")
                if not line:
                    continue
                try:
                    self._import_line(session, line, line_number, stats)
                except ArchiveCorruptError as e:
                    if complete:
                        raise
                    # Unterminated last line: an append cut short by a crash.
                    stats.torn += 1
                    logger.warning(f"Skipping torn final log line {line_number}: {e.reason}")

        logger.info(f"Import finished: {stats.inserted} inserted, {stats.skipped} already present, "
                    f"{stats.duplicates} duplicates, {stats.torn} torn")
        return stats

    def _import_line(self, session: Session, line: str, line_number: int, stats: ImportStats) -> None:
        entry = parse_line(line, line_number)

        exists = session.scalar(select(StoredMessage.id).where(StoredMessage.id == entry.message_id))
        if exists is not None:
            stats.skipped += 1
            return

        try:
            content, payload = split_content(entry.raw_json)
            author = int(payload["author"]["id"])
        except (ValueError, KeyError, TypeError) as e:
            raise ArchiveCorruptError(line_number, f"bad payload for {entry.message_id}: {e}") from e

        session.add(StoredMessage(
            id=entry.message_id,
            author=author,
            channel=entry.channel_id,
            guild=entry.guild_id,
            content=content,
            json=json.dumps(payload, separators=(",", ":"), ensure_ascii=False),
        ))
        try:
            session.commit()
        except IntegrityError:
            session.rollback()
            stats.duplicates += 1
            logger.debug(f"Message {entry.message_id} inserted concurrently, skipping")
            return
        stats.inserted += 1
