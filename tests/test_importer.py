import json

import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session

from conftest import CHANNEL_ID, GUILD_ID, OTHER_ID, make_payload
from shredcord.archive import log_header
from shredcord.errors import ArchiveCorruptError
from shredcord.importer import ArchiveImporter, StoredMessage, parse_line


def log_line(payload, guild_id=GUILD_ID):
    header = log_header(guild_id, int(payload["channel_id"]), int(payload["id"]))
    return header + json.dumps(payload, separators=(",", ":")) + "\n"


@pytest.fixture
def engine(tmp_path):
    return create_engine(f"sqlite:///{tmp_path / 'messages.db'}")


def rows(engine):
    with Session(engine) as session:
        return {
            row.id: (row.author, row.channel, row.guild, row.content, row.json)
            for row in session.scalars(select(StoredMessage))
        }


def test_parse_line_header():
    entry = parse_line(',6,7 {"id":"7"}', 1)
    assert entry.guild_id is None
    assert (entry.channel_id, entry.message_id) == (6, 7)
    assert entry.raw_json == '{"id":"7"}'


@pytest.mark.parametrize("line", ["garbage", "1,2 {}", "a,b,c {}"])
def test_parse_line_rejects_bad_headers(line):
    with pytest.raises(ArchiveCorruptError):
        parse_line(line, 3)


def test_import_splits_content_from_json(tmp_path, engine):
    payload = make_payload(11, author_id=OTHER_ID, content="hello, world")
    log = tmp_path / "messages"
    log.write_text(log_line(payload) + log_line(make_payload(12), guild_id=None))

    stats = ArchiveImporter(engine).import_log(log)
    assert stats.inserted == 2

    stored = rows(engine)
    author, channel, guild, content, raw = stored[11]
    assert (author, channel, guild) == (OTHER_ID, CHANNEL_ID, GUILD_ID)
    assert content == "hello, world"
    remainder = json.loads(raw)
    assert "content" not in remainder
    assert dict(remainder, content=content) == payload
    assert stored[12][2] is None


def test_import_twice_is_idempotent(tmp_path, engine):
    log = tmp_path / "messages"
    log.write_text("".join(log_line(make_payload(i)) for i in (1, 2, 3)))
    importer = ArchiveImporter(engine)

    first = importer.import_log(log)
    before = rows(engine)
    second = importer.import_log(log)

    assert first.inserted == 3
    assert second.inserted == 0
    assert second.skipped == 3
    assert rows(engine) == before


def test_import_picks_up_grown_log(tmp_path, engine):
    log = tmp_path / "messages"
    log.write_text(log_line(make_payload(1)))
    importer = ArchiveImporter(engine)
    importer.import_log(log)
    with open(log, "a") as f:
        f.write(log_line(make_payload(2)))
    stats = importer.import_log(log)
    assert (stats.inserted, stats.skipped) == (1, 1)
    assert set(rows(engine)) == {1, 2}


def test_torn_final_line_is_skipped(tmp_path, engine):
    log = tmp_path / "messages"
    log.write_text(log_line(make_payload(1)) + f"{GUILD_ID},{CHANNEL_ID},2 " + '{"id":"2","cha')
    stats = ArchiveImporter(engine).import_log(log)
    assert stats.inserted == 1
    assert stats.torn == 1


def test_malformed_line_in_the_middle_aborts(tmp_path, engine):
    log = tmp_path / "messages"
    log.write_text(log_line(make_payload(1)) + "not a log line\n" + log_line(make_payload(3)))
    with pytest.raises(ArchiveCorruptError) as excinfo:
        ArchiveImporter(engine).import_log(log)
    assert excinfo.value.line_number == 2
    assert set(rows(engine)) == {1}


def test_bad_json_aborts(tmp_path, engine):
    log = tmp_path / "messages"
    log.write_text(f"{GUILD_ID},{CHANNEL_ID},5 {{broken\n")
    with pytest.raises(ArchiveCorruptError):
        ArchiveImporter(engine).import_log(log)


def test_insert_race_is_benign(tmp_path, engine, monkeypatch):
    log = tmp_path / "messages"
    log.write_text(log_line(make_payload(1)) + log_line(make_payload(1)))
    # defeat the pre-check so the primary key has to catch the repeat
    monkeypatch.setattr(Session, "scalar", lambda self, *args, **kwargs: None)
    stats = ArchiveImporter(engine).import_log(log)
    assert stats.inserted == 1
    assert stats.duplicates == 1
    monkeypatch.undo()
    assert set(rows(engine)) == {1}
