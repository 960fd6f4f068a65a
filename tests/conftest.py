import itertools

import pytest

from shredcord.errors import DiscordAPIError

SELF_ID = 1000
OTHER_ID = 2000
GUILD_ID = 500
CHANNEL_ID = 600


def make_payload(message_id, author_id=SELF_ID, channel_id=CHANNEL_ID, content=None,
                 attachments=None):
    return {
        "id": str(message_id),
        "channel_id": str(channel_id),
        "author": {"id": str(author_id), "username": "someone"},
        "content": f"message {message_id}" if content is None else content,
        "attachments": attachments or [],
        "pinned": False,
        "timestamp": "2024-01-01T00:00:00+00:00",
    }


class FakeDiscord:
    """In-memory stand-in for DiscordClient backed by a dict of messages."""

    def __init__(self, payloads=(), page_size=25):
        self.messages = {int(p["id"]): p for p in payloads}
        self.page_size = page_size
        self.search_calls = []
        self.deletes = []
        self.sends = []
        self.delete_errors = {}
        self.send_error = None
        self.search_error = None
        self.on_search = None
        self.rate_limited = 0
        self.stopped = False
        self._ids = itertools.count(900000)

    def fail_delete(self, message_id, *codes):
        self.delete_errors[message_id] = [DiscordAPIError(400, code, "scripted") for code in codes]

    def stop(self):
        self.stopped = True

    def me(self):
        return {"id": str(SELF_ID), "username": "me"}

    def channel(self, channel_id):
        return {"id": str(channel_id), "guild_id": str(GUILD_ID)}

    def search(self, guild_id, channel_id, params):
        self.search_calls.append(dict(params))
        if self.on_search:
            self.on_search(len(self.search_calls))
        if self.search_error:
            raise self.search_error
        min_id = params.get("min_id", 0)
        remaining = sorted(mid for mid in self.messages if mid >= min_id)
        page = remaining[:self.page_size]
        return {
            "total_results": len(remaining),
            "messages": [[dict(self.messages[mid])] for mid in page],
        }

    def delete_message(self, channel_id, message_id):
        self.deletes.append(message_id)
        errors = self.delete_errors.get(message_id)
        if errors:
            raise errors.pop(0)
        if message_id not in self.messages:
            raise DiscordAPIError(404, 10008, "Unknown Message")
        del self.messages[message_id]

    def send_message(self, channel_id, content):
        if self.send_error:
            raise self.send_error
        message_id = next(self._ids)
        self.sends.append((channel_id, content))
        self.messages[message_id] = make_payload(message_id, channel_id=channel_id, content=content)
        return {"id": str(message_id)}


@pytest.fixture
def fake_discord():
    return FakeDiscord()
