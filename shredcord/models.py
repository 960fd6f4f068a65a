"""Value types for the subset of Discord's message schema shredcord needs.

Everything beyond identity, author, channel, guild, content and attachments
stays in ``Message.payload`` untouched, so the archive keeps the full object.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

DISCORD_WEB_BASE = "https://discord.com/channels"


def channel_url(guild_id: Optional[int], channel_id: int) -> str:
    """Browser link to a channel, using ``@me`` for DMs."""
    guild = str(guild_id) if guild_id else "@me"
    return f"{DISCORD_WEB_BASE}/{guild}/{channel_id}"


@dataclass(frozen=True)
class Attachment:
    ordinal: int
    filename: str
    url: str


@dataclass
class Message:
    id: int
    author_id: int
    channel_id: int
    guild_id: Optional[int]
    content: str
    attachments: List[Attachment] = field(default_factory=list)
    payload: Dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_payload(cls, data: Dict[str, Any], guild_id: Optional[int] = None) -> "Message":
        """Build a Message from a raw API object.

        Search results do not carry ``guild_id``, so the caller can stamp the
        guild it searched; the stamp is written back into the payload too.
        """
        payload = dict(data)
        if guild_id and not payload.get("guild_id"):
            payload["guild_id"] = str(guild_id)
        raw_guild = payload.get("guild_id")
        attachments = [
            Attachment(ordinal=n, filename=att.get("filename", ""), url=att.get("url", ""))
            for n, att in enumerate(payload.get("attachments") or [])
        ]
        return cls(
            id=int(payload["id"]),
            author_id=int(payload["author"]["id"]),
            channel_id=int(payload["channel_id"]),
            guild_id=int(raw_guild) if raw_guild else None,
            content=payload.get("content", ""),
            attachments=attachments,
            payload=payload,
        )

    @property
    def url(self) -> str:
        return f"{channel_url(self.guild_id, self.channel_id)}/{self.id}"


@dataclass
class SearchPage:
    """One page of search hits plus the remaining count at query time."""

    messages: List[Message]
    total_results: int

    @property
    def is_terminal(self) -> bool:
        return self.total_results == 0
