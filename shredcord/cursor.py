import logging
from typing import Dict, List, Optional

from .client import DiscordClient
from .models import Message, SearchPage

logger = logging.getLogger(__name__)


class SearchCursor:
    """Pages through the account's messages oldest-first.

    Every page is a fresh query filtered by ``min_id``, so messages deleted
    since the last page simply drop out of the results instead of shifting
    an offset. The owner calls :meth:`advance` after each processed message.
    """

    def __init__(self, client: DiscordClient, author_id: int,
                 guild_id: Optional[int] = None, channel_id: Optional[int] = None,
                 min_id: Optional[int] = None):
        if not guild_id and not channel_id:
            raise ValueError("at least one of guild_id and channel_id is required")
        self.client = client
        self.author_id = author_id
        self.guild_id = guild_id
        self.channel_id = channel_id
        self.min_id = min_id

    def query(self) -> Dict[str, object]:
        params = {
            'author_id': self.author_id,
            'include_nsfw': 'true',
            'sort_by': 'timestamp',
            'sort_order': 'asc',
        }
        if self.min_id is not None:
            params['min_id'] = self.min_id
        return params

    def next_page(self) -> SearchPage:
        result = self.client.search(self.guild_id, self.channel_id, self.query())

        # Search returns groups of hit plus context. Only hits are kept, since
        # advancing past a newer context message would skip unseen hits.
        seen = {}
        for group in result.get('messages', []):
            for raw in group:
                if not raw.get('hit', True):
                    continue
                message = Message.from_payload(raw, guild_id=self.guild_id)
                if self.min_id is not None and message.id < self.min_id:
                    continue
                seen.setdefault(message.id, message)

        messages: List[Message] = [seen[mid] for mid in sorted(seen)]
        return SearchPage(messages=messages, total_results=int(result.get('total_results', 0)))

    def advance(self, message_id: int) -> None:
        """Move the cursor past ``message_id``; never moves backwards."""
        next_id = message_id + 1
        if self.min_id is None or next_id > self.min_id:
            self.min_id = next_id
            logger.debug(f"Cursor advanced: min_id={self.min_id}")
