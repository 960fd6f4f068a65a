import logging

from .client import (
    INVALID_ACTION_ON_ARCHIVED_THREAD,
    SYSTEM_MESSAGE_ACTION_UNAVAILABLE,
    UNKNOWN_MESSAGE,
    DiscordClient,
)
from .errors import DeletionError, DiscordAPIError
from .models import Message, channel_url

logger = logging.getLogger(__name__)

# Sending anything into an archived thread un-archives it.
UNARCHIVE_PLACEHOLDER = "\u200b"

ALREADY_GONE = (UNKNOWN_MESSAGE, SYSTEM_MESSAGE_ACTION_UNAVAILABLE)


class DeletionPolicy:
    """Deletes one message, recovering from the failures that have a known fix."""

    def __init__(self, client: DiscordClient):
        self.client = client
        self.ghosts = 0
        self.unarchived = 0

    def delete(self, message: Message) -> None:
        """Delete ``message`` or raise :class:`DeletionError`.

        Unknown messages and undeletable system messages count as deleted.
        A message in an archived thread gets one recovery: a placeholder is
        sent to wake the thread, removed again, and the delete is retried.
        """
        recovered = False
        while True:
            try:
                self.client.delete_message(message.channel_id, message.id)
                return
            except DiscordAPIError as e:
                if e.code in ALREADY_GONE:
                    self.ghosts += 1
                    logger.debug(f"Message {message.id} already gone or undeletable (code {e.code})")
                    return
                if e.code != INVALID_ACTION_ON_ARCHIVED_THREAD or recovered:
                    raise DeletionError(f"deleting {message.url}: {e}") from e

            self._unarchive(message)
            recovered = True

    def _unarchive(self, message: Message) -> None:
        thread = channel_url(message.guild_id, message.channel_id)
        logger.info(f"Un-archiving thread {thread}")
        try:
            placeholder = self.client.send_message(message.channel_id, UNARCHIVE_PLACEHOLDER)
        except DiscordAPIError as e:
            raise DeletionError(f"sending message to unarchive thread {thread}: {e}") from e

        placeholder_url = f"{thread}/{placeholder.get('id')}"
        try:
            self.client.delete_message(message.channel_id, int(placeholder['id']))
        except DiscordAPIError as e:
            raise DeletionError(f"deleting unarchive-trigger message {placeholder_url}: {e}") from e
        self.unarchived += 1
