"""Thin Discord REST client covering search, delete and send."""

import logging
import threading
from typing import Any, Callable, Dict, Optional
from urllib.parse import urlencode

import requests

from .errors import DiscordAPIError, RequestCancelled

DISCORD_API_BASE = "https://discord.com/api/v9"
USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"

# Discord JSON error codes
UNKNOWN_MESSAGE = 10008
SYSTEM_MESSAGE_ACTION_UNAVAILABLE = 50021
INVALID_ACTION_ON_ARCHIVED_THREAD = 50083

logger = logging.getLogger(__name__)


class DiscordClient:
    """Issues authenticated requests against the Discord API.

    Rate limits (429) are waited out for the ``retry_after`` the service
    reports, up to ``max_retries`` times. Any other failure raises
    :class:`DiscordAPIError`. After :meth:`stop`, waits end early and
    :class:`RequestCancelled` is raised instead of issuing another request.
    """

    def __init__(self, token: str, session: Optional[requests.Session] = None,
                 max_retries: int = 5, timeout: float = 30,
                 sleep: Optional[Callable[[float], None]] = None):
        self.session = session or requests.Session()
        self.session.headers.update({
            'Authorization': token,
            'User-Agent': USER_AGENT
        })
        self.max_retries = max_retries
        self.timeout = timeout
        self.sleep = sleep
        self.rate_limited = 0
        self._stopped = threading.Event()

    def stop(self) -> None:
        """Cut short any retry wait; no further request is issued."""
        self._stopped.set()

    def _wait(self, seconds: float) -> None:
        if self.sleep is not None:
            self.sleep(seconds)
        else:
            self._stopped.wait(seconds)
        if self._stopped.is_set():
            raise RequestCancelled(f"stopped while waiting {seconds}s to retry")

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        url = f"{DISCORD_API_BASE}{path}"
        for attempt in range(self.max_retries + 1):
            if self._stopped.is_set():
                raise RequestCancelled(f"stopped before {method} {path}")
            try:
                response = self.session.request(method, url, timeout=self.timeout, **kwargs)
            except requests.exceptions.RequestException as e:
                raise DiscordAPIError(0, 0, f"{method} {path}: {e}") from e

            if response.status_code != 429:
                break
            self.rate_limited += 1
            if attempt == self.max_retries:
                logger.warning(f"Rate limited on {method} {path}, giving up after {self.max_retries} retries")
                break

            retry_after = _json_body(response).get('retry_after', 5)
            logger.warning(f"Rate limited on {method} {path}, waiting {retry_after}s "
                           f"(retry {attempt + 1}/{self.max_retries})")
            self._wait(retry_after)

        if response.status_code >= 400:
            body = _json_body(response)
            raise DiscordAPIError(
                response.status_code,
                int(body.get('code', 0) or 0),
                body.get('message') or response.text,
            )
        return response

    def me(self) -> Dict[str, Any]:
        """Return the authenticated user object."""
        return self._request('GET', '/users/@me').json()

    def channel(self, channel_id: int) -> Dict[str, Any]:
        return self._request('GET', f'/channels/{channel_id}').json()

    def search(self, guild_id: Optional[int], channel_id: Optional[int],
               params: Dict[str, Any]) -> Dict[str, Any]:
        """Run a message search.

        Guild targets hit the guild endpoint (narrowed by ``channel_id`` when
        given); DMs hit the channel endpoint. A 202 means the index is still
        being built, so the same query is re-issued after ``retry_after``.
        """
        if guild_id:
            path = f'/guilds/{guild_id}/messages/search'
            if channel_id:
                params = dict(params, channel_id=channel_id)
        else:
            path = f'/channels/{channel_id}/messages/search'

        while True:
            logger.debug(f"Searching messages: {path}?{urlencode(params)}")
            response = self._request('GET', path, params=params)
            if response.status_code != 202:
                return response.json()
            retry_after = _json_body(response).get('retry_after', 5)
            logger.info(f"Channel not indexed, waiting {retry_after}s")
            self._wait(retry_after)

    def delete_message(self, channel_id: int, message_id: int) -> None:
        self._request('DELETE', f'/channels/{channel_id}/messages/{message_id}')

    def send_message(self, channel_id: int, content: str) -> Dict[str, Any]:
        return self._request('POST', f'/channels/{channel_id}/messages',
                             json={'content': content}).json()


def _json_body(response: requests.Response) -> Dict[str, Any]:
    try:
        body = response.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}
