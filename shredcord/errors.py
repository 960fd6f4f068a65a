"""Exception types raised across shredcord."""


class ShredcordError(Exception):
    """Base class for every error shredcord raises on purpose."""


class ConfigError(ShredcordError):
    """Setup could not complete (missing token, bad config, no target)."""


class DiscordAPIError(ShredcordError):
    """A Discord REST call failed.

    ``status`` is the HTTP status (0 for transport failures) and ``code`` is
    Discord's JSON error code (0 when the body carried none).
    """

    def __init__(self, status: int, code: int, message: str):
        super().__init__(f"HTTP {status} (code {code}): {message}")
        self.status = status
        self.code = code
        self.message = message


class RequestCancelled(ShredcordError):
    """The run was stopped while a request was waiting to be (re)issued."""


class DeletionError(ShredcordError):
    """A message could not be deleted and needs manual follow-up."""


class ArchiveError(ShredcordError):
    """A message could not be archived."""


class AttachmentError(ArchiveError):
    """Attachment bytes could not be fetched or written."""


class ArchiveCorruptError(ShredcordError):
    """The archive log holds a line that cannot be parsed."""

    def __init__(self, line_number: int, reason: str):
        super().__init__(f"line {line_number}: {reason}")
        self.line_number = line_number
        self.reason = reason
