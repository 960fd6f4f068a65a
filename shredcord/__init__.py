"""
shredcord - archive, then bulk delete, your own Discord messages.

Walks the account's messages oldest-first through Discord search, writes each
one (and its attachments) to an append-only archive, deletes it, and moves a
min-id cursor past it so an interrupted run resumes where it stopped. The
archive can later be loaded into SQL with ``shredcord-import``.
"""

__version__ = "1.0.0"
