"""
crosstalk.engine.errors — Error Kinds for Global Chat Operations
=================================================================

Registry and moderation operations raise a :class:`GlobalChatError`
subclass.  The exception message is already phrased for end users; the
admin boundary (:mod:`crosstalk.services.admin_service`) turns it into the
``str | None`` result the command layer renders.
"""

from __future__ import annotations

import enum


class ErrorKind(enum.StrEnum):
    """Tag carried by every :class:`GlobalChatError`."""
    NOT_FOUND = "not_found"
    ALREADY_LINKED = "already_linked"
    CHANNEL_IN_USE = "channel_in_use"
    BANNED = "banned"
    KEY_MISMATCH = "key_mismatch"
    PERMISSION_DENIED = "permission_denied"
    WEBHOOK_FAILURE = "webhook_failure"
    PERSISTENCE_FAILURE = "persistence_failure"
    SILENT_DROP = "silent_drop"


class GlobalChatError(Exception):
    """Base class; ``kind`` identifies the failure without string matching."""

    kind: ErrorKind = ErrorKind.NOT_FOUND

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFound(GlobalChatError):
    kind = ErrorKind.NOT_FOUND


class AlreadyLinked(GlobalChatError):
    kind = ErrorKind.ALREADY_LINKED


class ChannelInUse(AlreadyLinked):
    """The tenant channel already backs a *different* global channel."""
    kind = ErrorKind.CHANNEL_IN_USE


class Banned(GlobalChatError):
    kind = ErrorKind.BANNED


class KeyMismatch(GlobalChatError):
    kind = ErrorKind.KEY_MISMATCH


class PermissionDenied(GlobalChatError):
    kind = ErrorKind.PERMISSION_DENIED


class WebhookFailure(GlobalChatError):
    kind = ErrorKind.WEBHOOK_FAILURE


class PersistenceFailure(GlobalChatError):
    """Saving the registry failed; the in-memory change was rolled back."""
    kind = ErrorKind.PERSISTENCE_FAILURE
