from typing import Optional


class LinguaFlipError(Exception):
    """Base class for scheduling and sync errors."""


class InvalidQuality(LinguaFlipError, ValueError):
    """Recall quality outside 0-5. Raised before any state is touched."""

    def __init__(self, quality):
        super().__init__(f"Recall quality must be an integer between 0 and 5, got {quality!r}")
        self.quality = quality


class InvalidStateTransition(LinguaFlipError):
    def __init__(self, action: str, state: str):
        super().__init__(f"Cannot {action} while session is {state}")
        self.action = action
        self.state = state


class EmptyQueue(LinguaFlipError):
    def __init__(self):
        super().__init__("No due cards to study")


class CardNotFound(LinguaFlipError, KeyError):
    def __init__(self, card_id: str):
        super().__init__(card_id)
        self.card_id = card_id

    def __str__(self) -> str:
        return f"Card {self.card_id} not found"


class UserMismatch(LinguaFlipError, ValueError):
    """Sync requested for a user other than the one this card store belongs to."""

    def __init__(self, user_id: str, expected: str):
        super().__init__(f"Card store belongs to {expected!r}, cannot sync it as {user_id!r}")
        self.user_id = user_id
        self.expected = expected


class RemoteUnavailable(LinguaFlipError):
    """Remote store could not be reached. Treated like a network failure."""


class SyncDegraded(LinguaFlipError):
    """Remote unreachable after retries. Local data is kept and stays dirty."""

    def __init__(self, message: str, pending: int = 0, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.pending = pending
        self.cause = cause


class ConflictDiscarded(LinguaFlipError):
    """A write lost to a strictly newer copy under last-write-wins."""

    def __init__(self, card_id: str, direction: str, rejected_version, kept_version=None):
        message = f"Discarded {direction} write for card {card_id} at {rejected_version}"
        if kept_version is not None:
            message += f", kept {kept_version}"
        super().__init__(message)
        self.card_id = card_id
        self.direction = direction
        self.rejected_version = rejected_version
        self.kept_version = kept_version
