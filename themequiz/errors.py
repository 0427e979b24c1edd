"""
Exceptions raised by the game engine and its collaborators.
"""


class ThemeQuizError(Exception):
    """Base exception for theme quiz errors."""
    pass


class PreconditionError(ThemeQuizError):
    """Raised when the requester cannot start or continue a round."""

    translation_key = "errors.precondition"


class NoVoiceChannel(PreconditionError):
    """Raised when the requester is not connected to a voice channel."""

    translation_key = "errors.no_voice_channel"


class InvalidChannelType(PreconditionError):
    """Raised when the referenced channel is not a voice channel."""

    translation_key = "errors.invalid_channel_type"


class ThemeUnavailable(ThemeQuizError):
    """Raised when no unused theme could be selected."""

    translation_key = "errors.theme_unavailable"


class StreamUnavailable(ThemeQuizError):
    """Raised when the audio stream for a theme cannot be loaded."""

    translation_key = "errors.stream_unavailable"


class ThemeSourceError(ThemeQuizError):
    """Raised by theme and metadata providers when a lookup fails."""
    pass


class PersistenceFailure(ThemeQuizError):
    """Raised when the storage backend cannot read or write a document."""
    pass


class StaleDocumentError(PersistenceFailure):
    """Raised when a document is saved from an outdated revision."""
    pass


class PerUserSideEffectFailure(ThemeQuizError):
    """Raised when scoring or leveling fails for a single answerer."""

    def __init__(self, user_id: int, operation: str, cause: Exception):
        super().__init__(f"{operation} failed for user {user_id}: {cause}")
        self.user_id = user_id
        self.operation = operation
        self.cause = cause
