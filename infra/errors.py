"""Custom exceptions for spelling practice."""


class SpellingError(Exception):
    """Base class for spelling practice errors."""


class NoActiveListError(SpellingError):
    """Raised when no active, non-empty word list is available for a session."""


class SpeechUnavailableError(SpellingError):
    """Raised when the speech engine is missing or fails to speak."""


class BackendError(SpellingError):
    """Raised for transport or HTTP failures talking to the hosted backend."""


class ListLoadError(SpellingError):
    """Raised for transient failures fetching active word lists."""


class PersistenceError(SpellingError):
    """Raised when a finished session result cannot be recorded."""


class InvalidSessionOperation(SpellingError):
    """Raised when a session operation is called in the wrong phase."""
