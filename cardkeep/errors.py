"""Exception types shared across cardkeep."""


class CardkeepError(Exception):
    """Base class for all cardkeep errors."""
    pass


class ConfigError(CardkeepError):
    """Raised when configuration is invalid or unreadable."""
    pass


class ValidationError(CardkeepError):
    """Raised when a card or category field fails validation.

    Always raised before any store mutation.
    """

    def __init__(self, field: str, message: str):
        super().__init__(message)
        self.field = field
        self.message = message


class StorageError(CardkeepError):
    """Raised by a key-value backend when a read or write fails."""
    pass


class PersistenceFailed(CardkeepError):
    """Raised by the store in strict mode when a write did not persist."""
    pass
