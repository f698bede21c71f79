"""Exception hierarchy for joinsounds.

None of these reach the host: config and catalog errors are recovered at the
load boundary, backend errors are absorbed by the coordinator and the
fallback logic. They exist so each layer can signal precisely what failed.
"""


class JoinSoundsError(Exception):
    """Base class for all joinsounds errors."""


class ConfigValueError(JoinSoundsError, ValueError):
    """A configuration value could not be coerced to the expected type."""


class CatalogEntryError(JoinSoundsError):
    """A signal definition is missing a required field or is malformed."""

    def __init__(self, signal_id: str, reason: str):
        super().__init__(f"{signal_id}: {reason}")
        self.signal_id = signal_id
        self.reason = reason


class BackendInitError(JoinSoundsError):
    """Storage backend could not be initialized (driver, connection, schema)."""


class BackendIOError(JoinSoundsError):
    """A read or write against an initialized backend failed.

    ``user_ids`` lists the records the failed operation was carrying so the
    coordinator can re-queue them.
    """

    def __init__(self, message: str, user_ids=()):
        super().__init__(message)
        self.user_ids = tuple(user_ids)
