"""Exception taxonomy for destination adapters.

Configuration and bootstrap errors are fatal and propagate to the
dispatcher. Contention errors are transient and retried by the retry
engine; anything else raised from a write becomes an ``error`` result.
"""

from __future__ import annotations


class ProxyError(Exception):
    """Base error for the events proxy."""


class ConfigurationError(ProxyError):
    """Missing credential, unknown record kind, or other invalid setup."""


class BootstrapError(ProxyError):
    """A destination resource could not be verified or created."""


class InvalidStateError(BootstrapError):
    """The backend reported a successful connect but fails liveness checks."""


class RecoverableContentionError(ProxyError):
    """Transient contention on a backend resource; safe to retry."""


class TableLockedError(RecoverableContentionError):
    """The target table is locked by another writer."""


def is_recoverable(exc: BaseException) -> bool:
    return isinstance(exc, RecoverableContentionError)
