"""Exception hierarchy for cachefront.

All exceptions inherit from :class:`CachefrontError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`cachefront.exit_codes`.
The top-level error handler in :func:`cachefront.app.main` catches
``CachefrontError`` and exits with the appropriate code, while unexpected
exceptions produce a crash log and exit with :data:`EXIT_GENERIC_FAILURE`.

Only :class:`StoreError` is allowed to escape a lifecycle phase.  Network
failures during interception are recovered by the offline fallback chain,
control-command failures become structured replies, and malformed push
payloads are dropped by the gateway.

Subclass hierarchy::

    CachefrontError (exit 1)
    +-- InvalidUsageError   (exit 2)
    +-- StoreError          (exit 3)
    +-- FetchError          (exit 6)
    +-- PayloadError        (exit 8)
    +-- ConfigError         (exit 1)
"""

from cachefront.exit_codes import (
    EXIT_CONNECTION_ERROR,
    EXIT_GENERIC_FAILURE,
    EXIT_INVALID_USAGE,
    EXIT_PAYLOAD_ERROR,
    EXIT_STORE_FAILURE,
)


class CachefrontError(Exception):
    """Base exception for all cachefront errors.

    Every subclass sets a class-level ``exit_code`` corresponding to one of
    the constants in :mod:`cachefront.exit_codes`. The entry point catches
    this exception type and calls ``sys.exit(exc.exit_code)``.

    Args:
        message: Human-readable error description printed to stderr.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class InvalidUsageError(CachefrontError):
    """Raised for invalid CLI arguments or an unusable store name."""

    exit_code = EXIT_INVALID_USAGE


class StoreError(CachefrontError):
    """Raised when a cache store cannot be opened, read, written, or deleted."""

    exit_code = EXIT_STORE_FAILURE


class FetchError(CachefrontError):
    """Raised on network-level failures (timeout, DNS resolution, connection refused)."""

    exit_code = EXIT_CONNECTION_ERROR


class PayloadError(CachefrontError):
    """Raised when a push payload is not a JSON object of the expected shape."""

    exit_code = EXIT_PAYLOAD_ERROR


class ConfigError(CachefrontError):
    """Raised for configuration problems (missing worker config, invalid JSON or YAML)."""

    exit_code = EXIT_GENERIC_FAILURE
