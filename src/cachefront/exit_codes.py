"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to a specific error category and is referenced by the
corresponding :class:`~cachefront.exceptions.CachefrontError` subclass.
Deploy scripts can inspect the exit code of ``cachefront install`` to tell
a broken store from a broken network without parsing stderr.

Example::

    $ cachefront install
    $ echo $?
    3   # EXIT_STORE_FAILURE -- the cache store could not be opened
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments or an invalid store name."""

EXIT_STORE_FAILURE = 3
"""A cache store could not be opened or deleted."""

EXIT_CONNECTION_ERROR = 6
"""A network-level error occurred (timeout, DNS failure, connection refused)."""

EXIT_PAYLOAD_ERROR = 8
"""A push payload could not be decoded."""
