"""Built-in CLI sub-commands for cachefront.

This package groups the Typer sub-command modules that form the CLI's
top-level command tree:

* :mod:`~cachefront.commands.worker` -- drive a worker: ``install``,
  ``stores``, ``fetch``, ``clear``, ``version`` and ``push``.
* :mod:`~cachefront.commands.config` -- view and modify global settings.

The worker commands are plain callbacks registered directly on the root
app; ``config`` is a :class:`typer.Typer` sub-application.
"""
