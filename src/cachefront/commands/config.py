"""Config commands -- view and modify global configuration.

Provides the ``cachefront config`` sub-command group for reading,
updating, and resetting the user's global configuration file
(:class:`~cachefront.models.GlobalConfig`).  Settings control the default
output format and where cache stores live on disk.  Per-application
worker settings are not stored here; they come from ``--config``.
"""

from __future__ import annotations

import typer
from pydantic import ValidationError

from cachefront.exit_codes import EXIT_INVALID_USAGE
from cachefront.output import error, format_response, info, success


config_app = typer.Typer(no_args_is_help=True)


@config_app.command("show")
def config_show() -> None:
    """Show current configuration.

    Example::

        cachefront config show
        cachefront --json config show
    """
    from cachefront.config import get_config_dir, get_storage_dir, load_global_config

    config = load_global_config()
    info(f"Config directory: {get_config_dir()}")
    info(f"Storage directory: {get_storage_dir(config)}")
    format_response(config.model_dump(mode="json"))


@config_app.command("set")
def config_set(
    key: str = typer.Argument(
        help="Config key (dot notation, e.g., 'output.format')."
    ),
    value: str = typer.Argument(help="Value to set."),
) -> None:
    """Set a configuration value.

    Uses dot notation for nested keys.  ``none`` or an empty string clears
    an optional setting such as ``storage.directory``.

    Example::

        cachefront config set output.format json
        cachefront config set storage.directory ~/stores
    """
    from cachefront.config import load_global_config, save_global_config
    from cachefront.models import GlobalConfig

    config = load_global_config()
    data = config.model_dump(mode="json")

    keys = key.split(".")
    target = data
    for k in keys[:-1]:
        if k not in target or not isinstance(target[k], dict):
            error(f"Invalid config key: {key}")
            raise typer.Exit(code=EXIT_INVALID_USAGE)
        target = target[k]

    final_key = keys[-1]
    if final_key not in target or isinstance(target[final_key], dict):
        error(f"Unknown config key: {key}")
        raise typer.Exit(code=EXIT_INVALID_USAGE)

    coerced = None if value.lower() in ("", "none", "null") else value
    target[final_key] = coerced

    try:
        new_config = GlobalConfig.model_validate(data)
    except ValidationError as exc:
        error(f"Validation error: {exc}")
        raise typer.Exit(code=EXIT_INVALID_USAGE) from None

    save_global_config(new_config)
    success(f"Set {key} = {coerced}")


@config_app.command("reset")
def config_reset(
    ctx: typer.Context,
) -> None:
    """Reset configuration to defaults.

    Asks for confirmation unless ``--force`` is active.

    Example::

        cachefront --force config reset
    """
    from cachefront.config import save_global_config
    from cachefront.models import GlobalConfig

    force = ctx.obj.get("force", False) if ctx.obj else False
    if not force:
        confirmed = typer.confirm("Reset all config to defaults?")
        if not confirmed:
            info("Cancelled.")
            raise typer.Exit()

    save_global_config(GlobalConfig())
    success("Configuration reset to defaults.")
