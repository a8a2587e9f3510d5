"""
fldd CLI -- Shared-Library Dependency Lister
=============================================

Click-based command-line interface.  Prints the interpreter and every
shared library a program transitively needs, one path per line, or
writes the list to a file.

Usage::

    # List to standard output
    fldd /usr/bin/ls

    # Store the list in a file (created/truncated, mode 0644)
    fldd /usr/bin/ls /run/app/libs.list

    # Show scan progress on stderr
    fldd /usr/bin/ls --verbose

Setting ``FIREJAIL_QUIET=yes`` suppresses the warnings about skipped
binaries and libraries; the list and the exit status are unaffected.

References:
    - Click documentation: https://click.palletsprojects.com/
"""

from __future__ import annotations

import os
from typing import BinaryIO, Optional

import click

from shared.config import ConfigError, FlddConfig, TOMLDecodeError
from shared.logger import FlddLogger

from fldd.core.engine import DependencyResolver, ResolverState

_CONTEXT_SETTINGS = {"help_option_names": ["-h", "--help", "-?"]}


class _FlddCommand(click.Command):
    """Command whose usage errors exit with status 1."""

    def parse_args(self, ctx: click.Context, args: list[str]) -> list[str]:
        try:
            return super().parse_args(ctx, args)
        except click.UsageError as exc:
            exc.exit_code = 1
            raise


def _usage_error(ctx: click.Context, message: str) -> click.UsageError:
    exc = click.UsageError(message, ctx=ctx)
    exc.exit_code = 1
    return exc


def _open_output(ctx: click.Context, path: str, mode: int) -> BinaryIO:
    try:
        fd = os.open(path, os.O_CREAT | os.O_TRUNC | os.O_WRONLY, mode)
    except OSError as exc:
        raise _usage_error(ctx, f"cannot open {path}: {exc.strerror}") from exc
    return os.fdopen(fd, "wb")


# ---------------------------------------------------------------------------
# Command
# ---------------------------------------------------------------------------

@click.command("fldd", cls=_FlddCommand, context_settings=_CONTEXT_SETTINGS)
@click.argument("program", type=click.Path())
@click.argument("output_file", required=False, type=click.Path(dir_okay=False))
@click.option(
    "--config", "-c",
    "config_path",
    type=click.Path(dir_okay=False),
    default=None,
    help="TOML configuration file (default: config.toml in the project root).",
)
@click.option(
    "--verbose", "-v",
    is_flag=True,
    default=False,
    help="Log scan progress to stderr.",
)
@click.pass_context
def fldd_cli(
    ctx: click.Context,
    program: str,
    output_file: Optional[str],
    config_path: Optional[str],
    verbose: bool,
) -> None:
    """Print a list of libraries used by PROGRAM or store it in OUTPUT_FILE.

    PROGRAM is an ELF executable or shared library.  The list holds the
    dynamic loader and every library found through RPATH/RUNPATH and the
    default library directories, most recently resolved first.

    Examples:

    \b
        fldd /usr/bin/ls
        fldd /usr/bin/ls libs.list
    """
    try:
        config = FlddConfig.load(config_path)
    except FileNotFoundError as exc:
        raise _usage_error(ctx, str(exc)) from exc
    except (OSError, TOMLDecodeError, ConfigError) as exc:
        raise _usage_error(ctx, f"invalid configuration {config_path}: {exc}") from exc

    if not os.access(program, os.R_OK):
        raise _usage_error(ctx, f"cannot access {program}")

    quiet = os.environ.get(config.resolver.quiet_env_var) == "yes"
    settings = config.global_settings
    if verbose or settings.debug:
        log_level = "DEBUG"
    elif quiet:
        log_level = "ERROR"
    else:
        log_level = settings.log_level
    logger = FlddLogger(
        "resolver",
        log_level=log_level,
        log_file=settings.log_file or None,
        json_logs=settings.log_json,
    )
    logger.debug("configuration: %s", config.to_dict())

    out: Optional[BinaryIO] = None
    if output_file is not None:
        out = _open_output(ctx, output_file, config.resolver.output_mode)

    try:
        state = ResolverState.from_config(config.resolver)
        resolver = DependencyResolver(state, config=config.resolver, logger=logger)
        result = resolver.resolve(program)

        # Paths come from the file system and may not be valid UTF-8
        listing = os.fsencode(result.render())
        if out is not None:
            out.write(listing)
        else:
            stdout = click.get_binary_stream("stdout")
            stdout.write(listing)
            stdout.flush()
    finally:
        if out is not None:
            out.close()


# ---------------------------------------------------------------------------
# Module entry point
# ---------------------------------------------------------------------------

def main() -> None:
    """Entry point for the ``fldd`` console script and ``python -m fldd``."""
    fldd_cli(prog_name="fldd")


if __name__ == "__main__":
    main()
