"""CLI interface for pyremotesync."""

import logging
from pathlib import Path
from typing import Any, Callable, Optional

import click

from . import __version__
from .backends import Protocol, create_backend
from .config import ConnectionSettings, load_config_file
from .exceptions import ConfigError, SyncError
from .output import OutputFormatter
from .sync import SyncEngine, SyncMode, SyncPair, UnknownTimestampPolicy

logger = logging.getLogger(__name__)


def connection_options(func: Callable[..., Any]) -> Callable[..., Any]:
    """Options shared by the backup, restore and sync commands."""
    options = [
        click.option(
            "--protocol",
            type=click.Choice([p.value for p in Protocol], case_sensitive=False),
            default=Protocol.FTP.value,
            show_default=True,
            help="Transfer protocol",
        ),
        click.option("--server", "-s", help="Server name"),
        click.option(
            "--port",
            "-o",
            type=int,
            default=None,
            help="Server port (21 for FTP, 22 for SSH)",
        ),
        click.option("--user", "-u", envvar="PYREMOTESYNC_USER", help="Account username"),
        click.option(
            "--password",
            "-p",
            envvar="PYREMOTESYNC_PASSWORD",
            help="User password (or set PYREMOTESYNC_PASSWORD)",
        ),
        click.option("--remote", "-r", help="Remote directory"),
        click.option("--local", "-l", help="Local directory"),
        click.option("--no-tls", is_flag=True, help="Use plain FTP instead of FTPS"),
        click.option(
            "--accept-unknown-hosts",
            is_flag=True,
            help="Accept SSH servers missing from known_hosts",
        ),
        click.option(
            "--key-file",
            type=click.Path(dir_okay=False),
            default=None,
            help="Private key file for SSH authentication",
        ),
        click.option(
            "--dry-run", is_flag=True, help="Show what would be done without doing it"
        ),
        click.option(
            "--workers",
            type=int,
            default=1,
            help="Number of parallel workers per pass (default: 1)",
        ),
        click.option(
            "--ignore",
            multiple=True,
            help="Glob pattern to leave out of both trees (repeatable)",
        ),
        click.option(
            "--exclude-dot-files",
            is_flag=True,
            help="Leave out files and folders starting with a dot",
        ),
        click.option(
            "--strict",
            is_flag=True,
            help="Exit with status 1 if any single item failed",
        ),
    ]
    for option in reversed(options):
        func = option(func)
    return func


@click.group()
@click.option(
    "--config",
    "-c",
    "config_file",
    type=click.Path(dir_okay=False),
    default=None,
    help="Config file with key=value settings",
)
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output")
@click.option("--json", is_flag=True, help="Output in JSON format")
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose/debug logging output",
)
@click.version_option(version=__version__, prog_name="pyremotesync")
@click.pass_context
def main(
    ctx: Any,
    config_file: Optional[str],
    quiet: bool,
    json: bool,
    verbose: bool,
) -> None:
    """pyremotesync - Back up, restore and mirror directories over FTP, SFTP and SCP."""
    ctx.ensure_object(dict)
    out = OutputFormatter(json_output=json, quiet=quiet)
    ctx.obj["out"] = out
    ctx.obj["verbose"] = verbose

    # Configure logging based on verbose flag
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%H:%M:%S",
        )
        logging.getLogger("pyremotesync").setLevel(logging.DEBUG)
        logging.getLogger("paramiko").setLevel(logging.WARNING)
    else:
        logging.basicConfig(level=logging.WARNING)

    if config_file:
        try:
            ctx.default_map = load_config_file(config_file)
        except ConfigError as e:
            out.error(str(e))
            ctx.exit(1)


def _run(
    ctx: Any,
    mode: SyncMode,
    policy: UnknownTimestampPolicy = UnknownTimestampPolicy.PUSH,
    **options: Any,
) -> None:
    """Build settings, backend and engine, run one workflow and exit."""
    out: OutputFormatter = ctx.obj["out"]

    settings = ConnectionSettings(
        protocol=options["protocol"].lower(),
        server=options["server"],
        port=options["port"],
        user=options["user"],
        password=options["password"],
        remote=options["remote"],
        local=options["local"],
        use_tls=not options["no_tls"],
        accept_unknown_hosts=options["accept_unknown_hosts"],
        key_filename=options["key_file"],
    )
    try:
        settings.validate()
    except ConfigError as e:
        out.error(str(e))
        ctx.exit(1)

    workers: int = options["workers"]
    if workers < 1:
        out.error("Workers must be at least 1")
        ctx.exit(1)

    if not out.quiet:
        for line in settings.banner():
            out.info(line)
        out.print("")

    pair = SyncPair(
        local=Path(settings.local or "."),
        remote=settings.remote or "/",
        sync_mode=mode,
        ignore=list(options["ignore"]),
        exclude_dot_files=options["exclude_dot_files"],
    )

    # No progress bars in JSON mode
    engine_out = OutputFormatter(
        json_output=out.json_output, quiet=out.quiet or out.json_output
    )
    engine: Optional[SyncEngine] = None
    try:
        port = create_backend(settings.protocol, **settings.backend_kwargs())
        engine = SyncEngine(port, engine_out, policy=policy, max_workers=workers)
        result = engine.run(pair, dry_run=options["dry_run"])
    except KeyboardInterrupt:
        out.warning(f"\n{mode.value.capitalize()} cancelled by user")
        ctx.exit(130)  # Standard exit code for SIGINT
        return
    except SyncError as e:
        out.error(str(e))
        if out.json_output and engine is not None and engine.last_result is not None:
            out.output_json(engine.last_result.to_dict())
        ctx.exit(1)
        return

    if out.json_output:
        out.output_json({"pair": pair.to_dict(), **result.to_dict()})

    exit_code = result.exit_code(strict=options["strict"])
    if exit_code:
        logger.debug(f"{mode.value} finished with {result.failed_count} failure(s)")
        ctx.exit(exit_code)


@main.command()
@connection_options
@click.pass_context
def backup(ctx: Any, **options: Any) -> None:
    """Copy every local file and directory to the server.

    Nothing is ever deleted on the server. Existing remote files are
    overwritten.

    Examples:
        pyremotesync backup -s ftp.example.com -u me -r /backup -l ~/docs
        pyremotesync -c backup.cfg backup --dry-run
    """
    _run(ctx, SyncMode.BACKUP, **options)


@main.command()
@connection_options
@click.pass_context
def restore(ctx: Any, **options: Any) -> None:
    """Copy every remote file and directory to the local directory.

    Examples:
        pyremotesync restore --protocol sftp -s host -u me -r /backup -l ~/docs
    """
    _run(ctx, SyncMode.RESTORE, **options)


@main.command()
@connection_options
@click.option(
    "--unknown-timestamp",
    type=click.Choice([p.value for p in UnknownTimestampPolicy], case_sensitive=False),
    default=UnknownTimestampPolicy.PUSH.value,
    show_default=True,
    help="What to do with files whose server timestamp is unknown",
)
@click.pass_context
def sync(ctx: Any, unknown_timestamp: str, **options: Any) -> None:
    """Make the remote directory mirror the local directory.

    Runs three passes: new local files are copied to the server, remote
    files deleted locally are removed from the server, and local files newer
    than their server copy are copied again.

    Examples:
        pyremotesync sync -s ftp.example.com -u me -r /mirror -l ~/site
        pyremotesync sync --protocol scp -s host -u me -r /srv/www -l ./www
        pyremotesync sync -c sync.cfg --ignore "*.tmp" --strict
    """
    policy = UnknownTimestampPolicy(unknown_timestamp.lower())
    _run(ctx, SyncMode.SYNC, policy=policy, **options)


if __name__ == "__main__":
    main()
