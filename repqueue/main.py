from __future__ import annotations

import signal
import sys
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Generator, NoReturn, Optional

import typer
from rich.console import Console

from repqueue.client.session import open_session
from repqueue.config import Settings, get_settings, load_config_file
from repqueue.domain.models import TXN_LOG_TYPE, TXN_TYPE, BatchResult, FinalTally
from repqueue.drainer import CooldownPolicy, Drainer
from repqueue.errors import EmptyResult, ReplicationError
from repqueue.producer import Producer
from repqueue.reconciler import StatusReconciler
from repqueue.reporter import print_cycle, print_drain_report, print_outcomes, print_tallies
from repqueue.utils.logging import configure_logging

app = typer.Typer(help="Replication queue client for Innovator vault replication.")


def _settings(ctx: typer.Context) -> Settings:
    return ctx.obj if isinstance(ctx.obj, Settings) else get_settings()


def _fail(exc: ReplicationError) -> NoReturn:
    typer.echo(f"ERROR: {exc}", err=True)
    raise typer.Exit(code=1)


@contextmanager
def _stop_on_signals(stop_event: threading.Event) -> Generator[None, None, None]:
    """
    Route SIGINT/SIGTERM to `stop_event` so a drain run finishes its current
    call and reports. A second SIGINT aborts immediately.
    """

    def _handler(signum, frame) -> None:
        if stop_event.is_set() and signum == signal.SIGINT:
            raise KeyboardInterrupt
        typer.echo("\nStop requested; finishing the current cycle ...", err=True)
        stop_event.set()

    previous = {sig: signal.signal(sig, _handler) for sig in (signal.SIGINT, signal.SIGTERM)}
    try:
        yield
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)


@app.callback()
def configure(
    ctx: typer.Context,
    config: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Legacy XML configuration file (innovator/first_user/second_user/interval).",
    ),
) -> None:
    """
    Load settings (environment, optionally overlaid with a config file) and logging.
    """
    try:
        settings = load_config_file(config) if config else get_settings()
    except ReplicationError as exc:
        _fail(exc)
    ctx.obj = settings
    configure_logging(level=settings.log_level, json_logs=settings.log_json)


@app.command()
def info(ctx: typer.Context) -> None:
    """
    Show effective configuration values.
    """
    settings = _settings(ctx)
    typer.echo(
        f"Innovator={settings.innovator_url} db={settings.innovator_db} | "
        f"replication_user={settings.replication_user or '-'} "
        f"producer_user={settings.producer_user or '-'} admin_user={settings.admin_user} | "
        f"max_batch={settings.queue_max_batch} max_pending={settings.queue_max_pending} "
        f"interval={settings.queue_interval_seconds}s"
    )


@app.command()
def status(ctx: typer.Context) -> None:
    """
    Show the status summary of replication transactions and their logs.
    """
    settings = _settings(ctx)
    try:
        with open_session(settings.replication_credentials, settings) as client:
            tally = StatusReconciler(client).reconcile()
    except ReplicationError as exc:
        _fail(exc)
    print_tallies(tally)


@app.command()
def replicate(
    ctx: typer.Context,
    pattern: Optional[str] = typer.Option(
        None, "--pattern", "-p", help="Filename pattern of the files to replicate."
    ),
    vault: Optional[str] = typer.Option(
        None, "--vault", "-v", help="Vault the files are located in."
    ),
) -> None:
    """
    Create a replication transaction for every matching file.
    """
    settings = _settings(ctx)
    pattern = pattern or settings.file_pattern
    vault = vault or settings.source_vault
    console = Console()

    try:
        with open_session(settings.producer_credentials, settings) as client:
            reconciler = StatusReconciler(client)
            console.print(f"{TXN_TYPE} before: {reconciler.tally(TXN_TYPE).as_dict()}")

            vault_id = client.find_vault_id(vault)
            try:
                records = client.find_records(pattern, vault_id)
            except EmptyResult:
                records = []
            if not records:
                typer.echo(f"No files matching '{pattern}' in vault '{vault}'.")
                return

            outcomes = Producer(client).replicate(records, vault_id)
            print_outcomes(outcomes, console=console)
            console.print(f"{TXN_TYPE} after: {reconciler.tally(TXN_TYPE).as_dict()}")
    except ReplicationError as exc:
        _fail(exc)


@app.command()
def drain(
    ctx: typer.Context,
    max_batch: Optional[int] = typer.Option(
        None, "--max-batch", min=1, help="Transactions the server processes per cycle."
    ),
    max_pending: Optional[int] = typer.Option(
        None, "--max-pending", min=1, help="Transactions allowed in flight at once."
    ),
    interval: Optional[float] = typer.Option(
        None, "--interval", "-i", min=0, help="Seconds to wait between cycles."
    ),
    yes: bool = typer.Option(False, "--yes", "-y", help="Start without asking."),
    unattended: bool = typer.Option(
        False, "--unattended", help="Never prompt; stop once no actionable work remains."
    ),
) -> None:
    """
    Process the replication queue until it is empty or stopped.
    """
    settings = _settings(ctx)
    console = Console()

    if not yes and not unattended and not typer.confirm("Start queue processing?", default=True):
        return

    def ask_to_continue(result: BatchResult, tally: FinalTally) -> bool:
        del result, tally
        return typer.confirm("Continue queue processing?", default=False)

    policy = CooldownPolicy(
        cooldown=settings.queue_interval_seconds if interval is None else interval,
        contention_jitter=settings.queue_contention_jitter_seconds,
        max_contended_cycles=settings.queue_max_contended_cycles,
    )
    stop_event = threading.Event()

    try:
        with _stop_on_signals(stop_event), open_session(
            settings.replication_credentials, settings
        ) as client:
            drainer = Drainer(
                client,
                policy=policy,
                confirm=None if unattended else ask_to_continue,
                on_cycle=lambda cycle: print_cycle(cycle, console=console),
                on_tally=lambda tally: print_tallies(tally, console=console),
                stop_event=stop_event,
            )
            report = drainer.drain(
                max_batch=max_batch or settings.queue_max_batch,
                max_pending=max_pending or settings.queue_max_pending,
                confirm_each_idle_cycle=not unattended,
            )
    except ReplicationError as exc:
        _fail(exc)

    print_drain_report(report, console=console, show_tally=False)


@app.command()
def purge(
    ctx: typer.Context,
    yes: bool = typer.Option(False, "--yes", "-y", help="Delete without asking."),
) -> None:
    """
    Delete all replication transactions and logs (administrator session).
    """
    settings = _settings(ctx)
    if not yes and not typer.confirm(
        f"Delete all {TXN_TYPE} and {TXN_LOG_TYPE} items?", default=False
    ):
        return

    failed = False
    try:
        with open_session(settings.admin_credentials, settings) as client:
            for item_type in (TXN_TYPE, TXN_LOG_TYPE):
                typer.echo(f"Delete '{item_type}' items ...")
                try:
                    client.purge(item_type)
                except EmptyResult:
                    typer.echo(f"No items of type '{item_type}' found")
                except ReplicationError as exc:
                    failed = True
                    typer.echo(
                        f"Failed to delete '{item_type}' items ({exc}). "
                        "Please delete them manually.",
                        err=True,
                    )
    except ReplicationError as exc:
        _fail(exc)

    if failed:
        raise typer.Exit(code=1)


def main() -> None:
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)


if __name__ == "__main__":
    main()
