"""CLI entry point for wsterm."""

from __future__ import annotations

import asyncio
import logging
import sys
import threading

import typer

from wsterm import __version__
from wsterm.config import WstermConfig
from wsterm.protocol.encoder import InputMode, Printable, Submit

app = typer.Typer(
    name="wsterm",
    help="Terminal session client for a remote shell over WebSocket.",
    no_args_is_help=True,
)

# Seconds to wait for trailing output after stdin reaches EOF
_DRAIN_DELAY = 0.5


def setup_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stderr,
    )


def _load_config(
    config_file: str | None,
    url: str | None,
    mode: InputMode | None,
    max_attempts: int | None,
    secure: bool | None,
) -> WstermConfig:
    config = WstermConfig.load(config_file)
    if url:
        config.connection.url = url
    if secure is not None:
        config.connection.secure = secure
    if mode is not None:
        config.input.mode = mode
    if max_attempts is not None:
        config.reconnect.max_attempts = max_attempts
    return config


@app.command()
def tui(
    url: str | None = typer.Argument(
        None, help="Hosting origin (https://host, host:port) or ws/wss URL."
    ),
    mode: InputMode | None = typer.Option(
        None, "--mode", "-m", help="Input mode: raw (per key) or line."
    ),
    max_attempts: int | None = typer.Option(
        None, "--max-attempts", "-r", help="Max reconnection attempts."
    ),
    secure: bool | None = typer.Option(
        None, "--secure/--insecure", help="Use wss:// for a bare host."
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable debug logging."
    ),
    config_file: str | None = typer.Option(
        None, "--config", "-c", help="Config file path."
    ),
) -> None:
    """Open an interactive terminal session in the TUI."""
    # No stderr handler here: it would corrupt the Textual display. The TUI
    # installs its own handler that routes logs to the status bar.
    logging.getLogger().setLevel(logging.DEBUG if verbose else logging.INFO)
    for h in logging.getLogger().handlers[:]:
        logging.getLogger().removeHandler(h)

    config = _load_config(config_file, url, mode, max_attempts, secure)
    try:
        config.connection.endpoint
    except ValueError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    from wsterm.client.session import SessionClient
    from wsterm.client.sinks import WireDisplay
    from wsterm.session.wire import Wire
    from wsterm.tui.app import TerminalApp

    wire = Wire()
    display = WireDisplay(wire)
    client = SessionClient.from_config(
        config, display, display, on_line_change=display.line_changed
    )
    TerminalApp(client=client, wire=wire).run()


@app.command()
def attach(
    url: str | None = typer.Argument(
        None, help="Hosting origin (https://host, host:port) or ws/wss URL."
    ),
    max_attempts: int | None = typer.Option(
        None, "--max-attempts", "-r", help="Max reconnection attempts."
    ),
    secure: bool | None = typer.Option(
        None, "--secure/--insecure", help="Use wss:// for a bare host."
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable debug logging."
    ),
    config_file: str | None = typer.Option(
        None, "--config", "-c", help="Config file path."
    ),
) -> None:
    """Pipe stdin lines to the remote shell and print its output (line mode)."""
    setup_logging(verbose)

    config = _load_config(config_file, url, InputMode.LINE, max_attempts, secure)
    try:
        endpoint = config.connection.endpoint
    except ValueError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    typer.echo(f"wsterm v{__version__} -> {endpoint}", err=True)
    exit_code = asyncio.run(_run_attach(config))
    raise typer.Exit(exit_code)


def _read_stdin(loop: asyncio.AbstractEventLoop, queue: asyncio.Queue[str | None]) -> None:
    """Feed stdin lines into the loop. Runs in a daemon thread."""
    for line in sys.stdin:
        loop.call_soon_threadsafe(queue.put_nowait, line)
    loop.call_soon_threadsafe(queue.put_nowait, None)


async def _first(*aws: asyncio.Future | asyncio.Task) -> None:
    """Wait until any of the given tasks completes; cancel the rest."""
    done, pending = await asyncio.wait(aws, return_when=asyncio.FIRST_COMPLETED)
    for task in pending:
        task.cancel()


async def _run_attach(config: WstermConfig) -> int:
    """Run a line-mode session fed from stdin. Returns the exit code."""
    from wsterm.client.session import SessionClient
    from wsterm.client.sinks import WireDisplay
    from wsterm.session.wire import EventType, Wire

    wire = Wire()
    display = WireDisplay(wire)
    client = SessionClient.from_config(config, display, display)
    connected = asyncio.Event()
    gave_up = asyncio.Event()

    # --- Wire consumer (async background task) ---
    queue = wire.subscribe()

    async def _consume_wire() -> None:
        while True:
            event = await queue.get()
            if event is None:
                break
            d = event.data
            if event.type == EventType.OUTPUT:
                # Client messages go to stderr so stdout carries shell output only
                out = sys.stderr if d.get("style") else sys.stdout
                print(d.get("text", ""), end="", file=out, flush=True)
            elif event.type == EventType.STATUS:
                if d.get("connected"):
                    connected.set()
                else:
                    connected.clear()
                if d.get("phase") == "Gave up":
                    gave_up.set()
        wire.unsubscribe(queue)

    consumer_task = asyncio.create_task(_consume_wire())

    loop = asyncio.get_running_loop()
    lines: asyncio.Queue[str | None] = asyncio.Queue()
    threading.Thread(target=_read_stdin, args=(loop, lines), daemon=True).start()

    client.start()
    try:
        while not gave_up.is_set():
            line_task = asyncio.create_task(lines.get())
            await _first(line_task, asyncio.create_task(gave_up.wait()))
            if gave_up.is_set():
                break
            line = line_task.result()
            if line is None:
                await asyncio.sleep(_DRAIN_DELAY)
                break
            # Input sent while disconnected is dropped, so hold the line
            if not connected.is_set():
                await _first(
                    asyncio.create_task(connected.wait()),
                    asyncio.create_task(gave_up.wait()),
                )
                if gave_up.is_set():
                    break
            for char in line.rstrip("\r\n"):
                client.handle_input(Printable(char))
            client.handle_input(Submit())
    finally:
        client.shutdown()
        wire.close()
        await consumer_task

    return 1 if gave_up.is_set() else 0


def main() -> None:
    app()


if __name__ == "__main__":
    main()
