import asyncio
import json
import os
import subprocess
import sys
import time

import click
import tomli_w

from .daemon.pidfile import running_daemon_pid, stop_daemon
from .utils.config import (
    DEFAULT_CONFIG,
    get_config_path,
    get_pid_path,
    get_socket_path,
    load_config,
    save_config,
)


def ensure_daemon_running() -> None:
    if running_daemon_pid(get_pid_path()) is not None:
        return

    subprocess.Popen(
        [sys.executable, "-m", "editorlens.daemon_cli"],
        start_new_session=True,
        env=os.environ.copy(),
    )

    socket_path = get_socket_path()
    for _ in range(50):
        if socket_path.exists():
            return
        time.sleep(0.1)

    raise click.ClickException("Failed to start daemon")


async def send_request(meta: dict, method: str, params: dict) -> dict:
    socket_path = get_socket_path()

    reader, writer = await asyncio.open_unix_connection(str(socket_path))

    request = {"meta": meta, "method": method, "params": params}
    writer.write(json.dumps(request).encode())
    await writer.drain()
    writer.write_eof()

    data = await reader.read()
    writer.close()
    await writer.wait_closed()

    return json.loads(data.decode())


def run_request(meta: dict, method: str, params: dict) -> dict:
    ensure_daemon_running()
    response = asyncio.run(send_request(meta, method, params))
    if "error" in response:
        raise click.ClickException(response["error"])
    return response


# Values passed through verbatim: selection descriptions and command payloads
# would otherwise be read as JSON numbers or strings and lose their encoding.
RAW_PARAMS = frozenset({"selectionDesc", "arguments", "command"})


def parse_param(value: str) -> tuple[str, object]:
    """Parse KEY=VALUE, decoding VALUE as JSON unless KEY is in RAW_PARAMS."""
    if "=" not in value:
        raise click.BadParameter(f"expected KEY=VALUE, got {value!r}")
    key, raw = value.split("=", 1)
    if key in RAW_PARAMS:
        return key, raw
    try:
        return key, json.loads(raw)
    except json.JSONDecodeError:
        return key, raw


@click.group()
def cli():
    """Code lens bridge between a modal editor and a language server."""


@cli.command("send")
@click.argument("method")
@click.option("--session", "session_name", required=True, help="Editor session name.")
@click.option("--client", "client_name", default=None, help="Editor client name.")
@click.option("--buffile", required=True, help="Absolute path of the buffer.")
@click.option("--filetype", default=None, help="Editor filetype of the buffer.")
@click.option("--text-file", type=click.File("r"), default=None,
              help="Read the buffer text from this file ('-' for stdin).")
@click.option("-p", "--param", "raw_params", multiple=True, help="Request parameter as KEY=VALUE.")
def send(method, session_name, client_name, buffile, filetype, text_file, raw_params):
    """Send METHOD for a buffer to the daemon, starting it if needed.

    \b
    Examples:
      editorlens send code-lens --session s --buffile /src/app.py
      editorlens send apply-code-lens --session s --client c --buffile /src/app.py \\
          -p selectionDesc=4.1,7.1
      editorlens send did-change --session s --buffile /src/app.py -p version=3 --text-file -
    """
    meta = {"session": session_name, "buffile": buffile}
    if client_name:
        meta["client"] = client_name
    if filetype:
        meta["filetype"] = filetype

    params = dict(parse_param(p) for p in raw_params)
    if text_file is not None:
        params["text"] = text_file.read()

    response = run_request(meta, method, params)
    result = response.get("result")
    if result:
        click.echo(json.dumps(result, indent=2))


@cli.command("daemon")
def daemon():
    """Run the daemon in the foreground."""
    from .daemon.server import run_daemon

    asyncio.run(run_daemon())


@cli.command("stop")
def stop():
    """Stop the running daemon."""
    if stop_daemon(get_pid_path()):
        click.echo("Daemon stopped")
    else:
        click.echo("Daemon is not running")


@cli.command("status")
def status():
    """Show whether the daemon is running."""
    pid = running_daemon_pid(get_pid_path())
    if pid is None:
        click.echo("Daemon is not running")
    else:
        click.echo(f"Daemon is running (pid {pid})")


@cli.command("config")
@click.option("--init", is_flag=True, help="Write the default config if none exists.")
def config(init):
    """Show the config file location and effective settings."""
    config_path = get_config_path()
    if init:
        if config_path.exists():
            raise click.ClickException(f"Config already exists: {config_path}")
        save_config(DEFAULT_CONFIG)
        click.echo(f"Wrote default config to {config_path}")
        return

    click.echo(f"Config file: {config_path}")
    click.echo(tomli_w.dumps(load_config()))


if __name__ == "__main__":
    cli()
