"""fgp-vercel CLI.

fgp-vercel start                  # 포그라운드로 데몬 실행
fgp-vercel stop                   # 실행 중인 데몬 종료
fgp-vercel status                 # 데몬 상태 + health
fgp-vercel methods                # 메서드 카탈로그 출력
fgp-vercel call vercel.projects --params '{"limit": 5}'
"""

from __future__ import annotations

import logging
import os
import signal
import subprocess
import sys
import time
from pathlib import Path

import click
import orjson

from fgp_vercel import __version__
from fgp_vercel.client import VercelError
from fgp_vercel.config import ConfigError, load_config, resolve_token
from fgp_vercel.logging_config import setup_logging
from fgp_vercel.methods import METHODS
from fgp_vercel.server import FgpClient, FgpServer, RpcError
from fgp_vercel.service import VercelService

logger = logging.getLogger(__name__)


def _socket_path(socket: str | None, config_path: Path | None) -> Path:
    """--socket 옵션 > 설정 파일 순서로 소켓 경로를 결정한다."""
    if socket:
        return Path(socket).expanduser()
    return load_config(config_path).server.socket


def _pid_file(socket_path: Path) -> Path:
    return socket_path.with_name(socket_path.name + ".pid")


def _dump(data: object) -> str:
    return orjson.dumps(data, option=orjson.OPT_INDENT_2).decode()


def _pid_matches_process(pid: int, expected_name: str) -> bool:
    """PID의 실행 파일 이름(ps comm)에 expected_name이 포함되는지 확인한다."""
    try:
        result = subprocess.run(
            ["ps", "-p", str(pid), "-o", "comm="],
            capture_output=True,
            text=True,
            check=True,
        )
    except (subprocess.CalledProcessError, FileNotFoundError):
        return False
    return expected_name in result.stdout.strip()


_socket_option = click.option("--socket", default=None, help="소켓 경로 (기본: 설정 파일의 server.socket_path)")
_config_option = click.option(
    "--config", "config_path", type=click.Path(exists=True, path_type=Path),
    default=None, help="설정 파일 경로 (기본: config.yaml)",
)


@click.group()
@click.version_option(version=__version__, prog_name="fgp-vercel")
def main() -> None:
    """FGP daemon for Vercel deployment operations."""


@main.command()
@_socket_option
@_config_option
@click.option("--json-log/--no-json-log", default=True, help="JSON 로그 포맷 (기본: 활성)")
@click.option("--debug", is_flag=True, help="DEBUG 레벨 로그")
def start(socket: str | None, config_path: Path | None, json_log: bool, debug: bool) -> None:
    """데몬을 포그라운드로 실행한다."""
    setup_logging(json_format=json_log, level=logging.DEBUG if debug else logging.INFO)

    config = load_config(config_path)
    socket_path = Path(socket).expanduser() if socket else config.server.socket

    try:
        token = resolve_token(config.vercel)
        service = VercelService(token, config.vercel)
    except ConfigError as exc:
        click.echo(str(exc), err=True)
        sys.exit(1)

    click.echo("Starting fgp-vercel daemon...")
    click.echo(f"Socket: {socket_path}")

    try:
        service.on_start()
    except VercelError as exc:
        click.echo(f"Startup check failed: {exc}", err=True)
        service.close()
        sys.exit(1)

    server = FgpServer(service, socket_path)
    server.bind()

    pid_file = _pid_file(socket_path)
    pid_file.write_text(str(os.getpid()))

    def _handle_signal(signum: int, _frame: object) -> None:
        logger.info("Received signal %d, shutting down", signum)
        server.stop()

    previous = {sig: signal.signal(sig, _handle_signal) for sig in (signal.SIGTERM, signal.SIGINT)}

    try:
        server.serve()
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)
        pid_file.unlink(missing_ok=True)
        service.close()


@main.command()
@_socket_option
@_config_option
def stop(socket: str | None, config_path: Path | None) -> None:
    """실행 중인 데몬을 종료한다."""
    socket_path = _socket_path(socket, config_path)
    pid_file = _pid_file(socket_path)

    if socket_path.exists():
        try:
            FgpClient(socket_path).stop()
            click.echo("Daemon stopped.")
            return
        except (OSError, RpcError) as exc:
            logger.debug("Graceful stop failed: %s", exc)

    if not pid_file.exists():
        click.echo("Failed to read PID file - daemon may not be running", err=True)
        sys.exit(1)

    try:
        pid = int(pid_file.read_text().strip())
    except ValueError:
        click.echo(f"Invalid PID in {pid_file}", err=True)
        sys.exit(1)

    # 비정상 종료로 남은 PID 파일이 다른 프로세스를 가리킬 수 있음
    if not _pid_matches_process(pid, "fgp-vercel"):
        click.echo(f"Refusing to stop PID {pid}: unexpected process", err=True)
        sys.exit(1)

    click.echo(f"Stopping fgp-vercel daemon (PID: {pid})...")
    try:
        os.kill(pid, signal.SIGTERM)
    except ProcessLookupError:
        click.echo(f"No process with PID {pid}", err=True)

    time.sleep(0.5)
    socket_path.unlink(missing_ok=True)
    pid_file.unlink(missing_ok=True)
    click.echo("Daemon stopped.")


@main.command()
@_socket_option
@_config_option
def status(socket: str | None, config_path: Path | None) -> None:
    """데몬 실행 여부와 health 결과를 출력한다."""
    socket_path = _socket_path(socket, config_path)

    if not socket_path.exists():
        click.echo("Status: NOT RUNNING")
        click.echo(f"Socket {socket_path} does not exist")
        return

    try:
        response = FgpClient(socket_path).request("health")
    except OSError as exc:
        click.echo("Status: NOT RESPONDING")
        click.echo(f"Socket exists but connection failed: {exc}")
        return

    click.echo("Status: RUNNING")
    click.echo(f"Socket: {socket_path}")
    click.echo(f"Health: {orjson.dumps(response).decode()}")


@main.command()
def methods() -> None:
    """메서드 카탈로그를 JSON으로 출력한다."""
    click.echo(_dump([m.to_dict() for m in METHODS]))


@main.command()
@click.argument("method")
@click.option("--params", "params_json", default="{}", help="파라미터 JSON 객체")
@_socket_option
@_config_option
def call(method: str, params_json: str, socket: str | None, config_path: Path | None) -> None:
    """실행 중인 데몬에 메서드 하나를 호출한다."""
    try:
        params = orjson.loads(params_json)
    except orjson.JSONDecodeError as exc:
        raise click.BadParameter(f"JSON 형식이 올바르지 않습니다: {exc}") from exc
    if not isinstance(params, dict):
        raise click.BadParameter("params는 JSON 객체여야 합니다")

    socket_path = _socket_path(socket, config_path)
    try:
        result = FgpClient(socket_path).call(method, params)
    except RpcError as exc:
        click.echo(f"Error: {exc.message}", err=True)
        sys.exit(1)
    except OSError as exc:
        click.echo(f"Failed to connect to daemon: {exc}", err=True)
        sys.exit(1)

    click.echo(_dump(result))
