"""FGP Unix 소켓 서버/클라이언트.

프로토콜 (줄 단위 JSON, 한 연결에서 여러 요청 가능):
- 요청:  {"id": ..., "v": 1, "method": "...", "params": {...}}
- 응답:  {"id": ..., "ok": true|false, "result": ..., "error": {"code", "message"}|null,
          "meta": {"server_ms", "protocol_v"}}

서버 내장 메서드: methods, health_check, stop. 나머지는 서비스 dispatch로 위임.
소켓 파일은 소유자 전용(0600).
"""

from __future__ import annotations

import logging
import os
import socket
import stat
import threading
import time
from pathlib import Path
from typing import Any

import orjson

from fgp_vercel.client import VercelApiError, VercelError
from fgp_vercel.methods import ParamError, UnknownMethodError
from fgp_vercel.service import VercelService

logger = logging.getLogger(__name__)

PROTOCOL_VERSION = 1

# 요청 한 줄 최대 크기 (1MB)
MAX_LINE_SIZE = 1 << 20

# 클라이언트 소켓 타임아웃 (API 타임아웃 30초보다 여유 있게)
SOCKET_TIMEOUT = 35.0


class ErrorCode:
    INVALID_REQUEST = "INVALID_REQUEST"
    UNKNOWN_METHOD = "UNKNOWN_METHOD"
    INVALID_PARAMS = "INVALID_PARAMS"
    API_ERROR = "API_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class RpcError(Exception):
    """RPC 응답의 error 객체."""

    def __init__(self, code: str, message: str):
        self.code = code
        self.message = message
        super().__init__(f"{code}: {message}")

    def to_dict(self) -> dict[str, str]:
        return {"code": self.code, "message": self.message}


class FgpServer:
    """서비스 하나를 Unix 소켓으로 노출한다."""

    def __init__(self, service: VercelService, socket_path: Path) -> None:
        self._service = service
        self._socket_path = Path(socket_path)
        self._socket: socket.socket | None = None
        self._stop = threading.Event()

    @property
    def socket_path(self) -> Path:
        return self._socket_path

    def bind(self) -> None:
        """소켓 파일을 만들고 listen 상태로 둔다."""
        self._socket_path.parent.mkdir(parents=True, exist_ok=True)
        if self._socket_path.exists():
            self._socket_path.unlink()

        sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        sock.bind(str(self._socket_path))
        os.chmod(self._socket_path, stat.S_IRUSR | stat.S_IWUSR)
        sock.listen(16)
        sock.settimeout(1.0)  # stop 플래그 확인 주기
        self._socket = sock

    def serve(self) -> None:
        """stop()이 호출될 때까지 요청을 처리한다."""
        if self._socket is None:
            self.bind()
        assert self._socket is not None

        logger.info("Listening on %s", self._socket_path, extra={"event_code": "SERVER_START"})
        try:
            while not self._stop.is_set():
                try:
                    conn, _ = self._socket.accept()
                except TimeoutError:
                    continue
                except OSError:
                    if self._stop.is_set():
                        break
                    raise
                threading.Thread(
                    target=self._handle_connection,
                    args=(conn,),
                    daemon=True,
                    name="fgp-conn",
                ).start()
        finally:
            self._cleanup()
            logger.info("Server stopped", extra={"event_code": "SERVER_STOP"})

    def stop(self) -> None:
        self._stop.set()

    def _cleanup(self) -> None:
        if self._socket is not None:
            self._socket.close()
            self._socket = None
        self._socket_path.unlink(missing_ok=True)

    # ── 연결 처리 ──────────────────────────────────────

    def _handle_connection(self, conn: socket.socket) -> None:
        conn.settimeout(None)
        with conn, conn.makefile("rb") as reader:
            try:
                self._serve_lines(conn, reader)
            except OSError as exc:
                logger.debug("Connection closed: %s", exc, extra={"event_code": "CONN_CLOSED"})

    def _serve_lines(self, conn: socket.socket, reader: Any) -> None:
        while True:
            # 한 줄을 MAX_LINE_SIZE까지만 버퍼링
            line = reader.readline(MAX_LINE_SIZE + 1)
            if not line:
                return
            if len(line) > MAX_LINE_SIZE:
                # 줄의 나머지를 건너뛸 수 없으므로 응답 후 연결 종료
                error = RpcError(ErrorCode.INVALID_REQUEST, "Request too large")
                conn.sendall(orjson.dumps(_error_response(None, error, 0.0)) + b"\n")
                return
            if not line.strip():
                continue
            conn.sendall(orjson.dumps(self.handle_line(line)) + b"\n")

    def handle_line(self, line: bytes) -> dict[str, Any]:
        """요청 한 줄 -> 응답 dict."""
        started = time.perf_counter()
        request_id = None
        try:
            request = _parse_request(line)
            request_id = request.get("id")
            result = self._call(request["method"], request.get("params") or {})
        except RpcError as exc:
            return _error_response(request_id, exc, _elapsed_ms(started))
        except (UnknownMethodError, ParamError, VercelError) as exc:
            return _error_response(request_id, _to_rpc_error(exc), _elapsed_ms(started))
        except Exception as exc:
            logger.exception("Unhandled error", extra={"event_code": "INTERNAL_ERROR"})
            return _error_response(
                request_id, RpcError(ErrorCode.INTERNAL_ERROR, str(exc)), _elapsed_ms(started),
            )

        return {
            "id": request_id,
            "ok": True,
            "result": result,
            "error": None,
            "meta": {"server_ms": _elapsed_ms(started), "protocol_v": PROTOCOL_VERSION},
        }

    def _call(self, method: str, params: dict[str, Any]) -> Any:
        if method == "methods":
            return {
                "service": self._service.name,
                "version": self._service.version,
                "methods": [m.to_dict() for m in self._service.method_list()],
            }
        if method == "health_check":
            checks = self._service.health_check()
            return {
                "ok": all(s.ok for s in checks.values()),
                "services": {name: s.to_dict() for name, s in checks.items()},
            }
        if method == "stop":
            logger.info("Stop requested", extra={"event_code": "STOP_REQUESTED"})
            self.stop()
            return {"message": "stopping"}
        return self._service.dispatch(method, params)


def _parse_request(line: bytes) -> dict[str, Any]:
    try:
        request = orjson.loads(line)
    except orjson.JSONDecodeError as exc:
        raise RpcError(ErrorCode.INVALID_REQUEST, f"Parse error: {exc}") from exc

    if not isinstance(request, dict):
        raise RpcError(ErrorCode.INVALID_REQUEST, "Request must be object")
    if not isinstance(request.get("method"), str):
        raise RpcError(ErrorCode.INVALID_REQUEST, "Method must be string")
    params = request.get("params")
    if params is not None and not isinstance(params, dict):
        raise RpcError(ErrorCode.INVALID_REQUEST, "Params must be object")
    return request


def _to_rpc_error(exc: Exception) -> RpcError:
    if isinstance(exc, UnknownMethodError):
        return RpcError(ErrorCode.UNKNOWN_METHOD, str(exc))
    if isinstance(exc, ParamError):
        return RpcError(ErrorCode.INVALID_PARAMS, str(exc))
    if isinstance(exc, VercelApiError):
        logger.warning("Vercel API error %d", exc.status_code,
                       extra={"event_code": "API_ERROR", "status_code": exc.status_code})
    return RpcError(ErrorCode.API_ERROR, str(exc))


def _error_response(request_id: Any, error: RpcError, server_ms: float) -> dict[str, Any]:
    return {
        "id": request_id,
        "ok": False,
        "result": None,
        "error": error.to_dict(),
        "meta": {"server_ms": server_ms, "protocol_v": PROTOCOL_VERSION},
    }


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 2)


class FgpClient:
    """데몬에 요청을 보내는 동기 클라이언트 (CLI용)."""

    def __init__(self, socket_path: Path, timeout: float = SOCKET_TIMEOUT) -> None:
        self._socket_path = Path(socket_path)
        self._timeout = timeout

    def request(self, method: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        """요청을 보내고 응답 dict 전체를 반환한다."""
        payload = {"id": method, "v": PROTOCOL_VERSION, "method": method, "params": params or {}}

        with socket.socket(socket.AF_UNIX, socket.SOCK_STREAM) as sock:
            sock.settimeout(self._timeout)
            sock.connect(str(self._socket_path))
            sock.sendall(orjson.dumps(payload) + b"\n")
            with sock.makefile("rb") as reader:
                line = reader.readline()

        if not line:
            raise ConnectionError("Daemon closed the connection without a response")
        return orjson.loads(line)

    def call(self, method: str, params: dict[str, Any] | None = None) -> Any:
        """요청 결과만 반환한다. 실패 응답이면 RpcError."""
        response = self.request(method, params)
        if not response.get("ok"):
            error = response.get("error") or {}
            raise RpcError(
                error.get("code", ErrorCode.INTERNAL_ERROR),
                error.get("message", "Unknown error"),
            )
        return response.get("result")

    def stop(self) -> Any:
        return self.call("stop")
