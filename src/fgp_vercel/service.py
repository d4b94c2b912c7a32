"""Vercel FGP 서비스 (디스패처).

RPC 메서드 이름 + 파라미터 dict를 받아 검증 후 VercelClient를 호출하고,
JSON으로 보낼 수 있는 결과를 돌려준다.
- 동기 호출자 ↔ 비동기 HTTP 사이는 AsyncRunner가 연결 (호출 스레드는 완료까지 블록)
- 디스패치 테이블은 methods.METHODS에서 파생
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from collections.abc import Coroutine
from dataclasses import dataclass
from typing import Any, TypeVar

from fgp_vercel import __version__
from fgp_vercel.client import VercelClient, VercelDecodeError, VercelError
from fgp_vercel.config import VercelApiConfig
from fgp_vercel.methods import METHODS, MethodInfo, extract_params, resolve_method
from fgp_vercel.models import to_wire

logger = logging.getLogger(__name__)

T = TypeVar("T")


class AsyncRunner:
    """전용 스레드에서 이벤트 루프를 돌리고 코루틴을 동기적으로 실행한다.

    여러 스레드에서 동시에 run()을 호출해도 안전하다.
    """

    def __init__(self) -> None:
        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(
            target=self._loop.run_forever,
            daemon=True,
            name="fgp-vercel-loop",
        )
        self._thread.start()

    def run(self, coro: Coroutine[Any, Any, T]) -> T:
        future = asyncio.run_coroutine_threadsafe(coro, self._loop)
        return future.result()

    def close(self) -> None:
        if self._loop.is_closed():
            return
        self._loop.call_soon_threadsafe(self._loop.stop)
        self._thread.join(timeout=5.0)
        self._loop.close()


@dataclass(frozen=True)
class HealthStatus:
    """하위 시스템 하나의 헬스 상태."""

    ok: bool
    latency_ms: float | None = None
    message: str | None = None

    @classmethod
    def healthy(cls, latency_ms: float) -> HealthStatus:
        return cls(ok=True, latency_ms=latency_ms)

    @classmethod
    def unhealthy(cls, message: str) -> HealthStatus:
        return cls(ok=False, message=message)

    def to_dict(self) -> dict[str, Any]:
        return {"ok": self.ok, "latency_ms": self.latency_ms, "message": self.message}


class VercelService:
    """Vercel 작업용 FGP 서비스."""

    name = "vercel"
    version = __version__

    def __init__(
        self,
        token: str | None = None,
        config: VercelApiConfig | None = None,
        *,
        client: VercelClient | None = None,
    ) -> None:
        self._client = client or VercelClient(token or "", config)
        self._runner = AsyncRunner()

    def close(self) -> None:
        self._runner.run(self._client.aclose())
        self._runner.close()

    # ── 디스패치 ───────────────────────────────────────

    def dispatch(self, method: str, params: dict[str, Any] | None = None) -> Any:
        """메서드를 라우팅하고 결과를 반환한다.

        Raises:
            UnknownMethodError: 등록되지 않은 메서드
            ParamError: 필수 파라미터 누락 (원격 호출 전)
            VercelError: 원격 호출 실패
        """
        info = resolve_method(method)
        values = extract_params(info, params)
        handler = getattr(self, info.handler)

        started = time.perf_counter()
        result = handler(**values)
        logger.debug(
            "Dispatched %s",
            info.name,
            extra={
                "event_code": "DISPATCH",
                "method": info.name,
                "duration_ms": round((time.perf_counter() - started) * 1000, 1),
            },
        )
        return result

    def method_list(self) -> list[MethodInfo]:
        return list(METHODS)

    # ── 핸들러 ─────────────────────────────────────────

    def health(self) -> dict[str, Any]:
        """API 연결 상태. 네트워크 오류는 그대로 전파한다."""
        result: dict[str, Any] = {"version": self.version}
        try:
            ok = self._runner.run(self._client.ping())
        except VercelDecodeError as exc:
            ok = False
            result["error"] = str(exc)

        result["status"] = "healthy" if ok else "unhealthy"
        result["api_connected"] = ok
        return result

    def list_projects(self, limit: int) -> dict[str, Any]:
        projects = self._runner.run(self._client.list_projects(limit))
        return {"projects": [to_wire(p) for p in projects], "count": len(projects)}

    def get_project(self, project_id: str) -> dict[str, Any]:
        return to_wire(self._runner.run(self._client.get_project(project_id)))

    def list_deployments(self, project_id: str | None, limit: int) -> dict[str, Any]:
        deployments = self._runner.run(self._client.list_deployments(project_id, limit))
        return {"deployments": [to_wire(d) for d in deployments], "count": len(deployments)}

    def get_deployment(self, deployment_id: str) -> dict[str, Any]:
        return to_wire(self._runner.run(self._client.get_deployment(deployment_id)))

    def get_deployment_logs(self, deployment_id: str) -> dict[str, Any]:
        events = self._runner.run(self._client.get_deployment_events(deployment_id))
        return {"events": [to_wire(e) for e in events], "count": len(events)}

    def get_user(self) -> Any:
        # 타입 모델에 없는 필드까지 보존하기 위해 원본 JSON 그대로
        return self._runner.run(self._client.get_user_raw())

    def list_env_vars(self, project_id: str, target: str | None) -> Any:
        return self._runner.run(self._client.list_env_vars(project_id, target))

    def set_env_var(
        self, project_id: str, key: str, value: str, target: list[str], type: str,
    ) -> Any:
        return self._runner.run(
            self._client.set_env_var(project_id, key, value, target, type),
        )

    def list_domains(self, project_id: str) -> Any:
        return self._runner.run(self._client.list_domains(project_id))

    def redeploy(self, deployment_id: str) -> Any:
        return self._runner.run(self._client.redeploy(deployment_id))

    # ── 라이프사이클 ───────────────────────────────────

    def on_start(self) -> None:
        """시작 시 API 연결을 한 번 확인한다. 네트워크 오류면 시작 실패."""
        logger.info("VercelService starting, verifying API connection...")
        try:
            ok = self._runner.run(self._client.ping())
        except VercelDecodeError as exc:
            logger.warning("Vercel API returned malformed response: %s", exc,
                           extra={"event_code": "START_PROBE_DECODE"})
            return
        except VercelError as exc:
            logger.error("Failed to connect to Vercel API: %s", exc,
                         extra={"event_code": "START_PROBE_FAILED"})
            raise

        if ok:
            logger.info("Vercel API connection verified", extra={"event_code": "START_PROBE_OK"})
        else:
            logger.warning("Vercel API returned unsuccessful response",
                           extra={"event_code": "START_PROBE_UNSUCCESSFUL"})

    def health_check(self) -> dict[str, HealthStatus]:
        """하위 시스템별 헬스 상태 (현재는 vercel_api 하나)."""
        started = time.perf_counter()
        try:
            ok = self._runner.run(self._client.ping())
        except VercelError as exc:
            return {"vercel_api": HealthStatus.unhealthy(str(exc))}
        latency_ms = (time.perf_counter() - started) * 1000

        if ok:
            return {"vercel_api": HealthStatus.healthy(latency_ms)}
        return {"vercel_api": HealthStatus.unhealthy("API returned error")}
