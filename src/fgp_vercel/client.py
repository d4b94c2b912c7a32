"""Vercel REST API 비동기 클라이언트.

Bearer 토큰 인증으로 프로젝트, 배포, 로그, 환경변수, 도메인을 조회/변경한다.
- httpx.AsyncClient 하나를 공유 (호스트당 유휴 커넥션 5개까지 재사용)
- 요청당 30초 타임아웃
- 재시도/백오프/캐시 없음: 요청 하나에 결과 하나
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, TypeVar

import httpx
import orjson
from pydantic import TypeAdapter, ValidationError

from fgp_vercel import __version__
from fgp_vercel.config import ConfigError, VercelApiConfig
from fgp_vercel.models import (
    Deployment,
    DeploymentEvent,
    DeploymentList,
    Project,
    ProjectList,
    User,
    UserEnvelope,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_LIMIT = 20
DEFAULT_ENV_TARGETS = ["production", "preview", "development"]
DEFAULT_ENV_TYPE = "encrypted"

_PROJECT = TypeAdapter(Project)
_PROJECT_LIST = TypeAdapter(ProjectList)
_DEPLOYMENT = TypeAdapter(Deployment)
_DEPLOYMENT_LIST = TypeAdapter(DeploymentList)
_EVENTS = TypeAdapter(list[DeploymentEvent])
_USER = TypeAdapter(UserEnvelope)


class VercelError(Exception):
    """Vercel API 호출 실패의 공통 부모."""


class VercelApiError(VercelError):
    """2xx가 아닌 HTTP 응답. 상태 코드와 응답 본문을 그대로 보존한다."""

    def __init__(self, status_code: int, body: str):
        self.status_code = status_code
        self.body = body
        super().__init__(f"API request failed: {status_code} - {body}")


class VercelDecodeError(VercelError):
    """2xx 응답이지만 본문이 기대한 형태가 아님."""


class VercelConnectionError(VercelError):
    """연결 실패, 타임아웃 등 네트워크 수준 오류."""


class VercelClient:
    """Vercel REST API 클라이언트 (커넥션 풀 공유)."""

    def __init__(self, token: str, config: VercelApiConfig | None = None) -> None:
        if not token:
            raise ConfigError("Vercel access token must not be empty")

        self._config = config or VercelApiConfig()
        # base_url은 VercelApiConfig 검증에서 이미 확인됨
        self._client = httpx.AsyncClient(
            base_url=self._config.base_url,
            headers={
                "Authorization": f"Bearer {token}",
                "Accept": "application/json",
                "User-Agent": f"fgp-vercel/{__version__}",
            },
            limits=httpx.Limits(max_keepalive_connections=self._config.max_idle_per_host),
            timeout=httpx.Timeout(self._config.timeout_sec),
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> VercelClient:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.aclose()

    # ── 공통 요청 ──────────────────────────────────────

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
    ) -> httpx.Response:
        """인증 요청 1회 전송. 2xx가 아니면 본문을 담아 VercelApiError."""
        # httpx.Timeout은 단계별(connect/read/write/pool) 제한이라 요청 전체 마감은 별도로 건다
        try:
            async with asyncio.timeout(self._config.timeout_sec):
                resp = await self._client.request(method, path, params=params, json=json)
        except (TimeoutError, httpx.TimeoutException) as exc:
            raise VercelConnectionError(f"Request timed out: {method} {path}") from exc
        except httpx.TransportError as exc:
            raise VercelConnectionError(f"Failed to send request: {exc}") from exc

        logger.debug(
            "%s %s -> %d",
            method, path, resp.status_code,
            extra={"event_code": "API_CALL", "status_code": resp.status_code},
        )

        if not resp.is_success:
            raise VercelApiError(resp.status_code, resp.text)
        return resp

    async def _get_json(self, path: str, *, params: dict[str, Any] | None = None) -> Any:
        resp = await self._request("GET", path, params=params)
        return _decode_json(resp)

    async def _get(
        self, path: str, adapter: TypeAdapter[T], *, params: dict[str, Any] | None = None,
    ) -> T:
        """GET 후 응답을 adapter 타입으로 검증한다."""
        data = await self._get_json(path, params=params)
        try:
            return adapter.validate_python(data)
        except ValidationError as exc:
            raise VercelDecodeError(f"Failed to parse response from {path}: {exc}") from exc

    # ── 조회 ───────────────────────────────────────────

    async def ping(self) -> bool:
        """현재 사용자 조회로 API 연결을 확인한다.

        Returns:
            2xx이면 True, 그 외 상태 코드면 False

        Raises:
            VercelConnectionError: 네트워크 오류
            VercelDecodeError: 2xx인데 본문이 JSON이 아님
        """
        try:
            resp = await self._request("GET", "/v2/user")
        except VercelApiError as exc:
            logger.warning("Ping returned %d", exc.status_code,
                           extra={"event_code": "PING_FAILED", "status_code": exc.status_code})
            return False
        _decode_json(resp)
        return True

    async def list_projects(self, limit: int | None = None) -> list[Project]:
        params = {"limit": DEFAULT_LIMIT if limit is None else limit}
        result = await self._get("/v9/projects", _PROJECT_LIST, params=params)
        return result.projects

    async def get_project(self, project_id: str) -> Project:
        """ID 또는 이름으로 프로젝트를 조회한다."""
        return await self._get(f"/v9/projects/{project_id}", _PROJECT)

    async def list_deployments(
        self, project_id: str | None = None, limit: int | None = None,
    ) -> list[Deployment]:
        params: dict[str, Any] = {"limit": DEFAULT_LIMIT if limit is None else limit}
        if project_id:
            params["projectId"] = project_id
        result = await self._get("/v6/deployments", _DEPLOYMENT_LIST, params=params)
        return result.deployments

    async def get_deployment(self, deployment_id: str) -> Deployment:
        """ID 또는 URL로 배포를 조회한다."""
        return await self._get(f"/v13/deployments/{deployment_id}", _DEPLOYMENT)

    async def get_deployment_events(self, deployment_id: str) -> list[DeploymentEvent]:
        """배포 빌드 로그 이벤트 (API 응답 순서 유지)."""
        return await self._get(f"/v2/deployments/{deployment_id}/events", _EVENTS)

    async def get_user(self) -> User:
        result = await self._get("/v2/user", _USER)
        return result.user

    async def get_user_raw(self) -> Any:
        return await self._get_json("/v2/user")

    async def list_env_vars(self, project_id: str, target: str | None = None) -> Any:
        params = {"target": target} if target else None
        return await self._get_json(f"/v9/projects/{project_id}/env", params=params)

    async def list_domains(self, project_id: str) -> Any:
        return await self._get_json(f"/v9/projects/{project_id}/domains")

    # ── 변경 ───────────────────────────────────────────

    async def set_env_var(
        self,
        project_id: str,
        key: str,
        value: str,
        target: list[str] | None = None,
        env_type: str | None = None,
    ) -> Any:
        """환경변수를 생성한다. target 미지정 시 세 환경 모두."""
        body = {
            "key": key,
            "value": value,
            "target": list(DEFAULT_ENV_TARGETS) if target is None else target,
            "type": DEFAULT_ENV_TYPE if env_type is None else env_type,
        }
        resp = await self._request("POST", f"/v10/projects/{project_id}/env", json=body)
        return _decode_json(resp)

    async def redeploy(self, deployment_id: str) -> Any:
        """기존 배포를 같은 소스로 다시 배포한다.

        새 배포 생성 API는 프로젝트 이름을 요구하므로 원본 배포를 먼저 조회한다.
        """
        source = await self.get_deployment(deployment_id)
        body: dict[str, Any] = {"name": source.name, "deploymentId": source.uid}
        if source.target:
            body["target"] = source.target
        resp = await self._request(
            "POST", "/v13/deployments", params={"forceNew": 1}, json=body,
        )
        return _decode_json(resp)


def _decode_json(resp: httpx.Response) -> Any:
    """응답 본문을 JSON으로 파싱한다."""
    try:
        return orjson.loads(resp.content)
    except orjson.JSONDecodeError as exc:
        raise VercelDecodeError(f"Failed to parse response: {exc}") from exc
