"""RPC 메서드 카탈로그 + 파라미터 추출.

메서드별 파라미터 스키마(이름, 타입, 필수 여부, 기본값, 별칭)를 한 곳에 선언하고
디스패치 검증과 메서드 목록(discovery) 양쪽에서 같은 선언을 사용한다.

추출 규칙:
- integer: JSON 정수만 허용, 없거나 타입이 다르면 기본값
- string: 별칭을 선언 순서대로 보고 처음 나온 문자열 값을 사용
- array: 리스트의 문자열 원소만 사용, 없거나 타입이 다르면 기본값
- 필수 파라미터가 없으면 원격 호출 전에 ParamError
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from fgp_vercel.client import DEFAULT_ENV_TARGETS, DEFAULT_ENV_TYPE, DEFAULT_LIMIT

STRING = "string"
INTEGER = "integer"
ARRAY = "array"


class ServiceError(Exception):
    """디스패치 단계에서 발생하는 오류의 공통 부모."""


class ParamError(ServiceError):
    """필수 파라미터 누락 또는 타입 불일치."""

    def __init__(self, param: str):
        self.param = param
        super().__init__(f"Missing required parameter: {param}")


class UnknownMethodError(ServiceError):
    def __init__(self, method: str):
        self.method = method
        super().__init__(f"Unknown method: {method}")


@dataclass(frozen=True)
class ParamInfo:
    name: str
    param_type: str
    required: bool = False
    default: Any = None
    aliases: tuple[str, ...] = ()

    @property
    def keys(self) -> tuple[str, ...]:
        """조회 순서: 정식 이름 → 별칭."""
        return (self.name, *self.aliases)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "type": self.param_type,
            "required": self.required,
            "default": self.default,
        }


@dataclass(frozen=True)
class MethodInfo:
    name: str
    description: str
    handler: str                       # VercelService 메서드 이름
    params: tuple[ParamInfo, ...] = ()
    aliases: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "params": [p.to_dict() for p in self.params],
        }


# ── 공통 파라미터 ─────────────────────────────────────

_LIMIT = ParamInfo("limit", INTEGER, default=DEFAULT_LIMIT)
_PROJECT_ID = ParamInfo("project_id", STRING, required=True)
_DEPLOYMENT_ID = ParamInfo("deployment_id", STRING, required=True, aliases=("id",))


# ── 카탈로그 ──────────────────────────────────────────

METHODS: tuple[MethodInfo, ...] = (
    MethodInfo(
        name="health",
        description="Check Vercel API connectivity",
        handler="health",
    ),
    MethodInfo(
        name="vercel.projects",
        description="List all Vercel projects",
        handler="list_projects",
        params=(_LIMIT,),
        aliases=("projects",),
    ),
    MethodInfo(
        name="vercel.project",
        description="Get a specific project by ID or name",
        handler="get_project",
        params=(ParamInfo("project_id", STRING, required=True, aliases=("name",)),),
        aliases=("project",),
    ),
    MethodInfo(
        name="vercel.deployments",
        description="List deployments (optionally filtered by project)",
        handler="list_deployments",
        params=(ParamInfo("project_id", STRING), _LIMIT),
        aliases=("deployments",),
    ),
    MethodInfo(
        name="vercel.deployment",
        description="Get a specific deployment by ID",
        handler="get_deployment",
        params=(_DEPLOYMENT_ID,),
        aliases=("deployment",),
    ),
    MethodInfo(
        name="vercel.logs",
        description="Get deployment logs/events",
        handler="get_deployment_logs",
        params=(_DEPLOYMENT_ID,),
        aliases=("logs",),
    ),
    MethodInfo(
        name="vercel.user",
        description="Get current user info",
        handler="get_user",
        aliases=("user",),
    ),
    MethodInfo(
        name="vercel.env_vars",
        description="List environment variables for a project",
        handler="list_env_vars",
        params=(_PROJECT_ID, ParamInfo("target", STRING)),
        aliases=("env_vars",),
    ),
    MethodInfo(
        name="vercel.set_env",
        description="Set an environment variable",
        handler="set_env_var",
        params=(
            _PROJECT_ID,
            ParamInfo("key", STRING, required=True),
            ParamInfo("value", STRING, required=True),
            ParamInfo("target", ARRAY, default=list(DEFAULT_ENV_TARGETS)),
            ParamInfo("type", STRING, default=DEFAULT_ENV_TYPE),
        ),
        aliases=("set_env",),
    ),
    MethodInfo(
        name="vercel.domains",
        description="List domains for a project",
        handler="list_domains",
        params=(_PROJECT_ID,),
        aliases=("domains",),
    ),
    MethodInfo(
        name="vercel.redeploy",
        description="Redeploy a deployment",
        handler="redeploy",
        params=(ParamInfo("deployment_id", STRING, required=True),),
        aliases=("redeploy",),
    ),
)

_BY_NAME: dict[str, MethodInfo] = {
    name: info for info in METHODS for name in (info.name, *info.aliases)
}


def resolve_method(name: str) -> MethodInfo:
    """메서드 이름(정식 또는 짧은 이름) -> MethodInfo."""
    info = _BY_NAME.get(name)
    if info is None:
        raise UnknownMethodError(name)
    return info


def extract_params(method: MethodInfo, params: dict[str, Any] | None) -> dict[str, Any]:
    """파라미터 bag에서 메서드 스키마대로 값을 꺼낸다.

    Returns:
        정식 파라미터 이름 -> 값

    Raises:
        ParamError: 필수 파라미터 누락/타입 불일치
    """
    bag = params or {}
    values: dict[str, Any] = {}
    for spec in method.params:
        value = _extract_one(spec, bag)
        if value is None and spec.required:
            raise ParamError(spec.name)
        values[spec.name] = value
    return values


def _extract_one(spec: ParamInfo, bag: dict[str, Any]) -> Any:
    if spec.param_type == INTEGER:
        raw = bag.get(spec.name)
        # bool은 int의 서브클래스라 명시적으로 제외
        if isinstance(raw, int) and not isinstance(raw, bool):
            return raw
        return spec.default

    if spec.param_type == ARRAY:
        raw = bag.get(spec.name)
        if isinstance(raw, list):
            return [v for v in raw if isinstance(v, str)]
        return _copy_default(spec.default)

    for key in spec.keys:
        raw = bag.get(key)
        if isinstance(raw, str):
            return raw
    return spec.default


def _copy_default(default: Any) -> Any:
    return list(default) if isinstance(default, list) else default
