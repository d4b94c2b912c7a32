"""Vercel API 응답 데이터 모델.

API 버전에 따라 필드 유무가 다르므로 식별자 외의 모든 필드는 선택이며,
알 수 없는 필드는 무시한다. 와이어 필드명은 camelCase.
"""

from __future__ import annotations

from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class VercelModel(BaseModel):
    """camelCase 응답을 snake_case 속성으로 받는 공통 베이스."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        frozen=True,
    )


class DeploymentSummary(VercelModel):
    """프로젝트 목록에 포함되는 배포 요약."""

    id: str
    url: str | None = None
    ready_state: str | None = None
    created_at: int | None = None


class Project(VercelModel):
    id: str
    name: str | None = None
    account_id: str | None = None
    framework: str | None = None
    created_at: int | None = None      # epoch ms
    updated_at: int | None = None
    node_version: str | None = None
    latest_deployments: list[DeploymentSummary] | None = None


class Creator(VercelModel):
    uid: str | None = None
    email: str | None = None
    username: str | None = None


class Deployment(VercelModel):
    """배포 상세.

    식별자는 API 버전에 따라 ``uid`` 또는 ``id``로 내려온다.
    ``uid``를 먼저 보고, 없으면 ``id``를 사용한다. 직렬화는 항상 ``uid``.
    """

    uid: str = Field(validation_alias=AliasChoices("uid", "id"), serialization_alias="uid")
    name: str | None = None
    url: str | None = None
    ready_state: str | None = None
    state: str | None = None
    created: int | None = None         # epoch ms
    building_at: int | None = None
    ready: int | None = None
    project_id: str | None = None
    creator: Creator | None = None
    meta: Any = None                   # 자유 형식 JSON
    target: str | None = None
    source: str | None = None


class DeploymentEvent(VercelModel):
    """빌드/런타임 로그 한 줄."""

    type: str
    created: int | None = None
    text: str | None = None
    payload: Any = None


class User(VercelModel):
    id: str
    email: str | None = None
    name: str | None = None
    username: str | None = None


class Pagination(VercelModel):
    count: int | None = None
    next: int | None = None
    prev: int | None = None


class ProjectList(VercelModel):
    projects: list[Project]
    pagination: Pagination | None = None


class DeploymentList(VercelModel):
    deployments: list[Deployment]
    pagination: Pagination | None = None


class UserEnvelope(VercelModel):
    user: User


def to_wire(model: BaseModel) -> dict[str, Any]:
    """모델 -> RPC 응답용 camelCase dict 변환."""
    return model.model_dump(mode="json", by_alias=True)
