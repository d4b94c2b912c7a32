"""VercelService 디스패치 테스트."""

from __future__ import annotations

from collections.abc import Iterator
from typing import Any

import httpx
import pytest
from pytest_httpx import HTTPXMock

from fgp_vercel import __version__
from fgp_vercel.client import (
    VercelApiError,
    VercelConnectionError,
    VercelDecodeError,
)
from fgp_vercel.config import ConfigError
from fgp_vercel.methods import METHODS, ParamError, UnknownMethodError
from fgp_vercel.models import Deployment, DeploymentEvent, Project
from fgp_vercel.service import HealthStatus, VercelService

API = "https://api.vercel.com"


# ── 헬퍼 ──────────────────────────────────────────────


def to_project_wire(project_id: str, name: str) -> dict[str, Any]:
    return {
        "id": project_id,
        "name": name,
        "accountId": None,
        "framework": None,
        "createdAt": None,
        "updatedAt": None,
        "nodeVersion": None,
        "latestDeployments": None,
    }


class FakeClient:
    """호출 횟수를 기록하는 VercelClient 대역."""

    def __init__(self, *, ping: bool | Exception = True) -> None:
        self.calls: list[tuple[str, tuple]] = []
        self._ping = ping
        self.deployments: list[Deployment] = []
        self.closed = False

    async def ping(self) -> bool:
        self.calls.append(("ping", ()))
        if isinstance(self._ping, Exception):
            raise self._ping
        return self._ping

    async def list_projects(self, limit: int | None = None) -> list[Project]:
        self.calls.append(("list_projects", (limit,)))
        return [Project(id="prj_1", name="one")]

    async def get_project(self, project_id: str) -> Project:
        self.calls.append(("get_project", (project_id,)))
        return Project(id=project_id, name="my-app")

    async def list_deployments(self, project_id: str | None = None, limit: int | None = None) -> list:
        self.calls.append(("list_deployments", (project_id, limit)))
        return self.deployments

    async def get_deployment(self, deployment_id: str) -> Deployment:
        self.calls.append(("get_deployment", (deployment_id,)))
        return Deployment.model_validate({"id": deployment_id})

    async def get_deployment_events(self, deployment_id: str) -> list[DeploymentEvent]:
        self.calls.append(("get_deployment_events", (deployment_id,)))
        return [
            DeploymentEvent(type="stdout", created=2, text="second"),
            DeploymentEvent(type="stdout", created=1, text="first"),
        ]

    async def get_user_raw(self) -> Any:
        self.calls.append(("get_user_raw", ()))
        return {"user": {"id": "usr_1", "extra": True}}

    async def list_env_vars(self, project_id: str, target: str | None = None) -> Any:
        self.calls.append(("list_env_vars", (project_id, target)))
        return {"envs": []}

    async def set_env_var(self, project_id, key, value, target=None, env_type=None) -> Any:
        self.calls.append(("set_env_var", (project_id, key, value, target, env_type)))
        return {"created": {"key": key}}

    async def list_domains(self, project_id: str) -> Any:
        self.calls.append(("list_domains", (project_id,)))
        return {"domains": []}

    async def redeploy(self, deployment_id: str) -> Any:
        self.calls.append(("redeploy", (deployment_id,)))
        return {"id": "dpl_new"}

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture()
def fake() -> FakeClient:
    return FakeClient()


@pytest.fixture()
def service(fake: FakeClient) -> Iterator[VercelService]:
    svc = VercelService(client=fake)
    yield svc
    svc.close()


class TestRequiredParams:
    """필수 파라미터 누락 시 원격 호출이 없어야 한다."""

    @pytest.mark.parametrize(
        ("method", "params", "missing"),
        [
            ("project", {}, "project_id"),
            ("vercel.deployment", {}, "deployment_id"),
            ("logs", {}, "deployment_id"),
            ("env_vars", {"target": "production"}, "project_id"),
            ("set_env", {"project_id": "prj_1", "key": "FOO"}, "value"),
            ("set_env", {"project_id": "prj_1", "value": "bar"}, "key"),
            ("domains", {}, "project_id"),
            ("redeploy", {}, "deployment_id"),
        ],
    )
    def test_missing_param_no_remote_call(
        self, service: VercelService, fake: FakeClient, method: str, params: dict, missing: str,
    ) -> None:
        with pytest.raises(ParamError) as exc_info:
            service.dispatch(method, params)

        assert exc_info.value.param == missing
        assert fake.calls == []


class TestDispatch:
    def test_unknown_method(self, service: VercelService, fake: FakeClient) -> None:
        with pytest.raises(UnknownMethodError, match="Unknown method: frobnicate"):
            service.dispatch("frobnicate", {})
        assert fake.calls == []

    def test_projects_default_limit(self, service: VercelService, fake: FakeClient) -> None:
        result = service.dispatch("projects", {})

        assert result == {"projects": [to_project_wire("prj_1", "one")], "count": 1}
        assert fake.calls == [("list_projects", (20,))]

    def test_projects_non_integer_limit(self, service: VercelService, fake: FakeClient) -> None:
        service.dispatch("vercel.projects", {"limit": "50"})
        assert fake.calls == [("list_projects", (20,))]

    def test_project_alias_matches_canonical(self, service: VercelService, fake: FakeClient) -> None:
        by_name = service.dispatch("project", {"name": "my-app"})
        by_id = service.dispatch("project", {"project_id": "my-app"})

        assert by_name == by_id
        assert fake.calls == [("get_project", ("my-app",)), ("get_project", ("my-app",))]

    def test_deployments_count_from_results(self, service: VercelService, fake: FakeClient) -> None:
        fake.deployments = [Deployment.model_validate({"uid": f"dpl_{i}"}) for i in range(3)]

        result = service.dispatch("deployments", {"project_id": "prj_123", "limit": 5})

        assert result["count"] == 3
        assert [d["uid"] for d in result["deployments"]] == ["dpl_0", "dpl_1", "dpl_2"]
        assert fake.calls == [("list_deployments", ("prj_123", 5))]

    def test_deployment_id_alias(self, service: VercelService, fake: FakeClient) -> None:
        result = service.dispatch("deployment", {"id": "dpl_9"})

        assert result["uid"] == "dpl_9"

    def test_logs_preserve_order(self, service: VercelService) -> None:
        result = service.dispatch("vercel.logs", {"deployment_id": "dpl_1"})

        assert result["count"] == 2
        assert [e["text"] for e in result["events"]] == ["second", "first"]

    def test_user_is_raw(self, service: VercelService) -> None:
        assert service.dispatch("user") == {"user": {"id": "usr_1", "extra": True}}

    def test_env_vars_optional_target(self, service: VercelService, fake: FakeClient) -> None:
        service.dispatch("env_vars", {"project_id": "prj_1"})
        assert fake.calls == [("list_env_vars", ("prj_1", None))]

    def test_set_env_defaults(self, service: VercelService, fake: FakeClient) -> None:
        result = service.dispatch("set_env", {"project_id": "prj_1", "key": "FOO", "value": "bar"})

        assert result == {"created": {"key": "FOO"}}
        assert fake.calls == [
            ("set_env_var", ("prj_1", "FOO", "bar", ["production", "preview", "development"], "encrypted")),
        ]

    def test_set_env_explicit(self, service: VercelService, fake: FakeClient) -> None:
        service.dispatch(
            "vercel.set_env",
            {"project_id": "prj_1", "key": "FOO", "value": "bar", "target": ["preview"], "type": "plain"},
        )
        assert fake.calls[0][1][3:] == (["preview"], "plain")

    def test_domains_and_redeploy(self, service: VercelService, fake: FakeClient) -> None:
        assert service.dispatch("domains", {"project_id": "prj_1"}) == {"domains": []}
        assert service.dispatch("redeploy", {"deployment_id": "dpl_1"}) == {"id": "dpl_new"}

    def test_method_list_matches_catalog(self, service: VercelService) -> None:
        assert service.method_list() == list(METHODS)


class TestHealth:
    def test_healthy(self, service: VercelService) -> None:
        assert service.dispatch("health") == {
            "version": __version__,
            "status": "healthy",
            "api_connected": True,
        }

    def test_unhealthy(self) -> None:
        svc = VercelService(client=FakeClient(ping=False))
        try:
            result = svc.dispatch("health")
        finally:
            svc.close()

        assert result["status"] == "unhealthy"
        assert result["api_connected"] is False

    def test_network_error_propagates(self) -> None:
        svc = VercelService(client=FakeClient(ping=VercelConnectionError("refused")))
        try:
            with pytest.raises(VercelConnectionError):
                svc.dispatch("health")
        finally:
            svc.close()

    def test_decode_error_is_unhealthy(self) -> None:
        svc = VercelService(client=FakeClient(ping=VercelDecodeError("bad json")))
        try:
            result = svc.dispatch("health")
        finally:
            svc.close()

        assert result["status"] == "unhealthy"
        assert result["error"] == "bad json"


class TestHealthCheck:
    def test_healthy_has_latency(self, service: VercelService) -> None:
        checks = service.health_check()

        status = checks["vercel_api"]
        assert status.ok is True
        assert status.latency_ms is not None and status.latency_ms >= 0

    def test_unsuccessful_response(self) -> None:
        svc = VercelService(client=FakeClient(ping=False))
        try:
            checks = svc.health_check()
        finally:
            svc.close()
        assert checks == {"vercel_api": HealthStatus.unhealthy("API returned error")}

    def test_network_error_reason(self) -> None:
        svc = VercelService(client=FakeClient(ping=VercelConnectionError("Connection refused")))
        try:
            checks = svc.health_check()
        finally:
            svc.close()
        assert checks["vercel_api"].ok is False
        assert checks["vercel_api"].message == "Connection refused"


class TestOnStart:
    def test_success(self, service: VercelService) -> None:
        service.on_start()

    def test_unsuccessful_still_starts(self) -> None:
        svc = VercelService(client=FakeClient(ping=False))
        try:
            svc.on_start()
        finally:
            svc.close()

    def test_network_error_fails(self) -> None:
        svc = VercelService(client=FakeClient(ping=VercelConnectionError("refused")))
        try:
            with pytest.raises(VercelConnectionError):
                svc.on_start()
        finally:
            svc.close()


class TestLifecycle:
    def test_missing_token(self) -> None:
        with pytest.raises(ConfigError):
            VercelService("")

    def test_close_closes_client(self, fake: FakeClient) -> None:
        svc = VercelService(client=fake)
        svc.close()
        assert fake.closed is True


class TestAgainstHttpStub:
    """실제 VercelClient + httpx mock."""

    @pytest.fixture()
    def http_service(self) -> Iterator[VercelService]:
        svc = VercelService("test-token")
        yield svc
        svc.close()

    def test_deployments_scenario(
        self, http_service: VercelService, httpx_mock: HTTPXMock, sample_deployment: dict,
    ) -> None:
        records = []
        for i in range(3):
            record = dict(sample_deployment)
            record["uid"] = f"dpl_{i}"
            records.append(record)
        httpx_mock.add_response(
            url=f"{API}/v6/deployments?limit=5&projectId=prj_123",
            json={"deployments": records},
        )

        result = http_service.dispatch("deployments", {"project_id": "prj_123", "limit": 5})

        assert result["count"] == 3
        assert len(result["deployments"]) == 3
        assert result["deployments"][0]["readyState"] == "READY"

    def test_not_found_surfaces_status_and_body(
        self, http_service: VercelService, httpx_mock: HTTPXMock,
    ) -> None:
        httpx_mock.add_response(
            url=f"{API}/v13/deployments/dpl_missing",
            status_code=404,
            text='{"error":{"code":"not_found"}}',
        )

        with pytest.raises(VercelApiError) as exc_info:
            http_service.dispatch("deployment", {"deployment_id": "dpl_missing"})

        assert exc_info.value.status_code == 404
        assert '{"error":{"code":"not_found"}}' in str(exc_info.value)

    def test_health_200(
        self, http_service: VercelService, httpx_mock: HTTPXMock, sample_user: dict,
    ) -> None:
        httpx_mock.add_response(url=f"{API}/v2/user", json=sample_user)

        result = http_service.dispatch("health", {})

        assert result["status"] == "healthy"
        assert result["api_connected"] is True

    def test_health_401(self, http_service: VercelService, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(url=f"{API}/v2/user", status_code=401, json={"error": {"code": "forbidden"}})

        result = http_service.dispatch("health", {})

        assert result["status"] == "unhealthy"
        assert result["api_connected"] is False

    def test_set_env_missing_value_sends_nothing(
        self, http_service: VercelService, httpx_mock: HTTPXMock,
    ) -> None:
        with pytest.raises(ParamError, match="value"):
            http_service.dispatch("set_env", {"project_id": "prj_1", "key": "FOO"})

        assert httpx_mock.get_requests() == []

    def test_connect_error(self, http_service: VercelService, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_exception(httpx.ConnectError("Connection refused"))

        with pytest.raises(VercelConnectionError):
            http_service.dispatch("projects", {})
