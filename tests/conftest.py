"""공통 fixture."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest
import yaml

API = "https://api.vercel.com"


@pytest.fixture()
def sample_project() -> dict[str, Any]:
    """Vercel 프로젝트 응답 샘플."""
    return {
        "id": "prj_123",
        "name": "my-app",
        "accountId": "team_abc",
        "framework": "nextjs",
        "createdAt": 1718000000000,
        "updatedAt": 1718500000000,
        "nodeVersion": "20.x",
        "latestDeployments": [
            {
                "id": "dpl_1",
                "url": "my-app-1.vercel.app",
                "readyState": "READY",
                "createdAt": 1718400000000,
            },
        ],
        "env": [],                      # 모델에 없는 필드
    }


@pytest.fixture()
def sample_deployment() -> dict[str, Any]:
    """배포 목록 응답의 항목 (uid 사용)."""
    return {
        "uid": "dpl_abc",
        "name": "my-app",
        "url": "my-app-abc.vercel.app",
        "state": "READY",
        "readyState": "READY",
        "created": 1718400000000,
        "buildingAt": 1718400001000,
        "ready": 1718400060000,
        "creator": {"uid": "usr_1", "email": "dev@example.com", "username": "dev"},
        "meta": {"githubCommitSha": "deadbeef", "githubCommitRef": "main"},
        "target": "production",
        "source": "git",
        "inspectorUrl": "https://vercel.com/x/y",
    }


@pytest.fixture()
def sample_events() -> list[dict[str, Any]]:
    """빌드 로그 이벤트 샘플 (시간순)."""
    return [
        {"type": "command", "created": 1718400001000, "payload": {"text": "npm run build"}},
        {"type": "stdout", "created": 1718400002000, "text": "Compiled successfully"},
        {"type": "stdout", "created": 1718400003000, "text": "Build completed"},
    ]


@pytest.fixture()
def sample_user() -> dict[str, Any]:
    return {
        "user": {
            "id": "usr_1",
            "email": "dev@example.com",
            "name": "Dev",
            "username": "dev",
            "softBlock": None,
            "billing": {"plan": "hobby"},
        },
    }


@pytest.fixture()
def sample_config_data() -> dict[str, Any]:
    """테스트용 config dict."""
    return {
        "vercel": {
            "base_url": API,
            "timeout_sec": 5,
            "max_idle_per_host": 5,
            "token_env_var": "VERCEL_ACCESS_TOKEN",
        },
        "server": {"socket_path": "/tmp/fgp-test/daemon.sock"},
    }


@pytest.fixture()
def tmp_config_file(tmp_path: Path, sample_config_data: dict[str, Any]) -> Path:
    """임시 config.yaml 파일."""
    config_path = tmp_path / "config.yaml"
    config_path.write_text(yaml.dump(sample_config_data), encoding="utf-8")
    return config_path
