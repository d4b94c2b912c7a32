"""YAML 설정 로딩 + Pydantic 모델."""

from __future__ import annotations

import os
from pathlib import Path

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, HttpUrl, TypeAdapter, field_validator

_DEFAULT_CONFIG_PATH = Path(__file__).resolve().parents[2] / "config.yaml"

_HTTP_URL = TypeAdapter(HttpUrl)

DEFAULT_SOCKET = "~/.fgp/services/vercel/daemon.sock"
TOKEN_HINT = "Create a token at https://vercel.com/account/tokens"


class ConfigError(Exception):
    """토큰 누락 같은 시작 시점의 설정 오류."""


# ── 설정 모델 ──────────────────────────────────────────


class VercelApiConfig(BaseModel):
    base_url: str = "https://api.vercel.com"
    timeout_sec: float = Field(default=30.0, gt=0)
    max_idle_per_host: int = Field(default=5, ge=1)
    token_env_var: str = "VERCEL_ACCESS_TOKEN"

    @field_validator("base_url")
    @classmethod
    def _check_base_url(cls, v: str) -> str:
        """http(s) 절대 URL만 허용한다. 원래 문자열은 끝의 /만 제거해 유지."""
        _HTTP_URL.validate_python(v)
        return v.rstrip("/")


class ServerConfig(BaseModel):
    socket_path: str = DEFAULT_SOCKET

    @property
    def socket(self) -> Path:
        return Path(self.socket_path).expanduser()


class AppConfig(BaseModel):
    """애플리케이션 전체 설정."""

    vercel: VercelApiConfig = Field(default_factory=VercelApiConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)


# ── 로딩 ───────────────────────────────────────────────


def load_config(path: Path | None = None) -> AppConfig:
    """YAML 설정 파일을 로딩하고 Pydantic 모델로 검증한다.

    환경변수 우선순위: 시스템 환경변수 > .env 파일 > config.yaml 기본값.
    경로 미지정 시 기본 config.yaml이 없으면 내장 기본값을 사용한다.
    """
    config_path = path or _DEFAULT_CONFIG_PATH

    dotenv_path = config_path.parent / ".env"
    load_dotenv(dotenv_path=dotenv_path, override=False)

    if path is None and not config_path.exists():
        raw: dict = {}
    else:
        with open(config_path) as f:
            raw = yaml.safe_load(f)
        if raw is None:
            raise ValueError(f"Empty config file: {config_path}")

    # 환경변수 오버라이드
    if socket_path := os.environ.get("FGP_VERCEL_SOCKET"):
        raw.setdefault("server", {})
        raw["server"]["socket_path"] = socket_path

    return AppConfig.model_validate(raw)


def resolve_token(config: VercelApiConfig) -> str:
    """환경변수에서 Vercel 액세스 토큰을 읽는다."""
    token = os.environ.get(config.token_env_var, "")
    if not token:
        raise ConfigError(f"{config.token_env_var} environment variable not set. {TOKEN_HINT}")
    return token
