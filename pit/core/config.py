# pit/core/config.py
"""
模块职能：启动时一次性读取配置，构造不可变的 Settings，注入 Model。

- load_env_files()：先加载 .env.example 作默认，再用 .env 覆盖；
- Settings.from_env()：读取 PIT_* / DATABASE_URL，校验后冻结；
- 运行期不再读取环境变量（秘钥只在这里读一次）。
"""
from __future__ import annotations

import os
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from pit.core.errors import ConfigurationError

ROOT = Path(__file__).resolve().parents[2]

DEFAULT_PREFIX = "pit"
DEFAULT_DATABASE_URL = "sqlite:///./pit.db"
DEFAULT_POLL_INTERVAL = 1.0
DEFAULT_SCAN_PAGE_SIZE = 100
DEFAULT_CAPACITY = 5


def load_env_files(root: Path = ROOT) -> None:
    env_example = root / ".env.example"
    env = root / ".env"
    if env_example.exists():
        load_dotenv(env_example, override=False)
    if env.exists():
        load_dotenv(env, override=True)


class Settings(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    prefix: str = DEFAULT_PREFIX
    database_url: str = DEFAULT_DATABASE_URL
    secret: bytes = Field(repr=False)
    poll_interval: float = Field(default=DEFAULT_POLL_INTERVAL, ge=0)
    scan_page_size: int = Field(default=DEFAULT_SCAN_PAGE_SIZE, gt=0)
    default_capacity: int = Field(default=DEFAULT_CAPACITY, gt=0)

    @field_validator("prefix", "database_url")
    @classmethod
    def _not_blank(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("must not be empty")
        return v.strip()

    @field_validator("secret")
    @classmethod
    def _secret_required(cls, v: bytes) -> bytes:
        # 空秘钥会让所有口令摘要退化为固定弱 key
        if not v:
            raise ValueError("secret must not be empty")
        return v

    @property
    def table_name(self) -> str:
        return f"{self.prefix}_users"

    @classmethod
    def build(cls, **values) -> "Settings":
        try:
            return cls(**values)
        except ValidationError as e:
            raise ConfigurationError(str(e)) from e

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if environ is None else environ
        secret = env.get("PIT_SECRET", "")
        if not secret:
            raise ConfigurationError("PIT_SECRET is not set in environment")

        def _num(name: str, conv, default):
            raw = env.get(name)
            if raw is None or raw == "":
                return default
            try:
                return conv(raw)
            except ValueError:
                raise ConfigurationError(f"{name} is not a valid number: {raw!r}")

        return cls.build(
            prefix=env.get("PIT_PREFIX") or DEFAULT_PREFIX,
            database_url=env.get("DATABASE_URL") or DEFAULT_DATABASE_URL,
            secret=secret.encode("utf-8"),
            poll_interval=_num("PIT_TABLE_POLL_INTERVAL", float, DEFAULT_POLL_INTERVAL),
            scan_page_size=_num("PIT_SCAN_PAGE_SIZE", int, DEFAULT_SCAN_PAGE_SIZE),
            default_capacity=_num("PIT_TABLE_CAPACITY", int, DEFAULT_CAPACITY),
        )
