"""连接配置与环境变量加载"""

import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import ErrorKind, ToolError

_TRUE_VALUES = {"1", "true", "yes", "on"}


class MySQLConfig(BaseModel):
    """MySQL连接配置，字段类型严格校验"""

    model_config = ConfigDict(strict=True, populate_by_name=True, frozen=True, extra="ignore")

    host: str = "localhost"
    port: int = Field(default=3306, ge=1, le=65535)
    user: str
    password: str
    database: Optional[str] = None
    ssl: bool = False
    connection_limit: int = Field(default=10, ge=1, alias="connectionLimit")

    @property
    def target(self) -> str:
        return f"{self.host}:{self.port}"


def parse_config(arguments: Optional[Dict[str, Any]]) -> MySQLConfig:
    """校验工具参数，失败时抛出INVALID_PARAMS"""
    try:
        return MySQLConfig.model_validate(arguments or {})
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in err['loc']) or 'config'}: {err['msg']}"
            for err in e.errors()
        )
        raise ToolError(ErrorKind.INVALID_PARAMS, f"Invalid configuration: {problems}") from e


def _env_int(environ: Mapping[str, str], name: str, default: int) -> int:
    raw = environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")


def _env_flag(environ: Mapping[str, str], name: str) -> bool:
    return environ.get(name, "").strip().lower() in _TRUE_VALUES


def config_from_env(environ: Optional[Mapping[str, str]] = None) -> Optional[MySQLConfig]:
    """从环境变量构建默认配置

    MYSQL_USER 和 MYSQL_PASSWORD 都非空时才返回配置，否则返回None。
    MYSQL_HOST 支持 host:port 和 [IPv6]:port 形式，此时其中的端口优先于 MYSQL_PORT；
    裸IPv6地址（如 ::1）不含端口。
    """
    if environ is None:
        environ = os.environ

    user = environ.get("MYSQL_USER", "")
    password = environ.get("MYSQL_PASSWORD", "")
    if not user or not password:
        return None

    host = environ.get("MYSQL_HOST", "").strip() or "localhost"
    port = _env_int(environ, "MYSQL_PORT", 3306)
    port_str = None
    if host.startswith("["):
        # [IPv6] 或 [IPv6]:port
        address, bracket, rest = host[1:].partition("]")
        if not bracket or (rest and not rest.startswith(":")):
            raise ValueError(f"MYSQL_HOST is not a valid address: {host!r}")
        host = address
        port_str = rest[1:] if rest else None
    elif host.count(":") == 1:
        host, port_str = host.split(":", 1)
    # 多个冒号且无方括号时视为裸IPv6地址

    if port_str is not None:
        try:
            port = int(port_str)
        except ValueError:
            raise ValueError(f"MYSQL_HOST has an invalid port: {port_str!r}")

    try:
        return MySQLConfig(
            host=host,
            port=port,
            user=user,
            password=password,
            database=environ.get("MYSQL_DATABASE") or None,
            ssl=_env_flag(environ, "MYSQL_SSL"),
            connection_limit=_env_int(environ, "MYSQL_CONNECTION_LIMIT", 10),
        )
    except ValidationError as e:
        raise ValueError(f"Invalid MySQL environment configuration: {e}") from e


@dataclass
class Settings:
    """进程级设置"""

    default_config: Optional[MySQLConfig]
    read_only: bool = False
    log_level: int = logging.INFO


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    if environ is None:
        environ = os.environ

    level_name = environ.get("MYSQL_MCP_LOG_LEVEL", "INFO").strip().upper()
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        raise ValueError(f"MYSQL_MCP_LOG_LEVEL is not a logging level: {level_name!r}")

    return Settings(
        default_config=config_from_env(environ),
        read_only=_env_flag(environ, "MYSQL_READ_ONLY"),
        log_level=level,
    )
