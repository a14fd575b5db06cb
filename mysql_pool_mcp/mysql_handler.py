import asyncio
import json
import logging
import ssl
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional

import aiomysql

from .config import MySQLConfig, parse_config
from .errors import ErrorKind, ToolError
from .sql_utils import check_read_only, quote_identifier, to_driver_placeholders

logger = logging.getLogger(__name__)

NOT_CONNECTED_MESSAGE = (
    "Not connected to MySQL. Please connect first using connect or setup_persistent."
)


class RowEncoder(json.JSONEncoder):
    """自定义JSON编码器，处理MySQL返回的特殊类型"""
    def default(self, obj):
        if isinstance(obj, Decimal):
            # 转为字符串以保持精度
            return str(obj)
        if isinstance(obj, (datetime, date, time)):
            return obj.isoformat()
        if isinstance(obj, timedelta):
            return str(obj)
        if isinstance(obj, (bytes, bytearray)):
            try:
                return bytes(obj).decode("utf-8")
            except UnicodeDecodeError:
                return bytes(obj).hex()
        if isinstance(obj, set):
            return sorted(obj)
        return super(RowEncoder, self).default(obj)


def format_rows(rows: Any) -> str:
    return json.dumps(rows, indent=2, ensure_ascii=False, cls=RowEncoder)


class MySQLHandler:
    """MySQL连接管理器

    持有至多一个活动连接池、当前连接配置、默认配置以及自动连接开关。
    只有两个状态：未连接、已连接。connect、setup_persistent 和自动连接
    是进入已连接状态的唯一途径，disconnect 是唯一的反向转换。
    """

    def __init__(self, default_config: Optional[MySQLConfig] = None, read_only: bool = False):
        self.pool: Optional[aiomysql.Pool] = None
        self.config: Optional[MySQLConfig] = None
        self.default_config = default_config
        self.auto_connect = default_config is not None
        self.read_only = read_only
        # 串行化状态转换（连接、断开、自动连接）
        self._lock = asyncio.Lock()

    @property
    def is_connected(self) -> bool:
        return self.pool is not None

    async def _close_pool(self) -> None:
        pool, self.pool = self.pool, None
        self.config = None
        if pool is not None:
            # wait_closed 会等待正在使用的连接归还
            pool.close()
            await pool.wait_closed()

    async def _open(self, config: MySQLConfig) -> None:
        """关闭旧连接池，建立新连接池并做连通性检查"""
        await self._close_pool()

        logger.info(f"正在连接MySQL {config.target} (用户 {config.user})")
        pool = None
        try:
            pool = await aiomysql.create_pool(
                host=config.host,
                port=config.port,
                user=config.user,
                password=config.password,
                db=config.database,
                ssl=ssl.create_default_context() if config.ssl else None,
                minsize=0,
                maxsize=config.connection_limit,
                autocommit=True,
                charset="utf8mb4",
            )
            async with pool.acquire() as connection:
                await connection.ping(reconnect=False)
        except Exception as e:
            logger.error(f"连接数据库失败: {e}")
            if pool is not None:
                pool.close()
                await pool.wait_closed()
            raise ToolError(ErrorKind.INVALID_PARAMS, f"Failed to connect to MySQL: {e}") from e

        self.pool = pool
        self.config = config
        logger.info(f"已连接MySQL {config.target}")

    async def _ensure_pool(self) -> aiomysql.Pool:
        """返回活动连接池，必要时使用默认配置自动连接"""
        if self.pool is None and self.auto_connect and self.default_config is not None:
            async with self._lock:
                if self.pool is None:
                    try:
                        await self._open(self.default_config)
                    except ToolError as e:
                        logger.warning(f"自动连接失败: {e.message}")
        if self.pool is None:
            raise ToolError(ErrorKind.INVALID_REQUEST, NOT_CONNECTED_MESSAGE)
        return self.pool

    async def _execute(self, pool: aiomysql.Pool, sql: str, args: Optional[List[Any]] = None) -> Any:
        async with pool.acquire() as connection:
            async with connection.cursor(aiomysql.DictCursor) as cursor:
                await cursor.execute(sql, args)
                if cursor.description is None:
                    return {"affectedRows": cursor.rowcount, "insertId": cursor.lastrowid}
                return list(await cursor.fetchall())

    def _connected_message(self, config: MySQLConfig) -> str:
        message = f"Successfully connected to MySQL server at {config.target}"
        if config.database:
            message += f" (database: {config.database})"
        return message

    async def connect(self, arguments: Optional[Dict[str, Any]]) -> str:
        config = parse_config(arguments)
        async with self._lock:
            await self._open(config)
        return self._connected_message(config)

    async def setup_persistent(self, arguments: Optional[Dict[str, Any]]) -> str:
        """连接并记住配置，之后断开时会自动重连"""
        config = parse_config(arguments)
        async with self._lock:
            await self._open(config)
            self.default_config = config
            self.auto_connect = True
        return (
            self._connected_message(config)
            + ". Persistent connection enabled: operations will reconnect automatically."
        )

    async def startup(self) -> None:
        """启动时按环境变量配置尝试连接，失败只记录日志"""
        if self.default_config is None:
            logger.info("未配置MYSQL_USER/MYSQL_PASSWORD，等待 connect 调用")
            return
        try:
            await self._ensure_pool()
        except ToolError:
            logger.warning("启动时自动连接失败，后续操作会重试")

    async def query(self, sql: str, params: Optional[List[Any]] = None) -> str:
        """执行SQL，参数通过驱动的参数化路径绑定"""
        pool = await self._ensure_pool()

        if self.read_only:
            allowed, reason = check_read_only(sql)
            if not allowed:
                raise ToolError(ErrorKind.INVALID_PARAMS, f"Query rejected: {reason}")

        args = None
        if params:
            sql = to_driver_placeholders(sql)
            args = list(params)

        try:
            result = await self._execute(pool, sql, args)
        except Exception as e:
            logger.error(f"执行查询失败: {e}")
            raise ToolError(ErrorKind.INVALID_PARAMS, f"Query execution failed: {e}") from e
        return format_rows(result)

    async def _introspect(self, sql: str, failure: str) -> str:
        pool = await self._ensure_pool()
        try:
            rows = await self._execute(pool, sql)
        except Exception as e:
            logger.error(f"{failure}: {e}")
            raise ToolError(ErrorKind.INTERNAL_ERROR, f"{failure}: {e}") from e
        return format_rows(rows)

    async def list_databases(self) -> str:
        return await self._introspect("SHOW DATABASES", "Failed to list databases")

    async def list_tables(self, database: Optional[str] = None) -> str:
        sql = "SHOW TABLES"
        if database:
            sql = f"SHOW TABLES FROM {quote_identifier(database)}"
        return await self._introspect(sql, "Failed to list tables")

    async def describe_table(self, table: str, database: Optional[str] = None) -> str:
        sql = f"DESCRIBE {quote_identifier(table)}"
        if database:
            sql = f"DESCRIBE {quote_identifier(database)}.{quote_identifier(table)}"
        return await self._introspect(sql, "Failed to describe table")

    async def disconnect(self) -> str:
        async with self._lock:
            if self.pool is not None:
                target = self.config.target if self.config else "MySQL"
                await self._close_pool()
                logger.info(f"已断开MySQL {target}")
        return "Successfully disconnected from MySQL server"

    async def close(self) -> None:
        """进程退出时释放连接池"""
        await self.disconnect()

    async def status(self) -> str:
        """汇报连接状态，不抛出异常"""
        lines = [
            "MySQL connection status",
            f"Connected: {'yes' if self.is_connected else 'no'}",
            f"Auto-connect: {'enabled' if self.auto_connect else 'disabled'}",
        ]

        pool, config = self.pool, self.config
        if pool is not None and config is not None:
            lines.extend([
                f"Host: {config.host}",
                f"Port: {config.port}",
                f"Database: {config.database or '(none)'}",
                f"User: {config.user}",
            ])
            try:
                async with pool.acquire() as connection:
                    await connection.ping(reconnect=False)
                lines.append("Health check: OK")
            except Exception as e:
                logger.warning(f"健康检查失败: {e}")
                lines.append(f"Health check: FAILED ({e})")
        elif self.default_config is not None:
            default = self.default_config
            lines.append(
                f"Default configuration: {default.user}@{default.target}"
                + (f"/{default.database}" if default.database else "")
            )

        if self.read_only:
            lines.append("Mode: read-only")
        return "\n".join(lines)
