#!/usr/bin/env python3

import asyncio
import logging
from typing import Any, Optional

import mcp.server.stdio
import mcp.types as types
from mcp.server import NotificationOptions, Server
from mcp.server.models import InitializationOptions

from .config import load_settings
from .errors import ErrorKind, ToolError
from .mysql_handler import MySQLHandler

__version__ = "1.0.0"

SERVER_NAME = "mysql-pool-mcp"

logger = logging.getLogger(__name__)

_CONFIG_PROPERTIES = {
    "host": {"type": "string", "description": "MySQL host", "default": "localhost"},
    "port": {"type": "integer", "description": "MySQL port", "default": 3306},
    "user": {"type": "string", "description": "MySQL username"},
    "password": {"type": "string", "description": "MySQL password"},
    "database": {"type": "string", "description": "Database name (optional)"},
    "ssl": {"type": "boolean", "description": "Use SSL connection", "default": False},
    "connectionLimit": {"type": "integer", "description": "Connection pool limit", "default": 10},
}

_DATABASE_PROPERTY = {
    "type": "string",
    "description": "Database name (optional, uses current if not provided)",
}

TOOLS = [
    types.Tool(
        name="connect",
        description="Connect to a MySQL database",
        inputSchema={
            "type": "object",
            "properties": _CONFIG_PROPERTIES,
            "required": ["user", "password"],
        },
    ),
    types.Tool(
        name="query",
        description="Execute a MySQL query, binding params to ? placeholders",
        inputSchema={
            "type": "object",
            "properties": {
                "query": {"type": "string", "description": "SQL query to execute"},
                "params": {
                    "type": "array",
                    "description": "Query parameters for prepared statements",
                    "items": {"type": "string"},
                },
            },
            "required": ["query"],
        },
    ),
    types.Tool(
        name="list_databases",
        description="List all available databases",
        inputSchema={"type": "object", "properties": {}},
    ),
    types.Tool(
        name="list_tables",
        description="List tables in the current database",
        inputSchema={
            "type": "object",
            "properties": {"database": _DATABASE_PROPERTY},
        },
    ),
    types.Tool(
        name="describe_table",
        description="Get table structure and schema information",
        inputSchema={
            "type": "object",
            "properties": {
                "table": {"type": "string", "description": "Table name"},
                "database": _DATABASE_PROPERTY,
            },
            "required": ["table"],
        },
    ),
    types.Tool(
        name="disconnect",
        description="Close the MySQL connection",
        inputSchema={"type": "object", "properties": {}},
    ),
    types.Tool(
        name="setup_persistent",
        description="Connect and remember the configuration so later operations reconnect automatically",
        inputSchema={
            "type": "object",
            "properties": _CONFIG_PROPERTIES,
            "required": ["user", "password"],
        },
    ),
    types.Tool(
        name="status",
        description="Show connection status, auto-connect state and a health check",
        inputSchema={"type": "object", "properties": {}},
    ),
]

TOOL_NAMES = {tool.name for tool in TOOLS}


def _optional_string(arguments: dict[str, Any], key: str) -> Optional[str]:
    value = arguments.get(key)
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        raise ToolError(ErrorKind.INVALID_PARAMS, f"'{key}' must be a string")
    return value


def _required_string(arguments: dict[str, Any], key: str) -> str:
    value = _optional_string(arguments, key)
    if value is None:
        raise ToolError(ErrorKind.INVALID_PARAMS, f"'{key}' is required")
    return value


async def dispatch(handler: MySQLHandler, name: str, arguments: dict[str, Any]) -> str:
    """按工具名路由到连接管理器"""
    # 兼容 mysql_ 前缀的工具名
    if name not in TOOL_NAMES and name.startswith("mysql_"):
        name = name[len("mysql_"):]

    if name == "connect":
        return await handler.connect(arguments)
    elif name == "setup_persistent":
        return await handler.setup_persistent(arguments)
    elif name == "query":
        sql = _required_string(arguments, "query")
        params = arguments.get("params")
        if params is not None and not isinstance(params, list):
            raise ToolError(ErrorKind.INVALID_PARAMS, "'params' must be an array")
        return await handler.query(sql, params)
    elif name == "list_databases":
        return await handler.list_databases()
    elif name == "list_tables":
        return await handler.list_tables(_optional_string(arguments, "database"))
    elif name == "describe_table":
        return await handler.describe_table(
            _required_string(arguments, "table"),
            _optional_string(arguments, "database"),
        )
    elif name == "disconnect":
        return await handler.disconnect()
    elif name == "status":
        return await handler.status()
    raise ToolError(ErrorKind.METHOD_NOT_FOUND, f"Unknown tool: {name}")


async def call_tool(handler: MySQLHandler, name: str, arguments: Optional[dict[str, Any]]) -> str:
    """执行工具调用，把错误转换为协议层的McpError"""
    try:
        return await dispatch(handler, name, arguments or {})
    except ToolError as e:
        raise e.to_mcp_error() from e
    except Exception as e:
        logger.exception(f"执行工具 '{name}' 时发生错误")
        raise ToolError(
            ErrorKind.INTERNAL_ERROR, f"Error executing tool {name}: {e}"
        ).to_mcp_error() from e


def create_server(handler: MySQLHandler) -> Server:
    """创建绑定到指定连接管理器的MCP服务器"""
    app = Server(SERVER_NAME)

    @app.list_tools()
    async def handle_list_tools() -> list[types.Tool]:
        """列出可用的工具"""
        return TOOLS

    async def handle_call_tool(req: types.CallToolRequest) -> types.ServerResult:
        """处理工具调用，McpError 原样抛给会话层作为JSON-RPC错误返回"""
        result = await call_tool(handler, req.params.name, req.params.arguments)
        return types.ServerResult(
            types.CallToolResult(content=[types.TextContent(type="text", text=result)], isError=False)
        )

    app.request_handlers[types.CallToolRequest] = handle_call_tool
    return app


async def serve(handler: MySQLHandler, read_stream, write_stream) -> None:
    """在给定的流上运行服务器，启动时的自动连接在后台进行"""
    app = create_server(handler)
    # 不阻塞 initialize 握手
    startup = asyncio.create_task(handler.startup())
    try:
        await app.run(
            read_stream,
            write_stream,
            InitializationOptions(
                server_name=SERVER_NAME,
                server_version=__version__,
                capabilities=app.get_capabilities(
                    notification_options=NotificationOptions(),
                    experimental_capabilities={},
                ),
            ),
        )
    finally:
        if not startup.done():
            startup.cancel()
        try:
            await startup
        except asyncio.CancelledError:
            pass
        await handler.close()


async def main():
    """主入口点"""
    settings = load_settings()

    # 日志输出到stderr，stdout用于协议通信
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    handler = MySQLHandler(settings.default_config, read_only=settings.read_only)
    async with mcp.server.stdio.stdio_server() as (read_stream, write_stream):
        await serve(handler, read_stream, write_stream)

# 由 __main__.py 处理启动逻辑
