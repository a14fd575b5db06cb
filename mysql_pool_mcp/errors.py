"""工具调用的错误分类"""

from enum import Enum

import mcp.types as types
from mcp.shared.exceptions import McpError


class ErrorKind(Enum):
    """上报给调用方的错误类型，取值为对应的JSON-RPC错误码"""

    INVALID_PARAMS = types.INVALID_PARAMS
    INVALID_REQUEST = types.INVALID_REQUEST
    INTERNAL_ERROR = types.INTERNAL_ERROR
    METHOD_NOT_FOUND = types.METHOD_NOT_FOUND


class ToolError(Exception):
    """工具调用失败，携带错误类型标签"""

    def __init__(self, kind: ErrorKind, message: str):
        super().__init__(message)
        self.kind = kind
        self.message = message

    def to_mcp_error(self) -> McpError:
        """在协议边界转换为McpError"""
        return McpError(types.ErrorData(code=self.kind.value, message=self.message))
