"""测试用的内存连接池替身"""

from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional, Tuple
from unittest.mock import patch

import pytest

from mysql_pool_mcp.config import MySQLConfig
from mysql_pool_mcp import mysql_handler


class FakeCursor:
    def __init__(self, server: "FakeMySQL"):
        self.server = server
        self.description = None
        self.rowcount = -1
        self.lastrowid = None
        self._rows: List[Dict[str, Any]] = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    async def execute(self, query: str, args: Optional[List[Any]] = None):
        self.server.executed.append((query, args))
        if self.server.query_error is not None:
            raise self.server.query_error
        if self.server.returns_rows:
            self._rows = list(self.server.rows)
            columns = list(self._rows[0]) if self._rows else ["result"]
            self.description = [(name, None, None, None, None, None, None) for name in columns]
            self.rowcount = len(self._rows)
        else:
            self.rowcount = self.server.affected_rows
            self.lastrowid = self.server.insert_id
        return self.rowcount

    async def fetchall(self):
        return tuple(self._rows)


class FakeConnection:
    def __init__(self, server: "FakeMySQL"):
        self.server = server

    async def ping(self, reconnect: bool = True):
        self.server.pings += 1
        if self.server.ping_error is not None:
            raise self.server.ping_error

    def cursor(self, *cursors):
        return FakeCursor(self.server)


class FakePool:
    def __init__(self, server: "FakeMySQL", kwargs: Dict[str, Any]):
        self.server = server
        self.kwargs = kwargs
        self.closed = False

    @asynccontextmanager
    async def acquire(self):
        if self.closed:
            raise RuntimeError("Pool is closed")
        yield FakeConnection(self.server)

    def close(self):
        self.closed = True

    async def wait_closed(self):
        pass


class FakeMySQL:
    """替代 aiomysql.create_pool，记录建立的连接池和执行的语句"""

    def __init__(self):
        self.pools: List[FakePool] = []
        self.executed: List[Tuple[str, Optional[List[Any]]]] = []
        self.pings = 0
        self.connect_error: Optional[Exception] = None
        self.ping_error: Optional[Exception] = None
        self.query_error: Optional[Exception] = None
        self.rows: List[Dict[str, Any]] = [{"id": 1, "name": "alice"}]
        self.returns_rows = True
        self.affected_rows = 0
        self.insert_id = 0

    async def create_pool(self, **kwargs):
        if self.connect_error is not None:
            raise self.connect_error
        pool = FakePool(self, kwargs)
        self.pools.append(pool)
        return pool

    @property
    def last_sql(self) -> str:
        return self.executed[-1][0]


@pytest.fixture
def fake_mysql():
    server = FakeMySQL()
    with patch.object(mysql_handler.aiomysql, "create_pool", side_effect=server.create_pool):
        yield server


@pytest.fixture
def credentials() -> Dict[str, Any]:
    return {
        "host": "db.internal",
        "port": 3307,
        "user": "app",
        "password": "secret",
        "database": "shop",
    }


@pytest.fixture
def default_config() -> MySQLConfig:
    return MySQLConfig(host="env-host", user="env-user", password="env-pass", database="envdb")
