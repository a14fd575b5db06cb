"""SQL文本处理测试：占位符转换、标识符引用、只读检查"""

import pytest
from pymysql.converters import escape_item

from mysql_pool_mcp.sql_utils import check_read_only, quote_identifier, to_driver_placeholders


@pytest.mark.parametrize("query, expected", [
    ("SELECT * FROM t WHERE id = ?", "SELECT * FROM t WHERE id = %s"),
    ("INSERT INTO t (a, b) VALUES (?, ?)", "INSERT INTO t (a, b) VALUES (%s, %s)"),
    ("SELECT '?' AS q, id FROM t WHERE id = ?", "SELECT '?' AS q, id FROM t WHERE id = %s"),
    ("SELECT * FROM t WHERE name LIKE 'a%' AND id = ?", "SELECT * FROM t WHERE name LIKE 'a%%' AND id = %s"),
    ("SELECT * FROM t WHERE id = %s", "SELECT * FROM t WHERE id = %s"),
    ("SELECT id % 2 FROM t WHERE id > ?", "SELECT id %% 2 FROM t WHERE id > %s"),
])
def test_to_driver_placeholders(query, expected):
    assert to_driver_placeholders(query) == expected


def test_placeholders_inside_comments_untouched():
    query = "SELECT id FROM t -- why?\nWHERE id = ?"
    assert to_driver_placeholders(query) == "SELECT id FROM t -- why?\nWHERE id = %s"


def test_bound_parameter_is_escaped_by_driver():
    sql = to_driver_placeholders("SELECT * FROM t WHERE id = ?")
    rendered = sql % tuple(escape_item(value, "utf8mb4") for value in ["5'; DROP TABLE t; --"])
    assert rendered == "SELECT * FROM t WHERE id = '5\\'; DROP TABLE t; --'"


def test_literal_percent_survives_driver_formatting():
    sql = to_driver_placeholders("SELECT * FROM t WHERE name LIKE 'a%' AND id = ?")
    assert sql % ("5",) == "SELECT * FROM t WHERE name LIKE 'a%' AND id = 5"


@pytest.mark.parametrize("name, expected", [
    ("users", "`users`"),
    ("order items", "`order items`"),
    ("x`y", "`x``y`"),
])
def test_quote_identifier(name, expected):
    assert quote_identifier(name) == expected


@pytest.mark.parametrize("query", [
    "SELECT id, name FROM tasks WHERE id = 79",
    "select * from tasks where updated_at > '2023-01-01'",
    "SHOW TABLES",
    "DESCRIBE tasks",
    "DESC tasks",
    "EXPLAIN SELECT * FROM tasks WHERE id = 1",
    "WITH recent AS (SELECT * FROM tasks) SELECT * FROM recent",
    "  -- leading comment\nSELECT 1",
    "SELECT COUNT(*) AS updated_count FROM tasks",
])
def test_read_only_allows(query):
    assert check_read_only(query) == (True, "")


@pytest.mark.parametrize("query, keyword", [
    ("UPDATE tasks SET status = 'done' WHERE id = 1", "UPDATE"),
    ("DELETE FROM tasks WHERE id = 1", "DELETE"),
    ("DROP TABLE tasks", "DROP"),
    ("INSERT INTO tasks (name) VALUES ('test')", "INSERT"),
    ("SELECT 1; DROP TABLE tasks", "DROP"),
    ("SELECT * FROM tasks INTO OUTFILE '/tmp/data.txt'", "INTO OUTFILE"),
    ("SELECT * FROM tasks INTO  DUMPFILE '/tmp/data.bin'", "INTO DUMPFILE"),
])
def test_read_only_rejects(query, keyword):
    allowed, reason = check_read_only(query)
    assert not allowed
    assert keyword in reason


def test_read_only_rejects_empty():
    allowed, reason = check_read_only("   ")
    assert not allowed
    assert reason == "Empty SQL statement"
