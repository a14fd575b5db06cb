"""基于sqlparse的SQL文本处理：占位符转换、标识符引用、只读检查"""

import sqlparse
from sqlparse import tokens as T

# 只读模式下允许的语句类型
READ_ONLY_COMMANDS = {"SELECT", "SHOW", "DESCRIBE", "DESC", "EXPLAIN", "WITH"}

_FILE_WRITES = ("INTO OUTFILE", "INTO DUMPFILE")


def quote_identifier(name: str) -> str:
    """用反引号引用标识符，内部的反引号加倍转义"""
    return "`" + name.replace("`", "``") + "`"


def to_driver_placeholders(query: str) -> str:
    """把 ? 位置占位符转换为驱动使用的 %s 形式

    字符串字面量和注释中的 ? 保持不变，其余的 % 加倍，
    以免驱动格式化参数时误解析。
    """
    parts = []
    for statement in sqlparse.parse(query):
        for token in statement.flatten():
            if token.ttype in T.Name.Placeholder and token.value == "?":
                parts.append("%s")
            elif token.ttype in T.Name.Placeholder and token.value.startswith("%"):
                parts.append(token.value)
            else:
                parts.append(token.value.replace("%", "%%"))
    return "".join(parts)


def _leading_keyword(statement: sqlparse.sql.Statement) -> str:
    first = statement.token_first(skip_ws=True, skip_cm=True)
    if first is None:
        return ""
    words = first.value.split()
    return words[0].upper() if words else ""


def check_read_only(query: str) -> tuple[bool, str]:
    """检查查询是否只包含只读语句"""
    statements = [s for s in sqlparse.parse(query) if s.token_first(skip_ws=True, skip_cm=True)]
    if not statements:
        return False, "Empty SQL statement"

    for statement in statements:
        keyword = _leading_keyword(statement)
        if keyword not in READ_ONLY_COMMANDS:
            return False, (
                f"Disallowed SQL command: {keyword}. Only SELECT, SHOW, DESCRIBE, EXPLAIN "
                "and WITH queries are allowed in read-only mode."
            )
        normalized = " ".join(str(statement).upper().split())
        for construct in _FILE_WRITES:
            if construct in normalized:
                return False, f"Detected {construct} in read-only mode, query rejected"

    return True, ""
