"""Action / Resource 模式匹配。"""

from __future__ import annotations

import re
from datetime import date, datetime
from typing import Any, Mapping

VARIABLE_PATTERN = re.compile(r"\$\{([^}]*)\}")

_MISSING = object()


def resolve_path(context: Mapping[str, Any] | None, path: str) -> Any:
    """按点号路径读取上下文的值，找不到时返回 None。

    先尝试整段路径作为扁平键（如 ``"request.method"``），再逐级下钻。
    """

    if not context or not path:
        return None
    if path in context:
        return context[path]

    current: Any = context
    for part in path.split("."):
        if not isinstance(current, Mapping):
            return None
        current = current.get(part, _MISSING)
        if current is _MISSING:
            return None
    return current


def scalar_text(value: Any) -> str | None:
    """把标量转换成用于比较的字符串，非标量返回 None。"""

    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (str, int, float)):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return None


def _split_pattern(pattern: str, context: Mapping[str, Any] | None) -> list[tuple[str, bool]]:
    """把模式切分成 (文本, 是否为模式文本) 片段。

    替换进来的上下文值始终按字面量处理；解析不到的变量保留原始的
    ``${...}`` 文本，同样按字面量处理。
    """

    parts: list[tuple[str, bool]] = []
    cursor = 0
    for matched in VARIABLE_PATTERN.finditer(pattern):
        if matched.start() > cursor:
            parts.append((pattern[cursor : matched.start()], True))
        value = scalar_text(resolve_path(context, matched.group(1).strip()))
        parts.append((matched.group(0) if value is None else value, False))
        cursor = matched.end()
    if cursor < len(pattern):
        parts.append((pattern[cursor:], True))
    return parts


def substitute_variables(pattern: str, context: Mapping[str, Any] | None) -> str:
    """替换 ``${a.b}`` 变量，返回替换后的字符串。"""

    return "".join(text for text, _ in _split_pattern(pattern, context))


def _glob_regex(parts: list[tuple[str, bool]]) -> re.Pattern[str]:
    chunks: list[str] = []
    for text, is_pattern in parts:
        if is_pattern:
            chunks.append(".*".join(re.escape(piece) for piece in text.split("*")))
        else:
            chunks.append(re.escape(text))
    return re.compile("".join(chunks), re.DOTALL)


def matches(candidate: Any, pattern: Any, context: Mapping[str, Any] | None = None) -> bool:
    """判断 candidate 是否匹配 pattern。

    ``*`` 匹配任意内容；``*`` 出现在模式中间时代表零个或多个任意字符，
    且整串锚定匹配。
    """

    if not isinstance(pattern, str) or not isinstance(candidate, str):
        return False
    if pattern == "*":
        return True

    parts = _split_pattern(pattern, context)
    if "".join(text for text, _ in parts) == candidate:
        return True
    if not any(is_pattern and "*" in text for text, is_pattern in parts):
        return False
    return _glob_regex(parts).fullmatch(candidate) is not None
