"""
工具函数集合 - convohost 项目全局通用的辅助函数。

函数分类：
- 路径管理：ensure_dir
- 字符串工具：one_line, path_segment
- 时间工具：utc_now, parse_timestamp
- 标识生成：new_prefixed_id
- 参数校验：require
"""

import uuid
from datetime import datetime, timezone
from pathlib import Path
from urllib.parse import quote


def ensure_dir(path: Path) -> Path:
    """创建目录（含父目录），已存在时不做任何事，返回 path 本身。"""
    path.mkdir(parents=True, exist_ok=True)
    return path


def utc_now() -> datetime:
    """获取当前 UTC 时间（带时区信息）。"""
    return datetime.now(timezone.utc)


def parse_timestamp(value: str | None) -> datetime | None:
    """
    解析 ISO 8601 时间字符串。

    不带时区的时间按 UTC 处理，保证与 utc_now() 的结果可以互相比较。
    空值返回 None。
    """
    if not value:
        return None
    dt = datetime.fromisoformat(value)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def new_prefixed_id(prefix: str) -> str:
    """
    生成带前缀的唯一标识，格式为 "prefix-uuid4"。

    例: new_prefixed_id("session") → "session-3f2b...-..."
    """
    return f"{prefix}-{uuid.uuid4()}"


def one_line(text: str, width: int = 80) -> str:
    """
    把多行文本压成一行并限制长度，用于 CLI 表格展示。

    例: one_line("hello\n  world", 8) → "hello w…"
    """
    flat = " ".join(text.split())
    if len(flat) <= width:
        return flat
    return flat[: max(width - 1, 0)] + "…"


def path_segment(name: str) -> str:
    """
    把任意 ID 编码成单个安全的路径片段，编码是单射的：不同的 ID 一定得到不同的片段。

    会话存储路径由 app_name/user_id/session_id 拼接而成，每一段都经过此函数：
    除字母、数字和 "_.-~" 之外的字符（包括 "/"、":"、"%"）都做百分号编码，
    开头的 "." 编码为 "%2E"，因此 "." 和 ".." 无法跳出目录，也不会生成隐藏文件。

    例: path_segment("telegram:42") → "telegram%3A42"，path_segment("telegram_42") → "telegram_42"
    """
    segment = quote(name, safe="")
    if segment.startswith("."):
        segment = "%2E" + segment[1:]
    return segment


def require(**values: str) -> None:
    """
    校验必填参数，任一参数为 None 或空字符串时抛出 ValidationError。

    例: require(app_name=app_name, user_id=user_id)
    """
    from convohost.errors import ValidationError

    for name, value in values.items():
        if not value:
            raise ValidationError(f"{name} is required")
