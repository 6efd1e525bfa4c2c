"""
会话事件类型定义模块 - 定义会话中每一轮对话的数据结构。

本模块定义了两个数据类：
- EventActions：事件附带的动作，目前只有 state_delta（对会话状态的增量修改）
- Event：会话中的一个事件（一条用户消息、一次模型回复、一次工具调用或一次状态变更）

【临时状态键】
以 "temp:" 开头的键只在单次 append_event 调用期间有效，绝不会被持久化，
也不会出现在内存中的会话句柄里。其他键（包括 "app:" / "user:" 之类的约定前缀）按普通键处理。

【序列化】
Event.to_dict() / Event.from_dict() 负责与会话 JSON 文件中的结构互相转换，
时间戳使用 ISO 8601 格式（带时区）。
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from convohost.utils.helpers import parse_timestamp

TEMP_PREFIX = "temp:"  # 临时状态键前缀


def is_temporary_key(key: str) -> bool:
    """判断状态键是否为临时键（不可持久化）。"""
    return key.startswith(TEMP_PREFIX)


def strip_temporary(delta: dict[str, Any]) -> dict[str, Any]:
    """返回去掉所有临时键之后的新字典。"""
    return {k: v for k, v in delta.items() if not is_temporary_key(k)}


@dataclass
class EventActions:
    """
    事件附带的动作。

    属性:
        state_delta: 对会话状态的增量修改，append_event 时合并进会话状态
    """
    state_delta: dict[str, Any] = field(default_factory=dict)


@dataclass
class Event:
    """
    会话中的一个事件。

    属性:
        author: 事件作者（"user" 或 Agent 名称）
        content: 事件内容（通常为 {"role": ..., "parts": [...]} 结构）
        id: 事件唯一 ID，为空时由 append_event 自动生成
        invocation_id: 产生该事件的一次 Agent 调用 ID
        branch: 多 Agent 场景下的分支标识
        timestamp: 事件时间，为 None 时由 append_event 填充为当前时间
        partial: 是否为流式输出的片段（片段永远不会被持久化）
        turn_complete: 本轮对话是否结束
        actions: 附带的动作（state_delta）
    """

    author: str = ""
    content: dict[str, Any] | None = None
    id: str = ""
    invocation_id: str = ""
    branch: str = ""
    timestamp: datetime | None = None
    partial: bool = False
    turn_complete: bool = False
    actions: EventActions = field(default_factory=EventActions)

    @property
    def state_delta(self) -> dict[str, Any]:
        return self.actions.state_delta

    def text(self) -> str:
        """拼接 content.parts 中所有文本片段，便于 CLI 和渠道展示。"""
        if not self.content:
            return ""
        parts = self.content.get("parts") or []
        return "".join(p.get("text", "") for p in parts if isinstance(p, dict))

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "invocation_id": self.invocation_id,
            "author": self.author,
            "branch": self.branch,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
            "partial": self.partial,
            "turn_complete": self.turn_complete,
            "content": self.content,
            "actions": {"state_delta": self.actions.state_delta},
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Event":
        actions = data.get("actions") or {}
        return cls(
            id=data.get("id", ""),
            invocation_id=data.get("invocation_id", ""),
            author=data.get("author", ""),
            branch=data.get("branch", ""),
            timestamp=parse_timestamp(data.get("timestamp")),
            partial=data.get("partial", False),
            turn_complete=data.get("turn_complete", False),
            content=data.get("content"),
            actions=EventActions(state_delta=dict(actions.get("state_delta") or {})),
        )


def text_event(author: str, text: str, role: str = "user", **kwargs: Any) -> Event:
    """
    构造一个纯文本事件的便捷函数。

    参数:
        author: 事件作者
        text: 文本内容
        role: 内容角色（"user" 或 "model"）
        **kwargs: 透传给 Event 的其他字段（如 actions、partial）
    """
    return Event(author=author, content={"role": role, "parts": [{"text": text}]}, **kwargs)
