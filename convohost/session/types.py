"""
会话索引类型定义 - 定义会话索引的数据模型。

- SessionDescriptor：索引中的一条会话描述（不包含对话内容）
- IndexStore：完整的持久化索引，connector → user_id → [SessionDescriptor]

索引文件结构：
    {"sessions": {"telegram": {"42": [{"session_id": ..., "last_active": ...}]}}}
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any

from convohost.utils.helpers import parse_timestamp, utc_now


@dataclass
class SessionDescriptor:
    """
    会话描述。

    属性:
        session_id: 会话 ID（在同一 connector + user 列表中唯一）
        connector: 渠道名（如 "telegram"、"slack"）
        user_id: 渠道内的用户 ID
        channel_id: 会话发生的聊天/频道 ID
        created_at: 创建时间
        last_active: 最近活跃时间（每次 touch 更新）
    """
    session_id: str
    connector: str
    user_id: str
    channel_id: str = ""
    created_at: datetime = field(default_factory=utc_now)
    last_active: datetime = field(default_factory=utc_now)

    def copy(self) -> "SessionDescriptor":
        return replace(self)

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "connector": self.connector,
            "user_id": self.user_id,
            "channel_id": self.channel_id,
            "created_at": self.created_at.isoformat(),
            "last_active": self.last_active.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SessionDescriptor":
        now = utc_now()
        return cls(
            session_id=data["session_id"],
            connector=data.get("connector", ""),
            user_id=data.get("user_id", ""),
            channel_id=data.get("channel_id", ""),
            created_at=parse_timestamp(data.get("created_at")) or now,
            last_active=parse_timestamp(data.get("last_active")) or now,
        )


@dataclass
class IndexStore:
    """
    会话索引的持久化结构。每次修改都会整体重写。

    属性:
        sessions: connector → user_id → 会话描述列表
    """
    sessions: dict[str, dict[str, list[SessionDescriptor]]] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "sessions": {
                connector: {
                    user_id: [d.to_dict() for d in descriptors]
                    for user_id, descriptors in users.items()
                }
                for connector, users in self.sessions.items()
            }
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "IndexStore":
        sessions = {}
        for connector, users in (data.get("sessions") or {}).items():
            sessions[connector] = {
                user_id: [SessionDescriptor.from_dict(d) for d in descriptors or []]
                for user_id, descriptors in (users or {}).items()
            }
        return cls(sessions=sessions)
