"""
消息事件类型定义模块 - 定义渠道与会话层之间传递的数据结构。

本模块定义了两个核心数据类：
- InboundMessage：入站消息（从聊天渠道到会话路由）
- OutboundMessage：出站消息（会话路由对渠道命令的回复）

渠道适配器负责把平台原生消息解析成 InboundMessage，
会话层只关心 channel / sender_id / chat_id 三个字段，
不涉及任何平台特有的解析逻辑。
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from convohost.utils.helpers import utc_now


@dataclass
class InboundMessage:
    """
    入站消息 - 从聊天渠道接收到的用户消息。

    属性:
        channel: 消息来源渠道标识（如 'telegram', 'slack'），即会话索引中的 connector
        sender_id: 发送者唯一标识（渠道内的用户 ID）
        chat_id: 聊天/频道唯一标识（区分不同的对话窗口）
        content: 消息文本内容
        timestamp: 消息时间戳，默认为当前时间
        metadata: 渠道特有的附加数据
    """

    channel: str
    sender_id: str
    chat_id: str
    content: str
    timestamp: datetime = field(default_factory=utc_now)
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def command(self) -> str | None:
        """
        解析斜杠命令名。

        "/new" → "new"，"/sessions@my_bot" → "sessions"（Telegram 群聊会带上机器人名），
        普通文本返回 None。
        """
        text = self.content.strip()
        if not text.startswith("/"):
            return None
        name = text[1:].split(maxsplit=1)[0] if len(text) > 1 else ""
        return name.split("@", 1)[0].lower() or None


@dataclass
class OutboundMessage:
    """
    出站消息 - 要发送回聊天渠道的回复。

    属性:
        channel: 目标渠道标识
        chat_id: 目标聊天 ID
        content: 回复文本内容
        metadata: 渠道特有的附加数据（如 session_id）
    """

    channel: str
    chat_id: str
    content: str
    metadata: dict[str, Any] = field(default_factory=dict)
