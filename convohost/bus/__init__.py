"""
消息类型模块 - 渠道与会话层之间传递的数据结构。

消息流向：
  用户消息 → 渠道(Channel) → InboundMessage → SessionRouter → 会话句柄
  命令回复 → OutboundMessage → 渠道(Channel) → 用户
"""

from convohost.bus.events import InboundMessage, OutboundMessage

__all__ = ["InboundMessage", "OutboundMessage"]
