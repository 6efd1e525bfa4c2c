"""
会话模块 - 会话存储、会话索引与会话路由。

【架构定位】
- SessionStore：每个会话一个 JSON 文档（状态 + 事件日志），严格的错误处理
- SessionIndex：connector → user → 会话描述，用于挑选"当前会话"，尽力而为的持久化
- SessionRouter：渠道消息 → 会话句柄，负责让索引和存储保持一致

两者之间没有事务耦合：直接调用 SessionStore.delete() 不会更新索引，
需要同时清理索引时请使用 SessionRouter.delete()。
"""

from convohost.session.events import Event, EventActions, text_event
from convohost.session.handle import SessionHandle
from convohost.session.index import SessionIndex
from convohost.session.router import SessionRouter
from convohost.session.store import SessionRecord, SessionStore
from convohost.session.types import SessionDescriptor

__all__ = [
    "Event",
    "EventActions",
    "SessionDescriptor",
    "SessionHandle",
    "SessionIndex",
    "SessionRecord",
    "SessionRouter",
    "SessionStore",
    "text_event",
]
