"""
会话路由模块 - 把渠道消息映射到会话句柄。

会话索引和会话存储没有任何共享代码，也不存在事务耦合，
本模块就是让两者保持一致的"调用方"：

    InboundMessage ──► SessionIndex.get_or_create_session()  选出会话 ID
                   ──► SessionStore.get() / create()          拿到会话句柄

同时处理渠道通用的斜杠命令：
- /new       开启新对话（索引新增一条 + 存储新建一条记录）
- /sessions  列出最近的对话
- /help      命令帮助

存储中的 user_id 使用 "connector:sender_id" 形式，
不同渠道中碰巧相同的用户 ID 不会落到同一个目录下。
"""

from loguru import logger

from convohost.bus.events import InboundMessage, OutboundMessage
from convohost.errors import SessionExistsError, SessionNotFoundError
from convohost.session.handle import SessionHandle
from convohost.session.index import SessionIndex
from convohost.session.store import SessionStore

HELP_TEXT = """Available Commands:

/new - Start a new conversation
/sessions - List your recent conversations
/help - Show this help message"""


def store_user_id(connector: str, user_id: str) -> str:
    """会话存储使用的用户 ID：connector:user_id。"""
    return f"{connector}:{user_id}"


class SessionRouter:
    """
    会话路由器。

    属性:
        store: 会话存储
        index: 会话索引
        app_name: 会话记录所属的应用名
        max_listed: /sessions 命令最多展示的会话数
    """

    def __init__(self, store: SessionStore, index: SessionIndex, app_name: str, max_listed: int = 10):
        self.store = store
        self.index = index
        self.app_name = app_name
        self.max_listed = max_listed

    def resolve(self, msg: InboundMessage) -> SessionHandle:
        """
        返回这条消息所属会话的句柄。

        索引里有最近会话就继续它，否则新建；存储里没有对应记录时补建。
        """
        session_id = self.index.get_or_create_session(msg.channel, msg.sender_id, msg.chat_id)
        return self._open(msg.channel, msg.sender_id, session_id)

    def start_new(self, msg: InboundMessage) -> SessionHandle:
        """开启新对话（/new）。"""
        session_id = self.index.create_new_session(msg.channel, msg.sender_id, msg.chat_id)
        return self._open(msg.channel, msg.sender_id, session_id)

    def delete(self, connector: str, user_id: str, session_id: str) -> None:
        """删除会话记录，并把它从索引中移除。"""
        self.store.delete(self.app_name, store_user_id(connector, user_id), session_id)
        if self.index.forget_session(session_id):
            logger.info(f"Removed {session_id} from session index")

    def handle_command(self, msg: InboundMessage) -> OutboundMessage | None:
        """
        处理会话相关的斜杠命令。

        返回:
            命令的回复；不是本模块负责的命令（或不是命令）时返回 None，
            由调用方继续交给 Agent 处理
        """
        command = msg.command
        if command == "new":
            handle = self.start_new(msg)
            return self._reply(msg, f"Started new conversation! (Session: {handle.id})", handle.id)

        if command == "sessions":
            descriptors = self.index.list_user_sessions(msg.channel, msg.sender_id)
            if not descriptors:
                return self._reply(msg, "No conversations yet.")
            lines = ["Your recent conversations:"]
            for i, d in enumerate(descriptors[: self.max_listed]):
                marker = " (current)" if i == 0 else ""
                lines.append(f"- {d.session_id} · last active {d.last_active:%Y-%m-%d %H:%M}{marker}")
            return self._reply(msg, "\n".join(lines))

        if command == "help":
            return self._reply(msg, HELP_TEXT)

        return None

    def _open(self, connector: str, user_id: str, session_id: str) -> SessionHandle:
        owner = store_user_id(connector, user_id)
        try:
            return self.store.get(self.app_name, owner, session_id)
        except SessionNotFoundError:
            logger.debug(f"Session {session_id} missing from store, creating it")

        try:
            return self.store.create(self.app_name, owner, session_id)
        except SessionExistsError:
            # 另一个线程刚刚创建了同一个会话
            return self.store.get(self.app_name, owner, session_id)

    @staticmethod
    def _reply(msg: InboundMessage, content: str, session_id: str = "") -> OutboundMessage:
        metadata = {"session_id": session_id} if session_id else {}
        return OutboundMessage(channel=msg.channel, chat_id=msg.chat_id, content=content, metadata=metadata)
