"""
会话索引实现模块 - 按渠道和用户记录会话及其最近活跃时间。

索引回答的问题只有一个：一条来自 (connector, user_id) 的新消息，
应该继续哪个会话，还是开启一个新会话？为此它只保存轻量的会话描述，
从不加载会话的对话内容。

【存储】
整个索引是一个 JSON 文档（默认 index/sessions.json），每次修改都整体重写。

【并发】
- _lock：读写锁，保护内存中的索引。查询共享，修改独占
- _file_lock：单独保护"序列化 + 写盘"这一步

【错误处理 - 尽力而为】
索引只是一个便利缓存，不是对话内容的权威来源。写盘失败只记录日志、不向上抛出：
丢失一次索引更新的后果只是下次可能多创建一个会话，不会丢失数据。
这与 SessionStore 的严格策略刻意不同。
"""

import json
import threading

from loguru import logger

from convohost.errors import ConfigError, SessionNotFoundError, StorageError
from convohost.session.types import IndexStore, SessionDescriptor
from convohost.storage.base import FileProvider
from convohost.utils.helpers import new_prefixed_id, require, utc_now
from convohost.utils.locks import ReadWriteLock


class SessionIndex:
    """
    会话索引。

    属性:
        provider: 存储后端
        metadata_file: 索引文件路径（相对于 provider 根）
        _store: 内存中的索引 connector → user_id → [SessionDescriptor]
    """

    def __init__(self, provider: FileProvider, metadata_file: str):
        if not metadata_file:
            raise ConfigError("metadata file path is required")
        if provider is None:
            raise ConfigError("file provider is required")

        self.provider = provider
        self.metadata_file = metadata_file
        self._lock = ReadWriteLock()
        self._file_lock = threading.Lock()
        self._store = IndexStore()
        self._load()

    # ------------------------------------------------------------------
    # 查询
    # ------------------------------------------------------------------

    def get_latest_session(self, connector: str, user_id: str) -> str:
        """
        返回 (connector, user_id) 最近活跃的会话 ID。

        没有任何会话时返回空字符串（不是错误）。
        """
        with self._lock.read():
            descriptors = self._store.sessions.get(connector, {}).get(user_id) or []
            if not descriptors:
                return ""

            latest = descriptors[0]
            for d in descriptors[1:]:
                if d.last_active > latest.last_active:
                    latest = d
            return latest.session_id

    def list_user_sessions(self, connector: str, user_id: str) -> list[SessionDescriptor]:
        """返回该用户在该渠道下的所有会话副本，按最近活跃时间倒序。"""
        with self._lock.read():
            descriptors = self._store.sessions.get(connector, {}).get(user_id) or []
            result = [d.copy() for d in descriptors]

        result.sort(key=lambda d: d.last_active, reverse=True)
        return result

    def all_sessions(self) -> list[SessionDescriptor]:
        """返回索引中所有会话描述的副本，按最近活跃时间倒序。"""
        with self._lock.read():
            result = [
                d.copy()
                for users in self._store.sessions.values()
                for descriptors in users.values()
                for d in descriptors
            ]
        result.sort(key=lambda d: d.last_active, reverse=True)
        return result

    # ------------------------------------------------------------------
    # 修改
    # ------------------------------------------------------------------

    def get_or_create_session(self, connector: str, user_id: str, channel_id: str = "") -> str:
        """
        返回已有的最近会话，没有则新建。

        找到已有会话时会 touch 它；touch 失败只记录日志，会话 ID 照常返回。
        """
        require(connector=connector, user_id=user_id)

        session_id = self.get_latest_session(connector, user_id)
        if session_id:
            try:
                self.update_last_active(session_id)
            except SessionNotFoundError as e:
                logger.warning(f"Failed to update last active time for {session_id}: {e}")
            return session_id

        return self.create_new_session(connector, user_id, channel_id)

    def create_new_session(self, connector: str, user_id: str, channel_id: str = "") -> str:
        """
        总是新建一个会话（用于 /new 命令）。

        写盘失败只记录日志：新会话在本进程剩余生命周期内依然存在于内存中。
        """
        require(connector=connector, user_id=user_id)

        with self._lock.write():
            session_id = new_prefixed_id("session")
            now = utc_now()
            descriptor = SessionDescriptor(
                session_id=session_id,
                connector=connector,
                user_id=user_id,
                channel_id=channel_id,
                created_at=now,
                last_active=now,
            )
            self._store.sessions.setdefault(connector, {}).setdefault(user_id, []).append(descriptor)

            try:
                self._save()
            except StorageError as e:
                logger.error(f"Failed to save metadata after creating session {session_id}: {e}")

        logger.info(f"Created new session {session_id} (connector={connector}, user={user_id})")
        return session_id

    def update_last_active(self, session_id: str) -> None:
        """
        把会话的最近活跃时间更新为当前时间。

        需要遍历所有渠道和用户（O(会话总数)），索引规模下可以接受。
        会话不存在时抛出 SessionNotFoundError；写盘失败只记录日志。
        """
        require(session_id=session_id)

        with self._lock.write():
            descriptor = self._find(session_id)
            if descriptor is None:
                raise SessionNotFoundError(session_id)
            descriptor.last_active = utc_now()

            try:
                self._save()
            except StorageError as e:
                logger.warning(f"Failed to save metadata after updating last active for {session_id}: {e}")

    def forget_session(self, session_id: str) -> bool:
        """
        从索引中移除一个会话描述（会话被删除时调用）。

        返回:
            True 表示找到并移除，False 表示索引中本来就没有
        """
        require(session_id=session_id)

        with self._lock.write():
            removed = False
            for connector in list(self._store.sessions):
                users = self._store.sessions[connector]
                for user_id in list(users):
                    kept = [d for d in users[user_id] if d.session_id != session_id]
                    if len(kept) != len(users[user_id]):
                        removed = True
                    if kept:
                        users[user_id] = kept
                    else:
                        del users[user_id]
                if not users:
                    del self._store.sessions[connector]

            if removed:
                try:
                    self._save()
                except StorageError as e:
                    logger.warning(f"Failed to save metadata after forgetting {session_id}: {e}")

        return removed

    # ------------------------------------------------------------------
    # 内部方法
    # ------------------------------------------------------------------

    def _find(self, session_id: str) -> SessionDescriptor | None:
        for users in self._store.sessions.values():
            for descriptors in users.values():
                for d in descriptors:
                    if d.session_id == session_id:
                        return d
        return None

    def _load(self) -> None:
        """构造时加载索引文件。文件不存在时从空索引开始；读取或解析失败时抛出 StorageError。"""
        with self._file_lock:
            try:
                exists = self.provider.exists(self.metadata_file)
            except Exception as e:
                raise StorageError("failed to check metadata file existence", self.metadata_file) from e

            if not exists:
                logger.info("Metadata file does not exist, starting with empty index")
                self._store = IndexStore()
                return

            try:
                data = self.provider.read(self.metadata_file)
            except Exception as e:
                raise StorageError("failed to read metadata file", self.metadata_file) from e

            try:
                self._store = IndexStore.from_dict(json.loads(data))
            except (ValueError, TypeError, KeyError) as e:
                raise StorageError("failed to parse metadata JSON", self.metadata_file) from e

        logger.info(f"Loaded session metadata from {self.metadata_file}")

    def _save(self) -> None:
        """整体重写索引文件。调用方必须持有 _lock 的写锁。"""
        with self._file_lock:
            try:
                data = json.dumps(self._store.to_dict(), indent=2, ensure_ascii=False).encode("utf-8")
                self.provider.write(self.metadata_file, data)
            except Exception as e:
                raise StorageError("failed to write metadata file", self.metadata_file) from e
