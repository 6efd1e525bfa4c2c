"""
会话存储实现模块 - 会话记录的创建、读取、列举、删除和事件追加。

本模块包含两个核心类：
- SessionRecord：持久化的会话记录（状态 + 事件日志）
- SessionStore：会话存储服务，负责 CRUD 操作和事件追加

【存储格式 - JSON】
每个会话存储为一个格式化的 JSON 文件，路径为：
    {app_name}/{user_id}/{session_id}.json
文件内容：
    {app_name, user_id, session_id, created_at, updated_at, state, events}

【并发模型】
- 进程级读写锁：create / delete 独占，get / list 共享
- append_event 不拿进程级锁，而是拿"每个会话一把"的互斥锁：
  不同会话的追加完全并行，同一会话的追加严格串行（读-改-写整体原子）
- append_event 与同一会话上并发的 get / delete / create 之间不互斥，这是已知且接受的竞争
- 事件 ID 由纳秒时间戳 + 进程级自增计数器组成，跨会话并发也不会重复

【错误处理】
存储层是严格的：参数错误抛 ValidationError，记录不存在抛 SessionNotFoundError，
重复创建抛 SessionExistsError，后端 I/O 失败包装为 StorageError 并带上会话键。
"""

import copy
import itertools
import json
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

from loguru import logger

from convohost.errors import (
    ConfigError,
    SessionExistsError,
    SessionNotFoundError,
    StorageError,
    ValidationError,
)
from convohost.session.events import Event, strip_temporary
from convohost.session.handle import SessionHandle
from convohost.storage.base import FileProvider
from convohost.utils.helpers import parse_timestamp, path_segment, require, utc_now
from convohost.utils.locks import KeyedLockRegistry, ReadWriteLock

# 进程级计数器，与时间戳组合保证事件 ID 和自动生成的会话 ID 唯一
_id_counter = itertools.count(1)
_id_counter_lock = threading.Lock()


def _next_sequence() -> int:
    with _id_counter_lock:
        return next(_id_counter)


def generate_event_id() -> str:
    """生成事件 ID，格式为 event_<纳秒时间戳>_<计数>。"""
    return f"event_{time.time_ns()}_{_next_sequence()}"


def generate_session_id() -> str:
    """生成会话 ID，格式为 session_<纳秒时间戳>_<计数>。"""
    return f"session_{time.time_ns()}_{_next_sequence()}"


def _as_utc(dt: datetime) -> datetime:
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


def filter_events(
    events: list[Event],
    num_recent_events: int = 0,
    after: datetime | None = None,
) -> list[Event]:
    """
    按请求参数过滤事件。顺序固定，不能交换：

    1. num_recent_events > 0 且事件数超过它时，只保留最近的 N 个
    2. 设置了 after 时，丢弃时间戳严格早于 after 的事件
       （事件按追加顺序排列，即按时间升序，找到第一个不早于 after 的位置即可）

    参数:
        events: 完整事件列表
        num_recent_events: 最多保留的最近事件数，0 表示不限制
        after: 时间下限（包含），None 表示不限制

    返回:
        过滤后的新列表
    """
    filtered = list(events)

    if num_recent_events > 0 and len(filtered) > num_recent_events:
        filtered = filtered[-num_recent_events:]

    if after is not None and filtered:
        cutoff = _as_utc(after)
        start = 0
        while start < len(filtered):
            ts = filtered[start].timestamp
            if ts is not None and not _as_utc(ts) < cutoff:
                break
            start += 1
        filtered = filtered[start:]

    return filtered


@dataclass
class SessionRecord:
    """
    持久化的会话记录。

    属性:
        app_name: 应用名
        user_id: 用户 ID
        session_id: 会话 ID
        created_at: 创建时间（创建后不再改变）
        updated_at: 最后写入时间（每次写入单调递增）
        state: 会话状态
        events: 事件日志（按追加顺序）
    """

    app_name: str
    user_id: str
    session_id: str
    created_at: datetime
    updated_at: datetime
    state: dict[str, Any] = field(default_factory=dict)
    events: list[Event] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "app_name": self.app_name,
            "user_id": self.user_id,
            "session_id": self.session_id,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "state": self.state,
            "events": [e.to_dict() for e in self.events],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SessionRecord":
        """
        从 JSON 结构还原会话记录。

        结构不合法（缺少标识字段、state 不是对象、events 中有非对象元素）时抛出
        KeyError / TypeError，由 SessionStore._load 统一包装为 StorageError。
        json.loads 已经区分 int 与 float：42 → int，42.5 → float，嵌套结构同样适用。
        """
        if not isinstance(data, dict):
            raise TypeError(f"session document must be an object, got {type(data).__name__}")
        state = data.get("state") or {}
        if not isinstance(state, dict):
            raise TypeError(f"state must be an object, got {type(state).__name__}")
        events = data.get("events") or []
        if not isinstance(events, list) or not all(isinstance(e, dict) for e in events):
            raise TypeError("events must be a list of objects")

        now = utc_now()
        return cls(
            app_name=data["app_name"],
            user_id=data["user_id"],
            session_id=data["session_id"],
            created_at=parse_timestamp(data.get("created_at")) or now,
            updated_at=parse_timestamp(data.get("updated_at")) or now,
            state=state,
            events=[Event.from_dict(e) for e in events],
        )

    def to_handle(self, events: list[Event] | None = None) -> SessionHandle:
        """生成防御性副本句柄；events 不为 None 时使用过滤后的事件列表。"""
        return SessionHandle(
            app_name=self.app_name,
            user_id=self.user_id,
            session_id=self.session_id,
            created_at=self.created_at,
            last_update_time=self.updated_at,
            state=copy.deepcopy(self.state),
            events=copy.deepcopy(self.events if events is None else events),
        )


class SessionStore:
    """
    基于 JSON 文档的会话存储服务。

    属性:
        provider: 存储后端（通常是带 "sessions" 命名空间的 provider）
        _lock: 进程级读写锁，保护 create / get / list / delete
        _session_locks: 每个会话一把的互斥锁注册表，保护 append_event
    """

    def __init__(self, provider: FileProvider, lock_idle_seconds: float = 600.0):
        if provider is None:
            raise ConfigError("file provider is required")
        self.provider = provider
        self._lock = ReadWriteLock()
        self._session_locks = KeyedLockRegistry(idle_seconds=lock_idle_seconds)

    @staticmethod
    def session_key(app_name: str, user_id: str, session_id: str) -> str:
        """
        生成会话的存储路径键：app_name/user_id/session_id.json

        每一段都经过 path_segment 编码，不同的 (app_name, user_id, session_id) 一定对应不同的键。
        """
        return f"{path_segment(app_name)}/{path_segment(user_id)}/{path_segment(session_id)}.json"

    # ------------------------------------------------------------------
    # 公开操作
    # ------------------------------------------------------------------

    def create(
        self,
        app_name: str,
        user_id: str,
        session_id: str | None = None,
        state: dict[str, Any] | None = None,
    ) -> SessionHandle:
        """
        创建新会话。

        session_id 为空时自动生成。目标已存在时抛出 SessionExistsError，
        绝不覆盖已有记录。

        参数:
            app_name: 应用名（必填）
            user_id: 用户 ID（必填）
            session_id: 会话 ID（可选）
            state: 初始状态（会被复制，调用方之后修改原字典不影响记录）

        返回:
            新会话的句柄
        """
        require(app_name=app_name, user_id=user_id)

        with self._lock.write():
            session_id = session_id or generate_session_id()
            key = self.session_key(app_name, user_id, session_id)

            if self._exists(key):
                raise SessionExistsError(session_id)

            now = utc_now()
            record = SessionRecord(
                app_name=app_name,
                user_id=user_id,
                session_id=session_id,
                created_at=now,
                updated_at=now,
                state=copy.deepcopy(state) if state else {},
                events=[],
            )
            self._save(key, record, touch=False)
            logger.info(f"Created session {key}")
            return record.to_handle()

    def get(
        self,
        app_name: str,
        user_id: str,
        session_id: str,
        num_recent_events: int = 0,
        after: datetime | None = None,
    ) -> SessionHandle:
        """
        读取会话。

        参数:
            num_recent_events: 只返回最近的 N 个事件（0 表示全部）
            after: 只返回时间戳不早于该时间的事件（在 N 条截断之后应用）

        返回:
            会话句柄（防御性副本）
        """
        require(app_name=app_name, user_id=user_id, session_id=session_id)
        key = self.session_key(app_name, user_id, session_id)

        with self._lock.read():
            logger.debug(f"Loading session from storage: {key}")
            if not self._exists(key):
                raise SessionNotFoundError(session_id, f"app: {app_name}, user: {user_id}")
            record = self._load(key)

        if (record.app_name, record.user_id, record.session_id) != (app_name, user_id, session_id):
            logger.warning(f"Session file {key} belongs to {record.app_name}/{record.user_id}/{record.session_id}")
            raise SessionNotFoundError(session_id, f"app: {app_name}, user: {user_id}")

        events = filter_events(record.events, num_recent_events, after)
        return record.to_handle(events)

    def list(self, app_name: str, user_id: str | None = None) -> list[SessionHandle]:
        """
        列举会话。

        指定 user_id 时只列举该用户目录，否则列举整个应用目录。
        加载失败的文件会被跳过（返回部分结果，不报错）。
        """
        require(app_name=app_name)
        if user_id:
            prefix = f"{path_segment(app_name)}/{path_segment(user_id)}/"
        else:
            prefix = f"{path_segment(app_name)}/"

        with self._lock.read():
            try:
                paths = self.provider.list(prefix)
            except Exception as e:
                logger.error(f"Failed to list session files under {prefix}: {e}")
                raise StorageError("failed to list session files", prefix) from e

            handles = []
            for path in paths:
                if not path.endswith(".json"):
                    continue
                try:
                    record = self._load(path)
                    if user_id and record.user_id != user_id:
                        continue
                    handles.append(record.to_handle())
                except (StorageError, SessionNotFoundError) as e:
                    logger.debug(f"Skipping unreadable session file {path}: {e}")

        return handles

    def delete(self, app_name: str, user_id: str, session_id: str) -> None:
        """删除会话文件。文件不存在不是错误。"""
        require(app_name=app_name, user_id=user_id, session_id=session_id)
        key = self.session_key(app_name, user_id, session_id)

        with self._lock.write():
            try:
                self.provider.delete(key)
            except Exception as e:
                logger.error(f"Failed to delete session {key}: {e}")
                raise StorageError(
                    f"failed to delete session {session_id} (app: {app_name}, user: {user_id})", key
                ) from e
        logger.info(f"Deleted session {key}")

    def append_event(self, handle: SessionHandle, event: Event) -> None:
        """
        向会话追加一个事件。

        流程：
        1. partial 事件直接忽略（不分配 ID、不持久化、不修改内存）
        2. 补全事件 ID 和时间戳
        3. 立即更新调用方的句柄（合并非临时 state_delta、追加事件），
           调用方复用同一个句柄时无需重新 get
        4. 持有该会话的锁：重新加载记录 → 过滤临时键（会修改 event.actions.state_delta）
           → 合并状态 → 追加事件 → 写回
        """
        if handle is None:
            raise ValidationError("session cannot be None")
        if event is None:
            raise ValidationError("event cannot be None")

        if event.partial:
            return

        if not event.id:
            event.id = generate_event_id()
        if event.timestamp is None:
            event.timestamp = utc_now()

        handle.apply_event(event)

        key = self.session_key(handle.app_name, handle.user_id, handle.id)
        logger.debug(f"Appending event {event.id} to session {key}")

        with self._session_locks.hold(key):
            try:
                record = self._load(key)
            except StorageError as e:
                raise StorageError("failed to load session for event append", key) from e

            delta = strip_temporary(event.actions.state_delta)
            event.actions.state_delta = delta
            record.state.update(delta)
            record.events.append(event)

            self._save(key, record)

        handle.last_update_time = record.updated_at

    # ------------------------------------------------------------------
    # 内部方法
    # ------------------------------------------------------------------

    def _exists(self, key: str) -> bool:
        try:
            return self.provider.exists(key)
        except Exception as e:
            raise StorageError("failed to check if session exists", key) from e

    def _load(self, key: str) -> SessionRecord:
        """从存储后端加载会话记录。"""
        start = time.monotonic()
        try:
            data = self.provider.read(key)
        except FileNotFoundError as e:
            raise SessionNotFoundError(key) from e
        except Exception as e:
            logger.warning(f"Failed to read session from storage {key}: {e}")
            raise StorageError("failed to read session", key) from e

        try:
            record = SessionRecord.from_dict(json.loads(data))
        except (KeyError, AttributeError, TypeError, ValueError) as e:
            logger.error(f"Failed to unmarshal session data {key}: {e}")
            raise StorageError("failed to unmarshal session data", key) from e

        logger.info(
            f"Loaded session {key} ({len(record.events)} events, "
            f"{(time.monotonic() - start) * 1000:.1f}ms)"
        )
        return record

    def _save(self, key: str, record: SessionRecord, touch: bool = True) -> None:
        """
        写回会话记录。

        touch=True 时推进 updated_at：取当前时间，若时钟回拨则在上次的基础上加 1 微秒，
        保证 updated_at 严格单调递增。
        """
        start = time.monotonic()
        if touch:
            now = utc_now()
            previous = _as_utc(record.updated_at)
            record.updated_at = now if now > previous else previous + timedelta(microseconds=1)

        try:
            data = json.dumps(record.to_dict(), indent=2, ensure_ascii=False).encode("utf-8")
        except (TypeError, ValueError) as e:
            logger.error(f"Failed to marshal session data {key}: {e}")
            raise StorageError("failed to marshal session data", key) from e

        try:
            self.provider.write(key, data)
        except Exception as e:
            logger.error(f"Failed to write session to storage {key}: {e}")
            raise StorageError("failed to write session file", key) from e

        logger.info(
            f"Saved session {key} ({len(record.events)} events, {len(data)} bytes, "
            f"{(time.monotonic() - start) * 1000:.1f}ms)"
        )
