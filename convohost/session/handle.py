"""
会话句柄模块 - 返回给调用方的"活"会话对象。

SessionStore.create() / get() 返回的 SessionHandle 是一份独立副本：
修改句柄的 state / events 不会影响存储中的记录。

唯一的例外是 append_event()：事件追加成功前，存储层会直接修改调用方传入的句柄
（写入 state_delta、追加事件），这样 Agent 在下一轮对话中复用同一个句柄时，
无需重新 get 就能看到最新的事件和状态。

线程安全：SessionState 和 SessionEvents 各自持有一把 RLock，
与存储层的会话文件锁相互独立，句柄可以被多个线程同时读写。

注意：SessionState.set() 只修改内存，不会持久化。
要持久化状态变更，请通过事件的 actions.state_delta 追加事件。
"""

import copy
import threading
from datetime import datetime
from typing import Any, Iterator

from convohost.session.events import Event, is_temporary_key


class SessionState:
    """会话状态（字符串键 → 任意 JSON 值），带内部锁。"""

    def __init__(self, data: dict[str, Any] | None = None):
        self._data: dict[str, Any] = dict(data or {})
        self._lock = threading.RLock()

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            return self._data.get(key, default)

    def __getitem__(self, key: str) -> Any:
        with self._lock:
            return self._data[key]

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._data

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)

    def set(self, key: str, value: Any) -> None:
        """仅修改内存中的值，不会持久化。"""
        with self._lock:
            self._data[key] = value

    def items(self) -> list[tuple[str, Any]]:
        """返回所有键值对的快照列表。"""
        with self._lock:
            return list(self._data.items())

    def to_dict(self) -> dict[str, Any]:
        with self._lock:
            return copy.deepcopy(self._data)

    def apply_delta(self, delta: dict[str, Any]) -> None:
        """合并 state_delta，临时键被跳过。"""
        with self._lock:
            for key, value in delta.items():
                if not is_temporary_key(key):
                    self._data[key] = value


class SessionEvents:
    """会话事件列表（按追加顺序），带内部锁。"""

    def __init__(self, events: list[Event] | None = None):
        self._events: list[Event] = list(events or [])
        self._lock = threading.RLock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)

    def __iter__(self) -> Iterator[Event]:
        # 迭代快照，迭代期间其他线程追加事件不会影响本次遍历
        with self._lock:
            snapshot = list(self._events)
        return iter(snapshot)

    def at(self, index: int) -> Event | None:
        """返回第 index 个事件，越界时返回 None。"""
        with self._lock:
            if index < 0 or index >= len(self._events):
                return None
            return self._events[index]

    def all(self) -> list[Event]:
        with self._lock:
            return list(self._events)

    def append(self, event: Event) -> None:
        with self._lock:
            self._events.append(event)


class SessionHandle:
    """
    会话句柄。

    属性:
        app_name: 应用名
        user_id: 用户 ID
        id: 会话 ID
        created_at: 创建时间
        last_update_time: 最后一次持久化的时间
        state: 会话状态（SessionState）
        events: 会话事件（SessionEvents）
    """

    def __init__(
        self,
        app_name: str,
        user_id: str,
        session_id: str,
        created_at: datetime,
        last_update_time: datetime,
        state: dict[str, Any] | None = None,
        events: list[Event] | None = None,
    ):
        self.app_name = app_name
        self.user_id = user_id
        self.id = session_id
        self.created_at = created_at
        self.last_update_time = last_update_time
        self.state = SessionState(state)
        self.events = SessionEvents(events)

    def __repr__(self) -> str:
        return (
            f"SessionHandle(app_name={self.app_name!r}, user_id={self.user_id!r}, "
            f"id={self.id!r}, events={len(self.events)})"
        )

    def apply_event(self, event: Event) -> None:
        """把事件同步到内存：合并非临时的 state_delta，并追加到事件列表。"""
        self.state.apply_delta(event.actions.state_delta)
        self.events.append(event)
