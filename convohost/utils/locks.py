"""
锁工具模块 - 会话存储和会话索引共用的线程同步原语。

- ReadWriteLock：读写锁。多个读者可以并发持有，写者独占。
  标准库 threading 没有读写锁，这里基于 threading.Condition 实现，
  写者优先（有写者等待时，新的读者会排队），避免写者饥饿。
- KeyedLockRegistry：按键惰性创建互斥锁的注册表，用于"每个会话一把锁"。
  注册表自身由一把互斥锁保护；长时间未使用的锁会被清理，防止无限增长。
"""

import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Iterator

from loguru import logger


class ReadWriteLock:
    """写者优先的读写锁。"""

    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    def acquire_read(self) -> None:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1

    def release_read(self) -> None:
        with self._cond:
            self._readers -= 1
            if self._readers == 0:
                self._cond.notify_all()

    def acquire_write(self) -> None:
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer = True

    def release_write(self) -> None:
        with self._cond:
            self._writer = False
            self._cond.notify_all()

    @contextmanager
    def read(self) -> Iterator[None]:
        """以读者身份持有锁（共享）。"""
        self.acquire_read()
        try:
            yield
        finally:
            self.release_read()

    @contextmanager
    def write(self) -> Iterator[None]:
        """以写者身份持有锁（独占）。"""
        self.acquire_write()
        try:
            yield
        finally:
            self.release_write()


@dataclass
class _Entry:
    lock: threading.Lock = field(default_factory=threading.Lock)
    users: int = 0                                   # 正在等待或持有该锁的线程数
    last_used: float = field(default_factory=time.monotonic)


class KeyedLockRegistry:
    """
    按键管理互斥锁的注册表。

    同一个键总是拿到同一把锁，不同键的锁互不影响，
    因此不同会话的写操作可以完全并行，同一会话的写操作严格串行。

    清理策略：注册表中的锁数量超过 max_entries 时，
    清理所有"没有线程在用"且空闲超过 idle_seconds 的锁。
    正在被持有或等待的锁永远不会被清理。
    """

    def __init__(self, idle_seconds: float = 600.0, max_entries: int = 1024):
        self.idle_seconds = idle_seconds
        self.max_entries = max_entries
        self._guard = threading.Lock()
        self._entries: dict[str, _Entry] = {}

    def __len__(self) -> int:
        with self._guard:
            return len(self._entries)

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        """获取 key 对应的锁，在 with 块结束时释放。"""
        with self._guard:
            entry = self._entries.get(key)
            if entry is None:
                entry = _Entry()
                self._entries[key] = entry
            entry.users += 1
            if len(self._entries) > self.max_entries:
                self._evict_idle_locked()

        entry.lock.acquire()
        try:
            yield
        finally:
            entry.lock.release()
            with self._guard:
                entry.users -= 1
                entry.last_used = time.monotonic()

    def evict_idle(self) -> int:
        """立即清理空闲锁，返回清理的数量。"""
        with self._guard:
            return self._evict_idle_locked()

    def _evict_idle_locked(self) -> int:
        cutoff = time.monotonic() - self.idle_seconds
        stale = [
            key for key, entry in self._entries.items()
            if entry.users == 0 and entry.last_used <= cutoff
        ]
        for key in stale:
            del self._entries[key]
        if stale:
            logger.debug(f"Evicted {len(stale)} idle session locks")
        return len(stale)
