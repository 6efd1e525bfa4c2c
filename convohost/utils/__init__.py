"""工具函数模块 - 路径、时间、标识生成与线程同步原语。"""

from convohost.utils.helpers import ensure_dir, new_prefixed_id, require, utc_now
from convohost.utils.locks import KeyedLockRegistry, ReadWriteLock

__all__ = [
    "ensure_dir",
    "require",
    "new_prefixed_id",
    "utc_now",
    "KeyedLockRegistry",
    "ReadWriteLock",
]
