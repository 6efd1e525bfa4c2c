"""
会话服务装配 - 根据配置构建存储管理器、会话存储、会话索引和会话路由。

布局（以本地后端为例）：
    {base_dir}/sessions/{app_name}/{connector:user}/{session_id}.json   会话记录
    {base_dir}/index/sessions.json                                      会话索引
"""

from dataclasses import dataclass
from typing import Any

from convohost.config.schema import Config
from convohost.session.index import SessionIndex
from convohost.session.router import SessionRouter
from convohost.session.store import SessionStore
from convohost.storage.manager import StorageManager


@dataclass
class SessionServices:
    """装配好的会话服务集合。"""
    storage: StorageManager
    store: SessionStore
    index: SessionIndex
    router: SessionRouter

    def close(self) -> None:
        self.storage.close()


def build_services(
    config: Config,
    storage: StorageManager | None = None,
    s3_client: Any = None,
) -> SessionServices:
    """
    按配置装配会话服务。

    参数:
        config: 根配置
        storage: 已有的存储管理器（测试时可注入内存后端），为 None 时按配置新建
        s3_client: 使用 s3 后端时注入的 boto3 客户端（可选）
    """
    storage = storage or StorageManager(config.storage, s3_client=s3_client)
    sessions = config.sessions

    store = SessionStore(
        storage.get_provider(sessions.namespace),
        lock_idle_seconds=sessions.lock_idle_seconds,
    )
    index = SessionIndex(storage.get_provider(), sessions.index_file)
    router = SessionRouter(store, index, sessions.app_name, max_listed=sessions.max_listed)
    return SessionServices(storage=storage, store=store, index=index, router=router)
