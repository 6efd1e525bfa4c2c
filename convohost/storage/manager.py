"""
存储管理器 - 根据配置构建存储后端，并为各组件分发带命名空间的 provider。

典型用法：
    manager = StorageManager(config.storage)
    sessions_provider = manager.get_provider("sessions")   # 会话数据
    index_provider = manager.get_provider("")               # 根 provider（索引文件）

构造期检查（快速失败）：
- local 后端必须配置 base_dir
- s3 后端必须配置 bucket
- 不支持的 backend 直接抛出 ConfigError
"""

from typing import Any

from loguru import logger

from convohost.config.schema import StorageConfig
from convohost.errors import ConfigError
from convohost.storage.base import FileProvider
from convohost.storage.local import LocalFileProvider
from convohost.storage.prefixed import PrefixedFileProvider
from convohost.storage.s3 import S3FileProvider


class StorageManager:
    """
    存储管理器。

    属性:
        config: 存储配置（可能为 None，表示使用了外部注入的 provider）
        provider: 根 provider，所有命名空间共享
    """

    def __init__(self, config: StorageConfig, s3_client: Any = None):
        self.config = config
        self.provider = self._build_provider(config, s3_client)
        logger.info(f"Storage backend ready: {config.backend}")

    @classmethod
    def with_provider(cls, provider: FileProvider) -> "StorageManager":
        """使用自定义 provider 构建管理器（测试或自定义后端场景）。"""
        if provider is None:
            raise ConfigError("file provider is required")
        manager = cls.__new__(cls)
        manager.config = None
        manager.provider = provider
        return manager

    @staticmethod
    def _build_provider(config: StorageConfig, s3_client: Any) -> FileProvider:
        if config.backend == "local":
            if not config.local.base_dir:
                raise ConfigError("base directory is required for local backend")
            return LocalFileProvider(config.local_path)

        if config.backend == "s3":
            if not config.s3.bucket:
                raise ConfigError("bucket is required for s3 backend")
            return S3FileProvider(
                bucket=config.s3.bucket,
                prefix=config.s3.prefix,
                client=s3_client,
                region=config.s3.region,
            )

        raise ConfigError(f"unsupported storage backend: {config.backend} (must be 'local' or 's3')")

    @property
    def backend(self) -> str:
        return self.config.backend if self.config else "custom"

    def get_provider(self, namespace: str = "") -> FileProvider:
        """
        获取某个命名空间的 provider。

        namespace 为空时返回根 provider，否则返回带前缀的包装器，
        各命名空间的数据互相隔离。
        """
        if not namespace:
            return self.provider
        return PrefixedFileProvider(self.provider, namespace)

    def close(self) -> None:
        self.provider.close()
