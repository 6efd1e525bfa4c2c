"""
配置数据模型定义 (config/schema.py)
=================================
本模块使用 Pydantic 定义 convohost 的完整配置结构。
所有配置项都有默认值，用户只需在 config.json 中覆盖需要修改的部分。

整体配置结构（树形）：
Config (根配置)
├── storage       - 存储后端配置（local / s3）
├── sessions      - 会话存储与会话索引配置
└── connectors    - 启用的聊天渠道列表
"""

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# ==============================================================================
# 存储后端配置
# ==============================================================================


class LocalStorageConfig(BaseModel):
    """本地文件系统存储配置。"""
    base_dir: str = "~/.convohost/storage"  # 所有存储数据的根目录


class S3StorageConfig(BaseModel):
    """S3 对象存储配置。凭证走 boto3 默认凭证链（环境变量、~/.aws、实例角色）。"""
    bucket: str = ""  # 存储桶名称（使用 s3 后端时必填）
    prefix: str = ""  # 所有对象键的公共前缀
    region: str | None = None  # AWS 区域，为空时使用默认区域


class StorageConfig(BaseModel):
    """存储后端配置。backend 决定使用哪个子配置。"""
    backend: Literal["local", "s3"] = "local"
    local: LocalStorageConfig = Field(default_factory=LocalStorageConfig)
    s3: S3StorageConfig = Field(default_factory=S3StorageConfig)

    @property
    def local_path(self) -> Path:
        """展开后的本地存储根目录。"""
        return Path(self.local.base_dir).expanduser()


# ==============================================================================
# 会话配置
# ==============================================================================


class SessionsConfig(BaseModel):
    """
    会话存储与会话索引配置。

    - app_name: 会话记录的应用名（存储路径的第一段）
    - namespace: 会话数据在存储后端中的命名空间
    - index_file: 会话索引文件路径（相对于存储根目录）
    - lock_idle_seconds: 会话锁空闲多久后可以被清理
    """
    app_name: str = "convohost"
    namespace: str = "sessions"
    index_file: str = "index/sessions.json"
    lock_idle_seconds: float = 600.0
    max_listed: int = 10  # /sessions 命令最多展示的会话数

    @field_validator("app_name", "index_file")
    @classmethod
    def _not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must not be empty")
        return v


class ConnectorsConfig(BaseModel):
    """聊天渠道配置。目前只记录启用了哪些渠道，渠道自身的解析逻辑不在本包内。"""
    enabled: list[str] = Field(default_factory=lambda: ["telegram", "slack"])


# ==============================================================================
# 根配置类
# ==============================================================================


class Config(BaseSettings):
    """
    convohost 根配置类。

    继承自 Pydantic 的 BaseSettings，除了支持从 JSON 文件加载外，
    还支持从环境变量读取配置：
    - 环境变量前缀: CONVOHOST_
    - 嵌套分隔符: __ (双下划线)
    - 示例: CONVOHOST_STORAGE__BACKEND=s3 可覆盖 storage.backend
    """
    storage: StorageConfig = Field(default_factory=StorageConfig)
    sessions: SessionsConfig = Field(default_factory=SessionsConfig)
    connectors: ConnectorsConfig = Field(default_factory=ConnectorsConfig)

    model_config = SettingsConfigDict(
        env_prefix="CONVOHOST_",
        env_nested_delimiter="__",
    )
