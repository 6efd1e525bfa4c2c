"""
存储后端模块（storage 包）。

会话存储和会话索引只依赖 FileProvider 的五个字节级操作，
本包提供它的具体实现：

- base.py      : FileProvider 抽象基类
- local.py     : 本地文件系统实现
- s3.py        : S3 对象存储实现（boto3）
- prefixed.py  : 命名空间前缀包装器
- manager.py   : 按配置构建后端并分发命名空间 provider
"""

from convohost.storage.base import FileProvider
from convohost.storage.local import LocalFileProvider
from convohost.storage.manager import StorageManager
from convohost.storage.prefixed import PrefixedFileProvider
from convohost.storage.s3 import S3FileProvider

__all__ = [
    "FileProvider",
    "LocalFileProvider",
    "PrefixedFileProvider",
    "S3FileProvider",
    "StorageManager",
]
