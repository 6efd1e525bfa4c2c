"""
存储后端基类定义模块。

本模块定义了文件存储的核心抽象接口 FileProvider。会话存储和会话索引
都只通过这个接口读写字节，从而与具体后端（本地磁盘、S3 对象存储）解耦。

接口约定：
- read(path)     读取完整内容；路径不存在时抛出 FileNotFoundError
- write(path, b) 写入内容，必要时自动创建父目录/前缀
- exists(path)   路径是否存在
- delete(path)   删除文件；不存在时视为成功（幂等）
- list(prefix)   列出前缀下所有文件的相对路径；前缀不存在时返回空列表

路径统一使用正斜杠分隔（"app/user/session.json"），与操作系统无关。

类比 Java：
  - FileProvider 相当于一个 interface，各后端是它的实现类
"""

from abc import ABC, abstractmethod


class FileProvider(ABC):
    """
    文件存储后端抽象基类。

    所有实现都必须是线程安全的：同一个 provider 实例会被多个线程同时调用。
    """

    @abstractmethod
    def read(self, path: str) -> bytes:
        """读取文件的全部内容。不存在时抛出 FileNotFoundError。"""
        pass

    @abstractmethod
    def write(self, path: str, data: bytes) -> None:
        """写入文件（覆盖已有内容）。"""
        pass

    @abstractmethod
    def exists(self, path: str) -> bool:
        """检查文件是否存在。"""
        pass

    @abstractmethod
    def delete(self, path: str) -> None:
        """删除文件。文件不存在不是错误。"""
        pass

    @abstractmethod
    def list(self, prefix: str) -> list[str]:
        """返回以 prefix 开头的所有文件路径（相对于 provider 根）。"""
        pass

    def close(self) -> None:
        """释放后端持有的资源。默认无操作，需要清理的后端可覆盖。"""
        return None
