"""
带命名空间前缀的存储后端包装器。

多个组件（会话数据、会话索引等）可以共享同一个底层后端，
同时各自拥有隔离的命名空间：
    PrefixedFileProvider(local, "sessions").write("a/b.json", ...)
    → local.write("sessions/a/b.json", ...)
"""

from convohost.storage.base import FileProvider


class PrefixedFileProvider(FileProvider):
    """为所有路径加上固定前缀的 FileProvider 包装器。"""

    def __init__(self, provider: FileProvider, prefix: str):
        self.provider = provider
        self.prefix = prefix.strip("/")

    def _path(self, path: str) -> str:
        if not self.prefix:
            return path
        return f"{self.prefix}/{path}"

    def read(self, path: str) -> bytes:
        return self.provider.read(self._path(path))

    def write(self, path: str, data: bytes) -> None:
        self.provider.write(self._path(path), data)

    def exists(self, path: str) -> bool:
        return self.provider.exists(self._path(path))

    def delete(self, path: str) -> None:
        self.provider.delete(self._path(path))

    def list(self, prefix: str) -> list[str]:
        # 结果去掉本层前缀，调用方看到的仍是自己命名空间内的相对路径
        strip = len(self._path(""))
        return [p[strip:] for p in self.provider.list(self._path(prefix)) if len(p) > strip]

    def close(self) -> None:
        self.provider.close()
