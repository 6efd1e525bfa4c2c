"""
本地文件系统存储后端。

所有路径都相对于 base_dir 解析。写入时自动创建父目录，
删除不存在的文件视为成功，列举不存在的前缀返回空列表。
"""

import os
import threading
from pathlib import Path

from loguru import logger

from convohost.storage.base import FileProvider


class LocalFileProvider(FileProvider):
    """基于本地磁盘的 FileProvider 实现。"""

    def __init__(self, base_dir: Path | str):
        self.base_dir = Path(base_dir).expanduser()

    def _full_path(self, path: str) -> Path:
        return self.base_dir / path

    def read(self, path: str) -> bytes:
        return self._full_path(path).read_bytes()

    def write(self, path: str, data: bytes) -> None:
        full = self._full_path(path)
        full.parent.mkdir(parents=True, exist_ok=True)
        # 先写临时文件再原子替换，读者不会看到写了一半的 JSON
        tmp = full.with_name(f".{full.name}.{os.getpid()}.{threading.get_ident()}.tmp")
        try:
            tmp.write_bytes(data)
            os.replace(tmp, full)
        except OSError:
            tmp.unlink(missing_ok=True)
            raise

    def exists(self, path: str) -> bool:
        return self._full_path(path).is_file()

    def delete(self, path: str) -> None:
        try:
            self._full_path(path).unlink()
        except FileNotFoundError:
            logger.debug(f"Delete of missing file ignored: {path}")

    def list(self, prefix: str) -> list[str]:
        """
        列出前缀下的所有文件。

        prefix 以 "/" 结尾时按目录处理（递归遍历该目录），
        否则按"目录 + 文件名前缀"匹配，与对象存储的前缀语义保持一致。
        返回的路径都是相对于 base_dir 的 POSIX 风格路径，临时文件会被跳过。
        """
        if prefix.endswith("/") or not prefix:
            search_dir = self._full_path(prefix)
            name_prefix = ""
        else:
            full = self._full_path(prefix)
            search_dir = full.parent
            name_prefix = full.name

        if not search_dir.is_dir():
            return []

        results = []
        for path in sorted(search_dir.rglob("*")):
            if not path.is_file() or path.name.startswith("."):
                continue
            rel_to_search = path.relative_to(search_dir).as_posix()
            if name_prefix and not rel_to_search.startswith(name_prefix):
                continue
            results.append(path.relative_to(self.base_dir).as_posix())
        return results
