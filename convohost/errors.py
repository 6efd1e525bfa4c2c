"""
异常定义模块 - convohost 所有对外抛出的异常类型。

异常层次：
    ConvohostError
    ├── ConfigError            构造期配置错误（缺少必填项、未知后端）
    ├── ValidationError        调用参数缺失或为空，发生在任何 I/O 之前
    ├── SessionNotFoundError   会话（或索引条目）不存在
    ├── SessionExistsError     创建会话时目标已存在
    └── StorageError           存储后端 I/O 失败

调用方可以把 SessionExistsError 当作可重试/可忽略的情况，
而把 StorageError 当作致命错误，因此两者必须区分开。
"""


class ConvohostError(Exception):
    """convohost 异常基类。"""


class ConfigError(ConvohostError):
    """配置错误：缺少必填配置或使用了不支持的存储后端。"""


class ValidationError(ConvohostError):
    """参数校验失败：必填参数为 None 或空字符串。"""


class SessionNotFoundError(ConvohostError):
    """会话不存在。"""

    def __init__(self, session_id: str, detail: str = ""):
        self.session_id = session_id
        message = f"session not found: {session_id}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)


class SessionExistsError(ConvohostError):
    """会话已存在，create 不会覆盖已有记录。"""

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"session {session_id} already exists")


class StorageError(ConvohostError):
    """存储后端读写失败，消息中包含出错的会话键。"""

    def __init__(self, message: str, key: str = ""):
        self.key = key
        super().__init__(f"{message}: {key}" if key else message)
