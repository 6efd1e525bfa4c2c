"""
convohost - 对话代理宿主的会话存储层

模块概述：
    本文件是 convohost 包的入口文件（__init__.py），定义了包的元信息。
    convohost 负责把聊天渠道（Telegram、Slack 等）转发给 LLM Agent 的每一轮对话
    持久化为"会话"（Session），并维护一个轻量的会话索引，用来判断一条新消息
    是延续已有对话还是开启新对话。

    核心功能包括：
    - 会话存储（SessionStore）：JSON 文档形式的会话 CRUD 与事件追加
    - 会话索引（SessionIndex）：按渠道和用户记录会话及最近活跃时间
    - 存储后端（StorageManager）：本地磁盘 / S3 对象存储
    - 会话路由（SessionRouter）：渠道消息 → 会话句柄
"""

# 版本号，遵循语义化版本规范（主版本.次版本.修订号）
__version__ = "0.1.0"

# 项目 logo 表情符号，用于 CLI 输出
__logo__ = "🗂"
