"""
配置模块 (config)

- schema.py：Pydantic 配置模型（存储后端、会话、渠道）及默认值
- loader.py：config.json 的读写与 camelCase / snake_case 转换
"""

from convohost.config.loader import get_config_path, load_config, save_config
from convohost.config.schema import Config

__all__ = ["Config", "get_config_path", "load_config", "save_config"]
