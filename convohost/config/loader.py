"""
配置文件读写 (config/loader.py)

磁盘上的 config.json 使用 camelCase 键名（与渠道 SDK 的配置习惯保持一致），
内存中的 Config 使用 snake_case。读取时先做旧格式迁移，再统一转换键名，
最后交给 Pydantic 校验；写出时反向转换。

环境变量（CONVOHOST_ 前缀）只在没有配置文件、直接构造 Config() 时生效。
"""

import json
import re
from pathlib import Path
from typing import Any, Callable

from loguru import logger
from pydantic import ValidationError

from convohost.config.schema import Config

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")

# 旧版键位置 → 新版键位置（camelCase 路径）
_LEGACY_MOVES = [
    (("storage", "indexFile"), ("sessions", "indexFile")),
    (("storage", "type"), ("storage", "backend")),
    (("sessions", "appId"), ("sessions", "appName")),
]


def get_config_path() -> Path:
    """默认配置文件位置：~/.convohost/config.json"""
    return Path.home() / ".convohost" / "config.json"


def load_config(config_path: Path | None = None) -> Config:
    """
    读取配置文件。

    文件不存在时返回 Config()（此时环境变量生效）；
    文件损坏或校验失败时记录警告并同样回退到 Config()，CLI 不会因此无法启动。

    参数:
        config_path: 配置文件路径，None 表示默认位置

    返回:
        校验后的 Config
    """
    path = config_path or get_config_path()
    if not path.exists():
        return Config()

    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
        return Config.model_validate(convert_keys(_migrate_config(raw)))
    except (json.JSONDecodeError, ValidationError) as e:
        logger.warning(f"Ignoring invalid config at {path}, falling back to defaults: {e}")
    return Config()


def save_config(config: Config, config_path: Path | None = None) -> None:
    """以 camelCase 键名写出配置（缩进 2，父目录不存在时自动创建）。"""
    path = config_path or get_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    payload = convert_to_camel(config.model_dump(mode="json"))
    path.write_text(json.dumps(payload, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")
    logger.debug(f"Saved config to {path}")


def _migrate_config(data: dict) -> dict:
    """把旧版本使用过的键位置搬到当前位置；新位置已有值时保留新值。"""
    for (old_section, old_key), (new_section, new_key) in _LEGACY_MOVES:
        section = data.get(old_section)
        if not isinstance(section, dict) or old_key not in section:
            continue
        value = section.pop(old_key)
        target = data.setdefault(new_section, {})
        if new_key not in target:
            target[new_key] = value
            logger.info(f"Migrated config key {old_section}.{old_key} -> {new_section}.{new_key}")
    return data


def _rename_keys(data: Any, rename: Callable[[str], str]) -> Any:
    if isinstance(data, dict):
        return {rename(k): _rename_keys(v, rename) for k, v in data.items()}
    if isinstance(data, list):
        return [_rename_keys(v, rename) for v in data]
    return data


def convert_keys(data: Any) -> Any:
    """递归转换为 snake_case 键名。{"baseDir": ...} → {"base_dir": ...}"""
    return _rename_keys(data, camel_to_snake)


def convert_to_camel(data: Any) -> Any:
    """递归转换为 camelCase 键名。"""
    return _rename_keys(data, snake_to_camel)


def camel_to_snake(name: str) -> str:
    return _CAMEL_BOUNDARY.sub("_", name).lower()


def snake_to_camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)
