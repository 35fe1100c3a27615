"""
配置管理
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Any, FrozenSet, Optional
import yaml
import logging

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "~/.dolor/config.yaml"

DEFAULT_LARGE_TOOLS = (
    "list_intervals_activities",
    "list_intervals_events",
    "get_intervals_activity",
    "get_intervals_activity_intervals",
    "list_intervals_chat_messages",
    "list_intervals_wellness_records",
    "update_intervals_event",
    "create_intervals_event",
)


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    加载配置文件

    Args:
        config_path: 配置文件路径，如果为 None 则使用默认路径

    Returns:
        配置字典
    """
    path = Path(config_path or DEFAULT_CONFIG_PATH).expanduser()

    if not path.exists():
        logger.warning("Config file not found: %s, using defaults", path)
        return get_default_config()

    try:
        with open(path, "r", encoding="utf-8") as f:
            config = yaml.safe_load(f) or {}
        logger.info("Config loaded: %s", path)
        return config
    except Exception as e:
        logger.error("Failed to load config %s: %s", path, e)
        return get_default_config()


def get_default_config() -> Dict[str, Any]:
    """
    获取默认配置

    Returns:
        默认配置字典
    """
    return {
        "dolor": {
            "session": {
                "max_items": 120,
                "ttl_seconds": None,
            },
            "dedupe": {
                "ttl_seconds": 600,
            },
            "registry": {
                "idle_ttl_seconds": 600,
            },
            "streaming": {
                "heartbeat_interval_ms": 5000,
            },
            "history": {
                "large_tools": list(DEFAULT_LARGE_TOOLS),
            },
            "redis": {
                "url": "",
            },
            "web": {
                "api_key": "",
            },
            "telegram": {
                "bot_token": "",
                "secret_token": "",
            },
            "runtime": {
                "factory": "",
            },
        },
        "logging": {
            "level": "INFO",
        },
    }


def save_config(config: Dict[str, Any], config_path: Optional[str] = None):
    """
    保存配置文件

    Args:
        config: 配置字典
        config_path: 配置文件路径，如果为 None 则使用默认路径
    """
    path = Path(config_path or DEFAULT_CONFIG_PATH).expanduser()

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            yaml.safe_dump(config, f, default_flow_style=False, allow_unicode=True)
        logger.info("Config saved: %s", path)
    except Exception as e:
        logger.error("Failed to save config %s: %s", path, e)
        raise


# ---------------------------------------------------------------------------
# Module-level cached config
# ---------------------------------------------------------------------------

_cached_config: Optional[Dict[str, Any]] = None
_cached_config_path: Optional[str] = None


def get_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """Return a cached config dict, loading from disk on first call.

    If *config_path* differs from the previously cached path the config is
    reloaded automatically.
    """
    global _cached_config, _cached_config_path
    if _cached_config is None or config_path != _cached_config_path:
        _cached_config = load_config(config_path)
        _cached_config_path = config_path
    return _cached_config


def reload_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """Force-reload config from disk and update the cache."""
    global _cached_config, _cached_config_path
    _cached_config = load_config(config_path)
    _cached_config_path = config_path
    return _cached_config


def reset_config_cache() -> None:
    """Clear the cached config (mainly for tests)."""
    global _cached_config, _cached_config_path
    _cached_config = None
    _cached_config_path = None


# ---------------------------------------------------------------------------
# Typed view over the ``dolor`` section
# ---------------------------------------------------------------------------

@dataclass
class CoreSettings:
    """Knobs consumed by the session, dedupe, registry and streaming layers."""

    max_items: int = 120
    session_ttl_seconds: Optional[int] = None
    dedupe_ttl_seconds: int = 600
    idle_cache_ttl_seconds: float = 600
    heartbeat_interval_ms: int = 5000
    large_tools: FrozenSet[str] = field(default_factory=lambda: frozenset(DEFAULT_LARGE_TOOLS))
    redis_url: str = ""

    @classmethod
    def from_config(cls, config: Optional[Dict[str, Any]] = None) -> "CoreSettings":
        """Build settings from a loaded config dict, falling back to defaults per key."""
        section = (config or {}).get("dolor", {}) or {}
        session = section.get("session", {}) or {}
        dedupe = section.get("dedupe", {}) or {}
        registry = section.get("registry", {}) or {}
        streaming = section.get("streaming", {}) or {}
        history = section.get("history", {}) or {}
        redis_cfg = section.get("redis", {}) or {}

        ttl = session.get("ttl_seconds")
        large_tools = history.get("large_tools")
        return cls(
            max_items=int(session.get("max_items", 120)),
            session_ttl_seconds=int(ttl) if ttl else None,
            dedupe_ttl_seconds=int(dedupe.get("ttl_seconds", 600)),
            idle_cache_ttl_seconds=float(registry.get("idle_ttl_seconds", 600)),
            heartbeat_interval_ms=int(streaming.get("heartbeat_interval_ms", 5000)),
            large_tools=frozenset(large_tools) if large_tools is not None else frozenset(DEFAULT_LARGE_TOOLS),
            redis_url=str(redis_cfg.get("url") or os.environ.get("REDIS_URL", "")),
        )
