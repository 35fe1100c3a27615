"""Infrastructure layer for config, errors, and the key-value backing store."""

from .config import (
    CoreSettings,
    get_config,
    get_default_config,
    load_config,
    reload_config,
    reset_config_cache,
    save_config,
)
from .errors import BackingStoreUnavailable, InvariantViolation, UpstreamRunFailure
from .kv_store import InMemoryKeyValueStore, KeyValueStore, RedisKeyValueStore, create_kv_store

__all__ = [
    "BackingStoreUnavailable",
    "CoreSettings",
    "InMemoryKeyValueStore",
    "InvariantViolation",
    "KeyValueStore",
    "RedisKeyValueStore",
    "UpstreamRunFailure",
    "create_kv_store",
    "get_config",
    "get_default_config",
    "load_config",
    "reload_config",
    "reset_config_cache",
    "save_config",
]
