"""Key-value configuration store."""

from inbox_agent.store.kv import KeyValueStore

__all__ = ["KeyValueStore"]
