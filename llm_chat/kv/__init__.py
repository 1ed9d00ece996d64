"""Key-value store backends with per-key expiry."""

from llm_chat.kv.store import FileKVStore, KVStore, MemoryKVStore, create_kv_store

__all__ = ["FileKVStore", "KVStore", "MemoryKVStore", "create_kv_store"]
