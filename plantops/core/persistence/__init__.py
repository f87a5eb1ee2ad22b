from plantops.core.persistence.kv_store import JsonFileKeyValueStore, KeyValueStore, MemoryKeyValueStore

__all__ = ["JsonFileKeyValueStore", "KeyValueStore", "MemoryKeyValueStore"]
