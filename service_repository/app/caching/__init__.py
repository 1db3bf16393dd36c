"""
Repository caching package.

- adapters: cache backend capability set, no-op/in-memory/Redis adapters.
- keys: stable hashing and deterministic cache keys.
- ttl: TTL grammar and normalization to milliseconds.
- orchestrator: read-through ``with_cache``.
- invalidation: exact-key and prefix invalidation.
"""
