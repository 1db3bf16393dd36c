"""
Repository service application.

A caching-and-reliability layer in front of a document store:
- envelope: ``Result`` envelope, ``ok``/``fail`` and ``safe_call``.
- serialization: order-independent serialization for cache keys.
- caching: adapters, keys, TTLs, read-through cache and invalidation.
- write_args: flexible write-argument parsing.
- transactions: bounded-retry transaction wrapper.
- store / context: document store boundary and process-wide collaborators.
- operations: public operation table over the document store.
- main: FastAPI admin service (health, metrics, invalidation).
"""
