"""Infrastructure adapters: Redis connection, message bus, job store, request store."""
