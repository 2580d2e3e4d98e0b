from request_relay.infrastructure.request_store.redis_request_store import RedisRequestStore, RequestStoreError

__all__ = ["RedisRequestStore", "RequestStoreError"]
