from request_relay.infrastructure.redis.client import RedisConnection

__all__ = ["RedisConnection"]
