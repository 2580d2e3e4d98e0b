"""
Redis Connection with Connection Pooling

One async Redis client shared by the message bus, the job store and the
request store of a process.

Architectural Decision: one pool per process
- decode_responses=True so every component works with str, never bytes
- Health checks every REDIS_HEALTH_CHECK_INTERVAL seconds
- Initial connect retried with exponential backoff (tenacity); a process
  that still cannot reach Redis fails fast at startup
"""

import redis.asyncio as redis
from redis.asyncio.connection import ConnectionPool
from redis.exceptions import ConnectionError, TimeoutError
from tenacity import (
    AsyncRetrying,
    RetryError,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from request_relay.core.config.constants import Stage
from request_relay.core.config.settings import Settings, get_settings
from request_relay.core.exceptions import BrokerConnectionError
from request_relay.core.logging import get_logger

logger = get_logger(__name__)

CONNECT_ATTEMPTS = 3


class RedisConnection:
    """
    Async Redis connection with pooling.

    Usage:
        connection = RedisConnection()
        await connection.connect()
        await connection.client.xadd(stream, fields)
        await connection.disconnect()
    """

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()
        self.pool: ConnectionPool | None = None
        self.client: redis.Redis | None = None
        self._is_connected = False

    @property
    def is_connected(self) -> bool:
        return self._is_connected

    def key(self, *parts: str) -> str:
        """Build a namespaced key: ``{prefix}:{part}:{part}...``."""
        return ":".join((self.settings.redis.REDIS_KEY_PREFIX, *parts))

    async def connect(self) -> None:
        """
        Establish connection to Redis with connection pooling.

        Raises:
            BrokerConnectionError: If Redis is unreachable after retries
        """
        if self._is_connected:
            return

        cfg = self.settings.redis
        self.pool = ConnectionPool(
            host=cfg.REDIS_HOST,
            port=cfg.REDIS_PORT,
            db=cfg.REDIS_DB,
            password=cfg.REDIS_PASSWORD,
            max_connections=cfg.REDIS_MAX_CONNECTIONS,
            socket_connect_timeout=cfg.REDIS_SOCKET_CONNECT_TIMEOUT,
            socket_timeout=cfg.REDIS_SOCKET_TIMEOUT,
            retry_on_timeout=True,
            health_check_interval=cfg.REDIS_HEALTH_CHECK_INTERVAL,
            decode_responses=True,
        )
        self.client = redis.Redis(connection_pool=self.pool)

        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(CONNECT_ATTEMPTS),
                wait=wait_exponential_jitter(initial=0.5, max=5.0),
                retry=retry_if_exception_type((ConnectionError, TimeoutError)),
                before_sleep=lambda state: logger.warning(
                    "Redis connect retry",
                    stage=Stage.BUS_CONNECT,
                    attempt=state.attempt_number,
                ),
            ):
                with attempt:
                    await self.client.ping()
        except (RetryError, ConnectionError, TimeoutError) as e:
            logger.error("Failed to connect to Redis", stage=Stage.BUS_CONNECT, error=str(e))
            await self.disconnect()
            raise BrokerConnectionError(
                f"Failed to connect to Redis: {e}",
                details={"host": cfg.REDIS_HOST, "port": cfg.REDIS_PORT},
            ) from e

        self._is_connected = True
        logger.info(
            "Redis connected",
            stage=Stage.BUS_CONNECT,
            host=cfg.REDIS_HOST,
            port=cfg.REDIS_PORT,
            max_connections=cfg.REDIS_MAX_CONNECTIONS,
        )

    async def disconnect(self) -> None:
        """Close client and pool. Safe to call when never connected."""
        if self.client is not None:
            await self.client.aclose()
        if self.pool is not None:
            await self.pool.disconnect()
        self.client = None
        self.pool = None
        self._is_connected = False
