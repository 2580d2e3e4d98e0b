"""
Message Bus Interface

Abstract durable publish / subscribe primitive over tenant-scoped topics.
"""

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

MessageHandler = Callable[[dict[str, Any]], Awaitable[None]]


@dataclass(frozen=True)
class TopicBinding:
    """
    Base names of one exchange / routing key / queue triple.

    Tenant-scoped names are derived at runtime by appending the normalized
    tenant id to each base.
    """
    exchange_base: str
    routing_key_base: str
    queue_base: str


class MessageBus(ABC):
    """
    Abstract base class for message bus implementations.
    """

    @abstractmethod
    async def connect(self) -> None:
        """Open the shared connection and the confirm-mode publisher."""
        pass

    @abstractmethod
    async def publish(
        self,
        tenant_id: str,
        topic_base: str,
        message: dict[str, Any],
        routing_key_base: str | None = None,
    ) -> None:
        """
        Publish a persistent message to a tenant-scoped exchange.

        Returns once the broker confirmed the message.

        Raises:
            NotConnectedError: If connect() was not called
            TransportError: If the broker rejects the publish
        """
        pass

    @abstractmethod
    async def subscribe(self, tenant_id: str, binding: TopicBinding, handler: MessageHandler) -> None:
        """
        Bind a durable tenant-scoped queue and deliver its messages to handler.

        Returns once the consumer is registered; deliveries happen in the background.
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        """Stop consumers and release the connection. Safe if never connected."""
        pass
