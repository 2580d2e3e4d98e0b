"""
Tenant Topology Manager

Derives tenant-scoped exchange / queue / routing key names and makes sure
the corresponding resources exist before anything is published or consumed.

Naming (bit-exact): ``{base}-{normalized_tenant_id}`` where normalization
lower-cases and replaces every character outside [a-z0-9] with "-", one for
one, without collapsing runs. Two raw tenant ids with the same normalized
form share resources; that is an accepted limit of the naming scheme.

Provisioning is cached per process in a TenantTopology instance owned by
the bus. The cache is only an optimization: broker-side declares are
idempotent, so another process simply declares again.
"""

import asyncio
import re
from dataclasses import dataclass
from typing import Protocol

from request_relay.core.config.constants import Stage
from request_relay.core.exceptions import TopologyError
from request_relay.core.interfaces.message_bus import TopicBinding
from request_relay.core.logging import get_logger

logger = get_logger(__name__)

_INVALID_CHARS = re.compile(r"[^a-z0-9]")


def normalize_tenant_id(tenant_id: str) -> str:
    """
    Normalize a tenant id for use in resource names.

    >>> normalize_tenant_id("Acme Corp.")
    'acme-corp-'
    """
    if not tenant_id:
        return ""
    return _INVALID_CHARS.sub("-", tenant_id.lower())


def scoped_name(base: str, tenant_id: str) -> str:
    return f"{base}-{normalize_tenant_id(tenant_id)}"


@dataclass(frozen=True)
class TenantResources:
    """Concrete resource names of one binding for one tenant."""
    exchange: str
    routing_key: str
    queue: str

    @classmethod
    def derive(cls, binding: TopicBinding, tenant_id: str) -> "TenantResources":
        return cls(
            exchange=scoped_name(binding.exchange_base, tenant_id),
            routing_key=scoped_name(binding.routing_key_base, tenant_id),
            queue=scoped_name(binding.queue_base, tenant_id),
        )


class TopologyChannel(Protocol):
    """Broker operations the topology manager needs. All must be idempotent."""

    async def declare_exchange(self, exchange: str) -> None:
        ...

    async def declare_queue(self, queue: str) -> None:
        ...

    async def bind_queue(self, queue: str, exchange: str, routing_key: str) -> None:
        ...


class TenantTopology:
    """
    Per-process provisioning state for tenant resources.

    ensure() declares the exchange, queue and binding of every requested
    TopicBinding exactly once per tenant. Concurrent first use for the same
    tenant is serialized by a per-tenant asyncio.Lock, so the declares run
    once. A failed declare leaves the binding unprovisioned and the next call
    retries from scratch.
    """

    def __init__(self, channel: TopologyChannel, default_bindings: list[TopicBinding]):
        self._channel = channel
        self._default_bindings = list(default_bindings)
        self._provisioned: set[tuple[str, TopicBinding]] = set()
        self._locks: dict[str, asyncio.Lock] = {}

    @property
    def default_bindings(self) -> list[TopicBinding]:
        return list(self._default_bindings)

    def is_provisioned(self, tenant_id: str, bindings: list[TopicBinding] | None = None) -> bool:
        targets = self._default_bindings if bindings is None else bindings
        return all((tenant_id, b) in self._provisioned for b in targets)

    async def ensure(
        self, tenant_id: str, bindings: list[TopicBinding] | None = None
    ) -> list[TenantResources]:
        """
        Make sure the tenant's resources exist.

        Args:
            tenant_id: Raw tenant id
            bindings: Bindings to provision (default: every configured binding)

        Returns:
            Derived resource names, in binding order

        Raises:
            TopologyError: If any declare or bind fails
        """
        targets = self._default_bindings if bindings is None else list(bindings)
        resources = [TenantResources.derive(b, tenant_id) for b in targets]

        if self.is_provisioned(tenant_id, targets):
            return resources

        lock = self._locks.setdefault(tenant_id, asyncio.Lock())
        async with lock:
            for binding, names in zip(targets, resources):
                if (tenant_id, binding) in self._provisioned:
                    continue
                await self._declare(tenant_id, names)
                self._provisioned.add((tenant_id, binding))

        logger.info(
            "Tenant topology ready",
            stage=Stage.TOPOLOGY_ENSURE,
            tenant_id=tenant_id,
            exchanges=[r.exchange for r in resources],
        )
        return resources

    async def _declare(self, tenant_id: str, names: TenantResources) -> None:
        try:
            await self._channel.declare_exchange(names.exchange)
            await self._channel.declare_queue(names.queue)
            await self._channel.bind_queue(names.queue, names.exchange, names.routing_key)
        except TopologyError:
            raise
        except Exception as e:
            logger.error(
                "Failed to provision tenant topology",
                stage=Stage.TOPOLOGY_ERROR,
                tenant_id=tenant_id,
                exchange=names.exchange,
                queue=names.queue,
                error=str(e),
            )
            raise TopologyError.from_exception(
                e,
                message=f"Failed to provision {names.exchange} -> {names.queue}: {e}",
                tenant_id=tenant_id,
                exchange=names.exchange,
                queue=names.queue,
                routing_key=names.routing_key,
            ) from e

    async def ensure_binding(self, tenant_id: str, binding: TopicBinding) -> TenantResources:
        """Provision the tenant's default bindings plus ``binding``; return its names."""
        targets = self.default_bindings
        if binding not in targets:
            targets.append(binding)
        resources = await self.ensure(tenant_id, targets)
        return resources[targets.index(binding)]
