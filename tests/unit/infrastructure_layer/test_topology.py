"""
Unit Tests for Tenant Topology

Naming, idempotent provisioning and failure handling.
"""

import asyncio

import pytest

from request_relay.core.exceptions import TopologyError
from request_relay.core.interfaces.message_bus import TopicBinding
from request_relay.infrastructure.message_bus.redis_bus import default_bindings
from request_relay.infrastructure.message_bus.topology import (
    TenantResources,
    TenantTopology,
    normalize_tenant_id,
    scoped_name,
)
from tests.test_fixtures import InMemoryTopologyChannel


@pytest.mark.unit
class TestNaming:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("acme", "acme"),
            ("Acme", "acme"),
            ("Acme Corp.", "acme-corp-"),
            ("a__b", "a--b"),
            ("tenant_42", "tenant-42"),
            ("Ünïcode", "-n-code"),
            ("", ""),
        ],
    )
    def test_normalize(self, raw, expected):
        assert normalize_tenant_id(raw) == expected

    def test_scoped_name(self):
        assert scoped_name("perform-request", "Acme Corp") == "perform-request-acme-corp"

    def test_resources_derived_from_binding(self):
        binding = TopicBinding("plan-request-job", "schedule-request", "scheduled-requests")

        resources = TenantResources.derive(binding, "acme")

        assert resources == TenantResources(
            exchange="plan-request-job-acme",
            routing_key="schedule-request-acme",
            queue="scheduled-requests-acme",
        )


@pytest.mark.unit
class TestTenantCollisions:
    """Distinct tenants share resources only when their normalized forms are equal."""

    def test_distinct_normalized_forms_never_collide(self, settings):
        for binding in default_bindings(settings):
            a = TenantResources.derive(binding, "acme")
            b = TenantResources.derive(binding, "globex")
            assert {a.exchange, a.queue, a.routing_key}.isdisjoint({b.exchange, b.queue, b.routing_key})

    @pytest.mark.parametrize("first,second", [("Acme", "acme"), ("acme.io", "acme-io"), ("a b", "a_b")])
    def test_equal_normalized_forms_collide(self, settings, first, second):
        # Accepted limit of the naming scheme
        for binding in default_bindings(settings):
            assert TenantResources.derive(binding, first) == TenantResources.derive(binding, second)


@pytest.mark.unit
class TestTenantTopology:
    @pytest.fixture
    def channel(self):
        return InMemoryTopologyChannel()

    @pytest.fixture
    def topology(self, channel, settings):
        return TenantTopology(channel, default_bindings(settings))

    @pytest.mark.asyncio
    async def test_ensure_declares_all_bindings(self, topology, channel):
        resources = await topology.ensure("acme")

        assert [r.exchange for r in resources] == [
            "perform-request-acme",
            "request-completed-acme",
            "plan-request-job-acme",
        ]
        assert channel.bindings[("plan-request-job-acme", "schedule-request-acme")] == {"scheduled-requests-acme"}
        assert topology.is_provisioned("acme")

    @pytest.mark.asyncio
    async def test_repeat_calls_short_circuit(self, topology, channel):
        await topology.ensure("acme")
        await topology.ensure("acme")

        assert channel.declare_calls == 3

    @pytest.mark.asyncio
    async def test_concurrent_first_use_declares_once(self, topology, channel):
        await asyncio.gather(*(topology.ensure("acme") for _ in range(10)))

        assert channel.declare_calls == 3

    @pytest.mark.asyncio
    async def test_tenants_provisioned_independently(self, topology, channel):
        await asyncio.gather(topology.ensure("acme"), topology.ensure("globex"))

        assert channel.declare_calls == 6
        assert "perform-request-globex" in channel.exchanges

    @pytest.mark.asyncio
    async def test_failure_is_not_cached(self, topology, channel):
        channel.fail_next = ConnectionError("broker gone")

        with pytest.raises(TopologyError) as exc_info:
            await topology.ensure("acme")

        assert exc_info.value.tenant_id == "acme"
        assert not topology.is_provisioned("acme")

        await topology.ensure("acme")
        assert topology.is_provisioned("acme")

    @pytest.mark.asyncio
    async def test_extra_binding_provisioned_on_demand(self, topology, channel):
        extra = TopicBinding("audit", "audit", "audit")
        await topology.ensure("acme")

        await topology.ensure("acme", [extra])

        assert ("audit-acme", "audit-acme") in channel.bindings
        assert topology.is_provisioned("acme", [extra])

    @pytest.mark.asyncio
    async def test_ensure_binding_for_default_declares_defaults_once(self, topology, channel, settings):
        binding = default_bindings(settings)[1]

        resources = await topology.ensure_binding("acme", binding)

        assert resources == TenantResources.derive(binding, "acme")
        assert channel.declare_calls == 3
        assert topology.is_provisioned("acme")

    @pytest.mark.asyncio
    async def test_ensure_binding_adds_extra_to_defaults(self, topology, channel):
        extra = TopicBinding("audit", "audit", "audit")

        resources = await topology.ensure_binding("acme", extra)

        assert resources.queue == "audit-acme"
        assert channel.declare_calls == 4
        assert topology.is_provisioned("acme")
        assert topology.is_provisioned("acme", [extra])
