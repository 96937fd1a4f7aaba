"""
Tests for business lifecycle events and the domain event bus.
"""

import asyncio

import pytest

from semantic_index.core.events import (
    OPERATIONS,
    BusinessCreated,
    BusinessDeleted,
    BusinessUpdated,
    BusinessVerified,
    DomainEventBus,
    business_changed,
)


def test_business_changed_builds_typed_events():
    assert business_changed("biz-1", "created") == BusinessCreated("biz-1")
    assert business_changed("biz-1", "updated", slug="colmado") == BusinessUpdated("biz-1", "colmado")
    assert business_changed("biz-1", "verified") == BusinessVerified("biz-1")
    assert business_changed("biz-1", "deleted") == BusinessDeleted("biz-1")
    assert OPERATIONS == ("created", "updated", "verified", "deleted")


def test_unknown_operation_is_rejected():
    with pytest.raises(ValueError):
        business_changed("biz-1", "archived")


@pytest.mark.asyncio
async def test_publish_returns_before_handlers_run():
    bus = DomainEventBus()
    seen = []

    async def handler(event):
        seen.append(event.business_id)

    bus.on_business_changed(handler)
    bus.publish_business_changed(BusinessCreated("biz-1"))

    assert seen == []
    assert bus.pending == 1

    await bus.drain()
    assert seen == ["biz-1"]
    assert bus.pending == 0


@pytest.mark.asyncio
async def test_failing_handler_does_not_affect_others():
    bus = DomainEventBus()
    seen = []

    async def broken(event):
        raise RuntimeError("boom")

    async def healthy(event):
        seen.append(event)

    bus.on_business_changed(broken)
    bus.on_business_changed(healthy)
    bus.publish_business_changed(BusinessDeleted("biz-1"))
    await bus.drain()

    assert seen == [BusinessDeleted("biz-1")]


@pytest.mark.asyncio
async def test_drain_waits_for_handlers_scheduled_while_draining():
    bus = DomainEventBus()
    seen = []

    async def handler(event):
        await asyncio.sleep(0)
        seen.append(event.business_id)
        if event.business_id == "biz-1":
            bus.publish_business_changed(BusinessUpdated("biz-2"))

    bus.on_business_changed(handler)
    bus.publish_business_changed(BusinessUpdated("biz-1"))
    await bus.drain()

    assert seen == ["biz-1", "biz-2"]


def test_publish_requires_running_loop():
    with pytest.raises(RuntimeError):
        DomainEventBus().publish_business_changed(BusinessCreated("biz-1"))
