"""Tests for persisted conversation state."""

from datetime import timedelta

import pytest

from storefront.db import utcnow

pytestmark = pytest.mark.anyio


class TestConversationStore:
    async def test_set_and_get(self, services):
        await services.conversations.set("c1", "awaiting_address", {"zone": "Lagos Island"})

        state = await services.conversations.get("c1")

        assert state.step == "awaiting_address"
        assert state.data == {"zone": "Lagos Island"}
        assert state.expiresAt > utcnow()

    async def test_set_overwrites(self, services):
        await services.conversations.set("c1", "awaiting_address", {"zone": "Lagos Island"})
        await services.conversations.set("c1", "awaiting_name")

        state = await services.conversations.get("c1")

        assert state.step == "awaiting_name"
        assert state.data == {}

    async def test_missing(self, services):
        assert await services.conversations.get("nobody") is None

    async def test_expired_state_is_gone(self, services):
        await services.conversations.set("c1", "awaiting_address", ttl_seconds=60)

        assert await services.conversations.get("c1", now=utcnow() + timedelta(minutes=2)) is None
        assert await services.conversations.get("c1") is None

    async def test_clear(self, services):
        await services.conversations.set("c1", "awaiting_address")

        assert await services.conversations.clear("c1") is True
        assert await services.conversations.clear("c1") is False
        assert await services.conversations.get("c1") is None

    async def test_purge_expired(self, services):
        await services.conversations.set("c1", "a", ttl_seconds=60)
        await services.conversations.set("c2", "b", ttl_seconds=3600)

        purged = await services.conversations.purge_expired(now=utcnow() + timedelta(minutes=5))

        assert purged == 1
        assert await services.conversations.get("c1") is None
        assert (await services.conversations.get("c2")).step == "b"
