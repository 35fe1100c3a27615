"""Tests for UpdateDedupeGuard."""

import pytest

from src.dolor.core.channel.dedupe import UpdateDedupeGuard
from tests.fakes import UnavailableKeyValueStore


class TestClaim:

    @pytest.mark.asyncio
    async def test_first_claim_wins(self, kv):
        guard = UpdateDedupeGuard(kv)
        assert await guard.claim(1001) is True
        assert await guard.claim(1001) is False
        assert await guard.claim(1002) is True

    @pytest.mark.asyncio
    async def test_guards_share_the_store(self, kv):
        assert await UpdateDedupeGuard(kv).claim(5) is True
        assert await UpdateDedupeGuard(kv).claim(5) is False

    @pytest.mark.asyncio
    async def test_claim_expires(self, kv, clock):
        guard = UpdateDedupeGuard(kv, ttl_seconds=600)
        assert await guard.claim(7)
        clock.advance(599)
        assert not await guard.claim(7)
        clock.advance(2)
        assert await guard.claim(7)

    @pytest.mark.asyncio
    async def test_key_layout(self, kv):
        await UpdateDedupeGuard(kv).claim(42)
        assert kv.keys() == ["telegram:update:42"]

    @pytest.mark.asyncio
    async def test_fails_open_when_store_down(self):
        kv = UnavailableKeyValueStore()
        guard = UpdateDedupeGuard(kv)
        assert await guard.claim(1) is True
        assert await guard.claim(1) is True
        assert kv.calls == ["set telegram:update:1", "set telegram:update:1"]
