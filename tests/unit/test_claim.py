"""
Unit tests for the atomic claim primitive.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import ConnectionError, WatchError

from jobqueue.store.claim import RedisClaimStore, try_claim_lowest_rank

KEY = "test:jobs:email:inactive"


def mock_client(members: list[str], execute: AsyncMock | None = None) -> tuple[MagicMock, MagicMock]:
    """Build a client whose transaction pipeline is fully mocked."""
    pipe = MagicMock()
    pipe.__aenter__ = AsyncMock(return_value=pipe)
    pipe.__aexit__ = AsyncMock(return_value=False)
    pipe.watch = AsyncMock()
    pipe.unwatch = AsyncMock()
    pipe.zrange = AsyncMock(return_value=members)
    pipe.execute = execute or AsyncMock(return_value=[1])

    client = MagicMock()
    client.pipeline.return_value = pipe
    return client, pipe


class TestTryClaimLowestRank:
    """Tests for try_claim_lowest_rank against an in-memory server."""

    @pytest.mark.asyncio
    async def test_empty_set_returns_none(self, redis_client):
        """Claiming from an empty set is not an error."""
        assert await try_claim_lowest_rank(redis_client, KEY) is None

    @pytest.mark.asyncio
    async def test_claims_lowest_score_first(self, redis_client):
        """The member with the lowest score is removed and returned."""
        await redis_client.zadd(KEY, {"id7": 5, "id3": -10, "id9": 0})

        assert await try_claim_lowest_rank(redis_client, KEY) == "id3"
        assert await redis_client.zrange(KEY, 0, -1) == ["id9", "id7"]

    @pytest.mark.asyncio
    async def test_drains_set_in_rank_order(self, redis_client):
        """Repeated claims return every member once, in rank order."""
        await redis_client.zadd(KEY, {"a": 1, "b": 2, "c": 3})

        claimed = [await try_claim_lowest_rank(redis_client, KEY) for _ in range(4)]

        assert claimed == ["a", "b", "c", None]

    @pytest.mark.asyncio
    async def test_two_workers_race_for_two_ids(self, client_factory, redis_client):
        """One racer always gets the lowest id; no id is claimed twice."""
        await redis_client.zadd(KEY, {"id7": 2, "id3": 1})
        first, second = client_factory(), client_factory()

        results = await asyncio.gather(
            try_claim_lowest_rank(first, KEY),
            try_claim_lowest_rank(second, KEY),
        )

        claimed = [r for r in results if r is not None]
        assert "id3" in claimed
        assert len(claimed) == len(set(claimed))
        assert set(results) <= {"id3", "id7", None}

        remaining = await redis_client.zrange(KEY, 0, -1)
        assert set(remaining) | set(claimed) == {"id3", "id7"}
        assert not set(remaining) & set(claimed)

        await first.aclose()
        await second.aclose()

    @pytest.mark.asyncio
    async def test_concurrent_claimers_never_duplicate(self, client_factory, redis_client):
        """Many racing claimers together claim every id exactly once."""
        members = {f"{i:04d}": i for i in range(30)}
        await redis_client.zadd(KEY, members)
        clients = [client_factory() for _ in range(5)]

        async def drain(client) -> list[str]:
            claimed = []
            while await client.zcard(KEY) > 0:
                member = await try_claim_lowest_rank(client, KEY)
                if member is not None:
                    claimed.append(member)
                await asyncio.sleep(0)
            return claimed

        results = await asyncio.gather(*(drain(c) for c in clients))
        all_claimed = [m for claimed in results for m in claimed]

        assert sorted(all_claimed) == sorted(members)
        assert len(all_claimed) == len(set(all_claimed))

        for client in clients:
            await client.aclose()

    @pytest.mark.asyncio
    async def test_change_after_read_aborts_claim(self, client_factory, redis_client, monkeypatch):
        """A write to the key between the read and EXEC aborts the claim."""
        await redis_client.zadd(KEY, {"a": 1})
        other = client_factory()
        open_pipeline = redis_client.pipeline

        def pipeline(*args, **kwargs):
            pipe = open_pipeline(*args, **kwargs)
            read = pipe.zrange

            async def read_then_interfere(*read_args, **read_kwargs):
                members = await read(*read_args, **read_kwargs)
                await other.zrem(KEY, "a")
                await other.zadd(KEY, {"b": 2})
                return members

            pipe.zrange = read_then_interfere
            return pipe

        monkeypatch.setattr(redis_client, "pipeline", pipeline)

        assert await try_claim_lowest_rank(redis_client, KEY) is None
        assert await other.zrange(KEY, 0, -1) == ["b"]

        await other.aclose()


class TestClaimTransaction:
    """Tests for the transaction paths using a mocked pipeline."""

    @pytest.mark.asyncio
    async def test_empty_set_unwatches(self):
        """An empty read releases the watch and skips the transaction."""
        client, pipe = mock_client([])

        assert await try_claim_lowest_rank(client, KEY) is None

        pipe.watch.assert_awaited_once_with(KEY)
        pipe.unwatch.assert_awaited_once()
        pipe.multi.assert_not_called()
        pipe.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_clean_transaction_returns_member(self):
        """A clean EXEC removes the member read under WATCH."""
        client, pipe = mock_client(["000000000001"])

        assert await try_claim_lowest_rank(client, KEY) == "000000000001"

        pipe.zrange.assert_awaited_once_with(KEY, 0, 0)
        pipe.multi.assert_called_once()
        pipe.zrem.assert_called_once_with(KEY, "000000000001")

    @pytest.mark.asyncio
    async def test_aborted_transaction_returns_none(self):
        """A concurrent change aborts the EXEC and yields no id."""
        client, _ = mock_client(
            ["000000000001"],
            execute=AsyncMock(side_effect=WatchError("watched key changed")),
        )

        assert await try_claim_lowest_rank(client, KEY) is None

    @pytest.mark.asyncio
    async def test_member_already_gone_returns_none(self):
        """A ZREM that removed nothing is not a claim."""
        client, _ = mock_client(["000000000001"], execute=AsyncMock(return_value=[0]))

        assert await try_claim_lowest_rank(client, KEY) is None

    @pytest.mark.asyncio
    async def test_read_error_propagates(self):
        """Store errors while reading are raised to the caller."""
        client, pipe = mock_client([])
        pipe.zrange.side_effect = ConnectionError("connection reset")

        with pytest.raises(ConnectionError):
            await try_claim_lowest_rank(client, KEY)

    @pytest.mark.asyncio
    async def test_exec_error_propagates(self):
        """Store errors during EXEC are raised to the caller."""
        client, _ = mock_client(
            ["000000000001"],
            execute=AsyncMock(side_effect=ConnectionError("connection reset")),
        )

        with pytest.raises(ConnectionError):
            await try_claim_lowest_rank(client, KEY)


class TestRedisClaimStore:
    """Tests for RedisClaimStore."""

    @pytest.mark.asyncio
    async def test_claims_through_its_client(self, redis_client):
        """The store claims with the client it was given."""
        store = RedisClaimStore(redis_client)
        await redis_client.zadd(KEY, {"only": 0})

        assert store.client is redis_client
        assert await store.try_claim_lowest_rank(KEY) == "only"
        assert await store.try_claim_lowest_rank(KEY) is None
