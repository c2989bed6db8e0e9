"""
Atomic claim of the next pending job id.

Redis has no "pop minimum only if unchanged" command usable across
versions, so the claim is an optimistic transaction:

    WATCH key
    ZRANGE key 0 0
    MULTI
    ZREM key <member>
    EXEC

If another client modifies the key between WATCH and EXEC, the EXEC is
aborted and nothing is removed. A conflict is reported as "no id" and
the caller's poll loop retries on its next cycle, so at most one
client ever observes a given member as claimed.
"""

import logging
from typing import Protocol

from redis.asyncio import Redis
from redis.exceptions import WatchError

from jobqueue.observability.metrics import get_metrics

logger = logging.getLogger(__name__)


class ClaimStore(Protocol):
    """Store able to atomically remove the lowest-ranked member of a set."""

    async def try_claim_lowest_rank(self, key: str) -> str | None:
        """
        Remove and return the lowest-ranked member of ``key``.

        Returns None when the set is empty or the claim lost a race.
        Store errors propagate.
        """
        ...


async def try_claim_lowest_rank(client: Redis, key: str) -> str | None:
    """
    Atomically pop the lowest-ranked member of a sorted set.

    Args:
        client: Redis client. Must not be shared with another claim in flight.
        key: The sorted-set key.

    Returns:
        The removed member, or None if the set was empty or the
        transaction was aborted by a concurrent modification.

    Raises:
        redis.exceptions.RedisError: On connection or protocol errors.
    """
    async with client.pipeline(transaction=True) as pipe:
        await pipe.watch(key)

        members = await pipe.zrange(key, 0, 0)
        if not members:
            await pipe.unwatch()
            return None

        member = members[0]

        pipe.multi()
        pipe.zrem(key, member)
        try:
            removed, = await pipe.execute()
        except WatchError:
            logger.debug("Claim lost race", extra={"key": key, "member": member})
            get_metrics().record_claim_conflict(key)
            return None

    if not removed:
        return None

    return member


class RedisClaimStore:
    """ClaimStore backed by a dedicated Redis connection."""

    def __init__(self, client: Redis):
        self._client = client

    @property
    def client(self) -> Redis:
        return self._client

    async def try_claim_lowest_rank(self, key: str) -> str | None:
        return await try_claim_lowest_rank(self._client, key)
