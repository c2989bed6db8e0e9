"""
Store module.
Contains Redis connection handling, the job model, the job repository
and the atomic claim primitive.
"""

from jobqueue.store.claim import ClaimStore, RedisClaimStore, try_claim_lowest_rank
from jobqueue.store.connection import close_client, create_client, get_client
from jobqueue.store.models import Job
from jobqueue.store.repository import JobKeys, JobRepository

__all__ = [
    "create_client",
    "get_client",
    "close_client",
    "ClaimStore",
    "RedisClaimStore",
    "try_claim_lowest_rank",
    "Job",
    "JobKeys",
    "JobRepository",
]
