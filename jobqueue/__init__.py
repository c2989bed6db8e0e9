"""
Redis Job Queue

A job queue worker that claims pending jobs from Redis with an optimistic
WATCH/MULTI transaction, runs them, and retries failures while attempts remain.
"""

__version__ = "1.0.0"
