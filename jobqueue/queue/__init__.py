"""
Queue module.
Contains the queue collaborator workers report to and its event bus.
"""

from jobqueue.queue.events import EventBus
from jobqueue.queue.main import Queue

__all__ = [
    "EventBus",
    "Queue",
]
