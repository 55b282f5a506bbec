"""
Client package for the replication queue.

Centralizes the remote-server concerns (protocol, AML transport, sessions).
Keep this layer focused on I/O, decoupled from the draining logic.
"""

from repqueue.client.abstract import RemoteQueueClient
from repqueue.client.aml import AmlQueueClient
from repqueue.client.session import create_client, open_session

__all__ = [
    "AmlQueueClient",
    "RemoteQueueClient",
    "create_client",
    "open_session",
]
