"""
Session factory for Innovator clients.

Each identity gets its own `AmlQueueClient`; `open_session` logs in, yields the
client and logs out again. There is no process-wide session: callers that need
a different identity (the admin purge, for instance) open a second session.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Generator, Optional

import httpx

from repqueue.client.aml import AmlQueueClient
from repqueue.config import Credentials, Settings, get_settings
from repqueue.errors import ReplicationError
from repqueue.utils.logging import get_logger

log = get_logger(__name__)


def create_client(
    credentials: Credentials,
    settings: Optional[Settings] = None,
    http_client: Optional[httpx.Client] = None,
) -> AmlQueueClient:
    """Build an unauthenticated client for `credentials`."""
    settings = settings or get_settings()
    return AmlQueueClient(
        credentials,
        timeout=settings.request_timeout_seconds,
        http_client=http_client,
    )


@contextmanager
def open_session(
    credentials: Credentials,
    settings: Optional[Settings] = None,
    http_client: Optional[httpx.Client] = None,
) -> Generator[AmlQueueClient, None, None]:
    """
    Context manager yielding a logged-in client.

    Example
    -------
        with open_session(settings.replication_credentials) as client:
            client.process_batch(10, 15)
    """
    client = create_client(credentials, settings=settings, http_client=http_client)
    try:
        log.info(f"Trying to login as '{credentials.user}'...")
        client.login()
        try:
            yield client
        finally:
            try:
                client.logout()
            except ReplicationError as exc:
                log.warning(f"Logout of '{credentials.user}' failed: {exc}")
    finally:
        client.close()


__all__ = ["create_client", "open_session"]
