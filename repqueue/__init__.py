"""
repqueue - client-side driver for an Innovator vault replication queue.

Content changes put replication transactions on a server-resident queue; this
package drains that queue from the client side:

- Drainer: runs bounded ProcessReplicationQueue cycles with a cooldown until the
  queue is empty or the operator stops it
- StatusReconciler: tallies transactions and their logs by replication status
- Producer: requests replication transactions for a set of files

All three talk to the server through the RemoteQueueClient protocol; the AML
over HTTP implementation lives in `repqueue.client`.
"""

from __future__ import annotations

__version__ = "0.1.0"
__license__ = "MIT"

# Public API exports
from repqueue.client.abstract import RemoteQueueClient
from repqueue.client.aml import AmlQueueClient
from repqueue.client.session import open_session
from repqueue.config import Credentials, Settings, get_settings, load_config_file
from repqueue.domain.models import (
    BatchResult,
    CreationOutcome,
    DrainReport,
    FinalTally,
    Record,
    ReplicationStatus,
    StatusTally,
)
from repqueue.drainer import CooldownPolicy, Drainer
from repqueue.errors import (
    ConfigurationError,
    EmptyResult,
    ProtocolError,
    RemoteError,
    RemoteLogicError,
    ReplicationError,
    TransportError,
)
from repqueue.producer import Producer
from repqueue.reconciler import StatusReconciler
from repqueue.utils.logging import configure_logging, get_logger

__all__ = [
    # Version info
    "__version__",
    "__license__",
    # Configuration
    "Credentials",
    "Settings",
    "get_settings",
    "load_config_file",
    # Core
    "CooldownPolicy",
    "Drainer",
    "Producer",
    "StatusReconciler",
    # Remote client
    "AmlQueueClient",
    "RemoteQueueClient",
    "open_session",
    # Domain
    "BatchResult",
    "CreationOutcome",
    "DrainReport",
    "FinalTally",
    "Record",
    "ReplicationStatus",
    "StatusTally",
    # Errors
    "ConfigurationError",
    "EmptyResult",
    "ProtocolError",
    "RemoteError",
    "RemoteLogicError",
    "ReplicationError",
    "TransportError",
    # Logging
    "configure_logging",
    "get_logger",
]
