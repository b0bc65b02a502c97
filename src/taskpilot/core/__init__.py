"""Core arbitration logic for TaskPilot instances.

This package contains the building blocks of single-instance arbitration:
- lock_store: Atomic lock file create/read/remove
- liveness: Process liveness check
- peer: Version and shutdown requests to a running main
- ports: Port availability polling
- proxy: Reverse proxy for instances that lost arbitration (imported lazily)
- arbitrator: The role state machine composing the above
"""

from .arbitrator import Arbitrator
from .liveness import is_pid_alive
from .lock_store import default_lock_path, read_lock, remove_lock, try_create
from .peer import fetch_version, request_shutdown
from .ports import is_port_free, wait_for_free

__all__ = [
    "Arbitrator",
    "default_lock_path",
    "fetch_version",
    "is_pid_alive",
    "is_port_free",
    "read_lock",
    "remove_lock",
    "request_shutdown",
    "try_create",
    "wait_for_free",
]
