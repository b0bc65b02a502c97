"""Pydantic and dataclass models for TaskPilot arbitration.

This package defines:
- The persisted lock record (InstanceLock)
- The per-process role (InstanceRole)
- The tagged result of a claim attempt (ArbitrationOutcome)

Example:
    >>> from taskpilot.models import InstanceLock
    >>> InstanceLock(pid=1234, version="0.1.0", timestamp=0).model_dump_json()
    '{"pid":1234,"version":"0.1.0","timestamp":0}'
"""

from .lock import InstanceLock
from .role import ArbitrationOutcome, InstanceRole, OutcomeKind

__all__ = [
    "ArbitrationOutcome",
    "InstanceLock",
    "InstanceRole",
    "OutcomeKind",
]
