"""Instance lock model.

The lock file records which process currently owns the well-known port.
Only the presence of the file arbitrates; the content identifies the owner.
"""

import os
import time

from pydantic import BaseModel, ConfigDict, Field, StrictInt, StrictStr


def _now_ms() -> int:
    return int(time.time() * 1000)


class InstanceLock(BaseModel):
    """Main instance lock written to the lock file.

    Every field is required: a record missing any of them has no
    identifiable owner and must not parse.

    Attributes:
        pid: Process ID of the main instance.
        version: Protocol version of the build that claimed the lock.
        timestamp: Creation time in epoch milliseconds.
    """

    model_config = ConfigDict(extra="ignore", frozen=True)

    pid: StrictInt = Field(description="Process ID holding the lock")
    version: StrictStr = Field(description="Version of the lock holder")
    timestamp: StrictInt = Field(description="Creation time (epoch ms)")

    @classmethod
    def for_current_process(cls, version: str) -> "InstanceLock":
        """Build the record this process writes when it claims the lock."""
        return cls(pid=os.getpid(), version=version, timestamp=_now_ms())
