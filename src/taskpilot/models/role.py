"""Instance role and arbitration outcome types."""

from dataclasses import dataclass
from enum import Enum


class InstanceRole(str, Enum):
    """Role a process resolved to. Assigned once per process lifetime."""

    UNKNOWN = "unknown"
    MAIN = "main"
    PROXY = "proxy"


class OutcomeKind(str, Enum):
    """Kinds of arbitration outcome."""

    WON = "won"
    LOST = "lost"
    FAILED = "failed"


@dataclass(frozen=True)
class ArbitrationOutcome:
    """Result of a single attempt to claim the lock.

    ``FAILED`` carries the OS error that prevented the attempt; ``LOST`` means
    another lock file already exists (ordinary contention).
    """

    kind: OutcomeKind
    error: OSError | None = None

    @classmethod
    def won(cls) -> "ArbitrationOutcome":
        return cls(OutcomeKind.WON)

    @classmethod
    def lost(cls) -> "ArbitrationOutcome":
        return cls(OutcomeKind.LOST)

    @classmethod
    def failed(cls, error: OSError) -> "ArbitrationOutcome":
        return cls(OutcomeKind.FAILED, error)

    @property
    def reason(self) -> str | None:
        """Human-readable failure reason, if any."""
        if self.error is None:
            return None
        return self.error.strerror or str(self.error)
