"""Process liveness check."""

import os


def is_pid_alive(pid: int) -> bool:
    """Check if a process with given PID exists and can be signalled.

    Zero and negative PIDs address process groups, not processes, so they
    are never considered alive.
    """
    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)  # Signal 0 doesn't kill, just checks
        return True
    except (OSError, OverflowError):
        return False
