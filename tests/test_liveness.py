"""Tests for the process liveness check."""

import os
import subprocess
import sys

import pytest

from taskpilot.core.liveness import is_pid_alive


@pytest.mark.unit
class TestIsPidAlive:
    """Tests for is_pid_alive function."""

    def test_current_process_is_alive(self) -> None:
        assert is_pid_alive(os.getpid()) is True

    def test_unused_pid_is_dead(self) -> None:
        assert is_pid_alive(999999) is False

    @pytest.mark.parametrize("pid", [0, -1, -999])
    def test_non_positive_pids_are_dead(self, pid: int) -> None:
        assert is_pid_alive(pid) is False

    def test_out_of_range_pid_is_dead(self) -> None:
        assert is_pid_alive(2**64) is False

    def test_exited_child_is_dead(self) -> None:
        """A reaped child process no longer counts as alive."""
        proc = subprocess.Popen([sys.executable, "-c", "pass"])
        proc.wait()
        assert is_pid_alive(proc.pid) is False
