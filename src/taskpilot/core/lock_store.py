"""Lock store for main instance arbitration.

Provides the file-based lock identifying the main TaskPilot instance.
Uses atomic file creation (O_CREAT | O_EXCL) as the only cross-process
mutual exclusion; there is no in-process mutex and no expiry.
"""

import contextlib
import logging
import os
import tempfile
from pathlib import Path

from pydantic import ValidationError

from ..constants import LOCK_FILE_TEMPLATE
from ..models import InstanceLock

logger = logging.getLogger(__name__)


def default_lock_path(port: int) -> Path:
    """Get the default lock file path for a well-known port."""
    return Path(tempfile.gettempdir()) / LOCK_FILE_TEMPLATE.format(port=port)


def try_create(lock_path: Path, lock: InstanceLock) -> bool:
    """Attempt atomic lock file creation.

    Uses O_CREAT | O_EXCL flags for atomicity - if the path exists (even as
    a corrupt file or a directory), open() fails rather than overwriting.

    Args:
        lock_path: Path of the lock file
        lock: Record to write on success

    Returns:
        True if lock was created, False if the path already exists

    Raises:
        OSError: Any failure other than the path already existing
    """
    try:
        fd = os.open(str(lock_path), os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
    except FileExistsError:
        logger.debug(f"Lock already exists at {lock_path}")
        return False
    try:
        os.write(fd, lock.model_dump_json().encode())
    except OSError:
        # An empty lock would block every later claim
        os.close(fd)
        remove_lock(lock_path)
        raise
    os.close(fd)
    logger.debug(f"Created lock {lock_path} for PID {lock.pid}")
    return True


def read_lock(lock_path: Path) -> InstanceLock | None:
    """Read the lock file if it exists and is valid.

    Args:
        lock_path: Path of the lock file

    Returns:
        Parsed lock, or None if missing, unreadable, or malformed
    """
    try:
        content = lock_path.read_bytes()
    except OSError:
        return None

    try:
        return InstanceLock.model_validate_json(content)
    except ValidationError:
        # Corrupted lock file - treat as no lock
        return None


def remove_lock(lock_path: Path) -> None:
    """Delete the lock file, ignoring an already-absent file."""
    with contextlib.suppress(FileNotFoundError):
        lock_path.unlink()
