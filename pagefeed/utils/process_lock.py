"""
Process Lock Utilities
======================

File lock preventing two runs from writing into the same output directory
at the same time.
"""

import os
import fcntl
import logging
import hashlib
import tempfile
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


class ProcessLock:
    """File-based process lock to prevent multiple instances."""

    def __init__(self, lock_name: str, lock_dir: Optional[str] = None):
        """
        Initialize process lock.

        Args:
            lock_name: Name for the lock file (without extension)
            lock_dir: Directory for lock files (defaults to the system temp dir)
        """
        if lock_dir is None:
            lock_dir = tempfile.gettempdir()

        self.lock_file = Path(lock_dir) / f"{lock_name}.lock"
        self.lock_fd: Optional[int] = None
        self.acquired = False

    def acquire(self) -> bool:
        """
        Acquire the lock.

        Returns:
            True if lock was acquired successfully, False if already locked
        """
        try:
            self.lock_file.parent.mkdir(parents=True, exist_ok=True)

            self.lock_fd = os.open(str(self.lock_file), os.O_CREAT | os.O_RDWR)

            # Non-blocking exclusive lock
            fcntl.flock(self.lock_fd, fcntl.LOCK_EX | fcntl.LOCK_NB)

            os.ftruncate(self.lock_fd, 0)
            os.write(self.lock_fd, f"{os.getpid()}\n".encode())
            os.fsync(self.lock_fd)

            self.acquired = True
            logger.debug(f"Process lock acquired: {self.lock_file}")
            return True

        except OSError:
            if self.lock_fd is not None:
                os.close(self.lock_fd)
                self.lock_fd = None

            existing_pid = self.get_lock_holder_pid()
            if existing_pid:
                logger.warning(
                    f"Process lock already held by PID {existing_pid}: {self.lock_file}"
                )
            else:
                logger.warning(f"Process lock unavailable: {self.lock_file}")

            return False

    def release(self) -> None:
        """Release the lock."""
        if self.lock_fd is not None and self.acquired:
            try:
                fcntl.flock(self.lock_fd, fcntl.LOCK_UN)
                os.close(self.lock_fd)
                self.lock_file.unlink(missing_ok=True)
                logger.debug(f"Process lock released: {self.lock_file}")
            except OSError as e:
                logger.warning(f"Error releasing lock: {e}")
            finally:
                self.lock_fd = None
                self.acquired = False

    def get_lock_holder_pid(self) -> Optional[int]:
        """Get PID of the process holding the lock."""
        try:
            if self.lock_file.exists():
                content = self.lock_file.read_text().strip()
                return int(content)
        except (ValueError, OSError):
            pass
        return None

    def __enter__(self):
        if not self.acquire():
            raise RuntimeError(f"Could not acquire process lock: {self.lock_file}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.release()


def output_dir_lock(output_dir: Path, lock_dir: Optional[str] = None) -> ProcessLock:
    """Build the lock guarding one output directory.

    The directory path is hashed so that equal directories map to the same
    lock file regardless of how they were spelled on the command line.
    """
    resolved = str(Path(output_dir).expanduser().resolve())
    dir_hash = hashlib.sha256(resolved.encode()).hexdigest()[:16]
    return ProcessLock(f"pagefeed-{dir_hash}", lock_dir=lock_dir)
