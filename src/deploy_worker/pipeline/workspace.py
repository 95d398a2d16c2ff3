"""Per-run temporary workspace directories."""

from __future__ import annotations

import logging
import os
import shutil
import stat
import tempfile
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from pathlib import Path

logger = logging.getLogger(__name__)


class WorkspaceManager:
    """Creates a private, uniquely named directory per pipeline run."""

    def __init__(self, root_dir: Path | None = None, *, prefix: str = "repo-") -> None:
        self.root_dir = root_dir
        self.prefix = prefix

    def acquire(self) -> Path:
        if self.root_dir is not None:
            self.root_dir.mkdir(parents=True, exist_ok=True)
        path = Path(tempfile.mkdtemp(prefix=self.prefix, dir=self.root_dir))
        logger.info("Created temp directory: %s", path)
        return path

    def release(self, path: Path) -> None:
        """Remove the workspace recursively, including read-only files."""

        if not path.exists():
            return
        shutil.rmtree(path, onexc=_make_writable_and_retry)
        logger.info("Cleaned up temp directory: %s", path)

    @contextmanager
    def workspace(self) -> Iterator[Path]:
        """Acquire a workspace and always release it, logging cleanup errors."""

        path = self.acquire()
        try:
            yield path
        finally:
            try:
                self.release(path)
            except OSError:
                logger.warning("Failed to cleanup temp directory %s", path, exc_info=True)


def _make_writable_and_retry(
    function: Callable[[str], object],
    path: str,
    error: BaseException,
) -> None:
    if isinstance(error, FileNotFoundError):
        return
    mode = stat.S_IWRITE | stat.S_IREAD | stat.S_IEXEC
    os.chmod(os.path.dirname(path), mode)
    os.chmod(path, mode)
    function(path)
