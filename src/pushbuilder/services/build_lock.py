"""Per-application build serialization."""

import fcntl
from typing import IO, Optional


class BuildLock:
    """Exclusive flock on `<repo>/build.lock`, held for one whole pipeline run."""

    def __init__(self, path: str, logger):
        self.path = path
        self.logger = logger
        self._file: Optional[IO[str]] = None

    @property
    def held(self) -> bool:
        return self._file is not None

    def acquire(self):
        file_obj = open(self.path, "a", encoding="utf-8")
        self.logger.debug("Waiting for build lock %s", self.path)
        try:
            fcntl.flock(file_obj.fileno(), fcntl.LOCK_EX)
        except OSError:
            file_obj.close()
            raise
        self._file = file_obj

    def release(self):
        if self._file is None:
            return
        try:
            fcntl.flock(self._file.fileno(), fcntl.LOCK_UN)
        finally:
            self._file.close()
            self._file = None
