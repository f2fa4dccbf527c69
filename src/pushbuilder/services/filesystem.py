"""Filesystem helpers for pushbuilder."""

import logging
import os
import shutil
import stat
import sys

from rich.console import Console

from pushbuilder.constants import SHARED_DIR_BITS, SHARED_FILE_BITS


class FileSystemService:
    """Encapsulates file and directory side effects."""

    def __init__(self, logger: logging.Logger, console: Console):
        self.logger = logger
        self.console = console

    def grant_group_access(self, path: str, gid: int, extra_bits: int):
        if sys.platform == "win32":
            return

        try:
            os.chown(path, -1, gid, follow_symlinks=False)
            if not os.path.islink(path):
                current = stat.S_IMODE(os.lstat(path).st_mode)
                os.chmod(path, current | extra_bits)
        except Exception as exc:
            self.logger.warning("Could not share %s with group %s: %s", path, gid, exc)

    def share_with_group(self, root: str, gid: int):
        """Lets the build container's group read and write everything under `root`."""
        if sys.platform == "win32" or not os.path.exists(root):
            return

        self.grant_group_access(root, gid, SHARED_DIR_BITS)
        for current_root, dirs, files in os.walk(root):
            for directory in dirs:
                self.grant_group_access(os.path.join(current_root, directory), gid, SHARED_DIR_BITS)
            for file_name in files:
                self.grant_group_access(os.path.join(current_root, file_name), gid, SHARED_FILE_BITS)

    def cleanup_dir(self, path: str):
        if os.path.exists(path):
            try:
                shutil.rmtree(path)
                self.logger.debug("Removed directory: %s", path)
            except Exception as exc:
                self.logger.debug("Could not remove %s: %s", path, exc)
