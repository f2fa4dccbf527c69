"""Archive extraction helpers for pushbuilder."""

import os
import shutil
import tarfile
from pathlib import Path
from typing import BinaryIO, Optional, Set

from pushbuilder.errors import BuilderError, StagingError


class ArchiveService:
    """Encapsulates safe tar extraction and artifact inspection."""

    def is_within_dir(self, base_dir: Path, candidate: Path) -> bool:
        try:
            return os.path.commonpath([str(base_dir), str(candidate)]) == str(base_dir)
        except ValueError:
            return False

    @staticmethod
    def normalize_name(name: str) -> str:
        normalized = name.replace("\\", "/")
        while normalized.startswith("./"):
            normalized = normalized[2:]
        return normalized.rstrip("/")

    def safe_extract_tar(self, source: BinaryIO, destination_dir: str) -> int:
        """Extracts a tar stream into `destination_dir` and returns the entry count.

        `source` is read once, front to back, so it may be a pipe. Each member is
        checked before it is written; an unsafe member aborts the extraction.
        """
        base = Path(destination_dir).resolve()
        extracted = 0

        try:
            with tarfile.open(fileobj=source, mode="r|*") as tar:
                for member in tar:
                    self._check_member(base, member)
                    target_path = base / self.normalize_name(member.name)

                    if member.isdir():
                        target_path.mkdir(parents=True, exist_ok=True)
                    elif member.issym():
                        target_path.parent.mkdir(parents=True, exist_ok=True)
                        os.symlink(member.linkname, target_path)
                    elif member.isfile():
                        target_path.parent.mkdir(parents=True, exist_ok=True)
                        member_file = tar.extractfile(member)
                        if member_file is None:
                            continue
                        with member_file, open(target_path, "wb") as dst:
                            shutil.copyfileobj(source, dst)
                        os.chmod(target_path, member.mode & 0o777)
                    else:
                        continue
                    extracted += 1
        except tarfile.TarError as exc:
            raise StagingError(f"Invalid tar archive: {exc}") from exc

        return extracted

    def _check_member(self, base: Path, member: tarfile.TarInfo):
        normalized_name = self.normalize_name(member.name)
        target_path = (base / normalized_name).resolve()

        if not self.is_within_dir(base, target_path):
            raise StagingError(
                f"Unsafe archive entry detected: `{member.name}`. "
                "Extraction aborted to prevent path traversal."
            )

        if member.islnk():
            raise StagingError(f"Unsafe archive entry detected: `{member.name}` is a hard link.")

        if member.issym():
            link_target = (target_path.parent / member.linkname).resolve()
            if os.path.isabs(member.linkname) or not self.is_within_dir(base, link_target):
                raise StagingError(
                    f"Unsafe archive entry detected: `{member.name}` links outside the tree."
                )

    def list_members(self, archive_path: str) -> Set[str]:
        try:
            with tarfile.open(archive_path, mode="r:*") as tar:
                return {self.normalize_name(name) for name in tar.getnames()}
        except (tarfile.TarError, OSError) as exc:
            raise BuilderError(f"Could not read archive {archive_path}: {exc}") from exc

    def read_member(self, archive_path: str, name: str) -> Optional[str]:
        """Returns the text of a regular file inside the archive, if present."""
        wanted = self.normalize_name(name)
        try:
            with tarfile.open(archive_path, mode="r:*") as tar:
                for member in tar.getmembers():
                    if self.normalize_name(member.name) != wanted or not member.isfile():
                        continue
                    source = tar.extractfile(member)
                    if source is None:
                        return None
                    with source:
                        return source.read().decode("utf-8", errors="replace")
        except (tarfile.TarError, OSError) as exc:
            raise BuilderError(f"Could not read archive {archive_path}: {exc}") from exc
        return None
