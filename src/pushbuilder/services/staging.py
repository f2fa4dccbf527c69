"""Commit staging service for pushbuilder."""

import os
import re
import tempfile

from pushbuilder.constants import BUILD_DIR_NAME, CACHE_DIR_NAME, OBJECT_NAME_PATTERN
from pushbuilder.errors import StagingError
from pushbuilder.errors_catalog import actionable_error
from pushbuilder.models import BuildContext, PushEvent


class StagingService:
    """Materializes a pushed commit into a fresh staging directory."""

    def __init__(self, builder_root: str, git_service, archive_service, logger):
        self.builder_root = builder_root
        self.git_service = git_service
        self.archive_service = archive_service
        self.logger = logger

    def repo_dir(self, event: PushEvent) -> str:
        return os.path.join(self.builder_root, event.repository)

    def build_dir(self, event: PushEvent) -> str:
        return os.path.join(self.repo_dir(event), BUILD_DIR_NAME)

    def cache_dir(self, event: PushEvent) -> str:
        return os.path.join(self.repo_dir(event), CACHE_DIR_NAME)

    def prepare(self, event: PushEvent) -> BuildContext:
        """Creates the per-push staging directory and the shared cache directory."""
        if not re.fullmatch(OBJECT_NAME_PATTERN, event.sha):
            raise StagingError(actionable_error("invalid_commit", sha=event.sha))

        repo_dir = self.repo_dir(event)
        if not os.path.isdir(repo_dir):
            raise StagingError(actionable_error("repository_not_found", path=repo_dir))

        build_dir = self.build_dir(event)
        cache_dir = self.cache_dir(event)
        os.makedirs(build_dir, exist_ok=True)
        os.makedirs(cache_dir, exist_ok=True)
        staging_dir = tempfile.mkdtemp(prefix=f"{event.short_sha}-", dir=build_dir)
        return BuildContext(
            staging_dir=staging_dir,
            cache_dir=cache_dir,
            image_name=event.image_name,
        )

    def stage(self, event: PushEvent, context: BuildContext) -> BuildContext:
        """Extracts the commit tree into `context.staging_dir`."""
        count = self.git_service.archive(
            self.repo_dir(event),
            event.sha,
            lambda stream: self.archive_service.safe_extract_tar(stream, context.staging_dir),
        )
        if count == 0:
            raise StagingError(actionable_error("empty_tree", sha=event.sha))

        self.logger.info("Staged %s entries of %s into %s", count, event.short_sha, context.staging_dir)
        return context
