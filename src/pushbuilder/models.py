"""Shared domain models for pushbuilder."""

import os
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Union

from pushbuilder.constants import (
    ARTIFACT_NAME,
    DOCKERFILE_NAME,
    REPOSITORY_SUFFIX,
    SHORT_SHA_LENGTH,
)

ProcessTypeMap = Dict[str, str]


@dataclass(frozen=True)
class PushEvent:
    """A single `git push` as reported by the receive hook."""

    user: str
    repository: str
    sha: str

    @property
    def short_sha(self) -> str:
        return self.sha[:SHORT_SHA_LENGTH]

    @property
    def app_name(self) -> str:
        if self.repository.endswith(REPOSITORY_SUFFIX):
            return self.repository[: -len(REPOSITORY_SUFFIX)]
        return self.repository

    @property
    def image_name(self) -> str:
        return f"{self.app_name}:git-{self.short_sha}"


@dataclass
class BuildContext:
    """Per-push working state shared by the pipeline stages."""

    staging_dir: str
    cache_dir: str
    image_name: str
    using_dockerfile: bool = False
    container_id: Optional[str] = None

    @property
    def dockerfile_path(self) -> str:
        return os.path.join(self.staging_dir, DOCKERFILE_NAME)

    @property
    def artifact_path(self) -> str:
        return os.path.join(self.staging_dir, ARTIFACT_NAME)


class BuildMode(Enum):
    DOCKERFILE = "dockerfile"
    BUILDPACK = "buildpack"


class PipelineState(Enum):
    RECEIVED = "received"
    STAGED = "staged"
    MODE_DETECTED = "mode-detected"
    BUILT = "built"
    PUSHED = "pushed"
    PROCESS_TYPES_RESOLVED = "process-types-resolved"
    PUBLISHED = "published"
    CLEANED = "cleaned"


class ProcessTypeSource(Enum):
    PROCFILE = "procfile"
    ARTIFACT_PROCFILE = "artifact-procfile"
    RELEASE_METADATA = "release-metadata"
    NONE = "none"


@dataclass(frozen=True)
class ReleaseRecord:
    version: int
    domain: Optional[str] = None


@dataclass(frozen=True)
class Success:
    release: ReleaseRecord
    exit_code: int = 0


@dataclass(frozen=True)
class Failure:
    stage: str
    message: str
    exit_code: int = 1


PipelineOutcome = Union[Success, Failure]


@dataclass(frozen=True)
class BuilderSettings:
    """Endpoints and local layout resolved once at process start."""

    registry_host: str
    controller_host: str
    builder_key: str
    builder_root: str
    registry_port: int = 5000
    controller_port: int = 8000
    controller_protocol: str = "http"
    buildpack_image: str = "deis/slugbuilder"
    runner_image: str = "deis/slugrunner"
    build_group_id: int = 2000
    keep_build_dir: bool = False
    serialize_builds: bool = False
    request_timeout: float = 30.0

    @property
    def registry(self) -> str:
        return f"{self.registry_host}:{self.registry_port}"

    @property
    def controller_url(self) -> str:
        return f"{self.controller_protocol}://{self.controller_host}:{self.controller_port}"
