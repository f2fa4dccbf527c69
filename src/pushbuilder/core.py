import logging
import os
import subprocess
from typing import Any, List, Optional

import requests
from rich.console import Console
from rich.markup import escape

from .constants import LOCK_FILE_NAME
from .errors import BuilderError, ReleaseError
from .models import (
    BuildContext,
    BuilderSettings,
    BuildMode,
    Failure,
    PipelineOutcome,
    PipelineState,
    ProcessTypeMap,
    PushEvent,
    ReleaseRecord,
    Success,
)
from .services.archive import ArchiveService
from .services.build_lock import BuildLock
from .services.command_runner import CommandRunner
from .services.controller import ControllerClient, build_release_payload
from .services.detection import detect_build_mode
from .services.docker_runtime import DockerRuntimeService
from .services.filesystem import FileSystemService
from .services.git import GitService
from .services.image_builder import ImageBuilder
from .services.procfile import ProcessTypeResolver
from .services.staging import StagingService

console = Console()
logger = logging.getLogger("pushbuilder")


def puts_step(message: str):
    console.print(f"[bold]-----> {escape(message)}[/bold]")


def puts_warn(message: str):
    for line in message.splitlines() or [""]:
        console.print(f"[yellow] !     {escape(line)}[/yellow]")


def indent(message: str = ""):
    console.print(f"       {escape(message)}")


class Builder:
    """Runs the build pipeline for a single push."""

    def __init__(
        self,
        user: str,
        repository: str,
        sha: str,
        settings: BuilderSettings,
        requests_module=requests,
        subprocess_module=subprocess,
    ):
        self.event = PushEvent(user=user, repository=repository, sha=sha)
        self.settings = settings
        self.context: Optional[BuildContext] = None
        self.state = PipelineState.RECEIVED
        self.history: List[PipelineState] = [self.state]
        self.current_stage: Optional[str] = None

        self.command_runner = CommandRunner(logger=logger, subprocess_module=subprocess_module)
        self.archive_service = ArchiveService()
        self.filesystem_service = FileSystemService(logger=logger, console=console)
        self.git_service = GitService(logger=logger, command_runner=self.command_runner)
        self.staging_service = StagingService(
            builder_root=settings.builder_root,
            git_service=self.git_service,
            archive_service=self.archive_service,
            logger=logger,
        )
        self.controller = ControllerClient(
            settings=settings,
            logger=logger,
            requests_module=requests_module,
        )
        self.docker_runtime_service = DockerRuntimeService(
            settings=settings,
            command_runner=self.command_runner,
            logger=logger,
        )
        self.image_builder = ImageBuilder(
            settings=settings,
            docker_runtime=self.docker_runtime_service,
            controller=self.controller,
            filesystem_service=self.filesystem_service,
            logger=logger,
            console=console,
        )
        self.process_type_resolver = ProcessTypeResolver(
            archive_service=self.archive_service,
            logger=logger,
        )

        self.build_lock: Optional[BuildLock] = None
        if settings.serialize_builds:
            self.build_lock = BuildLock(
                os.path.join(self.staging_service.repo_dir(self.event), LOCK_FILE_NAME),
                logger=logger,
            )

    def _advance(self, state: PipelineState):
        self.state = state
        self.history.append(state)

    def _run_stage(self, name: str, state: PipelineState, callback, *args, **kwargs) -> Any:
        self.current_stage = name
        logger.debug("Entering stage: %s", name)
        result = callback(*args, **kwargs)
        self._advance(state)
        self.current_stage = None
        return result

    def stage_commit(self) -> BuildContext:
        self.context = self.staging_service.prepare(self.event)
        if self.build_lock:
            self.build_lock.acquire()
        self.staging_service.stage(self.event, self.context)
        return self.context

    def detect_mode(self) -> BuildMode:
        mode = detect_build_mode(self.context.staging_dir)
        logger.info("Build mode for %s: %s", self.event.short_sha, mode.value)
        return mode

    def build_image(self, mode: BuildMode):
        self.image_builder.build(self.event, self.context, mode)

    def push_image(self) -> str:
        puts_step("Pushing image to private registry")
        return self.docker_runtime_service.publish_image(self.context.image_name)

    def resolve_process_types(self) -> ProcessTypeMap:
        source, process_types = self.process_type_resolver.resolve(self.context)
        logger.info("Process types (%s): %s", source.value, ", ".join(sorted(process_types)) or "<none>")
        return process_types

    def publish_release(self, process_types: ProcessTypeMap) -> ReleaseRecord:
        puts_step("Launching... ")
        payload = build_release_payload(self.event, process_types, self.context.using_dockerfile)
        release = self.controller.publish_release(payload)

        indent(f"done, {self.event.app_name}:v{release.version} deployed")
        console.print()
        if release.domain:
            indent(f"http://{release.domain}")
            console.print()
        return release

    def cleanup(self):
        """Releases everything acquired by the run. Never raises."""
        repo_dir = self.staging_service.repo_dir(self.event)
        if os.path.isdir(repo_dir):
            try:
                self.git_service.gc(repo_dir)
            except Exception as exc:
                logger.debug("git gc failed: %s", exc)

        if self.context and self.context.container_id:
            try:
                self.docker_runtime_service.remove_container(self.context.container_id)
            except Exception as exc:
                logger.debug("Could not remove container %s: %s", self.context.container_id, exc)

        if self.context and not self.settings.keep_build_dir:
            self.filesystem_service.cleanup_dir(self.context.staging_dir)

        if self.build_lock and self.build_lock.held:
            try:
                self.build_lock.release()
            except Exception as exc:
                logger.debug("Could not release build lock: %s", exc)

        self._advance(PipelineState.CLEANED)

    def execute(self) -> PipelineOutcome:
        try:
            logger.info("Building %s for %s at %s", self.event.app_name, self.event.user, self.event.sha)
            self._run_stage("stage", PipelineState.STAGED, self.stage_commit)
            mode = self._run_stage("detect", PipelineState.MODE_DETECTED, self.detect_mode)
            self._run_stage("build", PipelineState.BUILT, self.build_image, mode)
            self._run_stage("push", PipelineState.PUSHED, self.push_image)
            process_types = self._run_stage(
                "procfile",
                PipelineState.PROCESS_TYPES_RESOLVED,
                self.resolve_process_types,
            )
            release = self._run_stage(
                "release",
                PipelineState.PUBLISHED,
                self.publish_release,
                process_types,
            )
            return Success(release=release)

        except KeyboardInterrupt:
            puts_warn("Build cancelled.")
            logger.info("Build cancelled by user")
            return Failure(stage=self.current_stage or "pipeline", message="Build cancelled.")
        except ReleaseError as exc:
            puts_warn(f"ERROR: {exc}")
            if exc.body:
                puts_warn(exc.body)
            logger.error("%s %s", exc, exc.body)
            return Failure(stage=exc.stage, message=str(exc))
        except BuilderError as exc:
            puts_warn(str(exc))
            logger.error(str(exc))
            return Failure(stage=exc.stage, message=str(exc))
        except Exception as exc:
            puts_warn(f"Unexpected error: {exc}")
            logger.exception("Unexpected error")
            return Failure(stage=self.current_stage or "pipeline", message=str(exc))
        finally:
            self.cleanup()

    def run(self) -> int:
        return self.execute().exit_code
