"""Docker runtime services for pushbuilder."""

import os
from typing import Callable, Dict, List

from pushbuilder.constants import (
    ARTIFACT_NAME,
    CONTAINER_APP_DIR,
    CONTAINER_ARTIFACT_PATH,
    CONTAINER_CACHE_DIR,
)
from pushbuilder.errors import BuildError, RegistryError
from pushbuilder.errors_catalog import actionable_error
from pushbuilder.models import BuildContext


class DockerRuntimeService:
    """Wraps the docker CLI calls made while building and publishing a push."""

    def __init__(self, settings, command_runner, logger):
        self.settings = settings
        self.command_runner = command_runner
        self.logger = logger

    def build_container_cmd(self, context: BuildContext, env: Dict[str, str]) -> List[str]:
        cmd = [
            "docker",
            "create",
            "-v",
            f"{context.staging_dir}:{CONTAINER_APP_DIR}:rw",
            "-v",
            f"{context.cache_dir}:{CONTAINER_CACHE_DIR}:rw",
        ]
        for key in sorted(env):
            cmd += ["-e", f"{key}={env[key]}"]
        cmd.append(self.settings.buildpack_image)
        return cmd

    def create_build_container(self, context: BuildContext, env: Dict[str, str]) -> str:
        result = self.command_runner.run(
            self.build_container_cmd(context, env),
            capture_output=True,
            error_cls=BuildError,
        )
        container_id = (result.stdout or "").strip()
        if not container_id:
            raise BuildError("Docker did not return an id for the build container.")
        return container_id

    def attach(self, container_id: str, on_line: Callable[[str], None]) -> int:
        """Starts the container and blocks until it exits, forwarding its output."""
        return self.command_runner.stream(
            ["docker", "start", "--attach", container_id],
            on_line,
            error_cls=BuildError,
        )

    def copy_artifact(self, container_id: str, staging_dir: str) -> str:
        destination = os.path.join(staging_dir, ARTIFACT_NAME)
        self.command_runner.run(
            ["docker", "cp", f"{container_id}:{CONTAINER_ARTIFACT_PATH}", destination],
            capture_output=True,
            error_cls=BuildError,
        )
        if not os.path.isfile(destination):
            raise BuildError(f"Build container did not produce {CONTAINER_ARTIFACT_PATH}.")
        return destination

    def runner_dockerfile(self) -> str:
        return f"""
FROM {self.settings.runner_image}
RUN mkdir -p /app
WORKDIR /app
ENTRYPOINT ["/runner/init"]
ADD {ARTIFACT_NAME} /app
""".strip()

    def build_image(self, context: BuildContext, on_line: Callable[[str], None]):
        returncode = self.command_runner.stream(
            ["docker", "build", "-t", context.image_name, context.staging_dir],
            on_line,
            error_cls=BuildError,
        )
        if returncode != 0:
            raise BuildError(
                actionable_error("image_build_failed", image=context.image_name, code=returncode)
            )

    def qualified_name(self, image_name: str) -> str:
        return f"{self.settings.registry}/{image_name}"

    def publish_image(self, image_name: str) -> str:
        target = self.qualified_name(image_name)
        try:
            self.command_runner.run(
                ["docker", "tag", image_name, target],
                capture_output=True,
                error_cls=RegistryError,
            )
            self.command_runner.run(
                ["docker", "push", target],
                capture_output=True,
                error_cls=RegistryError,
            )
        except RegistryError as exc:
            self.logger.error(str(exc))
            raise RegistryError(
                actionable_error("push_failed", image=target, registry=self.settings.registry)
            ) from exc
        return target

    def remove_container(self, container_id: str):
        self.command_runner.run(
            ["docker", "rm", "-f", container_id],
            check=False,
            capture_output=True,
        )
