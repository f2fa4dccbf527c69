"""Image construction for staged commits."""

from pushbuilder.errors import BuildError
from pushbuilder.errors_catalog import actionable_error
from pushbuilder.models import BuildContext, BuildMode, PushEvent


class ImageBuilder:
    """Turns a staged commit into a local image tagged `<app>:git-<short sha>`."""

    def __init__(self, settings, docker_runtime, controller, filesystem_service, logger, console):
        self.settings = settings
        self.docker_runtime = docker_runtime
        self.controller = controller
        self.filesystem_service = filesystem_service
        self.logger = logger
        self.console = console
        self._handlers = {
            BuildMode.DOCKERFILE: self._prepare_dockerfile,
            BuildMode.BUILDPACK: self._prepare_buildpack,
        }

    def forward_output(self, line: str):
        self.logger.debug(line)
        self.console.print(line, markup=False, highlight=False)

    def build(self, event: PushEvent, context: BuildContext, mode: BuildMode):
        context.using_dockerfile = mode is BuildMode.DOCKERFILE
        self._handlers[mode](event, context)
        self.pin_commit(context, event.sha)

        self.console.print("[bold]-----> Building Docker image[/bold]")
        self.docker_runtime.build_image(context, self.forward_output)

    def _prepare_dockerfile(self, event: PushEvent, context: BuildContext):
        self.logger.info("Using Dockerfile from %s", event.short_sha)

    def _prepare_buildpack(self, event: PushEvent, context: BuildContext):
        env = self.controller.fetch_config(event.user, event.app_name)

        gid = self.settings.build_group_id
        self.filesystem_service.share_with_group(context.staging_dir, gid)
        self.filesystem_service.share_with_group(context.cache_dir, gid)

        context.container_id = self.docker_runtime.create_build_container(context, env)
        self.logger.info("Started build container %s", context.container_id)

        exit_code = self.docker_runtime.attach(context.container_id, self.forward_output)
        if exit_code != 0:
            raise BuildError(actionable_error("buildpack_failed", code=exit_code))

        self.docker_runtime.copy_artifact(context.container_id, context.staging_dir)
        self.write_dockerfile(context.dockerfile_path, self.docker_runtime.runner_dockerfile())

    @staticmethod
    def write_dockerfile(path: str, content: str):
        with open(path, "w", encoding="utf-8", newline="\n") as file_obj:
            file_obj.write(content)
            file_obj.write("\n")

    @staticmethod
    def pin_commit(context: BuildContext, sha: str):
        with open(context.dockerfile_path, "a", encoding="utf-8", newline="\n") as file_obj:
            file_obj.write(f"\nENV GIT_SHA {sha}\n")
