"""Git repository helpers for pushbuilder."""

from typing import Any, BinaryIO, Callable, Optional

from pushbuilder.errors import StagingError
from pushbuilder.errors_catalog import actionable_error


class GitService:
    """Reads commit trees from, and maintains, the pushed repository."""

    def __init__(self, logger, command_runner):
        self.logger = logger
        self.command_runner = command_runner

    def archive(self, repo_dir: str, sha: str, consume: Callable[[BinaryIO], Any]) -> Any:
        """Pipes `git archive --format=tar <sha>` into `consume` and returns its result.

        The tar stream is never held in memory as a whole. If git itself fails the
        commit is reported as unresolvable, whatever `consume` made of the partial
        stream.
        """
        process = self.command_runner.spawn(
            ["git", "archive", "--format=tar", sha],
            cwd=repo_dir,
            error_cls=StagingError,
        )

        result = None
        failure: Optional[StagingError] = None
        try:
            with process.stdout:
                result = consume(process.stdout)
        except StagingError as exc:
            failure = exc
            process.kill()
        except BaseException:
            process.kill()
            process.wait()
            raise

        with process.stderr:
            stderr = process.stderr.read()
        returncode = process.wait()

        # A negative code after kill() means the consumer stopped reading first.
        if returncode > 0 or (returncode != 0 and failure is None):
            message = (stderr or b"").decode("utf-8", errors="replace").strip()
            if message:
                self.logger.error(message)
            raise StagingError(
                actionable_error("commit_unresolvable", sha=sha, path=repo_dir)
            ) from failure
        if failure is not None:
            raise failure
        return result

    def gc(self, repo_dir: str):
        self.command_runner.run(
            ["git", "gc", "--quiet"],
            check=False,
            capture_output=True,
            cwd=repo_dir,
        )
