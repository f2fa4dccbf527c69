"""Subprocess execution service for pushbuilder."""

import subprocess
from typing import Callable, List, Optional, Type

from pushbuilder.errors import BuilderError

ENV_FLAGS = ("-e", "--env")
MASK = "***"


class CommandRunner:
    """Runs external commands with consistent error handling."""

    def __init__(self, logger, subprocess_module=subprocess):
        self.logger = logger
        self.subprocess = subprocess_module

    @staticmethod
    def describe(cmd: List[str]) -> str:
        """Renders `cmd` for logs and errors with `-e KEY=VALUE` values masked."""
        parts = []
        after_env_flag = False
        for arg in cmd:
            if after_env_flag and "=" in arg:
                arg = f"{arg.split('=', 1)[0]}={MASK}"
            parts.append(arg)
            after_env_flag = arg in ENV_FLAGS
        return " ".join(parts)

    def run(
        self,
        cmd: List[str],
        check: bool = True,
        capture_output: bool = False,
        text: bool = True,
        cwd: Optional[str] = None,
        error_cls: Type[BuilderError] = BuilderError,
    ) -> subprocess.CompletedProcess:
        cmd_str = self.describe(cmd)
        self.logger.debug("Executing: %s", cmd_str)

        try:
            result = self.subprocess.run(
                cmd,
                text=text,
                capture_output=capture_output,
                cwd=cwd,
            )
        except FileNotFoundError as exc:
            raise error_cls(
                f"Required command not found: {cmd[0]}. Please install it and try again."
            ) from exc
        except OSError as exc:
            raise error_cls(f"Failed to execute command: {cmd_str}. {exc}") from exc

        if capture_output and text and result.stdout:
            self.logger.debug("Command output: %s", result.stdout.strip())

        if result.returncode == 0 or not check:
            return result

        stderr = result.stderr if capture_output else ""
        if isinstance(stderr, bytes):
            stderr = stderr.decode("utf-8", errors="replace")
        message = f"Command failed ({result.returncode}): {cmd_str}"
        if stderr and stderr.strip():
            message = f"{message}\n{stderr.strip()}"
        raise error_cls(message)

    def _popen(self, cmd: List[str], error_cls: Type[BuilderError], **kwargs):
        try:
            return self.subprocess.Popen(cmd, **kwargs)
        except FileNotFoundError as exc:
            raise error_cls(
                f"Required command not found: {cmd[0]}. Please install it and try again."
            ) from exc
        except OSError as exc:
            raise error_cls(f"Failed to execute command: {self.describe(cmd)}. {exc}") from exc

    def spawn(
        self,
        cmd: List[str],
        cwd: Optional[str] = None,
        error_cls: Type[BuilderError] = BuilderError,
    ):
        """Starts `cmd` with binary stdout and stderr pipes; the caller drains and waits."""
        self.logger.debug("Spawning: %s", self.describe(cmd))
        return self._popen(
            cmd,
            error_cls,
            stdout=self.subprocess.PIPE,
            stderr=self.subprocess.PIPE,
            cwd=cwd,
        )

    def stream(
        self,
        cmd: List[str],
        on_line: Callable[[str], None],
        cwd: Optional[str] = None,
        error_cls: Type[BuilderError] = BuilderError,
    ) -> int:
        """Runs `cmd` to completion, forwarding each output line as it arrives."""
        self.logger.debug("Streaming: %s", self.describe(cmd))

        process = self._popen(
            cmd,
            error_cls,
            stdout=self.subprocess.PIPE,
            stderr=self.subprocess.STDOUT,
            text=True,
            bufsize=1,
            cwd=cwd,
            errors="replace",
        )

        if process.stdout:
            with process.stdout:
                for line in process.stdout:
                    on_line(line.rstrip("\n"))

        return process.wait()
