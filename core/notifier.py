"""Run the external notifier tool inside a mirror directory."""
from __future__ import annotations

import subprocess
from typing import Mapping, Optional, Union

from loguru import logger

from .arguments import to_argv
from .errors import NotifierInvocationFailure


class NotifierInvoker:
    def __init__(self, tool_path: str, timeout: Optional[float] = None):
        self.tool_path = tool_path
        self.timeout = timeout

    def run(self, directory: str, args: Mapping[str, Union[str, bool]]) -> str:
        """Run the tool with ``cwd=directory`` and return its stdout.

        Raises NotifierInvocationFailure for a missing executable, a timeout or a
        non-zero exit status.
        """
        argv = to_argv(args)
        cmd = [self.tool_path, *argv]
        try:
            result = subprocess.run(
                cmd,
                cwd=directory,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise NotifierInvocationFailure(
                directory, argv, f"timed out after {e.timeout}s"
            ) from e
        except OSError as e:
            raise NotifierInvocationFailure(directory, argv, str(e)) from e

        if result.returncode != 0:
            detail = (result.stderr or result.stdout or "").strip()
            raise NotifierInvocationFailure(
                directory, argv, f"exit status {result.returncode}: {detail}"
            )
        return result.stdout

    def invoke(self, directory: str, args: Mapping[str, Union[str, bool]]) -> bool:
        try:
            output = self.run(directory, args)
        except NotifierInvocationFailure as e:
            logger.error(str(e))
            return False
        except Exception as e:
            logger.exception(
                f"Unexpected notifier fault in {directory} with {to_argv(args)}: {e}"
            )
            return False

        if output.strip():
            logger.debug(f"Notifier output: {output.strip()}")
        return True
