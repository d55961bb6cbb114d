# Copyright 2024 Michael Maillet, Damien Davison, Sacha Davison
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""
Execution of external commands with combined output capture.
"""
import logging
import os
import subprocess
from dataclasses import dataclass
from typing import Dict, Optional, Protocol, Sequence, Union

logger = logging.getLogger(__name__)

PathLike = Union[str, os.PathLike]


@dataclass(frozen=True)
class ProcessResult:
    """
    Outcome of a finished process. ``output`` holds stdout and stderr interleaved.
    """
    exit_code: int
    output: str = ""

    @property
    def success(self) -> bool:
        return self.exit_code == 0


class ProcessExecutor(Protocol):
    """
    Runs a command to completion and returns its exit code and output.
    A non-zero exit code is a normal result; implementations raise only when
    the process cannot be launched.
    """

    def execute(self,
                command: Sequence[str],
                working_directory: Optional[PathLike] = None,
                env: Optional[Dict[str, str]] = None,
                timeout: Optional[float] = None) -> ProcessResult:
        ...


class SubprocessExecutor:
    """
    ProcessExecutor backed by ``subprocess.run``.
    """

    def execute(self,
                command: Sequence[str],
                working_directory: Optional[PathLike] = None,
                env: Optional[Dict[str, str]] = None,
                timeout: Optional[float] = None) -> ProcessResult:
        """
        Runs the command and waits for it to exit.

        Args:
            command (Sequence[str]): Command and arguments to execute.
            working_directory (Optional[PathLike]): Directory to run the command in.
            env (Optional[Dict[str, str]]): Full environment for the process, inherited when None.
            timeout (Optional[float]): Seconds before the process is killed, no limit when None.

        Returns:
            ProcessResult: Exit code and combined stdout/stderr.

        Raises:
            OSError: If the executable cannot be started.
            subprocess.TimeoutExpired: If ``timeout`` elapses.
        """
        argv = [str(token) for token in command]
        logger.debug("Executing: %s (cwd=%s)", " ".join(argv), working_directory or os.getcwd())

        completed = subprocess.run(
            argv,
            cwd=working_directory,
            env=env,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            errors="replace",
            timeout=timeout,
            # Avoid shell=True for security reasons (CWE-78)
            shell=False,
        )
        return ProcessResult(exit_code=completed.returncode, output=completed.stdout or "")
